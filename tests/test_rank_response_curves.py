"""Tests for replicate CSV parsing and rank response curve computation."""

import pandas as pd
import pytest
from scipy.stats import binomtest

from tfbpexplorer.errors import MalformedPayloadError
from tfbpexplorer.rank_response.curves import (
    compute_rank_response,
    normalize_replicate_frame,
    parse_replicate_csv,
    process_plot_data,
)


class TestNormalizeReplicateFrame:
    def test_keeps_bins_within_range(self):
        table = pd.DataFrame(
            {
                "rank_bin": ["0", "1", "150", "151", "x"],
                "responsive": ["True", "false", "1", "True", "True"],
                "random": ["0.1", "", "0.1", "0.1", "0.1"],
            }
        )
        frame = normalize_replicate_frame(table, n_bins=150)
        assert frame["rank_bin"].tolist() == [1.0, 150.0]
        assert frame["responsive"].tolist() == [False, True]

    def test_missing_optional_columns(self):
        frame = normalize_replicate_frame(pd.DataFrame({"rank_bin": ["1", "2"]}))
        assert frame["responsive"].tolist() == [False, False]
        assert frame["random"].isna().all()

    def test_missing_rank_bin_raises(self):
        with pytest.raises(MalformedPayloadError):
            normalize_replicate_frame(pd.DataFrame({"responsive": ["True"]}))

    def test_table_without_columns_is_empty(self):
        assert normalize_replicate_frame(pd.DataFrame()).empty


class TestProcessPlotData:
    def test_five_bin_replicate(self, make_replicate_csv):
        frame = parse_replicate_csv(make_replicate_csv({1, 3, 5}))
        data = process_plot_data(frame)

        assert data["x"] == [1, 2, 3, 4, 5]
        assert data["y"] == pytest.approx([1.0, 0.5, 2 / 3, 0.5, 0.6])
        assert data["random"] == pytest.approx([0.2] * 5)
        for lower, baseline, upper in zip(
            data["ci_lower"], data["random"], data["ci_upper"]
        ):
            assert lower <= baseline <= upper

    def test_vectors_are_aligned(self, make_replicate_csv):
        data = process_plot_data(parse_replicate_csv(make_replicate_csv({2}, n_bins=12)))
        lengths = {len(values) for values in data.values()}
        assert lengths == {12}

    def test_empty_inputs_give_none(self):
        assert process_plot_data(parse_replicate_csv("")) is None
        assert process_plot_data(parse_replicate_csv("rank_bin,responsive,random\n")) is None

    def test_responsive_counts_never_decrease(self, make_replicate_csv):
        data = process_plot_data(
            parse_replicate_csv(make_replicate_csv({1, 4, 5, 9}, n_bins=10))
        )
        counts = [round(x * y) for x, y in zip(data["x"], data["y"])]
        assert counts == sorted(counts)
        assert all(0.0 <= y <= 1.0 for y in data["y"])

    def test_baseline_comes_from_first_bin(self):
        frame = pd.DataFrame(
            {
                "rank_bin": [2.0, 1.0, 3.0],
                "responsive": [False, True, False],
                "random": [0.9, 0.1, 0.5],
            }
        )
        data = process_plot_data(frame)
        assert data["random"] == [0.1, 0.1, 0.1]


class TestComputeRankResponse:
    def test_genes_sharing_a_bin_are_pooled(self):
        frame = pd.DataFrame(
            {
                "rank_bin": [5.0, 5.0, 5.0, 10.0, 10.0],
                "responsive": [True, True, False, True, False],
                "random": [0.2, 0.2, 0.3, 0.3, 0.3],
            }
        )
        summary = compute_rank_response(frame)

        assert summary["rank_bin"].tolist() == [5.0, 10.0]
        assert summary["n_responsive_in_rank"].tolist() == [2, 1]
        assert summary["n_successes"].tolist() == [2, 3]
        assert summary["response_ratio"].tolist() == pytest.approx([0.4, 0.3])
        # last random value of the first bin
        assert summary["random"].tolist() == pytest.approx([0.3, 0.3])

    def test_pvalue_is_two_sided_binomial_test(self):
        frame = pd.DataFrame(
            {
                "rank_bin": [float(rank) for rank in range(1, 21)],
                "responsive": [rank <= 8 for rank in range(1, 21)],
                "random": [0.1] * 20,
            }
        )
        summary = compute_rank_response(frame)
        expected = binomtest(8, 20, 0.1, alternative="two-sided").pvalue
        assert summary["pvalue"].iloc[-1] == pytest.approx(expected)

    def test_missing_random_falls_back_to_zero(self):
        frame = pd.DataFrame(
            {"rank_bin": [1.0, 2.0], "responsive": [True, False], "random": [None, None]}
        )
        summary = compute_rank_response(frame)
        assert summary["random"].tolist() == [0.0, 0.0]
        assert (summary["ci_lower"] <= 0.0).all()
        assert summary["pvalue"].tolist() == [0.0, 0.0]

    def test_empty_frame(self):
        summary = compute_rank_response(
            pd.DataFrame(columns=["rank_bin", "responsive", "random"])
        )
        assert summary.empty
        assert "ci_upper" in summary.columns
