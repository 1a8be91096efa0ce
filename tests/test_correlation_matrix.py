"""Tests for pairwise Pearson correlation and correlation matrix assembly."""

import math

import numpy as np
import pandas as pd
import pytest

from tfbpexplorer.correlation.matrix import (
    build_correlation_payload,
    compute_correlation_matrix,
    correlation_payload_from_table,
    empty_correlation_payload,
    is_valid_correlation_payload,
    sort_correlation_payload,
)
from tfbpexplorer.correlation.pearson import pearson_correlation


class TestPearsonCorrelation:
    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_matches_numpy(self):
        rng = np.random.default_rng(0)
        x = rng.normal(size=50)
        y = 0.5 * x + rng.normal(size=50)
        assert pearson_correlation(x, y) == pytest.approx(np.corrcoef(x, y)[0, 1])

    def test_skips_incomplete_pairs(self):
        x = [1.0, 2.0, None, 4.0, float("nan")]
        y = [2.0, 4.0, 100.0, 8.0, 5.0]
        assert pearson_correlation(x, y) == pytest.approx(1.0)

    def test_fewer_than_two_pairs_is_zero(self):
        assert pearson_correlation([1.0, None], [None, 2.0]) == 0.0
        assert pearson_correlation([1.0], [1.0]) == 0.0
        assert pearson_correlation([], []) == 0.0

    def test_constant_column_is_zero(self):
        assert pearson_correlation([1, 1, 1], [1, 2, 3]) == 0.0

    def test_unequal_lengths_use_common_prefix(self):
        assert pearson_correlation([1, 2, 3, 100], [1, 2, 3]) == pytest.approx(1.0)

    def test_result_is_bounded(self):
        x = [1e-8, 2e-8, 3e-8]
        r = pearson_correlation(x, x)
        assert -1.0 <= r <= 1.0


class TestComputeCorrelationMatrix:
    def test_symmetric_with_unit_diagonal(self):
        columns = [[1, 2, 3, 4], [2, 1, 4, 3], [4, 3, 2, 1]]
        matrix, minimum, maximum = compute_correlation_matrix(columns)

        for i in range(3):
            assert matrix[i][i] == 1.0
            for j in range(3):
                assert matrix[i][j] == matrix[j][i]

        off_diagonal = [matrix[i][j] for i in range(3) for j in range(3) if i != j]
        assert minimum == pytest.approx(min(off_diagonal))
        assert maximum == pytest.approx(max(off_diagonal))
        assert matrix[0][2] == pytest.approx(-1.0)

    def test_single_column_defaults_min_max(self):
        matrix, minimum, maximum = compute_correlation_matrix([[1, 2, 3]])
        assert matrix == [[1.0]]
        assert (minimum, maximum) == (0.0, 1.0)

    def test_no_columns(self):
        assert compute_correlation_matrix([]) == ([], 0.0, 1.0)


class TestBuildCorrelationPayload:
    def test_two_perfectly_correlated_datasets(self):
        payload = build_correlation_payload(
            {"B": [2.0, 4.0, 6.0], "A": [1.0, 2.0, 3.0]}
        )
        assert payload["labels"] == ["A", "B"]
        assert payload["matrix"][0][1] == pytest.approx(1.0)
        assert payload["min"] == pytest.approx(1.0)
        assert payload["max"] == pytest.approx(1.0)

    def test_independent_of_column_order(self):
        columns = {
            "gamma": [1.0, 5.0, 2.0, 8.0],
            "alpha": [3.0, 1.0, 4.0, 1.0],
            "beta": [2.0, 7.0, 1.0, 8.0],
        }
        reordered = {key: columns[key] for key in ["beta", "gamma", "alpha"]}
        assert build_correlation_payload(columns) == build_correlation_payload(reordered)


class TestSortCorrelationPayload:
    def test_permutes_rows_and_columns(self):
        payload = {
            "labels": ["z", "a"],
            "matrix": [[1.0, 0.3], [0.3, 1.0]],
            "min": 0.3,
            "max": 0.3,
        }
        result = sort_correlation_payload(payload)
        assert result["labels"] == ["a", "z"]
        assert result["matrix"] == [[1.0, 0.3], [0.3, 1.0]]

    def test_ragged_matrix_fills_zero(self):
        payload = {"labels": ["b", "a"], "matrix": [[1.0]], "min": 0, "max": 1}
        result = sort_correlation_payload(payload)
        assert result["matrix"] == [[0.0, 0.0], [0.0, 1.0]]
        assert isinstance(result["min"], float)

    def test_non_indexable_rows_fill_zero(self):
        payload = {"labels": ["b", "a"], "matrix": [{"b": 1.0}, [0.5, 1.0]], "min": 0, "max": 1}
        assert sort_correlation_payload(payload)["matrix"] == [[1.0, 0.5], [0.0, 0.0]]


class TestIsValidCorrelationPayload:
    def test_accepts_well_formed(self):
        assert is_valid_correlation_payload(
            {"labels": ["a"], "matrix": [[1.0]], "min": 0, "max": 1.0}
        )

    @pytest.mark.parametrize(
        "value",
        [
            None,
            [],
            {"labels": "a", "matrix": [], "min": 0, "max": 1},
            {"labels": [], "matrix": {}, "min": 0, "max": 1},
            {"labels": [], "matrix": [], "min": "0", "max": 1},
            {"labels": [], "matrix": [], "min": 0},
            {"labels": [], "matrix": [], "min": True, "max": 1},
            {"labels": ["a"], "matrix": [{"a": 1.0}], "min": 0, "max": 1},
        ],
    )
    def test_rejects_malformed(self, value):
        assert not is_valid_correlation_payload(value)


class TestCorrelationPayloadFromTable:
    def test_drops_identifier_and_housekeeping_columns(self):
        table = pd.DataFrame(
            {
                "target_symbol": ["g1", "g2", "g3", "g4"],
                "red_median": ["9", "8", "7", "1"],
                "ds2": ["2", "4", "NA", "8"],
                "ds1": ["1", "2", "3", "4"],
            }
        )
        payload = correlation_payload_from_table(table, drop_columns={"red_median"})
        assert payload["labels"] == ["ds1", "ds2"]
        assert payload["matrix"][0][1] == pytest.approx(1.0)

    def test_empty_table(self):
        assert correlation_payload_from_table(pd.DataFrame()) == empty_correlation_payload()

    def test_values_are_finite(self):
        table = pd.DataFrame(
            {"target_symbol": ["a", "b"], "x": ["", ""], "y": ["1", "2"]}
        )
        payload = correlation_payload_from_table(table)
        assert all(math.isfinite(v) for row in payload["matrix"] for v in row)
        assert payload["matrix"][0][1] == 0.0


class TestTwoDatasetTables:
    def test_linear_relation(self):
        table = pd.DataFrame(
            {"target_symbol": ["g1", "g2", "g3"], "A": ["1", "2", "3"], "B": ["2", "4", "6"]}
        )
        payload = correlation_payload_from_table(table)
        assert payload["matrix"] == [[1.0, pytest.approx(1.0)], [pytest.approx(1.0), 1.0]]

    def test_constant_columns(self):
        payload = build_correlation_payload({"A": [1, 1, 1], "B": [1, 1, 1]})
        assert payload["matrix"] == [[1.0, 0.0], [0.0, 1.0]]
        assert (payload["min"], payload["max"]) == (0.0, 0.0)

    def test_symmetry(self):
        x = [0.3, 1.7, 2.2, 5.0, 4.1]
        y = [1.0, 0.2, 3.3, 2.9, None]
        assert pearson_correlation(x, y) == pearson_correlation(y, x)
        assert pearson_correlation(x, x) == pytest.approx(1.0)
