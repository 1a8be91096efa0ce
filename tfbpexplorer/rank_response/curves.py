"""
Rank response curves for a single binding/perturbation replicate.

Genes are ranked by binding strength and assigned to rank bins. Walking the bins in
order, the curve reports the fraction of the ``k`` most strongly bound genes that
respond to the perturbation, alongside the random expectation and a 95% binomial
confidence band around it.

"""

from __future__ import annotations

import logging
import math
from typing import TypedDict

import numpy as np
import pandas as pd
from scipy.stats import binomtest

from ..errors import MalformedPayloadError
from ..utils.numeric import coerce_numeric_column, parse_boolean
from ..utils.tables import read_delimited_text
from .binomial import binomial_confidence_interval

logger = logging.getLogger("shiny")

DEFAULT_RANK_BINS = 150


class ProcessedPlotData(TypedDict):
    x: list[int | float]
    y: list[float]
    random: list[float]
    ci_lower: list[float]
    ci_upper: list[float]
    pvalue: list[float | None]


def normalize_replicate_frame(
    table: pd.DataFrame, n_bins: int = DEFAULT_RANK_BINS
) -> pd.DataFrame:
    """
    Coerce a raw replicate table and keep rows with ``0 < rank_bin <= n_bins``.

    :param table: Raw all-string table with ``rank_bin`` and optionally
        ``responsive`` and ``random`` columns.
    :param n_bins: Largest rank bin to keep.
    :return: DataFrame with float ``rank_bin``, bool ``responsive`` and float
        ``random`` (NaN when absent).
    :raises MalformedPayloadError: If ``rank_bin`` is missing from a non-empty table.

    """
    if table.empty and not len(table.columns):
        return pd.DataFrame(
            {
                "rank_bin": pd.Series(dtype=float),
                "responsive": pd.Series(dtype=bool),
                "random": pd.Series(dtype=float),
            }
        )

    if "rank_bin" not in table.columns:
        raise MalformedPayloadError(
            "Replicate table has no rank_bin column",
            detail=f"columns: {list(table.columns)[:20]}",
        )

    n_rows = table.shape[0]
    responsive_raw = (
        table["responsive"].tolist() if "responsive" in table.columns else [None] * n_rows
    )
    random_raw = table["random"].tolist() if "random" in table.columns else [None] * n_rows

    frame = pd.DataFrame(
        {
            "rank_bin": coerce_numeric_column(table["rank_bin"].tolist()),
            "responsive": [parse_boolean(value) is True for value in responsive_raw],
            "random": coerce_numeric_column(random_raw),
        }
    )
    in_range = (frame["rank_bin"] > 0) & (frame["rank_bin"] <= n_bins)
    return frame.loc[in_range].reset_index(drop=True)


def parse_replicate_csv(text: str, n_bins: int = DEFAULT_RANK_BINS) -> pd.DataFrame:
    """Parse a replicate CSV member into a normalized replicate frame."""
    return normalize_replicate_frame(
        read_delimited_text(text, label="replicate CSV"), n_bins=n_bins
    )


def _binomial_pvalue(successes: int, trials: int, probability: float) -> float | None:
    if trials <= 0 or not 0 <= probability <= 1:
        return None
    successes = min(successes, trials)
    if probability == 0:
        return 1.0 if successes == 0 else 0.0
    if probability == 1:
        return 1.0 if successes == trials else 0.0
    result = binomtest(successes, trials, probability, alternative="two-sided")
    return float(result.pvalue)


def compute_rank_response(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Summarize a normalized replicate frame by rank bin.

    Each bin records how many of its genes are responsive and the last non-missing
    random expectation seen in it. The baseline probability for the whole curve is the
    random value of the smallest bin; it is broadcast unchanged to every bin and is
    also the null probability for the confidence band and the binomial test.

    :param frame: Output of :func:`normalize_replicate_frame`.
    :return: One row per distinct rank bin, ascending, with columns ``rank_bin``,
        ``n_responsive_in_rank``, ``n_successes``, ``response_ratio``, ``random``,
        ``pvalue``, ``ci_lower`` and ``ci_upper``. Empty if *frame* is empty.

    """
    columns = [
        "rank_bin",
        "n_responsive_in_rank",
        "n_successes",
        "response_ratio",
        "random",
        "pvalue",
        "ci_lower",
        "ci_upper",
    ]
    if frame.empty:
        return pd.DataFrame(columns=columns)

    summary = (
        frame.groupby("rank_bin", sort=True)
        .agg(
            n_responsive_in_rank=pd.NamedAgg(column="responsive", aggfunc="sum"),
            bin_random=pd.NamedAgg(column="random", aggfunc="last"),
        )
        .reset_index()
    )

    bin_random = summary["bin_random"].fillna(0.0)
    baseline = float(bin_random.iloc[0])

    summary["n_successes"] = summary["n_responsive_in_rank"].astype(int).cumsum()
    summary["response_ratio"] = np.minimum(
        summary["n_successes"] / summary["rank_bin"], 1.0
    )
    summary["random"] = baseline

    intervals = [
        binomial_confidence_interval(int(math.floor(rank)), baseline)
        for rank in summary["rank_bin"]
    ]
    # the band always contains the baseline itself
    summary["ci_lower"] = [min(lower, baseline) for lower, _ in intervals]
    summary["ci_upper"] = [max(upper, baseline) for _, upper in intervals]
    summary["pvalue"] = [
        _binomial_pvalue(int(successes), int(math.floor(rank)), baseline)
        for successes, rank in zip(summary["n_successes"], summary["rank_bin"])
    ]

    return summary[columns]


def _as_rank(value: float) -> int | float:
    return int(value) if float(value).is_integer() else float(value)


def process_plot_data(frame: pd.DataFrame) -> ProcessedPlotData | None:
    """
    Turn a normalized replicate frame into aligned plot vectors.

    :param frame: Output of :func:`normalize_replicate_frame`.
    :return: ``{x, y, random, ci_lower, ci_upper, pvalue}``, all the same length, or
        ``None`` when there is nothing to draw.

    :examples:

    .. code-block:: python

        frame = pd.DataFrame(
            {
                "rank_bin": [1.0, 2.0, 3.0, 4.0, 5.0],
                "responsive": [True, False, True, False, True],
                "random": [0.2] * 5,
            }
        )
        process_plot_data(frame)["y"]
        # [1.0, 0.5, 0.667, 0.5, 0.6] (rounded)

    """
    summary = compute_rank_response(frame)
    if summary.empty:
        return None

    return {
        "x": [_as_rank(rank) for rank in summary["rank_bin"]],
        "y": [float(value) for value in summary["response_ratio"]],
        "random": [float(value) for value in summary["random"]],
        "ci_lower": [float(value) for value in summary["ci_lower"]],
        "ci_upper": [float(value) for value in summary["ci_upper"]],
        "pvalue": [None if value is None else float(value) for value in summary["pvalue"]],
    }
