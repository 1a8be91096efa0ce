"""Build labelled, canonically ordered correlation matrices from numeric tables."""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping, Sequence
from typing import Any, TypedDict

import numpy as np
import pandas as pd

from ..utils.numeric import coerce_numeric_column
from .pearson import pearson_correlation

logger = logging.getLogger("shiny")

IDENTIFIER_COLUMN = "target_symbol"


class CorrelationMatrixPayload(TypedDict):
    labels: list[str]
    matrix: list[list[float]]
    min: float
    max: float


def empty_correlation_payload() -> CorrelationMatrixPayload:
    return {"labels": [], "matrix": [], "min": 0.0, "max": 1.0}


def is_valid_correlation_payload(value: Any) -> bool:
    """
    Check the shape of a correlation payload received from a remote source.

    ``labels`` and ``matrix`` must be lists, every matrix row a list, and
    ``min``/``max`` real numbers.
    Anything else is treated as a failed source, never as data.

    """
    if not isinstance(value, Mapping):
        return False
    return (
        isinstance(value.get("labels"), list)
        and isinstance(value.get("matrix"), list)
        and all(isinstance(row, list) for row in value["matrix"])
        and isinstance(value.get("min"), (int, float))
        and not isinstance(value.get("min"), bool)
        and isinstance(value.get("max"), (int, float))
        and not isinstance(value.get("max"), bool)
    )


def compute_correlation_matrix(
    columns: Sequence[Sequence[float | None] | np.ndarray],
) -> tuple[list[list[float]], float, float]:
    """
    Correlate every pair of columns.

    The diagonal is fixed at 1.0. Each off-diagonal value is computed once and
    mirrored. ``min`` and ``max`` cover off-diagonal cells only and default to 0 and
    1 when there is no such cell.

    :param columns: One sequence of floats (NaN/``None`` for missing) per label.
    :return: ``(matrix, min, max)``

    """
    size = len(columns)
    arrays = [np.asarray(column, dtype=float) for column in columns]
    matrix = [[0.0] * size for _ in range(size)]
    minimum = float("inf")
    maximum = float("-inf")

    for row_index in range(size):
        for col_index in range(row_index, size):
            if row_index == col_index:
                correlation = 1.0
            else:
                correlation = pearson_correlation(
                    arrays[row_index], arrays[col_index]
                )
                minimum = min(minimum, correlation)
                maximum = max(maximum, correlation)

            matrix[row_index][col_index] = correlation
            matrix[col_index][row_index] = correlation

    if minimum == float("inf"):
        minimum = 0.0
    if maximum == float("-inf"):
        maximum = 1.0

    return matrix, minimum, maximum


def sort_correlation_payload(
    payload: Mapping[str, Any],
) -> CorrelationMatrixPayload:
    """
    Reorder labels lexicographically, permuting rows and columns to match.

    Missing cells in a ragged matrix (possible for remote payloads) become 0.

    """
    labels = [str(label) for label in payload["labels"]]
    matrix = payload["matrix"]
    order = sorted(range(len(labels)), key=lambda index: labels[index])

    def _cell(row_index: int, col_index: int) -> float:
        try:
            row = matrix[row_index]
            return float(row[col_index])
        except (IndexError, KeyError, TypeError, ValueError):
            return 0.0

    return {
        "labels": [labels[index] for index in order],
        "matrix": [
            [_cell(row_index, col_index) for col_index in order]
            for row_index in order
        ],
        "min": float(payload["min"]),
        "max": float(payload["max"]),
    }


def build_correlation_payload(
    columns: Mapping[str, Sequence[float | None] | np.ndarray],
) -> CorrelationMatrixPayload:
    """
    Build a canonical :class:`CorrelationMatrixPayload` from named columns.

    :param columns: Label -> column values, all of equal length.
    :return: Payload with labels sorted, independent of the mapping's order.

    """
    labels = list(columns.keys())
    matrix, minimum, maximum = compute_correlation_matrix(
        [columns[label] for label in labels]
    )
    return sort_correlation_payload(
        {"labels": labels, "matrix": matrix, "min": minimum, "max": maximum}
    )


def table_to_columns(
    table: pd.DataFrame,
    drop_columns: Collection[str] = (),
    identifier_column: str = IDENTIFIER_COLUMN,
) -> dict[str, np.ndarray]:
    """
    Coerce every dataset column of a raw table into a numeric array.

    :param table: Raw table as read by
        :func:`tfbpexplorer.utils.tables.read_delimited_file`.
    :param drop_columns: Housekeeping columns to exclude in addition to the
        identifier column.
    :param identifier_column: Column naming the target gene; never correlated.
    :return: Label -> float array with NaN for missing cells.

    """
    excluded = set(drop_columns) | {identifier_column}
    return {
        str(label): coerce_numeric_column(table[label].tolist())
        for label in table.columns
        if str(label) not in excluded
    }


def correlation_payload_from_table(
    table: pd.DataFrame,
    drop_columns: Collection[str] = (),
    identifier_column: str = IDENTIFIER_COLUMN,
) -> CorrelationMatrixPayload:
    if table.empty:
        return empty_correlation_payload()

    columns = table_to_columns(table, drop_columns, identifier_column)
    logger.debug(
        "Correlating %d columns over %d rows", len(columns), int(table.shape[0])
    )
    return build_correlation_payload(columns)
