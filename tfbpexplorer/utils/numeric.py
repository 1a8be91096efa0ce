"""
Shared coercion of raw table cells into numbers, booleans and strings.

Every parser in the package (correlation tables, rank response metadata, replicate
CSVs) goes through these helpers so that "missing" means the same thing
everywhere: ``None`` for scalars, ``NaN`` inside numeric arrays. Nothing here
raises on bad input.

"""

from __future__ import annotations

import math
from collections.abc import Iterable
from numbers import Number
from typing import Any

import numpy as np

NULL_LIKE_VALUES = frozenset({"", "na", "nan", "none", "null"})

_TRUE_TOKENS = frozenset({"true", "1", "yes", "y", "t"})
_FALSE_TOKENS = frozenset({"false", "0", "no", "n", "f"})


def parse_numeric(value: Any) -> float | None:
    """
    Convert a raw cell value into a finite float, or ``None`` if it is missing.

    :param value: A string, number, ``None`` or anything else read from a table.
    :return: The parsed float, or ``None`` when the value is absent, blank, one of
        the null-like tokens (``na``, ``nan``, ``none``, ``null``), not parseable,
        or not finite.

    :examples:

    .. code-block:: python

        parse_numeric("  3.14  ")  # 3.14
        parse_numeric("NaN")  # None
        parse_numeric(5)  # 5.0
        parse_numeric("")  # None

    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None

    if isinstance(value, Number):
        try:
            numeric = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        return numeric if math.isfinite(numeric) else None

    if not isinstance(value, str):
        return None

    trimmed = value.strip()
    if trimmed.lower() in NULL_LIKE_VALUES:
        return None

    try:
        numeric = float(trimmed)
    except ValueError:
        return None
    return numeric if math.isfinite(numeric) else None


def parse_boolean(value: Any) -> bool | None:
    """Interpret common truthy/falsy encodings; anything else is ``None``."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, Number):
        return value == 1
    if not isinstance(value, str):
        return None

    lowered = value.strip().lower()
    if lowered in _TRUE_TOKENS:
        return True
    if lowered in _FALSE_TOKENS:
        return False
    return None


def ensure_string(value: Any) -> str | None:
    """Return a trimmed, non-empty string for text or finite numbers."""
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None

    if isinstance(value, Number) and not isinstance(value, (bool, np.bool_)):
        numeric = float(value)  # type: ignore[arg-type]
        if not math.isfinite(numeric):
            return None
        if numeric.is_integer():
            return str(int(numeric))
        return str(value)

    return None


def coerce_numeric_column(values: Iterable[Any]) -> np.ndarray:
    """Parse every value of a column, representing missing entries as NaN."""
    parsed = [parse_numeric(value) for value in values]
    return np.array(
        [np.nan if value is None else value for value in parsed], dtype=float
    )


def neg_log10(values: Iterable[Any], epsilon: float = 1e-300) -> np.ndarray:
    """
    ``-log10`` of p-values, for plotting on a significance scale.

    Values at or below *epsilon* (including exact zeros) are clipped to *epsilon*
    so they stay finite. Missing and negative values become NaN.

    :example:

        >>> neg_log10([0.01, None, 0.0]).round(1).tolist()
        [2.0, nan, 300.0]

    """
    if not epsilon > 0:
        raise ValueError("epsilon must be positive")
    array = coerce_numeric_column(values)
    array[array < 0] = np.nan
    return -np.log10(np.where(array <= epsilon, epsilon, array))
