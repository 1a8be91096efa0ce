"""
Pairwise-complete Pearson correlation that never raises.

Columns are float arrays where NaN marks a missing cell (see
:func:`tfbpexplorer.utils.numeric.coerce_numeric_column`). Only positions where
both columns are present contribute, so one sparse dataset does not shrink the
sample used for every other pair.

"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

import numpy as np


def _as_float_array(values: Sequence[Any] | np.ndarray) -> np.ndarray:
    # None becomes NaN under dtype=float
    return np.asarray(values, dtype=float)


def pearson_correlation(
    x_values: Sequence[float | None] | np.ndarray,
    y_values: Sequence[float | None] | np.ndarray,
) -> float:
    """
    Compute the Pearson correlation over pairwise complete observations.

    Sums are accumulated over valid pairs only::

        cov  = sum_xy - sum_x * sum_y / n
        varX = sum_xx - sum_x ** 2 / n
        varY = sum_yy - sum_y ** 2 / n
        r    = cov / sqrt(varX * varY)

    :param x_values: Floats with ``None``/NaN for missing entries.
    :param y_values: Same length as *x_values*. If the lengths differ, positions past
        the shorter sequence count as missing.
    :return: ``r`` clamped to ``[-1, 1]``; 0 when fewer than two valid pairs exist,
        when either variance is not positive, or when the result is not finite.

    """
    x = _as_float_array(x_values)
    y = _as_float_array(y_values)
    length = min(x.shape[0], y.shape[0])
    x = x[:length]
    y = y[:length]

    valid = np.isfinite(x) & np.isfinite(y)
    count = int(valid.sum())
    if count < 2:
        return 0.0

    xv = x[valid]
    yv = y[valid]
    sum_x = float(xv.sum())
    sum_y = float(yv.sum())
    sum_xx = float(np.dot(xv, xv))
    sum_yy = float(np.dot(yv, yv))
    sum_xy = float(np.dot(xv, yv))

    covariance = sum_xy - (sum_x * sum_y) / count
    var_x = sum_xx - (sum_x * sum_x) / count
    var_y = sum_yy - (sum_y * sum_y) / count

    if var_x <= 0 or var_y <= 0:
        return 0.0

    denominator = math.sqrt(var_x * var_y)
    if not denominator or math.isnan(denominator):
        return 0.0

    correlation = covariance / denominator
    if not math.isfinite(correlation):
        return 0.0
    return max(-1.0, min(1.0, correlation))
