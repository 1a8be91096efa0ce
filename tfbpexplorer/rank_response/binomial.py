"""
Binomial distribution primitives used for rank response confidence bands.

These answer one question: given a random-expectation probability ``p`` and the
``n`` most strongly bound genes, how many responsive genes would a random ranking
produce? Sample sizes are small (at most a few hundred bins) so the inverse CDF is a
linear scan. None of these functions raise for degenerate probabilities.

"""

from __future__ import annotations

import math

_LOG_FACTORIAL_TABLE: list[float] = [0.0]


def log_factorial(n: int) -> float:
    """
    Return ``ln(n!)`` from a table that grows on demand.

    :raises ValueError: If *n* is negative.

    """
    if n < 0:
        raise ValueError("n must be non-negative")
    for i in range(len(_LOG_FACTORIAL_TABLE), n + 1):
        _LOG_FACTORIAL_TABLE.append(_LOG_FACTORIAL_TABLE[i - 1] + math.log(i))
    return _LOG_FACTORIAL_TABLE[n]


def log_binomial_coefficient(n: int, k: int) -> float:
    """``ln C(n, k)``; ``-inf`` outside ``0 <= k <= n``."""
    if k < 0 or k > n:
        return float("-inf")
    return log_factorial(n) - log_factorial(k) - log_factorial(n - k)


def binomial_pmf(k: int, n: int, p: float) -> float:
    if p <= 0:
        return 1.0 if k == 0 else 0.0
    if p >= 1:
        return 1.0 if k == n else 0.0
    if k < 0 or k > n:
        return 0.0
    log_prob = (
        log_binomial_coefficient(n, k) + k * math.log(p) + (n - k) * math.log1p(-p)
    )
    return math.exp(log_prob)


def binomial_cdf(k: int, n: int, p: float) -> float:
    """``P(X <= k)`` as a running sum of the PMF, clamped to at most 1."""
    cumulative = 0.0
    for i in range(0, k + 1):
        cumulative += binomial_pmf(i, n, p)
    return min(1.0, cumulative)


def binomial_inverse_cdf(target: float, n: int, p: float) -> int:
    """Smallest ``k`` with ``CDF(k) >= target``."""
    if target <= 0:
        return 0
    if target >= 1:
        return n

    cumulative = 0.0
    for k in range(0, n + 1):
        cumulative = min(1.0, cumulative + binomial_pmf(k, n, p))
        if cumulative >= target:
            return k
    return n


def binomial_confidence_interval(
    trials: int, probability: float, alpha: float = 0.05
) -> tuple[float, float]:
    """
    Two-sided ``1 - alpha`` interval for the responsive fraction among *trials*.

    :param trials: Number of top-ranked genes considered (``n``).
    :param probability: Random expectation of responsiveness (``p``).
    :param alpha: Significance level; 0.05 gives a 95% interval.
    :return: ``(lower, upper)`` as fractions of *trials*; ``(0, 0)`` for no trials.

    """
    if trials <= 0:
        return 0.0, 0.0
    lower = binomial_inverse_cdf(alpha / 2, trials, probability) / trials
    upper = binomial_inverse_cdf(1 - alpha / 2, trials, probability) / trials
    return lower, upper
