"""Confidence intervals for pass rates and ability estimates.

Two constructors share this module:

- ``wilson_interval`` bounds a binomial proportion (e.g. accuracy on hard
  items). It stays inside [0, 1] and behaves sensibly at small n, where the
  normal approximation does not.
- ``ability_interval`` bounds a continuous theta estimate as
  ``theta +/- z * SE``. It is deliberately left unclamped so its raw width
  stays inspectable; callers clamp with ``clamp_interval``.
"""
import math
from numbers import Integral

from scipy.stats import norm

from secplus_tutor.models import ConfidenceInterval, InvalidInputError

# Margin cut-offs for the reliability labels, widest last
_ABILITY_BANDS = ((0.3, "Very precise"), (0.5, "Precise"), (0.8, "Moderate"), (1.2, "Uncertain"))
_PROPORTION_BANDS = ((0.05, "Very precise"), (0.10, "Precise"), (0.15, "Moderate"), (0.25, "Uncertain"))


def z_critical(confidence: float) -> float:
    """Two-sided standard normal critical value, e.g. 1.96 for 0.95."""
    if not 0 < confidence < 1:
        raise InvalidInputError(f"confidence must lie in (0, 1), got {confidence}")
    return float(norm.ppf(0.5 + confidence / 2))


def wilson_interval(successes: int, total: int, confidence: float = 0.95) -> ConfidenceInterval:
    """Wilson score interval for ``successes`` out of ``total`` trials."""
    for name, value in (("successes", successes), ("total", total)):
        if isinstance(value, bool) or not isinstance(value, Integral):
            raise InvalidInputError(f"{name} must be an integer, got {value!r}")
        if value < 0:
            raise InvalidInputError(f"{name} cannot be negative, got {value}")
    if successes > total:
        raise InvalidInputError(f"successes ({successes}) exceed total ({total})")
    z = z_critical(confidence)
    if total == 0:
        return ConfidenceInterval(0.0, 1.0)

    p = successes / total
    z2 = z * z
    denominator = 1 + z2 / total
    center = (p + z2 / (2 * total)) / denominator
    margin = (z / denominator) * math.sqrt(p * (1 - p) / total + z2 / (4 * total * total))
    # Rounding can leave the bound a hair past p at 0 or n successes
    lower = min(max(0.0, center - margin), p)
    upper = max(min(1.0, center + margin), p)
    return ConfidenceInterval(lower, upper)


def ability_interval(theta: float, standard_error: float, confidence: float = 0.95) -> ConfidenceInterval:
    """Normal-approximation interval around an ability estimate. Not clamped."""
    if not math.isfinite(theta):
        raise InvalidInputError(f"theta must be finite, got {theta}")
    if not (math.isfinite(standard_error) and standard_error > 0):
        raise InvalidInputError(f"standard_error must be positive and finite, got {standard_error}")
    margin = z_critical(confidence) * standard_error
    return ConfidenceInterval(theta - margin, theta + margin)


def clamp_interval(interval: ConfidenceInterval, lower: float, upper: float) -> ConfidenceInterval:
    if lower > upper:
        raise InvalidInputError(f"clamp range is empty: [{lower}, {upper}]")
    return ConfidenceInterval(
        min(max(interval.lower, lower), upper),
        min(max(interval.upper, lower), upper),
    )


def reliability_label(margin: float, kind: str = "ability") -> str:
    """Describe how precise an estimate is from its interval half-width.

    ``kind`` is ``"ability"`` for theta margins or ``"proportion"`` for
    margins on the [0, 1] scale.
    """
    if kind == "ability":
        bands = _ABILITY_BANDS
    elif kind == "proportion":
        bands = _PROPORTION_BANDS
    else:
        raise InvalidInputError(f"Unknown interval kind {kind!r}")
    for cutoff, label in bands:
        if margin <= cutoff:
            return label
    return "Very uncertain"


def format_interval(interval: ConfidenceInterval, decimals: int = 2, brackets: bool = False) -> str:
    lower = f"{interval.lower:.{decimals}f}"
    upper = f"{interval.upper:.{decimals}f}"
    return f"[{lower}, {upper}]" if brackets else f"{lower} to {upper}"
