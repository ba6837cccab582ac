"""Significance testing for conversion experiments.

Two-proportion z-test with a closed-form normal CDF
(Abramowitz & Stegun, formula 26.2.17). Pure functions, no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Two-tailed threshold below which a difference is declared significant
SIGNIFICANCE_LEVEL = 0.05

# Beyond this |x| the CDF is 0 or 1 to double precision
CDF_SATURATION = 8.0

_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911


@dataclass(frozen=True)
class ZTestResult:
    """Result of a two-proportion z-test."""

    z_score: float
    p_value: float

    @property
    def significant(self) -> bool:
        return is_significant(self.p_value)


NOT_SIGNIFICANT = ZTestResult(z_score=0.0, p_value=1.0)


def normal_cdf(x: float) -> float:
    """Standard normal CDF.

    Args:
        x: Point at which to evaluate.

    Returns:
        P(Z <= x) for Z ~ N(0, 1), in [0, 1].
    """
    if x < -CDF_SATURATION:
        return 0.0
    if x > CDF_SATURATION:
        return 1.0

    sign = -1.0 if x < 0 else 1.0
    abs_x = abs(x)
    t = 1.0 / (1.0 + _P * abs_x)
    poly = ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t
    y = 1.0 - poly * math.exp(-abs_x * abs_x / 2.0)

    return 0.5 * (1.0 + sign * y)


def z_test_two_proportions(n1: int, x1: int, n2: int, x2: int) -> ZTestResult:
    """Two-proportion z-test with pooled variance.

    Args:
        n1: Observations in group 1.
        x1: Successes in group 1.
        n2: Observations in group 2.
        x2: Successes in group 2.

    Returns:
        ZTestResult with z-score (positive when group 1 converts better)
        and two-tailed p-value. Degenerate inputs (empty group, zero pooled
        variance) return z=0, p=1 so no winner is ever declared from them.
    """
    if n1 <= 0 or n2 <= 0:
        return NOT_SIGNIFICANT

    p_pool = (x1 + x2) / (n1 + n2)
    se = math.sqrt(p_pool * (1 - p_pool) * (1 / n1 + 1 / n2))

    if se == 0:
        return NOT_SIGNIFICANT

    z_score = (x1 / n1 - x2 / n2) / se
    p_value = 2 * (1 - normal_cdf(abs(z_score)))

    return ZTestResult(z_score=z_score, p_value=p_value)


def is_significant(p_value: float) -> bool:
    """True when p_value is strictly below SIGNIFICANCE_LEVEL."""
    return p_value < SIGNIFICANCE_LEVEL


def completion_rate_percent(views: int, completions: int) -> float:
    """Completion rate as a percentage rounded to 2 decimals; 0 when no views."""
    if views <= 0:
        return 0.0
    return round(completions / views * 10000) / 100
