"""
Trend Analyzer Module

Ordinary least-squares fits used to summarise brightness and velocity
series, and the two-parameter comet magnitude model

    m = H + 5 log10(delta) + K log10(r) + beta * alpha

where H is the absolute total magnitude, K the activity parameter, delta and
r the geocentric and heliocentric distances (AU) and alpha the phase angle
(degrees).

References:
    Meisel, D. D. & Morris, C. S. (1976). Comet brightness parameters.
"""

import math
from typing import Iterable, Sequence, Tuple

import numpy as np

from config import DEFAULT_ABSOLUTE_MAGNITUDE, DEFAULT_ACTIVITY_PARAMETER, PHASE_COEFFICIENT
from atlas_orbit.errors import InsufficientData
from atlas_orbit.models import BrightnessFit, LinearFit, TrendResult

# |slope| below this (mag/day) counts as flat
STABLE_SLOPE_THRESHOLD = 0.01


def fit_linear(points: Iterable[Tuple[float, float]]) -> LinearFit:
    """
    Closed-form least-squares line through ``points``.

    Args:
        points: (x, y) pairs

    Returns:
        LinearFit with slope, intercept and coefficient of determination

    Raises:
        InsufficientData: fewer than two points, or all x identical
    """
    data = np.asarray(list(points), dtype=float)
    if data.ndim != 2 or data.shape[0] < 2:
        raise InsufficientData(f"Need at least 2 points for a linear fit, got {len(data)}")

    x, y = data[:, 0], data[:, 1]
    x_mean, y_mean = x.mean(), y.mean()
    sxx = float(np.sum((x - x_mean) ** 2))
    if sxx == 0.0:
        raise InsufficientData("All x values are identical; slope is undefined")

    slope = float(np.sum((x - x_mean) * (y - y_mean)) / sxx)
    intercept = float(y_mean - slope * x_mean)

    ss_tot = float(np.sum((y - y_mean) ** 2))
    ss_res = float(np.sum((y - (intercept + slope * x)) ** 2))
    # a flat series is fitted exactly by a flat line
    r_squared = 1.0 if ss_tot == 0.0 else 1.0 - ss_res / ss_tot

    return LinearFit(slope=slope, intercept=intercept, r_squared=r_squared)


def classify_trend(slope: float, threshold: float = STABLE_SLOPE_THRESHOLD) -> str:
    """Magnitudes decrease as an object brightens."""
    if abs(slope) < threshold:
        return 'stable'
    return 'brightening' if slope < 0 else 'dimming'


def analyze_trend(points: Sequence[Tuple[float, float]]) -> TrendResult:
    """Fit, classify and attach a confidence of clamp(r^2, 0, 1)."""
    fit = fit_linear(points)
    return TrendResult(
        trend=classify_trend(fit.slope),
        slope=fit.slope,
        intercept=fit.intercept,
        r_squared=fit.r_squared,
        confidence=min(1.0, max(0.0, fit.r_squared)),
        points=len(points),
    )


def phase_angle(r: float, delta: float, earth_sun: float = 1.0) -> float:
    """Sun-object-Earth angle (degrees) from the three distances (law of cosines)."""
    cos_phase = (r * r + delta * delta - earth_sun * earth_sun) / (2.0 * r * delta)
    return math.degrees(math.acos(max(-1.0, min(1.0, cos_phase))))


def predict_magnitude(r: float, delta: float, phase: float = 0.0,
                      absolute_magnitude: float = DEFAULT_ABSOLUTE_MAGNITUDE,
                      activity_parameter: float = DEFAULT_ACTIVITY_PARAMETER,
                      beta: float = PHASE_COEFFICIENT) -> float:
    return absolute_magnitude + 5.0 * math.log10(delta) + activity_parameter * math.log10(r) + beta * phase


def fit_brightness_model(samples: Sequence[Tuple[float, float, float, float]],
                         beta: float = PHASE_COEFFICIENT) -> BrightnessFit:
    """
    Separate absolute magnitude from the activity parameter.

    Rearranging the magnitude law as m - 5 log(delta) - beta*alpha = H + K log(r)
    makes it linear in log(r).

    Args:
        samples: (magnitude, r, delta, phase_angle_deg) tuples
        beta: Linear phase coefficient (mag/degree)

    Raises:
        InsufficientData: fewer than three samples or no spread in r
    """
    if len(samples) < 3:
        raise InsufficientData(f"Need at least 3 observations to fit H and K, got {len(samples)}")

    reduced = [
        (math.log10(r), magnitude - 5.0 * math.log10(delta) - beta * alpha)
        for magnitude, r, delta, alpha in samples
    ]
    fit = fit_linear(reduced)

    return BrightnessFit(
        absolute_magnitude=fit.intercept,
        activity_parameter=fit.slope,
        r_squared=fit.r_squared,
        points=len(samples),
    )
