"""
Frame Math Module

Pure functions for hyperbolic orbit geometry and reference-frame conversion.
Every public function takes and returns angles in degrees, except the anomaly
helpers (M, H, nu) which work in radians as in the textbook equations.

Frames:
    - Orbital plane: x toward perihelion, y along the direction of motion
    - Heliocentric ecliptic J2000: x toward the vernal equinox, z toward the
      north ecliptic pole
    - Equatorial (ICRF): z toward the north celestial pole

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.),
    Algorithm 4 (KepEqtnH) and Section 3.6.
    Meeus, J. (1998). Astronomical Algorithms (2nd ed.), Chapter 13.
"""

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional, Tuple

import numpy as np

from config import ARCSEC_PER_RADIAN, OBLIQUITY_J2000_DEG

logger = logging.getLogger(__name__)

KEPLER_TOLERANCE = 1e-10
KEPLER_MAX_ITERATIONS = 20
MAX_SEED = 700.0


class KeplerSolution(NamedTuple):
    """Hyperbolic anomaly together with solver diagnostics."""
    H: float
    iterations: int
    converged: bool


def normalize_angle(degrees: float) -> float:
    """Wrap an angle into [0, 360)."""
    wrapped = math.fmod(degrees, 360.0)
    if wrapped < 0:
        wrapped += 360.0
    # fmod of a tiny negative value can round up to exactly 360
    return 0.0 if wrapped >= 360.0 else wrapped


def solve_hyperbolic_kepler_checked(M: float, e: float,
                                    tol: float = KEPLER_TOLERANCE,
                                    max_iter: int = KEPLER_MAX_ITERATIONS,
                                    H0: Optional[float] = None) -> KeplerSolution:
    """
    Solve Kepler's equation for hyperbolic orbits, M = e sinh(H) - H.

    Newton-Raphson seeded with H0 = M unless another seed is given. Stops
    when the Newton step is smaller than ``tol`` or after ``max_iter``
    iterations.

    Args:
        M: Hyperbolic mean anomaly (radians)
        e: Eccentricity (> 1)
        tol: Convergence tolerance on |dH|
        max_iter: Iteration cap
        H0: Starting iterate (defaults to M)

    Returns:
        KeplerSolution with the last iterate, the iterations used and whether
        the tolerance was met
    """
    # sinh overflows a double beyond ~710
    H = max(-MAX_SEED, min(MAX_SEED, M if H0 is None else H0))
    for iteration in range(1, max_iter + 1):
        f = e * math.sinh(H) - H - M
        f_prime = e * math.cosh(H) - 1.0
        delta = f / f_prime
        H -= delta
        if abs(delta) < tol:
            return KeplerSolution(H, iteration, True)

    logger.debug(f"Hyperbolic Kepler solver did not converge: M={M}, e={e}, H={H}")
    return KeplerSolution(H, max_iter, False)


def hyperbolic_seed(M: float, e: float) -> float:
    """
    Starting iterate asinh(M/e) for Newton on the hyperbolic Kepler equation.

    It lies left of the root for M > 0 (right for M < 0), where the
    iteration converges monotonically after one step, and stays finite for
    mean anomalies far beyond the range where sinh(M) overflows.
    """
    return math.asinh(M / e)


def solve_hyperbolic_kepler(M: float, e: float) -> float:
    """
    Solve M = e sinh(H) - H for the hyperbolic anomaly H (radians).

    Never raises: if the iteration cap is hit the last iterate is returned.
    Use solve_hyperbolic_kepler_checked to inspect convergence.
    """
    return solve_hyperbolic_kepler_checked(M, e).H


def true_anomaly_from_hyperbolic(H: float, e: float) -> float:
    """nu = 2 atan( sqrt((e+1)/(e-1)) tanh(H/2) ), radians."""
    return 2.0 * math.atan(math.sqrt((e + 1.0) / (e - 1.0)) * math.tanh(H / 2.0))


def orbital_radius(q: float, e: float, nu: float) -> float:
    """Conic radius r = q(1+e) / (1 + e cos nu) in the units of q."""
    return q * (1.0 + e) / (1.0 + e * math.cos(nu))


def perifocal_to_ecliptic_matrix(omega: float, node: float, inclination: float) -> np.ndarray:
    """
    Euler (Omega, i, omega) rotation matrix from the orbital plane to the
    heliocentric ecliptic frame. Angles in degrees.

    Only the first two columns are needed for in-plane vectors; the full
    matrix is returned so it can be applied with a single dot product.
    """
    w = math.radians(omega)
    O = math.radians(node)
    i = math.radians(inclination)

    cw, sw = math.cos(w), math.sin(w)
    cO, sO = math.cos(O), math.sin(O)
    ci, si = math.cos(i), math.sin(i)

    return np.array([
        [cO * cw - sO * sw * ci, -cO * sw - sO * cw * ci, sO * si],
        [sO * cw + cO * sw * ci, -sO * sw + cO * cw * ci, -cO * si],
        [sw * si, cw * si, ci],
    ])


def rotate_orbital_plane_to_ecliptic(x_orb: float, y_orb: float,
                                     omega: float, node: float,
                                     inclination: float) -> Tuple[float, float, float]:
    """
    Rotate an orbital-plane vector into heliocentric ecliptic coordinates.

    Args:
        x_orb: Component toward perihelion
        y_orb: In-plane component 90 degrees ahead of perihelion
        omega: Argument of perihelion (degrees)
        node: Longitude of ascending node (degrees)
        inclination: Inclination (degrees)

    Returns:
        (x, y, z) in the ecliptic frame, same units as the input
    """
    matrix = perifocal_to_ecliptic_matrix(omega, node, inclination)
    x, y, z = matrix[:, :2] @ np.array([x_orb, y_orb])
    return float(x), float(y), float(z)


def angular_separation(ra1: float, dec1: float, ra2: float, dec2: float) -> float:
    """
    Great-circle separation between two sky positions (degrees).

    Spherical law of cosines; the cosine is clamped to [-1, 1] so rounding
    never produces NaN for coincident or antipodal points.
    """
    ra1_r, dec1_r = math.radians(ra1), math.radians(dec1)
    ra2_r, dec2_r = math.radians(ra2), math.radians(dec2)

    cos_sep = (math.sin(dec1_r) * math.sin(dec2_r) +
               math.cos(dec1_r) * math.cos(dec2_r) * math.cos(ra1_r - ra2_r))
    return math.degrees(math.acos(max(-1.0, min(1.0, cos_sep))))


def angular_to_linear_distance(arcsec: float, distance: float) -> float:
    """Small-angle conversion of an angle (arcsec) at ``distance`` into a length."""
    return distance * (arcsec / ARCSEC_PER_RADIAN)


def equatorial_to_ecliptic(x: float, y: float, z: float,
                           obliquity: float = OBLIQUITY_J2000_DEG) -> Tuple[float, float, float]:
    """Rotate an equatorial vector about +x by the obliquity."""
    eps = math.radians(obliquity)
    ce, se = math.cos(eps), math.sin(eps)
    return x, y * ce + z * se, -y * se + z * ce


def ecliptic_to_equatorial(x: float, y: float, z: float,
                           obliquity: float = OBLIQUITY_J2000_DEG) -> Tuple[float, float, float]:
    eps = math.radians(obliquity)
    ce, se = math.cos(eps), math.sin(eps)
    return x, y * ce - z * se, y * se + z * ce


def radec_to_unit_vector(ra: float, dec: float) -> Tuple[float, float, float]:
    """Equatorial unit vector for a sky position given in degrees."""
    ra_r, dec_r = math.radians(ra), math.radians(dec)
    return (math.cos(dec_r) * math.cos(ra_r),
            math.cos(dec_r) * math.sin(ra_r),
            math.sin(dec_r))


def vector_to_radec(x: float, y: float, z: float) -> Tuple[float, float]:
    """Inverse of radec_to_unit_vector for a vector of any length."""
    norm = math.sqrt(x * x + y * y + z * z)
    if norm == 0:
        raise ValueError("Cannot take the direction of a zero vector")
    dec = math.degrees(math.asin(max(-1.0, min(1.0, z / norm))))
    ra = normalize_angle(math.degrees(math.atan2(y, x)))
    return ra, dec


_RA_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*h\s*(\d+(?:\.\d+)?)\s*m\s*(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)
_DEC_PATTERN = re.compile(r"([+\-−]?)\s*(\d+(?:\.\d+)?)\s*°\s*(\d+(?:\.\d+)?)\s*['′]\s*(\d+(?:\.\d+)?)\s*(?:\"|″|'')?")


def parse_sexagesimal_ra(text: str) -> float:
    """'14h 15m 52s' -> degrees."""
    match = _RA_PATTERN.search(text)
    if not match:
        raise ValueError(f"Unrecognised right ascension: {text!r}")
    hours, minutes, seconds = (float(g) for g in match.groups())
    return (hours + minutes / 60.0 + seconds / 3600.0) * 15.0


def parse_sexagesimal_dec(text: str) -> float:
    """'-10° 16' 24"' -> degrees."""
    match = _DEC_PATTERN.search(text)
    if not match:
        raise ValueError(f"Unrecognised declination: {text!r}")
    sign, degrees, minutes, seconds = match.groups()
    value = float(degrees) + float(minutes) / 60.0 + float(seconds) / 3600.0
    return -value if sign in ('-', '−') else value


J2000_JD = 2451545.0
J2000_EPOCH = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def julian_date_to_datetime(jd: float) -> datetime:
    """Julian Date -> aware UTC datetime (time scales not distinguished)."""
    return J2000_EPOCH + timedelta(days=jd - J2000_JD)


def datetime_to_julian_date(instant: datetime) -> float:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return J2000_JD + (instant - J2000_EPOCH).total_seconds() / 86400.0
