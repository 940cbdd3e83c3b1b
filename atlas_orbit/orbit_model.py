"""
Orbit Model Module

Two-body (Keplerian) propagation of hyperbolic heliocentric orbital elements.
The Sun is the only attracting body: no planetary perturbations and no
non-gravitational (outgassing) acceleration. For an interstellar object near
perihelion this is the reference solution against which measured positions
are compared.

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.).
    Danby, J. M. A. (1988). Fundamentals of Celestial Mechanics (2nd ed.).
"""

import bisect
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from config import GAUSSIAN_GRAVITATIONAL_CONSTANT, SECONDS_PER_DAY
from atlas_orbit.errors import InvalidOrbit
from atlas_orbit.frame_math import (
    hyperbolic_seed,
    orbital_radius,
    perifocal_to_ecliptic_matrix,
    rotate_orbital_plane_to_ecliptic,
    solve_hyperbolic_kepler_checked,
    true_anomaly_from_hyperbolic,
)
from atlas_orbit.models import OrbitalElements, StateVector, TrajectoryPoint, ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Heliocentric gravitational parameter in AU^3 / day^2
MU_SUN = GAUSSIAN_GRAVITATIONAL_CONSTANT ** 2


def _require_hyperbolic(elements: OrbitalElements) -> None:
    if elements.eccentricity <= 1.0:
        raise InvalidOrbit(
            f"Hyperbolic model requires e > 1, got e={elements.eccentricity} ({elements.source})"
        )


def _true_anomaly_at(elements: OrbitalElements, instant: datetime) -> float:
    e = elements.eccentricity
    q = elements.perihelion_distance

    dt_days = (ensure_utc(instant) - elements.perihelion_time).total_seconds() / SECONDS_PER_DAY

    a = q / (e - 1.0)
    n = GAUSSIAN_GRAVITATIONAL_CONSTANT / a ** 1.5
    M = n * dt_days

    solution = solve_hyperbolic_kepler_checked(M, e, H0=hyperbolic_seed(M, e))
    if not solution.converged:
        logger.warning(f"Kepler solver hit iteration cap at {instant.isoformat()} (M={M:.6f}), using last iterate")

    return true_anomaly_from_hyperbolic(solution.H, e)


def position_at(elements: OrbitalElements, instant: datetime) -> TrajectoryPoint:
    """
    Heliocentric ecliptic position of the object at ``instant``.

    Args:
        elements: Hyperbolic orbital elements (e > 1)
        instant: Time of interest (naive datetimes are taken as UTC)

    Returns:
        TrajectoryPoint in AU

    Raises:
        InvalidOrbit: if the elements are not hyperbolic
    """
    _require_hyperbolic(elements)

    nu = _true_anomaly_at(elements, instant)
    r = orbital_radius(elements.perihelion_distance, elements.eccentricity, nu)

    x, y, z = rotate_orbital_plane_to_ecliptic(
        r * math.cos(nu), r * math.sin(nu),
        elements.argument_of_perihelion,
        elements.longitude_of_ascending_node,
        elements.inclination,
    )
    return TrajectoryPoint.from_xyz(ensure_utc(instant), x, y, z)


def velocity_at(elements: OrbitalElements, instant: datetime) -> StateVector:
    """
    Heliocentric ecliptic state vector (AU, AU/day) from the vis-viva
    perifocal velocity components.
    """
    _require_hyperbolic(elements)

    e = elements.eccentricity
    q = elements.perihelion_distance
    nu = _true_anomaly_at(elements, instant)
    r = orbital_radius(q, e, nu)

    p = q * (1.0 + e)
    v_scale = math.sqrt(MU_SUN / p)

    matrix = perifocal_to_ecliptic_matrix(
        elements.argument_of_perihelion,
        elements.longitude_of_ascending_node,
        elements.inclination,
    )
    position = matrix[:, :2] @ [r * math.cos(nu), r * math.sin(nu)]
    velocity = matrix[:, :2] @ [-v_scale * math.sin(nu), v_scale * (e + math.cos(nu))]

    return StateVector(
        instant=ensure_utc(instant),
        x=float(position[0]), y=float(position[1]), z=float(position[2]),
        vx=float(velocity[0]), vy=float(velocity[1]), vz=float(velocity[2]),
    )


def trajectory_between(elements: OrbitalElements, start: datetime, end: datetime,
                       step_days: float) -> List[TrajectoryPoint]:
    """
    Sample the orbit at a fixed cadence from ``start`` to ``end``.

    The first sample is exactly ``start``; the last is the final step that
    does not pass ``end``. Samples are strictly increasing in time.
    """
    if step_days <= 0:
        raise ValueError(f"step_days must be positive, got {step_days}")
    start = ensure_utc(start)
    end = ensure_utc(end)
    if end < start:
        raise ValueError("end must not precede start")

    span_days = (end - start).total_seconds() / SECONDS_PER_DAY
    # tolerate float error so an exact multiple still includes ``end``
    steps = int(math.floor(span_days / step_days + 1e-9))

    return [
        position_at(elements, start + timedelta(days=k * step_days))
        for k in range(steps + 1)
    ]


def predicted_trail(elements: OrbitalElements, days: float, now: Optional[datetime] = None,
                    step_days: float = 2.0) -> List[TrajectoryPoint]:
    """Trail centred on ``now`` covering days/2 before and after it."""
    now = ensure_utc(now) if now else utcnow()
    start = now - timedelta(days=days / 2.0)
    steps = int(math.floor(days / step_days))
    return trajectory_between(elements, start, start + timedelta(days=steps * step_days), step_days)


def current_point(trail: Sequence[TrajectoryPoint], now: Optional[datetime] = None) -> TrajectoryPoint:
    """Trail sample nearest to ``now``; no interpolation. Ties go to the earlier sample."""
    if not trail:
        raise ValueError("Cannot select a current point from an empty trail")
    now = ensure_utc(now) if now else utcnow()
    return min(trail, key=lambda point: abs((point.instant - now).total_seconds()))


def interpolated_point(trail: Sequence[TrajectoryPoint], now: Optional[datetime] = None) -> TrajectoryPoint:
    """
    Position at ``now`` by linear interpolation between the bracketing samples.
    Outside the trail the nearest end point is returned unchanged.
    """
    if not trail:
        raise ValueError("Cannot interpolate an empty trail")
    now = ensure_utc(now) if now else utcnow()

    instants = [point.instant for point in trail]
    if now <= instants[0]:
        return trail[0]
    if now >= instants[-1]:
        return trail[-1]

    index = bisect.bisect_right(instants, now)
    before, after = trail[index - 1], trail[index]
    span = (after.instant - before.instant).total_seconds()
    if span == 0:
        return before
    f = (now - before.instant).total_seconds() / span

    return TrajectoryPoint.from_xyz(
        now,
        before.x + f * (after.x - before.x),
        before.y + f * (after.y - before.y),
        before.z + f * (after.z - before.z),
    )
