"""
3I/ATLAS Orbit Demonstration

This script demonstrates the offline capabilities of the atlas_orbit package:
- Hyperbolic orbit model from the MPEC 2025-N12 elements
- Predicted heliocentric trajectory around perihelion
- Heliocentric speed from the analytic two-body velocity
- Comet magnitude law along the predicted path
- Visualization of the predicted trajectory

No network access is needed; the brightness section uses a circular 1 AU
Earth orbit instead of the planetary ephemeris.

Usage:
    python demo.py [--days N] [--plot] [--verbose]

Arguments:
    --days: Span of the predicted trail, centred on perihelion (default 120)
    --plot: Save a plot of the trajectory to atlas_trajectory.png
    --verbose: Enable debug logging

References:
    Minor Planet Electronic Circular 2025-N12 (2025).
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications, 4th ed.
"""

import argparse
import logging
import math
from datetime import timedelta
from typing import List

import matplotlib.pyplot as plt
import numpy as np

from config import AU_KM, OBLIQUITY_J2000_DEG
from logging_config import configure_logging, get_logger
from atlas_orbit.models import OrbitalElements, TrajectoryPoint
from atlas_orbit.orbit_model import predicted_trail, velocity_at
from atlas_orbit.reconciliation import reference_elements
from atlas_orbit.trend import phase_angle, predict_magnitude

logger = get_logger(__name__)


def demonstrate_elements(elements: OrbitalElements) -> None:
    """
    Log the element set and the quantities derived from it.

    Parameters
    ----------
    elements : OrbitalElements
        Hyperbolic element set
    """
    logger.info(f"Element source: {elements.source}")
    logger.info(f"Eccentricity: {elements.eccentricity:.7f}")
    logger.info(f"Perihelion distance: {elements.perihelion_distance:.7f} AU")
    logger.info(f"Inclination: {elements.inclination:.5f} degrees")
    logger.info(f"Argument of perihelion: {elements.argument_of_perihelion:.5f} degrees")
    logger.info(f"Longitude of ascending node: {elements.longitude_of_ascending_node:.5f} degrees")
    logger.info(f"Perihelion time: {elements.perihelion_time.isoformat()}")
    logger.info(f"Semi-major axis: {elements.semi_major_axis:.5f} AU")

    # hyperbolic excess speed v_inf = sqrt(mu / |a|)
    v_inf = velocity_at(elements, elements.perihelion_time + timedelta(days=20 * 365.25))
    logger.info(f"Speed 20 years after perihelion: {v_inf.speed_kmps:.2f} km/s")


def demonstrate_trajectory(elements: OrbitalElements, days: int) -> List[TrajectoryPoint]:
    """
    Propagate the trail around perihelion and log a summary.

    Parameters
    ----------
    elements : OrbitalElements
        Hyperbolic element set
    days : int
        Total span of the trail in days

    Returns
    -------
    list of TrajectoryPoint
        Predicted trail
    """
    trail = predicted_trail(elements, days, now=elements.perihelion_time)
    logger.info(f"Predicted {len(trail)} points over {days} days")

    closest = min(trail, key=lambda p: p.distance_from_sun)
    logger.info(
        f"Closest sample: {closest.instant.date()} r={closest.distance_from_sun:.4f} AU "
        f"({closest.distance_from_sun * AU_KM:,.0f} km)"
    )

    for point in trail[:: max(1, len(trail) // 6)]:
        speed = velocity_at(elements, point.instant).speed_kmps
        logger.info(
            f"{point.instant.date()}  x={point.x:+.4f} y={point.y:+.4f} z={point.z:+.4f} AU  "
            f"r={point.distance_from_sun:.4f} AU  v={speed:.2f} km/s"
        )
    return trail


def demonstrate_brightness(trail: List[TrajectoryPoint]) -> np.ndarray:
    """
    Apply the magnitude law along the trail with a circular Earth orbit.

    Parameters
    ----------
    trail : list of TrajectoryPoint
        Predicted trail

    Returns
    -------
    ndarray
        Predicted total magnitude per trail point
    """
    perihelion = min(trail, key=lambda p: p.distance_from_sun).instant
    magnitudes = []
    for point in trail:
        # Earth heliocentric longitude is 180 deg at the March equinox
        days_from_equinox = (point.instant - perihelion).total_seconds() / 86400.0 + 223.0
        longitude = 2.0 * math.pi * days_from_equinox / 365.25 + math.pi
        earth = np.array([math.cos(longitude), math.sin(longitude), 0.0])
        delta = float(np.linalg.norm(np.array([point.x, point.y, point.z]) - earth))
        alpha = phase_angle(point.distance_from_sun, delta)
        magnitudes.append(predict_magnitude(point.distance_from_sun, delta, alpha))

    magnitudes = np.asarray(magnitudes)
    brightest = int(np.argmin(magnitudes))
    logger.info(
        f"Brightest predicted magnitude {magnitudes[brightest]:.1f} on {trail[brightest].instant.date()}"
    )
    return magnitudes


def visualize_trajectory(trail: List[TrajectoryPoint], magnitudes: np.ndarray,
                         output_file: str = "atlas_trajectory.png") -> None:
    """
    Plot the trail in the ecliptic plane and the magnitude curve.

    Parameters
    ----------
    trail : list of TrajectoryPoint
        Predicted trail
    magnitudes : ndarray
        Predicted magnitude per point
    output_file : str
        Path of the saved figure
    """
    xyz = np.array([[p.x, p.y, p.z] for p in trail])
    days = np.array([(p.instant - trail[0].instant).total_seconds() / 86400.0 for p in trail])

    fig = plt.figure(figsize=(16, 7))

    ax1 = fig.add_subplot(121)
    ax1.plot(xyz[:, 0], xyz[:, 1], color="crimson", linewidth=2, label="3I/ATLAS (predicted)")
    theta = np.linspace(0, 2 * np.pi, 361)
    ax1.plot(np.cos(theta), np.sin(theta), color="steelblue", linewidth=1, alpha=0.7, label="Earth orbit")
    ax1.scatter([0], [0], color="orange", s=80, label="Sun")
    ax1.set_xlabel("X (AU, ecliptic J2000)")
    ax1.set_ylabel("Y (AU, ecliptic J2000)")
    ax1.set_title(f"Predicted Trajectory (obliquity {OBLIQUITY_J2000_DEG:.4f} deg)")
    ax1.set_aspect("equal")
    ax1.legend(loc="upper left")
    ax1.grid(True, alpha=0.3)

    ax2 = fig.add_subplot(122)
    ax2.plot(days, magnitudes, color="navy", linewidth=1.5)
    ax2.invert_yaxis()
    ax2.set_xlabel("Time (days)")
    ax2.set_ylabel("Total magnitude")
    ax2.set_title("Predicted Brightness")
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_file, dpi=150, bbox_inches="tight")
    logger.info(f"Saved trajectory plot to {output_file}")
    plt.close()


def main() -> None:
    """Main demonstration entry point."""
    parser = argparse.ArgumentParser(description="3I/ATLAS Orbit Demonstration")
    parser.add_argument("--days", type=int, default=120, help="Span of the predicted trail in days")
    parser.add_argument("--plot", action="store_true", help="Save a trajectory plot")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        configure_logging(level=logging.DEBUG)

    logger.info("3I/ATLAS Orbit Demonstration")
    logger.info("=" * 60)

    elements = reference_elements()
    demonstrate_elements(elements)

    logger.info("")
    trail = demonstrate_trajectory(elements, args.days)

    logger.info("")
    magnitudes = demonstrate_brightness(trail)

    if args.plot:
        visualize_trajectory(trail, magnitudes)

    logger.info("=" * 60)
    logger.info("Demonstration complete")


if __name__ == "__main__":
    main()
