"""
Earth Ephemeris Module

Heliocentric position of the Earth, used to turn geocentric RA/Dec + range
into heliocentric coordinates. Positions come from a JPL development
ephemeris loaded through Skyfield; the kernel is loaded lazily on first use so
importing the package never touches the network or the disk.
"""

import logging
import threading
from datetime import datetime
from typing import Tuple

from skyfield.api import load

from config import OBLIQUITY_J2000_DEG
from atlas_orbit.errors import NetworkError
from atlas_orbit.frame_math import equatorial_to_ecliptic, radec_to_unit_vector
from atlas_orbit.models import TrajectoryPoint, ensure_utc

logger = logging.getLogger(__name__)


class EarthEphemeris:
    """
    Earth heliocentric equatorial (ICRF) position from a Skyfield kernel.

    Args:
        ephemeris_file: Kernel name or path understood by ``skyfield.api.load``
    """

    def __init__(self, ephemeris_file: str = 'de421.bsp'):
        self.ephemeris_file = ephemeris_file
        self._lock = threading.Lock()
        self._timescale = None
        self._sun = None
        self._earth = None

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._earth is not None:
                return
            logger.info(f"Loading planetary ephemeris {self.ephemeris_file}")
            try:
                planets = load(self.ephemeris_file)
            except OSError as e:
                # first use downloads the kernel
                raise NetworkError(f"Cannot load ephemeris {self.ephemeris_file}: {e}",
                                   source='earth_ephemeris') from e
            self._timescale = load.timescale()
            self._sun = planets['sun']
            self._earth = planets['earth']

    def heliocentric_equatorial(self, instant: datetime) -> Tuple[float, float, float]:
        """Earth position relative to the Sun (AU, ICRF axes)."""
        self._ensure_loaded()
        t = self._timescale.from_datetime(ensure_utc(instant))
        x, y, z = (self._earth - self._sun).at(t).position.au
        return float(x), float(y), float(z)

    def heliocentric_ecliptic(self, instant: datetime) -> Tuple[float, float, float]:
        """Earth position relative to the Sun (AU, ecliptic J2000 axes)."""
        return equatorial_to_ecliptic(*self.heliocentric_equatorial(instant))


def radec_to_heliocentric(ra: float, dec: float, geocentric_distance: float,
                          instant: datetime, earth: EarthEphemeris,
                          obliquity: float = OBLIQUITY_J2000_DEG) -> TrajectoryPoint:
    """
    Convert a geocentric sky position into a heliocentric ecliptic point.

    Args:
        ra: Right ascension (degrees)
        dec: Declination (degrees)
        geocentric_distance: Earth-object range (AU)
        instant: Observation time
        earth: Source of the Earth heliocentric vector
        obliquity: Obliquity used for the equatorial -> ecliptic rotation

    Returns:
        TrajectoryPoint in heliocentric ecliptic J2000 coordinates (AU)
    """
    if geocentric_distance <= 0:
        raise ValueError(f"Geocentric distance must be positive, got {geocentric_distance}")

    ux, uy, uz = radec_to_unit_vector(ra, dec)
    ex, ey, ez = earth.heliocentric_equatorial(instant)

    hx = ex + ux * geocentric_distance
    hy = ey + uy * geocentric_distance
    hz = ez + uz * geocentric_distance

    x, y, z = equatorial_to_ecliptic(hx, hy, hz, obliquity)
    return TrajectoryPoint.from_xyz(instant, x, y, z)

