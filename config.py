"""
ATLAS Orbit Engine Configuration and Constants

This module contains physical constants, the fallback orbital elements and the
environment-driven service configuration used throughout the project.

Constants:
    Gaussian gravitational constant and astronomical unit as adopted by the IAU
    (2012 Resolution B2), and the J2000 mean obliquity of the ecliptic.

Fallback Orbital Elements:
    Hardcoded 3I/ATLAS (C/2025 N1) elements from MPEC 2025-N12, used when the
    Minor Planet Center elements file cannot be fetched.

    IMPORTANT: Update these elements when a newer MPEC is published.
    - The arc at publication was only a few weeks long
    - Non-gravitational acceleration near perihelion degrades them quickly

    Current element epoch: 2025-07-18
    Next recommended update: after perihelion (2025-10-29)

    Sources for updated elements:
    - minorplanetcenter.net (Extended_Files/cometels.json.gz)
    - JPL Small-Body Database

Environment:
    EngineConfig reads every runtime setting from the environment so the same
    code runs unchanged in tests, locally and behind a WSGI server.

References:
    Minor Planet Electronic Circular 2025-N12 (2025).
    Standish, E. M. (1998). JPL Planetary and Lunar Ephemerides, DE405/LE405.
"""

import os
from typing import Dict, Any

# Astronomical constants (IAU 2012)
GAUSSIAN_GRAVITATIONAL_CONSTANT: float = 0.01720209895  # k (AU^1.5 / day)
AU_KM: float = 149597870.7  # Astronomical unit (km)
SECONDS_PER_DAY: float = 86400.0
AU_PER_DAY_TO_KM_PER_S: float = AU_KM / SECONDS_PER_DAY
OBLIQUITY_J2000_DEG: float = 23.4392811  # Mean obliquity of the ecliptic at J2000
ARCSEC_PER_RADIAN: float = 206264.806247

# 3I/ATLAS elements from MPEC 2025-N12
# Element epoch: 2025-07-18
# Replace once a post-perihelion solution is available
FALLBACK_ELEMENTS: Dict[str, Any] = {
    'eccentricity': 6.2769203,
    'perihelion_distance': 1.3745928,
    'inclination': 175.11669,
    'argument_of_perihelion': 127.79317,
    'longitude_of_ascending_node': 322.27219,
    'perihelion_time': '2025-10-29T05:03:46Z',
    'epoch': '2025-07-18T00:00:00Z',
    'source': 'MPC MPEC 2025-N12',
}

# Brightness model defaults (total magnitude m = H + 5 log Δ + K log r + β α)
DEFAULT_ABSOLUTE_MAGNITUDE: float = 7.1
DEFAULT_ACTIVITY_PARAMETER: float = 6.0  # K
PHASE_COEFFICIENT: float = 0.04  # β (mag / degree)


class EngineConfig:
    """Runtime configuration read from environment variables."""

    def __init__(self, environ=None):
        env = os.environ if environ is None else environ

        self.HORIZONS_API_BASE = env.get('HORIZONS_API_BASE', 'https://ssd.jpl.nasa.gov/api/horizons.api')
        self.MPC_ELEMENTS_URL = env.get(
            'MPC_ELEMENTS_URL',
            'https://www.minorplanetcenter.net/Extended_Files/cometels.json.gz',
        )
        self.THESKYLIVE_URL = env.get('THESKYLIVE_URL', 'https://theskylive.com/c2025n1-info')
        self.COBS_API_BASE = env.get('COBS_API_BASE', 'https://cobs.si/api/obs_list.api')
        self.TARGET_DESIGNATION = env.get('TARGET_DESIGNATION', 'C/2025 N1')
        self.COBS_DESIGNATION = env.get('COBS_DESIGNATION', '3I')

        self.REDIS_URL = env.get('REDIS_URL')  # unset -> SQLite durable store
        self.CACHE_DB_PATH = env.get('CACHE_DB_PATH', os.path.join('.cache', 'atlas_orbit.sqlite3'))
        self.CACHE_TTL = int(env.get('CACHE_TTL', '900'))  # 15 minutes
        self.VELOCITY_CACHE_TTL = int(env.get('VELOCITY_CACHE_TTL', '600'))
        self.ELEMENTS_CACHE_TTL = int(env.get('ELEMENTS_CACHE_TTL', '86400'))  # 24 hours
        self.TREND_CACHE_TTL = int(env.get('TREND_CACHE_TTL', '1800'))

        self.REQUEST_TIMEOUT = float(env.get('REQUEST_TIMEOUT', '30'))
        self.MAX_RETRIES = int(env.get('MAX_RETRIES', '3'))
        self.RETRY_BACKOFF = float(env.get('RETRY_BACKOFF', '5'))
        self.RATE_LIMIT_REQUESTS = int(env.get('RATE_LIMIT_REQUESTS', '10'))
        self.RATE_LIMIT_WINDOW = float(env.get('RATE_LIMIT_WINDOW', '60'))

        self.ACTUAL_TRAIL_DAYS = int(env.get('ACTUAL_TRAIL_DAYS', '60'))
        self.PREDICTED_STEP_DAYS = float(env.get('PREDICTED_STEP_DAYS', '2'))
        self.DEFAULT_GEOCENTRIC_DISTANCE = float(env.get('DEFAULT_GEOCENTRIC_DISTANCE', '2.5'))
        self.MAX_TRAJECTORY_DAYS = int(env.get('MAX_TRAJECTORY_DAYS', '400'))
        self.MAX_VELOCITY_DAYS = int(env.get('MAX_VELOCITY_DAYS', '90'))

        self.EPHEMERIS_FILE = env.get('EPHEMERIS_FILE', 'de421.bsp')
        self.LOG_LEVEL = env.get('LOG_LEVEL', 'INFO').upper()
        self.LOG_FILE = env.get('LOG_FILE')

    def as_dict(self) -> Dict[str, Any]:
        """Return the public settings, e.g. for the health endpoint."""
        return {key: value for key, value in vars(self).items() if key.isupper()}
