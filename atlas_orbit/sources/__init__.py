"""
Source Gateway

Provider adapters. Each adapter fetches through the shared rate limit /
timeout / retry policy in ``base`` and returns a ParsedSeries.
"""

from atlas_orbit.sources.base import RateLimiter, SourceAdapter
from atlas_orbit.sources.cobs import COBSSource
from atlas_orbit.sources.horizons import GEOCENTRIC, HELIOCENTRIC, HorizonsObserverSource, HorizonsVectorSource
from atlas_orbit.sources.mpc import MPCElementsSource
from atlas_orbit.sources.theskylive import TheSkyLiveSource

__all__ = [
    'RateLimiter',
    'SourceAdapter',
    'COBSSource',
    'GEOCENTRIC',
    'HELIOCENTRIC',
    'HorizonsObserverSource',
    'HorizonsVectorSource',
    'MPCElementsSource',
    'TheSkyLiveSource',
]
