"""
ATLAS Orbit Reconciliation Package

This package determines and reconciles the heliocentric trajectory of the
interstellar object 3I/ATLAS (C/2025 N1) from independent, unreliable
providers and serves derived quantities.

Modules:
    frame_math: hyperbolic Kepler solver and reference-frame conversions
    earth_ephemeris: Earth heliocentric position via Skyfield
    orbit_model: two-body propagation of hyperbolic orbital elements
    sources: rate-limited, retrying adapters for JPL Horizons, MPC,
        TheSkyLive and COBS
    cache: in-memory and durable (SQLite / Redis) TTL cache
    health: per-source health ledger
    trend: least-squares trend and brightness-model fits
    reconciliation: source fallback, trajectory deviation and velocity profile
    app: Flask HTTP boundary

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications (4th ed.).
    Minor Planet Electronic Circular 2025-N12 (2025).
"""

__version__ = "1.0.0"
