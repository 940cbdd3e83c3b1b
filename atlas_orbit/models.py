"""
Data models shared by every layer of the engine.

All models are pydantic models so they validate on construction and serialise
to JSON for the cache and the HTTP boundary with ``model_dump(mode="json")``.
Orbital elements and trajectory samples are frozen: once built they are never
mutated, only replaced.
"""

import math
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import AU_PER_DAY_TO_KM_PER_S

SourceTag = Literal['primary', 'fallback']
HealthStatus = Literal['healthy', 'degraded', 'failed']
TrendLabel = Literal['brightening', 'dimming', 'stable']


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _UTCModel(BaseModel):
    """Base model that normalises every datetime field to UTC."""

    @field_validator('*', mode='after')
    @classmethod
    def _normalise_datetimes(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class OrbitalElements(_UTCModel):
    """Classical heliocentric elements of a comet-like orbit (angles in degrees)."""

    model_config = ConfigDict(frozen=True)

    eccentricity: float = Field(gt=0)
    perihelion_distance: float = Field(gt=0, description="q (AU)")
    inclination: float
    argument_of_perihelion: float
    longitude_of_ascending_node: float
    perihelion_time: datetime
    epoch: Optional[datetime] = None
    source: str = 'unknown'
    observation_count: Optional[int] = None
    observation_arc: Optional[str] = None

    @property
    def is_hyperbolic(self) -> bool:
        return self.eccentricity > 1.0

    @property
    def semi_major_axis(self) -> float:
        """a = q / (1 - e); negative for hyperbolic orbits, infinite for parabolic."""
        if self.eccentricity == 1.0:
            return math.inf
        return self.perihelion_distance / (1.0 - self.eccentricity)


class TrajectoryPoint(_UTCModel):
    """Heliocentric ecliptic J2000 position (AU) at an instant."""

    model_config = ConfigDict(frozen=True)

    instant: datetime
    x: float
    y: float
    z: float
    distance_from_sun: float

    @classmethod
    def from_xyz(cls, instant: datetime, x: float, y: float, z: float) -> 'TrajectoryPoint':
        return cls(instant=instant, x=x, y=y, z=z, distance_from_sun=math.sqrt(x * x + y * y + z * z))

    def distance_to(self, other: 'TrajectoryPoint') -> float:
        return math.sqrt((self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2)


class StateVector(_UTCModel):
    """Position (AU) and velocity (AU/day) at an instant."""

    model_config = ConfigDict(frozen=True)

    instant: datetime
    x: float
    y: float
    z: float
    vx: float
    vy: float
    vz: float

    @property
    def distance_au(self) -> float:
        return math.sqrt(self.x ** 2 + self.y ** 2 + self.z ** 2)

    @property
    def speed_au_per_day(self) -> float:
        return math.sqrt(self.vx ** 2 + self.vy ** 2 + self.vz ** 2)

    @property
    def speed_kmps(self) -> float:
        return self.speed_au_per_day * AU_PER_DAY_TO_KM_PER_S


class EphemerisPoint(_UTCModel):
    """One row of an observer ephemeris table."""

    model_config = ConfigDict(frozen=True)

    instant: datetime
    ra: float = Field(ge=0.0, le=360.0)
    dec: float = Field(ge=-90.0, le=90.0)
    delta: Optional[float] = Field(default=None, description="geocentric distance (AU)")
    delta_rate: Optional[float] = Field(default=None, description="km/s")
    r: Optional[float] = Field(default=None, description="heliocentric distance (AU)")
    r_rate: Optional[float] = Field(default=None, description="km/s")
    magnitude: Optional[float] = None


class BrightnessObservation(_UTCModel):
    model_config = ConfigDict(frozen=True)

    instant: datetime
    magnitude: float
    observer: Optional[str] = None
    uncertainty: Optional[float] = None


class ParsedSeries(_UTCModel):
    """Common output of every source adapter."""

    source: str
    kind: Literal['observer', 'vectors', 'elements', 'photometry']
    points: List[Any] = Field(default_factory=list)
    skipped: int = 0
    fetched_at: datetime = Field(default_factory=utcnow)


class SourceHealthRecord(_UTCModel):
    model_config = ConfigDict(frozen=True)

    source_name: str
    status: HealthStatus = 'healthy'
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    failure_count: int = 0
    last_error: Optional[str] = None
    last_response_time_ms: Optional[float] = None


class CacheEntry(BaseModel):
    """A cached value with its creation time (epoch seconds) and TTL (seconds)."""

    data: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl

    def remaining(self, now: float) -> float:
        return self.ttl - (now - self.created_at)


class DeviationRecord(BaseModel):
    position_error_au: float = 0.0
    position_error_km: float = 0.0
    angular_error_arcsec: float = 0.0


class TrajectoryRecord(_UTCModel):
    """A trail together with where it came from."""

    trail: List[TrajectoryPoint]
    source: str
    source_type: SourceTag
    last_update: datetime = Field(default_factory=utcnow)


class TrajectoryLeg(_UTCModel):
    trail: List[TrajectoryPoint] = Field(default_factory=list)
    current: Optional[TrajectoryPoint] = None
    source: str = ''
    source_type: Optional[SourceTag] = None
    epoch: Optional[datetime] = None
    last_update: Optional[datetime] = None


class DualTrajectory(BaseModel):
    predicted: TrajectoryLeg
    actual: TrajectoryLeg
    deviation: DeviationRecord
    warning: Optional[str] = None


class VelocityPoint(_UTCModel):
    model_config = ConfigDict(frozen=True)

    date: datetime
    heliocentric_velocity_kmps: float
    geocentric_velocity_kmps: float
    acceleration_kmps2: float
    distance_from_sun_au: float
    distance_from_earth_au: float
    source: str = 'JPL Horizons'
    confidence: float = 0.95


class LinearFit(BaseModel):
    slope: float
    intercept: float
    r_squared: float


class TrendResult(BaseModel):
    trend: TrendLabel
    slope: float
    intercept: float
    r_squared: float
    confidence: float
    points: int


class BrightnessFit(BaseModel):
    absolute_magnitude: float
    activity_parameter: float
    r_squared: float
    points: int


class BrightnessTrend(_UTCModel):
    trend: TrendResult
    observations: int
    first_observation: datetime
    last_observation: datetime
    source: str
    model: Optional[BrightnessFit] = None
