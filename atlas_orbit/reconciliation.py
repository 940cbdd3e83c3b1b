"""
Reconciliation Layer

Owns the cache, the health ledger and every source adapter, and turns
provider data into the quantities served to consumers:

    - dual trajectory: predicted trail (two-body model) vs actual trail
      (observer ephemeris, primary -> fallback) and their deviation
    - velocity profile: heliocentric and geocentric state vectors fetched
      concurrently and paired by timestamp
    - brightness trend: least-squares trend and magnitude-law fit of
      photometry

Every provider call goes through ``_call`` so its outcome lands in the health
ledger. Provider failures are recovered here: the next source is tried, and
only when all of them fail is AllSourcesFailed raised.
"""

import math
import sqlite3
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import redis

import atlas_orbit
from config import AU_KM, FALLBACK_ELEMENTS, EngineConfig
from logging_config import get_logger
from atlas_orbit.cache import RedisStore, SQLiteStore, TieredCache, make_cache_key
from atlas_orbit.earth_ephemeris import EarthEphemeris, radec_to_heliocentric
from atlas_orbit.errors import AllSourcesFailed, FetchError, InsufficientData, InvalidRequest, ParseError
from atlas_orbit.frame_math import angular_to_linear_distance
from atlas_orbit.health import HealthLedger
from atlas_orbit.models import (
    BrightnessTrend,
    DeviationRecord,
    DualTrajectory,
    OrbitalElements,
    ParsedSeries,
    SourceTag,
    StateVector,
    TrajectoryLeg,
    TrajectoryPoint,
    TrajectoryRecord,
    VelocityPoint,
    ensure_utc,
    utcnow,
)
from atlas_orbit.orbit_model import current_point, position_at, predicted_trail
from atlas_orbit.sources import (
    GEOCENTRIC,
    HELIOCENTRIC,
    COBSSource,
    HorizonsObserverSource,
    HorizonsVectorSource,
    MPCElementsSource,
    RateLimiter,
    SourceAdapter,
    TheSkyLiveSource,
)
from atlas_orbit.trend import analyze_trend, fit_brightness_model, phase_angle

logger = get_logger(__name__)

ACTUAL_UNAVAILABLE_WARNING = 'Actual trajectory data unavailable from all sources - showing predicted only'
SOURCE_LABELS = {
    'jpl_horizons': 'JPL Horizons Observer Ephemeris',
    'theskylive': 'TheSkyLive Ephemeris',
}


def reference_elements() -> OrbitalElements:
    """The published element set the predicted trail is computed from."""
    return OrbitalElements(**FALLBACK_ELEMENTS)


def compute_deviation(predicted: TrajectoryPoint, actual: TrajectoryPoint) -> DeviationRecord:
    """
    Euclidean separation of the two current points, and the same separation
    expressed as an angle seen from the Sun at the actual distance.
    """
    error_au = predicted.distance_to(actual)
    arcsec_length = angular_to_linear_distance(1.0, actual.distance_from_sun)
    angular = error_au / arcsec_length if arcsec_length > 0 else 0.0
    return DeviationRecord(
        position_error_au=error_au,
        position_error_km=error_au * AU_KM,
        angular_error_arcsec=angular,
    )


def pair_state_vectors(helio: Sequence[StateVector],
                       geo: Sequence[StateVector]) -> List[Tuple[StateVector, StateVector]]:
    """
    Join two vector series on their timestamps; samples present in only one
    series are dropped.
    """
    geo_by_instant = {vector.instant: vector for vector in geo}
    pairs = [(h, geo_by_instant[h.instant]) for h in helio if h.instant in geo_by_instant]

    dropped = len(helio) + len(geo) - 2 * len(pairs)
    if dropped:
        logger.warning("state_vectors_unmatched", dropped=dropped, helio=len(helio), geo=len(geo))
    return sorted(pairs, key=lambda pair: pair[0].instant)


def velocity_points(pairs: Sequence[Tuple[StateVector, StateVector]]) -> List[VelocityPoint]:
    """Speeds in km/s and heliocentric acceleration dv/dt in km/s^2 (0 for the first sample)."""
    points = []
    previous = None
    for helio, geo in pairs:
        acceleration = 0.0
        if previous is not None:
            dt_seconds = (helio.instant - previous.instant).total_seconds()
            if dt_seconds > 0:
                acceleration = (helio.speed_kmps - previous.speed_kmps) / dt_seconds
        points.append(VelocityPoint(
            date=helio.instant,
            heliocentric_velocity_kmps=helio.speed_kmps,
            geocentric_velocity_kmps=geo.speed_kmps,
            acceleration_kmps2=acceleration,
            distance_from_sun_au=helio.distance_au,
            distance_from_earth_au=geo.distance_au,
        ))
        previous = helio
    return points


def _source_health_entry(record) -> Dict:
    return {
        'name': record.source_name,
        'status': record.status,
        'last_success': record.last_success.isoformat() if record.last_success else None,
        'last_failure': record.last_failure.isoformat() if record.last_failure else None,
        'response_time_ms': record.last_response_time_ms,
    }


def _validate_days(days, maximum: int, message: Optional[str] = None) -> int:
    try:
        value = int(days)
    except (TypeError, ValueError):
        raise InvalidRequest(f'The "days" parameter must be an integer, got {days!r}')
    if value < 1:
        raise InvalidRequest('The "days" parameter must be at least 1')
    if value > maximum:
        raise InvalidRequest(message or f'The "days" parameter must be {maximum} or less')
    return value


class Reconciler:
    """
    Orchestrates sources, cache and health for every public operation.

    All collaborators are injectable; ``build_reconciler`` wires the
    production set from an EngineConfig.
    """

    def __init__(self, config: Optional[EngineConfig] = None,
                 cache: Optional[TieredCache] = None,
                 health: Optional[HealthLedger] = None,
                 observer_source: Optional[SourceAdapter] = None,
                 fallback_source: Optional[SourceAdapter] = None,
                 elements_source: Optional[SourceAdapter] = None,
                 helio_source: Optional[SourceAdapter] = None,
                 geo_source: Optional[SourceAdapter] = None,
                 photometry_source: Optional[SourceAdapter] = None,
                 earth: Optional[EarthEphemeris] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config or EngineConfig()
        self.cache = cache if cache is not None else TieredCache()
        self.health = health if health is not None else HealthLedger()
        self.observer_source = observer_source
        self.fallback_source = fallback_source
        self.elements_source = elements_source
        self.helio_source = helio_source
        self.geo_source = geo_source
        self.photometry_source = photometry_source
        self.earth = earth or EarthEphemeris(self.config.EPHEMERIS_FILE)
        self.clock = clock
        self.reference_elements = reference_elements()
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix='atlas-fetch')

        for source in self._sources():
            self.health.register(source.name)

    def _sources(self) -> List[SourceAdapter]:
        candidates = (self.observer_source, self.fallback_source, self.elements_source,
                      self.helio_source, self.geo_source, self.photometry_source)
        return [source for source in candidates if source is not None]

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now else self.clock()

    def _call(self, source: SourceAdapter, start: Optional[datetime], end: Optional[datetime],
              step: str = '1d') -> ParsedSeries:
        """Fetch from ``source`` and record the outcome in the health ledger."""
        started = time.monotonic()
        try:
            series = source.fetch(start, end, step)
        except FetchError as e:
            self.health.record_outcome(source.name, False, error=str(e),
                                       latency_ms=(time.monotonic() - started) * 1000.0)
            raise
        self.health.record_outcome(source.name, True, latency_ms=(time.monotonic() - started) * 1000.0)
        return series

    # Orbital elements

    def orbital_elements(self) -> OrbitalElements:
        """Latest MPC elements, or the reference element set when MPC is unavailable."""
        key = make_cache_key('orbital_elements')
        cached = self.cache.get(key)
        if cached is not None:
            return OrbitalElements.model_validate(cached)

        if self.elements_source is not None:
            try:
                elements = self._call(self.elements_source, None, None).points[0]
                if elements.is_hyperbolic:
                    self.cache.put(key, elements.model_dump(mode='json'), self.config.ELEMENTS_CACHE_TTL)
                    return elements
                logger.warning("mpc_elements_not_hyperbolic", eccentricity=elements.eccentricity,
                               source=elements.source)
            except FetchError as e:
                logger.warning("mpc_elements_unavailable", error=str(e))

        logger.info("using_reference_elements", source=self.reference_elements.source)
        return self.reference_elements

    # Trajectories

    def _series_to_trail(self, series: ParsedSeries) -> List[TrajectoryPoint]:
        """
        Observer rows -> heliocentric ecliptic points. Rows without a
        geocentric distance borrow the last distance reported in the series,
        or the configured default.
        """
        known = [point.delta for point in series.points if point.delta]
        reference_distance = known[-1] if known else self.config.DEFAULT_GEOCENTRIC_DISTANCE

        trail = []
        for point in series.points:
            try:
                trail.append(radec_to_heliocentric(
                    point.ra, point.dec, point.delta or reference_distance, point.instant, self.earth,
                ))
            except ValueError as e:
                logger.warning("ephemeris_point_conversion_failed", instant=point.instant.isoformat(),
                               error=str(e))
        trail.sort(key=lambda p: p.instant)
        return trail

    def actual_trajectory(self, now: Optional[datetime] = None) -> Tuple[TrajectoryRecord, SourceTag]:
        """
        Measured trail over the last ACTUAL_TRAIL_DAYS days.

        Tries the primary observer source, then the fallback. A source that
        errors or yields no usable points counts as failed.

        Raises:
            AllSourcesFailed: if no source produced a trail
        """
        now = self._now(now)
        start = now - timedelta(days=self.config.ACTUAL_TRAIL_DAYS)
        failures: Dict[str, str] = {}

        for source, tag in ((self.observer_source, 'primary'), (self.fallback_source, 'fallback')):
            if source is None:
                continue
            try:
                series = self._call(source, start, now, '1d')
                trail = self._series_to_trail(series)
                if not trail:
                    raise ParseError(f"{source.name} returned no convertible points", source=source.name)
            except FetchError as e:
                failures[source.name] = str(e)
                logger.warning("actual_trajectory_source_failed", source=source.name, source_type=tag,
                               error=str(e))
                continue

            logger.info("actual_trajectory_fetched", source=source.name, source_type=tag, points=len(trail))
            record = TrajectoryRecord(
                trail=trail,
                source=SOURCE_LABELS.get(source.name, source.name),
                source_type=tag,
                last_update=series.fetched_at,
            )
            return record, tag

        raise AllSourcesFailed('Actual trajectory unavailable from all sources', failures)

    def dual_trajectory(self, days=60, now: Optional[datetime] = None) -> DualTrajectory:
        """
        Predicted and actual trails with the deviation between their current
        points. When no actual trail is available the predicted trail is still
        returned, with a warning and zero deviation; that result is not cached.
        """
        days = _validate_days(days, self.config.MAX_TRAJECTORY_DAYS)
        key = make_cache_key('dual_trajectory', {'days': days})
        cached = self.cache.get(key)
        if cached is not None:
            return DualTrajectory.model_validate(cached)

        now = self._now(now)
        elements = self.reference_elements
        predicted = predicted_trail(elements, days, now, self.config.PREDICTED_STEP_DAYS)
        predicted_leg = TrajectoryLeg(
            trail=predicted,
            current=current_point(predicted, now),
            source=elements.source,
            epoch=elements.epoch,
        )

        try:
            record, tag = self.actual_trajectory(now)
        except AllSourcesFailed as e:
            logger.warning("dual_trajectory_predicted_only", failures=e.failures)
            return DualTrajectory(
                predicted=predicted_leg,
                actual=TrajectoryLeg(),
                deviation=DeviationRecord(),
                warning=ACTUAL_UNAVAILABLE_WARNING,
            )

        actual_current = current_point(record.trail, now)
        result = DualTrajectory(
            predicted=predicted_leg,
            actual=TrajectoryLeg(
                trail=record.trail,
                current=actual_current,
                source=record.source,
                source_type=tag,
                last_update=record.last_update,
            ),
            deviation=compute_deviation(predicted_leg.current, actual_current),
        )
        logger.info("dual_trajectory_computed", days=days, predicted_points=len(predicted),
                    actual_points=len(record.trail), source_type=tag,
                    position_error_km=round(result.deviation.position_error_km, 1))

        self.cache.put(key, result.model_dump(mode='json'), self.config.CACHE_TTL)
        return result

    # Velocity

    def velocity_profile(self, days=60, now: Optional[datetime] = None) -> List[VelocityPoint]:
        """
        Heliocentric and geocentric speed, distance and acceleration per day.

        Both vector series are fetched in parallel and both must succeed.

        Raises:
            InvalidRequest: days outside [1, MAX_VELOCITY_DAYS]
            AllSourcesFailed: either fetch failed or the series share no timestamps
        """
        maximum = self.config.MAX_VELOCITY_DAYS
        days = _validate_days(
            days, maximum,
            f'The "days" parameter must be {maximum} or less to prevent API timeouts',
        )
        if self.helio_source is None or self.geo_source is None:
            raise AllSourcesFailed('No state-vector sources configured')

        now = self._now(now)
        key = make_cache_key('velocity_profile', {'days': days})

        def produce():
            start = now - timedelta(days=days)
            futures = {
                self._executor.submit(self._call, self.helio_source, start, now, '1d'): self.helio_source,
                self._executor.submit(self._call, self.geo_source, start, now, '1d'): self.geo_source,
            }
            wait(futures)

            failures = {}
            results = {}
            for future, source in futures.items():
                try:
                    results[source.name] = future.result()
                except FetchError as e:
                    failures[source.name] = str(e)
            if failures:
                raise AllSourcesFailed('State vector fetch failed', failures)

            pairs = pair_state_vectors(results[self.helio_source.name].points,
                                       results[self.geo_source.name].points)
            if not pairs:
                raise AllSourcesFailed('Heliocentric and geocentric vectors share no timestamps',
                                       {self.helio_source.name: 'no common timestamps',
                                        self.geo_source.name: 'no common timestamps'})

            points = velocity_points(pairs)
            logger.info("velocity_profile_computed", days=days, points=len(points))
            return [point.model_dump(mode='json') for point in points]

        data = self.cache.get_or_compute(key, self.config.VELOCITY_CACHE_TTL, produce)
        return [VelocityPoint.model_validate(item) for item in data]

    # Brightness

    def _geometry(self, instant: datetime) -> Tuple[float, float, float]:
        """(r, delta, phase angle) from the reference orbit and the Earth ephemeris."""
        body = position_at(self.reference_elements, instant)
        ex, ey, ez = self.earth.heliocentric_ecliptic(instant)
        delta = math.sqrt((body.x - ex) ** 2 + (body.y - ey) ** 2 + (body.z - ez) ** 2)
        earth_sun = math.sqrt(ex * ex + ey * ey + ez * ez)
        return body.distance_from_sun, delta, phase_angle(body.distance_from_sun, delta, earth_sun)

    def brightness_trend(self, days=30, now: Optional[datetime] = None) -> BrightnessTrend:
        """
        Magnitude trend over the last ``days`` days, plus an (H, K) fit when
        at least three observations are available.

        Raises:
            AllSourcesFailed: photometry could not be fetched
            InsufficientData: fewer than two observations
        """
        days = _validate_days(days, self.config.MAX_TRAJECTORY_DAYS)
        if self.photometry_source is None:
            raise AllSourcesFailed('No photometry source configured')

        now = self._now(now)
        key = make_cache_key('brightness_trend', {'days': days})

        def produce():
            try:
                series = self._call(self.photometry_source, now - timedelta(days=days), now)
            except FetchError as e:
                raise AllSourcesFailed('Photometry unavailable', {self.photometry_source.name: str(e)})

            observations = series.points
            if len(observations) < 2:
                raise InsufficientData(f"Need at least 2 observations for a trend, got {len(observations)}")

            first = observations[0].instant
            trend = analyze_trend([
                ((obs.instant - first).total_seconds() / 86400.0, obs.magnitude) for obs in observations
            ])

            model = None
            if len(observations) >= 3:
                try:
                    samples = [(obs.magnitude, *self._geometry(obs.instant)) for obs in observations]
                    model = fit_brightness_model(samples)
                except (FetchError, InsufficientData) as e:
                    logger.warning("brightness_model_skipped", error=str(e))

            result = BrightnessTrend(
                trend=trend,
                observations=len(observations),
                first_observation=first,
                last_observation=observations[-1].instant,
                source=series.source,
                model=model,
            )
            logger.info("brightness_trend_computed", days=days, trend=trend.trend,
                        observations=len(observations))
            return result.model_dump(mode='json')

        return BrightnessTrend.model_validate(
            self.cache.get_or_compute(key, self.config.TREND_CACHE_TTL, produce)
        )

    # Health

    def health_report(self) -> Dict:
        cache_available = self.cache.available()
        status = self.health.overall_status(cache_available)
        return {
            'status': status,
            'timestamp': utcnow().isoformat(),
            'version': atlas_orbit.__version__,
            'per_source': [_source_health_entry(record) for record in self.health.records()],
            'cache': self.cache.describe(),
        }

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


def build_durable_store(config: EngineConfig):
    """Redis when REDIS_URL is set and reachable, else SQLite, else None."""
    if config.REDIS_URL:
        try:
            store = RedisStore.from_url(config.REDIS_URL)
            store.client.ping()
            logger.info("durable_cache_ready", backend='redis')
            return store
        except redis.exceptions.RedisError as e:
            logger.warning("redis_unavailable_falling_back_to_sqlite", error=str(e))

    try:
        store = SQLiteStore(config.CACHE_DB_PATH)
        logger.info("durable_cache_ready", backend='sqlite', path=config.CACHE_DB_PATH)
        return store
    except (sqlite3.Error, OSError) as e:
        logger.warning("durable_cache_disabled", error=str(e))
        return None


def build_reconciler(config: Optional[EngineConfig] = None) -> Reconciler:
    """Wire the production sources, cache and health ledger from ``config``."""
    config = config or EngineConfig()

    def limiter() -> RateLimiter:
        return RateLimiter(config.RATE_LIMIT_REQUESTS, config.RATE_LIMIT_WINDOW)

    retry = {
        'timeout': config.REQUEST_TIMEOUT,
        'max_retries': config.MAX_RETRIES,
        'backoff': config.RETRY_BACKOFF,
    }
    # one limiter per provider; the three Horizons adapters share one
    horizons_limiter = limiter()

    return Reconciler(
        config=config,
        cache=TieredCache(durable=build_durable_store(config)),
        health=HealthLedger(),
        observer_source=HorizonsObserverSource(
            config.TARGET_DESIGNATION, config.HORIZONS_API_BASE, rate_limiter=horizons_limiter, **retry),
        fallback_source=TheSkyLiveSource(config.THESKYLIVE_URL, rate_limiter=limiter(), **retry),
        elements_source=MPCElementsSource(
            config.TARGET_DESIGNATION, config.COBS_DESIGNATION, config.MPC_ELEMENTS_URL,
            rate_limiter=limiter(), **retry),
        helio_source=HorizonsVectorSource(
            HELIOCENTRIC, config.TARGET_DESIGNATION, config.HORIZONS_API_BASE,
            rate_limiter=horizons_limiter, **retry),
        geo_source=HorizonsVectorSource(
            GEOCENTRIC, config.TARGET_DESIGNATION, config.HORIZONS_API_BASE,
            rate_limiter=horizons_limiter, **retry),
        photometry_source=COBSSource(config.COBS_DESIGNATION, config.COBS_API_BASE,
                                     rate_limiter=limiter(), **retry),
        earth=EarthEphemeris(config.EPHEMERIS_FILE),
    )
