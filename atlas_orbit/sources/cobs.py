"""
COBS Photometry Adapter

Visual and CCD total-magnitude estimates from the Comet Observation
Database (cobs.si) JSON API.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from atlas_orbit.errors import ParseError
from atlas_orbit.models import BrightnessObservation, ParsedSeries
from atlas_orbit.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

COBS_API_BASE = 'https://cobs.si/api/obs_list.api'

# plausible total-magnitude range for this object; outliers are typos
MIN_MAGNITUDE = 5.0
MAX_MAGNITUDE = 20.0

_DATE_FORMATS = ('%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%d')


def _parse_obs_date(value: str) -> datetime:
    value = value.strip().rstrip('Z')
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    # fractional days, e.g. '2025-09-15.1234'
    day, _, fraction = value.partition('.')
    base = datetime.strptime(day, '%Y-%m-%d').replace(tzinfo=timezone.utc)
    return base + timedelta(days=float('0.' + fraction))


def _observer_name(observer: Any) -> Optional[str]:
    if isinstance(observer, dict):
        name = f"{observer.get('first_name') or ''} {observer.get('last_name') or ''}".strip()
        return name or observer.get('icq_name')
    return str(observer) if observer else None


def parse_cobs_observations(payload: Dict[str, Any], source: str = 'cobs') -> ParsedSeries:
    """
    Convert an ``obs_list.api`` JSON document into brightness observations.

    Entries without a date or magnitude, or with a magnitude outside
    [5, 20], are skipped.
    """
    objects = payload.get('objects') if isinstance(payload, dict) else None
    if not isinstance(objects, list):
        raise ParseError("COBS response has no 'objects' list", source=source)

    points = []
    skipped = 0
    for entry in objects:
        try:
            if not entry.get('obs_date') or entry.get('magnitude') in (None, ''):
                raise ValueError("missing obs_date or magnitude")
            magnitude = float(entry['magnitude'])
            if not MIN_MAGNITUDE <= magnitude <= MAX_MAGNITUDE:
                raise ValueError(f"magnitude {magnitude} outside [{MIN_MAGNITUDE}, {MAX_MAGNITUDE}]")
            uncertainty = entry.get('magnitude_error')
            points.append(BrightnessObservation(
                instant=_parse_obs_date(str(entry['obs_date'])),
                magnitude=magnitude,
                observer=_observer_name(entry.get('observer')),
                uncertainty=float(uncertainty) if uncertainty not in (None, '') else None,
            ))
        except (AttributeError, TypeError, ValueError) as e:
            skipped += 1
            logger.warning(f"Skipping COBS observation: {e}")

    points.sort(key=lambda p: p.instant)
    return ParsedSeries(source=source, kind='photometry', points=points, skipped=skipped)


class COBSSource(SourceAdapter):
    """Brightness observations for the trend analyzer."""

    name = 'cobs'
    kind = 'photometry'

    def __init__(self, designation: str = '3I', base_url: str = COBS_API_BASE, **kwargs):
        super().__init__(**kwargs)
        self.designation = designation
        self.base_url = base_url

    def fetch(self, start: datetime, end: datetime, step: str = '1d') -> ParsedSeries:
        params = {
            'des': self.designation,
            'from_date': start.strftime('%Y-%m-%d'),
            'to_date': end.strftime('%Y-%m-%d'),
            'format': 'json',
            'page': 1,
        }
        response = self._get(self.base_url, params)
        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"COBS response is not JSON: {e}", source=self.name) from e

        series = parse_cobs_observations(payload, source=self.name)
        logger.info(f"COBS: {len(series.points)} observations, {series.skipped} skipped")
        return series
