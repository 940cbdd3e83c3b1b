"""
Minor Planet Center Elements Adapter

Downloads the MPC comet elements file (gzipped JSON array, refreshed daily)
and extracts the record for the target object.
"""

import gzip
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from atlas_orbit.errors import ParseError
from atlas_orbit.frame_math import julian_date_to_datetime
from atlas_orbit.models import OrbitalElements, ParsedSeries
from atlas_orbit.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

MPC_ELEMENTS_URL = 'https://www.minorplanetcenter.net/Extended_Files/cometels.json.gz'

_REQUIRED_FIELDS = ('q', 'e', 'i', 'Node', 'Peri')


def decode_payload(content: bytes) -> List[Dict[str, Any]]:
    """Decode the (possibly already transfer-decoded) gzip JSON payload."""
    try:
        if content[:2] == b'\x1f\x8b':
            content = gzip.decompress(content)
        records = json.loads(content.decode('utf-8'))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"MPC elements payload is not valid gzip JSON: {e}", source='mpc') from e

    if not isinstance(records, list):
        raise ParseError("MPC elements payload is not a JSON array", source='mpc')
    return records


def find_target_record(records: List[Dict[str, Any]], designation: str = 'C/2025 N1',
                       short_designation: str = '3I') -> Optional[Dict[str, Any]]:
    """
    Locate the target in the comet list.

    Preference order: exact short designation, designation containing either
    form, name containing ATLAS or the short designation.
    """
    for record in records:
        if record.get('Designation') == short_designation:
            logger.info(f"Found {short_designation} in MPC data by exact designation")
            return record

    for record in records:
        record_designation = record.get('Designation') or ''
        if short_designation in record_designation or designation in record_designation:
            logger.info(f"Found {record_designation} in MPC data by designation match")
            return record

    for record in records:
        name = record.get('Name') or ''
        if 'ATLAS' in name.upper() or short_designation in name:
            logger.info(f"Found {name} in MPC data by name match")
            return record

    logger.warning(f"{short_designation} not found among {len(records)} MPC records")
    return None


def record_to_elements(record: Dict[str, Any]) -> OrbitalElements:
    """Convert an MPC JSON record into OrbitalElements."""
    missing = [field for field in _REQUIRED_FIELDS if record.get(field) is None]
    if missing:
        raise ParseError(f"MPC record missing fields: {', '.join(missing)}", source='mpc')

    try:
        return _convert_record(record)
    except (TypeError, ValueError) as e:
        raise ParseError(f"MPC record has invalid elements: {e}", source='mpc') from e


def _convert_record(record: Dict[str, Any]) -> OrbitalElements:
    if record.get('Tp') is not None:
        perihelion_time = julian_date_to_datetime(float(record['Tp']))
    elif all(record.get(k) for k in ('Year_of_perihelion', 'Month_of_perihelion', 'Day_of_perihelion')):
        # fractional day of month, e.g. 29.2110
        day = float(record['Day_of_perihelion'])
        perihelion_time = datetime(int(record['Year_of_perihelion']), int(record['Month_of_perihelion']), 1,
                                   tzinfo=timezone.utc) + timedelta(days=day - 1.0)
    else:
        raise ParseError("MPC record has no perihelion time", source='mpc')

    epoch = julian_date_to_datetime(float(record['Epoch'])) if record.get('Epoch') else None
    designation = record.get('Designation') or record.get('Name') or 'unknown'

    return OrbitalElements(
        eccentricity=float(record['e']),
        perihelion_distance=float(record['q']),
        inclination=float(record['i']),
        argument_of_perihelion=float(record['Peri']),
        longitude_of_ascending_node=float(record['Node']),
        perihelion_time=perihelion_time,
        epoch=epoch,
        source=f"MPC ({designation})",
        observation_count=record.get('Num_obs'),
        observation_arc=record.get('Arc'),
    )


class MPCElementsSource(SourceAdapter):
    """Current osculating elements from the MPC comet elements file."""

    name = 'mpc'
    kind = 'elements'

    def __init__(self, designation: str = 'C/2025 N1', short_designation: str = '3I',
                 url: str = MPC_ELEMENTS_URL, **kwargs):
        super().__init__(**kwargs)
        self.designation = designation
        self.short_designation = short_designation
        self.url = url

    def fetch(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
              step: str = '1d') -> ParsedSeries:
        # the elements file has no time range; arguments exist for interface parity
        response = self._get(self.url)
        records = decode_payload(response.content)
        record = find_target_record(records, self.designation, self.short_designation)
        if record is None:
            raise ParseError(f"{self.short_designation} not present in MPC elements file", source=self.name)
        elements = record_to_elements(record)
        return ParsedSeries(source=self.name, kind='elements', points=[elements])

    def fetch_elements(self) -> OrbitalElements:
        return self.fetch().points[0]
