"""
JPL Horizons Adapters

Observer-table (RA/Dec, ranges) and state-vector queries against the
Horizons API in plain-text mode. Both formats put the data block between
``$$SOE`` and ``$$EOE`` markers; everything outside the block is header and
footer text.

Observer rows for QUANTITIES='1,19,20' look like::

    2025-Oct-05 00:00     212.71689 -10.27338  1.8290  -29.51  2.3401  -11.47

(date, time, optional solar/lunar presence markers, RA, Dec, r, rdot, delta,
deldot). Vector records span three lines::

    2460956.500000000 = A.D. 2025-Oct-08 00:00:00.0000 TDB
     X =-1.921244741033584E+00 Y =-1.617095388610211E+00 Z = 1.541082265591570E-01
     VX=-2.073859896028416E-02 VY= 3.207730476042875E-02 VZ=-2.976130126533807E-03

References:
    https://ssd-api.jpl.nasa.gov/doc/horizons.html
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from atlas_orbit.errors import ParseError
from atlas_orbit.models import EphemerisPoint, ParsedSeries, StateVector
from atlas_orbit.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

HORIZONS_API_BASE = 'https://ssd.jpl.nasa.gov/api/horizons.api'
HELIOCENTRIC = '500@10'
GEOCENTRIC = '500@399'

_ERROR_MARKERS = ('ERROR', 'No ephemeris')
NOT_AVAILABLE = 'n.a.'
_NUMBER = r'[-+]?\d+(?:\.\d*)?(?:[Ee][-+]?\d+)?'
_VECTOR_DATE = re.compile(r'A\.D\.\s+(\d{4}-[A-Za-z]{3}-\d{2})\s+(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)')
_POSITION = re.compile(rf'(?<![A-Z])X\s*=\s*({_NUMBER})\s+Y\s*=\s*({_NUMBER})\s+Z\s*=\s*({_NUMBER})')
_VELOCITY = re.compile(rf'VX\s*=\s*({_NUMBER})\s+VY\s*=\s*({_NUMBER})\s+VZ\s*=\s*({_NUMBER})')


def extract_data_block(text: str, source: str = 'jpl_horizons') -> List[str]:
    """
    Return the non-blank lines between $$SOE and $$EOE.

    Raises:
        ParseError: if Horizons reported an error or the markers are missing
    """
    start = text.find('$$SOE')
    if start < 0:
        for marker in _ERROR_MARKERS:
            if marker in text:
                line = next((ln for ln in text.splitlines() if marker in ln), marker)
                raise ParseError(f"Horizons reported an error: {line.strip()}", source=source)
        raise ParseError("Horizons response has no $$SOE marker", source=source)

    end = text.find('$$EOE', start)
    if end < 0:
        raise ParseError("Horizons response has no $$EOE marker", source=source)

    return [line for line in text[start + len('$$SOE'):end].splitlines() if line.strip()]


def parse_horizons_datetime(date_str: str, time_str: str) -> datetime:
    """'2025-Oct-05', '00:00[:00[.0000]]' -> aware UTC datetime."""
    time_str = time_str.split('.')[0]
    fmt = '%Y-%b-%d %H:%M:%S' if time_str.count(':') == 2 else '%Y-%b-%d %H:%M'
    return datetime.strptime(f"{date_str} {time_str}", fmt).replace(tzinfo=timezone.utc)


def _is_number(token: str) -> bool:
    try:
        float(token)
        return True
    except ValueError:
        return False


def _optional_float(token: str) -> Optional[float]:
    """Column value, or None for Horizons' 'n.a.' placeholder."""
    if token == NOT_AVAILABLE:
        return None
    return float(token)


def parse_observer_ephemeris(text: str, source: str = 'jpl_horizons') -> ParsedSeries:
    """
    Parse an OBSERVER table (QUANTITIES='1,19,20', ANG_FORMAT=DEG).

    Rows that cannot be parsed, or whose RA/Dec fall outside [0, 360] /
    [-90, 90], are logged and skipped.

    Raises:
        ParseError: if the block is missing or no row could be parsed
    """
    points = []
    skipped = 0

    for line in extract_data_block(text, source):
        parts = line.split()
        try:
            if len(parts) < 4:
                raise ValueError(f"expected at least 4 fields, got {len(parts)}")
            instant = parse_horizons_datetime(parts[0], parts[1])

            # presence markers ('*', 'C', 'm', 'Cm', ...) sit between time and RA
            columns = parts[2:]
            while columns and columns[0] != NOT_AVAILABLE and not _is_number(columns[0]):
                columns = columns[1:]
            # columns are positional; 'n.a.' holds a slot without a value
            values = [_optional_float(token) for token in columns[:6]]
            values += [None] * (6 - len(values))
            ra, dec, r, r_rate, delta, delta_rate = values
            if ra is None or dec is None:
                raise ValueError("missing RA/Dec")
            if not (0.0 <= ra <= 360.0 and -90.0 <= dec <= 90.0):
                raise ValueError(f"RA/Dec out of range: {ra}, {dec}")

            points.append(EphemerisPoint(
                instant=instant, ra=ra, dec=dec,
                r=r, r_rate=r_rate, delta=delta, delta_rate=delta_rate,
            ))
        except ValueError as e:
            skipped += 1
            logger.warning(f"Skipping malformed Horizons observer line {line.strip()!r}: {e}")

    if not points:
        raise ParseError("No valid observer rows in Horizons response", source=source)

    return ParsedSeries(source=source, kind='observer', points=points, skipped=skipped)


def parse_vector_table(text: str, source: str = 'jpl_horizons') -> ParsedSeries:
    """
    Parse a VECTORS table (VEC_TABLE=2, OUT_UNITS=AU-D).

    A record is a date line followed by position and velocity lines; an
    incomplete record is logged and skipped.
    """
    points = []
    skipped = 0

    instant: Optional[datetime] = None
    position: Optional[Tuple[float, float, float]] = None

    def discard(reason: str) -> None:
        nonlocal skipped
        skipped += 1
        logger.warning(f"Skipping incomplete Horizons vector record at {instant}: {reason}")

    for line in extract_data_block(text, source):
        date_match = _VECTOR_DATE.search(line)
        if date_match:
            if instant is not None:
                discard("no velocity line")
            try:
                instant = parse_horizons_datetime(*date_match.groups())
            except ValueError as e:
                logger.warning(f"Skipping Horizons vector date line {line.strip()!r}: {e}")
                instant = None
                skipped += 1
            position = None
            continue

        velocity_match = _VELOCITY.search(line)
        if velocity_match:
            if instant is None or position is None:
                if instant is not None:
                    discard("no position line")
                instant, position = None, None
                continue
            vx, vy, vz = (float(v) for v in velocity_match.groups())
            points.append(StateVector(
                instant=instant,
                x=position[0], y=position[1], z=position[2],
                vx=vx, vy=vy, vz=vz,
            ))
            instant, position = None, None
            continue

        position_match = _POSITION.search(line)
        if position_match and instant is not None:
            position = tuple(float(v) for v in position_match.groups())

    if instant is not None:
        discard("record truncated at end of block")

    if not points:
        raise ParseError("No valid state vectors in Horizons response", source=source)

    return ParsedSeries(source=source, kind='vectors', points=points, skipped=skipped)


def _quoted(value: str) -> str:
    return f"'{value}'"


class HorizonsObserverSource(SourceAdapter):
    """Geocentric observer ephemeris (primary source for the actual trail)."""

    name = 'jpl_horizons'
    kind = 'observer'

    def __init__(self, designation: str = 'C/2025 N1', base_url: str = HORIZONS_API_BASE, **kwargs):
        super().__init__(**kwargs)
        self.designation = designation
        self.base_url = base_url

    def build_params(self, start: datetime, end: datetime, step: str) -> Dict[str, str]:
        return {
            'format': 'text',
            'COMMAND': _quoted(self.designation),
            'OBJ_DATA': 'NO',
            'MAKE_EPHEM': 'YES',
            'EPHEM_TYPE': 'OBSERVER',
            'CENTER': _quoted(GEOCENTRIC),
            'START_TIME': _quoted(start.strftime('%Y-%m-%d')),
            'STOP_TIME': _quoted(end.strftime('%Y-%m-%d')),
            'STEP_SIZE': _quoted(step),
            'QUANTITIES': _quoted('1,19,20'),
            'REF_SYSTEM': 'ICRF',
            'CAL_FORMAT': 'CAL',
            'ANG_FORMAT': 'DEG',
            'APPARENT': 'AIRLESS',
            'RANGE_UNITS': 'AU',
            'CSV_FORMAT': 'NO',
        }

    def fetch(self, start: datetime, end: datetime, step: str = '1d') -> ParsedSeries:
        response = self._get(self.base_url, self.build_params(start, end, step))
        series = parse_observer_ephemeris(response.text, source=self.name)
        logger.info(f"Horizons observer ephemeris: {len(series.points)} rows, {series.skipped} skipped")
        return series


class HorizonsVectorSource(SourceAdapter):
    """
    Ecliptic state vectors relative to ``center`` (500@10 heliocentric,
    500@399 geocentric).
    """

    kind = 'vectors'

    def __init__(self, center: str = HELIOCENTRIC, designation: str = 'C/2025 N1',
                 base_url: str = HORIZONS_API_BASE, **kwargs):
        super().__init__(**kwargs)
        self.center = center
        self.designation = designation
        self.base_url = base_url
        label = 'helio' if center == HELIOCENTRIC else 'geo' if center == GEOCENTRIC else center
        self.name = f'jpl_horizons_vectors_{label}'

    def build_params(self, start: datetime, end: datetime, step: str) -> Dict[str, str]:
        return {
            'format': 'text',
            'COMMAND': _quoted(self.designation),
            'OBJ_DATA': 'NO',
            'MAKE_EPHEM': 'YES',
            'EPHEM_TYPE': 'VECTORS',
            'CENTER': _quoted(self.center),
            'START_TIME': _quoted(start.strftime('%Y-%m-%d')),
            'STOP_TIME': _quoted(end.strftime('%Y-%m-%d')),
            'STEP_SIZE': _quoted(step),
            'OUT_UNITS': 'AU-D',
            'REF_PLANE': 'ECLIPTIC',
            'REF_SYSTEM': 'ICRF',
            'VEC_TABLE': '2',
            'VEC_LABELS': 'YES',
            'CSV_FORMAT': 'NO',
        }

    def fetch(self, start: datetime, end: datetime, step: str = '1d') -> ParsedSeries:
        response = self._get(self.base_url, self.build_params(start, end, step))
        series = parse_vector_table(response.text, source=self.name)
        logger.info(f"Horizons vectors ({self.center}): {len(series.points)} records, {series.skipped} skipped")
        return series
