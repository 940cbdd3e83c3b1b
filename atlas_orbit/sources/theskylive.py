"""
TheSkyLive Adapter

Fallback observer ephemeris scraped from the public TheSkyLive object page.
The page carries the current apparent position in tagged ``<number>``
elements and a daily ephemeris table with sexagesimal RA/Dec::

    <number class="raApparent">14h 15m 52s</number>
    <number class="decApparent">-10° 16' 24"</number>
    <number class="distanceAU">2.350</number>

    <tr><td>Oct 05, 2025</td><td>14h 15m 52s</td><td>-10° 16' 24"</td><td>2.350</td><td>11.2</td></tr>

The page layout is not a contract; any row that does not parse is skipped.
"""

import html
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from atlas_orbit.errors import ParseError
from atlas_orbit.frame_math import parse_sexagesimal_dec, parse_sexagesimal_ra
from atlas_orbit.models import EphemerisPoint, ParsedSeries
from atlas_orbit.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

THESKYLIVE_URL = 'https://theskylive.com/c2025n1-info'

_TAG = re.compile(r'<[^>]+>')
_ROW = re.compile(r'<tr[^>]*>(.*?)</tr>', re.IGNORECASE | re.DOTALL)
_CELL = re.compile(r'<t[dh][^>]*>(.*?)</t[dh]>', re.IGNORECASE | re.DOTALL)
_FLOAT = re.compile(r'^[-+]?\d+(?:\.\d+)?$')
_DATE_FORMATS = ('%b %d, %Y', '%Y %b %d', '%d %b %Y', '%Y-%m-%d', '%B %d, %Y')


def _text(fragment: str) -> str:
    return ' '.join(html.unescape(_TAG.sub(' ', fragment)).split())


def _tagged_number(page: str, css_class: str) -> Optional[str]:
    match = re.search(rf'<number[^>]*class="{css_class}"[^>]*>(.*?)</number>', page, re.IGNORECASE | re.DOTALL)
    return _text(match.group(1)) if match else None


def _parse_date(text: str) -> datetime:
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date {text!r}")


def parse_current_position(page: str, observed_at: Optional[datetime] = None,
                           source: str = 'theskylive') -> EphemerisPoint:
    """
    Current apparent RA/Dec and geocentric distance from the page header.

    Raises:
        ParseError: if RA or Dec is missing or malformed
    """
    ra_text = _tagged_number(page, 'raApparent')
    dec_text = _tagged_number(page, 'decApparent')
    if not ra_text or not dec_text:
        raise ParseError("TheSkyLive page has no apparent RA/Dec", source=source)

    try:
        ra = parse_sexagesimal_ra(ra_text)
        dec = parse_sexagesimal_dec(dec_text)
        distance_text = _tagged_number(page, 'distanceAU')
        delta = float(distance_text) if distance_text and _FLOAT.match(distance_text) else None
        return EphemerisPoint(
            instant=observed_at or datetime.now(timezone.utc),
            ra=ra, dec=dec, delta=delta,
        )
    except ValueError as e:
        raise ParseError(f"TheSkyLive current position unreadable: {e}", source=source) from e


def parse_theskylive_table(page: str, source: str = 'theskylive') -> ParsedSeries:
    """
    Parse ephemeris table rows (date, RA, Dec, optional distance and magnitude).

    Rows without a recognisable date are treated as layout and ignored
    silently; rows with a date but bad coordinates are logged and counted as
    skipped.
    """
    points: List[EphemerisPoint] = []
    skipped = 0

    for row in _ROW.findall(page):
        cells = [_text(cell) for cell in _CELL.findall(row)]
        if len(cells) < 3:
            continue
        try:
            instant = _parse_date(cells[0])
        except ValueError:
            continue

        try:
            ra = parse_sexagesimal_ra(cells[1])
            dec = parse_sexagesimal_dec(cells[2])
            numbers = [float(cell) for cell in cells[3:] if _FLOAT.match(cell)]
            delta = numbers[0] if numbers else None
            magnitude = numbers[1] if len(numbers) > 1 else None
            points.append(EphemerisPoint(instant=instant, ra=ra, dec=dec, delta=delta, magnitude=magnitude))
        except ValueError as e:
            skipped += 1
            logger.warning(f"Skipping malformed TheSkyLive row {cells!r}: {e}")

    if not points:
        raise ParseError("No ephemeris rows found on TheSkyLive page", source=source)

    points.sort(key=lambda p: p.instant)
    return ParsedSeries(source=source, kind='observer', points=points, skipped=skipped)


class TheSkyLiveSource(SourceAdapter):
    """Secondary observer ephemeris used when Horizons is unavailable."""

    name = 'theskylive'
    kind = 'observer'

    def __init__(self, url: str = THESKYLIVE_URL, **kwargs):
        super().__init__(**kwargs)
        self.url = url

    def fetch(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
              step: str = '1d') -> ParsedSeries:
        """
        Ephemeris table rows, restricted to the days of [start, end] when given.

        The current-position header is folded in as an extra sample so a
        page with an empty table still yields one point.
        """
        response = self._get(self.url)
        page = response.text

        try:
            series = parse_theskylive_table(page, source=self.name)
            points = list(series.points)
            skipped = series.skipped
        except ParseError:
            points, skipped = [], 0

        try:
            current = parse_current_position(page, source=self.name)
            if not any(p.instant.date() == current.instant.date() for p in points):
                points.append(current)
        except ParseError as e:
            logger.warning(f"TheSkyLive current position unavailable: {e}")

        if start is not None:
            points = [p for p in points if p.instant.date() >= start.date()]
        if end is not None:
            points = [p for p in points if p.instant.date() <= end.date()]
        if not points:
            raise ParseError("TheSkyLive returned no usable ephemeris rows", source=self.name)

        points.sort(key=lambda p: p.instant)
        logger.info(f"TheSkyLive ephemeris: {len(points)} rows, {skipped} skipped")
        return ParsedSeries(source=self.name, kind='observer', points=points, skipped=skipped)

    def fetch_current(self) -> EphemerisPoint:
        response = self._get(self.url)
        return parse_current_position(response.text, source=self.name)
