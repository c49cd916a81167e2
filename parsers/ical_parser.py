"""iCalendar feed parser."""
import logging
import re
from typing import Dict, List, Optional, Tuple, Union

from processor.dates import parse_ical_datetime
from processor.models import CandidateEvent

logger = logging.getLogger(__name__)

ESCAPE_PATTERN = re.compile(r'\\([\\,;nN])')


def unfold_lines(content: str) -> List[str]:
    """
    Join folded content lines.

    A line starting with a space or tab continues the previous line; exactly
    one leading whitespace character is removed before appending.

    Args:
        content: Raw calendar text

    Returns:
        List of logical lines
    """
    lines: List[str] = []
    for raw_line in re.split(r'\r\n|\n|\r', content):
        if raw_line[:1] in (' ', '\t') and lines:
            lines[-1] += raw_line[1:]
        else:
            lines.append(raw_line)
    return lines


def unescape_text(value: str) -> str:
    """Decode the TEXT escapes \\, \\; \\n \\N and \\\\."""
    def _replace(match):
        char = match.group(1)
        return '\n' if char in ('n', 'N') else char
    return ESCAPE_PATTERN.sub(_replace, value)


def _split_property(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    """Split NAME;PARAM=x:VALUE into name, params and value."""
    if ':' not in line:
        return None
    head, value = line.split(':', 1)
    parts = head.split(';')
    params = {}
    for param in parts[1:]:
        if '=' in param:
            key, param_value = param.split('=', 1)
            params[key.upper()] = param_value.strip('"')
    return parts[0].upper(), params, value


def _build_event(properties: Dict[str, Tuple[Dict[str, str], str]]) -> Optional[CandidateEvent]:
    summary = properties.get('SUMMARY')
    dtstart = properties.get('DTSTART')
    if not summary or not dtstart:
        return None

    title = unescape_text(summary[1]).strip()
    start = parse_ical_datetime(dtstart[1], dtstart[0].get('TZID'))
    if not title or start is None:
        return None

    end = None
    if 'DTEND' in properties:
        params, value = properties['DTEND']
        end = parse_ical_datetime(value, params.get('TZID'))

    latitude = longitude = None
    if 'GEO' in properties:
        geo = properties['GEO'][1].split(';')
        if len(geo) == 2:
            try:
                latitude, longitude = float(geo[0]), float(geo[1])
            except ValueError:
                logger.debug(f"Ignoring malformed GEO value: {properties['GEO'][1]}")

    def text(name: str) -> Optional[str]:
        if name not in properties:
            return None
        return unescape_text(properties[name][1]) or None

    categories = []
    if 'CATEGORIES' in properties:
        categories = [
            unescape_text(c).strip()
            for c in re.split(r'(?<!\\),', properties['CATEGORIES'][1])
            if c.strip()
        ]

    return CandidateEvent(
        title=title,
        start=start,
        end=end,
        description=text('DESCRIPTION'),
        location=text('LOCATION'),
        latitude=latitude,
        longitude=longitude,
        external_url=text('URL'),
        external_event_id=text('UID'),
        categories=categories
    )


def parse_ical(content: Union[str, bytes], config=None, source_url: Optional[str] = None) -> List[CandidateEvent]:
    """
    Parse VEVENT blocks from an iCalendar document.

    Args:
        content: Calendar text or bytes
        config: Unused, accepted for the common parser signature
        source_url: Unused, accepted for the common parser signature

    Returns:
        Candidate events; blocks without SUMMARY or a valid DTSTART are skipped
    """
    if isinstance(content, bytes):
        content = content.decode('utf-8', errors='replace')

    events = []
    properties: Optional[Dict[str, Tuple[Dict[str, str], str]]] = None
    nested = 0
    skipped = 0

    for line in unfold_lines(content):
        marker = line.strip().upper()
        if marker == 'BEGIN:VEVENT':
            properties = {}
            nested = 0
            continue
        if marker == 'END:VEVENT':
            if properties is not None:
                event = _build_event(properties)
                if event:
                    events.append(event)
                else:
                    skipped += 1
            properties = None
            continue
        if properties is None:
            continue

        # VALARM and other sub-components carry their own SUMMARY/DESCRIPTION
        if marker.startswith('BEGIN:'):
            nested += 1
            continue
        if marker.startswith('END:'):
            nested = max(nested - 1, 0)
            continue
        if nested:
            continue

        parsed = _split_property(line)
        if parsed:
            name, params, value = parsed
            # first occurrence wins for repeated properties
            properties.setdefault(name, (params, value))

    if skipped:
        logger.debug(f"Skipped {skipped} VEVENT blocks without summary or start")
    return events
