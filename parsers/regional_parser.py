"""Heuristic parser for the regional tourism calendar.

The regional visitor site has no stable markup, so extraction runs through
three layers and stops at the first one that yields events:

1. schema.org Event objects embedded as JSON-LD
2. card, article and listing blocks
3. "Title - Month Day[, Year]" lines anywhere in the page text
"""
import json
import logging
import re
from datetime import datetime
from typing import Any, Iterator, List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from processor.dates import MONTH_NAME, parse_datetime_text, parse_iso
from processor.event_processor import hash_key
from processor.models import CandidateEvent
from processor.source_config import RegionalConfig

logger = logging.getLogger(__name__)

BLOCK_SELECTOR = (
    'article, [class*="event"], [class*="listing"], [class*="card"], [class*="item"]'
)

BLOCK_DATE_PATTERN = re.compile(
    rf'({MONTH_NAME}\.?\s+\d{{1,2}}(?!\d)(?:st|nd|rd|th)?(?:,?\s*\d{{4}})?'
    r'(?:\s*(?:at|@|,|-)?\s*\d{1,2}(?::\d{2})?\s*(?:am|pm))?)',
    re.IGNORECASE
)

LOCATION_PATTERN = re.compile(
    r'(?:\b(?i:location|venue|where)\s*:\s*|(?:\bat|@)\s+(?=[A-Z]))([^\n]{3,100})'
)

LINE_PATTERN = re.compile(
    rf'^\s*(?P<title>[^\n]{{3,120}}?)\s+[-–—]\s+'
    rf'(?P<date>{MONTH_NAME}\.?\s+\d{{1,2}}(?!\d)(?:st|nd|rd|th)?(?:,?\s*\d{{4}})?)',
    re.IGNORECASE | re.MULTILINE
)


def _is_event_type(value: Any) -> bool:
    if isinstance(value, list):
        return any(_is_event_type(item) for item in value)
    return isinstance(value, str) and value.endswith('Event')


def _walk_json_ld(data: Any) -> Iterator[dict]:
    """Yield every object with an Event @type, recursing through lists and @graph."""
    if isinstance(data, list):
        for item in data:
            yield from _walk_json_ld(item)
    elif isinstance(data, dict):
        if _is_event_type(data.get('@type')):
            yield data
        if '@graph' in data:
            yield from _walk_json_ld(data['@graph'])


def _json_ld_location(data: dict):
    """Return (location name, address text) from a schema.org location."""
    location = data.get('location')
    if isinstance(location, list):
        location = location[0] if location else None
    if isinstance(location, str):
        return location, None
    if not isinstance(location, dict):
        return None, None

    address = location.get('address')
    if isinstance(address, dict):
        parts = [
            address.get('streetAddress'),
            address.get('addressLocality'),
            address.get('addressRegion'),
            address.get('postalCode'),
        ]
        address = ', '.join(part for part in parts if part)
    return location.get('name'), address or None


def _parse_json_ld(soup, base_url: Optional[str]) -> List[CandidateEvent]:
    events = []
    for script in soup.find_all('script', type='application/ld+json'):
        try:
            data = json.loads(script.string or '')
        except ValueError:
            continue

        for item in _walk_json_ld(data):
            title = item.get('name')
            start = parse_iso(item['startDate']) if item.get('startDate') else None
            if not title or start is None:
                continue

            location, address = _json_ld_location(item)
            url = item.get('url')
            if url and base_url:
                url = urljoin(base_url, url)
            events.append(CandidateEvent(
                title=title,
                start=start,
                end=parse_iso(item['endDate']) if item.get('endDate') else None,
                description=item.get('description'),
                location=location,
                address=address,
                external_url=url,
                external_event_id=item.get('@id') or (hash_key(url) if url else None)
            ))
    return events


def _parse_blocks(soup, config: RegionalConfig, base_url: Optional[str], now: datetime) -> List[CandidateEvent]:
    events = []
    seen = set()
    for block in soup.select(BLOCK_SELECTOR):
        heading = block.find(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']) or block.find('a') or block.find('strong')
        if heading is None:
            continue
        title = heading.get_text(' ', strip=True)
        if not title:
            continue

        text = block.get_text('\n', strip=True)
        date_match = BLOCK_DATE_PATTERN.search(text)
        if not date_match:
            continue

        start = parse_datetime_text(
            date_match.group(1), default_year=config.year, now=now, roll_forward=True
        )
        if start is None or (title, start) in seen:
            continue
        # nested blocks match the same event more than once
        seen.add((title, start))

        location = None
        location_match = LOCATION_PATTERN.search(text)
        if location_match:
            location = location_match.group(1).strip()

        description = None
        for paragraph in block.find_all('p'):
            paragraph_text = paragraph.get_text(' ', strip=True)
            if date_match.group(1) in paragraph_text or (location and location in paragraph_text):
                continue
            if 10 <= len(paragraph_text) <= 500:
                description = paragraph_text
                break

        link = block.find('a', href=True)
        url = urljoin(base_url, link['href']) if link and base_url else (link['href'] if link else None)

        events.append(CandidateEvent(
            title=title,
            start=start,
            description=description,
            location=location,
            external_url=url,
            external_event_id=hash_key(url) if url else None
        ))
    return events


def _parse_lines(soup, config: RegionalConfig, now: datetime) -> List[CandidateEvent]:
    events = []
    text = soup.get_text('\n')
    for match in LINE_PATTERN.finditer(text):
        start = parse_datetime_text(
            match.group('date'), default_year=config.year, now=now, roll_forward=True
        )
        if start is None:
            continue
        events.append(CandidateEvent(title=match.group('title').strip(), start=start))
    return events


def parse_regional(
    content: Union[str, bytes],
    config: Optional[RegionalConfig] = None,
    source_url: Optional[str] = None,
    now: Optional[datetime] = None
) -> List[CandidateEvent]:
    """
    Extract events from the regional tourism calendar.

    Args:
        content: HTML document
        config: Optional base URL and reference year
        source_url: URL the page was fetched from
        now: Reference time for year roll-forward

    Returns:
        Events from the first layer that found any
    """
    config = config or RegionalConfig()
    now = now or datetime.now()
    base_url = config.base_url or source_url
    soup = BeautifulSoup(content, 'html.parser')

    events = _parse_json_ld(soup, base_url)
    if events:
        logger.debug(f"Found {len(events)} events in JSON-LD")
        return events

    # script bodies must not leak into text matching
    for tag in soup(['script', 'style']):
        tag.decompose()

    events = _parse_blocks(soup, config, base_url, now)
    if events:
        logger.debug(f"Found {len(events)} events in listing blocks")
        return events

    events = _parse_lines(soup, config, now)
    logger.debug(f"Found {len(events)} events by line pattern")
    return events
