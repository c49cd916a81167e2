"""Eventbrite events via the RapidAPI eventbrite-scraper service."""
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from adapters.rapidapi import RapidApiClient
from parsers.rss_parser import strip_markup
from processor.dates import parse_iso
from processor.models import CandidateEvent
from processor.source_config import EventbriteConfig

logger = logging.getLogger(__name__)

SLUG_ID_PATTERN = re.compile(r'/e/[^/]+-(\d+)/?$')
BARE_ID_PATTERN = re.compile(r'/e/(\d+)')


def extract_event_id(value: str) -> Optional[str]:
    """Event id from a bare id, /e/<slug>-<id> or /e/<id>."""
    value = (value or '').strip()
    if value.isdigit():
        return value
    path = urlparse(value).path
    match = SLUG_ID_PATTERN.search(path) or BARE_ID_PATTERN.search(path)
    return match.group(1) if match else None


def is_search_url(url: str) -> bool:
    """Directory listings live under /d/."""
    return '/d/' in urlparse(url).path


def _instant(block: Optional[Dict[str, Any]]):
    """Prefer the UTC value of a {utc, local} pair."""
    if not block:
        return None
    for key in ('utc', 'local'):
        if block.get(key):
            value = parse_iso(block[key])
            if value is not None:
                return value
    return None


def to_candidate(data: Dict[str, Any]) -> Optional[CandidateEvent]:
    """Convert a service event record; records without a start are dropped."""
    event = data.get('event') or {}
    organizer = data.get('organizer_info') or {}
    title = event.get('name') or organizer.get('eventTitle')
    start = _instant(event.get('start'))
    if not title or start is None:
        if title:
            logger.debug(f"No usable start time for Eventbrite event '{title}'")
        return None

    paragraphs = []
    for item in data.get('about') or []:
        if item.get('type') == 'text' and item.get('text'):
            text = strip_markup(item['text'])
            if text:
                paragraphs.append(text)

    event_map = data.get('eventMap') or {}
    location = event_map.get('location') or {}
    categories = [name for name in (event.get('category'), event.get('subcategory')) if name]

    contact_info = {}
    organizer_name = organizer.get('displayOrganizationName') or organizer.get('name')
    if organizer_name:
        contact_info['organizer'] = organizer_name
    if organizer.get('url'):
        contact_info['organizer_url'] = organizer['url']

    return CandidateEvent(
        title=title,
        start=start,
        end=_instant(event.get('end')),
        description='\n\n'.join(paragraphs) or None,
        location=event_map.get('venueName'),
        address=event_map.get('venueAddress'),
        latitude=location.get('latitude'),
        longitude=location.get('longitude'),
        external_url=event.get('url') or data.get('event_url'),
        external_event_id=f"eb_{event['id']}" if event.get('id') else None,
        categories=categories,
        contact_info=contact_info
    )


class EventbriteClient(RapidApiClient):
    """Fetches a single Eventbrite event or a directory search."""

    SERVICE = 'Eventbrite API'
    HOST = 'eventbrite-scraper.p.rapidapi.com'

    def scrape(self, input_url: str, max_pages: Optional[int] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {'input_url': input_url}
        if max_pages is not None:
            body['max_page_number'] = max_pages
        return self._request('POST', '/', json_body=body)

    def fetch_event(self, event_url: str) -> Optional[CandidateEvent]:
        return to_candidate(self.scrape(event_url))

    def fetch_events(self, identifier: str, config: Optional[EventbriteConfig] = None) -> List[CandidateEvent]:
        """
        Fetch events for a source URL.

        Args:
            identifier: Event URL, bare event id, or /d/ search URL
            config: Page and result caps

        Returns:
            Candidate events
        """
        config = config or EventbriteConfig()

        if not is_search_url(identifier):
            if identifier.strip().isdigit():
                identifier = f"https://www.eventbrite.com/e/{identifier.strip()}"
            event = self.fetch_event(identifier)
            return [event] if event else []

        data = self.scrape(identifier, max_pages=config.max_pages)
        records = (data.get('events') or [])[:config.max_results]
        logger.info(
            f"Eventbrite search returned {len(records)} events "
            f"from {data.get('pages_scraped', '?')} pages"
        )

        events = []
        follow_urls = []
        for record in records:
            event = to_candidate(record)
            if event:
                events.append(event)
            elif record.get('event_url'):
                follow_urls.append(record['event_url'])

        events.extend(self._follow(follow_urls, self.fetch_event))
        return events
