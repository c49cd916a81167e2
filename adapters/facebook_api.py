"""Facebook events via the RapidAPI facebook-event-scraper service."""
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from dateutil import tz

from adapters.rapidapi import RapidApiClient
from processor.dates import parse_timestamp
from processor.models import CandidateEvent
from processor.source_config import FacebookConfig

logger = logging.getLogger(__name__)

EVENT_PATH_PATTERN = re.compile(r'/events/(?:[^/]+/)*?(\d{5,})')
RESERVED_PATHS = {'events', 'pages', 'groups', 'profile.php', 'people'}


def extract_event_id(value: str) -> Optional[str]:
    """
    Event id from a bare id or an event URL.

    Handles /events/<id>, /events/<slug>/<id> and ?event_id=<id>.
    """
    value = (value or '').strip()
    if value.isdigit():
        return value

    parsed = urlparse(value)
    match = EVENT_PATH_PATTERN.search(parsed.path)
    if match:
        return match.group(1)

    query_id = parse_qs(parsed.query).get('event_id')
    if query_id and query_id[0].isdigit():
        return query_id[0]
    return None


def extract_page_id(value: str) -> Optional[str]:
    """Page id or vanity name from a bare id or a page URL."""
    value = (value or '').strip()
    if not value:
        return None
    if '/' not in value and '.' not in value:
        return value

    parsed = urlparse(value if '://' in value else f"https://{value}")
    profile_id = parse_qs(parsed.query).get('id')
    if profile_id:
        return profile_id[0]

    segments = [segment for segment in parsed.path.split('/') if segment]
    if segments and segments[0] not in RESERVED_PATHS:
        return segments[0]
    return None


def to_candidate(data: Dict[str, Any]) -> Optional[CandidateEvent]:
    """Convert a service event record; records without a start are dropped."""
    name = data.get('name')
    start = parse_timestamp(data.get('startTimestamp')) if data.get('startTimestamp') else None
    if not name or start is None:
        return None

    end = parse_timestamp(data['endTimestamp']) if data.get('endTimestamp') else None

    location = data.get('location') or {}
    city = (location.get('city') or {}).get('name')
    address_parts = [part for part in (location.get('address'), city) if part]
    coordinates = location.get('coordinates') or {}

    event_id = data.get('id')
    url = data.get('eventUrl') or (f"https://www.facebook.com/events/{event_id}" if event_id else None)

    hosts = [host.get('name') for host in data.get('hosts') or [] if host.get('name')]
    contact_info = {'hosts': hosts} if hosts else {}
    if data.get('ticketUrl'):
        contact_info['ticket_url'] = data['ticketUrl']

    return CandidateEvent(
        title=name,
        start=start,
        end=end,
        description=data.get('description'),
        location=location.get('name'),
        address=', '.join(address_parts) or None,
        latitude=coordinates.get('latitude'),
        longitude=coordinates.get('longitude'),
        external_url=url,
        external_event_id=f"fb_{event_id}" if event_id else None,
        contact_info=contact_info
    )


class FacebookEventsClient(RapidApiClient):
    """Fetches single events, explicit event lists, or a page's event listing."""

    SERVICE = 'Facebook events API'
    HOST = 'facebook-event-scraper.p.rapidapi.com'

    def get_event(self, event_id: str) -> Dict[str, Any]:
        return self._request('GET', '/event', params={'eventid': event_id})

    def get_page_events(self, page_id: str, cursor: Optional[str] = None) -> Dict[str, Any]:
        params = {'page_id': page_id}
        if cursor:
            params['cursor'] = cursor
        return self._request('GET', '/page/events', params=params)

    def fetch_event(self, event_url_or_id: str) -> Optional[CandidateEvent]:
        event_id = extract_event_id(event_url_or_id)
        if not event_id:
            raise ValueError(f"Could not extract event ID from: {event_url_or_id}")
        return to_candidate(self.get_event(event_id))

    def fetch_events(self, identifier: str, config: Optional[FacebookConfig] = None) -> List[CandidateEvent]:
        """
        Fetch events for a source.

        An explicit event id list in the config wins, then a single event URL,
        then the page listing (from the config page id or the source URL).

        Args:
            identifier: Source URL, event URL or bare id
            config: Facebook source options

        Returns:
            Candidate events
        """
        config = config or FacebookConfig()

        if config.event_ids:
            logger.info(f"Fetching {len(config.event_ids)} listed Facebook events")
            return self._follow(config.event_ids, self.fetch_event, limit=None)

        if extract_event_id(identifier) and not config.page_id:
            event = self.fetch_event(identifier)
            return [event] if event else []

        page_id = config.page_id or extract_page_id(identifier)
        if not page_id:
            raise ValueError(f"Could not determine Facebook page from: {identifier}")
        return self.fetch_page_events(page_id, config)

    def fetch_page_events(self, page_id: str, config: FacebookConfig) -> List[CandidateEvent]:
        def fetch_page(cursor):
            data = self.get_page_events(page_id, cursor)
            return data.get('events') or [], data.get('cursor') or data.get('next_cursor')

        records = self._paginate(fetch_page, config.max_events)

        # listing entries sometimes omit timestamps; the detail record has them
        complete = [record for record in records if record.get('startTimestamp')]
        partial_ids = [str(record['id']) for record in records
                       if not record.get('startTimestamp') and record.get('id')]
        details = self._follow(partial_ids, self.get_event)

        events = []
        for record in complete + details:
            event = to_candidate(record)
            if event:
                events.append(event)

        if not config.include_past_events:
            now = datetime.now(tz=tz.UTC)
            events = [event for event in events if (event.end or event.start) >= now]

        logger.info(f"Fetched {len(events)} events for Facebook page {page_id}")
        return events
