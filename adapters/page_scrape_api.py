"""Firecrawl page-scrape API adapter."""
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import requests

from processor.dates import parse_datetime_text, parse_iso
from processor.errors import NotConfiguredError, RemoteServiceError
from processor.event_processor import hash_key
from processor.models import CandidateEvent
from processor.source_config import PageScrapeConfig

logger = logging.getLogger(__name__)

BASE_URL = 'https://api.firecrawl.dev/v1'

DEFAULT_SCRAPE_OPTIONS = {
    'formats': ['markdown'],
    'onlyMainContent': True,
    'excludeTags': ['nav', 'footer', 'header', 'script', 'style', 'aside'],
}

EVENT_SCHEMA = {
    'type': 'object',
    'properties': {
        'events': {
            'type': 'array',
            'description': 'List of events found on the page',
            'items': {
                'type': 'object',
                'properties': {
                    'title': {'type': 'string'},
                    'description': {'type': 'string'},
                    'date': {'type': 'string'},
                    'time': {'type': 'string'},
                    'start_datetime': {'type': 'string'},
                    'end_datetime': {'type': 'string'},
                    'location': {'type': 'string'},
                    'address': {'type': 'string'},
                    'url': {'type': 'string'},
                },
            },
        },
    },
    'required': ['events'],
}

HEADING_PATTERN = re.compile(
    r'^##\s+(?P<title>.+?)\s*$'
    r'(?:\n(?:.*?(?:date|when|time)[^:\n]*:?\s*(?P<date>.+?)\s*$))?'
    r'(?:\n(?:.*?(?:location|where|venue)[^:\n]*:?\s*(?P<location>.+?)\s*$))?',
    re.IGNORECASE | re.MULTILINE
)

LIST_PATTERN = re.compile(
    r'^[-*]\s+\*\*(?P<title>.+?)\*\*(?:\s*[-–—]\s*(?P<date>.+?))?(?:\s*[-–—]\s*(?P<location>.+?))?\s*$',
    re.MULTILINE
)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_event_data(data: Dict[str, Any], source_url: str) -> Optional[CandidateEvent]:
    """Map a structured-extract record with loosely named keys to a candidate."""
    title = _text(data.get('title') or data.get('name'))
    if not title:
        return None

    start_text = _text(data.get('start_datetime') or data.get('startDatetime'))
    start = parse_iso(start_text) if start_text else None
    if start is None:
        combined = ' '.join(part for part in (_text(data.get('date')), _text(data.get('time'))) if part)
        start = parse_datetime_text(combined or start_text, roll_forward=True)

    end_text = _text(data.get('end_datetime') or data.get('endDatetime'))
    link = _text(data.get('url') or data.get('link'))
    url = urljoin(source_url, link) if link else None

    return CandidateEvent(
        title=title,
        start=start,
        end=parse_datetime_text(end_text) if end_text else None,
        description=_text(data.get('description')),
        location=_text(data.get('location') or data.get('venue')),
        address=_text(data.get('address')),
        external_url=url or source_url,
        external_event_id=hash_key(url) if url else None
    )


def parse_markdown_events(markdown: str, source_url: str) -> List[CandidateEvent]:
    """Heading blocks and bold list items that carry a recognisable date."""
    events = []
    for pattern in (HEADING_PATTERN, LIST_PATTERN):
        for match in pattern.finditer(markdown):
            start = parse_datetime_text(match.group('date'), roll_forward=True)
            if start is None:
                continue
            events.append(CandidateEvent(
                title=match.group('title').strip(),
                start=start,
                location=_text(match.group('location')),
                external_url=source_url
            ))
    return events


class PageScrapeClient:
    """Client for the Firecrawl v1 scrape and search endpoints."""

    SERVICE = 'Firecrawl'

    def __init__(self, api_key: Optional[str], timeout: int = 60):
        self.api_key = api_key
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_available():
            raise NotConfiguredError(self.SERVICE)

        try:
            response = requests.post(
                f"{BASE_URL}{path}",
                json=body,
                headers={'Authorization': f"Bearer {self.api_key}"},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise RemoteServiceError(self.SERVICE, str(e), status_code=status) from e
        except requests.RequestException as e:
            raise RemoteServiceError(self.SERVICE, str(e)) from e
        except ValueError as e:
            raise RemoteServiceError(self.SERVICE, 'invalid JSON response') from e

        if not data.get('success', False):
            raise RemoteServiceError(self.SERVICE, data.get('error') or 'request unsuccessful')
        return data

    def scrape(self, url: str, **options) -> Dict[str, Any]:
        body = {'url': url}
        body.update(DEFAULT_SCRAPE_OPTIONS)
        body.update(options)
        return self._post('/scrape', body)

    def extract(self, url: str, schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._post('/scrape', {
            'url': url,
            'formats': ['extract'],
            'extract': {'schema': schema or EVENT_SCHEMA},
        })

    def search(self, query: str, limit: int = 10) -> Dict[str, Any]:
        return self._post('/search', {'query': query, 'limit': limit})

    def parse_events(self, response: Dict[str, Any], source_url: str) -> List[CandidateEvent]:
        """
        Events from a scrape response.

        Structured extract results are used when present, otherwise the
        Markdown body is scanned for heading and list patterns.
        """
        data = response.get('data')
        if isinstance(data, list):
            events = []
            for result in data:
                events.extend(self.parse_events({'data': result}, result.get('url') or source_url))
            return events
        if not isinstance(data, dict):
            return []

        extract = data.get('extract') or {}
        if isinstance(extract.get('events'), list):
            events = []
            for record in extract['events']:
                if isinstance(record, dict):
                    event = normalize_event_data(record, source_url)
                    if event:
                        events.append(event)
            return events

        if data.get('markdown'):
            return parse_markdown_events(data['markdown'], source_url)
        return []

    def fetch_events(self, url: str, config: Optional[PageScrapeConfig] = None) -> List[CandidateEvent]:
        """
        Fetch events from a page with the configured method.

        Args:
            url: Page URL
            config: Method (structured, search, basic) and search query

        Returns:
            Candidate events; undated records keep start None and are dropped downstream
        """
        config = config or PageScrapeConfig()

        if config.method == 'search':
            host = urlparse(url).hostname
            query = config.search_query or f"events site:{host}"
            response = self.search(query, limit=20)
        elif config.method == 'basic':
            response = self.scrape(url)
        else:
            response = self.extract(url)

        events = self.parse_events(response, url)
        logger.info(f"Firecrawl {config.method} returned {len(events)} events for {url}")
        return events
