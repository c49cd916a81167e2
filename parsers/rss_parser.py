"""RSS 2.0 and Atom feed parser."""
import calendar
import io
import logging
from datetime import datetime
from typing import List, Optional, Union

import feedparser
from bs4 import BeautifulSoup
from dateutil import tz

from processor.event_processor import hash_key
from processor.models import CandidateEvent

logger = logging.getLogger(__name__)


def strip_markup(value: Optional[str]) -> Optional[str]:
    """Remove HTML tags, keeping the visible text."""
    if not value:
        return None
    text = BeautifulSoup(value, 'html.parser').get_text(' ', strip=True)
    return text or None


def _struct_to_datetime(value) -> Optional[datetime]:
    """feedparser exposes dates as UTC time.struct_time."""
    if not value:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=tz.UTC)


def _categories(entry) -> List[str]:
    names = []
    for tag in entry.get('tags', []) or []:
        term = tag.get('term') or tag.get('label')
        if term:
            names.append(term.strip())
    return names


def _atom_link(entry) -> Optional[str]:
    links = entry.get('links', []) or []
    for link in links:
        if link.get('rel', 'alternate') == 'alternate' and link.get('href'):
            return link['href']
    for link in links:
        if link.get('href'):
            return link['href']
    return None


def _rss_item(entry) -> Optional[CandidateEvent]:
    title = (entry.get('title') or '').strip()
    if not title:
        return None

    body = entry.get('summary')
    if not body and entry.get('content'):
        body = entry['content'][0].get('value')

    link = entry.get('link')
    return CandidateEvent(
        title=title,
        start=_struct_to_datetime(entry.get('published_parsed')),
        description=strip_markup(body),
        external_url=link,
        external_event_id=hash_key(link) if link else None,
        categories=_categories(entry)
    )


def _atom_entry(entry) -> Optional[CandidateEvent]:
    title = (entry.get('title') or '').strip()
    if not title:
        return None

    body = None
    if entry.get('content'):
        body = entry['content'][0].get('value')
    body = body or entry.get('summary')

    start = _struct_to_datetime(
        entry.get('published_parsed') or entry.get('updated_parsed')
    )

    link = _atom_link(entry)
    key_source = link or entry.get('id')
    return CandidateEvent(
        title=title,
        start=start,
        description=strip_markup(body),
        external_url=link,
        external_event_id=hash_key(key_source) if key_source else None,
        categories=_categories(entry)
    )


def parse_feed(content: Union[str, bytes], config=None, source_url: Optional[str] = None) -> List[CandidateEvent]:
    """
    Parse an RSS 2.0 or Atom document into candidate events.

    Entries without a title are skipped. Entries without a publication date
    carry no start and are dropped later by the event processor.

    Args:
        content: Feed document
        config: Unused, accepted for the common parser signature
        source_url: Unused, accepted for the common parser signature

    Returns:
        List of candidate events, empty if the document is not a feed
    """
    if isinstance(content, str):
        content = content.encode('utf-8')

    feed = feedparser.parse(io.BytesIO(content))
    version = feed.get('version') or ''

    if version.startswith('atom'):
        convert = _atom_entry
    elif version.startswith('rss'):
        convert = _rss_item
    else:
        if feed.get('bozo'):
            logger.debug(f"Feed could not be parsed: {feed.get('bozo_exception')}")
        return []

    events = []
    for entry in feed.entries:
        event = convert(entry)
        if event:
            events.append(event)
    return events
