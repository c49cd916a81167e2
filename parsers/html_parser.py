"""HTML page parser driven by CSS selectors."""
import logging
from datetime import datetime
from typing import List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from processor.dates import format_instant, fallback_now, parse_datetime_text
from processor.event_processor import hash_key
from processor.models import CandidateEvent
from processor.source_config import HtmlConfig

logger = logging.getLogger(__name__)


def _select_text(container, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    element = container.select_one(selector)
    if element is None:
        return None
    text = element.get_text(' ', strip=True)
    return text or None


def _extract_title(container, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    element = container.select_one(selector)
    if element is None:
        return None
    # image-based titles carry their text in alt
    title = element.get('alt') or element.get_text(' ', strip=True)
    return title.strip() if title else None


def _extract_datetime_text(container, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    element = container.select_one(selector)
    if element is None:
        return None
    return element.get('datetime') or element.get_text(' ', strip=True) or None


def _extract_link(container, selector: Optional[str], base_url: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    element = container.select_one(selector)
    if element is None:
        return None
    if element.name != 'a':
        element = element.find('a') or element
    href = element.get('href')
    if not href:
        return None
    return urljoin(base_url, href) if base_url else href


def parse_html(
    content: Union[str, bytes],
    config: HtmlConfig,
    source_url: Optional[str] = None,
    now: Optional[datetime] = None
) -> List[CandidateEvent]:
    """
    Extract events from a page using the configured selectors.

    Each element matching the container selector becomes one candidate.
    Containers without a title are skipped. When the date text cannot be
    parsed the start falls back to the current time so the event still
    reaches review; such items without a link are keyed on the page URL
    and title so re-runs match the same stored event.

    Args:
        content: HTML document
        config: Container and per-field selectors
        source_url: URL the page was fetched from, used to resolve links
        now: Reference time for year defaults and the fallback start

    Returns:
        List of candidate events
    """
    soup = BeautifulSoup(content, 'html.parser')
    selectors = config.selectors
    base_url = config.base_url or source_url

    containers = soup.select(selectors.event_container)
    logger.debug(f"Found {len(containers)} containers for '{selectors.event_container}'")

    events = []
    for container in containers:
        title = _extract_title(container, selectors.title)
        if not title:
            continue

        datetime_text = _extract_datetime_text(container, selectors.datetime)
        start = parse_datetime_text(datetime_text, default_year=config.year, now=now)

        url = _extract_link(container, selectors.link, base_url)
        if url:
            key_source = url
        elif start is not None:
            key_source = f"{title}{format_instant(start)}"
        else:
            # the fallback start moves every run; key on page and title instead
            key_source = f"{base_url or ''}|{title}"
        if start is None:
            start = fallback_now(now)

        events.append(CandidateEvent(
            title=title,
            start=start,
            description=_select_text(container, selectors.description),
            location=_select_text(container, selectors.location),
            external_url=url,
            external_event_id=hash_key(key_source)
        ))

    return events
