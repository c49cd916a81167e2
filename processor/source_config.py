"""Per-source-type configuration variants.

Stored sources carry a free-form configuration blob. It is converted here,
at the registry boundary, into one dataclass per source type so the parsers
and adapters never read unchecked keys.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from processor.errors import InvalidSourceConfigError, UnsupportedSourceTypeError
from processor.models import SourceType


@dataclass
class IcalConfig:
    pass


@dataclass
class RssConfig:
    pass


@dataclass
class AdaptiveConfig:
    pass


@dataclass
class HtmlSelectors:
    event_container: str
    title: Optional[str] = None
    description: Optional[str] = None
    datetime: Optional[str] = None
    location: Optional[str] = None
    link: Optional[str] = None


@dataclass
class HtmlConfig:
    selectors: HtmlSelectors
    base_url: Optional[str] = None
    year: Optional[int] = None


@dataclass
class RegionalConfig:
    base_url: Optional[str] = None
    year: Optional[int] = None


DEFAULT_FIELD_MAPPING = {
    'title': 'title',
    'description': 'description',
    'start': 'start_datetime',
    'end': 'end_datetime',
    'location': 'location',
    'address': 'address',
    'latitude': 'latitude',
    'longitude': 'longitude',
    'url': 'url',
    'id': 'id',
    'categories': 'categories',
}

FIELD_ALIASES = {
    'startDatetime': 'start',
    'start_datetime': 'start',
    'endDatetime': 'end',
    'end_datetime': 'end',
    'lat': 'latitude',
    'lng': 'longitude',
    'lon': 'longitude',
    'externalUrl': 'url',
    'external_url': 'url',
    'link': 'url',
    'externalEventId': 'id',
    'external_event_id': 'id',
}


@dataclass
class JsonConfig:
    events_path: str = 'events'
    field_mapping: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_MAPPING)
    )


@dataclass
class PageScrapeConfig:
    method: str = 'structured'
    search_query: Optional[str] = None
    fallback_type: str = 'html'
    html: Optional[HtmlConfig] = None


@dataclass
class FacebookConfig:
    page_id: Optional[str] = None
    event_ids: List[str] = field(default_factory=list)
    include_past_events: bool = False
    max_events: int = 50


@dataclass
class EventbriteConfig:
    max_pages: int = 3
    max_results: int = 100


SELECTOR_ALIASES = {
    'eventContainer': 'event_container',
    'container': 'event_container',
    'url': 'link',
    'date': 'datetime',
}

PAGE_SCRAPE_METHODS = ('structured', 'search', 'basic')
FALLBACK_TYPES = (SourceType.HTML.value, SourceType.REGIONAL_HTML.value)


def _get(raw: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _as_int(value, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidSourceConfigError(f"'{name}' must be an integer, got {value!r}")


def _parse_selectors(raw: Any) -> HtmlSelectors:
    if not isinstance(raw, dict):
        raise InvalidSourceConfigError("'selectors' must be an object")

    values = {}
    for key, value in raw.items():
        name = SELECTOR_ALIASES.get(key, key)
        if name not in HtmlSelectors.__dataclass_fields__:
            continue
        if value is not None and not isinstance(value, str):
            raise InvalidSourceConfigError(f"Selector '{key}' must be a string")
        values[name] = value

    if not values.get('event_container'):
        raise InvalidSourceConfigError("HTML sources require selectors.event_container")
    return HtmlSelectors(**values)


def parse_html_config(raw: Dict[str, Any]) -> HtmlConfig:
    return HtmlConfig(
        selectors=_parse_selectors(raw.get('selectors')),
        base_url=_get(raw, 'base_url', 'baseUrl'),
        year=_as_int(raw.get('year'), 'year')
    )


def _parse_json(raw: Dict[str, Any]) -> JsonConfig:
    events_path = _get(raw, 'events_path', 'eventsPath', default='events')
    if not isinstance(events_path, str):
        raise InvalidSourceConfigError("'events_path' must be a string")

    mapping = dict(DEFAULT_FIELD_MAPPING)
    custom = _get(raw, 'field_mapping', 'fieldMapping', default={})
    if not isinstance(custom, dict):
        raise InvalidSourceConfigError("'field_mapping' must be an object")
    for key, path in custom.items():
        name = FIELD_ALIASES.get(key, key)
        if name not in DEFAULT_FIELD_MAPPING:
            raise InvalidSourceConfigError(f"Unknown mapped field '{key}'")
        if not isinstance(path, str):
            raise InvalidSourceConfigError(f"Mapping for '{key}' must be a string path")
        mapping[name] = path

    return JsonConfig(events_path=events_path, field_mapping=mapping)


def _parse_page_scrape(raw: Dict[str, Any]) -> PageScrapeConfig:
    method = _get(raw, 'method', 'firecrawlMethod', default='structured')
    if method not in PAGE_SCRAPE_METHODS:
        raise InvalidSourceConfigError(f"Unknown page-scrape method '{method}'")

    fallback_type = _get(raw, 'fallback_type', 'fallbackType', default='html')
    if fallback_type == 'yakima_valley':
        fallback_type = SourceType.REGIONAL_HTML.value
    if fallback_type not in FALLBACK_TYPES:
        raise InvalidSourceConfigError(f"Unsupported fallback type '{fallback_type}'")

    html_config = None
    if raw.get('selectors'):
        html_config = parse_html_config(raw)

    return PageScrapeConfig(
        method=method,
        search_query=_get(raw, 'search_query', 'searchQuery'),
        fallback_type=fallback_type,
        html=html_config
    )


def _parse_facebook(raw: Dict[str, Any]) -> FacebookConfig:
    event_ids = _get(raw, 'event_ids', 'eventIds', default=[])
    if not isinstance(event_ids, list):
        raise InvalidSourceConfigError("'event_ids' must be a list")
    page_id = _get(raw, 'page_id', 'facebookPageId')
    return FacebookConfig(
        page_id=str(page_id) if page_id is not None else None,
        event_ids=[str(event_id) for event_id in event_ids],
        include_past_events=bool(_get(raw, 'include_past_events', 'includePastEvents', default=False)),
        max_events=_as_int(_get(raw, 'max_events', 'maxEvents', default=50), 'max_events')
    )


def _parse_eventbrite(raw: Dict[str, Any]) -> EventbriteConfig:
    return EventbriteConfig(
        max_pages=_as_int(_get(raw, 'max_pages', 'maxPages', default=3), 'max_pages'),
        max_results=_as_int(_get(raw, 'max_results', 'maxResults', default=100), 'max_results')
    )


def parse_source_config(source_type: str, raw: Optional[Dict[str, Any]]):
    """
    Build the configuration variant for a source type.

    Args:
        source_type: One of the SourceType values
        raw: Stored configuration blob (may be None)

    Returns:
        Configuration dataclass for the type

    Raises:
        InvalidSourceConfigError: If the blob does not fit the type
        UnsupportedSourceTypeError: If the type is not recognised
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise InvalidSourceConfigError("Source configuration must be an object")

    if source_type == SourceType.ICAL.value:
        return IcalConfig()
    if source_type == SourceType.RSS.value:
        return RssConfig()
    if source_type == SourceType.LLM_ADAPTIVE.value:
        return AdaptiveConfig()
    if source_type == SourceType.JSON.value:
        return _parse_json(raw)
    if source_type == SourceType.HTML.value:
        return parse_html_config(raw)
    if source_type == SourceType.REGIONAL_HTML.value:
        return RegionalConfig(
            base_url=_get(raw, 'base_url', 'baseUrl'),
            year=_as_int(raw.get('year'), 'year')
        )
    if source_type == SourceType.PAGE_SCRAPE_API.value:
        return _parse_page_scrape(raw)
    if source_type == SourceType.FACEBOOK.value:
        return _parse_facebook(raw)
    if source_type == SourceType.EVENTBRITE.value:
        return _parse_eventbrite(raw)

    raise UnsupportedSourceTypeError(source_type)
