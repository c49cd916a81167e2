"""JSON API parser driven by a configurable field mapping."""
import json
import logging
from datetime import datetime
from typing import Any, List, Optional, Union

from processor.dates import parse_iso, parse_timestamp
from processor.models import CandidateEvent
from processor.source_config import JsonConfig

logger = logging.getLogger(__name__)

_MISSING = object()


def resolve_path(data: Any, path: Optional[str]) -> Any:
    """
    Follow a dotted path through nested objects and lists.

    Numeric segments index into lists. Returns None when any segment is absent.
    """
    if not path:
        return data

    current = data
    for segment in path.split('.'):
        if isinstance(current, dict):
            current = current.get(segment, _MISSING)
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else _MISSING
        else:
            return None
        if current is _MISSING:
            return None
    return current


def parse_json_datetime(value: Any) -> Optional[datetime]:
    """ISO strings, or Unix timestamps in seconds or milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return parse_timestamp(value)
    text = str(value).strip()
    if not text:
        return None
    if text.replace('.', '', 1).isdigit():
        return parse_timestamp(text)
    return parse_iso(text)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_categories(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(',') if part.strip()]
    if isinstance(value, list):
        names = []
        for item in value:
            if isinstance(item, dict):
                item = item.get('name')
            if item:
                names.append(str(item).strip())
        return names
    return []


def _map_item(item: Any, config: JsonConfig) -> Optional[CandidateEvent]:
    if not isinstance(item, dict):
        return None

    mapping = config.field_mapping

    def get(name: str) -> Any:
        return resolve_path(item, mapping.get(name))

    title = _as_text(get('title'))
    if not title:
        return None

    return CandidateEvent(
        title=title,
        start=parse_json_datetime(get('start')),
        end=parse_json_datetime(get('end')),
        description=_as_text(get('description')),
        location=_as_text(get('location')),
        address=_as_text(get('address')),
        latitude=_as_float(get('latitude')),
        longitude=_as_float(get('longitude')),
        external_url=_as_text(get('url')),
        external_event_id=_as_text(get('id')),
        categories=_as_categories(get('categories'))
    )


def parse_json(
    content: Union[str, bytes],
    config: Optional[JsonConfig] = None,
    source_url: Optional[str] = None
) -> List[CandidateEvent]:
    """
    Extract events from a JSON document.

    Args:
        content: JSON text
        config: Events path and field mapping (defaults to flat canonical names)
        source_url: Unused, accepted for the common parser signature

    Returns:
        List of candidate events, empty if the document or path is invalid
    """
    config = config or JsonConfig()

    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        logger.debug(f"Invalid JSON document: {e}")
        return []

    items = resolve_path(data, config.events_path)
    if not isinstance(items, list):
        logger.debug(f"No event array at path '{config.events_path}'")
        return []

    events = []
    for item in items:
        event = _map_item(item, config)
        if event:
            events.append(event)
    return events
