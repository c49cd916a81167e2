"""LLM collaborator used by the adaptive scraper."""
import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from processor.errors import NotConfiguredError, RemoteServiceError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = 'https://api.segmind.com/v1/kimi-k2-instruct-0905'

FENCE_PATTERN = re.compile(r'```(?:json)?\s*([\s\S]*?)\s*```')
JSON_BLOCK_PATTERN = re.compile(r'(\{[\s\S]*\}|\[[\s\S]*\])')

PATTERN_HTML_LIMIT = 30000
METHOD_HTML_LIMIT = 20000
DETAIL_HTML_LIMIT = 25000

SYSTEM_INSTRUCTION = (
    'You extract structured event listings from web pages. '
    'Always answer with a single JSON object and nothing else.'
)

FIND_PATTERNS_PROMPT = """Analyze this web page from {url} and find the events it lists.

Return JSON with this shape:
{{
  "has_events": true or false,
  "events_found": [
    {{"title": "", "date": "", "time": "", "end_date": "", "location": "",
      "address": "", "description": "", "link": ""}}
  ],
  "event_links": ["absolute or relative URLs of individual event pages"],
  "selectors": {{"event_container": "", "title": "", "datetime": "",
                 "location": "", "description": "", "link": ""}},
  "patterns": {{"date_format": "", "notes": ""}}
}}

Selectors must be CSS selectors that would find the same events on this page.

HTML:
{html}"""

GENERATE_METHOD_PROMPT = """These events were extracted from {url}:
{events}

Write a reusable extraction method for pages like this one.

Return JSON with this shape:
{{
  "url_pattern": "",
  "type": "list" or "detail",
  "selectors": {{"event_container": "", "title": "", "datetime": "",
                 "location": "", "description": "", "link": ""}},
  "patterns": {{}},
  "confidence": 0.0 to 1.0
}}

HTML:
{html}"""

EVENT_PAGE_PROMPT = """This page at {url} describes a single event.

Return JSON with this shape, or {{"title": null}} if it is not an event page:
{{"title": "", "date": "", "time": "", "end_date": "", "location": "",
  "address": "", "description": ""}}

HTML:
{html}"""


def extract_json(text: Optional[str]) -> Optional[Any]:
    """
    Pull a JSON value out of a model reply.

    Tries a fenced code block first, then the outermost object or array.
    """
    if not text:
        return None

    candidates = []
    fence = FENCE_PATTERN.search(text)
    if fence:
        candidates.append(fence.group(1))
    block = JSON_BLOCK_PATTERN.search(text)
    if block:
        candidates.append(block.group(1))
    candidates.append(text)

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def _pick(data: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def normalize_analysis(data: Any) -> Optional[Dict[str, Any]]:
    """Accept snake_case or camelCase keys from the model."""
    if not isinstance(data, dict):
        return None
    events = _pick(data, 'events_found', 'eventsFound', 'events', default=[])
    links = _pick(data, 'event_links', 'eventLinks', 'links', default=[])
    return {
        'has_events': bool(_pick(data, 'has_events', 'hasEvents', default=bool(events))),
        'events_found': [event for event in events if isinstance(event, dict)],
        'event_links': [link for link in links if isinstance(link, str)],
        'selectors': _pick(data, 'selectors', default={}) or {},
        'patterns': _pick(data, 'patterns', default={}) or {},
    }


class LlmClient:
    """Chat-completion client for page analysis."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str = DEFAULT_API_URL,
        timeout: int = 60
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _complete(self, prompt: str, temperature: float) -> Optional[str]:
        """
        Send one prompt and return the reply text.

        Raises:
            NotConfiguredError: If no API key is set
            RemoteServiceError: If the API call fails
        """
        if not self.is_available():
            raise NotConfiguredError('LLM API')

        payload = {
            'instruction': SYSTEM_INSTRUCTION,
            'temperature': temperature,
            'messages': [{'role': 'user', 'content': prompt}],
        }
        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers={'x-api-key': self.api_key},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise RemoteServiceError('LLM API', str(e), status_code=status) from e
        except requests.RequestException as e:
            raise RemoteServiceError('LLM API', str(e)) from e

        try:
            return self._extract_content(response.json())
        except ValueError:
            return response.text

    def _extract_content(self, data: Any) -> Optional[str]:
        """Reply text across the response shapes the API has used."""
        if isinstance(data, str):
            return data
        if not isinstance(data, dict):
            return None

        content = data.get('content')
        if isinstance(content, list) and content and isinstance(content[0], dict):
            return content[0].get('text')

        choices = data.get('choices')
        if isinstance(choices, list) and choices:
            message = choices[0].get('message') or {}
            if message.get('content'):
                return message['content']

        for key in ('generated_text', 'text', 'output', 'response'):
            if isinstance(data.get(key), str):
                return data[key]
        return None

    def find_event_patterns(self, html: str, url: str) -> Optional[Dict[str, Any]]:
        """
        Ask the model for the events and link structure of a listing page.

        Args:
            html: Page HTML (truncated before sending)
            url: Page URL

        Returns:
            Dict with has_events, events_found, event_links, selectors and
            patterns, or None if the reply could not be parsed
        """
        prompt = FIND_PATTERNS_PROMPT.format(url=url, html=html[:PATTERN_HTML_LIMIT])
        reply = self._complete(prompt, temperature=0.3)
        analysis = normalize_analysis(extract_json(reply))
        if analysis is None:
            logger.warning(f"Unparseable pattern analysis for {url}")
        return analysis

    def generate_extraction_method(
        self, html: str, found_events: List[Dict[str, Any]], url: str
    ) -> Optional[Dict[str, Any]]:
        """Ask the model for a reusable recipe for pages like this one."""
        prompt = GENERATE_METHOD_PROMPT.format(
            url=url,
            events=json.dumps(found_events[:5], default=str, indent=2),
            html=html[:METHOD_HTML_LIMIT]
        )
        data = extract_json(self._complete(prompt, temperature=0.2))
        if not isinstance(data, dict):
            logger.warning(f"Unparseable extraction method for {url}")
            return None

        parsed = urlparse(url)
        return {
            'domain': parsed.hostname,
            'url_pattern': _pick(data, 'url_pattern', 'urlPattern', default=url),
            'type': _pick(data, 'type', default='list'),
            'selectors': _pick(data, 'selectors', default={}) or {},
            'patterns': _pick(data, 'patterns', default={}) or {},
            'confidence': _pick(data, 'confidence', default=0.8),
        }

    def analyze_event_page(self, html: str, url: str) -> Optional[Dict[str, Any]]:
        """Extract the fields of a single event detail page."""
        prompt = EVENT_PAGE_PROMPT.format(url=url, html=html[:DETAIL_HTML_LIMIT])
        data = extract_json(self._complete(prompt, temperature=0.3))
        if not isinstance(data, dict) or not data.get('title'):
            return None
        return data
