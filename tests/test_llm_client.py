"""Unit tests for the LLM client."""
import json

import pytest
import responses

from adapters.llm_client import DEFAULT_API_URL, LlmClient, extract_json, normalize_analysis
from processor.errors import NotConfiguredError, RemoteServiceError


def _reply(text):
    return {'choices': [{'message': {'content': text}}]}


class TestExtractJson:
    """Model replies wrap JSON in prose and code fences."""

    def test_fenced_block(self):
        assert extract_json('Here you go:\n```json\n{"a": 1}\n```\nThanks') == {'a': 1}

    def test_bare_object_in_prose(self):
        assert extract_json('Result: {"has_events": false} done') == {'has_events': False}

    def test_unparseable(self):
        assert extract_json('no json here') is None
        assert extract_json(None) is None


def test_normalize_analysis_accepts_camel_case():
    analysis = normalize_analysis({
        'hasEvents': True,
        'eventsFound': [{'title': 'A'}, 'junk'],
        'eventLinks': ['/e/1', 5],
    })

    assert analysis == {
        'has_events': True,
        'events_found': [{'title': 'A'}],
        'event_links': ['/e/1'],
        'selectors': {},
        'patterns': {},
    }


class TestLlmClient:
    """Test cases for LlmClient class."""

    def test_unconfigured_client_raises(self):
        client = LlmClient(None)

        assert not client.is_available()
        with pytest.raises(NotConfiguredError):
            client.find_event_patterns('<html></html>', 'https://example.com')

    @responses.activate
    def test_find_event_patterns(self):
        body = {'has_events': True, 'events_found': [{'title': 'Jazz', 'date': 'June 5'}],
                'selectors': {'event_container': '.event'}}
        responses.add(responses.POST, DEFAULT_API_URL, json=_reply(f"```json\n{json.dumps(body)}\n```"))

        client = LlmClient('key-123')
        analysis = client.find_event_patterns('<html>' + 'x' * 50000 + '</html>', 'https://example.com/events')

        assert analysis['has_events'] is True
        assert analysis['events_found'] == [{'title': 'Jazz', 'date': 'June 5'}]
        request = responses.calls[0].request
        assert request.headers['x-api-key'] == 'key-123'
        payload = json.loads(request.body)
        assert payload['temperature'] == 0.3
        assert 'x' * 30001 not in payload['messages'][0]['content']

    @responses.activate
    def test_unparseable_reply_returns_none(self):
        responses.add(responses.POST, DEFAULT_API_URL, json=_reply('Sorry, I cannot help.'))

        assert LlmClient('key').find_event_patterns('<html></html>', 'https://example.com') is None

    @responses.activate
    def test_generate_extraction_method_defaults(self):
        responses.add(responses.POST, DEFAULT_API_URL, json={'content': [{'text': '{"selectors": {"title": "h2"}}'}]})

        method = LlmClient('key').generate_extraction_method(
            '<html></html>', [{'title': 'A'}], 'https://www.example.com/events'
        )

        assert method == {
            'domain': 'www.example.com',
            'url_pattern': 'https://www.example.com/events',
            'type': 'list',
            'selectors': {'title': 'h2'},
            'patterns': {},
            'confidence': 0.8,
        }

    @responses.activate
    def test_analyze_event_page_without_title(self):
        responses.add(responses.POST, DEFAULT_API_URL, json=_reply('{"title": null}'))

        assert LlmClient('key').analyze_event_page('<html></html>', 'https://example.com/e/1') is None

    @responses.activate
    def test_http_error_raises_remote_service_error(self):
        responses.add(responses.POST, DEFAULT_API_URL, status=401)

        with pytest.raises(RemoteServiceError) as exc_info:
            LlmClient('bad-key').find_event_patterns('<html></html>', 'https://example.com')

        assert exc_info.value.auth_error
