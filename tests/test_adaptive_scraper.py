"""Tests for the learn-once adaptive scraper."""
from datetime import datetime
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

import pytest

from processor.errors import FetchError, InvalidSessionStateError, NotConfiguredError
from processor.event_processor import EventProcessor, hash_key
from scraper.adaptive_scraper import APPROVAL_CONFIDENCE, AdaptiveScraper, normalize_llm_event
from scraper.ingestor import EventIngestor

URL = 'https://www.example.com/events'

PAGE = """
<html><body>
  <div class="event">
    <h3>Jazz Night</h3>
    <time datetime="2025-07-04T19:00:00">July 4</time>
    <a href="/events/jazz">More</a>
  </div>
</body></html>
"""

SELECTORS = {'event_container': '.event', 'title': 'h3', 'datetime': 'time', 'link': 'a'}

ANALYSIS = {
    'has_events': True,
    'events_found': [
        {'title': 'Jazz Night', 'date': 'July 4, 2025', 'time': '7:00 PM', 'link': '/events/jazz'}
    ],
    'event_links': [],
    'selectors': SELECTORS,
    'patterns': {},
}


@pytest.fixture
def llm():
    client = MagicMock()
    client.is_available.return_value = True
    client.find_event_patterns.return_value = ANALYSIS
    client.generate_extraction_method.return_value = {
        'domain': 'www.example.com', 'url_pattern': URL, 'type': 'list',
        'selectors': SELECTORS, 'patterns': {'date_format': 'iso'}, 'confidence': 0.9,
    }
    return client


@pytest.fixture
def http_client():
    client = MagicMock()
    client.fetch.return_value = PAGE
    return client


@pytest.fixture
def scraper(llm, http_client, event_store, method_store, session_store, source_registry):
    return AdaptiveScraper(
        llm=llm,
        method_store=method_store,
        session_store=session_store,
        source_registry=source_registry,
        ingestor=EventIngestor(event_store, EventProcessor()),
        http_client=http_client,
        follow_delay=0
    )


class TestNormalizeLlmEvent:
    """Lenient mapping of model output."""

    def test_date_and_link(self):
        event = normalize_llm_event(ANALYSIS['events_found'][0], URL)

        assert event.start == datetime(2025, 7, 4, 19, 0)
        assert event.external_url == 'https://www.example.com/events/jazz'
        assert event.external_event_id == hash_key('https://www.example.com/events/jazz')

    def test_missing_date_becomes_tomorrow_noon(self):
        event = normalize_llm_event({'title': 'Someday', 'date': 'TBD'}, URL, now=datetime(2025, 6, 1, 9, 30))

        assert event.start == datetime(2025, 6, 2, 12, 0)
        assert event.external_url == URL
        assert event.external_event_id is None

    def test_requires_title(self):
        assert normalize_llm_event({'date': 'July 4'}, URL) is None


class TestAdaptiveScraper:
    """Test cases for AdaptiveScraper class."""

    def test_analyze_saves_events_and_draft(self, scraper, llm, session_store, event_store):
        result = scraper.analyze_url(URL, user_id='user-1')

        assert result.success
        assert not result.used_existing
        assert (result.stats.found, result.stats.added) == (1, 1)
        assert result.analysis == ANALYSIS
        assert result.draft_method == llm.generate_extraction_method.return_value
        session = session_store.get_session(result.session_id)
        assert session.status == 'events_found'
        assert session.created_by == 'user-1'
        assert session.page_content == PAGE
        assert session.draft_method['selectors'] == SELECTORS
        assert session.found_events[0]['title'] == 'Jazz Night'
        assert event_store.count_by_status()['total'] == 1

    def test_learned_method_skips_llm(self, scraper, llm, method_store, source_registry):
        first = scraper.analyze_url(URL)
        approved = scraper.approve_session(first.session_id, approver_id='admin')

        second = scraper.analyze_url(URL)

        assert llm.find_event_patterns.call_count == 1
        assert second.success
        assert second.used_existing
        assert second.method_id == approved.method_id
        assert (second.stats.added, second.stats.duplicates) == (0, 1)

        method = method_store.get_method(approved.method_id)
        assert method.confidence == APPROVAL_CONFIDENCE
        assert method.approved_by == 'admin'
        assert method.extraction_rules == {'selectors': SELECTORS, 'patterns': {'date_format': 'iso'}}
        assert (method.usage_count, method.success_rate) == (1, 100.0)

        source = source_registry.get_by_id(approved.source_id)
        assert source.source_type == 'llm_adaptive'
        assert source.method_id == approved.method_id

    def test_learned_method_is_used_without_llm_credentials(self, scraper, llm):
        first = scraper.analyze_url(URL)
        scraper.approve_session(first.session_id)
        llm.is_available.return_value = False

        assert scraper.analyze_url(URL).used_existing

    def test_learned_method_without_events(self, scraper, http_client, method_store):
        first = scraper.analyze_url(URL)
        approved = scraper.approve_session(first.session_id)
        http_client.fetch.return_value = '<html><body>Nothing here</body></html>'

        result = scraper.analyze_url(URL)

        assert not result.success
        assert result.error == 'Learned method found no events'
        assert method_store.get_method(approved.method_id).success_rate == 0.0

    def test_unconfigured_llm_raises(self, scraper, llm):
        llm.is_available.return_value = False

        with pytest.raises(NotConfiguredError):
            scraper.analyze_url(URL)

    def test_fetch_failure(self, scraper, http_client, session_store):
        http_client.fetch.side_effect = FetchError(URL, '404 Not Found', status_code=404)

        result = scraper.analyze_url(URL)

        assert result.error == 'Failed to fetch webpage content'
        assert session_store.get_session(result.session_id).status == 'error'

    def test_unparseable_analysis(self, scraper, llm, session_store):
        llm.find_event_patterns.return_value = None

        result = scraper.analyze_url(URL)

        assert result.error == 'LLM analysis could not be parsed'
        assert session_store.get_session(result.session_id).status == 'error'

    def test_no_events(self, scraper, llm, session_store):
        llm.find_event_patterns.return_value = dict(ANALYSIS, has_events=False, events_found=[])

        result = scraper.analyze_url(URL)

        assert result.error == 'No events found on this page'
        assert result.analysis['has_events'] is False
        assert result.draft_method is None
        assert session_store.get_session(result.session_id).status == 'no_events'

    def test_session_write_failure_still_reports_error(self, scraper, http_client, session_store):
        http_client.fetch.side_effect = FetchError(URL, '503 Service Unavailable', status_code=503)
        throttled = ClientError(
            {'Error': {'Code': 'ProvisionedThroughputExceededException', 'Message': 'Slow down'}}, 'UpdateItem'
        )

        with patch.object(session_store, 'finish', side_effect=throttled):
            result = scraper.analyze_url(URL)

        assert not result.success
        assert result.error == 'Failed to fetch webpage content'
        assert session_store.get_session(result.session_id).status == 'analyzing'

    @patch('scraper.adaptive_scraper.time.sleep')
    def test_follows_event_links(self, mock_sleep, scraper, llm, http_client):
        llm.find_event_patterns.return_value = dict(
            ANALYSIS, events_found=[], event_links=['/e/1', '/e/2', '/e/3']
        )
        llm.analyze_event_page.side_effect = [
            {'title': 'Detail One', 'date': 'August 1, 2025'},
            None,
            {'title': 'Detail Three', 'date': 'August 3, 2025'},
        ]
        scraper.follow_limit = 3

        result = scraper.analyze_url(URL)

        assert [e.title for e in result.events] == ['Detail One', 'Detail Three']
        assert result.events[0].external_url == 'https://www.example.com/e/1'
        fetched = [c.args[0] for c in http_client.fetch.call_args_list]
        assert fetched == [URL, 'https://www.example.com/e/1', 'https://www.example.com/e/2',
                           'https://www.example.com/e/3']

    def test_approve_requires_events_found(self, scraper, llm):
        llm.find_event_patterns.return_value = None
        failed = scraper.analyze_url(URL)

        with pytest.raises(InvalidSessionStateError):
            scraper.approve_session(failed.session_id)
        with pytest.raises(InvalidSessionStateError):
            scraper.approve_session('missing')

    def test_recent_sessions(self, scraper):
        result = scraper.analyze_url(URL)

        assert [s.session_id for s in scraper.get_recent_sessions()] == [result.session_id]
        assert scraper.get_session(result.session_id).url == URL
