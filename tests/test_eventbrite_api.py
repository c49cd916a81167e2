"""Unit tests for the Eventbrite adapter."""
from datetime import datetime
from unittest.mock import patch

import responses
from dateutil import tz
from responses import matchers

from adapters.eventbrite_api import (
    EventbriteClient,
    extract_event_id,
    is_search_url,
    to_candidate,
)
from processor.source_config import EventbriteConfig

API_URL = 'https://eventbrite-scraper.p.rapidapi.com/'
SEARCH_URL = 'https://www.eventbrite.com/d/wa--yakima/events/'


def _record(event_id, name, with_start=True):
    event = {'id': event_id, 'name': name, 'url': f'https://www.eventbrite.com/e/{event_id}',
             'category': 'Food & Drink'}
    if with_start:
        event['start'] = {'utc': '2025-07-12T01:00:00Z', 'local': '2025-07-11T18:00:00'}
    return {
        'event': event,
        'event_url': f'https://www.eventbrite.com/e/{event_id}',
        'eventMap': {'venueName': 'Wine Bar', 'venueAddress': '5 Front St, Yakima, WA',
                     'location': {'latitude': 46.6, 'longitude': -120.5}},
        'about': [{'type': 'text', 'text': '<p>Sip local wine.</p>'}, {'type': 'image'}],
        'organizer_info': {'displayOrganizationName': 'Downtown Association'},
    }


def test_extract_event_id():
    assert extract_event_id('https://www.eventbrite.com/e/wine-walk-tickets-123456789') == '123456789'
    assert extract_event_id('https://www.eventbrite.com/e/123456789') == '123456789'
    assert extract_event_id('123456789') == '123456789'
    assert extract_event_id(SEARCH_URL) is None


def test_search_urls():
    assert is_search_url(SEARCH_URL)
    assert not is_search_url('https://www.eventbrite.com/e/123')


def test_to_candidate_prefers_utc():
    event = to_candidate(_record('42', 'Wine Walk'))

    assert event.start == datetime(2025, 7, 12, 1, 0, tzinfo=tz.UTC)
    assert event.description == 'Sip local wine.'
    assert event.location == 'Wine Bar'
    assert event.external_event_id == 'eb_42'
    assert event.categories == ['Food & Drink']
    assert event.contact_info == {'organizer': 'Downtown Association'}
    assert to_candidate(_record('43', 'No Start', with_start=False)) is None


class TestEventbriteClient:
    """Test cases for EventbriteClient class."""

    @responses.activate
    def test_single_event(self):
        responses.add(
            responses.POST, API_URL, json=_record('42', 'Wine Walk'),
            match=[matchers.json_params_matcher({'input_url': 'https://www.eventbrite.com/e/42'})]
        )

        events = EventbriteClient('key').fetch_events('42')

        assert [e.title for e in events] == ['Wine Walk']

    @responses.activate
    @patch('adapters.rapidapi.time.sleep')
    def test_search_caps_results_and_follows_incomplete_records(self, mock_sleep):
        responses.add(
            responses.POST, API_URL,
            json={'events': [_record('1', 'First'), _record('2', 'Second', with_start=False),
                             _record('3', 'Third')], 'pages_scraped': 2},
            match=[matchers.json_params_matcher({'input_url': SEARCH_URL, 'max_page_number': 3})]
        )
        responses.add(
            responses.POST, API_URL, json=_record('2', 'Second'),
            match=[matchers.json_params_matcher({'input_url': 'https://www.eventbrite.com/e/2'})]
        )

        events = EventbriteClient('key').fetch_events(SEARCH_URL, EventbriteConfig(max_results=2))

        assert [e.title for e in events] == ['First', 'Second']
        assert len(responses.calls) == 2
