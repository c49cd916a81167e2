"""Tests for deduplication and the shared ingest path."""
from datetime import datetime
from unittest.mock import MagicMock

from botocore.exceptions import ClientError
from dateutil import tz

from processor.deduplication import DuplicateChecker
from processor.event_processor import EventProcessor
from processor.models import CandidateEvent
from scraper.ingestor import EventIngestor

START = datetime(2025, 6, 15, 18, 0, tzinfo=tz.UTC)


def _candidate(**overrides):
    values = {'title': 'Summer Concert', 'start': START}
    values.update(overrides)
    return CandidateEvent(**values)


class TestDuplicateChecker:
    """Exact matching on external key, then title and start."""

    def test_external_key_match(self, event_store):
        event_store.insert(_candidate(title='Original', external_event_id='uid-1'))
        checker = DuplicateChecker(event_store)

        assert checker.is_duplicate(_candidate(title='Renamed', external_event_id='uid-1'))

    def test_unknown_key_falls_back_to_title_and_start(self, event_store):
        event_store.insert(_candidate())
        checker = DuplicateChecker(event_store)

        assert checker.is_duplicate(_candidate(external_event_id='never-seen'))
        assert not checker.is_duplicate(_candidate(title='Different', external_event_id='never-seen'))

    def test_no_fuzzy_matching(self, event_store):
        event_store.insert(_candidate())
        checker = DuplicateChecker(event_store)

        assert not checker.is_duplicate(_candidate(title='Summer Concert!'))


class TestEventIngestor:
    """Test cases for EventIngestor class."""

    def test_ingest_is_idempotent(self, event_store):
        ingestor = EventIngestor(event_store, EventProcessor())
        candidates = [
            _candidate(external_event_id='uid-1'),
            _candidate(title='Art Walk', start=datetime(2025, 6, 20, 17, 0)),
        ]

        first = ingestor.ingest(candidates, source_id='src-1')
        second = ingestor.ingest(candidates, source_id='src-1')

        assert (first.found, first.added, first.duplicates) == (2, 2, 0)
        assert (second.found, second.added, second.duplicates) == (2, 0, 2)
        assert event_store.count_by_status()['total'] == 2

    def test_repeats_within_one_batch(self, event_store):
        ingestor = EventIngestor(event_store, EventProcessor())

        stats = ingestor.ingest([_candidate(), _candidate(title='  Summer   Concert ')])

        assert (stats.added, stats.duplicates) == (1, 1)

    def test_invalid_candidates_are_counted(self, event_store):
        ingestor = EventIngestor(event_store, EventProcessor())

        stats = ingestor.ingest([_candidate(title=''), _candidate(start=None), _candidate()])

        assert (stats.found, stats.added, stats.invalid) == (3, 1, 2)

    def test_geocodes_events_without_coordinates(self, event_store):
        geocoder = MagicMock()
        geocoder.geocode.return_value = (46.6, -120.5)
        ingestor = EventIngestor(event_store, EventProcessor(), geocoder)

        ingestor.ingest([
            _candidate(location='Franklin Park'),
            _candidate(title='Placed', latitude=1.0, longitude=2.0, location='Somewhere'),
            _candidate(title='Nowhere'),
        ])

        geocoder.geocode.assert_called_once_with('Franklin Park')
        stored = event_store.find_by_title_and_start('Summer Concert', START)
        assert (stored.latitude, stored.longitude) == (46.6, -120.5)

    def test_failed_insert_does_not_stop_batch(self):
        store = MagicMock()
        store.find_by_external_key.return_value = None
        store.find_by_title_and_start.return_value = None
        store.insert.side_effect = [
            ClientError({'Error': {'Code': 'ValidationException', 'Message': 'bad'}}, 'PutItem'),
            'event-2',
        ]
        ingestor = EventIngestor(store, EventProcessor())

        stats = ingestor.ingest([_candidate(), _candidate(title='Second')])

        assert (stats.added, stats.invalid) == (1, 1)
