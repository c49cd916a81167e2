"""Shared validate, dedupe, geocode and save path for candidate events."""
import logging
from typing import List, Optional

from botocore.exceptions import ClientError

from processor.deduplication import DuplicateChecker
from processor.event_processor import EventProcessor
from processor.models import CandidateEvent, IngestStats

logger = logging.getLogger(__name__)


class EventIngestor:
    """Pushes candidates from any parser or adapter into the event store."""

    def __init__(self, event_store, processor: EventProcessor, geocoder=None):
        """
        Args:
            event_store: EventStore used for duplicate lookups and inserts
            processor: Normalizer applied before deduplication
            geocoder: Optional Geocoder for events without coordinates
        """
        self.event_store = event_store
        self.processor = processor
        self.geocoder = geocoder
        self.deduplicator = DuplicateChecker(event_store)

    def ingest(
        self,
        candidates: List[CandidateEvent],
        source_id: Optional[str] = None,
        stats: Optional[IngestStats] = None
    ) -> IngestStats:
        """
        Validate, deduplicate, geocode and persist candidates.

        Invalid candidates and failed inserts are counted and skipped; they
        never stop the rest of the batch.

        Args:
            candidates: Raw candidates from one fetch
            source_id: Originating source, if any
            stats: Counters to update in place; a caller that passes its own
                keeps the partial counts if the batch raises partway

        Returns:
            IngestStats with found, added, duplicates and invalid counts
        """
        stats = stats if stats is not None else IngestStats()
        stats.found += len(candidates)
        # GSI reads can lag a fresh insert, so repeats inside one batch are tracked here
        batch_keys = set()

        for candidate in candidates:
            try:
                event = self.processor.normalize(candidate)
            except (TypeError, ValueError, OverflowError) as e:
                logger.debug(f"Dropping malformed candidate '{candidate.title}': {e}")
                event = None
            if event is None:
                stats.invalid += 1
                continue

            keys = {('title', event.title, event.start)}
            if event.external_event_id:
                keys.add(('external', event.external_event_id))
            if keys & batch_keys or self.deduplicator.is_duplicate(event):
                stats.duplicates += 1
                continue
            batch_keys |= keys

            if event.latitude is None and (event.location or event.address):
                self._geocode(event)

            try:
                self.event_store.insert(event, source_id=source_id)
                stats.added += 1
            except ClientError as e:
                logger.error(f"Failed to save event '{event.title}': {e}")
                stats.invalid += 1

        logger.info(
            f"Ingested {stats.found} candidates: {stats.added} added, "
            f"{stats.duplicates} duplicates, {stats.invalid} invalid",
            extra={'source_id': source_id}
        )
        return stats

    def _geocode(self, event: CandidateEvent) -> None:
        if self.geocoder is None:
            return
        coordinates = self.geocoder.geocode(event.address or event.location)
        if coordinates:
            event.latitude, event.longitude = coordinates
