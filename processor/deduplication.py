"""Duplicate detection against the event store."""
import logging

from processor.models import CandidateEvent

logger = logging.getLogger(__name__)


class DuplicateChecker:
    """
    Decides whether a normalized candidate already exists.

    A candidate with an external key is a duplicate when any stored event has
    the same key. Failing that, a stored event with the exact same title and
    start instant makes it a duplicate. Matching is exact; nothing is merged.
    """

    def __init__(self, event_store):
        self.event_store = event_store

    def is_duplicate(self, candidate: CandidateEvent) -> bool:
        if candidate.external_event_id:
            if self.event_store.find_by_external_key(candidate.external_event_id):
                logger.debug(f"Duplicate by external key: {candidate.external_event_id}")
                return True

        if self.event_store.find_by_title_and_start(candidate.title, candidate.start):
            logger.debug(f"Duplicate by title and start: '{candidate.title}'")
            return True
        return False
