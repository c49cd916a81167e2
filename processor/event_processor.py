"""Event processor for validating and normalizing candidate events."""
import hashlib
import html
import logging
from dataclasses import replace
from typing import List, Optional

from processor.dates import to_utc
from processor.models import CandidateEvent

logger = logging.getLogger(__name__)


def hash_key(value: str) -> str:
    """
    Generate a stable identifier from a string.

    Args:
        value: URL or other natural key text

    Returns:
        SHA-256 hex digest of the value
    """
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


class EventProcessor:
    """Processor for validating and normalizing candidate events."""

    MAX_TITLE_LENGTH = 255
    MAX_DESCRIPTION_LENGTH = 5000
    MAX_LOCATION_LENGTH = 500

    def __init__(self, timezone_name: str = 'America/Los_Angeles'):
        """
        Args:
            timezone_name: IANA zone used for naive (floating) times
        """
        self.timezone_name = timezone_name

    def process_events(self, candidates: List[CandidateEvent]) -> List[CandidateEvent]:
        """
        Validate and normalize a batch of candidates.

        Args:
            candidates: Candidate events from a parser or adapter

        Returns:
            Normalized candidates that passed the required-field gate
        """
        processed_events = []

        for candidate in candidates:
            try:
                processed_event = self.normalize(candidate)
                if processed_event:
                    processed_events.append(processed_event)
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(
                    f"Failed to process event '{candidate.title}': {e}"
                )
                continue

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(candidates)} total events"
        )
        return processed_events

    def normalize(self, candidate: CandidateEvent) -> Optional[CandidateEvent]:
        """
        Produce the canonical form of one candidate.

        Titles and text fields are trimmed and truncated, instants are
        converted to UTC, and coordinates outside valid ranges are dropped.

        Args:
            candidate: Raw candidate event

        Returns:
            Normalized copy, or None if title or start is missing
        """
        title = self._clean_text(candidate.title, self.MAX_TITLE_LENGTH)
        if not title:
            logger.debug("Dropping candidate without a title")
            return None

        if candidate.start is None:
            logger.debug(f"Dropping '{title}': no parseable start")
            return None

        start = to_utc(candidate.start, self.timezone_name)

        end = None
        if candidate.end is not None:
            end = to_utc(candidate.end, self.timezone_name)
            if end < start:
                logger.debug(f"Ignoring end before start for '{title}'")
                end = None

        latitude, longitude = self._normalize_coordinates(
            candidate.latitude, candidate.longitude
        )

        return replace(
            candidate,
            title=title,
            start=start,
            end=end,
            description=self._clean_text(
                candidate.description, self.MAX_DESCRIPTION_LENGTH, keep_lines=True
            ),
            location=self._clean_text(candidate.location, self.MAX_LOCATION_LENGTH),
            address=self._clean_text(candidate.address, self.MAX_LOCATION_LENGTH),
            latitude=latitude,
            longitude=longitude,
            external_url=(candidate.external_url or '').strip() or None,
            external_event_id=(
                str(candidate.external_event_id).strip()
                if candidate.external_event_id not in (None, '') else None
            ),
            categories=self._normalize_categories(candidate.categories)
        )

    def _clean_text(
        self, value: Optional[str], max_length: int, keep_lines: bool = False
    ) -> Optional[str]:
        if value is None:
            return None
        text = html.unescape(str(value))
        if keep_lines:
            lines = [' '.join(line.split()) for line in text.splitlines()]
            text = '\n'.join(lines).strip()
        else:
            text = ' '.join(text.split())
        if not text:
            return None
        return text[:max_length]

    def _normalize_coordinates(self, latitude, longitude):
        """Return both coordinates as floats, or neither."""
        if latitude is None or longitude is None:
            return None, None
        try:
            lat, lng = float(latitude), float(longitude)
        except (TypeError, ValueError):
            return None, None
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            return None, None
        return lat, lng

    def _normalize_categories(self, categories: Optional[List[str]]) -> List[str]:
        result = []
        for category in categories or []:
            name = ' '.join(str(category).split())
            if name and name not in result:
                result.append(name)
        return result
