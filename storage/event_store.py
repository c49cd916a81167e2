"""Event store backed by DynamoDB."""
import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Dict, Optional

from boto3.dynamodb.conditions import Key
from dateutil import tz

from processor.dates import format_instant, parse_instant
from processor.models import CandidateEvent, EventStatus, StoredEvent
from storage.dynamodb_manager import DynamoDBManager
from storage.schema import EXTERNAL_KEY_INDEX, TITLE_START_INDEX

logger = logging.getLogger(__name__)


class EventStore(DynamoDBManager):
    """Stores scraped events; records are inserted once and never overwritten."""

    def insert(self, event: CandidateEvent, source_id: Optional[str] = None) -> str:
        """
        Persist a normalized candidate as a pending event.

        Args:
            event: Normalized candidate (start must be set)
            source_id: Originating source, None for ad-hoc analysis

        Returns:
            New event id
        """
        event_id = str(uuid.uuid4())
        now = datetime.now(tz=tz.UTC)
        self.put_item(self._event_to_item(event, event_id, source_id, now))
        logger.debug(f"Inserted event {event_id}: '{event.title}'")
        return event_id

    def find_by_external_key(self, external_key: str) -> Optional[StoredEvent]:
        items = self.query_items(
            IndexName=EXTERNAL_KEY_INDEX,
            KeyConditionExpression=Key('external_event_id').eq(external_key),
            Limit=1
        )
        return self._item_to_event(items[0]) if items else None

    def find_by_title_and_start(self, title: str, start: datetime) -> Optional[StoredEvent]:
        items = self.query_items(
            IndexName=TITLE_START_INDEX,
            KeyConditionExpression=(
                Key('title').eq(title) & Key('start_datetime').eq(format_instant(start))
            ),
            Limit=1
        )
        return self._item_to_event(items[0]) if items else None

    def count_by_status(self) -> Dict[str, int]:
        """Event totals per review status, plus 'total'."""
        items = self.scan_items(ProjectionExpression='#s', ExpressionAttributeNames={'#s': 'status'})
        counts = Counter(item.get('status', EventStatus.PENDING.value) for item in items)
        result = {status.value: counts.get(status.value, 0) for status in EventStatus}
        result['total'] = len(items)
        return result

    def _event_to_item(
        self, event: CandidateEvent, event_id: str, source_id: Optional[str], now: datetime
    ) -> dict:
        return {
            'event_id': event_id,
            'source_id': source_id,
            'status': EventStatus.PENDING.value,
            'title': event.title,
            'description': event.description,
            'start_datetime': event.start,
            'end_datetime': event.end,
            'location': event.location,
            'address': event.address,
            'latitude': event.latitude,
            'longitude': event.longitude,
            'external_url': event.external_url,
            'external_event_id': event.external_event_id,
            'categories': event.categories,
            'contact_info': event.contact_info,
            'created_at': now,
            'updated_at': now,
        }

    def _item_to_event(self, item: dict) -> Optional[StoredEvent]:
        try:
            return StoredEvent(
                event_id=item['event_id'],
                title=item['title'],
                start=parse_instant(item['start_datetime']),
                source_id=item.get('source_id'),
                status=item.get('status', EventStatus.PENDING.value),
                created_at=parse_instant(item['created_at']),
                updated_at=parse_instant(item['updated_at']),
                description=item.get('description'),
                end=parse_instant(item.get('end_datetime')),
                location=item.get('location'),
                address=item.get('address'),
                latitude=item.get('latitude'),
                longitude=item.get('longitude'),
                external_url=item.get('external_url'),
                external_event_id=item.get('external_event_id'),
                categories=item.get('categories', []),
                contact_info=item.get('contact_info', {})
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to StoredEvent: {e}")
            return None
