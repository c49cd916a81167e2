"""Source registry backed by DynamoDB."""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr
from dateutil import tz

from processor.dates import format_instant, parse_instant
from processor.errors import InvalidSourceConfigError, UnsupportedSourceTypeError
from processor.models import Source
from processor.source_config import parse_source_config
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


class SourceRegistry(DynamoDBManager):
    """
    Reads registered sources and records run metadata on them.

    Stored configuration blobs are validated here; a source whose blob does
    not fit its type is still returned, with config_error set, so the
    orchestrator can log a failed run for it.
    """

    def list_active(self) -> List[Source]:
        items = self.scan_items(FilterExpression=Attr('active').eq(True))
        sources = [self._item_to_source(item) for item in items]
        sources.sort(key=lambda source: (source.name.lower(), source.source_id))
        logger.info(f"Loaded {len(sources)} active sources")
        return sources

    def get_by_id(self, source_id: str) -> Optional[Source]:
        item = self.get_item({'source_id': source_id})
        return self._item_to_source(item) if item else None

    def count_sources(self) -> Dict[str, int]:
        items = self.scan_items(ProjectionExpression='#a', ExpressionAttributeNames={'#a': 'active'})
        return {
            'total': len(items),
            'active': sum(1 for item in items if item.get('active')),
        }

    def create_source(
        self,
        name: str,
        url: str,
        source_type: str,
        config: Optional[Dict[str, Any]] = None,
        method_id: Optional[str] = None,
        created_by: Optional[str] = None,
        active: bool = True
    ) -> str:
        """
        Register a new source.

        Raises:
            InvalidSourceConfigError: If the configuration does not fit the type
            UnsupportedSourceTypeError: If the type is unknown
        """
        parse_source_config(source_type, config)

        source_id = str(uuid.uuid4())
        self.put_item({
            'source_id': source_id,
            'name': name,
            'url': url,
            'source_type': source_type,
            'scrape_config': config or {},
            'active': active,
            'method_id': method_id,
            'created_by': created_by,
            'created_at': datetime.now(tz=tz.UTC),
        })
        logger.info(f"Registered {source_type} source '{name}' ({source_id})")
        return source_id

    def update_last_scraped(self, source_id: str, timestamp: datetime) -> None:
        self.table.update_item(
            Key={'source_id': source_id},
            UpdateExpression='SET last_scraped = :ts',
            ExpressionAttributeValues={':ts': format_instant(timestamp)}
        )

    def _item_to_source(self, item: dict) -> Source:
        source_type = item.get('source_type', '')
        config = None
        config_error = None
        try:
            config = parse_source_config(source_type, item.get('scrape_config'))
        except InvalidSourceConfigError as e:
            logger.warning(f"Invalid configuration for source {item['source_id']}: {e}")
            config_error = str(e)
        except UnsupportedSourceTypeError:
            # dispatch reports the unsupported type
            pass

        return Source(
            source_id=item['source_id'],
            name=item.get('name', item['source_id']),
            url=item.get('url', ''),
            source_type=source_type,
            config=config,
            active=bool(item.get('active', False)),
            last_scraped=parse_instant(item.get('last_scraped')),
            method_id=item.get('method_id'),
            created_by=item.get('created_by'),
            config_error=config_error
        )
