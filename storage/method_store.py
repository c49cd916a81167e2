"""Learned extraction methods backed by DynamoDB."""
import logging
import re
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from boto3.dynamodb.conditions import Key
from dateutil import tz

from processor.dates import parse_instant
from processor.models import LearnedMethod
from storage.dynamodb_manager import DynamoDBManager, to_dynamo
from storage.schema import DOMAIN_INDEX

logger = logging.getLogger(__name__)


def generate_url_pattern(url: str) -> str:
    """
    Glob-like pattern for URLs shaped like this one.

    Digit runs in the path become '*', so /events/2025/06 becomes /events/*/*.
    """
    parsed = urlparse(url)
    path = re.sub(r'\d+', '*', parsed.path)
    return f"{parsed.scheme}://{parsed.netloc}{path}"


def next_success_rate(old_rate: float, usage_count: int, success: bool) -> float:
    """
    Incremental mean of outcomes scored 100 or 0.

    Args:
        old_rate: Rate before this outcome
        usage_count: Usage count after this outcome is counted
        success: Whether this use found events

    Returns:
        New rate rounded to two decimals
    """
    value = (Decimal(str(old_rate)) * (usage_count - 1) + (100 if success else 0)) / usage_count
    return float(value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


class MethodStore(DynamoDBManager):
    """Per-domain extraction recipes with usage statistics."""

    def find_best_method(self, domain: str) -> Optional[LearnedMethod]:
        """
        Highest success-rate active method for a domain.

        Args:
            domain: Hostname, e.g. www.example.com

        Returns:
            LearnedMethod or None
        """
        methods = [method for method in self.list_methods(domain) if method.active]
        if not methods:
            return None
        methods.sort(key=lambda method: method.success_rate, reverse=True)
        return methods[0]

    def get_method(self, method_id: str) -> Optional[LearnedMethod]:
        item = self.get_item({'method_id': method_id})
        return self._item_to_method(item) if item else None

    def list_methods(self, domain: str) -> List[LearnedMethod]:
        items = self.query_items(
            IndexName=DOMAIN_INDEX,
            KeyConditionExpression=Key('domain').eq(domain)
        )
        return [self._item_to_method(item) for item in items]

    def create_method(
        self,
        domain: str,
        url_pattern: str,
        method_type: str,
        rules: Dict[str, Any],
        initial_confidence: float,
        source_session_id: Optional[str] = None,
        approved_by: Optional[str] = None,
        name: Optional[str] = None,
        test_results: Optional[Dict[str, Any]] = None
    ) -> LearnedMethod:
        method = LearnedMethod(
            method_id=str(uuid.uuid4()),
            name=name or f"Auto-generated method for {domain}",
            domain=domain,
            url_pattern=url_pattern,
            method_type=method_type,
            extraction_rules=rules,
            confidence=initial_confidence,
            active=True,
            usage_count=0,
            success_rate=0.0,
            source_session_id=source_session_id,
            approved_by=approved_by,
            created_at=datetime.now(tz=tz.UTC)
        )
        item = self._method_to_item(method)
        if test_results:
            item['test_results'] = test_results
        self.put_item(item)
        logger.info(f"Created learned method {method.method_id} for {domain}")
        return method

    def record_outcome(self, method_id: str, success: bool) -> Optional[LearnedMethod]:
        """
        Count one use of a method and fold the outcome into its success rate.

        Read-then-write; only one ingestion run is expected at a time.

        Args:
            method_id: Method that was applied
            success: Whether it produced events

        Returns:
            Updated method, or None if it no longer exists
        """
        method = self.get_method(method_id)
        if method is None:
            logger.warning(f"Cannot record outcome for missing method {method_id}")
            return None

        usage_count = method.usage_count + 1
        success_rate = next_success_rate(method.success_rate, usage_count, success)
        last_used = datetime.now(tz=tz.UTC)

        self.table.update_item(
            Key={'method_id': method_id},
            UpdateExpression='SET usage_count = :n, success_rate = :r, last_used = :t',
            ExpressionAttributeValues=to_dynamo({
                ':n': usage_count,
                ':r': success_rate,
                ':t': last_used,
            })
        )
        logger.info(
            f"Method {method_id} used {usage_count} times, success rate {success_rate}"
        )

        method.usage_count = usage_count
        method.success_rate = success_rate
        method.last_used = last_used
        return method

    def _method_to_item(self, method: LearnedMethod) -> dict:
        return {
            'method_id': method.method_id,
            'name': method.name,
            'domain': method.domain,
            'url_pattern': method.url_pattern,
            'method_type': method.method_type,
            'extraction_rules': method.extraction_rules,
            'confidence': float(method.confidence),
            'active': method.active,
            'usage_count': method.usage_count,
            'success_rate': float(method.success_rate),
            'last_used': method.last_used,
            'source_session_id': method.source_session_id,
            'approved_by': method.approved_by,
            'created_at': method.created_at,
        }

    def _item_to_method(self, item: dict) -> LearnedMethod:
        return LearnedMethod(
            method_id=item['method_id'],
            name=item.get('name', ''),
            domain=item['domain'],
            url_pattern=item.get('url_pattern', ''),
            method_type=item.get('method_type', 'event_list'),
            extraction_rules=item.get('extraction_rules', {}),
            confidence=float(item.get('confidence', 0)),
            active=bool(item.get('active', False)),
            usage_count=int(item.get('usage_count', 0)),
            success_rate=float(item.get('success_rate', 0)),
            last_used=parse_instant(item.get('last_used')),
            source_session_id=item.get('source_session_id'),
            approved_by=item.get('approved_by'),
            created_at=parse_instant(item.get('created_at'))
        )
