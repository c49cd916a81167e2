"""Shared DynamoDB table access for the ingestion stores."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.dates import format_instant

logger = logging.getLogger(__name__)


def to_dynamo(value: Any) -> Any:
    """
    Convert a Python value into something boto3 can store.

    Floats become Decimal, datetimes become UTC instant strings, and None
    values and empty strings are dropped from mappings.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, datetime):
        return format_instant(value)
    if isinstance(value, dict):
        return {
            key: to_dynamo(item) for key, item in value.items()
            if item is not None and item != ''
        }
    if isinstance(value, (list, tuple)):
        return [to_dynamo(item) for item in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Convert Decimal numbers back to int or float, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: from_dynamo(item) for key, item in value.items()}
    if isinstance(value, list):
        return [from_dynamo(item) for item in value]
    return value


class DynamoDBManager:
    """Base class wrapping one DynamoDB table."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region (defaults to the environment)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.debug(f"Initialized {type(self).__name__} for table: {table_name}")

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key=key)
        except ClientError as e:
            logger.error(f"Error reading {key} from {self.table_name}: {e}")
            raise
        item = response.get('Item')
        return from_dynamo(item) if item else None

    def put_item(self, item: Dict[str, Any]) -> None:
        try:
            self.table.put_item(Item=to_dynamo(item))
        except ClientError as e:
            logger.error(f"Error writing to {self.table_name}: {e}")
            raise

    def scan_items(self, **kwargs) -> List[Dict[str, Any]]:
        """
        Scan the whole table, following LastEvaluatedKey pagination.

        Args:
            **kwargs: Extra scan arguments such as FilterExpression

        Returns:
            List of converted items
        """
        try:
            response = self.table.scan(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table {self.table_name}: {e}")
            raise

        return [from_dynamo(item) for item in items]

    def query_items(self, **kwargs) -> List[Dict[str, Any]]:
        """Run a query, following pagination unless a Limit is given."""
        try:
            response = self.table.query(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response and 'Limit' not in kwargs:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error querying DynamoDB table {self.table_name}: {e}")
            raise

        return [from_dynamo(item) for item in items]

    def batch_put_items(self, items: List[Dict[str, Any]]) -> int:
        """
        Write items in batches of 25.

        A failed batch is logged and the remaining batches still run.

        Returns:
            Count of successfully written items
        """
        if not items:
            return 0

        success_count = 0
        for i in range(0, len(items), self.BATCH_SIZE):
            batch = items[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for item in batch:
                        writer.put_item(Item=to_dynamo(item))
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1} to {self.table_name}: {e}"
                )
                continue

        return success_count
