"""Unit tests for DynamoDB manager."""
from datetime import datetime
from decimal import Decimal

import boto3
import pytest
from dateutil import tz
from moto import mock_aws

from storage.dynamodb_manager import DynamoDBManager, from_dynamo, to_dynamo


@pytest.fixture
def dynamodb_table():
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName='test-items',
            KeySchema=[{'AttributeName': 'item_id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'item_id', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def dynamodb_manager(dynamodb_table):
    """Create DynamoDBManager instance with mock table."""
    return DynamoDBManager('test-items', region_name='us-east-1')


class TestConversions:
    """Python values to and from DynamoDB attribute values."""

    def test_to_dynamo(self):
        converted = to_dynamo({
            'rate': 66.67,
            'count': 3,
            'active': True,
            'when': datetime(2025, 6, 1, 9, 0, tzinfo=tz.UTC),
            'empty': '',
            'missing': None,
            'nested': {'lat': 46.6, 'tags': ['a', 1.5]},
        })

        assert converted == {
            'rate': Decimal('66.67'),
            'count': 3,
            'active': True,
            'when': '2025-06-01T09:00:00Z',
            'nested': {'lat': Decimal('46.6'), 'tags': ['a', Decimal('1.5')]},
        }

    def test_from_dynamo(self):
        assert from_dynamo({'n': Decimal('3'), 'f': [Decimal('46.6')]}) == {'n': 3, 'f': [46.6]}


class TestDynamoDBManager:
    """Test cases for DynamoDBManager class."""

    def test_put_and_get_item(self, dynamodb_manager):
        """Test a written item reads back with plain numbers."""
        dynamodb_manager.put_item({'item_id': 'a', 'score': 1.25, 'note': None})

        assert dynamodb_manager.get_item({'item_id': 'a'}) == {'item_id': 'a', 'score': 1.25}
        assert dynamodb_manager.get_item({'item_id': 'missing'}) is None

    def test_batch_put_items_large_batch(self, dynamodb_manager):
        """Test batch writing more than 25 items."""
        items = [{'item_id': f'item-{i}', 'index': i} for i in range(60)]

        assert dynamodb_manager.batch_put_items(items) == 60
        assert len(dynamodb_manager.scan_items()) == 60

    def test_batch_put_items_empty_list(self, dynamodb_manager):
        assert dynamodb_manager.batch_put_items([]) == 0

    def test_scan_follows_pagination(self, dynamodb_manager):
        """Test scan collects every page when a page limit is set."""
        dynamodb_manager.batch_put_items([{'item_id': str(i)} for i in range(7)])

        items = dynamodb_manager.scan_items(Limit=2)

        assert sorted(item['item_id'] for item in items) == [str(i) for i in range(7)]
