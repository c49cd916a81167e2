"""DynamoDB table definitions for the ingestion stores."""
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

EXTERNAL_KEY_INDEX = 'external-key-index'
TITLE_START_INDEX = 'title-start-index'
DOMAIN_INDEX = 'domain-index'
SOURCE_INDEX = 'source-index'


def _index(name: str, hash_key: str, range_key: Optional[str] = None) -> Dict[str, Any]:
    key_schema = [{'AttributeName': hash_key, 'KeyType': 'HASH'}]
    if range_key:
        key_schema.append({'AttributeName': range_key, 'KeyType': 'RANGE'})
    return {
        'IndexName': name,
        'KeySchema': key_schema,
        'Projection': {'ProjectionType': 'ALL'},
    }


def _attributes(*names: str) -> List[Dict[str, str]]:
    return [{'AttributeName': name, 'AttributeType': 'S'} for name in names]


def table_definitions(table_names: Dict[str, str]) -> List[Dict[str, Any]]:
    """
    create_table arguments for every store.

    Args:
        table_names: Mapping with keys events, sources, methods, sessions, run_logs
    """
    return [
        {
            'TableName': table_names['events'],
            'KeySchema': [{'AttributeName': 'event_id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': _attributes(
                'event_id', 'external_event_id', 'title', 'start_datetime'
            ),
            'GlobalSecondaryIndexes': [
                _index(EXTERNAL_KEY_INDEX, 'external_event_id'),
                _index(TITLE_START_INDEX, 'title', 'start_datetime'),
            ],
        },
        {
            'TableName': table_names['sources'],
            'KeySchema': [{'AttributeName': 'source_id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': _attributes('source_id'),
        },
        {
            'TableName': table_names['methods'],
            'KeySchema': [{'AttributeName': 'method_id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': _attributes('method_id', 'domain'),
            'GlobalSecondaryIndexes': [_index(DOMAIN_INDEX, 'domain')],
        },
        {
            'TableName': table_names['sessions'],
            'KeySchema': [{'AttributeName': 'session_id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': _attributes('session_id'),
        },
        {
            'TableName': table_names['run_logs'],
            'KeySchema': [{'AttributeName': 'log_id', 'KeyType': 'HASH'}],
            'AttributeDefinitions': _attributes('log_id', 'source_id', 'start_time'),
            'GlobalSecondaryIndexes': [_index(SOURCE_INDEX, 'source_id', 'start_time')],
        },
    ]


def create_tables(table_names: Dict[str, str], region_name: Optional[str] = None) -> None:
    """Create any missing tables with on-demand billing."""
    dynamodb = boto3.resource('dynamodb', region_name=region_name)
    for definition in table_definitions(table_names):
        try:
            table = dynamodb.create_table(BillingMode='PAY_PER_REQUEST', **definition)
            table.wait_until_exists()
            logger.info(f"Created table {definition['TableName']}")
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceInUseException':
                raise
            logger.info(f"Table {definition['TableName']} already exists")
