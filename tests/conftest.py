"""Shared fixtures: fake AWS credentials and mocked DynamoDB tables."""
import pytest
from moto import mock_aws

from storage.event_store import EventStore
from storage.method_store import MethodStore
from storage.run_log_store import RunLogStore
from storage.schema import create_tables
from storage.session_store import SessionStore
from storage.source_registry import SourceRegistry

TABLE_NAMES = {
    'events': 'test-events',
    'sources': 'test-sources',
    'methods': 'test-methods',
    'sessions': 'test-sessions',
    'run_logs': 'test-run-logs',
}


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Keep boto3 away from real credentials."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_tables():
    """Create all store tables in a mocked account."""
    with mock_aws():
        create_tables(TABLE_NAMES, region_name='us-east-1')
        yield TABLE_NAMES


@pytest.fixture
def event_store(dynamodb_tables):
    return EventStore(dynamodb_tables['events'])


@pytest.fixture
def source_registry(dynamodb_tables):
    return SourceRegistry(dynamodb_tables['sources'])


@pytest.fixture
def method_store(dynamodb_tables):
    return MethodStore(dynamodb_tables['methods'])


@pytest.fixture
def session_store(dynamodb_tables):
    return SessionStore(dynamodb_tables['sessions'])


@pytest.fixture
def run_log_store(dynamodb_tables):
    return RunLogStore(dynamodb_tables['run_logs'])
