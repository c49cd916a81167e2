"""Unit tests for the failure notifier."""
import boto3
import pytest
from moto import mock_aws

from adapters.notifier import FailureNotifier
from processor.models import RunResult
from scraper.orchestrator import summarize


@pytest.fixture
def topic_arn():
    with mock_aws():
        sns = boto3.client('sns', region_name='us-east-1')
        yield sns.create_topic(Name='ingestion-failures')['TopicArn']


def _results():
    return [
        RunResult(success=True, source_id='a', source_name='A', events_added=2),
        RunResult(success=False, source_id='b', source_name='B', error='boom'),
        RunResult(success=False, source_id='c', source_name='C', error='not configured', skipped=True),
    ]


class TestFailureNotifier:
    """Test cases for FailureNotifier class."""

    def test_publishes_failures(self, topic_arn):
        results = _results()

        assert FailureNotifier(topic_arn).notify(summarize(results), results)

    def test_nothing_to_report(self, topic_arn):
        results = [RunResult(success=True, source_id='a', source_name='A')]

        assert not FailureNotifier(topic_arn).notify(summarize(results), results)

    def test_without_topic(self):
        results = _results()

        assert not FailureNotifier(None).notify(summarize(results), results)

    def test_publish_error_is_logged(self, topic_arn):
        results = _results()
        missing = topic_arn.replace('ingestion-failures', 'missing-topic')

        assert not FailureNotifier(missing).notify(summarize(results), results)
