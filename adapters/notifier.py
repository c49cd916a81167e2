"""Failure notifications for batch runs."""
import json
import logging
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import RunResult, RunSummary

logger = logging.getLogger(__name__)


class FailureNotifier:
    """Publishes a failure summary to an SNS topic; does nothing without a topic."""

    def __init__(self, topic_arn: Optional[str] = None):
        self.topic_arn = topic_arn
        self.sns = boto3.client('sns') if topic_arn else None

    def notify(self, summary: RunSummary, results: List[RunResult]) -> bool:
        """
        Send one message listing the failed sources of a run.

        Args:
            summary: Aggregate counts for the run
            results: Per-source results

        Returns:
            True if a message was published
        """
        failures = [result for result in results if not result.success and not result.skipped]
        if not self.topic_arn or not failures:
            return False

        message = {
            'total_sources': summary.total_sources,
            'successful_sources': summary.successful_sources,
            'failed_sources': summary.failed_sources,
            'events_added': summary.events_added,
            'failures': [
                {
                    'source_id': result.source_id,
                    'source_name': result.source_name,
                    'error': result.error
                }
                for result in failures
            ]
        }
        try:
            self.sns.publish(
                TopicArn=self.topic_arn,
                Subject=f"Event ingestion: {len(failures)} source(s) failed",
                Message=json.dumps(message, indent=2)
            )
        except ClientError as e:
            logger.error(f"Failed to publish failure notification: {e}")
            return False

        logger.info(f"Published failure notification for {len(failures)} sources")
        return True
