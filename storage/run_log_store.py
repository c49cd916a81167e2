"""Run log rows backed by DynamoDB."""
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from boto3.dynamodb.conditions import Attr, Key
from dateutil import tz

from processor.dates import format_instant, parse_instant
from processor.models import RunLog, RunStatus
from storage.dynamodb_manager import DynamoDBManager
from storage.schema import SOURCE_INDEX

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = 'Run interrupted before completion'


class RunLogStore(DynamoDBManager):
    """Append-only audit of per-source runs."""

    def open_run(self, source_id: str) -> RunLog:
        run_log = RunLog(
            log_id=str(uuid.uuid4()),
            source_id=source_id,
            start_time=datetime.now(tz=tz.UTC),
            status=RunStatus.RUNNING.value
        )
        self.put_item(self._run_log_to_item(run_log))
        return run_log

    def close_run(
        self,
        run_log: RunLog,
        status: RunStatus,
        events_found: int = 0,
        events_added: int = 0,
        duplicates_skipped: int = 0,
        error_message: Optional[str] = None
    ) -> RunLog:
        """
        Finish a run row with its final counts.

        Args:
            run_log: Row returned by open_run
            status: Terminal status
            events_found: Candidates produced by the parser or adapter
            events_added: Candidates inserted
            duplicates_skipped: Candidates matched to stored events
            error_message: Human-readable failure reason

        Returns:
            The updated RunLog
        """
        end_time = datetime.now(tz=tz.UTC)
        run_log.end_time = end_time
        run_log.status = status.value
        run_log.events_found = events_found
        run_log.events_added = events_added
        run_log.duplicates_skipped = duplicates_skipped
        run_log.duration_ms = int((end_time - run_log.start_time).total_seconds() * 1000)
        run_log.error_message = error_message
        self.put_item(self._run_log_to_item(run_log))
        return run_log

    def get_recent_logs(self, limit: int = 50, source_id: Optional[str] = None) -> List[RunLog]:
        """Newest runs first, optionally for one source."""
        if source_id:
            items = self.query_items(
                IndexName=SOURCE_INDEX,
                KeyConditionExpression=Key('source_id').eq(source_id),
                ScanIndexForward=False,
                Limit=limit
            )
        else:
            items = self.scan_items()
        logs = [self._item_to_run_log(item) for item in items]
        logs.sort(key=lambda log: log.start_time, reverse=True)
        return logs[:limit]

    def reconcile_stale_runs(self, older_than: timedelta) -> int:
        """
        Mark runs left in 'running' by a crashed process as failed.

        Args:
            older_than: Age after which a running row counts as abandoned

        Returns:
            Number of rows reconciled
        """
        cutoff = datetime.now(tz=tz.UTC) - older_than
        items = self.scan_items(
            FilterExpression=(
                Attr('status').eq(RunStatus.RUNNING.value)
                & Attr('start_time').lt(format_instant(cutoff))
            )
        )
        if not items:
            return 0

        stale = []
        for item in items:
            run_log = self._item_to_run_log(item)
            run_log.status = RunStatus.FAILED.value
            run_log.end_time = datetime.now(tz=tz.UTC)
            run_log.error_message = INTERRUPTED_MESSAGE
            stale.append(self._run_log_to_item(run_log))

        count = self.batch_put_items(stale)
        logger.warning(f"Reconciled {count} stale running logs")
        return count

    def _run_log_to_item(self, run_log: RunLog) -> dict:
        return {
            'log_id': run_log.log_id,
            'source_id': run_log.source_id,
            'start_time': run_log.start_time,
            'end_time': run_log.end_time,
            'status': run_log.status,
            'events_found': run_log.events_found,
            'events_added': run_log.events_added,
            'duplicates_skipped': run_log.duplicates_skipped,
            'duration_ms': run_log.duration_ms,
            'error_message': run_log.error_message,
        }

    def _item_to_run_log(self, item: dict) -> RunLog:
        return RunLog(
            log_id=item['log_id'],
            source_id=item['source_id'],
            start_time=parse_instant(item['start_time']),
            status=item['status'],
            end_time=parse_instant(item.get('end_time')),
            events_found=item.get('events_found', 0),
            events_added=item.get('events_added', 0),
            duplicates_skipped=item.get('duplicates_skipped', 0),
            duration_ms=item.get('duration_ms'),
            error_message=item.get('error_message')
        )
