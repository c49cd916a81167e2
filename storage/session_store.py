"""Adaptive scrape sessions backed by DynamoDB."""
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import tz

from processor.dates import parse_instant
from processor.models import ScrapeSession, SessionStatus
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)

MAX_PAGE_CONTENT = 50000
# DynamoDB rejects items over 400 KB
MAX_ITEM_BYTES = 380000


class SessionStore(DynamoDBManager):
    """One row per adaptive analysis of a URL."""

    def start_session(self, url: str, created_by: Optional[str] = None) -> ScrapeSession:
        session = ScrapeSession(
            session_id=str(uuid.uuid4()),
            url=url,
            status=SessionStatus.ANALYZING.value,
            created_at=datetime.now(tz=tz.UTC),
            created_by=created_by
        )
        self.put_item(self._session_to_item(session))
        return session

    def get_session(self, session_id: str) -> Optional[ScrapeSession]:
        item = self.get_item({'session_id': session_id})
        return self._item_to_session(item) if item else None

    def get_recent_sessions(self, limit: int = 20) -> List[ScrapeSession]:
        sessions = [self._item_to_session(item) for item in self.scan_items()]
        sessions.sort(key=lambda session: session.created_at, reverse=True)
        return sessions[:limit]

    def save(self, session: ScrapeSession) -> None:
        """
        Write the full session row.

        Page content is truncated to MAX_PAGE_CONTENT characters. If the row
        is still too large for DynamoDB, the page content and then the raw
        analysis are dropped; found events and the draft method are kept
        since approval needs them.
        """
        if session.page_content and len(session.page_content) > MAX_PAGE_CONTENT:
            session.page_content = session.page_content[:MAX_PAGE_CONTENT]

        item = self._session_to_item(session)
        for key in ('page_content', 'llm_analysis'):
            if _item_size(item) <= MAX_ITEM_BYTES:
                break
            logger.warning(f"Session {session.session_id} row too large, dropping {key}")
            item[key] = None
            setattr(session, key, None)
        self.put_item(item)

    def finish(
        self,
        session: ScrapeSession,
        status: SessionStatus,
        error_message: Optional[str] = None
    ) -> None:
        session.status = status.value
        session.error_message = error_message
        session.completed_at = datetime.now(tz=tz.UTC)
        self.save(session)
        logger.info(f"Session {session.session_id} finished with status {status.value}")

    def _session_to_item(self, session: ScrapeSession) -> dict:
        # analysis and events are free-form model output; store as JSON text
        return {
            'session_id': session.session_id,
            'url': session.url,
            'status': session.status,
            'created_at': session.created_at,
            'page_content': session.page_content,
            'llm_analysis': _dump(session.llm_analysis),
            'found_events': _dump(session.found_events),
            'draft_method': _dump(session.draft_method),
            'method_id': session.method_id,
            'error_message': session.error_message,
            'created_by': session.created_by,
            'completed_at': session.completed_at,
        }

    def _item_to_session(self, item: dict) -> ScrapeSession:
        return ScrapeSession(
            session_id=item['session_id'],
            url=item['url'],
            status=item['status'],
            created_at=parse_instant(item['created_at']),
            page_content=item.get('page_content'),
            llm_analysis=_load(item.get('llm_analysis')),
            found_events=_load(item.get('found_events')) or [],
            draft_method=_load(item.get('draft_method')),
            method_id=item.get('method_id'),
            error_message=item.get('error_message'),
            created_by=item.get('created_by'),
            completed_at=parse_instant(item.get('completed_at'))
        )


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _load(value: Optional[str]) -> Any:
    if not value:
        return None
    return json.loads(value)


def _item_size(item: Dict[str, Any]) -> int:
    return len(json.dumps(item, default=str).encode('utf-8'))
