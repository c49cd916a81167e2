"""LLM-driven scraper that learns reusable extraction methods per domain."""
import logging
import time
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

from botocore.exceptions import ClientError

from parsers.html_parser import parse_html
from processor.dates import fallback_tomorrow_noon, parse_datetime_text
from processor.errors import (
    FetchError,
    InvalidSessionStateError,
    InvalidSourceConfigError,
    NotConfiguredError,
    RemoteServiceError,
)
from processor.event_processor import hash_key
from processor.models import (
    AnalyzeResult,
    ApproveResult,
    CandidateEvent,
    IngestStats,
    LearnedMethod,
    ScrapeSession,
    SessionStatus,
    SourceType,
)
from processor.source_config import parse_html_config
from storage.method_store import generate_url_pattern

logger = logging.getLogger(__name__)

APPROVAL_CONFIDENCE = 0.80


def normalize_llm_event(data: Dict[str, Any], base_url: str, now: Optional[datetime] = None) -> Optional[CandidateEvent]:
    """
    Lenient mapping of a model-reported event.

    A missing or unreadable date becomes 12:00 tomorrow; a relative link is
    resolved against the page, and a missing link falls back to the page.

    Args:
        data: Event fields as returned by the model
        base_url: Page the event was found on
        now: Reference time

    Returns:
        CandidateEvent, or None without a title
    """
    title = data.get('title') or data.get('name')
    if not isinstance(title, str) or not title.strip():
        return None

    date_text = ' '.join(
        str(data[key]) for key in ('date', 'time') if data.get(key)
    ) or data.get('start_datetime') or data.get('startDatetime')
    start = parse_datetime_text(
        date_text,
        now=now,
        roll_forward=True,
        fallback=lambda _: fallback_tomorrow_noon(now)
    )

    end_text = data.get('end_date') or data.get('end_datetime') or data.get('endDatetime')
    end = parse_datetime_text(str(end_text), now=now) if end_text else None

    link = data.get('link') or data.get('url')
    url = urljoin(base_url, link) if isinstance(link, str) and link.strip() else base_url

    return CandidateEvent(
        title=title.strip(),
        start=start,
        end=end,
        description=data.get('description'),
        location=data.get('location') or data.get('venue'),
        address=data.get('address'),
        external_url=url,
        external_event_id=hash_key(url) if url != base_url else None
    )


class AdaptiveScraper:
    """
    Learn-once, reuse-many extraction.

    A domain with an approved method is scraped with its stored selectors and
    never reaches the LLM. Otherwise the LLM reads the page, events are saved
    and a draft method is attached to the session for human approval.
    """

    def __init__(
        self,
        llm,
        method_store,
        session_store,
        source_registry,
        ingestor,
        http_client,
        follow_limit: int = 5,
        follow_delay: float = 0.5
    ):
        self.llm = llm
        self.method_store = method_store
        self.session_store = session_store
        self.source_registry = source_registry
        self.ingestor = ingestor
        self.http_client = http_client
        self.follow_limit = follow_limit
        self.follow_delay = follow_delay

    def is_available(self) -> bool:
        return self.llm.is_available()

    def analyze_url(
        self,
        url: str,
        user_id: Optional[str] = None,
        source_id: Optional[str] = None,
        stats: Optional[IngestStats] = None
    ) -> AnalyzeResult:
        """
        Extract and save events from a URL.

        Args:
            url: Page to analyze
            user_id: Operator who requested the analysis
            source_id: Source the events belong to, if any
            stats: Ingest counters to update in place

        Returns:
            AnalyzeResult; used_existing is True when a learned method was
            applied. LLM sessions also carry the raw analysis and, on
            success, the draft extraction method awaiting approval.

        Raises:
            NotConfiguredError: If no learned method applies and the LLM is not configured
            FetchError: If a learned method applies but the page cannot be fetched
        """
        domain = urlparse(url).hostname
        if not domain:
            return AnalyzeResult(success=False, error=f"Invalid URL: {url}")

        method = self.method_store.find_best_method(domain)
        if method is not None:
            logger.info(f"Using learned method {method.method_id} for {domain}")
            return self.apply_method(url, method, source_id=source_id, stats=stats)

        if not self.llm.is_available():
            raise NotConfiguredError('LLM API')

        return self._analyze_with_llm(url, user_id, source_id, stats if stats is not None else IngestStats())

    def apply_method(
        self,
        url: str,
        method: LearnedMethod,
        source_id: Optional[str] = None,
        stats: Optional[IngestStats] = None
    ) -> AnalyzeResult:
        """Scrape a page with a stored method and record the outcome on it."""
        stats = stats if stats is not None else IngestStats()
        events = self.extract_with_method(url, method)

        self.method_store.record_outcome(method.method_id, bool(events))

        if not events:
            return AnalyzeResult(
                success=False,
                stats=stats,
                used_existing=True,
                method_id=method.method_id,
                error='Learned method found no events'
            )

        self.ingestor.ingest(events, source_id=source_id, stats=stats)
        return AnalyzeResult(
            success=True,
            events=events,
            stats=stats,
            used_existing=True,
            method_id=method.method_id
        )

    def extract_with_method(self, url: str, method: LearnedMethod) -> List[CandidateEvent]:
        """Fetch a page and parse it with a method's stored selectors; nothing is written."""
        html = self.http_client.fetch(url)

        rules = dict(method.extraction_rules or {})
        try:
            config = parse_html_config({
                'selectors': rules.get('selectors') or {},
                'base_url': url,
            })
        except InvalidSourceConfigError as e:
            logger.warning(f"Learned method {method.method_id} has unusable rules: {e}")
            return []
        return parse_html(html, config, source_url=url)

    def _analyze_with_llm(
        self, url: str, user_id: Optional[str], source_id: Optional[str], stats: IngestStats
    ) -> AnalyzeResult:
        session = self.session_store.start_session(url, created_by=user_id)
        logger.info(f"Started analysis session {session.session_id} for {url}")

        try:
            try:
                html = self.http_client.fetch(url)
            except FetchError as e:
                logger.warning(f"Session {session.session_id}: {e}")
                return self._fail(session, SessionStatus.ERROR, 'Failed to fetch webpage content', stats)

            session.page_content = html
            self.session_store.save(session)

            analysis = self.llm.find_event_patterns(html, url)
            if analysis is None:
                return self._fail(session, SessionStatus.ERROR, 'LLM analysis could not be parsed', stats)

            session.llm_analysis = analysis
            self.session_store.save(session)

            if not analysis['has_events'] and not analysis['event_links']:
                return self._fail(session, SessionStatus.NO_EVENTS, 'No events found on this page', stats)

            events = []
            for data in analysis['events_found']:
                event = normalize_llm_event(data, url)
                if event:
                    events.append(event)

            if not events and analysis['event_links']:
                events = self._follow_event_links(analysis['event_links'], url)

            if not events:
                return self._fail(session, SessionStatus.NO_EVENTS, 'Could not extract event details', stats)

            session.found_events = [asdict(event) for event in events]
            self.ingestor.ingest(events, source_id=source_id, stats=stats)

            session.draft_method = self.llm.generate_extraction_method(
                html, analysis['events_found'] or session.found_events, url
            )
            self.session_store.finish(session, SessionStatus.EVENTS_FOUND)

            logger.info(
                f"Session {session.session_id} found {len(events)} events, saved {stats.added}"
            )
            return AnalyzeResult(
                success=True,
                session_id=session.session_id,
                events=events,
                stats=stats,
                analysis=analysis,
                draft_method=session.draft_method
            )

        except Exception as e:
            logger.error(f"Analysis of {url} failed: {e}", exc_info=True)
            return self._fail(session, SessionStatus.ERROR, str(e), stats)

    def _fail(
        self, session: ScrapeSession, status: SessionStatus, message: str, stats: IngestStats
    ) -> AnalyzeResult:
        try:
            self.session_store.finish(session, status, error_message=message)
        except ClientError as e:
            logger.error(f"Could not record {status.value} for session {session.session_id}: {e}")
        return AnalyzeResult(
            success=False,
            session_id=session.session_id,
            stats=stats,
            analysis=session.llm_analysis,
            error=message
        )

    def _follow_event_links(self, links: List[str], base_url: str) -> List[CandidateEvent]:
        """Ask the LLM about up to follow_limit linked detail pages, one at a time."""
        events = []
        for index, link in enumerate(links[:self.follow_limit]):
            if index:
                time.sleep(self.follow_delay)
            page_url = urljoin(base_url, link)
            try:
                html = self.http_client.fetch(page_url)
                data = self.llm.analyze_event_page(html, page_url)
            except (FetchError, RemoteServiceError) as e:
                logger.warning(f"Skipping event link {page_url}: {e}")
                continue

            if data:
                data.setdefault('link', page_url)
                event = normalize_llm_event(data, base_url)
                if event:
                    events.append(event)

        logger.info(f"Followed {min(len(links), self.follow_limit)} event links, found {len(events)} events")
        return events

    def approve_session(self, session_id: str, approver_id: Optional[str] = None) -> ApproveResult:
        """
        Promote a successful session to a learned method and an adaptive source.

        Args:
            session_id: Session in events_found state
            approver_id: Operator approving it

        Returns:
            ApproveResult with the new method and source ids

        Raises:
            InvalidSessionStateError: If the session is missing or not events_found
        """
        session = self.session_store.get_session(session_id)
        if session is None or session.status != SessionStatus.EVENTS_FOUND.value:
            raise InvalidSessionStateError('Invalid session or no events found')

        domain = urlparse(session.url).hostname
        analysis = session.llm_analysis or {}
        draft = session.draft_method or {}
        rules = {
            'selectors': draft.get('selectors') or analysis.get('selectors') or {},
            'patterns': draft.get('patterns') or analysis.get('patterns') or {},
        }

        method = self.method_store.create_method(
            domain=domain,
            url_pattern=generate_url_pattern(session.url),
            method_type='event_list',
            rules=rules,
            initial_confidence=APPROVAL_CONFIDENCE,
            source_session_id=session.session_id,
            approved_by=approver_id,
            test_results={'events_found': len(session.found_events)}
        )

        session.method_id = method.method_id
        self.session_store.finish(session, SessionStatus.APPROVED)

        source_id = self.source_registry.create_source(
            name=method.name,
            url=session.url,
            source_type=SourceType.LLM_ADAPTIVE.value,
            method_id=method.method_id,
            created_by=approver_id
        )
        logger.info(f"Approved session {session_id}: method {method.method_id}, source {source_id}")
        return ApproveResult(method_id=method.method_id, source_id=source_id)

    def get_session(self, session_id: str) -> Optional[ScrapeSession]:
        return self.session_store.get_session(session_id)

    def get_recent_sessions(self, limit: int = 20) -> List[ScrapeSession]:
        return self.session_store.get_recent_sessions(limit)
