"""Data models for event ingestion."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceType(str, Enum):
    """Kinds of event source the orchestrator can dispatch on."""
    ICAL = 'ical'
    RSS = 'rss'
    JSON = 'json'
    HTML = 'html'
    REGIONAL_HTML = 'regional_html'
    LLM_ADAPTIVE = 'llm_adaptive'
    PAGE_SCRAPE_API = 'page_scrape_api'
    FACEBOOK = 'facebook'
    EVENTBRITE = 'eventbrite'


class EventStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class SessionStatus(str, Enum):
    ANALYZING = 'analyzing'
    EVENTS_FOUND = 'events_found'
    NO_EVENTS = 'no_events'
    ERROR = 'error'
    APPROVED = 'approved'


class RunStatus(str, Enum):
    RUNNING = 'running'
    SUCCESS = 'success'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class CandidateEvent:
    """Event as produced by a parser or adapter, before validation."""
    title: Optional[str]
    start: Optional[datetime]
    description: Optional[str] = None
    end: Optional[datetime] = None
    location: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    external_url: Optional[str] = None
    external_event_id: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    contact_info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredEvent:
    """Event as persisted in the event store."""
    event_id: str
    title: str
    start: datetime
    source_id: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    end: Optional[datetime] = None
    location: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    external_url: Optional[str] = None
    external_event_id: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    contact_info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Source:
    """Registered source of events."""
    source_id: str
    name: str
    url: str
    source_type: str
    config: Any = None
    active: bool = True
    last_scraped: Optional[datetime] = None
    method_id: Optional[str] = None
    created_by: Optional[str] = None
    config_error: Optional[str] = None


@dataclass
class LearnedMethod:
    """Reusable extraction recipe for a domain."""
    method_id: str
    name: str
    domain: str
    url_pattern: str
    method_type: str
    extraction_rules: Dict[str, Any]
    confidence: float
    active: bool = True
    usage_count: int = 0
    success_rate: float = 0.0
    last_used: Optional[datetime] = None
    source_session_id: Optional[str] = None
    approved_by: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ScrapeSession:
    """Record of one adaptive analysis of a URL."""
    session_id: str
    url: str
    status: str
    created_at: datetime
    page_content: Optional[str] = None
    llm_analysis: Optional[Dict[str, Any]] = None
    found_events: List[Dict[str, Any]] = field(default_factory=list)
    draft_method: Optional[Dict[str, Any]] = None
    method_id: Optional[str] = None
    error_message: Optional[str] = None
    created_by: Optional[str] = None
    completed_at: Optional[datetime] = None


@dataclass
class RunLog:
    """One attempt to ingest from one source."""
    log_id: str
    source_id: str
    start_time: datetime
    status: str
    end_time: Optional[datetime] = None
    events_found: int = 0
    events_added: int = 0
    duplicates_skipped: int = 0
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None


@dataclass
class IngestStats:
    """Counts from pushing candidates through dedupe and save."""
    found: int = 0
    added: int = 0
    duplicates: int = 0
    invalid: int = 0


@dataclass
class RunResult:
    """Outcome of one source run."""
    success: bool
    source_id: str
    source_name: str
    events_found: int = 0
    events_added: int = 0
    duplicates_skipped: int = 0
    invalid_skipped: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'source_id': self.source_id,
            'source_name': self.source_name,
            'events_found': self.events_found,
            'events_added': self.events_added,
            'duplicates_skipped': self.duplicates_skipped,
            'invalid_skipped': self.invalid_skipped,
            'duration_ms': self.duration_ms,
            'error': self.error,
            'skipped': self.skipped
        }


@dataclass
class RunSummary:
    """Aggregate of a batch run across all active sources."""
    total_sources: int
    successful_sources: int
    failed_sources: int
    skipped_sources: int
    events_found: int
    events_added: int
    duplicates_skipped: int
    duration_ms: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class AnalyzeResult:
    """Outcome of an adaptive analysis of one URL."""
    success: bool
    session_id: Optional[str] = None
    events: List[CandidateEvent] = field(default_factory=list)
    stats: IngestStats = field(default_factory=IngestStats)
    used_existing: bool = False
    method_id: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None
    draft_method: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ApproveResult:
    method_id: str
    source_id: str


@dataclass
class PreviewResult:
    """Dry run of one source: parsed and normalized, nothing stored."""
    success: bool
    source_id: str
    source_name: Optional[str] = None
    events_found: int = 0
    valid_events: int = 0
    sample: List[CandidateEvent] = field(default_factory=list)
    error: Optional[str] = None
