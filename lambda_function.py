"""AWS Lambda handler for community event ingestion."""
import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Dict

from adapters.eventbrite_api import EventbriteClient
from adapters.facebook_api import FacebookEventsClient
from adapters.geocoder import Geocoder
from adapters.http_client import HttpClient
from adapters.llm_client import LlmClient
from adapters.notifier import FailureNotifier
from adapters.page_scrape_api import PageScrapeClient
from processor.errors import InvalidSessionStateError, NotConfiguredError
from processor.event_processor import EventProcessor
from scraper.adaptive_scraper import AdaptiveScraper
from scraper.ingestor import EventIngestor
from scraper.orchestrator import IngestionOrchestrator, summarize
from settings import Settings
from storage.event_store import EventStore
from storage.method_store import MethodStore
from storage.run_log_store import RunLogStore
from storage.session_store import SessionStore
from storage.source_registry import SourceRegistry


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    RESERVED = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any extra= fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in self.RESERVED and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class Pipeline:
    orchestrator: IngestionOrchestrator
    adaptive_scraper: AdaptiveScraper


def build_pipeline(settings: Settings) -> Pipeline:
    """Wire stores, adapters and scrapers from settings."""
    region = settings.aws_region
    http_client = HttpClient(timeout=settings.timeout_seconds, max_retries=settings.max_retries)

    event_store = EventStore(settings.events_table, region_name=region)
    source_registry = SourceRegistry(settings.sources_table, region_name=region)
    method_store = MethodStore(settings.methods_table, region_name=region)
    session_store = SessionStore(settings.sessions_table, region_name=region)
    run_log_store = RunLogStore(settings.run_logs_table, region_name=region)

    geocoder = Geocoder(
        settings.google_maps_api_key,
        home_region=settings.home_region,
        home_location=(settings.home_latitude, settings.home_longitude),
        max_distance_km=settings.geocode_max_distance_km
    )
    ingestor = EventIngestor(event_store, EventProcessor(settings.timezone), geocoder)

    adaptive_scraper = AdaptiveScraper(
        llm=LlmClient(settings.llm_api_key, api_url=settings.llm_api_url),
        method_store=method_store,
        session_store=session_store,
        source_registry=source_registry,
        ingestor=ingestor,
        http_client=http_client,
        follow_limit=settings.follow_link_limit,
        follow_delay=settings.follow_link_delay
    )

    rapidapi_options = {
        'timeout': settings.timeout_seconds,
        'follow_limit': settings.follow_link_limit,
        'follow_delay': settings.follow_link_delay,
    }
    orchestrator = IngestionOrchestrator(
        source_registry=source_registry,
        run_log_store=run_log_store,
        ingestor=ingestor,
        http_client=http_client,
        adaptive_scraper=adaptive_scraper,
        page_scrape_client=PageScrapeClient(settings.firecrawl_api_key),
        facebook_client=FacebookEventsClient(settings.rapidapi_key, **rapidapi_options),
        eventbrite_client=EventbriteClient(settings.rapidapi_key, **rapidapi_options),
        notifier=FailureNotifier(settings.notify_topic_arn),
        stale_run_after=timedelta(minutes=settings.stale_run_minutes)
    )
    return Pipeline(orchestrator=orchestrator, adaptive_scraper=adaptive_scraper)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body, default=str)}


def _run_all(pipeline: Pipeline, start_time: float) -> Dict[str, Any]:
    results = pipeline.orchestrator.run_all()
    duration = time.time() - start_time
    summary = summarize(results, int(duration * 1000))
    return _response(200, {
        'message': 'Ingestion run completed',
        'statistics': {
            'total_sources': summary.total_sources,
            'successful_sources': summary.successful_sources,
            'failed_sources': summary.failed_sources,
            'skipped_sources': summary.skipped_sources,
            'events_found': summary.events_found,
            'events_added': summary.events_added,
            'duplicates_skipped': summary.duplicates_skipped,
            'duration_seconds': round(duration, 2)
        },
        'results': [result.to_dict() for result in results],
        'errors': summary.errors
    })


def _run_source(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    source_id = event.get('source_id')
    if not source_id:
        return _response(400, {'message': 'source_id is required'})
    result = pipeline.orchestrator.run_source_by_id(source_id)
    return _response(200 if result.success else 500, {
        'message': 'Source run completed' if result.success else 'Source run failed',
        'result': result.to_dict()
    })


def _analyze_url(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    url = event.get('url')
    if not url:
        return _response(400, {'message': 'url is required'})
    try:
        result = pipeline.adaptive_scraper.analyze_url(url, user_id=event.get('user_id'))
    except NotConfiguredError as e:
        return _response(503, {'message': str(e), 'error_type': type(e).__name__})
    return _response(200 if result.success else 422, {
        'message': 'Events found' if result.success else result.error,
        'session_id': result.session_id,
        'used_existing': result.used_existing,
        'method_id': result.method_id,
        'events_found': len(result.events),
        'events_saved': result.stats.added,
        'duplicates_skipped': result.stats.duplicates,
        'analysis': result.analysis,
        'draft_method': result.draft_method
    })


def _approve_session(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    session_id = event.get('session_id')
    if not session_id:
        return _response(400, {'message': 'session_id is required'})
    try:
        approved = pipeline.adaptive_scraper.approve_session(session_id, event.get('approver_id'))
    except InvalidSessionStateError as e:
        return _response(409, {'message': str(e), 'error_type': type(e).__name__})
    return _response(200, {
        'message': 'Session approved',
        'method_id': approved.method_id,
        'source_id': approved.source_id
    })


def _test_source(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    source_id = event.get('source_id')
    if not source_id:
        return _response(400, {'message': 'source_id is required'})
    preview = pipeline.orchestrator.preview_source(source_id, limit=int(event.get('limit', 10)))
    if preview.success:
        status_code = 200
    else:
        status_code = 404 if preview.source_name is None else 422
    return _response(status_code, {
        'message': 'Source parsed' if preview.success else preview.error,
        'source_id': preview.source_id,
        'source_name': preview.source_name,
        'events_found': preview.events_found,
        'valid_events': preview.valid_events,
        'sample': [asdict(candidate) for candidate in preview.sample]
    })


def _stats(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    orchestrator = pipeline.orchestrator
    return _response(200, {
        'sources': orchestrator.source_registry.count_sources(),
        'events': orchestrator.ingestor.event_store.count_by_status()
    })


def _recent_logs(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    logs = pipeline.orchestrator.run_log_store.get_recent_logs(
        limit=int(event.get('limit', 50)), source_id=event.get('source_id')
    )
    return _response(200, {'logs': [asdict(log) for log in logs]})


def _recent_sessions(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    sessions = pipeline.adaptive_scraper.get_recent_sessions(int(event.get('limit', 20)))
    return _response(200, {
        'sessions': [
            {
                'session_id': session.session_id,
                'url': session.url,
                'status': session.status,
                'created_at': session.created_at,
                'events_found': len(session.found_events),
                'method_id': session.method_id,
                'error_message': session.error_message
            }
            for session in sessions
        ]
    })


ACTIONS = {
    'run_source': _run_source,
    'analyze_url': _analyze_url,
    'approve_session': _approve_session,
    'test_source': _test_source,
    'stats': _stats,
    'recent_logs': _recent_logs,
    'recent_sessions': _recent_sessions,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for event ingestion.

    The scheduled EventBridge rule sends no action and runs every active
    source. Operators can invoke run_source, analyze_url, approve_session,
    test_source (dry run), stats, recent_logs or recent_sessions.

    Args:
        event: EventBridge or manual invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    event = event or {}
    settings = Settings.from_env()

    # Initialize logging
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = event.get('action', 'run_all')
    logger.info(
        "Lambda execution started",
        extra={'action': action, 'timeout_seconds': settings.timeout_seconds}
    )

    if action != 'run_all' and action not in ACTIONS:
        return _response(400, {'message': f"Unknown action: {action}"})

    try:
        pipeline = build_pipeline(settings)
        if action == 'run_all':
            response = _run_all(pipeline, start_time)
        else:
            response = ACTIONS[action](pipeline, event)

        logger.info(
            "Lambda execution completed",
            extra={
                'action': action,
                'status_code': response['statusCode'],
                'duration_seconds': round(time.time() - start_time, 2)
            }
        )
        return response

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Ingestion failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
