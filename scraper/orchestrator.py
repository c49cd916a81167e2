"""Batch ingestion across all registered sources."""
import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional

from botocore.exceptions import ClientError
from dateutil import tz

from parsers.html_parser import parse_html
from parsers.ical_parser import parse_ical
from parsers.json_parser import parse_json
from parsers.regional_parser import parse_regional
from parsers.rss_parser import parse_feed
from processor.errors import NotConfiguredError, UnsupportedSourceTypeError
from processor.models import (
    CandidateEvent,
    IngestStats,
    PreviewResult,
    RunLog,
    RunResult,
    RunStatus,
    RunSummary,
    Source,
    SourceType,
)
from processor.source_config import RegionalConfig

logger = logging.getLogger(__name__)

FEED_PARSERS = {
    SourceType.ICAL.value: parse_ical,
    SourceType.RSS.value: parse_feed,
    SourceType.JSON.value: parse_json,
    SourceType.HTML.value: parse_html,
    SourceType.REGIONAL_HTML.value: parse_regional,
}


class SourceRunError(Exception):
    """A source produced no usable result; the message goes to the run log."""


def summarize(results: List[RunResult], duration_ms: int = 0) -> RunSummary:
    """Aggregate per-source results into run totals."""
    return RunSummary(
        total_sources=len(results),
        successful_sources=sum(1 for result in results if result.success),
        failed_sources=sum(1 for result in results if not result.success and not result.skipped),
        skipped_sources=sum(1 for result in results if result.skipped),
        events_found=sum(result.events_found for result in results),
        events_added=sum(result.events_added for result in results),
        duplicates_skipped=sum(result.duplicates_skipped for result in results),
        duration_ms=duration_ms,
        errors=[
            f"{result.source_name}: {result.error}"
            for result in results if result.error and not result.skipped
        ]
    )


class IngestionOrchestrator:
    """Runs every active source in turn; one source failing never stops the run."""

    def __init__(
        self,
        source_registry,
        run_log_store,
        ingestor,
        http_client,
        adaptive_scraper=None,
        page_scrape_client=None,
        facebook_client=None,
        eventbrite_client=None,
        notifier=None,
        stale_run_after: timedelta = timedelta(hours=1)
    ):
        self.source_registry = source_registry
        self.run_log_store = run_log_store
        self.ingestor = ingestor
        self.http_client = http_client
        self.adaptive_scraper = adaptive_scraper
        self.page_scrape_client = page_scrape_client
        self.facebook_client = facebook_client
        self.eventbrite_client = eventbrite_client
        self.notifier = notifier
        self.stale_run_after = stale_run_after

    def run_all(self) -> List[RunResult]:
        """
        Run every active source sequentially.

        Returns:
            One RunResult per active source, in registry order
        """
        start_time = time.time()
        try:
            self.run_log_store.reconcile_stale_runs(self.stale_run_after)
        except ClientError as e:
            logger.error(f"Could not reconcile stale run logs: {e}")

        sources = self.source_registry.list_active()
        results = []
        for source in sources:
            results.append(self.run_one(source))

        summary = summarize(results, int((time.time() - start_time) * 1000))
        logger.info(
            f"Run complete: {summary.successful_sources}/{summary.total_sources} sources succeeded",
            extra={
                'failed_sources': summary.failed_sources,
                'skipped_sources': summary.skipped_sources,
                'events_added': summary.events_added,
                'duplicates_skipped': summary.duplicates_skipped
            }
        )

        if self.notifier is not None and summary.failed_sources:
            self.notifier.notify(summary, results)
        return results

    def run_source_by_id(self, source_id: str) -> RunResult:
        source = self.source_registry.get_by_id(source_id)
        if source is None:
            return RunResult(
                success=False,
                source_id=source_id,
                source_name='Unknown',
                error='Source not found'
            )
        return self.run_one(source)

    def run_one(self, source: Source) -> RunResult:
        """
        Fetch, parse and ingest one source, bracketed by a run log row.

        Counts in the result and the run log cover everything processed
        before a failure.

        Args:
            source: Registered source

        Returns:
            RunResult; failures are captured, never raised
        """
        start_time = time.time()
        stats = IngestStats()
        run_log = None
        logger.info(f"Scraping source '{source.name}' ({source.source_type})")

        try:
            run_log = self.run_log_store.open_run(source.source_id)
            self._run_source(source, stats)
            self.source_registry.update_last_scraped(source.source_id, datetime.now(tz=tz.UTC))
            self._close_run(run_log, RunStatus.SUCCESS, stats)
            return self._result(source, stats, start_time, success=True)

        except NotConfiguredError as e:
            logger.warning(f"Skipping source '{source.name}': {e}")
            self._close_run(run_log, RunStatus.SKIPPED, stats, error_message=str(e))
            return self._result(source, stats, start_time, success=False, error=str(e), skipped=True)

        except Exception as e:
            logger.error(
                f"Source '{source.name}' failed: {e}",
                extra={'source_id': source.source_id, 'error_type': type(e).__name__},
                exc_info=True
            )
            self._close_run(run_log, RunStatus.FAILED, stats, error_message=str(e))
            return self._result(source, stats, start_time, success=False, error=str(e))

    def preview_source(self, source_id: str, limit: int = 10) -> PreviewResult:
        """
        Fetch and parse a source without writing anything.

        Adaptive sources are previewed through their linked learned method;
        one without a method cannot be previewed, since analysis saves events.

        Args:
            source_id: Registered source id
            limit: Max sample events returned

        Returns:
            PreviewResult with the candidate count and a sample
        """
        source = self.source_registry.get_by_id(source_id)
        if source is None:
            return PreviewResult(success=False, source_id=source_id, error='Source not found')

        try:
            if source.config_error:
                raise SourceRunError(f"Invalid configuration: {source.config_error}")
            if source.source_type == SourceType.LLM_ADAPTIVE.value:
                candidates = self._preview_adaptive(source)
            else:
                candidates = self._fetch_candidates(source)
        except Exception as e:
            logger.warning(f"Preview of source '{source.name}' failed: {e}")
            return PreviewResult(success=False, source_id=source_id, source_name=source.name, error=str(e))

        events = self.ingestor.processor.process_events(candidates)
        return PreviewResult(
            success=True,
            source_id=source_id,
            source_name=source.name,
            events_found=len(candidates),
            valid_events=len(events),
            sample=events[:limit]
        )

    def _close_run(
        self,
        run_log: Optional[RunLog],
        status: RunStatus,
        stats: IngestStats,
        error_message: Optional[str] = None
    ) -> None:
        """Finish the run row; a failed write is logged and does not end the batch."""
        if run_log is None:
            return
        try:
            self.run_log_store.close_run(
                run_log,
                status,
                events_found=stats.found,
                events_added=stats.added,
                duplicates_skipped=stats.duplicates,
                error_message=error_message
            )
        except ClientError as e:
            logger.error(f"Could not close run log {run_log.log_id}: {e}")

    def _result(
        self,
        source: Source,
        stats: IngestStats,
        start_time: float,
        success: bool,
        error: Optional[str] = None,
        skipped: bool = False
    ) -> RunResult:
        return RunResult(
            success=success,
            source_id=source.source_id,
            source_name=source.name,
            events_found=stats.found,
            events_added=stats.added,
            duplicates_skipped=stats.duplicates,
            invalid_skipped=stats.invalid,
            duration_ms=int((time.time() - start_time) * 1000),
            error=error,
            skipped=skipped
        )

    def _run_source(self, source: Source, stats: IngestStats) -> None:
        if source.config_error:
            raise SourceRunError(f"Invalid configuration: {source.config_error}")

        if source.source_type == SourceType.LLM_ADAPTIVE.value:
            self._run_adaptive(source, stats)
            return

        candidates = self._fetch_candidates(source)
        logger.info(f"Source '{source.name}' yielded {len(candidates)} candidates")
        self.ingestor.ingest(candidates, source_id=source.source_id, stats=stats)

    def _fetch_candidates(self, source: Source) -> List[CandidateEvent]:
        source_type = source.source_type

        if source_type in FEED_PARSERS:
            content = self.http_client.fetch(source.url)
            return FEED_PARSERS[source_type](content, source.config, source_url=source.url)

        if source_type == SourceType.PAGE_SCRAPE_API.value:
            return self._fetch_page_scrape(source)

        if source_type == SourceType.FACEBOOK.value:
            return self._require(self.facebook_client, 'Facebook events API').fetch_events(
                source.url, source.config
            )

        if source_type == SourceType.EVENTBRITE.value:
            return self._require(self.eventbrite_client, 'Eventbrite API').fetch_events(
                source.url, source.config
            )

        raise UnsupportedSourceTypeError(source_type)

    def _fetch_page_scrape(self, source: Source) -> List[CandidateEvent]:
        """Page-scrape API with a local parser fallback when it is unavailable."""
        config = source.config
        client = self.page_scrape_client
        if client is not None and client.is_available():
            return client.fetch_events(source.url, config)

        logger.info(f"Page-scrape API not configured, falling back to {config.fallback_type} for '{source.name}'")
        content = self.http_client.fetch(source.url)
        if config.fallback_type == SourceType.HTML.value and config.html is not None:
            return parse_html(content, config.html, source_url=source.url)
        return parse_regional(content, RegionalConfig(base_url=source.url), source_url=source.url)

    def _linked_method(self, source: Source):
        if not source.method_id:
            return None
        method = self.adaptive_scraper.method_store.get_method(source.method_id)
        if method is not None and not method.active:
            return None
        return method

    def _run_adaptive(self, source: Source, stats: IngestStats) -> None:
        scraper = self.adaptive_scraper
        if scraper is None:
            raise NotConfiguredError('Adaptive scraper')

        # a linked method needs no LLM; analyze_url raises if one is required
        method = self._linked_method(source)
        if method is not None:
            result = scraper.apply_method(source.url, method, source_id=source.source_id, stats=stats)
        else:
            result = scraper.analyze_url(source.url, source_id=source.source_id, stats=stats)

        if not result.success:
            raise SourceRunError(result.error or 'Adaptive scraping failed')

    def _preview_adaptive(self, source: Source) -> List[CandidateEvent]:
        if self.adaptive_scraper is None:
            raise NotConfiguredError('Adaptive scraper')
        method = self._linked_method(source)
        if method is None:
            raise SourceRunError('Adaptive source has no learned method to preview')
        return self.adaptive_scraper.extract_with_method(source.url, method)

    def _require(self, client, service: str):
        if client is None or not client.is_available():
            raise NotConfiguredError(service)
        return client
