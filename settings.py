"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Dict, Optional


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip()


@dataclass
class Settings:
    """Configuration for one Lambda invocation."""
    events_table: str = 'community-events'
    sources_table: str = 'community-event-sources'
    methods_table: str = 'community-event-methods'
    sessions_table: str = 'community-event-sessions'
    run_logs_table: str = 'community-event-run-logs'
    aws_region: Optional[str] = None
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    max_retries: int = 3
    timezone: str = 'America/Los_Angeles'
    llm_api_key: Optional[str] = None
    llm_api_url: str = 'https://api.segmind.com/v1/kimi-k2-instruct-0905'
    firecrawl_api_key: Optional[str] = None
    rapidapi_key: Optional[str] = None
    google_maps_api_key: Optional[str] = None
    home_region: str = 'Yakima, WA'
    home_latitude: float = 46.600825
    home_longitude: float = -120.503357
    geocode_max_distance_km: float = 160
    follow_link_limit: int = 5
    follow_link_delay: float = 0.5
    stale_run_minutes: int = 60
    notify_topic_arn: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'Settings':
        """
        Build settings from the environment, falling back to defaults.

        Raises:
            ValueError: If a numeric variable is not a number
        """
        defaults = cls()
        return cls(
            events_table=_env('EVENTS_TABLE', defaults.events_table),
            sources_table=_env('SOURCES_TABLE', defaults.sources_table),
            methods_table=_env('METHODS_TABLE', defaults.methods_table),
            sessions_table=_env('SESSIONS_TABLE', defaults.sessions_table),
            run_logs_table=_env('RUN_LOGS_TABLE', defaults.run_logs_table),
            aws_region=_env('AWS_REGION'),
            log_level=_env('LOG_LEVEL', defaults.log_level),
            timeout_seconds=int(_env('TIMEOUT_SECONDS', str(defaults.timeout_seconds))),
            max_retries=int(_env('MAX_RETRIES', str(defaults.max_retries))),
            timezone=_env('TIMEZONE', defaults.timezone),
            llm_api_key=_env('LLM_API_KEY'),
            llm_api_url=_env('LLM_API_URL', defaults.llm_api_url),
            firecrawl_api_key=_env('FIRECRAWL_API_KEY'),
            rapidapi_key=_env('RAPIDAPI_KEY'),
            google_maps_api_key=_env('GOOGLE_MAPS_API_KEY'),
            home_region=_env('HOME_REGION', defaults.home_region),
            home_latitude=float(_env('HOME_LATITUDE', str(defaults.home_latitude))),
            home_longitude=float(_env('HOME_LONGITUDE', str(defaults.home_longitude))),
            geocode_max_distance_km=float(
                _env('GEOCODE_MAX_DISTANCE_KM', str(defaults.geocode_max_distance_km))
            ),
            follow_link_limit=int(_env('FOLLOW_LINK_LIMIT', str(defaults.follow_link_limit))),
            follow_link_delay=float(_env('FOLLOW_LINK_DELAY', str(defaults.follow_link_delay))),
            stale_run_minutes=int(_env('STALE_RUN_MINUTES', str(defaults.stale_run_minutes))),
            notify_topic_arn=_env('NOTIFY_TOPIC_ARN')
        )

    def table_names(self) -> Dict[str, str]:
        return {
            'events': self.events_table,
            'sources': self.sources_table,
            'methods': self.methods_table,
            'sessions': self.sessions_table,
            'run_logs': self.run_logs_table,
        }
