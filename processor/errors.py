"""Exceptions raised across the ingestion pipeline."""
from typing import Optional


class IngestError(Exception):
    """Base class for pipeline errors."""


class NotConfiguredError(IngestError):
    """A collaborator is missing its credential or endpoint."""

    def __init__(self, service: str):
        super().__init__(f"{service} is not configured")
        self.service = service


class FetchError(IngestError):
    """Network failure or non-success HTTP status while fetching a URL."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Failed to fetch {url}: {message}")
        self.url = url
        self.status_code = status_code


class RemoteServiceError(IngestError):
    """A third-party API rejected or failed a request."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service} error: {message}")
        self.service = service
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def auth_error(self) -> bool:
        return self.status_code in (401, 403)


class InvalidSourceConfigError(IngestError):
    """Stored per-source configuration does not match its source type."""


class UnsupportedSourceTypeError(IngestError):
    def __init__(self, source_type: str):
        super().__init__(f"Unsupported scrape type: {source_type}")
        self.source_type = source_type


class InvalidSessionStateError(IngestError):
    """Session is missing or not in a state that allows the operation."""
