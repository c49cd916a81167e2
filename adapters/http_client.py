"""HTTP fetching with timeouts and retry."""
import logging
import time
from typing import Dict, Optional

import requests

from processor.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; CommunityEventsBot/1.0)'


class HttpClient:
    """Fetches source documents with a bounded timeout and exponential backoff."""

    def __init__(self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1):
        """
        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per URL before giving up (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """
        Fetch a URL and return the decoded body.

        Server errors and connection failures are retried with exponential
        backoff. Client errors (4xx) fail immediately.

        Args:
            url: Absolute URL to fetch
            headers: Extra request headers

        Returns:
            Response body as text

        Raises:
            FetchError: If the request fails after all attempts
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching {url} (attempt {attempt + 1}/{self.max_retries})")
                response = self.session.get(url, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                return response.text

            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status is not None and status < 500:
                    reason = e.response.reason or 'HTTP error'
                    logger.error(f"Fetch of {url} rejected with {status} {reason}")
                    raise FetchError(url, f"{status} {reason}", status_code=status) from e
                error = e

            except requests.RequestException as e:
                status = None
                error = e

            if attempt < self.max_retries - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"Request failed (attempt {attempt + 1}/{self.max_retries}): {error}. "
                    f"Retrying in {delay} seconds..."
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"All {self.max_retries} retry attempts failed. Last error: {error}"
                )
                raise FetchError(url, str(error), status_code=status) from error
