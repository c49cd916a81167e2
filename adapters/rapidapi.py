"""Shared plumbing for RapidAPI-hosted scraper services."""
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from processor.errors import NotConfiguredError, RemoteServiceError

logger = logging.getLogger(__name__)

Page = Tuple[List[Any], Optional[str]]


class RapidApiClient:
    """Base class for RapidAPI adapters: auth headers, errors, paging and link following."""

    SERVICE = 'RapidAPI'
    HOST = ''

    def __init__(
        self,
        api_key: Optional[str],
        timeout: int = 30,
        follow_limit: int = 5,
        follow_delay: float = 0.5
    ):
        """
        Args:
            api_key: RapidAPI key; adapters are unavailable without one
            timeout: HTTP request timeout in seconds
            follow_limit: Max chained detail fetches per top-level request
            follow_delay: Seconds to wait between chained fetches
        """
        self.api_key = api_key
        self.timeout = timeout
        self.follow_limit = follow_limit
        self.follow_delay = follow_delay

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Call the service and return the decoded JSON body.

        Raises:
            NotConfiguredError: If no API key is set
            RemoteServiceError: On transport errors, non-2xx status or bad JSON
        """
        if not self.is_available():
            raise NotConfiguredError(self.SERVICE)

        headers = {
            'x-rapidapi-key': self.api_key,
            'x-rapidapi-host': self.HOST,
        }
        try:
            response = requests.request(
                method,
                f"https://{self.HOST}{path}",
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RemoteServiceError(self.SERVICE, str(e)) from e

        if response.status_code == 403:
            raise RemoteServiceError(self.SERVICE, 'not subscribed to this API', status_code=403)
        if response.status_code == 404:
            raise RemoteServiceError(self.SERVICE, 'endpoint not found', status_code=404)
        if response.status_code == 429:
            raise RemoteServiceError(self.SERVICE, 'rate limit exceeded', status_code=429)
        if not response.ok:
            raise RemoteServiceError(
                self.SERVICE,
                f"{response.status_code} - {response.text[:200]}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(self.SERVICE, 'invalid JSON response') from e

    def _paginate(
        self,
        fetch_page: Callable[[Optional[str]], Page],
        max_results: int
    ) -> List[Any]:
        """
        Collect items across pages until the cursor runs out or max_results is reached.

        Args:
            fetch_page: Called with the current cursor (None first); returns
                the page items and the next cursor
            max_results: Cap on the number of items returned
        """
        items: List[Any] = []
        cursor = None
        seen_cursors = set()

        while len(items) < max_results:
            page, cursor = fetch_page(cursor)
            items.extend(page)
            if not cursor or not page or cursor in seen_cursors:
                break
            seen_cursors.add(cursor)
            time.sleep(self.follow_delay)

        return items[:max_results]

    def _follow(
        self,
        identifiers: Iterable[str],
        fetch_one: Callable[[str], Any],
        limit: Optional[int] = -1
    ) -> List[Any]:
        """
        Fetch detail records one at a time, throttled.

        Failures for individual records are logged and skipped; auth and
        rate-limit errors stop the whole batch.

        Args:
            identifiers: Ids or URLs to fetch
            fetch_one: Fetches and converts one record
            limit: Max records to fetch; -1 uses follow_limit, None fetches all
        """
        identifiers = list(identifiers)
        if limit == -1:
            limit = self.follow_limit
        if limit is not None:
            identifiers = identifiers[:limit]

        results = []
        for index, identifier in enumerate(identifiers):
            if index:
                time.sleep(self.follow_delay)
            try:
                result = fetch_one(identifier)
            except RemoteServiceError as e:
                if e.auth_error or e.rate_limited:
                    raise
                logger.warning(f"{self.SERVICE}: skipping {identifier}: {e}")
                continue
            except ValueError as e:
                logger.warning(f"{self.SERVICE}: skipping {identifier}: {e}")
                continue
            if result is not None:
                results.append(result)
        return results
