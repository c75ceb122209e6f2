"""Outbound HTTP client for risk-intel.

Every provider call goes through ``HttpClient``: requests carry an explicit
timeout and are retried with exponential backoff on network errors,
timeouts, 5xx and 429 responses. Other failures are raised immediately as
``HttpRequestError``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Collection, Dict, Optional

import httpx

from risk_intel.errors import HttpRequestError

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Configuration for outbound retries."""
    max_retries: int = 3
    initial_delay: float = 0.1
    max_delay: float = 5.0
    exponential_base: float = 2.0

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay before retry number ``attempt`` (zero based)."""
        return min(self.initial_delay * (self.exponential_base ** attempt), self.max_delay)


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class HttpClient:
    """Timeout-bounded, retrying wrapper around ``httpx.AsyncClient``."""

    def __init__(
        self,
        timeout: float = 2.5,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
        json: Any = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        allow_status: Collection[int] = (),
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Responses whose status is in ``allow_status`` are returned to the
        caller instead of raising, e.g. a 404 that means "missing key".
        """
        max_retries = self.retry_policy.max_retries if retries is None else retries
        request_timeout = self.timeout if timeout is None else timeout

        attempt = 0
        while True:
            try:
                # httpx times each phase separately, wait_for bounds the whole attempt
                response = await asyncio.wait_for(
                    self.client.request(
                        method,
                        url,
                        headers=headers,
                        params=params,
                        content=content,
                        json=json,
                        timeout=request_timeout,
                    ),
                    request_timeout,
                )
            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                error = HttpRequestError(f"Request to {url} timed out after {request_timeout}s", retryable=True)
                error.__cause__ = e
            except httpx.TransportError as e:
                error = HttpRequestError(f"Request to {url} failed: {e}", retryable=True)
                error.__cause__ = e
            else:
                if response.is_success or response.status_code in allow_status:
                    return response
                error = HttpRequestError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    retryable=is_retryable_status(response.status_code),
                )

            if not error.retryable or attempt >= max_retries:
                raise error

            delay = self.retry_policy.calculate_delay(attempt)
            logger.debug(f"Retrying {method} {url} in {delay:.3f}s after: {error.message}")
            attempt += 1
            await asyncio.sleep(delay)

    async def get_json(self, url: str, **kwargs) -> Any:
        """GET ``url`` and decode the JSON body."""
        response = await self.request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise HttpRequestError(f"Invalid JSON from {url}: {e}", status_code=response.status_code) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
