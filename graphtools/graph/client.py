"""
Async Microsoft Graph client used by the removers.

Reads and writes share one request path: build the URL, let the Safety
Guardian approve it, then send it under the concurrency semaphore with
retry on throttling and transient transport errors. Anything that is not a
success after that raises GraphAPIError, which the removers classify into
result rows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    GRAPH_BETA_VERSION,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    DEFAULT_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    MAX_CONCURRENT_REQUESTS,
    REQUEST_TIMEOUT_SECONDS,
    CONNECT_TIMEOUT_SECONDS,
)
from ..safety.guardian import SafetyGuardian

logger = logging.getLogger("graphtools.graph")

# Throttled or temporarily unavailable; worth another attempt.
RETRYABLE_STATUSES = (429, 503, 504)
SUCCESS_STATUSES = (200, 201, 202, 204)


class GraphAPIError(Exception):
    """Raised when Graph answers with a status the caller has to deal with."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Graph API Error {status_code} for {url}: {message}")


class GraphClient:
    """
    Thin async wrapper over httpx for the Graph v1.0 / beta REST API.

    Use as an async context manager. `access_token` can be swapped after a
    delegated reconnect with set_access_token().
    """

    def __init__(
        self,
        access_token: str,
        guardian: SafetyGuardian,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.guardian = guardian
        self.request_timeout = request_timeout
        self._transport = transport
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._http: Optional[httpx.AsyncClient] = None
        self._sent = 0
        self._throttled = 0

    async def __aenter__(self) -> "GraphClient":
        self._http = httpx.AsyncClient(
            headers=self._auth_headers(),
            timeout=httpx.Timeout(self.request_timeout, connect=CONNECT_TIMEOUT_SECONDS),
            limits=httpx.Limits(max_connections=MAX_CONCURRENT_REQUESTS * 2),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info):
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            # Needed for OData casts such as /microsoft.graph.group
            "ConsistencyLevel": "eventual",
        }

    def set_access_token(self, access_token: str):
        self.access_token = access_token
        if self._http is not None:
            self._http.headers.update(self._auth_headers())

    @staticmethod
    def url_for(endpoint: str, beta: bool = False) -> str:
        """Absolute URL for a relative endpoint; nextLinks pass through untouched."""
        if endpoint.startswith(("https://", "http://")):
            return endpoint
        version = GRAPH_BETA_VERSION if beta else GRAPH_API_VERSION
        return f"{GRAPH_BASE_URL}/{version}/{endpoint.lstrip('/')}"

    # ── Public API ──────────────────────────────────────────────────────────

    async def get(self, endpoint: str, params: Optional[dict] = None, beta: bool = False) -> dict:
        return await self._request("GET", endpoint, params=params, beta=beta)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        beta: bool = False,
        top: Optional[int] = None,
        skip_top: bool = False,
    ) -> list[dict]:
        """
        Follow @odata.nextLink until the collection is exhausted.
        Some endpoints (role management) reject $top; pass skip_top=True for those.
        """
        query = dict(params or {})
        if not skip_top:
            query.setdefault("$top", str(min(top or DEFAULT_PAGE_SIZE, DEFAULT_PAGE_SIZE)))

        items: list[dict] = []
        next_url: Optional[str] = endpoint
        page_query: Optional[dict] = query
        for _ in range(MAX_PAGES_PER_ENDPOINT):
            page = await self._request("GET", next_url, params=page_query, beta=beta)
            items.extend(page.get("value", []))
            next_url = page.get("@odata.nextLink")
            if not next_url:
                return items
            page_query = None  # the nextLink carries the query

        logger.warning(f"Stopped after {MAX_PAGES_PER_ENDPOINT} pages of {endpoint}")
        return items

    async def post(self, endpoint: str, json_body: Optional[dict] = None, beta: bool = False) -> dict:
        return await self._request("POST", endpoint, json_body=json_body, beta=beta)

    async def delete(self, endpoint: str, beta: bool = False) -> dict:
        return await self._request("DELETE", endpoint, beta=beta)

    def get_stats(self) -> dict:
        return {
            "total_requests": self._sent,
            "throttle_events": self._throttled,
        }

    # ── Request path ────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        beta: bool = False,
    ) -> dict:
        url = self.url_for(endpoint, beta=beta)
        # Raises SafetyViolation before anything is sent
        self.guardian.validate_request(method, url, json_body)
        async with self._semaphore:
            return await self._send_with_retry(method, url, params, json_body)

    async def _send_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict],
        json_body: Optional[dict],
    ) -> dict:
        if self._http is None:
            raise RuntimeError("GraphClient is not open; use 'async with GraphClient(...)'")

        delay = INITIAL_BACKOFF_SECONDS
        status = 0
        for attempt in range(1, MAX_RETRIES + 2):
            try:
                response = await self._http.request(method, url, params=params, json=json_body)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt > MAX_RETRIES:
                    raise
                logger.warning(f"{type(e).__name__} on {method} {url} (attempt {attempt}); retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                delay = min(delay * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            self._sent += 1
            status = response.status_code
            if status in SUCCESS_STATUSES:
                return _json_body(response)
            if status not in RETRYABLE_STATUSES:
                raise GraphAPIError(status, _error_message(response), url)

            self._throttled += 1
            if attempt > MAX_RETRIES:
                break
            wait = max(_parse_retry_after(response.headers.get("Retry-After"), delay), delay)
            logger.warning(f"HTTP {status} on {method} {url}; retry {attempt}/{MAX_RETRIES} in {wait:.1f}s")
            await asyncio.sleep(wait)
            delay = min(delay * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise GraphAPIError(status, f"Still throttled after {MAX_RETRIES} retries", url)


def _json_body(response: httpx.Response) -> dict:
    """Decoded body of a successful response; {} for 204 and empty or non-JSON bodies."""
    if response.status_code == 204 or not response.content.strip():
        return {}
    try:
        body = response.json()
    except ValueError:
        logger.debug(f"Non-JSON {response.status_code} body from {response.request.url}")
        return {}
    return body if isinstance(body, dict) else {"value": body}


def _parse_retry_after(value: Optional[str], default: float) -> float:
    """Seconds from a Retry-After header; HTTP-date values fall back to `default`."""
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _error_message(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or body["error"].get("code") or response.text[:200]
    return response.text[:200]
