"""
Audit Log API client.

Async HTTP client for an Okta-style ``/api/v1/logs`` endpoint. Turns a time
window into a complete, ordered stream of log records:

- Cursor pagination through the ``Link`` header (``after`` parameter)
- Capped exponential backoff on rate limiting (HTTP 429)
- Any other non-200 status, transport error or malformed body is fatal

Usage:
    async with AuditLogClient.from_settings(settings) as client:
        count = await client.get_logs(since, until, queue.publish)
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import orjson
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_exponential

from utils.config import Settings
from utils.exceptions import FetchError, RateLimitExhaustedError
from utils.links import format_rfc3339, next_cursor

logger = logging.getLogger(__name__)

RecordSink = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """Rate-limit backoff: initial delay, doubled per retry, bounded by a cap.

    The cap bounds the number of retries rather than a single wait: once the
    next delay would exceed it, the rate-limited response is returned as is.
    """

    initial_ms: int = 1000
    max_ms: int = 32000
    factor: float = 2

    def __post_init__(self) -> None:
        if self.initial_ms <= 0:
            raise ValueError("backoff initial delay must be positive")
        if self.factor <= 1:
            raise ValueError("backoff factor must be greater than 1")
        if self.max_ms <= 0:
            raise ValueError("backoff cap must be positive")

    @property
    def max_attempts(self) -> int:
        """Total requests made before giving up (sleeps + final attempt)."""
        sleeps = 0
        delay = float(self.initial_ms)
        while delay <= self.max_ms:
            sleeps += 1
            delay *= self.factor
        return sleeps + 1

    def delays(self) -> list[float]:
        """Wait times in seconds, one per retry."""
        return [self.initial_ms * self.factor**n / 1000 for n in range(self.max_attempts - 1)]


@dataclass(frozen=True)
class ApiResponse:
    status: int
    url: str
    links: tuple[str, ...]
    body: bytes


class AuditLogClient:
    """
    Async client for the audit log API.

    Usage:
        async with AuditLogClient("example.okta.com", "token") as client:
            count = await client.get_logs(since, until, sink)

    Configuration:
        domain: API host, without scheme
        token: API token, sent as "<auth_scheme> <token>"
        timeout_seconds: Per-request timeout (default: 10)
        page_limit: Records per page (default: 1000)
        backoff: BackoffPolicy for rate-limited responses
    """

    def __init__(
        self,
        domain: str,
        token: str,
        *,
        auth_scheme: str = "SSWS",
        scheme: str = "https",
        logs_path: str = "/api/v1/logs",
        timeout_seconds: float = 10,
        page_limit: int = 1000,
        rate_limit_status: int = 429,
        backoff: Optional[BackoffPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize audit log client.

        Args:
            session: Existing session to use; it is not closed by this client
            sleep: Coroutine used for backoff waits
        """
        self.url = f"{scheme}://{domain}{logs_path}"
        self._authorization = f"{auth_scheme} {token}"
        self.timeout_seconds = timeout_seconds
        self.page_limit = page_limit
        self.rate_limit_status = rate_limit_status
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep

        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "AuditLogClient":
        return cls(
            settings.API_DOMAIN,
            settings.API_TOKEN,
            auth_scheme=settings.API_AUTH_SCHEME,
            scheme=settings.API_SCHEME,
            logs_path=settings.API_LOGS_PATH,
            timeout_seconds=settings.API_TIMEOUT,
            page_limit=settings.API_PAGE_LIMIT,
            rate_limit_status=settings.RATE_LIMIT_STATUS,
            backoff=BackoffPolicy(
                initial_ms=settings.BACKOFF_INITIAL_MS,
                max_ms=settings.BACKOFF_MAX_MS,
                factor=settings.BACKOFF_FACTOR,
            ),
            **kwargs,
        )

    async def __aenter__(self) -> "AuditLogClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    async def get_logs(self, since: Optional[datetime], until: datetime, sink: RecordSink) -> int:
        """
        Fetch every log record in [since, until], streaming each to sink.

        Records are handed over page by page in server order as single-line
        JSON strings; the full result set is never held in memory.

        Args:
            since: Window lower bound, or None to use the API default
            until: Window upper bound
            sink: Async callable receiving each serialized record

        Returns:
            Total number of records across all pages

        Raises:
            FetchError: On transport errors, unexpected statuses or bad bodies
        """
        params = {"limit": str(self.page_limit), "until": format_rfc3339(until)}
        if since is not None:
            params["since"] = format_rfc3339(since)

        count = 0
        pages = 0
        after = ""

        while True:
            if after:
                params["after"] = after

            records, after = await self._get_page(params)
            pages += 1

            for record in records:
                await sink(record)
            count += len(records)

            logger.debug("Fetched page %d: records=%d, has_next=%s", pages, len(records), bool(after))

            if not after:
                break

        return count

    async def _get_page(self, params: dict[str, str]) -> tuple[list[str], str]:
        response = await self._request(params)

        if response.status == self.rate_limit_status:
            raise RateLimitExhaustedError(
                f"Rate limit persisted after {self.backoff.max_attempts} attempts: {response.url}",
                status_code=response.status,
            )

        return decode_records(response.body), next_cursor(response.links)

    async def _request(self, params: dict[str, str]) -> ApiResponse:
        """Issue one GET, retrying rate-limited responses per the backoff policy."""
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda r: r.status == self.rate_limit_status),
            wait=wait_exponential(
                multiplier=self.backoff.initial_ms / 1000,
                exp_base=self.backoff.factor,
            ),
            stop=stop_after_attempt(self.backoff.max_attempts),
            before_sleep=self._log_rate_limited,
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=self._sleep,
        )
        return await retrying(self._send, dict(params))

    async def _send(self, params: dict[str, str]) -> ApiResponse:
        session = await self._ensure_session()

        logger.debug("Calling URL: %s", self.url, extra={"params": params})

        try:
            async with session.get(
                self.url,
                params=params,
                headers={"Authorization": self._authorization},
            ) as resp:
                status = resp.status
                if status not in (200, self.rate_limit_status):
                    raise FetchError(f"HTTP response code: {status} ({self.url})", status_code=status)

                body = await resp.read()
                return ApiResponse(
                    status=status,
                    url=str(resp.url),
                    links=tuple(resp.headers.getall("Link", ())),
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"Error conducting request: {e!r}") from e

    def _log_rate_limited(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Rate limited, backing off",
            extra={
                "attempt": retry_state.attempt_number,
                "wait_seconds": retry_state.next_action.sleep if retry_state.next_action else None,
            },
        )


def decode_records(body: bytes) -> list[str]:
    """
    Decode a page body (a JSON array) into single-line JSON strings.

    Raises:
        FetchError: If the body isn't valid JSON or isn't an array
    """
    try:
        items = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise FetchError(f"Error unmarshalling response body: {e}") from e

    if not isinstance(items, list):
        raise FetchError(f"Error unmarshalling response body: expected a JSON array, got {type(items).__name__}")

    return [orjson.dumps(item).decode("utf-8") for item in items]
