"""
Resilient connector state machine.

A provider adapter supplies only the transport-specific hooks (connect,
disconnect, health check). ResilientConnector wraps it and owns everything
else: lifecycle state, rate limiting, retry with backoff, error
classification, lifecycle events, health history, metrics and request logs.

States:
    disconnected -> connecting -> connected | error
    connected    -> rate_limited | error | disconnected
    any          -> disabled (after MAX_RECONNECT_ATTEMPTS failed reconnects)

Concurrency:
    One connector instance is driven by one logical caller at a time; no
    internal locking. Separate instances are independent and may run
    concurrently on the same event loop. The only suspension points are the
    adapter hooks, the wrapped operation and the backoff sleep.

Example:
    connector = ResilientConnector(
        JiraAdapter(),
        rate_limit=RateLimitConfig(max_requests=300, window_ms=60_000),
        retry=RetryConfig(max_attempts=3, initial_delay_ms=500),
    )
    await connector.connect(config, credentials)
    ticket = await connector.with_retry(
        lambda: connector.adapter.get_ticket("PROJ-1"), "get_ticket"
    )
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from .backoff import ExponentialJitterBackoff
from .errors import ConnectorError, classify_error
from .events import ConnectorEventType, EventBus, EventListener
from .ratelimit import FixedWindowRateLimiter, now_ms
from .types import (
    CatalogEntry,
    ConnectorConfig,
    ConnectorCredentials,
    ConnectorMetrics,
    ConnectorStatus,
    ErrorCategory,
    HealthCheckResult,
    RateLimitConfig,
    RequestLogEntry,
    RetryConfig,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RECONNECT_ATTEMPTS = 5
HEALTH_HISTORY_SIZE = 10
REQUEST_LOG_SIZE = 100


# =============================================================================
# Adapter Protocol
# =============================================================================


@runtime_checkable
class ConnectorAdapter(Protocol):
    """
    Transport hooks implemented by each provider integration.

    Implementations raise on failure; ResilientConnector classifies the
    exception. Raising ConnectorError directly skips heuristic classification.
    """

    @property
    def provider_id(self) -> str:
        """Unique provider identifier, e.g. 'github_actions'."""
        ...

    async def connect(
        self,
        config: ConnectorConfig,
        credentials: ConnectorCredentials,
    ) -> None:
        """Establish the connection. Raise on failure."""
        ...

    async def disconnect(self) -> None:
        """Release transport resources."""
        ...

    async def health_check(self) -> HealthCheckResult:
        """Probe the remote service."""
        ...

    def catalog_entry(self) -> CatalogEntry:
        """Static descriptor for the integration catalog."""
        ...


AdapterT = TypeVar("AdapterT", bound=ConnectorAdapter)


# =============================================================================
# Request Log
# =============================================================================


class RequestLog:
    """
    Bounded ring buffer of outbound requests.

    Observability only; nothing in the control flow reads it.
    May be shared between a connector and its HTTP adapter.
    """

    def __init__(self, integration_id: str = "", max_entries: int = REQUEST_LOG_SIZE):
        self.integration_id = integration_id
        self._entries: deque[RequestLogEntry] = deque(maxlen=max_entries)

    def record(
        self,
        *,
        method: str,
        url: str,
        duration_ms: float,
        success: bool,
        status_code: int | None = None,
        error: str | None = None,
        integration_id: str | None = None,
    ) -> RequestLogEntry:
        entry = RequestLogEntry(
            id=uuid.uuid4().hex,
            integration_id=integration_id or self.integration_id,
            timestamp=datetime.now(UTC),
            method=method,
            url=url,
            duration_ms=duration_ms,
            success=success,
            status_code=status_code,
            error=error,
        )
        self._entries.append(entry)
        return entry

    def entries(self, limit: int | None = None) -> list[RequestLogEntry]:
        """Entries oldest-first; with `limit`, only the most recent ones."""
        entries = list(self._entries)
        if limit is not None:
            return entries[-limit:] if limit > 0 else []
        return entries

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Resilient Connector
# =============================================================================


class ResilientConnector(Generic[AdapterT]):
    """
    Lifecycle, retry and rate-limit wrapper around a ConnectorAdapter.

    Args:
        adapter: Provider-specific transport hooks
        rate_limit: Fixed-window request budget
        retry: Retry attempts and backoff curve
        request_log: Shared request log (created if omitted)
        sleep: Coroutine used for backoff waits (seconds)
        clock: Wall clock in milliseconds, for the rate-limit window
        random_source: Uniform [0, 1) source for jitter
    """

    def __init__(
        self,
        adapter: AdapterT,
        *,
        rate_limit: RateLimitConfig | None = None,
        retry: RetryConfig | None = None,
        request_log: RequestLog | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = now_ms,
        random_source: Callable[[], float] = random.random,
    ):
        self._adapter = adapter
        self._retry = retry or RetryConfig()
        self._rate_limiter = FixedWindowRateLimiter(rate_limit, clock=clock)
        self._backoff = ExponentialJitterBackoff(self._retry, random_source=random_source)
        self._sleep = sleep
        self._events = EventBus(adapter.provider_id)
        self._request_log = (
            request_log if request_log is not None else RequestLog(adapter.provider_id)
        )
        self._metrics = ConnectorMetrics()
        self._health_history: deque[HealthCheckResult] = deque(maxlen=HEALTH_HISTORY_SIZE)

        self._status = ConnectorStatus.DISCONNECTED
        self._config: ConnectorConfig | None = None
        self._credentials: ConnectorCredentials | None = None
        self._reconnect_attempts = 0

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def adapter(self) -> AdapterT:
        return self._adapter

    @property
    def provider_id(self) -> str:
        return self._adapter.provider_id

    @property
    def status(self) -> ConnectorStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectorStatus.CONNECTED

    @property
    def config(self) -> ConnectorConfig | None:
        return self._config

    @property
    def credentials(self) -> ConnectorCredentials | None:
        return self._credentials

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry

    @property
    def rate_limiter(self) -> FixedWindowRateLimiter:
        return self._rate_limiter

    @property
    def events(self) -> EventBus:
        return self._events

    def catalog_entry(self) -> CatalogEntry:
        return self._adapter.catalog_entry()

    def on(self, event_type: ConnectorEventType | str, listener: EventListener) -> None:
        self._events.on(event_type, listener)

    def off(self, event_type: ConnectorEventType | str, listener: EventListener) -> None:
        self._events.off(event_type, listener)

    def ensure_connected(self) -> None:
        """Raise unless the connector is usable for operations."""
        if self._status not in (ConnectorStatus.CONNECTED, ConnectorStatus.RATE_LIMITED):
            raise ConnectorError(
                f"{self.provider_id} is not connected (status={self._status.value})",
                ErrorCategory.CONFIG,
                self.provider_id,
                retryable=False,
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(
        self,
        config: ConnectorConfig,
        credentials: ConnectorCredentials,
    ) -> None:
        """
        Connect using the given config and credentials.

        No-op if already connected.

        Raises:
            ConnectorError: Classified adapter failure (status becomes 'error')
        """
        if self._status is ConnectorStatus.CONNECTED:
            logger.debug(f"[{self.provider_id}] Already connected, skipping connect")
            return

        if self._status is ConnectorStatus.DISABLED:
            raise ConnectorError(
                "Connector is disabled after repeated reconnect failures; "
                "disconnect or recreate it before connecting",
                ErrorCategory.CONFIG,
                self.provider_id,
                retryable=False,
            )

        self._status = ConnectorStatus.CONNECTING
        self._config = config
        self._credentials = credentials
        self._reconnect_attempts = 0
        self._request_log.integration_id = config.id

        await self._establish()

    async def _establish(self) -> None:
        """Run the adapter's connect hook against the stored state."""
        if self._config is None or self._credentials is None:
            raise ConnectorError(
                "Connector has no stored configuration; call connect() first",
                ErrorCategory.CONFIG,
                self.provider_id,
                retryable=False,
            )

        try:
            await self._adapter.connect(self._config, self._credentials)
        except Exception as e:
            error = self.categorize_error(e)
            self._status = ConnectorStatus.ERROR
            logger.error(f"[{self.provider_id}] Connect failed: {error.message}")
            self._events.emit(ConnectorEventType.ERROR, error)
            if error is e:
                raise
            raise error from e

        self._status = ConnectorStatus.CONNECTED
        logger.info(f"[{self.provider_id}] Connected (installation={self._config.id})")
        self._events.emit(ConnectorEventType.CONNECTED, {"installation_id": self._config.id})

    async def disconnect(self) -> None:
        """
        Disconnect and clear config and credentials.

        No-op if already disconnected. An exception from the adapter hook
        propagates, but the connector still ends up disconnected.
        """
        if self._status is ConnectorStatus.DISCONNECTED:
            return

        try:
            await self._adapter.disconnect()
        finally:
            self._config = None
            self._credentials = None
            self._reconnect_attempts = 0
            self._status = ConnectorStatus.DISCONNECTED
            logger.info(f"[{self.provider_id}] Disconnected")
            self._events.emit(ConnectorEventType.DISCONNECTED)

    async def reconnect(self) -> None:
        """
        Reconnect with the stored config and credentials after a backoff wait.

        Raises:
            ConnectorError: 'config' if nothing was stored; 'network'
                (non-retryable) once MAX_RECONNECT_ATTEMPTS is exhausted, in
                which case the connector becomes disabled; otherwise the
                classified connect failure.
        """
        if self._config is None or self._credentials is None:
            raise ConnectorError(
                "Cannot reconnect without config and credentials",
                ErrorCategory.CONFIG,
                self.provider_id,
                retryable=False,
            )

        if self._reconnect_attempts >= MAX_RECONNECT_ATTEMPTS:
            self._status = ConnectorStatus.DISABLED
            logger.error(
                f"[{self.provider_id}] Max reconnect attempts ({MAX_RECONNECT_ATTEMPTS}) "
                f"exceeded, connector disabled"
            )
            raise ConnectorError(
                f"Max reconnect attempts ({MAX_RECONNECT_ATTEMPTS}) exceeded",
                ErrorCategory.NETWORK,
                self.provider_id,
                retryable=False,
            )

        self._reconnect_attempts += 1
        self._status = ConnectorStatus.CONNECTING
        delay_ms = self._backoff.get_delay_ms(self._reconnect_attempts)
        logger.info(
            f"[{self.provider_id}] Reconnect {self._reconnect_attempts}/"
            f"{MAX_RECONNECT_ATTEMPTS} after {delay_ms}ms"
        )
        self._events.emit(
            ConnectorEventType.RECONNECTING,
            {"attempt": self._reconnect_attempts, "delay_ms": delay_ms},
        )
        await self._sleep(delay_ms / 1000)

        await self._establish()
        self._reconnect_attempts = 0

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def health_check(self) -> HealthCheckResult:
        """
        Run the adapter's health check. Never raises.

        Failures are recorded as unhealthy results whose consecutive_failures
        counts back through history to the last healthy check.
        """
        start = time.perf_counter()
        try:
            result = await self._adapter.health_check()
            if not result.healthy:
                result = replace(
                    result,
                    consecutive_failures=max(
                        result.consecutive_failures, self._trailing_failures() + 1
                    ),
                )
        except Exception as e:
            result = HealthCheckResult(
                healthy=False,
                response_time_ms=(time.perf_counter() - start) * 1000,
                message=f"Health check failed: {e}",
                consecutive_failures=self._trailing_failures() + 1,
            )
            logger.warning(f"[{self.provider_id}] {result.message}")

        self._health_history.append(result)
        self._events.emit(ConnectorEventType.HEALTH_CHECK, result)
        return result

    def _trailing_failures(self) -> int:
        count = 0
        for entry in reversed(self._health_history):
            if entry.healthy:
                break
            count += 1
        return count

    def health_history(self) -> list[HealthCheckResult]:
        """Most recent health results, oldest first (at most 10)."""
        return list(self._health_history)

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def update_credentials(self, credentials: ConnectorCredentials) -> None:
        """Replace credentials wholesale (e.g. after an OAuth refresh)."""
        self._credentials = credentials
        logger.info(f"[{self.provider_id}] Credentials refreshed")
        self._events.emit(ConnectorEventType.CREDENTIALS_REFRESHED)

    def credentials_need_refresh(self, buffer_seconds: float = 300.0) -> bool:
        if self._credentials is None:
            return False
        return self._credentials.needs_refresh(buffer_seconds)

    # -------------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------------

    def check_rate_limit(self) -> bool:
        return self._rate_limiter.check()

    def consume_rate_limit(self) -> bool:
        """Consume one token; emits 'rate_limited' when the window is exhausted."""
        if self._rate_limiter.consume():
            return True
        self._events.emit(
            ConnectorEventType.RATE_LIMITED,
            {"reset_in_ms": self._rate_limiter.reset_in_ms()},
        )
        return False

    def remaining_rate_limit(self) -> int:
        return self._rate_limiter.remaining()

    def rate_limit_reset_ms(self) -> float:
        return self._rate_limiter.reset_in_ms()

    # -------------------------------------------------------------------------
    # Retry
    # -------------------------------------------------------------------------

    def calculate_backoff_delay(self, attempt: int) -> int:
        """Backoff delay in milliseconds for a 1-indexed attempt."""
        return self._backoff.get_delay_ms(attempt)

    def categorize_error(self, error: object) -> ConnectorError:
        return classify_error(error, self.provider_id)

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str = "operation",
    ) -> T:
        """
        Run an operation with rate limiting, classification and retry.

        The operation is attempted at most max_attempts + 1 times. Each
        attempt consumes one rate-limit token; running out counts as a
        retryable 'rate_limit' failure.

        Raises:
            ConnectorError: Non-retryable failure, or the last retryable one
        """
        total_attempts = self._retry.max_attempts + 1

        for attempt in range(total_attempts):
            if attempt > 0:
                delay_ms = self._backoff.get_delay_ms(attempt)
                await self._sleep(delay_ms / 1000)

            start = time.perf_counter()
            try:
                if not self.consume_rate_limit():
                    if self._status is ConnectorStatus.CONNECTED:
                        self._status = ConnectorStatus.RATE_LIMITED
                    raise ConnectorError(
                        f"Rate limit exceeded for {context}",
                        ErrorCategory.RATE_LIMIT,
                        self.provider_id,
                        retryable=True,
                    )
                result = await operation()
            except Exception as e:
                duration_ms = (time.perf_counter() - start) * 1000
                error = self.categorize_error(e)
                self._metrics.record_failure(error.message, duration_ms)

                if not error.retryable or attempt == total_attempts - 1:
                    logger.error(
                        f"[{self.provider_id}] {context} failed after {attempt + 1} "
                        f"attempt(s): {error.message} (category={error.category.value})"
                    )
                    if error is e:
                        raise
                    raise error from e

                logger.warning(
                    f"[{self.provider_id}] {context} attempt {attempt + 1}/{total_attempts} "
                    f"failed ({error.category.value}): {error.message}, retrying"
                )
                self.log_request(
                    method="RETRY",
                    url=context,
                    duration_ms=duration_ms,
                    success=False,
                    status_code=error.status_code,
                    error=error.message,
                )
                continue

            self._metrics.record_success((time.perf_counter() - start) * 1000)
            if self._status is ConnectorStatus.RATE_LIMITED:
                self._status = ConnectorStatus.CONNECTED
            return result

        raise ConnectorError(
            f"{context} failed: exhausted retries",
            ErrorCategory.UNKNOWN,
            self.provider_id,
            retryable=False,
        )

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def log_request(
        self,
        *,
        method: str,
        url: str,
        duration_ms: float,
        success: bool,
        status_code: int | None = None,
        error: str | None = None,
    ) -> RequestLogEntry:
        return self._request_log.record(
            method=method,
            url=url,
            duration_ms=duration_ms,
            success=success,
            status_code=status_code,
            error=error,
        )

    def request_logs(self, limit: int | None = None) -> list[RequestLogEntry]:
        return self._request_log.entries(limit)

    def metrics(self) -> ConnectorMetrics:
        return self._metrics

    def reset_metrics(self) -> None:
        self._metrics.reset()

    def __repr__(self) -> str:
        return f"ResilientConnector(provider={self.provider_id!r}, status={self._status.value})"


__all__ = [
    "HEALTH_HISTORY_SIZE",
    "MAX_RECONNECT_ATTEMPTS",
    "REQUEST_LOG_SIZE",
    "ConnectorAdapter",
    "RequestLog",
    "ResilientConnector",
]
