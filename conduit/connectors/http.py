"""
HTTP adapter base for provider integrations.

Handles the parts every REST-backed adapter repeats:
- httpx.AsyncClient lifecycle tied to connect/disconnect
- Authentication header injection from ConnectorCredentials
- Mapping HTTP status codes and transport errors to ConnectorError
- Request timing into a shared RequestLog

Retry is NOT done here; wrap calls in ResilientConnector.with_retry.

Status mapping:
    401/403      -> auth        (not retryable)
    429          -> rate_limit  (retryable)
    400/404/422  -> data        (not retryable)
    5xx          -> network     (retryable)
    timeouts, connection errors -> network (retryable)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx

from .errors import ConnectorError
from .types import (
    CatalogEntry,
    ConnectorConfig,
    ConnectorCredentials,
    ErrorCategory,
    HealthCheckResult,
)

if TYPE_CHECKING:
    from .base import RequestLog

logger = logging.getLogger(__name__)


class HTTPAdapter(ABC):
    """
    Abstract base for httpx-backed ConnectorAdapter implementations.

    Subclasses must implement:
    - provider_id: Provider identifier
    - catalog_entry(): Static catalog descriptor

    And may override:
    - health_path: Path probed by health_check() and on connect
    - _auth_headers(): Header scheme (defaults to "<token_type> <token>")
    """

    health_path: str = "/"
    verify_on_connect: bool = True

    def __init__(
        self,
        *,
        base_url: str = "",
        timeout: float = 30.0,
        request_log: RequestLog | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: Default API root; `provider_config["base_url"]` overrides it
            timeout: Per-request timeout in seconds
            request_log: Shared log to record requests into
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url
        self.timeout = timeout
        self.request_log = request_log
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique provider identifier."""
        ...

    @abstractmethod
    def catalog_entry(self) -> CatalogEntry:
        ...

    def _auth_headers(self, credentials: ConnectorCredentials) -> dict[str, str]:
        return {"Authorization": f"{credentials.token_type} {credentials.access_token}"}

    # -------------------------------------------------------------------------
    # Adapter hooks
    # -------------------------------------------------------------------------

    async def connect(
        self,
        config: ConnectorConfig,
        credentials: ConnectorCredentials,
    ) -> None:
        await self.disconnect()
        self._client = httpx.AsyncClient(
            base_url=str(config.provider_config.get("base_url", self.base_url)),
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                **self._auth_headers(credentials),
            },
        )
        if self.verify_on_connect:
            await self.request("GET", self.health_path)

    async def disconnect(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def health_check(self) -> HealthCheckResult:
        start = time.perf_counter()
        await self.request("GET", self.health_path)
        return HealthCheckResult(
            healthy=True,
            response_time_ms=(time.perf_counter() - start) * 1000,
            message="OK",
        )

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            raise ConnectorError(
                "HTTP client not initialized; connect first",
                ErrorCategory.CONFIG,
                self.provider_id,
                retryable=False,
            )
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Execute a single HTTP request.

        Raises:
            ConnectorError: For transport failures and non-2xx responses
        """
        client = self._require_client()
        start = time.perf_counter()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            self._record(method, path, start, success=False, error=f"timeout: {e}")
            raise ConnectorError(
                f"Request timeout: {method} {path}",
                ErrorCategory.NETWORK,
                self.provider_id,
                cause=e,
            ) from e
        except httpx.NetworkError as e:
            self._record(method, path, start, success=False, error=str(e))
            raise ConnectorError(
                f"Network error: {e}",
                ErrorCategory.NETWORK,
                self.provider_id,
                cause=e,
            ) from e

        self._record(
            method,
            path,
            start,
            success=response.is_success,
            status_code=response.status_code,
            error=None if response.is_success else response.text[:200],
        )
        self._check_response(response)
        return response

    def _record(
        self,
        method: str,
        path: str,
        start: float,
        *,
        success: bool,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        if self.request_log is None:
            return
        self.request_log.record(
            method=method,
            url=path,
            duration_ms=(time.perf_counter() - start) * 1000,
            success=success,
            status_code=status_code,
            error=error,
        )

    def _check_response(self, response: httpx.Response) -> None:
        """Raise a classified ConnectorError for non-2xx responses."""
        if response.is_success:
            return

        status = response.status_code
        body = response.text

        if status in (401, 403):
            category = ErrorCategory.AUTH
        elif status == 429:
            category = ErrorCategory.RATE_LIMIT
        elif status in (400, 404, 422):
            category = ErrorCategory.DATA
        elif status >= 500:
            category = ErrorCategory.NETWORK
        else:
            category = ErrorCategory.UNKNOWN

        details: dict[str, Any] = {"response_body": body[:1000]}
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            details["retry_after"] = retry_after

        logger.debug(f"[{self.provider_id}] HTTP {status} for {response.request.url}")
        raise ConnectorError(
            f"HTTP {status}: {body[:200] or response.reason_phrase}",
            category,
            self.provider_id,
            status_code=status,
            details=details,
        )

    async def __aenter__(self) -> HTTPAdapter:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()


__all__ = ["HTTPAdapter"]
