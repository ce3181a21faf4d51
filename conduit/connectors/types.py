"""
Core types for Conduit connectors.

Data model shared by the connector state machine, the rate limiter,
the credential vault and the health monitor.

Ownership:
    - ConnectorConfig: owned by the caller, retained until disconnect
    - ConnectorCredentials: owned by the connector while connected,
      replaced wholesale on refresh
    - RetryConfig / RateLimitConfig: immutable per connector instance
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    """Get current UTC time with timezone awareness."""
    return datetime.now(UTC)


# =============================================================================
# Enums
# =============================================================================


class ConnectorStatus(str, Enum):
    """Lifecycle states of a connector instance."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RATE_LIMITED = "rate_limited"
    DISABLED = "disabled"  # Reached after exhausting reconnect attempts
    ERROR = "error"


class ErrorCategory(str, Enum):
    """Closed error taxonomy for everything crossing the framework boundary."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    DATA = "data"
    CONFIG = "config"
    UNKNOWN = "unknown"


# =============================================================================
# Configuration
# =============================================================================


class ConnectorConfig(BaseModel):
    """Per-connection settings supplied by the caller on connect."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Installation identifier")
    provider: str = Field(..., description="Provider identifier, e.g. 'jira'")
    display_name: str = Field("", description="Human-readable name")
    workspace_id: str | None = Field(None, description="Owning workspace")
    provider_config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    installed_at: datetime = Field(default_factory=_utc_now)


class ConnectorCredentials(BaseModel):
    """
    Credentials for one connection.

    Immutable: refreshing replaces the whole object, never individual fields.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    def needs_refresh(self, buffer_seconds: float = 300.0) -> bool:
        """True if the token expires within `buffer_seconds` (or already has)."""
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at - timedelta(seconds=buffer_seconds) <= _utc_now()


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Retry and backoff settings. All durations in milliseconds."""

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Fixed-window rate limit: `max_requests` per `window_ms`."""

    max_requests: int = 100
    window_ms: int = 60_000


# =============================================================================
# Results and Observability Records
# =============================================================================


@dataclass(frozen=True, slots=True)
class HealthCheckResult:
    """Result of a single connector health check."""

    healthy: bool
    response_time_ms: float = 0.0
    message: str = ""
    checked_at: datetime = field(default_factory=_utc_now)
    consecutive_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "response_time_ms": self.response_time_ms,
            "message": self.message,
            "checked_at": self.checked_at.isoformat(),
            "consecutive_failures": self.consecutive_failures,
        }


@dataclass(frozen=True, slots=True)
class RequestLogEntry:
    """One outbound request, kept for observability only."""

    id: str
    integration_id: str
    timestamp: datetime
    method: str
    url: str
    duration_ms: float
    success: bool
    status_code: int | None = None
    error: str | None = None


@dataclass
class ConnectorMetrics:
    """Call counters for a connector instance."""

    total_api_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_response_time_ms: float = 0.0
    last_error: str | None = None
    last_error_at: datetime | None = None
    last_call_at: datetime | None = None

    @property
    def avg_response_time_ms(self) -> float:
        """Average latency per call."""
        if self.total_api_calls == 0:
            return 0.0
        return self.total_response_time_ms / self.total_api_calls

    @property
    def success_rate(self) -> float:
        """Success rate (0.0 to 1.0)."""
        if self.total_api_calls == 0:
            return 1.0
        return self.successful_calls / self.total_api_calls

    def record_success(self, duration_ms: float) -> None:
        self.total_api_calls += 1
        self.successful_calls += 1
        self.total_response_time_ms += duration_ms
        self.last_call_at = _utc_now()

    def record_failure(self, error: str, duration_ms: float = 0.0) -> None:
        self.total_api_calls += 1
        self.failed_calls += 1
        self.total_response_time_ms += duration_ms
        self.last_error = error
        self.last_error_at = self.last_call_at = _utc_now()

    def reset(self) -> None:
        """Reset all counters."""
        self.total_api_calls = 0
        self.successful_calls = 0
        self.failed_calls = 0
        self.total_response_time_ms = 0.0
        self.last_error = None
        self.last_error_at = None
        self.last_call_at = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_api_calls": self.total_api_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "avg_response_time_ms": self.avg_response_time_ms,
            "success_rate": self.success_rate,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_call_at": self.last_call_at.isoformat() if self.last_call_at else None,
        }


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """Static descriptor a provider adapter publishes about itself."""

    id: str
    name: str
    category: str
    description: str = ""
    capabilities: tuple[str, ...] = ()
    required_config: tuple[str, ...] = ()
    requires_oauth: bool = False
    version: str = "1.0.0"

    def matches(self, query: str) -> bool:
        """Case-insensitive match against id, name and description."""
        q = query.lower()
        return q in self.id.lower() or q in self.name.lower() or q in self.description.lower()


__all__ = [
    "CatalogEntry",
    "ConnectorConfig",
    "ConnectorCredentials",
    "ConnectorMetrics",
    "ConnectorStatus",
    "ErrorCategory",
    "HealthCheckResult",
    "RateLimitConfig",
    "RequestLogEntry",
    "RetryConfig",
]
