"""
Conduit Connectors Layer.

Every third-party integration is a small adapter wrapped by a shared
resilience layer:

1. Adapter: Transport hooks only (connect, disconnect, health check)
2. ResilientConnector: State machine, rate limiting, retry, events, metrics
3. IntegrationRegistry: Catalog and installation lifecycle
4. HealthMonitor: Periodic health checks with auto-disable
5. CredentialVault: AES-256-GCM encryption of credentials at rest

Directory Structure:
    connectors/
    ├── types.py          # Shared records and enums
    ├── errors.py         # ConnectorError and the classification table
    ├── ratelimit.py      # Fixed-window limiter
    ├── backoff.py        # Exponential backoff with jitter
    ├── events.py         # Per-connector event bus
    ├── base.py           # Adapter protocol + ResilientConnector
    ├── http.py           # httpx-backed adapter base
    ├── monitor.py        # HealthMonitor
    ├── registry.py       # IntegrationRegistry
    └── vault.py          # Credential encryption

Usage:
    from conduit.connectors import ResilientConnector, IntegrationRegistry

    registry = IntegrationRegistry()
    registry.register_connector(
        JiraAdapter().catalog_entry(),
        lambda: ResilientConnector(JiraAdapter()),
    )
    installation = await registry.install("jira", config, credentials)
"""

from conduit.connectors.backoff import ExponentialJitterBackoff
from conduit.connectors.base import (
    HEALTH_HISTORY_SIZE,
    MAX_RECONNECT_ATTEMPTS,
    ConnectorAdapter,
    RequestLog,
    ResilientConnector,
)
from conduit.connectors.errors import ConnectorError, classify_error
from conduit.connectors.events import ConnectorEvent, ConnectorEventType, EventBus
from conduit.connectors.http import HTTPAdapter
from conduit.connectors.monitor import HealthMonitor
from conduit.connectors.ratelimit import FixedWindowRateLimiter
from conduit.connectors.registry import Installation, IntegrationRegistry
from conduit.connectors.types import (
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
from conduit.connectors.vault import CredentialVault, decrypt_credentials, encrypt_credentials

__all__ = [
    # Core
    "ConnectorAdapter",
    "ResilientConnector",
    "HTTPAdapter",
    "RequestLog",
    "MAX_RECONNECT_ATTEMPTS",
    "HEALTH_HISTORY_SIZE",
    # Types
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
    # Errors
    "ConnectorError",
    "classify_error",
    # Resilience
    "ExponentialJitterBackoff",
    "FixedWindowRateLimiter",
    # Events
    "ConnectorEvent",
    "ConnectorEventType",
    "EventBus",
    # Lifecycle
    "HealthMonitor",
    "Installation",
    "IntegrationRegistry",
    # Credentials
    "CredentialVault",
    "decrypt_credentials",
    "encrypt_credentials",
]
