"""
Conduit - A resilient connector framework and webhook intake layer.

Conduit provides the shared machinery every third-party integration needs:

- **Resilient Connectors**: Lifecycle state machine, fixed-window rate
  limiting, exponential backoff with jitter, error classification
- **Integration Registry**: Catalog of connectors and installation lifecycle
- **Health Monitoring**: Periodic checks with auto-disable
- **Credential Vault**: AES-256-GCM encryption of credentials at rest
- **Webhooks**: Source detection, HMAC verification, per-source dispatch

Quick Start:
    >>> from conduit import ResilientConnector, WebhookHandlerManager
    >>>
    >>> connector = ResilientConnector(MyAdapter())
    >>> await connector.connect(config, credentials)
    >>> data = await connector.with_retry(connector.adapter.fetch, "fetch")
"""

__version__ = "0.1.0"

from conduit.connectors import (
    ConnectorConfig,
    ConnectorCredentials,
    ConnectorError,
    ConnectorStatus,
    ErrorCategory,
    IntegrationRegistry,
    ResilientConnector,
)
from conduit.webhooks import WebhookHandlerManager, WebhookResult

__all__ = [
    # Version info
    "__version__",
    # Connectors
    "ConnectorConfig",
    "ConnectorCredentials",
    "ConnectorError",
    "ConnectorStatus",
    "ErrorCategory",
    "IntegrationRegistry",
    "ResilientConnector",
    # Webhooks
    "WebhookHandlerManager",
    "WebhookResult",
]
