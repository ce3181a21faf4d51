"""
Dependency wiring for Conduit.

Settings come from CONDUIT_* environment variables. The webhook manager and
integration registry are built per application in create_app() and stored
on `app.state`; route handlers reach them through the getters below.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from fastapi import Request
from pydantic import SecretStr

from conduit.config.schemas import AppSettings
from conduit.connectors import (
    ConnectorAdapter,
    CredentialVault,
    HealthMonitor,
    IntegrationRegistry,
    ResilientConnector,
)
from conduit.webhooks import WebhookHandlerManager

logger = logging.getLogger(__name__)


def _optional_secret(name: str) -> SecretStr | None:
    value = os.getenv(name)
    return SecretStr(value) if value else None


def _csv(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern; call get_settings.cache_clear()
    after changing the environment.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("CONDUIT_SERVICE_NAME", "conduit"),
        environment=os.getenv("CONDUIT_ENVIRONMENT", "development"),
        debug=os.getenv("CONDUIT_DEBUG", "false").lower() == "true",
        log_level=os.getenv("CONDUIT_LOG_LEVEL", "INFO").upper(),
        # Vault
        credential_key=SecretStr(os.getenv("CONDUIT_CREDENTIAL_KEY", "")),
        # Webhooks
        github_webhook_secret=_optional_secret("CONDUIT_GITHUB_WEBHOOK_SECRET"),
        slack_signing_secret=_optional_secret("CONDUIT_SLACK_SIGNING_SECRET"),
        jira_webhook_secret=_optional_secret("CONDUIT_JIRA_WEBHOOK_SECRET"),
        generic_webhook_secret=_optional_secret("CONDUIT_GENERIC_WEBHOOK_SECRET"),
        generic_webhook_sources=_csv("CONDUIT_GENERIC_WEBHOOK_SOURCES"),
        # Connector defaults
        rate_limit_max_requests=int(os.getenv("CONDUIT_RATE_LIMIT_MAX_REQUESTS", "100")),
        rate_limit_window_ms=int(os.getenv("CONDUIT_RATE_LIMIT_WINDOW_MS", "60000")),
        retry_max_attempts=int(os.getenv("CONDUIT_RETRY_MAX_ATTEMPTS", "3")),
        retry_initial_delay_ms=int(os.getenv("CONDUIT_RETRY_INITIAL_DELAY_MS", "1000")),
        retry_max_delay_ms=int(os.getenv("CONDUIT_RETRY_MAX_DELAY_MS", "30000")),
        retry_backoff_multiplier=float(os.getenv("CONDUIT_RETRY_BACKOFF_MULTIPLIER", "2.0")),
        retry_jitter_factor=float(os.getenv("CONDUIT_RETRY_JITTER_FACTOR", "0.1")),
        # Health
        health_check_interval=float(os.getenv("CONDUIT_HEALTH_CHECK_INTERVAL", "60")),
        health_max_failures=int(os.getenv("CONDUIT_HEALTH_MAX_FAILURES", "3")),
    )


# =============================================================================
# Builders
# =============================================================================


def build_webhook_manager(settings: AppSettings) -> WebhookHandlerManager:
    """Manager with every configured signature secret registered."""
    manager = WebhookHandlerManager()
    for source, secret in settings.webhook_secrets().items():
        manager.set_signature_secret(source, secret)
        logger.info(f"[webhooks] Signature verification enabled for {source}")
    return manager


def build_registry(settings: AppSettings) -> IntegrationRegistry:
    """Registry with a vault (when a credential key is set) and a health monitor."""
    key = settings.credential_key.get_secret_value()
    vault = CredentialVault(key) if key else None
    if vault is None:
        logger.warning("[registry] CONDUIT_CREDENTIAL_KEY not set; credentials kept unencrypted in memory")

    monitor = HealthMonitor(
        check_interval=settings.health_check_interval,
        max_consecutive_failures=settings.health_max_failures,
    )
    registry = IntegrationRegistry(vault=vault, monitor=monitor)
    monitor.on_auto_disable = registry.disable_for_health
    return registry


def make_connector(adapter: ConnectorAdapter, settings: AppSettings) -> ResilientConnector[Any]:
    """Wrap an adapter with the configured rate limit and retry defaults."""
    return ResilientConnector(
        adapter,
        rate_limit=settings.rate_limit_config(),
        retry=settings.retry_config(),
    )


# =============================================================================
# Request-scoped accessors
# =============================================================================


def get_webhook_manager(request: Request) -> WebhookHandlerManager:
    return request.app.state.webhook_manager


def get_registry(request: Request) -> IntegrationRegistry:
    return request.app.state.registry
