"""
Integration registry: catalog of available connectors and their installations.

The catalog maps a provider id to a CatalogEntry and a factory that builds a
fresh ResilientConnector. Each installation gets its own connector instance,
so installations never share rate-limit, retry or health state.

Registries are constructed explicitly and injected where needed; there is
no module-level instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .base import ResilientConnector
from .errors import ConnectorError
from .monitor import HealthMonitor
from .types import (
    CatalogEntry,
    ConnectorConfig,
    ConnectorCredentials,
    ConnectorMetrics,
    ConnectorStatus,
    ErrorCategory,
    HealthCheckResult,
)
from .vault import CredentialVault

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[], ResilientConnector[Any]]

_REGISTRY = "integration_registry"


@dataclass
class Installation:
    """One installed integration."""

    id: str
    catalog_id: str
    config: ConnectorConfig
    connector: ResilientConnector[Any]
    enabled: bool = True
    credentials: ConnectorCredentials | None = None  # Kept only when no vault is configured
    installed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def status(self) -> ConnectorStatus:
        if not self.enabled:
            return ConnectorStatus.DISABLED
        return self.connector.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "catalog_id": self.catalog_id,
            "display_name": self.config.display_name,
            "status": self.status.value,
            "enabled": self.enabled,
            "installed_at": self.installed_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def _not_found(kind: str, key: str) -> ConnectorError:
    return ConnectorError(
        f"{kind} '{key}' not found",
        ErrorCategory.CONFIG,
        _REGISTRY,
        retryable=False,
    )


class IntegrationRegistry:
    """
    Catalog plus installation lifecycle.

    Args:
        vault: Encrypted credential store; when omitted, credentials are
            kept in memory on the installation
        monitor: Health monitor to start for each enabled installation
    """

    def __init__(
        self,
        *,
        vault: CredentialVault | None = None,
        monitor: HealthMonitor | None = None,
    ):
        self.vault = vault
        self.monitor = monitor
        self._catalog: dict[str, tuple[CatalogEntry, ConnectorFactory]] = {}
        self._installations: dict[str, Installation] = {}

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def register_connector(self, entry: CatalogEntry, factory: ConnectorFactory) -> None:
        """Add a connector to the catalog (re-registration overwrites)."""
        self._catalog[entry.id] = (entry, factory)
        logger.debug(f"Registered connector: {entry.id} ({entry.category})")

    def unregister_connector(self, catalog_id: str) -> bool:
        return self._catalog.pop(catalog_id, None) is not None

    def catalog(self) -> list[CatalogEntry]:
        return [entry for entry, _ in self._catalog.values()]

    def catalog_entry(self, catalog_id: str) -> CatalogEntry | None:
        item = self._catalog.get(catalog_id)
        return item[0] if item else None

    def search_catalog(self, query: str) -> list[CatalogEntry]:
        return [entry for entry in self.catalog() if entry.matches(query)]

    def filter_by_category(self, category: str) -> list[CatalogEntry]:
        return [entry for entry in self.catalog() if entry.category == category]

    # -------------------------------------------------------------------------
    # Installations
    # -------------------------------------------------------------------------

    async def install(
        self,
        catalog_id: str,
        config: ConnectorConfig,
        credentials: ConnectorCredentials,
    ) -> Installation:
        """
        Create a connector for `catalog_id`, connect it and track it.

        Raises:
            ConnectorError: Unknown catalog id, duplicate installation id,
                missing required config, or the classified connect failure
        """
        item = self._catalog.get(catalog_id)
        if item is None:
            raise ConnectorError(
                f"Connector '{catalog_id}' not found in catalog",
                ErrorCategory.CONFIG,
                _REGISTRY,
                retryable=False,
            )
        entry, factory = item

        if config.id in self._installations:
            raise ConnectorError(
                f"Installation '{config.id}' already exists",
                ErrorCategory.CONFIG,
                _REGISTRY,
                retryable=False,
            )

        missing = [key for key in entry.required_config if key not in config.provider_config]
        if missing:
            raise ConnectorError(
                f"Missing required config for {catalog_id}: {', '.join(missing)}",
                ErrorCategory.CONFIG,
                catalog_id,
                retryable=False,
                details={"missing": missing},
            )

        connector = factory()
        await connector.connect(config, credentials)

        installation = Installation(
            id=config.id,
            catalog_id=catalog_id,
            config=config,
            connector=connector,
        )
        await self._keep_credentials(installation, credentials)
        self._installations[config.id] = installation

        if self.monitor is not None:
            self.monitor.start_monitoring(config.id, connector)

        logger.info(f"Installed {catalog_id} as {config.id}")
        return installation

    async def configure(self, installation_id: str, **changes: Any) -> Installation:
        """Update config fields; a connected installation is reconnected with them."""
        installation = self._require(installation_id)
        new_config = installation.config.model_copy(update=changes)
        was_connected = installation.connector.is_connected

        installation.config = new_config
        installation.updated_at = datetime.now(UTC)

        if was_connected:
            credentials = await self._credentials_for(installation)
            await installation.connector.disconnect()
            await installation.connector.connect(new_config, credentials)

        return installation

    async def disable(self, installation_id: str) -> Installation:
        """Stop monitoring and disconnect; credentials are retained for enable()."""
        installation = self._require(installation_id)
        if self.monitor is not None:
            self.monitor.stop_monitoring(installation_id)

        await self._disconnect_quietly(installation)
        installation.enabled = False
        installation.updated_at = datetime.now(UTC)
        logger.info(f"Disabled {installation_id}")
        return installation

    async def disable_for_health(self, installation_id: str, reason: str) -> None:
        """HealthMonitor auto-disable callback."""
        if installation_id not in self._installations:
            return
        logger.warning(f"Disabling {installation_id} after failed health checks: {reason}")
        await self.disable(installation_id)

    async def enable(self, installation_id: str) -> Installation:
        """Reconnect a disabled installation from its stored credentials."""
        installation = self._require(installation_id)
        credentials = await self._credentials_for(installation)

        await installation.connector.connect(installation.config, credentials)
        installation.enabled = True
        installation.updated_at = datetime.now(UTC)

        if self.monitor is not None:
            self.monitor.start_monitoring(installation_id, installation.connector)

        logger.info(f"Enabled {installation_id}")
        return installation

    async def uninstall(self, installation_id: str) -> None:
        installation = self._require(installation_id)
        if self.monitor is not None:
            self.monitor.forget(installation_id)

        await self._disconnect_quietly(installation)
        if self.vault is not None:
            self.vault.remove(installation_id)
        del self._installations[installation_id]
        logger.info(f"Uninstalled {installation_id}")

    def installation(self, installation_id: str) -> Installation | None:
        return self._installations.get(installation_id)

    def installations(self) -> list[Installation]:
        return list(self._installations.values())

    def installations_by_status(self, status: ConnectorStatus | str) -> list[Installation]:
        wanted = ConnectorStatus(status)
        return [i for i in self._installations.values() if i.status is wanted]

    def connector(self, installation_id: str) -> ResilientConnector[Any] | None:
        installation = self._installations.get(installation_id)
        return installation.connector if installation else None

    # -------------------------------------------------------------------------
    # Health & Metrics
    # -------------------------------------------------------------------------

    def health(self, installation_id: str) -> HealthCheckResult | None:
        installation = self._installations.get(installation_id)
        if installation is None:
            return None
        if self.monitor is not None:
            latest = self.monitor.latest(installation_id)
            if latest is not None:
                return latest
        history = installation.connector.health_history()
        return history[-1] if history else None

    def metrics(self, installation_id: str) -> ConnectorMetrics | None:
        installation = self._installations.get(installation_id)
        return installation.connector.metrics() if installation else None

    async def shutdown(self) -> None:
        """Stop monitoring and disconnect every installation."""
        if self.monitor is not None:
            self.monitor.stop_all()
        for installation in list(self._installations.values()):
            await self._disconnect_quietly(installation)
        logger.info(f"Registry shut down ({len(self._installations)} installations)")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require(self, installation_id: str) -> Installation:
        installation = self._installations.get(installation_id)
        if installation is None:
            raise _not_found("Installation", installation_id)
        return installation

    async def _keep_credentials(
        self,
        installation: Installation,
        credentials: ConnectorCredentials,
    ) -> None:
        if self.vault is not None:
            await self.vault.store(installation.id, credentials)
        else:
            installation.credentials = credentials

    async def _credentials_for(self, installation: Installation) -> ConnectorCredentials:
        # Prefer live credentials: they reflect any refresh since install
        live = installation.connector.credentials
        if live is not None:
            await self._keep_credentials(installation, live)
            return live
        if self.vault is not None:
            stored = await self.vault.retrieve(installation.id)
            if stored is not None:
                return stored
        if installation.credentials is not None:
            return installation.credentials
        raise ConnectorError(
            f"No credentials stored for '{installation.id}'",
            ErrorCategory.CONFIG,
            installation.catalog_id,
            retryable=False,
        )

    async def _disconnect_quietly(self, installation: Installation) -> None:
        # Keep the latest credentials before disconnect clears them
        live = installation.connector.credentials
        if live is not None:
            await self._keep_credentials(installation, live)
        try:
            await installation.connector.disconnect()
        except Exception as e:
            logger.warning(
                f"Disconnect hook failed for {installation.id}: {e}",
                exc_info=True,
            )


__all__ = [
    "ConnectorFactory",
    "Installation",
    "IntegrationRegistry",
]
