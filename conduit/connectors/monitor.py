"""
Periodic health monitoring for installed connectors.

One asyncio task per monitored installation runs health_check() right away
and then every `check_interval` seconds. When a result reports
`consecutive_failures >= max_consecutive_failures` the monitor calls
`on_auto_disable(integration_id, reason)` and stops watching that
installation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .types import HealthCheckResult

if TYPE_CHECKING:
    from .base import ResilientConnector

logger = logging.getLogger(__name__)

AutoDisableCallback = Callable[[str, str], Any]


class HealthMonitor:
    """
    Health checker that tracks results per installation.

    Example:
        monitor = HealthMonitor(
            check_interval=60.0,
            max_consecutive_failures=3,
            on_auto_disable=registry.disable_for_health,
        )
        monitor.start_monitoring("install-1", connector)
    """

    def __init__(
        self,
        check_interval: float = 60.0,
        max_consecutive_failures: int = 3,
        on_auto_disable: AutoDisableCallback | None = None,
        *,
        history_size: int = 50,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.check_interval = check_interval
        self.max_consecutive_failures = max_consecutive_failures
        self.on_auto_disable = on_auto_disable
        self._history_size = history_size
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._history: dict[str, deque[HealthCheckResult]] = {}

    def start_monitoring(self, integration_id: str, connector: ResilientConnector[Any]) -> None:
        """Start (or restart) monitoring. Must be called from a running event loop."""
        self.stop_monitoring(integration_id)
        self._history.setdefault(integration_id, deque(maxlen=self._history_size))
        task = asyncio.get_running_loop().create_task(
            self._run(integration_id, connector),
            name=f"health-monitor:{integration_id}",
        )
        self._tasks[integration_id] = task
        logger.info(f"Health monitoring started for {integration_id} every {self.check_interval}s")

    def stop_monitoring(self, integration_id: str) -> None:
        task = self._tasks.pop(integration_id, None)
        if task is not None and not task.done():
            task.cancel()
            logger.info(f"Health monitoring stopped for {integration_id}")

    def forget(self, integration_id: str) -> None:
        """Stop monitoring and drop the stored history."""
        self.stop_monitoring(integration_id)
        self._history.pop(integration_id, None)

    def stop_all(self) -> None:
        for integration_id in list(self._tasks):
            self.stop_monitoring(integration_id)

    def is_monitoring(self, integration_id: str) -> bool:
        task = self._tasks.get(integration_id)
        return task is not None and not task.done()

    def latest(self, integration_id: str) -> HealthCheckResult | None:
        history = self._history.get(integration_id)
        return history[-1] if history else None

    def history(self, integration_id: str) -> list[HealthCheckResult]:
        return list(self._history.get(integration_id, ()))

    async def _run(self, integration_id: str, connector: ResilientConnector[Any]) -> None:
        while True:
            result = await connector.health_check()
            self._history.setdefault(
                integration_id, deque(maxlen=self._history_size)
            ).append(result)

            if result.consecutive_failures >= self.max_consecutive_failures:
                reason = (
                    f"{result.consecutive_failures} consecutive health check failures: "
                    f"{result.message}"
                )
                logger.warning(f"Auto-disabling {integration_id}: {reason}")
                if self._tasks.get(integration_id) is asyncio.current_task():
                    del self._tasks[integration_id]
                await self._notify_auto_disable(integration_id, reason)
                return

            await self._sleep(self.check_interval)

    async def _notify_auto_disable(self, integration_id: str, reason: str) -> None:
        if self.on_auto_disable is None:
            return
        try:
            outcome = self.on_auto_disable(integration_id, reason)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Auto-disable callback failed for {integration_id}: {e}", exc_info=True)


__all__ = ["AutoDisableCallback", "HealthMonitor"]
