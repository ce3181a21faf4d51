"""
Tests for HealthMonitor.
"""

import asyncio

import pytest
from conftest import FakeAdapter

from conduit.connectors import HealthCheckResult, HealthMonitor, ResilientConnector


class GatedSleep:
    """Sleep that lets `cycles` checks through, then parks until cancelled."""

    def __init__(self, cycles: int):
        self.cycles = cycles
        self.calls: list[float] = []
        self.parked = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if len(self.calls) >= self.cycles:
            self.parked.set()
            await asyncio.Event().wait()
        await asyncio.sleep(0)


def failing_adapter(count: int = 10) -> FakeAdapter:
    adapter = FakeAdapter()
    adapter.health_results = [RuntimeError("unreachable")] * count
    return adapter


class TestHealthMonitor:
    """Tests for HealthMonitor."""

    @pytest.mark.asyncio
    async def test_healthy_connector_keeps_being_checked(self):
        sleep = GatedSleep(cycles=3)
        monitor = HealthMonitor(check_interval=30.0, sleep=sleep)
        connector = ResilientConnector(FakeAdapter())

        monitor.start_monitoring("install-1", connector)
        await asyncio.wait_for(sleep.parked.wait(), timeout=1)

        assert monitor.is_monitoring("install-1")
        assert len(monitor.history("install-1")) == 3
        assert monitor.latest("install-1").healthy is True
        assert sleep.calls == [30.0, 30.0, 30.0]

        monitor.stop_monitoring("install-1")
        await asyncio.sleep(0)
        assert not monitor.is_monitoring("install-1")

    @pytest.mark.asyncio
    async def test_auto_disable_after_consecutive_failures(self):
        disabled = asyncio.Event()
        calls = []

        async def on_auto_disable(integration_id, reason):
            calls.append((integration_id, reason))
            disabled.set()

        monitor = HealthMonitor(
            max_consecutive_failures=3,
            on_auto_disable=on_auto_disable,
            sleep=GatedSleep(cycles=100),
        )
        connector = ResilientConnector(failing_adapter())

        monitor.start_monitoring("install-1", connector)
        await asyncio.wait_for(disabled.wait(), timeout=1)

        assert calls[0][0] == "install-1"
        assert "3 consecutive health check failures" in calls[0][1]
        assert [r.consecutive_failures for r in monitor.history("install-1")] == [1, 2, 3]
        assert not monitor.is_monitoring("install-1")

    @pytest.mark.asyncio
    async def test_sync_callback_supported(self):
        calls = []
        monitor = HealthMonitor(
            max_consecutive_failures=1,
            on_auto_disable=lambda integration_id, reason: calls.append(integration_id),
            sleep=GatedSleep(cycles=100),
        )
        adapter = FakeAdapter()
        adapter.health_results = [HealthCheckResult(healthy=False, message="down")]

        monitor.start_monitoring("install-2", ResilientConnector(adapter))
        for _ in range(10):
            await asyncio.sleep(0)
            if calls:
                break

        assert calls == ["install-2"]

    @pytest.mark.asyncio
    async def test_callback_failure_is_logged_not_raised(self):
        done = asyncio.Event()

        def broken(integration_id, reason):
            done.set()
            raise RuntimeError("callback bug")

        monitor = HealthMonitor(
            max_consecutive_failures=1,
            on_auto_disable=broken,
            sleep=GatedSleep(cycles=100),
        )
        monitor.start_monitoring("install-3", ResilientConnector(failing_adapter()))
        await asyncio.wait_for(done.wait(), timeout=1)
        await asyncio.sleep(0)

        assert not monitor.is_monitoring("install-3")

    @pytest.mark.asyncio
    async def test_history_bounded(self):
        sleep = GatedSleep(cycles=6)
        monitor = HealthMonitor(history_size=4, sleep=sleep)
        monitor.start_monitoring("install-4", ResilientConnector(FakeAdapter()))

        await asyncio.wait_for(sleep.parked.wait(), timeout=1)

        assert len(monitor.history("install-4")) == 4
        monitor.stop_all()

    @pytest.mark.asyncio
    async def test_restart_replaces_task(self):
        sleep = GatedSleep(cycles=1)
        monitor = HealthMonitor(sleep=sleep)
        connector = ResilientConnector(FakeAdapter())

        monitor.start_monitoring("install-5", connector)
        monitor.start_monitoring("install-5", connector)
        await asyncio.wait_for(sleep.parked.wait(), timeout=1)

        assert monitor.is_monitoring("install-5")
        monitor.stop_all()

    def test_unknown_installation(self):
        monitor = HealthMonitor()
        assert monitor.latest("nope") is None
        assert monitor.history("nope") == []
        assert monitor.is_monitoring("nope") is False

    @pytest.mark.asyncio
    async def test_forget_drops_history(self):
        sleep = GatedSleep(cycles=2)
        monitor = HealthMonitor(sleep=sleep)
        monitor.start_monitoring("install-6", ResilientConnector(FakeAdapter()))
        await asyncio.wait_for(sleep.parked.wait(), timeout=1)
        assert len(monitor.history("install-6")) == 2

        monitor.forget("install-6")

        assert not monitor.is_monitoring("install-6")
        assert "install-6" not in monitor._history

    def test_forget_unknown_is_noop(self):
        HealthMonitor().forget("nope")
