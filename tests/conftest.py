"""
Pytest configuration and fixtures for Conduit tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from conduit.connectors import (  # noqa: E402
    CatalogEntry,
    ConnectorConfig,
    ConnectorCredentials,
    HealthCheckResult,
)


# =============================================================================
# Test Doubles
# =============================================================================


class FakeAdapter:
    """Scriptable ConnectorAdapter."""

    def __init__(self, provider_id: str = "fake", category: str = "ticketing"):
        self._provider_id = provider_id
        self.category = category
        self.connect_errors: list[Exception] = []
        self.health_results: list[HealthCheckResult | Exception] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.disconnect_error: Exception | None = None

    @property
    def provider_id(self) -> str:
        return self._provider_id

    async def connect(self, config, credentials) -> None:
        self.connect_calls += 1
        if self.connect_errors:
            raise self.connect_errors.pop(0)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.disconnect_error is not None:
            raise self.disconnect_error

    async def health_check(self) -> HealthCheckResult:
        if not self.health_results:
            return HealthCheckResult(healthy=True, message="OK")
        outcome = self.health_results.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def catalog_entry(self) -> CatalogEntry:
        return CatalogEntry(
            id=self._provider_id,
            name=self._provider_id.title(),
            category=self.category,
            description=f"{self._provider_id} test connector",
            capabilities=("read",),
        )


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def config():
    return ConnectorConfig(
        id="install-1",
        provider="fake",
        display_name="Fake Tracker",
        provider_config={"base_url": "https://api.example.test"},
    )


@pytest.fixture
def credentials():
    return ConnectorCredentials(access_token="tok-123", refresh_token="ref-456")
