"""
Pytest configuration for all Toolgate tests — validates the environment,
registers markers, and provides shared approval fixtures.
"""

import sys
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

# =============================================================================
# SHARED FIXTURES
# =============================================================================


class FakeClock:
    """Settable wall clock for registry and sweep tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    from toolgate.approval.registry import ApprovalRegistry

    return ApprovalRegistry(clock=clock)


@pytest.fixture
def metrics():
    from toolgate.observability.metrics import ApprovalMetrics

    return ApprovalMetrics(service_name="toolgate-test")


@pytest.fixture
def settings():
    from toolgate.config.settings import Settings

    return Settings()


@pytest.fixture
def mock_slack_client():
    """AsyncWebClient stand-in; responses mimic chat.postMessage / chat.update."""
    client = AsyncMock()
    client.chat_postMessage = AsyncMock(return_value={"ok": True, "channel": "C123", "ts": "1700000000.000100"})
    client.chat_update = AsyncMock(return_value={"ok": True})
    return client


@pytest.fixture(autouse=True)
def _clean_toolgate_env(monkeypatch):
    """Keep host environment variables from leaking into Settings."""
    for name in (
        "PERMISSION_SERVER_PORT",
        "SLACK_BOT_TOKEN",
        "SLACK_CONTEXT",
        "TOOLGATE_CONFIG",
        "TOOLGATE_COORDINATOR__PORT",
        "TOOLGATE_SLACK__BOT_TOKEN",
        "TOOLGATE_SLACK__SIGNING_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Validate test environment and configure pytest with custom markers."""
    missing = []
    for mod in ("httpx", "fastapi", "pydantic", "slack_sdk", "prometheus_client"):
        try:
            __import__(mod)
        except ImportError:
            missing.append(mod)

    if missing:
        banner = "=" * 70
        print(
            f"\n{banner}\n"
            " TEST ENVIRONMENT ERROR\n"
            f"{banner}\n\n"
            f" Missing dependencies: {', '.join(missing)}\n\n"
            " Toolgate must be installed before running tests.\n"
            " Run:\n\n"
            "   pip install -e '.[test]'\n\n"
            f"{banner}",
            file=sys.stderr,
        )
        raise SystemExit(1)

    config.addinivalue_line(
        "markers", "unit: Fast unit tests with no external dependencies"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that bind real local sockets"
    )
