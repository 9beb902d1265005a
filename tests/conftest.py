"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path (for 'agavelink.*' imports without an install)
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from agavelink.core.config import AgaveSettings  # noqa: E402
from agavelink.core.events import get_event_bus  # noqa: E402
from fake_agave import FakeAgave  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_event_bus():
    """Global bus subscribers must not leak between tests."""
    import agavelink.core.diagnostics as diagnostics

    get_event_bus().clear()
    diagnostics._SINK_INSTALLED = False  # type: ignore[attr-defined]
    yield
    get_event_bus().clear()
    diagnostics._SINK_INSTALLED = False  # type: ignore[attr-defined]


@pytest.fixture
def settings():
    """Deployment constants pointing at the fake tenant."""
    return AgaveSettings(
        tenant_url="https://agave.test",
        storage_node="store.test",
        client_name="TestClient",
        client_description="Test client",
    )


@pytest.fixture
def fake_agave():
    """Scriptable in-process stand-in for the remote service."""
    return FakeAgave()


@pytest.fixture
def handler(settings, fake_agave):
    """AgaveHandler wired to the fake tenant."""
    from agavelink.core.handler import AgaveHandler

    return AgaveHandler(settings, client=fake_agave.client())


@pytest.fixture
def fatal_events():
    """Collect everything published on the fatal-error channel."""
    from agavelink.core.events import EVENT_FATAL_ERROR

    seen: list[dict] = []
    get_event_bus().subscribe(EVENT_FATAL_ERROR, seen.append)
    return seen
