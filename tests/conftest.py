"""PagePilot test configuration — shared fixtures for unit and integration tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest


# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------


@pytest.fixture()
def anyio_backend() -> str:
    """Playwright and ``asyncio.to_thread`` need asyncio; skip trio."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from pagepilot.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class StepClock:
    """UTC clock that advances by *step* on every call."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture()
def profile_store(tmp_path: Path):
    """Create a disposable ``ProfileStore`` backed by a temporary SQLite DB."""
    from pagepilot.browser.fingerprint import FingerprintGenerator
    from pagepilot.store.profile_store import ProfileStore

    return ProfileStore(
        f"sqlite:///{tmp_path / 'profiles.db'}",
        fingerprints=FingerprintGenerator(seed=7),
        clock=StepClock(),
    )


# ---------------------------------------------------------------------------
# Page doubles
# ---------------------------------------------------------------------------


def make_page(url: str = "https://example.com/") -> MagicMock:
    """Return a ``MagicMock`` shaped like an async Playwright ``Page``."""
    page = MagicMock(name="page")
    page.url = url
    page.viewport_size = {"width": 1920, "height": 1080}
    page.goto = AsyncMock(return_value=MagicMock(name="response"))
    page.wait_for_timeout = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.query_selector = AsyncMock(return_value=None)
    page.click = AsyncMock()
    page.evaluate = AsyncMock(return_value=None)
    page.mouse.move = AsyncMock()
    page.keyboard.type = AsyncMock()
    return page


@pytest.fixture()
def page() -> MagicMock:
    return make_page()


@pytest.fixture()
def page_factory():
    """Return the page-double factory for tests that need several pages."""
    return make_page


@pytest.fixture()
def step_clock() -> StepClock:
    return StepClock()


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that drive the full service stack")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
