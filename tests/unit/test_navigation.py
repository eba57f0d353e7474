"""Unit tests for pagepilot.browser.navigation — goto with bounded retry."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from pagepilot.browser.navigation import backoff_schedule, navigate_with_retry
from pagepilot.exceptions import NavigationError


class TestBackoffSchedule:
    def test_default_schedule(self) -> None:
        assert backoff_schedule(3, 2000) == [2000, 4000]

    def test_single_attempt_never_sleeps(self) -> None:
        assert backoff_schedule(1, 2000) == []


class TestNavigateWithRetry:
    """Tests for navigate_with_retry."""

    @pytest.mark.anyio
    async def test_success_on_first_try(self, page) -> None:
        sentinel = MagicMock(name="response")
        page.goto.return_value = sentinel
        sleep = AsyncMock()

        result = await navigate_with_retry(page, "https://example.com", sleep=sleep)

        assert result is sentinel
        page.goto.assert_awaited_once_with("https://example.com", wait_until="domcontentloaded", timeout=30000)
        sleep.assert_not_awaited()

    @pytest.mark.anyio
    async def test_success_on_second_attempt_stops_retrying(self, page) -> None:
        sentinel = MagicMock(name="response")
        page.goto.side_effect = [PlaywrightTimeout("Timeout 30000ms exceeded"), sentinel]
        sleep = AsyncMock()

        result = await navigate_with_retry(page, "https://example.com", sleep=sleep)

        assert result is sentinel
        assert page.goto.await_count == 2
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.anyio
    async def test_three_failures_raise_navigation_error(self, page) -> None:
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope.invalid\nCall log: ...")
        sleep = AsyncMock()

        with pytest.raises(NavigationError) as exc_info:
            await navigate_with_retry(page, "https://nope.invalid", sleep=sleep)

        assert page.goto.await_count == 3
        delays = [c.args[0] for c in sleep.call_args_list]
        assert delays == [2.0, 4.0]
        assert delays == sorted(set(delays))
        assert exc_info.value.url == "https://nope.invalid"
        assert exc_info.value.reason == "net::ERR_NAME_NOT_RESOLVED at https://nope.invalid"
        assert isinstance(exc_info.value.__cause__, PlaywrightError)

    @pytest.mark.anyio
    async def test_custom_attempts_and_backoff(self, page) -> None:
        page.goto.side_effect = PlaywrightError("boom")
        sleep = AsyncMock()

        with pytest.raises(NavigationError):
            await navigate_with_retry(page, "https://example.com", attempts=4, backoff_ms=100, sleep=sleep)

        assert page.goto.await_count == 4
        assert [c.args[0] for c in sleep.call_args_list] == [0.1, 0.2, 0.3]

    @pytest.mark.anyio
    async def test_sleeps_follow_backoff_schedule(self, page) -> None:
        page.goto.side_effect = PlaywrightError("boom")
        sleep = AsyncMock()

        with pytest.raises(NavigationError):
            await navigate_with_retry(page, "https://example.com", attempts=4, backoff_ms=250, sleep=sleep)

        slept_ms = [round(c.args[0] * 1000) for c in sleep.call_args_list]
        assert slept_ms == backoff_schedule(4, 250)

    @pytest.mark.anyio
    async def test_non_playwright_errors_propagate(self, page) -> None:
        page.goto.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await navigate_with_retry(page, "https://example.com", sleep=AsyncMock())

        assert page.goto.await_count == 1
