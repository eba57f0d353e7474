"""Page navigation with bounded retry.

``navigate_with_retry`` wraps ``page.goto`` with a fixed number of
attempts and a linear backoff between them (``backoff_ms × attempt``:
2 s, then 4 s with the defaults). The last failure is raised as
``NavigationError`` so the orchestrator can turn it into an error result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Literal

from playwright.async_api import Error as PlaywrightError

from pagepilot.exceptions import NavigationError

if TYPE_CHECKING:
    from playwright.async_api import Page, Response

logger = logging.getLogger(__name__)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]

Sleeper = Callable[[float], Awaitable[None]]


def backoff_schedule(attempts: int, backoff_ms: int) -> list[int]:
    """Delays (ms) slept after each failed attempt except the last."""
    return [backoff_ms * n for n in range(1, attempts)]


async def navigate_with_retry(
    page: Page,
    url: str,
    *,
    attempts: int = 3,
    backoff_ms: int = 2_000,
    timeout_ms: int = 30_000,
    wait_until: WaitUntil = "domcontentloaded",
    sleep: Sleeper = asyncio.sleep,
) -> Response | None:
    """Navigate to *url*, retrying failed attempts.

    Args:
        page: Playwright page instance.
        url: Target URL.
        attempts: Total number of ``goto`` attempts (minimum 1).
        backoff_ms: Base backoff; the delay after attempt *n* is ``backoff_ms * n``.
        timeout_ms: Per-attempt navigation timeout.
        wait_until: Load state ``goto`` waits for.
        sleep: Awaitable sleep taking seconds (injectable for tests).

    Returns:
        The main-frame ``Response``, or ``None`` for same-document navigations.

    Raises:
        NavigationError: Every attempt failed.
    """
    attempts = max(1, attempts)
    delays = backoff_schedule(attempts, backoff_ms)
    last_error: PlaywrightError | None = None

    for attempt in range(1, attempts + 1):
        try:
            logger.debug("goto %s (attempt %d/%d, timeout=%dms)", url, attempt, attempts, timeout_ms)
            return await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightError as exc:
            last_error = exc
            if attempt == attempts:
                break
            delay_ms = delays[attempt - 1]
            logger.warning(
                "Navigation to %s failed (attempt %d/%d): %s. Retrying in %dms",
                url,
                attempt,
                attempts,
                _first_line(exc),
                delay_ms,
            )
            await sleep(delay_ms / 1000)

    logger.error("Navigation to %s failed after %d attempts", url, attempts)
    raise NavigationError(url, _first_line(last_error)) from last_error


def _first_line(exc: BaseException | None) -> str:
    if exc is None:
        return "unknown error"
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
