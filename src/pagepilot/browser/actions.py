"""Scripted action executor.

Translates typed ``Action`` models into real browser interactions. Each
action is preceded by a reaction pause and performed with realistic
timing (pointer travel, press duration, per-keystroke delays) to reduce
anti-bot detection risk. Every failure surfaces as ``ActionError`` carrying
the action type.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pagepilot.browser.jitter import (
    CLICK_PRESS_MS,
    HESITATION_DELAY_MS,
    HESITATION_PROBABILITY,
    KEYSTROKE_DELAY_MS,
    REACTION_DELAY_MS,
    Jitter,
)
from pagepilot.exceptions import ActionError, UnknownActionError
from pagepilot.models.action import (
    ClickAction,
    ScrollAction,
    TypeAction,
    WaitAction,
    WaitForSelectorAction,
)

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

POINTER_STEPS = 10

_SMOOTH_SCROLL_JS = "(y) => window.scrollTo({ top: y, behavior: 'smooth' })"


class ActionExecutor:
    """Run one action at a time against a live page.

    Args:
        jitter: Source of all randomized timing.
        selector_timeout_ms: Visibility wait for selector-based actions.
        max_wait_ms: Cap applied to caller-requested ``wait`` actions.
    """

    def __init__(
        self,
        jitter: Jitter | None = None,
        *,
        selector_timeout_ms: int = 5_000,
        max_wait_ms: int = 5_000,
    ) -> None:
        self._jitter = jitter or Jitter()
        self._selector_timeout_ms = selector_timeout_ms
        self._max_wait_ms = max_wait_ms
        self._handlers = {
            ClickAction: self._do_click,
            TypeAction: self._do_type,
            ScrollAction: self._do_scroll,
            WaitAction: self._do_wait,
            WaitForSelectorAction: self._do_wait_for_selector,
        }

    async def run(self, page: Page, action: Any) -> None:
        """Execute *action* on *page*.

        Raises:
            UnknownActionError: *action* is not a supported action model. The
                page is not touched.
            ActionError: The action failed; ``cause`` holds the original error.
        """
        handler = self._handlers.get(type(action))
        if handler is None:
            raise UnknownActionError(_action_type_name(action))

        selector = getattr(action, "selector", None)
        try:
            await page.wait_for_timeout(self._jitter.delay_ms(REACTION_DELAY_MS))
            await handler(page, action)
        except ActionError:
            raise
        except Exception as exc:
            raise ActionError(action.type, exc, selector=selector) from exc
        logger.debug("Action %s%s done", action.type, f" {selector}" if selector else "")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _do_click(self, page: Page, action: ClickAction) -> None:
        await page.wait_for_selector(action.selector, state="visible", timeout=self._selector_timeout_ms)
        element = await page.query_selector(action.selector)
        box = await element.bounding_box() if element is not None else None
        if box is None:
            raise ActionError(action.type, "element has no bounding box", selector=action.selector)

        x = box["x"] + box["width"] * self._jitter.fraction()
        y = box["y"] + box["height"] * self._jitter.fraction()
        await page.mouse.move(x, y, steps=POINTER_STEPS)
        await page.click(
            action.selector,
            delay=self._jitter.delay_ms(CLICK_PRESS_MS),
            timeout=self._selector_timeout_ms,
        )

    async def _do_type(self, page: Page, action: TypeAction) -> None:
        await page.wait_for_selector(action.selector, state="visible", timeout=self._selector_timeout_ms)
        await page.click(action.selector, delay=CLICK_PRESS_MS[0], timeout=self._selector_timeout_ms)
        for char in action.text:
            await page.keyboard.type(char, delay=self._jitter.delay_ms(KEYSTROKE_DELAY_MS))
            if self._jitter.chance(HESITATION_PROBABILITY):
                await page.wait_for_timeout(self._jitter.delay_ms(HESITATION_DELAY_MS))

    async def _do_scroll(self, page: Page, action: ScrollAction) -> None:
        await page.evaluate(_SMOOTH_SCROLL_JS, action.y)

    async def _do_wait(self, page: Page, action: WaitAction) -> None:
        await page.wait_for_timeout(min(action.ms, self._max_wait_ms))

    async def _do_wait_for_selector(self, page: Page, action: WaitForSelectorAction) -> None:
        await page.wait_for_selector(action.selector, state="visible", timeout=self._selector_timeout_ms)


def _action_type_name(action: Any) -> str:
    if isinstance(action, dict):
        return str(action.get("type", "<missing>"))
    return str(getattr(action, "type", type(action).__name__))
