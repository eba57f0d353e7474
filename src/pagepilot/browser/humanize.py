"""Human-like behavior injected between scripted steps.

``HumanBehaviorSynthesizer.perturb`` wanders the pointer through a few
random on-viewport points, smooth-scrolls somewhere in the document and
then pauses. It runs once after navigation and once after every action to
break up mechanical timing signatures. It never raises: a page that
rejects the behavior is still usable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pagepilot.browser.jitter import BEHAVIOR_PAUSE_MS, Jitter

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

POINTER_POINTS = 5
POINTER_STEPS = 10

_DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}

_SCROLL_TO_FRACTION_JS = """
(fraction) => {
  const maxScroll = Math.max(
    document.documentElement ? document.documentElement.scrollHeight : 0,
    document.body ? document.body.scrollHeight : 0,
  );
  window.scrollTo({ top: fraction * maxScroll, behavior: 'smooth' });
}
"""


class HumanBehaviorSynthesizer:
    """Randomized pointer, scroll and pause injection.

    Args:
        jitter: Source of all random values.
    """

    def __init__(self, jitter: Jitter | None = None) -> None:
        self._jitter = jitter or Jitter()

    async def perturb(self, page: Page) -> None:
        """Run one behavior pass on *page*; failures are logged and swallowed."""
        try:
            viewport = page.viewport_size or _DEFAULT_VIEWPORT
            for _ in range(POINTER_POINTS):
                x = self._jitter.fraction() * viewport["width"]
                y = self._jitter.fraction() * viewport["height"]
                await page.mouse.move(x, y, steps=POINTER_STEPS)

            await page.evaluate(_SCROLL_TO_FRACTION_JS, self._jitter.fraction())
            await page.wait_for_timeout(self._jitter.delay_ms(BEHAVIOR_PAUSE_MS))
        except Exception as exc:
            logger.warning("Behavior synthesis failed on %s: %s", getattr(page, "url", "?"), exc)
