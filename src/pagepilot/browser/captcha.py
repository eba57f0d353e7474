"""CAPTCHA detection and resolution.

Detection runs an ordered list of typed detectors against the live page
and stops at the first match, so only one CAPTCHA type is handled per
page:

1. reCAPTCHA iframe
2. hCaptcha iframe
3. generic image CAPTCHA

Token CAPTCHAs (reCAPTCHA v2, hCaptcha) are solved through the external
service and the token is injected by overriding the widget's ``execute``
entry point and filling the response textareas. Image CAPTCHAs are solved
to text; the orchestrator records the resolution on the request.s
``BrowserSession`` and logs the answer. Typing it into the form is left
to the scripted actions.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

from pagepilot.browser.solver import CaptchaSolver
from pagepilot.exceptions import CaptchaSolveError

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

logger = logging.getLogger(__name__)


class CaptchaType(str, Enum):
    """CAPTCHA kinds the resolver can handle."""

    RECAPTCHA_V2 = "recaptcha_v2"
    HCAPTCHA = "hcaptcha"
    IMAGE = "image"


@dataclass(frozen=True)
class CaptchaDetector:
    """A CSS signature identifying one CAPTCHA type."""

    captcha_type: CaptchaType
    selector: str


# Priority order matters: the first detector that matches wins.
DETECTORS: tuple[CaptchaDetector, ...] = (
    CaptchaDetector(CaptchaType.RECAPTCHA_V2, 'iframe[src*="recaptcha"]'),
    CaptchaDetector(CaptchaType.HCAPTCHA, 'iframe[src*="hcaptcha"]'),
    CaptchaDetector(CaptchaType.IMAGE, 'img[alt*="captcha" i], img[src*="captcha" i]'),
)


@dataclass
class CaptchaResolution:
    """Outcome of handling the CAPTCHA found on a page."""

    captcha_type: CaptchaType
    selector: str
    page_url: str
    solved: bool = False
    token: str = ""
    text: str = ""
    skipped_reason: str = ""


_RECAPTCHA_SITEKEY_JS = """
() => {
  const el = document.querySelector('.g-recaptcha[data-sitekey], .g-recaptcha');
  return el ? el.getAttribute('data-sitekey') : null;
}
"""

_HCAPTCHA_SITEKEY_JS = """
() => {
  const el = document.querySelector('[data-sitekey]');
  return el ? el.getAttribute('data-sitekey') : null;
}
"""

_INJECT_RECAPTCHA_JS = """
(token) => {
  const g = window.grecaptcha;
  if (g) {
    g.execute = () => Promise.resolve(token);
    g.getResponse = () => token;
    if (g.enterprise) {
      g.enterprise.execute = () => Promise.resolve(token);
      g.enterprise.getResponse = () => token;
    }
  }
  document
    .querySelectorAll('textarea[name="g-recaptcha-response"], #g-recaptcha-response')
    .forEach((el) => { el.value = token; });
}
"""

_INJECT_HCAPTCHA_JS = """
(token) => {
  if (window.hcaptcha) {
    window.hcaptcha.execute = () => Promise.resolve({ response: token });
    window.hcaptcha.getResponse = () => token;
  }
  document
    .querySelectorAll('textarea[name="h-captcha-response"], textarea[name="g-recaptcha-response"]')
    .forEach((el) => { el.value = token; });
}
"""


class CaptchaResolver:
    """Detect and resolve CAPTCHA challenges on a live page.

    Args:
        solver: External solving service client.
        detectors: Ordered detectors; defaults to ``DETECTORS``.
        settle_timeout_ms: Upper bound for the network-idle wait after a solve.
    """

    def __init__(
        self,
        solver: CaptchaSolver,
        *,
        detectors: tuple[CaptchaDetector, ...] = DETECTORS,
        settle_timeout_ms: int = 30_000,
    ) -> None:
        self._solver = solver
        self._detectors = detectors
        self._settle_timeout_ms = settle_timeout_ms

    async def detect(self, page: Page) -> tuple[CaptchaDetector, ElementHandle] | None:
        """Return the first matching detector and its element, if any."""
        for detector in self._detectors:
            try:
                element = await page.query_selector(detector.selector)
            except PlaywrightError as exc:
                logger.debug("CAPTCHA probe %s failed: %s", detector.selector, exc)
                continue
            if element is not None:
                return detector, element
        return None

    async def scan(self, page: Page, url: str) -> CaptchaResolution | None:
        """Detect a CAPTCHA on *page* and resolve it.

        Returns:
            ``None`` when no CAPTCHA is present, otherwise the resolution
            (which may be unsolved, e.g. a widget without a sitekey).

        Raises:
            CaptchaSolveError: The solving service failed or timed out.
        """
        match = await self.detect(page)
        if match is None:
            return None
        detector, element = match
        logger.info("CAPTCHA detected: %s on %s", detector.captcha_type.value, url)

        if detector.captcha_type == CaptchaType.RECAPTCHA_V2:
            resolution = await self._solve_token(
                page, url, detector, _RECAPTCHA_SITEKEY_JS, _INJECT_RECAPTCHA_JS, self._solver.solve_recaptcha_v2
            )
        elif detector.captcha_type == CaptchaType.HCAPTCHA:
            resolution = await self._solve_token(
                page, url, detector, _HCAPTCHA_SITEKEY_JS, _INJECT_HCAPTCHA_JS, self._solver.solve_hcaptcha
            )
        else:
            text = await self.solve_image(page, element=element)
            resolution = CaptchaResolution(
                captcha_type=detector.captcha_type,
                selector=detector.selector,
                page_url=url,
                solved=True,
                text=text,
            )

        if resolution.solved:
            await self._wait_for_settle(page)
        return resolution

    async def solve_image(
        self,
        page: Page,
        *,
        selector: str | None = None,
        element: ElementHandle | None = None,
        image_base64: str | None = None,
    ) -> str:
        """Solve an image CAPTCHA and return its text.

        The image comes from *image_base64* when given, otherwise from a
        screenshot of *element* (or of the first match for *selector*).
        """
        captcha_type = CaptchaType.IMAGE.value
        if image_base64 is None:
            if element is None and selector:
                element = await page.query_selector(selector)
            if element is None:
                raise CaptchaSolveError(captcha_type, "captcha element not found")
            try:
                png = await element.screenshot(type="png")
            except PlaywrightError as exc:
                raise CaptchaSolveError(captcha_type, f"screenshot failed: {exc}") from exc
            image_base64 = base64.b64encode(png).decode("ascii")
        return await self._solver.solve_image(image_base64)

    async def _solve_token(self, page, url, detector, sitekey_js, inject_js, solve) -> CaptchaResolution:  # noqa: ANN001
        resolution = CaptchaResolution(
            captcha_type=detector.captcha_type,
            selector=detector.selector,
            page_url=url,
        )
        site_key = await page.evaluate(sitekey_js)
        if not site_key:
            logger.warning("%s widget on %s has no sitekey; leaving it alone", detector.captcha_type.value, url)
            resolution.skipped_reason = "sitekey not found"
            return resolution

        token = await solve(site_key, url)
        try:
            await page.evaluate(inject_js, token)
        except PlaywrightError as exc:
            raise CaptchaSolveError(detector.captcha_type.value, f"token injection failed: {exc}") from exc

        resolution.token = token
        resolution.solved = True
        logger.info("%s solved on %s", detector.captcha_type.value, url)
        return resolution

    async def _wait_for_settle(self, page: Page) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=self._settle_timeout_ms)
        except PlaywrightError as exc:
            logger.info("Page did not reach network idle after CAPTCHA: %s", exc)
