"""Playwright browser lifecycle and per-request contexts.

One Chromium instance is launched per process (``BrowserDriver.start``)
with a fixed set of stability and anti-detection flags. Every request gets
its own ``BrowserContext`` built from a ``Fingerprint`` and the host's
stored ``Profile``, so concurrent requests never share cookies or storage.

Usage::

    driver = BrowserDriver.from_settings(get_settings(), proxy_url=endpoint)
    await driver.start()
    session = await driver.new_session(profile, fingerprint)
    try:
        await session.page.goto(url)
        cookies, local, sess = await driver.read_storage(session)
    finally:
        await driver.close_session(session)
    await driver.close()
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pagepilot.browser.fingerprint import stealth_script
from pagepilot.models.profile import Cookie, Fingerprint, Profile, resolve_user_agent

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

    from pagepilot.browser.captcha import CaptchaResolution

    from pagepilot.settings.config import Settings

logger = logging.getLogger(__name__)

LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--window-position=0,0",
    "--ignore-certificate-errors",
    "--ignore-certificate-errors-spki-list",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--no-zygote",
    "--disable-notifications",
    "--disable-blink-features=AutomationControlled",
)

# Replays stored storage for the profile's host on every document. Keys the
# page has already written in this context are left alone.
_STORAGE_RESTORE_TEMPLATE = """
(() => {
  const data = __STORAGE__;
  const host = location.hostname;
  if (host !== data.host && !host.endsWith('.' + data.host)) return;
  const restore = (store, items) => {
    for (const [key, value] of Object.entries(items)) {
      if (store.getItem(key) === null) store.setItem(key, value);
    }
  };
  try { restore(window.localStorage, data.local); } catch (e) {}
  try { restore(window.sessionStorage, data.session); } catch (e) {}
})();
"""

_READ_STORAGE_JS = """
() => {
  const dump = (store) => {
    const items = {};
    for (let i = 0; i < store.length; i++) {
      const key = store.key(i);
      items[key] = store.getItem(key);
    }
    return items;
  };
  let local = {};
  let session = {};
  try { local = dump(window.localStorage); } catch (e) {}
  try { session = dump(window.sessionStorage); } catch (e) {}
  return { local, session };
}
"""


@dataclass
class BrowserSession:
    """Context + page for one request, with the identity it was built from."""

    context: BrowserContext
    page: Page
    profile: Profile
    fingerprint: Fingerprint
    user_agent: str
    captcha: CaptchaResolution | None = None


class BrowserDriver:
    """Owns the Playwright runtime and the shared Chromium instance.

    Args:
        headless: Run Chromium headless.
        proxy_url: Browser-facing proxy endpoint (already anonymized).
        extra_args: Additional Chromium flags appended to ``LAUNCH_ARGS``.
        navigation_timeout_ms: Default navigation timeout for new pages.
        apply_stealth: Register the fingerprint stealth script on contexts.
        restore_storage: Replay the profile's web storage on contexts.
        rotate_user_agent: Prefer the fingerprint's user agent over the profile's.
        geolocation: ``(latitude, longitude)`` granted to every context.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        proxy_url: str = "",
        extra_args: tuple[str, ...] | list[str] = (),
        navigation_timeout_ms: int = 30_000,
        apply_stealth: bool = True,
        restore_storage: bool = True,
        rotate_user_agent: bool = False,
        geolocation: tuple[float, float] = (40.7128, -74.0060),
    ) -> None:
        self._headless = headless
        self.proxy_url = proxy_url
        self._extra_args = list(extra_args)
        self._navigation_timeout_ms = navigation_timeout_ms
        self._apply_stealth = apply_stealth
        self._restore_storage = restore_storage
        self._rotate_user_agent = rotate_user_agent
        self._geolocation = geolocation

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @classmethod
    def from_settings(cls, settings: Settings, *, proxy_url: str = "") -> BrowserDriver:
        """Build a driver from the resolved settings."""
        return cls(
            headless=settings.browser.headless,
            proxy_url=proxy_url,
            extra_args=settings.browser.extra_args,
            navigation_timeout_ms=settings.browser.navigation_timeout_ms,
            apply_stealth=settings.stealth.apply_stealth_scripts,
            restore_storage=settings.stealth.restore_storage,
            rotate_user_agent=settings.stealth.rotate_user_agent,
            geolocation=(settings.stealth.geolocation_latitude, settings.stealth.geolocation_longitude),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def launch_options(self) -> dict[str, Any]:
        """Keyword arguments for ``chromium.launch()``."""
        options: dict[str, Any] = {
            "headless": self._headless,
            "args": [*LAUNCH_ARGS, *self._extra_args],
        }
        if self.proxy_url:
            options["proxy"] = {"server": self.proxy_url}
        return options

    async def start(self) -> None:
        """Start Playwright and launch Chromium (idempotent)."""
        await self._ensure_browser()

    async def _ensure_browser(self) -> Browser:
        if self._browser is not None:
            return self._browser
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        browser = await self._playwright.chromium.launch(**self.launch_options())
        self._browser = browser
        logger.info(
            "Chromium launched (headless=%s, proxy=%s)",
            self._headless,
            "yes" if self.proxy_url else "no",
        )
        return browser

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.debug("Browser driver closed")

    # ------------------------------------------------------------------
    # Per-request sessions
    # ------------------------------------------------------------------

    def context_options(self, profile: Profile, fingerprint: Fingerprint) -> dict[str, Any]:
        """Keyword arguments for ``browser.new_context()``."""
        vp = fingerprint.viewport
        latitude, longitude = self._geolocation
        return {
            "user_agent": resolve_user_agent(profile, fingerprint, rotate=self._rotate_user_agent),
            "viewport": {"width": vp.width, "height": vp.height},
            "device_scale_factor": vp.device_scale_factor,
            "is_mobile": vp.is_mobile,
            "has_touch": vp.has_touch,
            "locale": fingerprint.languages[0] if fingerprint.languages else "en-US",
            "timezone_id": fingerprint.timezone,
            "permissions": ["geolocation"],
            "geolocation": {"latitude": latitude, "longitude": longitude},
            "ignore_https_errors": True,
            "extra_http_headers": {"Accept-Language": _accept_language(fingerprint.languages)},
        }

    async def new_session(self, profile: Profile, fingerprint: Fingerprint) -> BrowserSession:
        """Create an isolated context and page for one request.

        Stored cookies are added to the context; the stealth and storage
        restore scripts are registered before the page exists so they run
        in every frame.
        """
        browser = await self._ensure_browser()
        options = self.context_options(profile, fingerprint)
        context = await browser.new_context(**options)
        try:
            if profile.cookies:
                await context.add_cookies([c.to_playwright() for c in profile.cookies])
            if self._apply_stealth:
                await context.add_init_script(stealth_script(fingerprint))
            if self._restore_storage and (profile.local_storage or profile.session_storage):
                await context.add_init_script(_storage_restore_script(profile))
            page = await context.new_page()
            page.set_default_navigation_timeout(self._navigation_timeout_ms)
        except BaseException:
            await context.close()
            raise

        logger.debug(
            "Context ready for %s (cookies=%d, ua=%s)",
            profile.host_key,
            len(profile.cookies),
            options["user_agent"][:60],
        )
        return BrowserSession(
            context=context,
            page=page,
            profile=profile,
            fingerprint=fingerprint,
            user_agent=options["user_agent"],
        )

    async def read_storage(
        self, session: BrowserSession
    ) -> tuple[list[Cookie], dict[str, str], dict[str, str]]:
        """Read cookies and web storage back from a live session."""
        raw_cookies = await session.context.cookies()
        cookies = [Cookie.model_validate(c) for c in raw_cookies]
        storage = await session.page.evaluate(_READ_STORAGE_JS) or {}
        local = {str(k): str(v) for k, v in (storage.get("local") or {}).items()}
        sess = {str(k): str(v) for k, v in (storage.get("session") or {}).items()}
        return cookies, local, sess

    async def close_session(self, session: BrowserSession) -> None:
        """Release the request's context; never raises."""
        try:
            await session.context.close()
        except Exception as exc:
            logger.warning("Failed to close browser context for %s: %s", session.profile.host_key, exc)


def _accept_language(languages: tuple[str, ...]) -> str:
    parts = []
    for i, lang in enumerate(languages):
        parts.append(lang if i == 0 else f"{lang};q={max(0.1, 1 - i * 0.1):.1f}")
    return ",".join(parts) or "en-US"


def _storage_restore_script(profile: Profile) -> str:
    payload = {
        "host": profile.host_key,
        "local": profile.local_storage,
        "session": profile.session_storage,
    }
    return _STORAGE_RESTORE_TEMPLATE.replace("__STORAGE__", json.dumps(payload))
