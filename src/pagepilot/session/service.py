"""Inbound service facade.

``PagePilotService`` is what the HTTP API and the CLI talk to. It
validates requests before touching any resource, consults the response
cache, and owns the lifecycle of the shared resources behind the
orchestrator (browser, proxy anonymizer, solver client, cache sweep).

Usage::

    async with PagePilotService.from_settings(get_settings()) as service:
        result = await service.execute("https://example.com", [{"type": "scroll", "y": 400}])
"""

from __future__ import annotations

import logging
import random
from typing import Any
from urllib.parse import urlsplit

from pagepilot.browser.actions import ActionExecutor
from pagepilot.browser.captcha import CaptchaResolver
from pagepilot.browser.driver import BrowserDriver
from pagepilot.browser.fingerprint import FingerprintGenerator
from pagepilot.browser.humanize import HumanBehaviorSynthesizer
from pagepilot.browser.jitter import Jitter
from pagepilot.browser.proxy import ProxyAnonymizer
from pagepilot.browser.solver import TwoCaptchaClient
from pagepilot.exceptions import InvalidRequestError
from pagepilot.models.action import ActionOutcome, parse_action, parse_actions
from pagepilot.models.page import PageContent, PageResult
from pagepilot.session.orchestrator import SessionOrchestrator
from pagepilot.settings.config import Settings
from pagepilot.store.profile_store import ProfileStore
from pagepilot.store.response_cache import ResponseCache

logger = logging.getLogger(__name__)


def validate_url(url: Any) -> str:
    """Return *url* stripped, or raise ``InvalidRequestError``.

    Only absolute ``http``/``https`` URLs with a hostname are accepted.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidRequestError("URL is required")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise InvalidRequestError(f"URL must be an absolute http(s) URL: {url!r}")
    return url


class PagePilotService:
    """Cached, validated entry point to the orchestrator.

    Args:
        orchestrator: Runs the actual page visits.
        cache: Response cache, or ``None`` to disable caching.
        cache_ttl: Seconds a cached result stays valid.
        cache_errors: Cache error-shaped results too; ``False`` retries
            failed URLs on the next request.
        driver: Browser driver started and closed with the service.
        proxy: Proxy anonymizer closed with the service.
        upstream_proxy: Upstream proxy URL anonymized on ``start()``.
        solver: Solver client closed with the service.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        *,
        cache: ResponseCache | None = None,
        cache_ttl: float = 300.0,
        cache_errors: bool = True,
        driver: BrowserDriver | None = None,
        proxy: ProxyAnonymizer | None = None,
        upstream_proxy: str = "",
        solver: TwoCaptchaClient | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.cache = cache
        self._cache_ttl = cache_ttl
        self._cache_errors = cache_errors
        self._driver = driver
        self._proxy = proxy
        self._upstream_proxy = upstream_proxy
        self._solver = solver
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        profiles: ProfileStore | None = None,
        driver: BrowserDriver | None = None,
    ) -> PagePilotService:
        """Wire the full stack from resolved settings."""
        seed = settings.stealth.fingerprint_seed
        fingerprints = FingerprintGenerator(seed=seed)
        jitter = Jitter(random.Random(seed) if seed is not None else None)

        if profiles is None:
            profiles = ProfileStore(settings.profiles.db_url, fingerprints=fingerprints)

        upstream = settings.proxy.upstream_url()
        proxy = (
            ProxyAnonymizer(
                executable=settings.proxy.mitmdump_path,
                start_timeout=settings.proxy.start_timeout_sec,
            )
            if upstream
            else None
        )
        if driver is None:
            driver = BrowserDriver.from_settings(settings)

        solver: TwoCaptchaClient | None = None
        resolver: CaptchaResolver | None = None
        if settings.captcha.enabled:
            solver = TwoCaptchaClient(
                settings.captcha.solver_api_key,
                base_url=settings.captcha.solver_base_url,
                poll_interval=settings.captcha.poll_interval_sec,
                timeout=settings.captcha.solve_timeout_sec,
                request_timeout=settings.captcha.request_timeout_sec,
            )
            resolver = CaptchaResolver(solver, settle_timeout_ms=settings.browser.navigation_timeout_ms)

        orchestrator = SessionOrchestrator(
            driver,
            profiles,
            fingerprints,
            resolver,
            HumanBehaviorSynthesizer(jitter),
            ActionExecutor(
                jitter,
                selector_timeout_ms=settings.browser.selector_timeout_ms,
                max_wait_ms=settings.browser.max_wait_ms,
            ),
            navigation_attempts=settings.browser.navigation_attempts,
            retry_backoff_ms=settings.browser.retry_backoff_ms,
            navigation_timeout_ms=settings.browser.navigation_timeout_ms,
        )

        cache = None
        if settings.cache.enabled:
            cache = ResponseCache(
                default_ttl=settings.cache.ttl_sec,
                sweep_interval=settings.cache.sweep_interval_sec,
            )

        return cls(
            orchestrator,
            cache=cache,
            cache_ttl=settings.cache.ttl_sec,
            cache_errors=settings.cache.cache_errors,
            driver=driver,
            proxy=proxy,
            upstream_proxy=upstream,
            solver=solver,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Anonymize the proxy, launch the browser and start the cache sweep."""
        if self._started:
            return
        if self._proxy is not None and self._upstream_proxy and self._driver is not None:
            self._driver.proxy_url = await self._proxy.anonymize(self._upstream_proxy)
        if self._driver is not None:
            await self._driver.start()
        if self.cache is not None:
            self.cache.start()
        self._started = True
        logger.info("PagePilot service started")

    async def close(self) -> None:
        """Release everything ``start()`` acquired."""
        if self.cache is not None:
            await self.cache.close()
        if self._driver is not None:
            await self._driver.close()
        if self._proxy is not None:
            await self._proxy.close()
        if self._solver is not None:
            await self._solver.close()
        self._started = False
        logger.info("PagePilot service stopped")

    async def __aenter__(self) -> PagePilotService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def execute(self, url: Any, actions: Any = None) -> PageResult:
        """Return the page result for *url* after running *actions*.

        A cached result for the same URL is returned as-is while it is
        fresh; otherwise the orchestrator runs and its result, error-shaped
        or not, is cached.

        Raises:
            InvalidRequestError: Missing or malformed URL or action.
            UnknownActionError: An action has an unsupported ``type``.
        """
        url = validate_url(url)
        script = parse_actions(actions)

        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                logger.debug("Cache hit for %s", url)
                return cached

        result = await self.orchestrator.execute(url, script)

        if self.cache is not None and (isinstance(result, PageContent) or self._cache_errors):
            self.cache.set(url, result, self._cache_ttl)
        return result

    async def interact_once(self, url: Any, action: Any) -> ActionOutcome:
        """Run one action on *url*; never served from or stored in the cache."""
        url = validate_url(url)
        if action is None:
            raise InvalidRequestError("Action is required")
        parsed = parse_action(action)
        return await self.orchestrator.interact_once(url, parsed)
