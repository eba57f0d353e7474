"""Per-request orchestration of a page visit.

``SessionOrchestrator.execute`` drives one request through the state
machine in ``pagepilot.models.states``::

    INIT → PROFILE_LOADED → CONTEXT_READY → NAVIGATING → CAPTCHA_CHECKED
         → ACTIONS_RUNNING → EXTRACTING → PROFILE_SAVING → DONE

Every stage failure ends in ``FAILED`` and is returned to the caller as a
``PageError``; only malformed input raises. The browser context opened
for the request is closed on every exit path.

Once navigation has succeeded, extraction and the profile save still run
after a failed action, so the returned error carries whatever the page
showed and the site's cookies are not lost.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from playwright.async_api import Error as PlaywrightError

from pagepilot.browser.actions import ActionExecutor
from pagepilot.browser.captcha import CaptchaResolver
from pagepilot.browser.driver import BrowserDriver, BrowserSession
from pagepilot.browser.extraction import DEFAULT_SCHEMA, ExtractionSchema, extract_page
from pagepilot.browser.fingerprint import FingerprintGenerator
from pagepilot.browser.humanize import HumanBehaviorSynthesizer
from pagepilot.browser.navigation import Sleeper, navigate_with_retry
from pagepilot.exceptions import ActionError, CaptchaSolveError, NavigationError, StorageError
from pagepilot.models.action import Action, ActionOutcome, parse_action, parse_actions
from pagepilot.models.page import PageContent, PageError, PageResult
from pagepilot.models.states import SessionState, can_transition
from pagepilot.store.profile_store import ProfileStore, host_key_for

logger = logging.getLogger(__name__)


class IllegalTransitionError(RuntimeError):
    """Raised when the orchestrator attempts a transition the table forbids."""


class _StateTracker:
    """State of one in-flight request."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.state = SessionState.INIT
        self.history: list[SessionState] = [SessionState.INIT]

    def advance(self, target: SessionState) -> None:
        if not can_transition(self.state, target):
            raise IllegalTransitionError(f"{self.state.value} → {target.value}")
        logger.debug("%s: %s → %s", self.url, self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def fail(self) -> None:
        if can_transition(self.state, SessionState.FAILED):
            self.advance(SessionState.FAILED)


class SessionOrchestrator:
    """Run page visits and one-shot interactions end to end.

    Args:
        driver: Shared browser driver; one context is opened per request.
        profiles: Per-host profile store.
        fingerprints: Fresh fingerprint per request.
        captcha: Resolver for challenges found after navigation, or ``None``
            to skip CAPTCHA handling.
        behavior: Human-behavior synthesizer run after navigation and
            after every action.
        executor: Scripted action executor.
        navigation_attempts: Total ``goto`` attempts per request.
        retry_backoff_ms: Base of the linear backoff between attempts.
        navigation_timeout_ms: Per-attempt navigation timeout.
        schema: Extraction schema for page snapshots.
        sleep: Sleep used between navigation attempts (injectable for tests).
    """

    def __init__(
        self,
        driver: BrowserDriver,
        profiles: ProfileStore,
        fingerprints: FingerprintGenerator,
        captcha: CaptchaResolver | None,
        behavior: HumanBehaviorSynthesizer,
        executor: ActionExecutor,
        *,
        navigation_attempts: int = 3,
        retry_backoff_ms: int = 2_000,
        navigation_timeout_ms: int = 30_000,
        schema: ExtractionSchema = DEFAULT_SCHEMA,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._driver = driver
        self._profiles = profiles
        self._fingerprints = fingerprints
        self._captcha = captcha
        self._behavior = behavior
        self._executor = executor
        self._navigation_attempts = navigation_attempts
        self._retry_backoff_ms = retry_backoff_ms
        self._navigation_timeout_ms = navigation_timeout_ms
        self._schema = schema
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, url: str, actions: Iterable[Any] = ()) -> PageResult:
        """Visit *url*, run *actions* in order and return the page snapshot.

        Raises:
            InvalidRequestError: *url* has no hostname or an action is malformed.
            UnknownActionError: An action has an unsupported ``type``.
        """
        host_key = host_key_for(url)
        script = parse_actions(actions)
        tracker = _StateTracker(url)
        session: BrowserSession | None = None

        try:
            session = await self._open(tracker, host_key)
            await self._arrive(tracker, session, url)

            tracker.advance(SessionState.ACTIONS_RUNNING)
            failure = await self._run_script(session, script)

            tracker.advance(SessionState.EXTRACTING)
            content, extract_error = await self._extract(session, url)

            tracker.advance(SessionState.PROFILE_SAVING)
            await self._save_profile(session, host_key)

            tracker.advance(SessionState.DONE)
        except (NavigationError, StorageError) as exc:
            tracker.fail()
            logger.warning("Request for %s failed: %s", url, exc)
            return PageError(error=str(exc), url=url)
        except Exception as exc:
            tracker.fail()
            logger.exception("Unexpected failure while processing %s", url)
            return PageError(error=f"{type(exc).__name__}: {exc}", url=url)
        finally:
            if session is not None:
                await self._driver.close_session(session)

        if failure is not None:
            return PageError(error=str(failure), url=url, partial=content)
        if content is None:
            return PageError(error=extract_error or "extraction failed", url=url)
        logger.info("Processed %s (%d actions)", url, len(script))
        return content

    async def interact_once(self, url: str, action: Any) -> ActionOutcome:
        """Visit *url* and run exactly one *action*.

        No extraction happens; the profile is still updated.

        Raises:
            InvalidRequestError: *url* has no hostname or *action* is malformed.
            UnknownActionError: *action* has an unsupported ``type``.
        """
        host_key = host_key_for(url)
        parsed: Action = parse_action(action)
        tracker = _StateTracker(url)
        session: BrowserSession | None = None

        try:
            session = await self._open(tracker, host_key)
            await self._arrive(tracker, session, url)

            tracker.advance(SessionState.ACTIONS_RUNNING)
            failure = await self._run_script(session, [parsed])

            tracker.advance(SessionState.EXTRACTING)
            tracker.advance(SessionState.PROFILE_SAVING)
            await self._save_profile(session, host_key)
            tracker.advance(SessionState.DONE)
        except (NavigationError, StorageError) as exc:
            tracker.fail()
            logger.warning("Interaction on %s failed: %s", url, exc)
            return ActionOutcome(url=url, action=parsed.type, success=False, error=str(exc))
        except Exception as exc:
            tracker.fail()
            logger.exception("Unexpected failure while interacting with %s", url)
            return ActionOutcome(
                url=url, action=parsed.type, success=False, error=f"{type(exc).__name__}: {exc}"
            )
        finally:
            if session is not None:
                await self._driver.close_session(session)

        if failure is not None:
            return ActionOutcome(url=url, action=parsed.type, success=False, error=str(failure))
        return ActionOutcome(url=url, action=parsed.type, success=True)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _open(self, tracker: _StateTracker, host_key: str) -> BrowserSession:
        profile = await asyncio.to_thread(self._profiles.load, host_key)
        tracker.advance(SessionState.PROFILE_LOADED)

        fingerprint = self._fingerprints.generate()
        session = await self._driver.new_session(profile, fingerprint)
        tracker.advance(SessionState.CONTEXT_READY)
        return session

    async def _arrive(self, tracker: _StateTracker, session: BrowserSession, url: str) -> None:
        tracker.advance(SessionState.NAVIGATING)
        await navigate_with_retry(
            session.page,
            url,
            attempts=self._navigation_attempts,
            backoff_ms=self._retry_backoff_ms,
            timeout_ms=self._navigation_timeout_ms,
            sleep=self._sleep,
        )

        await self._check_captcha(session, url)
        tracker.advance(SessionState.CAPTCHA_CHECKED)
        await self._behavior.perturb(session.page)

    async def _check_captcha(self, session: BrowserSession, url: str) -> None:
        if self._captcha is None:
            return
        try:
            resolution = await self._captcha.scan(session.page, url)
        except (CaptchaSolveError, PlaywrightError) as exc:
            logger.warning("CAPTCHA on %s left unsolved: %s", url, exc)
            return
        if resolution is None:
            return
        session.captcha = resolution
        if resolution.solved:
            logger.info(
                "CAPTCHA %s on %s solved%s",
                resolution.captcha_type.value,
                url,
                f" as {resolution.text!r}" if resolution.text else "",
            )
        else:
            logger.info(
                "CAPTCHA %s on %s not solved: %s",
                resolution.captcha_type.value,
                url,
                resolution.skipped_reason or "unknown",
            )

    async def _run_script(self, session: BrowserSession, script: list[Action]) -> ActionError | None:
        """Run actions in order; return the first failure, if any."""
        for index, action in enumerate(script, start=1):
            try:
                await self._executor.run(session.page, action)
            except ActionError as exc:
                logger.warning(
                    "Action %d/%d (%s) failed on %s: %s",
                    index,
                    len(script),
                    action.type,
                    session.profile.host_key,
                    exc,
                )
                return exc
            await self._behavior.perturb(session.page)
        return None

    async def _extract(self, session: BrowserSession, url: str) -> tuple[PageContent | None, str]:
        try:
            return await extract_page(session.page, self._schema), ""
        except Exception as exc:
            logger.warning("Extraction failed on %s: %s", url, exc)
            return None, f"Extraction failed: {exc}"

    async def _save_profile(self, session: BrowserSession, host_key: str) -> None:
        cookies, local, sess = await self._driver.read_storage(session)
        await asyncio.to_thread(
            self._profiles.save,
            host_key,
            cookies=cookies,
            local_storage=local,
            session_storage=sess,
        )
