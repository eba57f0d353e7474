"""Unit tests for pagepilot.browser.captcha — detection and resolution."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeout

from pagepilot.browser.captcha import DETECTORS, CaptchaResolver, CaptchaType
from pagepilot.exceptions import CaptchaSolveError


def _solver() -> MagicMock:
    solver = MagicMock(name="solver")
    solver.solve_recaptcha_v2 = AsyncMock(return_value="RC-TOKEN")
    solver.solve_hcaptcha = AsyncMock(return_value="HC-TOKEN")
    solver.solve_image = AsyncMock(return_value="x7k2p")
    return solver


def _present(page, *selectors: str) -> dict[str, MagicMock]:
    """Make query_selector return an element for each of *selectors*."""
    elements = {s: MagicMock(name=s) for s in selectors}
    for element in elements.values():
        element.screenshot = AsyncMock(return_value=b"png-bytes")
    page.query_selector.side_effect = lambda sel: elements.get(sel)
    return elements


class TestDetection:
    def test_detector_priority(self) -> None:
        assert [d.captcha_type for d in DETECTORS] == [
            CaptchaType.RECAPTCHA_V2,
            CaptchaType.HCAPTCHA,
            CaptchaType.IMAGE,
        ]

    @pytest.mark.anyio
    async def test_no_captcha(self, page) -> None:
        resolver = CaptchaResolver(_solver())
        assert await resolver.scan(page, "https://example.com") is None

    @pytest.mark.anyio
    async def test_first_match_wins(self, page) -> None:
        _present(page, DETECTORS[0].selector, DETECTORS[2].selector)
        solver = _solver()
        page.evaluate.return_value = "site-key"
        resolver = CaptchaResolver(solver)

        resolution = await resolver.scan(page, "https://example.com")

        assert resolution.captcha_type == CaptchaType.RECAPTCHA_V2
        solver.solve_image.assert_not_awaited()


class TestTokenCaptchas:
    @pytest.mark.anyio
    async def test_recaptcha_solved_and_injected(self, page) -> None:
        _present(page, DETECTORS[0].selector)
        solver = _solver()
        page.evaluate.side_effect = ["site-key", None]
        resolver = CaptchaResolver(solver, settle_timeout_ms=1000)

        resolution = await resolver.scan(page, "https://example.com/login")

        solver.solve_recaptcha_v2.assert_awaited_once_with("site-key", "https://example.com/login")
        inject_script, token = page.evaluate.call_args_list[1].args
        assert token == "RC-TOKEN"
        assert "grecaptcha" in inject_script and "enterprise" in inject_script
        assert resolution.solved is True
        assert resolution.token == "RC-TOKEN"
        page.wait_for_load_state.assert_awaited_once_with("networkidle", timeout=1000)

    @pytest.mark.anyio
    async def test_hcaptcha_solved(self, page) -> None:
        _present(page, DETECTORS[1].selector)
        solver = _solver()
        page.evaluate.side_effect = ["h-key", None]

        resolution = await CaptchaResolver(solver).scan(page, "https://example.com")

        solver.solve_hcaptcha.assert_awaited_once_with("h-key", "https://example.com")
        assert "h-captcha-response" in page.evaluate.call_args_list[1].args[0]
        assert resolution.solved is True

    @pytest.mark.anyio
    async def test_missing_sitekey_is_noop(self, page) -> None:
        _present(page, DETECTORS[0].selector)
        solver = _solver()
        page.evaluate.return_value = None

        resolution = await CaptchaResolver(solver).scan(page, "https://example.com")

        assert resolution.solved is False
        assert resolution.skipped_reason == "sitekey not found"
        solver.solve_recaptcha_v2.assert_not_awaited()
        page.wait_for_load_state.assert_not_awaited()

    @pytest.mark.anyio
    async def test_solver_failure_propagates(self, page) -> None:
        _present(page, DETECTORS[0].selector)
        solver = _solver()
        solver.solve_recaptcha_v2.side_effect = CaptchaSolveError("recaptcha_v2", "ERROR_ZERO_BALANCE")
        page.evaluate.return_value = "site-key"

        with pytest.raises(CaptchaSolveError):
            await CaptchaResolver(solver).scan(page, "https://example.com")

    @pytest.mark.anyio
    async def test_settle_timeout_is_not_fatal(self, page) -> None:
        _present(page, DETECTORS[1].selector)
        page.evaluate.side_effect = ["h-key", None]
        page.wait_for_load_state.side_effect = PlaywrightTimeout("Timeout exceeded")

        resolution = await CaptchaResolver(_solver()).scan(page, "https://example.com")

        assert resolution.solved is True


class TestImageCaptcha:
    @pytest.mark.anyio
    async def test_scan_screenshots_element(self, page) -> None:
        elements = _present(page, DETECTORS[2].selector)
        solver = _solver()

        resolution = await CaptchaResolver(solver).scan(page, "https://example.com")

        elements[DETECTORS[2].selector].screenshot.assert_awaited_once_with(type="png")
        solver.solve_image.assert_awaited_once_with(base64.b64encode(b"png-bytes").decode("ascii"))
        assert resolution.captcha_type == CaptchaType.IMAGE
        assert resolution.text == "x7k2p"

    @pytest.mark.anyio
    async def test_caller_supplied_image(self, page) -> None:
        solver = _solver()

        text = await CaptchaResolver(solver).solve_image(page, image_base64="aW1n")

        assert text == "x7k2p"
        solver.solve_image.assert_awaited_once_with("aW1n")
        page.query_selector.assert_not_awaited()

    @pytest.mark.anyio
    async def test_selector_not_found(self, page) -> None:
        with pytest.raises(CaptchaSolveError, match="not found"):
            await CaptchaResolver(_solver()).solve_image(page, selector="#captcha")
