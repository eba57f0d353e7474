"""Unit tests for pagepilot.browser.driver — launch and context options."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagepilot.browser.driver import LAUNCH_ARGS, BrowserDriver, BrowserSession
from pagepilot.browser.fingerprint import FingerprintGenerator
from pagepilot.models.profile import Cookie, Profile
from pagepilot.settings.config import Settings


@pytest.fixture()
def fingerprint():
    return FingerprintGenerator(seed=4).generate()


class TestLaunchOptions:
    def test_defaults(self) -> None:
        options = BrowserDriver().launch_options()
        assert options["headless"] is True
        assert "--disable-blink-features=AutomationControlled" in options["args"]
        assert "--no-sandbox" in options["args"]
        assert "proxy" not in options

    def test_proxy_and_extra_args(self) -> None:
        driver = BrowserDriver(proxy_url="http://127.0.0.1:9999", extra_args=["--lang=en-US"])
        options = driver.launch_options()
        assert options["proxy"] == {"server": "http://127.0.0.1:9999"}
        assert options["args"] == [*LAUNCH_ARGS, "--lang=en-US"]

    def test_from_settings(self) -> None:
        settings = Settings(browser={"headless": False, "navigation_timeout_ms": 1000})
        driver = BrowserDriver.from_settings(settings, proxy_url="http://proxy:1")
        options = driver.launch_options()
        assert options["headless"] is False
        assert options["proxy"] == {"server": "http://proxy:1"}


class TestContextOptions:
    def test_uses_fingerprint(self, fingerprint) -> None:
        options = BrowserDriver().context_options(Profile(host_key="example.com"), fingerprint)

        assert options["user_agent"] == fingerprint.user_agent
        assert options["viewport"] == {"width": 1920, "height": 1080}
        assert options["is_mobile"] is False
        assert options["has_touch"] is False
        assert options["locale"] == "en-US"
        assert options["timezone_id"] == "America/New_York"
        assert options["permissions"] == ["geolocation"]
        assert options["geolocation"] == {"latitude": 40.7128, "longitude": -74.0060}
        assert options["ignore_https_errors"] is True
        assert options["extra_http_headers"]["Accept-Language"].startswith("en-US,en;q=")

    def test_stored_user_agent_wins(self, fingerprint) -> None:
        profile = Profile(host_key="example.com", user_agent="Stored/1.0")
        assert BrowserDriver().context_options(profile, fingerprint)["user_agent"] == "Stored/1.0"

    def test_rotation_prefers_fingerprint(self, fingerprint) -> None:
        profile = Profile(host_key="example.com", user_agent="Stored/1.0")
        driver = BrowserDriver(rotate_user_agent=True)
        assert driver.context_options(profile, fingerprint)["user_agent"] == fingerprint.user_agent


def _mock_browser(page) -> tuple[MagicMock, MagicMock]:
    context = MagicMock(name="context")
    context.add_cookies = AsyncMock()
    context.add_init_script = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    context.cookies = AsyncMock(return_value=[])
    browser = MagicMock(name="browser")
    browser.new_context = AsyncMock(return_value=context)
    return browser, context


class TestSessions:
    @pytest.mark.anyio
    async def test_new_session_installs_cookies_and_scripts(self, page, fingerprint) -> None:
        browser, context = _mock_browser(page)
        driver = BrowserDriver(navigation_timeout_ms=1234)
        driver._browser = browser
        profile = Profile(
            host_key="example.com",
            cookies=[Cookie(name="sid", value="abc", domain="example.com", path="/")],
            local_storage={"theme": "dark"},
        )

        session = await driver.new_session(profile, fingerprint)

        assert session.page is page
        context.add_cookies.assert_awaited_once_with(
            [{"name": "sid", "value": "abc", "domain": "example.com", "path": "/"}]
        )
        scripts = [c.args[0] for c in context.add_init_script.call_args_list]
        assert len(scripts) == 2
        assert "webdriver" in scripts[0]
        assert '"theme": "dark"' in scripts[1]
        page.set_default_navigation_timeout.assert_called_once_with(1234)

    @pytest.mark.anyio
    async def test_new_session_launches_browser_on_demand(self, page, fingerprint) -> None:
        browser, context = _mock_browser(page)
        pw = MagicMock(name="playwright")
        pw.chromium.launch = AsyncMock(return_value=browser)
        pw.stop = AsyncMock()
        starter = MagicMock(name="starter")
        starter.start = AsyncMock(return_value=pw)
        driver = BrowserDriver(proxy_url="http://127.0.0.1:5555")

        with patch("playwright.async_api.async_playwright", return_value=starter):
            session = await driver.new_session(Profile(host_key="example.com"), fingerprint)
            await driver.new_session(Profile(host_key="example.com"), fingerprint)

        assert session.context is context
        pw.chromium.launch.assert_awaited_once()
        assert pw.chromium.launch.call_args.kwargs["proxy"] == {"server": "http://127.0.0.1:5555"}
        assert browser.new_context.await_count == 2

    @pytest.mark.anyio
    async def test_no_storage_script_for_empty_profile(self, page, fingerprint) -> None:
        browser, context = _mock_browser(page)
        driver = BrowserDriver()
        driver._browser = browser

        await driver.new_session(Profile(host_key="example.com"), fingerprint)

        context.add_cookies.assert_not_awaited()
        assert context.add_init_script.await_count == 1

    @pytest.mark.anyio
    async def test_context_closed_when_setup_fails(self, page, fingerprint) -> None:
        browser, context = _mock_browser(page)
        context.new_page.side_effect = RuntimeError("crashed")
        driver = BrowserDriver()
        driver._browser = browser

        with pytest.raises(RuntimeError):
            await driver.new_session(Profile(host_key="example.com"), fingerprint)

        context.close.assert_awaited_once()

    @pytest.mark.anyio
    async def test_read_storage(self, page, fingerprint) -> None:
        _, context = _mock_browser(page)
        context.cookies.return_value = [{"name": "sid", "value": "1", "domain": "example.com", "sameSite": "Lax"}]
        page.evaluate.return_value = {"local": {"a": "1"}, "session": {"b": "2"}}
        session = BrowserSession(
            context=context,
            page=page,
            profile=Profile(host_key="example.com"),
            fingerprint=fingerprint,
            user_agent="ua",
        )

        cookies, local, sess = await BrowserDriver().read_storage(session)

        assert cookies[0].name == "sid" and cookies[0].same_site == "Lax"
        assert local == {"a": "1"}
        assert sess == {"b": "2"}

    @pytest.mark.anyio
    async def test_close_session_never_raises(self, page, fingerprint) -> None:
        _, context = _mock_browser(page)
        context.close.side_effect = RuntimeError("already closed")
        session = BrowserSession(
            context=context,
            page=page,
            profile=Profile(host_key="example.com"),
            fingerprint=fingerprint,
            user_agent="ua",
        )

        await BrowserDriver().close_session(session)
