"""Unit tests for pagepilot.browser.solver — the 2Captcha client."""

from __future__ import annotations

import httpx
import pytest

from pagepilot.browser.solver import TwoCaptchaClient
from pagepilot.exceptions import CaptchaSolveError


def _client(handler, **kwargs) -> TwoCaptchaClient:
    transport = httpx.MockTransport(handler)
    return TwoCaptchaClient(
        kwargs.pop("api_key", "test-key"),
        base_url="https://solver.test",
        poll_interval=0,
        client=httpx.AsyncClient(transport=transport),
        **kwargs,
    )


class TestTwoCaptchaClient:
    @pytest.mark.anyio
    async def test_recaptcha_submit_then_poll(self) -> None:
        requests: list[httpx.Request] = []
        polls = iter([{"status": 0, "request": "CAPCHA_NOT_READY"}, {"status": 1, "request": "TOKEN-123"}])

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/in.php":
                return httpx.Response(200, json={"status": 1, "request": "42"})
            return httpx.Response(200, json=next(polls))

        solver = _client(handler)
        token = await solver.solve_recaptcha_v2("site-key", "https://example.com/login")

        assert token == "TOKEN-123"
        submit = requests[0]
        assert submit.method == "POST"
        body = submit.content.decode()
        assert "method=userrecaptcha" in body
        assert "googlekey=site-key" in body
        assert requests[1].url.params["id"] == "42"
        assert requests[1].url.params["action"] == "get"
        assert len(requests) == 3

    @pytest.mark.anyio
    async def test_hcaptcha_uses_sitekey_param(self) -> None:
        bodies: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/in.php":
                bodies.append(request.content.decode())
                return httpx.Response(200, json={"status": 1, "request": "7"})
            return httpx.Response(200, json={"status": 1, "request": "H-TOKEN"})

        assert await _client(handler).solve_hcaptcha("hk", "https://example.com") == "H-TOKEN"
        assert "method=hcaptcha" in bodies[0]
        assert "sitekey=hk" in bodies[0]

    @pytest.mark.anyio
    async def test_image_returns_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/in.php":
                assert "method=base64" in request.content.decode()
                return httpx.Response(200, json={"status": 1, "request": "9"})
            return httpx.Response(200, json={"status": 1, "request": "x7k2p"})

        assert await _client(handler).solve_image("aW1hZ2U=") == "x7k2p"

    @pytest.mark.anyio
    async def test_missing_key_fails_without_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(CaptchaSolveError, match="no solver API key"):
            await _client(handler, api_key="").solve_image("aW1hZ2U=")

    @pytest.mark.anyio
    async def test_submit_error_code(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": 0, "request": "ERROR_ZERO_BALANCE"})

        with pytest.raises(CaptchaSolveError) as exc_info:
            await _client(handler).solve_hcaptcha("hk", "https://example.com")
        assert exc_info.value.reason == "ERROR_ZERO_BALANCE"
        assert exc_info.value.captcha_type == "hcaptcha"

    @pytest.mark.anyio
    async def test_poll_error_code(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/in.php":
                return httpx.Response(200, json={"status": 1, "request": "1"})
            return httpx.Response(200, json={"status": 0, "request": "ERROR_CAPTCHA_UNSOLVABLE"})

        with pytest.raises(CaptchaSolveError, match="ERROR_CAPTCHA_UNSOLVABLE"):
            await _client(handler).solve_image("aW1hZ2U=")

    @pytest.mark.anyio
    async def test_times_out(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/in.php":
                return httpx.Response(200, json={"status": 1, "request": "1"})
            return httpx.Response(200, json={"status": 0, "request": "CAPCHA_NOT_READY"})

        with pytest.raises(CaptchaSolveError, match="timed out"):
            await _client(handler, timeout=0.05).solve_image("aW1hZ2U=")

    @pytest.mark.anyio
    async def test_transport_error_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CaptchaSolveError, match="ConnectError"):
            await _client(handler).solve_image("aW1hZ2U=")

    @pytest.mark.anyio
    async def test_http_error_status_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        with pytest.raises(CaptchaSolveError, match="HTTPStatusError"):
            await _client(handler).solve_image("aW1hZ2U=")
