"""Client for the external CAPTCHA-solving service (2Captcha protocol).

The service works in two steps: submit a task to ``/in.php`` and receive a
task id, then poll ``/res.php`` until the answer is ready. Three request
shapes are used:

* image: ``{imageBase64}`` → solved text (``method=base64``)
* reCAPTCHA v2: ``{siteKey, pageURL}`` → token (``method=userrecaptcha``)
* hCaptcha: ``{siteKey, pageURL}`` → token (``method=hcaptcha``)

Every failure (transport error, provider error code, timeout) is raised
as ``CaptchaSolveError``. There is no retry here; a failed solve leaves
the challenge unsolved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

import httpx

from pagepilot.exceptions import CaptchaSolveError

logger = logging.getLogger(__name__)

_NOT_READY = "CAPCHA_NOT_READY"


class CaptchaSolver(Protocol):
    """What the resolver needs from a solving service."""

    async def solve_image(self, image_base64: str) -> str: ...

    async def solve_recaptcha_v2(self, site_key: str, page_url: str) -> str: ...

    async def solve_hcaptcha(self, site_key: str, page_url: str) -> str: ...


class TwoCaptchaClient:
    """Async 2Captcha API client.

    Args:
        api_key: Provider API key. Without one every call fails fast.
        base_url: Provider base URL.
        poll_interval: Seconds between ``res.php`` polls.
        timeout: Overall seconds to wait for an answer.
        request_timeout: Per-HTTP-request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient`` (tests, shared pools).
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://2captcha.com",
        poll_interval: float = 5.0,
        timeout: float = 120.0,
        request_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=request_timeout)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def solve_image(self, image_base64: str) -> str:
        """Return the text shown in a base64-encoded CAPTCHA image."""
        return await self._solve("image", {"method": "base64", "body": image_base64})

    async def solve_recaptcha_v2(self, site_key: str, page_url: str) -> str:
        """Return a ``g-recaptcha-response`` token."""
        return await self._solve(
            "recaptcha_v2",
            {"method": "userrecaptcha", "googlekey": site_key, "pageurl": page_url},
        )

    async def solve_hcaptcha(self, site_key: str, page_url: str) -> str:
        """Return an ``h-captcha-response`` token."""
        return await self._solve(
            "hcaptcha",
            {"method": "hcaptcha", "sitekey": site_key, "pageurl": page_url},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    async def _solve(self, captcha_type: str, params: dict[str, Any]) -> str:
        if not self._api_key:
            raise CaptchaSolveError(captcha_type, "no solver API key configured")

        task_id = await self._submit(captcha_type, params)
        logger.info("Submitted %s to solver (task %s)", captcha_type, task_id)

        deadline = time.monotonic() + self._timeout
        while time.monotonic() < deadline:
            await asyncio.sleep(self._poll_interval)
            data = await self._request(
                captcha_type,
                "GET",
                "/res.php",
                params={"key": self._api_key, "action": "get", "id": task_id, "json": 1},
            )
            if data.get("status") == 1:
                logger.info("Solver returned answer for %s (task %s)", captcha_type, task_id)
                return str(data["request"])
            code = str(data.get("request", "UNKNOWN_ERROR"))
            if code != _NOT_READY:
                raise CaptchaSolveError(captcha_type, code)

        raise CaptchaSolveError(captcha_type, f"timed out after {self._timeout:.0f}s")

    async def _submit(self, captcha_type: str, params: dict[str, Any]) -> str:
        data = await self._request(
            captcha_type,
            "POST",
            "/in.php",
            data={"key": self._api_key, "json": 1, **params},
        )
        if data.get("status") != 1:
            raise CaptchaSolveError(captcha_type, str(data.get("request", "UNKNOWN_ERROR")))
        return str(data["request"])

    async def _request(self, captcha_type: str, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, f"{self._base_url}{path}", **kwargs)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CaptchaSolveError(captcha_type, f"{type(exc).__name__}: {exc}") from exc
        if not isinstance(payload, dict):
            raise CaptchaSolveError(captcha_type, "unexpected response payload")
        return payload
