"""Browser fingerprint generation and the matching stealth init script.

``FingerprintGenerator`` samples a plausible desktop-Chrome-on-Windows
identity from a fixed catalog. Every value in the catalog is consistent
with the others (Win32 platform, desktop viewport, no touch, Intel ANGLE
WebGL), so sampling only varies details that real Windows Chrome
installations also vary.

Usage::

    from pagepilot.browser.fingerprint import FingerprintGenerator, stealth_script

    fp = FingerprintGenerator(seed=42).generate()
    await context.add_init_script(stealth_script(fp))
"""

from __future__ import annotations

import json
import random

from pagepilot.models.profile import Fingerprint, PluginDescriptor, Viewport, WebGLInfo

# ---------------------------------------------------------------------------
# Catalog (desktop Chrome on Windows)
# ---------------------------------------------------------------------------

_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

_VIEWPORT = Viewport(
    width=1920,
    height=1080,
    device_scale_factor=1,
    is_mobile=False,
    has_touch=False,
    is_landscape=True,
)

_PLUGINS: tuple[PluginDescriptor, ...] = (
    PluginDescriptor(
        name="Chrome PDF Plugin",
        description="Portable Document Format",
        filename="internal-pdf-viewer",
    ),
    PluginDescriptor(
        name="Chrome PDF Viewer",
        description="",
        filename="mhjfbmdgcfjbbpaeojofohoefgiehjai",
    ),
    PluginDescriptor(
        name="Native Client",
        description="",
        filename="internal-nacl-plugin",
    ),
)

_WEBGL: tuple[WebGLInfo, ...] = (
    WebGLInfo(
        vendor="Google Inc. (Intel)",
        renderer="ANGLE (Intel, Intel(R) UHD Graphics Direct3D11 vs_5_0 ps_5_0)",
    ),
    WebGLInfo(
        vendor="Google Inc. (Intel)",
        renderer="ANGLE (Intel, Intel(R) UHD Graphics 620 Direct3D11 vs_5_0 ps_5_0, D3D11)",
    ),
    WebGLInfo(
        vendor="Google Inc. (Intel)",
        renderer="ANGLE (Intel, Intel(R) Iris(R) Xe Graphics Direct3D11 vs_5_0 ps_5_0, D3D11)",
    ),
)

_PLATFORM = "Win32"
_VENDOR = "Google Inc."
_LANGUAGES: tuple[str, ...] = ("en-US", "en")
_TIMEZONE = "America/New_York"


class FingerprintGenerator:
    """Stateless sampler over the fingerprint catalog.

    The only state is the sampling source. Pass *rng* (or *seed*) to make
    the output deterministic.

    Args:
        rng: Random source to draw from.
        seed: Convenience seed used when *rng* is not given.
    """

    def __init__(self, rng: random.Random | None = None, *, seed: int | None = None) -> None:
        self._rng = rng or random.Random(seed)

    def generate(self) -> Fingerprint:
        """Return a fresh, internally consistent fingerprint."""
        plugin_count = self._rng.randint(1, len(_PLUGINS))
        return Fingerprint(
            user_agent=self._rng.choice(_USER_AGENTS),
            viewport=_VIEWPORT,
            platform=_PLATFORM,
            vendor=_VENDOR,
            plugins=_PLUGINS[:plugin_count],
            languages=_LANGUAGES,
            timezone=_TIMEZONE,
            webgl=self._rng.choice(_WEBGL),
        )


# ---------------------------------------------------------------------------
# Stealth init script
# ---------------------------------------------------------------------------

# Placeholders are substituted with JSON literals by ``stealth_script``.
_STEALTH_TEMPLATE: str = """
(() => {
  const fp = __FINGERPRINT__;

  // Remove navigator.webdriver flag
  Object.defineProperty(navigator, 'webdriver', { get: () => undefined });

  // Mimic chrome.runtime (present in real Chrome)
  if (!window.chrome) window.chrome = {};
  if (!window.chrome.runtime) window.chrome.runtime = {};

  Object.defineProperty(navigator, 'platform', { get: () => fp.platform });
  Object.defineProperty(navigator, 'vendor', { get: () => fp.vendor });
  Object.defineProperty(navigator, 'languages', { get: () => fp.languages });
  Object.defineProperty(navigator, 'plugins', {
    get: () => fp.plugins.map((p) => Object.assign(Object.create(Plugin.prototype), p)),
  });

  // WebGL UNMASKED_VENDOR_WEBGL / UNMASKED_RENDERER_WEBGL
  const patchWebGL = (proto) => {
    if (!proto) return;
    const getParameter = proto.getParameter;
    proto.getParameter = function (parameter) {
      if (parameter === 37445) return fp.webgl.vendor;
      if (parameter === 37446) return fp.webgl.renderer;
      return getParameter.call(this, parameter);
    };
  };
  patchWebGL(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
  patchWebGL(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);

  // Prevent detection via permissions API
  if (window.navigator.permissions) {
    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) =>
      parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : originalQuery(parameters);
  }
})();
"""


def stealth_script(fingerprint: Fingerprint) -> str:
    """Render the init script that makes the page observe *fingerprint*.

    Register it with ``BrowserContext.add_init_script`` **before** any
    navigation so it runs in every frame from the start.
    """
    payload = {
        "platform": fingerprint.platform,
        "vendor": fingerprint.vendor,
        "languages": list(fingerprint.languages),
        "plugins": [p.model_dump() for p in fingerprint.plugins],
        "webgl": fingerprint.webgl.model_dump(),
    }
    return _STEALTH_TEMPLATE.replace("__FINGERPRINT__", json.dumps(payload))
