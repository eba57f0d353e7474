"""Browser-side components (Playwright async API).

``driver`` launches Chromium and builds per-request contexts from a
``Fingerprint`` and a stored ``Profile``. ``navigation``, ``captcha``,
``humanize``, ``actions`` and ``extraction`` each operate on a live page
and are wired together by ``pagepilot.session.orchestrator``.

All randomized timing goes through ``jitter`` so tests can pin it.
"""
