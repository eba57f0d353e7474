"""PagePilot — session and interaction orchestration for automated page visits."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("pagepilot")
except Exception:
    __version__ = "0.0.0"
