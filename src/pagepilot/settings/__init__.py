"""PagePilot settings package."""

from pagepilot.settings.config import Settings, get_settings
from pagepilot.settings.logging_config import configure_logging

__all__ = ["Settings", "configure_logging", "get_settings"]
