"""Configuration loader for PagePilot using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (PAGEPILOT_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("PAGEPILOT_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "PAGEPILOT_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_BROWSER__")

    headless: bool = True
    navigation_timeout_ms: int = 30_000
    selector_timeout_ms: int = 5_000
    max_wait_ms: int = 5_000
    navigation_attempts: int = 3
    retry_backoff_ms: int = 2_000
    extra_args: list[str] = Field(default_factory=list)


class ProxySettings(BaseSettings):
    """Upstream proxy routed through the local anonymizer."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_PROXY__")

    enabled: bool = False
    host: str = ""
    port: int = 0
    username: str = ""
    password: str = ""
    scheme: str = "http"
    mitmdump_path: str = "mitmdump"
    start_timeout_sec: float = 10.0

    def upstream_url(self) -> str:
        """Return the upstream proxy URL, with credentials when configured."""
        if not (self.enabled and self.host and self.port):
            return ""
        auth = f"{quote(self.username, safe='')}:{quote(self.password, safe='')}@" if self.username else ""
        return f"{self.scheme}://{auth}{self.host}:{self.port}"


class StealthSettings(BaseSettings):
    """Anti-detection configuration."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_STEALTH__")

    apply_stealth_scripts: bool = True
    restore_storage: bool = True
    # When true the fresh fingerprint's user agent beats the stored profile's.
    rotate_user_agent: bool = False
    fingerprint_seed: int | None = None
    geolocation_latitude: float = 40.7128
    geolocation_longitude: float = -74.0060


class CaptchaSettings(BaseSettings):
    """CAPTCHA detection and external solver configuration."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_CAPTCHA__")

    enabled: bool = True
    solver_api_key: str = ""
    solver_base_url: str = "https://2captcha.com"
    poll_interval_sec: float = 5.0
    solve_timeout_sec: float = 120.0
    request_timeout_sec: float = 30.0


class ProfileSettings(BaseSettings):
    """Per-host profile persistence."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_PROFILES__")

    db_url: str = "sqlite:///data/profiles.db"


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_CACHE__")

    enabled: bool = True
    ttl_sec: float = 300.0
    sweep_interval_sec: float = 60.0
    cache_errors: bool = True


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(env_prefix="PAGEPILOT_API__")

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root PagePilot settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="PAGEPILOT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    stealth: StealthSettings = Field(default_factory=StealthSettings)
    captcha: CaptchaSettings = Field(default_factory=CaptchaSettings)
    profiles: ProfileSettings = Field(default_factory=ProfileSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative SQLite paths against project_root."""
        root = self.project_root
        db_url = self.profiles.db_url
        if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
            rel = db_url.replace("sqlite:///", "")
            if not Path(rel).is_absolute():
                self.profiles.db_url = f"sqlite:///{root / rel}"
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
