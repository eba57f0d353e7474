"""Identity models: per-host profiles and per-session fingerprints."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Cookie(_CamelModel):
    """A browser cookie in Playwright's shape.

    Unknown keys reported by the browser (e.g. ``partitionKey``) are kept so
    that cookies round-trip unchanged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str
    value: str
    domain: str | None = None
    path: str | None = None
    expires: float | None = None
    http_only: bool | None = None
    secure: bool | None = None
    same_site: str | None = None

    def to_playwright(self) -> dict:
        """Return the dict accepted by ``BrowserContext.add_cookies``."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Profile(_CamelModel):
    """Persisted identity state for one hostname."""

    host_key: str
    created_at: datetime = Field(default_factory=_utcnow)
    last_used_at: datetime = Field(default_factory=_utcnow)
    user_agent: str = ""
    cookies: list[Cookie] = Field(default_factory=list)
    local_storage: dict[str, str] = Field(default_factory=dict)
    session_storage: dict[str, str] = Field(default_factory=dict)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Viewport(_FrozenCamelModel):
    width: int
    height: int
    device_scale_factor: float = 1
    is_mobile: bool = False
    has_touch: bool = False
    is_landscape: bool = True


class PluginDescriptor(_FrozenCamelModel):
    name: str
    description: str = ""
    filename: str = ""


class WebGLInfo(_FrozenCamelModel):
    vendor: str
    renderer: str


class Fingerprint(_FrozenCamelModel):
    """Client-observable environment presented to sites for one session."""

    user_agent: str
    viewport: Viewport
    platform: str
    vendor: str
    plugins: tuple[PluginDescriptor, ...] = ()
    languages: tuple[str, ...] = ("en-US", "en")
    timezone: str = "America/New_York"
    webgl: WebGLInfo


def resolve_user_agent(profile: Profile, fingerprint: Fingerprint, *, rotate: bool = False) -> str:
    """Pick the user agent a session presents.

    The stored profile's user agent wins when it is non-empty, so a returning
    visitor keeps the same browser identity; otherwise the fresh
    fingerprint's value is used. ``rotate=True`` inverts the preference.
    """
    if rotate:
        return fingerprint.user_agent or profile.user_agent
    return profile.user_agent or fingerprint.user_agent
