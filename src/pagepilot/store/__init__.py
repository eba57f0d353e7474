"""PagePilot stores — per-host profile persistence and the response cache."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagepilot.browser.fingerprint import FingerprintGenerator
    from pagepilot.store.profile_store import ProfileStore


def build_profile_store(
    db_url: str | None = None,
    *,
    fingerprints: "FingerprintGenerator | None" = None,
) -> "ProfileStore":
    """Factory: return a ``ProfileStore`` honouring PagePilot settings.

    Args:
        db_url: Optional SQLAlchemy URL override; defaults to
            ``get_settings().profiles.db_url``.
        fingerprints: Generator used to seed new profiles' user agents.
    """
    from pagepilot.store.profile_store import ProfileStore

    if db_url is None:
        from pagepilot.settings import get_settings

        db_url = get_settings().profiles.db_url
    return ProfileStore(db_url, fingerprints=fingerprints)
