"""Per-host profile persistence.

``ProfileStore`` keeps one ``Profile`` row per hostname in the
``browser_profiles`` table. It follows the usual store constructor
pattern: pass a *db_url* for convenience or a pre-built *session_factory*
for shared engines and test fixtures.

Every method is synchronous and blocking; async callers go through
``asyncio.to_thread``. Writes for the same host are serialized by a
per-host lock, so two requests finishing for one site never interleave
their read-merge-write, while different hosts never wait on each other.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pagepilot.browser.fingerprint import FingerprintGenerator
from pagepilot.exceptions import InvalidRequestError, ProfileNotFoundError, StorageError
from pagepilot.models.profile import Cookie, Profile
from pagepilot.store.sql import METADATA, browser_profiles, build_session_factory, dialect_insert

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def host_key_for(url: str) -> str:
    """Return the profile key (lower-cased hostname) for *url*."""
    host = urlsplit(url).hostname
    if not host:
        raise InvalidRequestError(f"URL has no hostname: {url!r}")
    return host.lower()


class ProfileStore:
    """Load and persist per-host browser identities.

    Args:
        db_url: SQLAlchemy URL of the profile database. Ignored when
            *session_factory* is given.
        session_factory: Pre-configured ``sessionmaker``.
        fingerprints: Generator used to pick a user agent for new profiles.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        db_url: str | None = None,
        *,
        session_factory: sessionmaker | None = None,
        fingerprints: FingerprintGenerator | None = None,
        clock: Clock | None = None,
    ) -> None:
        if session_factory is not None:
            self._session_factory = session_factory
        else:
            self._session_factory = build_session_factory(db_url or "sqlite://")
        self._fingerprints = fingerprints or FingerprintGenerator()
        self._clock = clock or _utcnow

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        try:
            with self._session_factory() as session:
                METADATA.create_all(session.connection())
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError("*", f"schema setup failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, host_key: str) -> Profile | None:
        """Return the stored profile without touching its timestamps."""
        try:
            with self._session_factory() as session:
                row = self._select(session, host_key)
        except SQLAlchemyError as exc:
            raise StorageError(host_key, str(exc)) from exc
        return _row_to_profile(row) if row is not None else None

    def load(self, host_key: str) -> Profile:
        """Return the profile for *host_key*, creating a default one if needed.

        ``last_used_at`` is moved to now (never backwards) and persisted.

        Raises:
            StorageError: The database failed, or the profile could not be
                read back after creating it.
        """
        with self._lock_for(host_key):
            try:
                profile = self._read(host_key)
            except ProfileNotFoundError:
                logger.info("No profile for %s; creating default", host_key)
                self._create_default(host_key)
                profile = self._read(host_key)

            profile.last_used_at = max(self._clock(), profile.last_used_at)
            try:
                with self._session_factory() as session:
                    session.execute(
                        sa.update(browser_profiles)
                        .where(browser_profiles.c.host_key == host_key)
                        .values(last_used_at=profile.last_used_at)
                    )
                    session.commit()
            except SQLAlchemyError as exc:
                raise StorageError(host_key, str(exc)) from exc
            return profile

    def save(
        self,
        host_key: str,
        *,
        cookies: Iterable[Cookie] | None = None,
        local_storage: dict[str, str] | None = None,
        session_storage: dict[str, str] | None = None,
    ) -> Profile:
        """Merge session state into the stored profile and persist it.

        Cookies replace the stored list; storage dicts are merged key by
        key with incoming values winning. The read, merge and write happen
        in one transaction.
        """
        with self._lock_for(host_key):
            try:
                with self._session_factory() as session:
                    row = self._select(session, host_key)
                    if row is None:
                        self._insert_default(session, host_key)
                        row = self._select(session, host_key)
                    if row is None:
                        raise ProfileNotFoundError(host_key)
                    profile = _row_to_profile(row)

                    if cookies is not None:
                        profile.cookies = list(cookies)
                    if local_storage:
                        profile.local_storage = {**profile.local_storage, **local_storage}
                    if session_storage:
                        profile.session_storage = {**profile.session_storage, **session_storage}
                    profile.last_used_at = max(self._clock(), profile.last_used_at)

                    session.execute(
                        sa.update(browser_profiles)
                        .where(browser_profiles.c.host_key == host_key)
                        .values(**_profile_to_values(profile))
                    )
                    session.commit()
            except SQLAlchemyError as exc:
                raise StorageError(host_key, str(exc)) from exc

        logger.debug(
            "Saved profile %s (cookies=%d, local=%d, session=%d)",
            host_key,
            len(profile.cookies),
            len(profile.local_storage),
            len(profile.session_storage),
        )
        return profile

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, host_key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(host_key)
            if lock is None:
                lock = self._locks[host_key] = threading.Lock()
            return lock

    def _read(self, host_key: str) -> Profile:
        try:
            with self._session_factory() as session:
                row = self._select(session, host_key)
        except SQLAlchemyError as exc:
            raise StorageError(host_key, str(exc)) from exc
        if row is None:
            raise ProfileNotFoundError(host_key)
        return _row_to_profile(row)

    def _create_default(self, host_key: str) -> None:
        try:
            with self._session_factory() as session:
                self._insert_default(session, host_key)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(host_key, str(exc)) from exc

    def _insert_default(self, session: Session, host_key: str) -> None:
        now = self._clock()
        profile = Profile(
            host_key=host_key,
            created_at=now,
            last_used_at=now,
            user_agent=self._fingerprints.generate().user_agent,
        )
        stmt = dialect_insert(session, browser_profiles).values(**_profile_to_values(profile))
        session.execute(stmt.on_conflict_do_nothing(index_elements=["host_key"]))

    @staticmethod
    def _select(session: Session, host_key: str) -> Any:
        return session.execute(
            sa.select(browser_profiles).where(browser_profiles.c.host_key == host_key)
        ).mappings().first()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_profile(row: Any) -> Profile:
    return Profile(
        host_key=row["host_key"],
        created_at=_as_utc(row["created_at"]),
        last_used_at=_as_utc(row["last_used_at"]),
        user_agent=row["user_agent"] or "",
        cookies=[Cookie.model_validate(c) for c in row["cookies"] or []],
        local_storage=dict(row["local_storage"] or {}),
        session_storage=dict(row["session_storage"] or {}),
    )


def _profile_to_values(profile: Profile) -> dict[str, Any]:
    return {
        "host_key": profile.host_key,
        "user_agent": profile.user_agent,
        "cookies": [c.to_playwright() for c in profile.cookies],
        "local_storage": profile.local_storage,
        "session_storage": profile.session_storage,
        "created_at": _as_utc(profile.created_at),
        "last_used_at": _as_utc(profile.last_used_at),
    }
