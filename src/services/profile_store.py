"""SQLite-backed store for caller emergency profiles.

Profiles live in a single ``users`` table.  Each operation opens its own
short-lived connection inside a worker thread, so the store is safe to
share across requests without a connection pool.  Any SQLite failure is
surfaced as :class:`ProfileStoreUnavailable`: a call must never go out
with an unknown or empty identity because the database was unreachable.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any

import structlog

from src.data.seed import SEED_PROFILES
from src.models.profile import (
    DEFAULT_AGE,
    DEFAULT_CONTACT,
    DEFAULT_LOCATION,
    DEFAULT_SEX,
    NO_MEDICAL_INFO,
    EmergencyProfile,
)

logger = structlog.get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    age TEXT,
    sex TEXT,
    emergencyContact TEXT,
    location TEXT,
    medicalInfo TEXT
)
"""

_UPSERT = """
INSERT INTO users (user_id, name, age, sex, emergencyContact, location, medicalInfo)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(user_id) DO UPDATE SET
    name = excluded.name,
    age = excluded.age,
    sex = excluded.sex,
    emergencyContact = excluded.emergencyContact,
    location = excluded.location,
    medicalInfo = excluded.medicalInfo
"""


class ProfileStoreUnavailable(RuntimeError):
    """The profile database could not be read or written."""


class ProfileNotFound(LookupError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"No profile for user {user_id!r}")
        self.user_id = user_id


def _row_params(profile: EmergencyProfile) -> tuple[str, ...]:
    return (
        profile.user_id,
        profile.name,
        profile.age,
        profile.sex,
        profile.emergency_contact,
        profile.location,
        profile.medical_info,
    )


def _profile_from_row(row: sqlite3.Row) -> EmergencyProfile:
    # Columns written by older clients may be NULL; fill spoken defaults.
    return EmergencyProfile(
        user_id=row["user_id"],
        name=row["name"],
        age=row["age"] or DEFAULT_AGE,
        sex=row["sex"] or DEFAULT_SEX,
        emergency_contact=row["emergencyContact"] or DEFAULT_CONTACT,
        location=row["location"] or DEFAULT_LOCATION,
        medical_info=row["medicalInfo"] or NO_MEDICAL_INFO,
    )


class ProfileStore:
    """Async facade over the ``users`` table.

    Parameters
    ----------
    db_path:
        SQLite database file.  ``":memory:"`` is not supported because
        every operation opens a fresh connection.
    seed:
        Insert the sample profiles when the table is empty.
    """

    __slots__ = ("_db_path", "_seed")

    def __init__(self, db_path: str | Path, *, seed: bool = True) -> None:
        self._db_path = str(db_path)
        self._seed = seed

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, operation: str, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.error("profile_store.failed", operation=operation, error=str(exc))
            raise ProfileStoreUnavailable(f"Profile store {operation} failed") from exc

    # -- Sync bodies (worker thread) -------------------------------------------

    def _initialize_sync(self) -> int:
        with closing(self._connect()) as conn, conn:
            conn.execute(_SCHEMA)
            (count,) = conn.execute("SELECT COUNT(*) FROM users").fetchone()
            if count == 0 and self._seed:
                conn.executemany(_UPSERT, [_row_params(p) for p in SEED_PROFILES])
                return len(SEED_PROFILES)
        return 0

    def _get_sync(self, user_id: str) -> sqlite3.Row | None:
        with closing(self._connect()) as conn:
            return conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()

    def _upsert_sync(self, params: tuple[str, ...]) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(_UPSERT, params)

    def _ping_sync(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute("SELECT 1 FROM users LIMIT 1").fetchall()

    # -- Public API ------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the table if needed and seed it when empty."""
        seeded = await self._run("initialize", self._initialize_sync)
        logger.info("profile_store.initialised", db_path=self._db_path, seeded=seeded)

    async def get(self, user_id: str) -> EmergencyProfile:
        """Load a profile.

        Raises
        ------
        ProfileNotFound
            No row exists for *user_id*.
        ProfileStoreUnavailable
            The database could not be queried.
        """
        row = await self._run("get", self._get_sync, user_id)
        if row is None:
            raise ProfileNotFound(user_id)
        return _profile_from_row(row)

    async def upsert(self, profile: EmergencyProfile) -> EmergencyProfile:
        await self._run("upsert", self._upsert_sync, _row_params(profile))
        logger.info("profile_store.upserted", user_id=profile.user_id)
        return profile

    async def ping(self) -> bool:
        try:
            await self._run("ping", self._ping_sync)
        except ProfileStoreUnavailable:
            return False
        return True
