"""Tests for the SQLite caller profile store."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from src.models.profile import DEFAULT_AGE, DEFAULT_CONTACT, NO_MEDICAL_INFO, EmergencyProfile
from src.services.profile_store import ProfileNotFound, ProfileStore, ProfileStoreUnavailable


@pytest.fixture
async def store(tmp_path: Path) -> ProfileStore:
    s = ProfileStore(tmp_path / "profiles.db")
    await s.initialize()
    return s


class TestProfileStore:
    async def test_seeded_profile(self, store: ProfileStore) -> None:
        profile = await store.get("user1")
        assert profile.name == "John Peter"
        assert profile.emergency_contact == "361 555 1110"
        assert profile.medical_info == "Specially Abled"

    async def test_missing_user_raises(self, store: ProfileStore) -> None:
        with pytest.raises(ProfileNotFound) as excinfo:
            await store.get("nobody")
        assert excinfo.value.user_id == "nobody"

    async def test_upsert_creates_and_replaces(self, store: ProfileStore) -> None:
        await store.upsert(EmergencyProfile(user_id="u9", name="Maria Lopez", age="61"))
        assert (await store.get("u9")).age == "61"

        await store.upsert(EmergencyProfile(user_id="u9", name="Maria Lopez", age="62"))
        updated = await store.get("u9")
        assert updated.age == "62"
        assert updated.medical_info == NO_MEDICAL_INFO

    async def test_initialize_is_idempotent(self, store: ProfileStore) -> None:
        await store.upsert(EmergencyProfile(user_id="user1", name="Renamed"))
        await store.initialize()
        assert (await store.get("user1")).name == "Renamed", "re-initialising must not reseed"

    async def test_no_seed(self, tmp_path: Path) -> None:
        store = ProfileStore(tmp_path / "empty.db", seed=False)
        await store.initialize()
        with pytest.raises(ProfileNotFound):
            await store.get("user1")

    async def test_null_columns_get_spoken_defaults(self, tmp_path: Path) -> None:
        db = tmp_path / "legacy.db"
        store = ProfileStore(db, seed=False)
        await store.initialize()
        conn = sqlite3.connect(db)
        with conn:
            conn.execute("INSERT INTO users (user_id, name) VALUES ('old', 'Old Record')")
        conn.close()

        profile = await store.get("old")
        assert profile.age == DEFAULT_AGE
        assert profile.emergency_contact == DEFAULT_CONTACT
        assert profile.has_medical_info is False

    async def test_ping(self, store: ProfileStore) -> None:
        assert await store.ping() is True


class TestProfileStoreUnavailable:
    async def test_unopenable_database(self, tmp_path: Path) -> None:
        # A directory cannot be opened as a SQLite file.
        store = ProfileStore(tmp_path)
        with pytest.raises(ProfileStoreUnavailable):
            await store.initialize()
        with pytest.raises(ProfileStoreUnavailable):
            await store.get("user1")
        assert await store.ping() is False

    async def test_uninitialised_table(self, tmp_path: Path) -> None:
        store = ProfileStore(tmp_path / "fresh.db")
        with pytest.raises(ProfileStoreUnavailable):
            await store.get("user1")
