"""Tests for versioned session persistence and write serialization."""

import pytest
from bson import ObjectId

from app.services.session_store import SessionStore
from app.utils.exceptions import (
    InvalidSessionStateError,
    SessionConflictError,
    SessionNotFoundError,
)


class InterferingCollection:
    """Wraps a collection and lets another writer win the next N replaces."""

    def __init__(self, collection, interferences: int):
        self.collection = collection
        self.interferences = interferences

    async def find_one(self, *args, **kwargs):
        return await self.collection.find_one(*args, **kwargs)

    async def replace_one(self, filter, replacement):
        if self.interferences:
            self.interferences -= 1
            await self.collection.update_one({"_id": filter["_id"]}, {"$inc": {"version": 1}})
        return await self.collection.replace_one(filter, replacement)

    async def delete_one(self, filter):
        if self.interferences:
            self.interferences -= 1
            await self.collection.update_one({"_id": filter["_id"]}, {"$inc": {"version": 1}})
        return await self.collection.delete_one(filter)


@pytest.fixture
async def stored(store):
    return await store.insert({"title": "Office hours", "status": "scheduled", "participants": []})


class TestInsertAndLoad:
    """Tests for basic reads and writes."""

    async def test_insert_stamps_version_and_timestamps(self, store, stored):
        loaded = await store.load(stored["_id"])

        assert loaded["version"] == 1
        assert loaded["created_at"] is not None
        assert loaded["updated_at"] is not None

    async def test_malformed_id_is_not_found(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.load_or_raise("not-an-object-id")

    async def test_missing_session_is_not_found(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.load_or_raise(str(ObjectId()))


class TestMutate:
    """Tests for optimistic read-modify-write."""

    async def test_mutation_bumps_version(self, store, stored):
        def rename(session):
            session["title"] = "Renamed"
            return session

        updated = await store.mutate(str(stored["_id"]), rename)

        assert updated["version"] == 2
        assert (await store.load(stored["_id"]))["title"] == "Renamed"

    async def test_none_result_writes_nothing(self, store, stored):
        result = await store.mutate(str(stored["_id"]), lambda session: None)

        assert result["version"] == 1

    async def test_domain_error_leaves_state_untouched(self, store, stored):
        def refuse(session):
            session["title"] = "Half-applied"
            raise InvalidSessionStateError("nope")

        with pytest.raises(InvalidSessionStateError):
            await store.mutate(str(stored["_id"]), refuse)

        assert (await store.load(stored["_id"]))["title"] == "Office hours"

    async def test_conflict_is_retried_against_fresh_state(self, db, stored):
        store = SessionStore(collection=InterferingCollection(db.video_sessions, 1), retry_delay_ms=0)
        calls = []

        def append_participant(session):
            calls.append(session["version"])
            session["participants"].append({"user_id": "u1", "status": "joined"})
            return session

        updated = await store.mutate(str(stored["_id"]), append_participant)

        # First attempt saw version 1, the interfering write moved it to 2
        assert calls == [1, 2]
        assert updated["version"] == 3
        assert len((await db.video_sessions.find_one({"_id": stored["_id"]}))["participants"]) == 1

    async def test_exhausted_budget_raises_conflict(self, db, stored):
        store = SessionStore(
            collection=InterferingCollection(db.video_sessions, 100),
            max_retries=3,
            retry_delay_ms=0
        )
        attempts = []

        def touch(session):
            attempts.append(1)
            return session

        with pytest.raises(SessionConflictError) as exc_info:
            await store.mutate(str(stored["_id"]), touch)

        assert len(attempts) == 3
        assert exc_info.value.status_code == 409
        assert exc_info.value.retryable is True

    async def test_unversioned_documents_can_be_mutated(self, db, store):
        legacy_id = ObjectId()
        await db.video_sessions.insert_one({"_id": legacy_id, "title": "Legacy"})

        def rename(session):
            session["title"] = "Migrated"
            return session

        updated = await store.mutate(str(legacy_id), rename)

        assert updated["version"] == 1
        assert (await store.load(legacy_id))["title"] == "Migrated"


class TestRemove:
    """Tests for guarded deletes."""

    async def test_guard_refusal_keeps_document(self, store, stored):
        def guard(session):
            raise InvalidSessionStateError("Cannot delete live sessions")

        with pytest.raises(InvalidSessionStateError):
            await store.remove(str(stored["_id"]), guard)

        assert await store.load(stored["_id"]) is not None

    async def test_remove_retries_after_concurrent_write(self, db, stored):
        store = SessionStore(collection=InterferingCollection(db.video_sessions, 1), retry_delay_ms=0)

        await store.remove(str(stored["_id"]), lambda session: None)

        assert await db.video_sessions.find_one({"_id": stored["_id"]}) is None


class TestInsertMany:
    """Tests for unordered batch inserts."""

    async def test_duplicate_key_is_reported_per_document(self, store, stored):
        duplicate = {"_id": stored["_id"], "scheduled_date": "2025-01-08"}
        fresh = {"scheduled_date": "2025-01-15"}

        inserted, failed = await store.insert_many([duplicate, fresh])

        assert [doc["scheduled_date"] for doc in inserted] == ["2025-01-15"]
        assert len(failed) == 1
        assert failed[0][0]["scheduled_date"] == "2025-01-08"
