"""Unit tests for versioned documents and their migrations."""
import pytest

from duet.exceptions import StorageError
from duet.schemas.profile import Profile
from duet.services.document_store import (
    LEGACY_PROFILE_KEY,
    LEGACY_RATINGS_KEY,
    SCHEMA_VERSIONS,
    current_user_key,
    migrate,
    profile_key,
    ratings_key,
    thread_storage_key,
)
from duet.services.rating_ledger import RatingLedger
from duet.services.responder_service import ResponderSimulator


class TestEnvelope:

    @pytest.mark.asyncio
    async def test_write_wraps_data(self, documents, backend):
        await documents.write("k", "profile", {"name": "A"})
        assert await backend.get("k") == {
            "schema_version": SCHEMA_VERSIONS["profile"],
            "kind": "profile",
            "data": {"name": "A"},
        }

    @pytest.mark.asyncio
    async def test_missing_key_reads_none(self, documents):
        assert await documents.read("absent", "profile") is None

    @pytest.mark.asyncio
    async def test_kind_mismatch_rejected(self, documents):
        await documents.write("k", "profile", {})
        with pytest.raises(StorageError):
            await documents.read("k", "ratings")

    @pytest.mark.asyncio
    async def test_newer_version_rejected(self, documents, backend):
        await backend.set("k", {"schema_version": 99, "kind": "thread", "data": []})
        with pytest.raises(StorageError):
            await documents.read("k", "thread")


class TestMigrations:

    def test_legacy_ratings(self):
        legacy = [
            {"coupleId": "1-2", "rating": "yes", "timestamp": 10},
            {"coupleId": "4-3", "rating": "no", "timestamp": 11},
            {"coupleId": "5-6", "rating": 7, "timestamp": 12},
            {"coupleId": "2-1", "rating": "no", "timestamp": 13},
        ]
        assert migrate("ratings", 0, legacy) == [
            {"pair_id": "3-4", "verdict": "no", "timestamp": 11},
            {"pair_id": "1-2", "verdict": "no", "timestamp": 13},
        ]

    def test_legacy_profile(self):
        legacy = {
            "userId": "u1",
            "gender": "Woman",
            "preference": "Looking for a Man",
            "photo": "p.jpg",
            "summary": "hi",
            "name": "Ana",
        }
        upgraded = migrate("profile", 0, legacy)
        assert upgraded == {
            "name": "Ana",
            "gender": "Woman",
            "preference": "Man",
            "photo_ref": "p.jpg",
            "summary": "hi",
        }
        assert Profile.model_validate(upgraded).preference.value == "Man"

    def test_legacy_profile_blank_preference(self):
        assert migrate("profile", 0, {"preference": "", "gender": ""})["preference"] is None

    def test_legacy_thread(self):
        legacy = [{
            "id": "1700000000000",
            "senderId": "demo-user",
            "receiverId": "1",
            "content": "hi",
            "timestamp": 1700000000000,
            "read": False,
        }]
        assert migrate("thread", 0, legacy) == [{
            "id": "1700000000000",
            "sender_id": "demo-user",
            "receiver_id": "1",
            "content": "hi",
            "timestamp": 1700000000000,
            "read": False,
        }]

    def test_broken_legacy_document(self):
        with pytest.raises(StorageError):
            migrate("thread", 0, [{"content": "no sender"}])

    @pytest.mark.asyncio
    async def test_read_upgrades_and_writes_back(self, documents, backend, session):
        await backend.set(ratings_key("demo-user"), [{"coupleId": "1-2", "rating": "yes", "timestamp": 1}])

        ratings = await RatingLedger(session).all_ratings()
        assert [r.pair_id for r in ratings] == ["1-2"]

        raw = await backend.get(ratings_key("demo-user"))
        assert raw["schema_version"] == SCHEMA_VERSIONS["ratings"]
        assert raw["data"][0]["verdict"] == "yes"

    @pytest.mark.asyncio
    async def test_legacy_current_user(self, documents, backend):
        await backend.set(current_user_key(), {
            "id": "demo-user", "email": "demo@duet.com", "password": "demo123",
            "name": "Demo User", "createdAt": 5,
        })
        data = await documents.read(current_user_key(), "current_user")
        assert data == {"id": "demo-user", "name": "Demo User", "email": "demo@duet.com", "created_at": 5}


class TestLegacyKeys:

    @pytest.mark.asyncio
    async def test_adopts_global_documents(self, documents, backend):
        await backend.set(LEGACY_PROFILE_KEY, {"name": "Ana", "preference": "Looking for a Woman"})
        await backend.set(LEGACY_RATINGS_KEY, [{"coupleId": "1-2", "rating": "yes", "timestamp": 1}])

        adopted = await documents.adopt_legacy_keys("u1")

        assert sorted(adopted) == [LEGACY_PROFILE_KEY, LEGACY_RATINGS_KEY]
        assert await backend.get(LEGACY_PROFILE_KEY) is None
        assert await backend.get(LEGACY_RATINGS_KEY) is None
        profile = await documents.read(profile_key("u1"), "profile")
        assert profile["preference"] == "Woman"

    @pytest.mark.asyncio
    async def test_existing_user_document_wins(self, documents, backend):
        await documents.write(profile_key("u1"), "profile", {"name": "Current"})
        await backend.set(LEGACY_PROFILE_KEY, {"name": "Old"})

        assert await documents.adopt_legacy_keys("u1") == []
        assert (await documents.read(profile_key("u1"), "profile"))["name"] == "Current"
        assert await backend.get(LEGACY_PROFILE_KEY) == {"name": "Old"}

    @pytest.mark.asyncio
    async def test_nothing_to_adopt(self, documents):
        assert await documents.adopt_legacy_keys("u1") == []


def test_thread_storage_key_prefix():
    assert thread_storage_key("1|demo-user") == "duet:chat:1|demo-user"


class TestInvalidDocuments:

    @pytest.mark.asyncio
    async def test_thread_with_incomplete_messages(self, conversations, backend):
        key = thread_storage_key("1|demo-user")
        await backend.set(key, {"schema_version": 1, "kind": "thread", "data": [{"id": "x"}]})

        with pytest.raises(StorageError) as exc_info:
            await conversations.load_thread("demo-user", "1")
        assert exc_info.value.key == key

    @pytest.mark.asyncio
    async def test_ratings_document_that_is_not_a_list(self, backend, session):
        await backend.set(ratings_key("demo-user"), {"schema_version": 1, "kind": "ratings", "data": {"a": 1}})

        with pytest.raises(StorageError):
            await RatingLedger(session).all_ratings()

    @pytest.mark.asyncio
    async def test_profile_with_unknown_gender(self, documents):
        await documents.write(profile_key("u1"), "profile", {"name": "A", "gender": "Robot"})

        with pytest.raises(StorageError):
            await documents.read_model(profile_key("u1"), "profile", Profile)

    @pytest.mark.asyncio
    async def test_legacy_entry_that_is_not_an_object(self, documents, backend):
        await backend.set(ratings_key("u1"), ["1-2"])

        with pytest.raises(StorageError) as exc_info:
            await documents.read(ratings_key("u1"), "ratings")
        assert exc_info.value.key == ratings_key("u1")

    @pytest.mark.asyncio
    async def test_responder_survives_corrupt_thread(self, conversations, backend, fake_sleep):
        responder = ResponderSimulator(
            conversations, sleep=fake_sleep, delay_min_ms=1, delay_max_ms=2, cancel_on_close=False
        )
        await conversations.append_message("demo-user", "1", "hi")
        await responder.observe("demo-user", "1")
        await backend.set(
            thread_storage_key("1|demo-user"),
            {"schema_version": 1, "kind": "thread", "data": [{"id": "x"}]},
        )

        await responder.drain()
        assert responder.status("1|demo-user") == "active"
