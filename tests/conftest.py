"""Shared pytest fixtures for Duet tests."""
import random

import pytest

from duet.exceptions import StorageError
from duet.schemas.candidate import Candidate, Gender
from duet.schemas.profile import Profile
from duet.services.conversation_service import ConversationStore
from duet.services.document_store import DocumentStore
from duet.session import SessionContext
from duet.utils.storage import MemoryStore


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakeSleep:
    """Records requested delays and returns immediately."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FlakyStore(MemoryStore):
    """Memory store whose writes can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    async def set(self, key, value):
        if self.fail_writes:
            raise StorageError("quota exceeded", key=key)
        await super().set(key, value)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def backend():
    return FlakyStore()


@pytest.fixture
def documents(backend):
    return DocumentStore(backend)


@pytest.fixture
def session(documents, clock):
    return SessionContext(user_id="demo-user", store=documents, rng=random.Random(7), clock=clock)


@pytest.fixture
def conversations(documents, clock):
    return ConversationStore(documents, clock=clock)


@pytest.fixture
def profile_seeking_men():
    return Profile(name="Demo", gender=Gender.WOMAN, preference=Gender.MAN, summary="Hi there")


@pytest.fixture
def profile_seeking_women():
    return Profile(name="Demo", gender=Gender.MAN, preference=Gender.WOMAN)


def make_candidate(cid, gender, name=None):
    return Candidate(
        id=cid,
        name=name or f"Candidate {cid}",
        age=30,
        photo_ref=f"https://example.com/{cid}.jpg",
        bio="",
        gender=gender,
    )


@pytest.fixture
def mixed_pool():
    """Alternating Man / Woman, ids "1" to "6"."""
    return [
        make_candidate(str(i), Gender.MAN if i % 2 else Gender.WOMAN)
        for i in range(1, 7)
    ]


@pytest.fixture
def candidate_factory():
    return make_candidate
