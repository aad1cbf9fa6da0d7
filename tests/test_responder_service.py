"""Unit tests for ResponderSimulator — the Idle / Pending state machine."""
import asyncio
import random

import pytest

from duet.services.responder_service import (
    CANNED_RESPONSES,
    ResponderSimulator,
    ResponderState,
)

USER = "demo-user"
PARTNER = "1"


def _responder(conversations, sleep, **kwargs):
    kwargs.setdefault("delay_min_ms", 2000)
    kwargs.setdefault("delay_max_ms", 4000)
    kwargs.setdefault("cancel_on_close", False)
    return ResponderSimulator(conversations, rng=random.Random(11), sleep=sleep, **kwargs)


class Gate:
    """Sleep replacement that blocks until released."""

    def __init__(self):
        self.event = asyncio.Event()
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await self.event.wait()


class TestTrigger:

    @pytest.mark.asyncio
    async def test_reply_follows_user_message(self, conversations, fake_sleep):
        responder = _responder(conversations, fake_sleep)
        await conversations.append_message(USER, PARTNER, "hi")

        task = await responder.observe(USER, PARTNER)
        assert task is not None
        await responder.drain()

        messages = await conversations.load_thread(USER, PARTNER)
        assert len(messages) == 2
        reply = messages[1]
        assert reply.sender_id == PARTNER
        assert reply.receiver_id == USER
        assert reply.content in CANNED_RESPONSES
        assert reply.timestamp > messages[0].timestamp

    @pytest.mark.asyncio
    async def test_delay_within_window(self, conversations, fake_sleep):
        responder = _responder(conversations, fake_sleep)
        for _ in range(20):
            await conversations.append_message(USER, PARTNER, "ping")
            await responder.observe(USER, PARTNER)
            await responder.drain()
        assert len(fake_sleep.calls) == 20
        assert all(2.0 <= s < 4.0 for s in fake_sleep.calls)

    @pytest.mark.asyncio
    async def test_empty_thread_stays_idle(self, conversations, fake_sleep):
        responder = _responder(conversations, fake_sleep)
        assert await responder.observe(USER, PARTNER) is None
        assert responder.state(conversations.thread_key(USER, PARTNER)) is ResponderState.IDLE

    @pytest.mark.asyncio
    async def test_partner_last_stays_idle(self, conversations, fake_sleep):
        responder = _responder(conversations, fake_sleep)
        await conversations.append_message(PARTNER, USER, "hello first")
        assert await responder.observe(USER, PARTNER) is None


class TestPendingState:

    @pytest.mark.asyncio
    async def test_typing_while_pending(self, conversations):
        gate = Gate()
        responder = _responder(conversations, gate)
        key = conversations.thread_key(USER, PARTNER)

        await conversations.append_message(USER, PARTNER, "hi")
        await responder.observe(USER, PARTNER)
        await asyncio.sleep(0)
        assert responder.state(key) is ResponderState.PENDING
        assert responder.status(key) == "typing"

        gate.event.set()
        await responder.drain()
        assert responder.state(key) is ResponderState.IDLE
        assert responder.status(key) == "active"

    @pytest.mark.asyncio
    async def test_message_while_pending_gets_follow_up(self, conversations):
        gate = Gate()
        responder = _responder(conversations, gate)

        await conversations.append_message(USER, PARTNER, "hi")
        first = await responder.observe(USER, PARTNER)
        await conversations.append_message(USER, PARTNER, "are you there?")
        second = await responder.observe(USER, PARTNER)

        assert first is not None
        assert second is None
        gate.event.set()
        await responder.drain()

        messages = await conversations.load_thread(USER, PARTNER)
        assert [m.sender_id for m in messages] == [USER, USER, PARTNER, PARTNER]
        assert len(gate.calls) == 2

    @pytest.mark.asyncio
    async def test_reopening_does_not_add_follow_up(self, conversations):
        gate = Gate()
        responder = _responder(conversations, gate)

        await conversations.append_message(USER, PARTNER, "hi")
        await responder.observe(USER, PARTNER)
        assert await responder.observe(USER, PARTNER) is None

        gate.event.set()
        await responder.drain()
        messages = await conversations.load_thread(USER, PARTNER)
        assert [m.sender_id for m in messages] == [USER, PARTNER]

    @pytest.mark.asyncio
    async def test_threads_independent(self, conversations, fake_sleep):
        responder = _responder(conversations, fake_sleep)
        for partner in ("1", "3"):
            await conversations.append_message(USER, partner, "hi")
            assert await responder.observe(USER, partner) is not None
        await responder.drain()
        for partner in ("1", "3"):
            assert len(await conversations.load_thread(USER, partner)) == 2


class TestViewClose:

    @pytest.mark.asyncio
    async def test_reply_delivered_after_close_by_default(self, conversations):
        gate = Gate()
        responder = _responder(conversations, gate)
        key = conversations.thread_key(USER, PARTNER)

        await conversations.append_message(USER, PARTNER, "hi")
        await responder.observe(USER, PARTNER)
        assert responder.close_view(key) is False

        gate.event.set()
        await responder.drain()
        assert len(await conversations.load_thread(USER, PARTNER)) == 2

    @pytest.mark.asyncio
    async def test_close_cancels_when_configured(self, conversations):
        gate = Gate()
        responder = _responder(conversations, gate, cancel_on_close=True)
        key = conversations.thread_key(USER, PARTNER)

        await conversations.append_message(USER, PARTNER, "hi")
        await responder.observe(USER, PARTNER)
        assert responder.close_view(key) is True
        assert responder.state(key) is ResponderState.IDLE

        gate.event.set()
        await responder.drain()
        assert len(await conversations.load_thread(USER, PARTNER)) == 1

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self, conversations):
        gate = Gate()
        responder = _responder(conversations, gate)
        await conversations.append_message(USER, PARTNER, "hi")
        task = await responder.observe(USER, PARTNER)

        await responder.shutdown()
        assert task.cancelled()
        assert responder.pending(conversations.thread_key(USER, PARTNER)) is None


class TestFailure:

    @pytest.mark.asyncio
    async def test_storage_failure_returns_to_idle(self, conversations, backend, fake_sleep):
        responder = _responder(conversations, fake_sleep)
        await conversations.append_message(USER, PARTNER, "hi")
        backend.fail_writes = True

        await responder.observe(USER, PARTNER)
        await responder.drain()

        backend.fail_writes = False
        key = conversations.thread_key(USER, PARTNER)
        assert responder.state(key) is ResponderState.IDLE
        assert len(await conversations.load_thread(USER, PARTNER)) == 1


class TestSampling:

    def test_reply_choice_from_pool(self, conversations, fake_sleep):
        responder = _responder(conversations, fake_sleep, responses=("a", "b"))
        picks = {responder.choose_response() for _ in range(50)}
        assert picks == {"a", "b"}
