"""
Duet — Responder Simulator

Makes matched candidates "answer".  Each thread is a small state machine::

    IDLE ──(latest message is the user's, nothing pending)──▶ PENDING
    PENDING ──(delay elapses, reply appended)──────────────▶ IDLE

While a thread is PENDING its status is ``"typing"``.  The delay is uniform
in ``[REPLY_DELAY_MIN_MS, REPLY_DELAY_MAX_MS)`` and the reply is picked
uniformly from ``CANNED_RESPONSES``, both from the injected random source.

The pending reply is an ``asyncio.Task`` that does not depend on any view
being open.  Closing a view only cancels it when ``CANCEL_REPLY_ON_CLOSE``
is set; by default every user message that leaves a thread idle is followed
by exactly one reply.  Messages sent while a reply is pending are answered
by one follow-up reply, scheduled when the pending reply has been appended.
"""

from __future__ import annotations

import asyncio
import random
from enum import Enum
from typing import Awaitable, Callable, Sequence

import structlog

from duet.config import Settings, get_settings
from duet.exceptions import StorageError
from duet.services.conversation_service import ConversationStore

logger = structlog.get_logger("duet.responder_service")

CANNED_RESPONSES: tuple[str, ...] = (
    "That's really interesting! Tell me more 😊",
    "I love that! What else do you enjoy doing?",
    "Sounds amazing! I'd love to hear more about it",
    "That's so cool! I've always wanted to try that",
    "Haha, you're funny! 😄",
    "I completely agree with you on that!",
    "That sounds like so much fun!",
    "You have great taste! 👍",
    "I'd love to learn more about that",
    "That's one of my favorite things too!",
)


class ResponderState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


class ResponderSimulator:
    """Schedules one delayed counterparty reply per idle thread."""

    def __init__(
        self,
        conversations: ConversationStore,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        responses: Sequence[str] = CANNED_RESPONSES,
        delay_min_ms: int | None = None,
        delay_max_ms: int | None = None,
        cancel_on_close: bool | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.conversations = conversations
        self.rng = rng or random.Random()
        self._sleep = sleep
        self.responses = tuple(responses)
        self.delay_min_ms = settings.REPLY_DELAY_MIN_MS if delay_min_ms is None else delay_min_ms
        self.delay_max_ms = settings.REPLY_DELAY_MAX_MS if delay_max_ms is None else delay_max_ms
        self.cancel_on_close = (
            settings.CANCEL_REPLY_ON_CLOSE if cancel_on_close is None else cancel_on_close
        )
        self._pending: dict[str, asyncio.Task] = {}
        # thread key -> id of the user message the pending reply answers
        self._triggers: dict[str, str] = {}
        # thread key -> latest user message sent while a reply was pending
        self._follow_ups: dict[str, str] = {}

    # ── State ─────────────────────────────────────────────────────────────

    def state(self, key: str) -> ResponderState:
        return ResponderState.PENDING if key in self._pending else ResponderState.IDLE

    def status(self, key: str) -> str:
        """UI-facing status of the counterparty in thread *key*."""
        return "typing" if self.state(key) is ResponderState.PENDING else "active"

    def pending(self, key: str) -> asyncio.Task | None:
        return self._pending.get(key)

    # ── Sampling ──────────────────────────────────────────────────────────

    def sample_delay_ms(self) -> float:
        return self.delay_min_ms + self.rng.random() * (self.delay_max_ms - self.delay_min_ms)

    def choose_response(self) -> str:
        return self.rng.choice(self.responses)

    # ── Transitions ───────────────────────────────────────────────────────

    async def observe(self, user_id: str, partner_id: str) -> asyncio.Task | None:
        """Schedule a reply from *partner_id* if the thread calls for one.

        Returns the new pending task, or ``None`` when the thread stays as it
        is (a reply is already pending, or the latest message is not the
        user's).  A user message that arrives while a reply is pending is
        answered by a follow-up reply scheduled once the pending one lands.
        """
        key = self.conversations.thread_key(user_id, partner_id)
        messages = await self.conversations.load_thread(user_id, partner_id)
        if not messages or messages[-1].sender_id != user_id:
            return None

        latest = messages[-1].id
        if key in self._pending:
            if self._triggers.get(key) != latest:
                self._follow_ups[key] = latest
            return None
        return self._schedule(key, user_id, partner_id, latest)

    def _schedule(self, key: str, user_id: str, partner_id: str, trigger_id: str) -> asyncio.Task:
        delay_ms = self.sample_delay_ms()
        task = asyncio.create_task(self._respond(key, user_id, partner_id, delay_ms))
        self._pending[key] = task
        self._triggers[key] = trigger_id
        logger.info("responder_pending", thread_key=key, delay_ms=round(delay_ms))
        return task

    async def _respond(self, key: str, user_id: str, partner_id: str, delay_ms: float) -> None:
        follow_up: str | None = None
        try:
            await self._sleep(delay_ms / 1000.0)
            await self.conversations.append_message(partner_id, user_id, self.choose_response())
            logger.info("responder_replied", thread_key=key)
            follow_up = self._follow_ups.get(key)
        except StorageError as exc:
            logger.error("responder_reply_failed", thread_key=key, error=str(exc))
        finally:
            if self._pending.get(key) is asyncio.current_task():
                self._clear(key)
            else:
                follow_up = None

        if follow_up is not None:
            logger.info("responder_follow_up", thread_key=key)
            self._schedule(key, user_id, partner_id, follow_up)

    def _clear(self, key: str) -> None:
        self._pending.pop(key, None)
        self._triggers.pop(key, None)
        self._follow_ups.pop(key, None)

    def close_view(self, key: str) -> bool:
        """Called when the conversation view closes.  Returns True if a
        pending reply was cancelled."""
        task = self._pending.get(key)
        if task is None or not self.cancel_on_close:
            return False
        task.cancel()
        self._clear(key)
        logger.info("responder_cancelled", thread_key=key)
        return True

    async def drain(self) -> None:
        """Wait until every pending reply has been delivered or cancelled."""
        while self._pending:
            await asyncio.gather(*self._pending.values(), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._pending.values())
        for task in tasks:
            task.cancel()
        self._pending.clear()
        self._triggers.clear()
        self._follow_ups.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("responder_shutdown", cancelled=len(tasks))
