"""
Duet — Conversation Store

One thread per unordered pair of participants, stored as a single document
under the canonical thread key.  Messages are only ever appended; the thread
is rewritten as a whole on every append or read-state change.

Appends to the same thread are serialized with a per-thread ``asyncio.Lock``
so two read-modify-write cycles never interleave across an ``await``.
Timestamps are wall-clock milliseconds, bumped when needed so they strictly
increase within a thread.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Callable, Iterable

import structlog

from duet.exceptions import ValidationError
from duet.schemas.candidate import Candidate
from duet.schemas.message import ConversationPreview, Message
from duet.services.document_store import DocumentStore, legacy_thread_key, thread_storage_key
from duet.session import now_ms
from duet.utils.keys import split_thread_key, thread_key

logger = structlog.get_logger("duet.conversation_service")

_KIND = "thread"


class ConversationStore:
    """Process-wide store of conversation threads."""

    def __init__(self, store: DocumentStore, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def thread_key(user_a: str, user_b: str) -> str:
        return thread_key(user_a, user_b)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def _read_existing(self, key: str) -> list[Message] | None:
        """The thread under *key*, or ``None`` if it was never started.

        A thread saved before versioning is picked up from its legacy key.
        """
        return await self.store.read_models(
            thread_storage_key(key),
            _KIND,
            Message,
            legacy_keys=(legacy_thread_key(*split_thread_key(key)),),
        )

    async def _read(self, key: str) -> list[Message]:
        return await self._read_existing(key) or []

    async def _write(self, key: str, messages: list[Message]) -> None:
        await self.store.write(
            thread_storage_key(key), _KIND, [m.model_dump(mode="json") for m in messages]
        )

    async def load_thread(self, user_a: str, user_b: str) -> list[Message]:
        """Messages in insertion order; an empty list means no conversation yet."""
        return await self._read(self.thread_key(user_a, user_b))

    async def append_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        """Append a message and persist the whole thread.

        Raises ``ValidationError`` for empty or whitespace-only content, in
        which case nothing is written.
        """
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            raise ValidationError("Message content must not be empty")

        key = self.thread_key(sender_id, receiver_id)
        async with self._lock_for(key):
            messages = await self._read(key)
            last_timestamp = messages[-1].timestamp if messages else 0

            message = Message(
                id=uuid.uuid4().hex,
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=text,
                timestamp=max(self._clock(), last_timestamp + 1),
                read=False,
            )
            await self._write(key, [*messages, message])

        logger.info(
            "message_appended",
            thread_key=key,
            sender_id=sender_id,
            message_id=message.id,
            position=len(messages),
        )
        return message

    async def mark_read(self, user_id: str, partner_id: str) -> int:
        """Mark every message addressed to *user_id* as read.

        Returns the number of messages that changed; nothing is written when
        that number is zero.
        """
        key = self.thread_key(user_id, partner_id)
        async with self._lock_for(key):
            messages = await self._read(key)
            marked = 0
            updated: list[Message] = []
            for message in messages:
                if message.receiver_id == user_id and not message.read:
                    message = message.model_copy(update={"read": True})
                    marked += 1
                updated.append(message)

            if marked:
                await self._write(key, updated)

        if marked:
            logger.info("messages_marked_read", thread_key=key, user_id=user_id, marked=marked)
        return marked

    async def list_conversations(
        self,
        user_id: str,
        partners: Iterable[Candidate],
    ) -> list[ConversationPreview]:
        """Previews of existing threads with *partners*, most recent first."""
        previews: list[ConversationPreview] = []
        for partner in partners:
            if partner.id == user_id:
                continue
            key = self.thread_key(user_id, partner.id)
            messages = await self._read_existing(key)
            if messages is None:
                continue

            previews.append(ConversationPreview(
                partner=partner,
                thread_key=key,
                last_message=messages[-1] if messages else None,
                unread_count=sum(
                    1 for m in messages if m.sender_id == partner.id and not m.read
                ),
            ))

        previews.sort(
            key=lambda p: p.last_message.timestamp if p.last_message else 0,
            reverse=True,
        )
        return previews
