"""
Duet — Core facade.

The operations the presentation layer calls, each bound to an explicit
``SessionContext``.  One ``DuetService`` lives for the whole process because
it owns the per-thread locks and the responder's pending replies.
"""

from __future__ import annotations

from typing import Sequence

import structlog

from duet.config import Settings
from duet.exceptions import ValidationError
from duet.schemas.candidate import Candidate, Couple
from duet.schemas.match import Match
from duet.schemas.message import ConversationPreview, Message
from duet.schemas.profile import Profile
from duet.schemas.rating import Rating, Verdict
from duet.services.candidate_pool import CANDIDATE_POOL, generate_couples
from duet.services.conversation_service import ConversationStore
from duet.services.document_store import DocumentStore
from duet.services.matching_service import MatchingService
from duet.services.profile_service import ProfileService
from duet.services.rating_ledger import RatingLedger
from duet.services.responder_service import ResponderSimulator
from duet.session import SessionContext
from duet.utils.keys import split_thread_key

logger = structlog.get_logger("duet.duet_service")


class DuetService:

    def __init__(
        self,
        store: DocumentStore,
        conversations: ConversationStore | None = None,
        responder: ResponderSimulator | None = None,
        matching: MatchingService | None = None,
        pool: Sequence[Candidate] = CANDIDATE_POOL,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.pool = tuple(pool)
        self.profiles = ProfileService(store, partner_ids=[c.id for c in self.pool])
        self.conversations = conversations or ConversationStore(store)
        self.responder = responder or ResponderSimulator(self.conversations, settings=settings)
        self.matching = matching or MatchingService(settings)

    # ══════════════════════════════════════════════════════════════════════
    # Ratings & matches
    # ══════════════════════════════════════════════════════════════════════

    def couples(self, session: SessionContext, shuffle: bool = True) -> list[Couple]:
        return generate_couples(self.pool, session.rng if shuffle else None)

    async def submit_rating(self, session: SessionContext, pair_id: str, verdict: Verdict | str) -> Rating:
        return await RatingLedger(session).record_rating(pair_id, verdict)

    async def rate_couple(
        self, session: SessionContext, first_id: str, second_id: str, verdict: Verdict | str
    ) -> Rating:
        return await RatingLedger(session).rate_pair(first_id, second_id, verdict)

    async def ratings(self, session: SessionContext) -> list[Rating]:
        return await RatingLedger(session).all_ratings()

    def compute_matches(
        self,
        session: SessionContext,
        profile: Profile | None,
        ledger: Sequence[Rating],
        pool: Sequence[Candidate] | None = None,
    ) -> list[Match]:
        return self.matching.rank(profile, ledger, self.pool if pool is None else pool, session.rng)

    async def my_matches(self, session: SessionContext) -> list[Match]:
        """Rank matches from the session user's saved profile and ledger."""
        profile = await self.profiles.get_profile(session.user_id)
        ledger = await RatingLedger(session).all_ratings()
        return self.compute_matches(session, profile, ledger)

    # ══════════════════════════════════════════════════════════════════════
    # Conversations
    # ══════════════════════════════════════════════════════════════════════

    def conversation_key(self, session: SessionContext, partner_id: str) -> str:
        return self.conversations.thread_key(session.user_id, partner_id)

    def _partner_in(self, session: SessionContext, conversation_key: str) -> str:
        first, second = split_thread_key(conversation_key)
        if session.user_id == first:
            return second
        if session.user_id == second:
            return first
        raise ValidationError(
            f"User {session.user_id!r} is not a participant of {conversation_key!r}"
        )

    async def send_message(
        self,
        session: SessionContext,
        conversation_key: str,
        sender_id: str,
        content: str,
    ) -> Message:
        """Append the session user's message and let the partner respond."""
        if sender_id != session.user_id:
            raise ValidationError("Messages can only be sent as the session user")
        partner_id = self._partner_in(session, conversation_key)

        message = await self.conversations.append_message(sender_id, partner_id, content)
        await self.responder.observe(session.user_id, partner_id)
        return message

    async def load_messages(self, session: SessionContext, conversation_key: str) -> list[Message]:
        partner_id = self._partner_in(session, conversation_key)
        return await self.conversations.load_thread(session.user_id, partner_id)

    async def open_conversation(self, session: SessionContext, partner_id: str) -> list[Message]:
        """Load a thread for display.

        A thread left waiting on a reply (for instance after a restart) gets
        its reply scheduled again.
        """
        messages = await self.conversations.load_thread(session.user_id, partner_id)
        await self.responder.observe(session.user_id, partner_id)
        return messages

    def close_conversation(self, session: SessionContext, partner_id: str) -> bool:
        return self.responder.close_view(self.conversation_key(session, partner_id))

    def typing_status(self, session: SessionContext, partner_id: str) -> str:
        return self.responder.status(self.conversation_key(session, partner_id))

    async def mark_read(self, session: SessionContext, partner_id: str) -> int:
        return await self.conversations.mark_read(session.user_id, partner_id)

    async def conversation_previews(self, session: SessionContext) -> list[ConversationPreview]:
        return await self.conversations.list_conversations(session.user_id, self.pool)

    async def close(self) -> None:
        await self.responder.shutdown()
        await self.store.close()
        logger.info("duet_service_closed")
