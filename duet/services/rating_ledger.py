"""
Duet — Rating ledger.

The ledger is the user's list of yes/no verdicts on candidate couples, at
most one per pair.  It lives in the store as a single document and every
change rewrites the whole document, so a failed write leaves the previously
committed ledger intact.
"""

from __future__ import annotations

import structlog

from duet.exceptions import ValidationError
from duet.schemas.rating import Rating, Verdict
from duet.services.document_store import legacy_ratings_key, ratings_key
from duet.session import SessionContext
from duet.utils.keys import canonical_pair_id, pair_id

logger = structlog.get_logger("duet.rating_ledger")

_KIND = "ratings"


class RatingLedger:
    """Per-user rating ledger bound to a session."""

    def __init__(self, session: SessionContext) -> None:
        self.session = session
        self._key = ratings_key(session.user_id)

    async def all_ratings(self) -> list[Rating]:
        """Ratings in ledger order (oldest write first)."""
        ratings = await self.session.store.read_models(
            self._key, _KIND, Rating, legacy_keys=(legacy_ratings_key(self.session.user_id),)
        )
        return ratings or []

    async def rating_for(self, pid: str) -> Rating | None:
        pid = canonical_pair_id(pid)
        for rating in await self.all_ratings():
            if rating.pair_id == pid:
                return rating
        return None

    async def record_rating(self, pid: str, verdict: Verdict | str) -> Rating:
        """Store *verdict* for the pair, replacing any earlier verdict.

        The replaced entry is removed and the new one appended, so ledger
        position always reflects the latest write.
        """
        pid = canonical_pair_id(pid)
        try:
            verdict = Verdict(verdict)
        except ValueError as exc:
            raise ValidationError(f"Verdict must be yes or no, got {verdict!r}") from exc
        rating = Rating(
            pair_id=pid,
            verdict=verdict,
            timestamp=self.session.clock(),
        )

        current = await self.all_ratings()
        updated = [r for r in current if r.pair_id != pid]
        replaced = len(updated) != len(current)
        updated.append(rating)

        await self.session.store.write(
            self._key, _KIND, [r.model_dump(mode="json") for r in updated]
        )

        logger.info(
            "rating_recorded",
            user_id=self.session.user_id,
            pair_id=pid,
            verdict=rating.verdict.value,
            replaced=replaced,
            total=len(updated),
        )
        return rating

    async def rate_pair(self, first_id: str, second_id: str, verdict: Verdict | str) -> Rating:
        return await self.record_rating(pair_id(first_id, second_id), verdict)
