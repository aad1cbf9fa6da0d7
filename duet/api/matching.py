"""
Duet — Rating & Matching API

Couples to rate, the session user's rating ledger, and their ranked matches.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, status

from duet.api.deps import get_duet, get_session
from duet.schemas.candidate import Couple
from duet.schemas.match import Match
from duet.schemas.rating import Rating, RatingCreate
from duet.services.duet_service import DuetService
from duet.session import SessionContext

logger = structlog.get_logger("duet.api.matching")

router = APIRouter()


@router.get("/couples", response_model=list[Couple], summary="Couples available to rate")
async def list_couples(
    shuffle: bool = Query(True, description="Shuffle the couples"),
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> list[Couple]:
    return duet.couples(session, shuffle=shuffle)


@router.get("/ratings", response_model=list[Rating], summary="The session user's ratings")
async def list_ratings(
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> list[Rating]:
    return await duet.ratings(session)


@router.post(
    "/ratings",
    response_model=Rating,
    status_code=status.HTTP_201_CREATED,
    summary="Rate a couple (replaces any earlier verdict)",
)
async def submit_rating(
    payload: RatingCreate,
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> Rating:
    if payload.pair_id is not None:
        return await duet.submit_rating(session, payload.pair_id, payload.verdict)
    return await duet.rate_couple(session, payload.first_id, payload.second_id, payload.verdict)


@router.get("/matches", response_model=list[Match], summary="Ranked matches")
async def list_matches(
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> list[Match]:
    """Recomputed on every call; scores carry random jitter."""
    matches = await duet.my_matches(session)
    logger.info("list_matches_complete", user_id=session.user_id, count=len(matches))
    return matches
