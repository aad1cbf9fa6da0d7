"""
Duet — Session & Profile API

Starting and ending the current-user session, and reading / saving the
session user's profile.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status

from duet.api.deps import get_duet, get_session
from duet.schemas.profile import CurrentUser, Profile, SessionCreate
from duet.services.duet_service import DuetService
from duet.session import SessionContext

logger = structlog.get_logger("duet.api.profile")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# /session — current user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/session",
    response_model=CurrentUser,
    status_code=status.HTTP_201_CREATED,
    summary="Start a session as the given user",
)
async def start_session(
    payload: SessionCreate,
    duet: DuetService = Depends(get_duet),
) -> CurrentUser:
    return await duet.profiles.login(payload.user_id, name=payload.name, email=payload.email)


@router.get("/session", response_model=CurrentUser, summary="Get the current user")
async def get_current_user(duet: DuetService = Depends(get_duet)) -> CurrentUser:
    user = await duet.profiles.current_user()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No current user.",
        )
    return user


@router.delete(
    "/session",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="End the session (user data is kept)",
)
async def end_session(duet: DuetService = Depends(get_duet)) -> Response:
    await duet.profiles.logout()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ──────────────────────────────────────────────────────────────────────────────
# /profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/profile", response_model=Profile, summary="Get the session user's profile")
async def get_profile(
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> Profile:
    profile = await duet.profiles.get_profile(session.user_id)
    if profile is None:
        logger.info("get_profile_not_found", user_id=session.user_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No profile saved for user {session.user_id}.",
        )
    return profile


@router.put("/profile", response_model=Profile, summary="Save the session user's profile")
async def save_profile(
    payload: Profile,
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> Profile:
    return await duet.profiles.save_profile(session.user_id, payload)
