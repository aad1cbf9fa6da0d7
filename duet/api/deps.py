"""
Duet — Shared API dependencies.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from duet.services.duet_service import DuetService
from duet.session import SessionContext


def get_duet(request: Request) -> DuetService:
    return request.app.state.duet


async def get_session(
    request: Request,
    x_user_id: Optional[str] = Header(None),
    duet: DuetService = Depends(get_duet),
) -> SessionContext:
    """Resolve the acting user from ``X-User-Id`` or the stored current user."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        current = await duet.profiles.current_user()
        if current is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="No current user. Start a session first.",
            )
        user_id = current.id

    return SessionContext(user_id=user_id, store=duet.store, rng=request.app.state.rng)
