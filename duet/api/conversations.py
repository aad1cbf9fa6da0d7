"""
Duet — Conversations API

Thread previews, reading a thread, sending messages, read receipts, and
closing the conversation view.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response, status

from duet.api.deps import get_duet, get_session
from duet.schemas.message import (
    ConversationPreview,
    MarkReadResponse,
    Message,
    MessageCreate,
    ThreadResponse,
)
from duet.services.candidate_pool import find_candidate
from duet.services.duet_service import DuetService
from duet.session import SessionContext

logger = structlog.get_logger("duet.api.conversations")

router = APIRouter()


@router.get("", response_model=list[ConversationPreview], summary="Existing conversations")
async def list_conversations(
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> list[ConversationPreview]:
    return await duet.conversation_previews(session)


@router.get("/{partner_id}", response_model=ThreadResponse, summary="Open a conversation")
async def open_conversation(
    partner_id: str,
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> ThreadResponse:
    messages = await duet.open_conversation(session, partner_id)
    return ThreadResponse(
        thread_key=duet.conversation_key(session, partner_id),
        partner_id=partner_id,
        partner=find_candidate(partner_id, duet.pool),
        status=duet.typing_status(session, partner_id),
        messages=messages,
    )


@router.post(
    "/{partner_id}/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    partner_id: str,
    payload: MessageCreate,
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> Message:
    key = duet.conversation_key(session, partner_id)
    return await duet.send_message(session, key, session.user_id, payload.content)


@router.post(
    "/{partner_id}/read",
    response_model=MarkReadResponse,
    summary="Mark the partner's messages as read",
)
async def mark_read(
    partner_id: str,
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> MarkReadResponse:
    marked = await duet.mark_read(session, partner_id)
    return MarkReadResponse(thread_key=duet.conversation_key(session, partner_id), marked=marked)


@router.post(
    "/{partner_id}/close",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close the conversation view",
)
async def close_conversation(
    partner_id: str,
    session: SessionContext = Depends(get_session),
    duet: DuetService = Depends(get_duet),
) -> Response:
    cancelled = duet.close_conversation(session, partner_id)
    logger.info("conversation_closed", user_id=session.user_id, partner_id=partner_id, reply_cancelled=cancelled)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
