from typing import Optional

from pydantic import BaseModel, ConfigDict

from duet.schemas.candidate import Candidate


class Message(BaseModel):
    # Only ``read`` ever changes, through ``model_copy(update=...)``.
    model_config = ConfigDict(frozen=True)

    id: str
    sender_id: str
    receiver_id: str
    content: str
    timestamp: int
    read: bool = False


class MessageCreate(BaseModel):
    content: str


class ConversationPreview(BaseModel):
    partner: Candidate
    thread_key: str
    last_message: Optional[Message] = None
    unread_count: int = 0


class ThreadResponse(BaseModel):
    thread_key: str
    partner_id: str
    partner: Optional[Candidate] = None
    status: str
    messages: list[Message]


class MarkReadResponse(BaseModel):
    thread_key: str
    marked: int
