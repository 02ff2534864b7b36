"""Caller-relative message projections and request bodies."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from marketplace.models import Message


class SenderSummary(BaseModel):
    id: UUID
    name: str


class MessageView(BaseModel):
    """A message as seen by one participant; `is_mine` is relative to the viewer."""

    id: UUID
    text: str
    kind: str
    is_mine: bool
    timestamp: datetime
    is_delivered: bool
    is_read: bool
    sender: SenderSummary

    @classmethod
    def for_viewer(cls, message: Message, viewer_id: UUID) -> "MessageView":
        return cls(
            id=message.id,
            text=message.body,
            kind=message.kind.value,
            is_mine=message.sender_id == viewer_id,
            timestamp=message.created_at,
            is_delivered=message.is_delivered,
            is_read=message.is_read,
            sender=SenderSummary(id=message.sender.id, name=message.sender.name),
        )


class MessageHistory(BaseModel):
    """One page of history, oldest-first, with the anchor that pins the window."""

    items: list[MessageView] = Field(default_factory=list)
    total: int
    total_pages: int
    page: int
    page_size: int
    anchor: UUID | None = None


class Ack(BaseModel):
    """Acknowledgement for operations that return no entity."""

    ok: bool = True
    message: str
    affected: int = 0


# --- request bodies ---

class StartConversationRequest(BaseModel):
    product_id: UUID
    receiver_id: UUID
    initial_message: str | None = None


class SendMessageRequest(BaseModel):
    message: str
    type: str = "text"
