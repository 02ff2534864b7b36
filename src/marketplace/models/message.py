from sqlalchemy import Boolean, ForeignKey, Index, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from enum import Enum as PyEnum
from marketplace.database.base import Base, UTCDateTime, utcnow
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .user import User


# ------------------------------
# Enum to define message kinds
# ------------------------------
class MessageKind(PyEnum):
    """What the message body holds."""
    TEXT = "text"       # plain text typed by a participant
    IMAGE = "image"     # body is an image URL
    SYSTEM = "system"   # generated notice (e.g. "item marked as sold")


# ------------------------------
# Message Model
# ------------------------------
class Message(Base):
    """
    SQLAlchemy model representing one entry in a conversation's ledger.

    Messages are immutable apart from `is_read`. Within a conversation they are totally
    ordered by (created_at, id).
    """
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_order", "conversation_id", "created_at", "id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id"),
        nullable=False,
    )

    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )

    body: Mapped[str] = mapped_column(
        Text,
        nullable=False
    )

    kind: Mapped[MessageKind] = mapped_column(
        SQLEnum(MessageKind, values_callable=lambda enum: [member.value for member in enum]),
        default=MessageKind.TEXT,
        nullable=False
    )

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    # Delivery is synchronous, so this is true from the moment the row exists
    is_delivered: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False
    )

    # --- Relationships ---

    sender: Mapped["User"] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Message(id={self.id!r}, kind={self.kind.value!r}, conversation_id={self.conversation_id!r})>"


# Notes:
# - The conversation row holds no collection of its messages; history is always read
#   through MessageRepository.page() so large threads are never loaded whole.
