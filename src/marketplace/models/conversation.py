from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from marketplace.database.base import Base, UTCDateTime, utcnow
import uuid
from typing import TYPE_CHECKING

# Avoid circular import issues when using type hints for related models
if TYPE_CHECKING:
    from .user import User
    from .product import Product


def canonical_pair(user_a: uuid.UUID, user_b: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    """Order a participant pair so {a, b} and {b, a} map to the same row."""
    return (user_a, user_b) if str(user_a) <= str(user_b) else (user_b, user_a)


class Conversation(Base):
    """
    SQLAlchemy model for a Conversation.

    A two-party thread about one product. The row carries a denormalized summary of the
    message ledger (last message text and time, unread counter) so conversation lists
    never touch the messages table.

    At most one conversation exists per unordered participant pair and product; the pair
    is stored sorted (participant_low_id <= participant_high_id) and covered by a UNIQUE
    constraint.
    """
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("product_id", "participant_low_id", "participant_high_id", name="uq_conversations_pair_product"),
        CheckConstraint("unread_count >= 0", name="unread_count_non_negative"),
        CheckConstraint("participant_low_id <> participant_high_id", name="distinct_participants"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Immutable after creation
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id"),
        nullable=False,
        index=True
    )

    participant_low_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )

    participant_high_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )

    # --- Ledger summary ---

    last_message: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False
    )

    # Never moves backwards
    last_message_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        index=True
    )

    unread_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False
    )

    # Participant who blocked the conversation, if any
    blocked_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    # --- Relationships ---

    # Exactly two rows, starter first
    participants: Mapped[list["ConversationParticipant"]] = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        lazy="selectin",
        order_by="ConversationParticipant.position",
    )

    product: Mapped["Product"] = relationship("Product", lazy="selectin")

    @property
    def participant_ids(self) -> list[uuid.UUID]:
        return [p.user_id for p in self.participants]

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.participant_low_id, self.participant_high_id)

    def other_participant(self, user_id: uuid.UUID) -> "ConversationParticipant":
        """The participant row that is not `user_id` (the caller-relative counterpart)."""
        for participant in self.participants:
            if participant.user_id != user_id:
                return participant
        raise ValueError(f"{user_id} has no counterpart in conversation {self.id}")

    @property
    def is_blocked(self) -> bool:
        return self.blocked_by_id is not None

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id!r}, product_id={self.product_id!r}, "
            f"participants=({self.participant_low_id!r}, {self.participant_high_id!r}))>"
        )


class ConversationParticipant(Base):
    """
    One side of a conversation with its read cursor.
    """
    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_participants_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id"),
        nullable=False,
        index=True
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )

    # 0 = started the conversation, 1 = receiver
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    last_read_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False
    )

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="participants")

    user: Mapped["User"] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<ConversationParticipant(conversation_id={self.conversation_id!r}, user_id={self.user_id!r})>"
