"""
Message repository (the message ledger).

Append-only store of conversation messages. Messages are totally ordered by
(created_at, id); history pages are cut from a newest-first scan and returned
oldest-first.
"""

from datetime import datetime
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, delete, func, or_, select, update
import logging

from marketplace.database.base import utcnow
from marketplace.exceptions.base import InvalidInputError, NotFoundError
from marketplace.exceptions.mapper import db_error_handler
from marketplace.models.message import Message, MessageKind
from marketplace.validators.normalizers import clean_text
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def coerce_kind(kind: MessageKind | str | None) -> MessageKind:
    """
    Accept a MessageKind or its string value ("text", "image", "system").

    Raises:
        InvalidInputError: For anything else.
    """
    if kind is None:
        return MessageKind.TEXT
    if isinstance(kind, MessageKind):
        return kind
    try:
        return MessageKind(str(kind).strip().lower())
    except ValueError:
        allowed = ", ".join(k.value for k in MessageKind)
        raise InvalidInputError(f"Message type must be one of: {allowed}", fields=["kind"]) from None


def _at_or_before(anchor: Message):
    """(created_at, id) <= anchor's key."""
    return or_(
        Message.created_at < anchor.created_at,
        and_(Message.created_at == anchor.created_at, Message.id <= anchor.id),
    )


class MessageRepository(BaseRepository[Message]):
    """
    Repository for Message entity operations.

    Conversation membership is checked by the caller; the ledger trusts the ids it gets.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Message, db)

    # =================================================================================================================
    # Append
    # =================================================================================================================

    async def append(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        text: str,
        kind: MessageKind | str = MessageKind.TEXT,
        at: datetime | None = None,
    ) -> Message:
        """
        Append a message to the conversation's ledger.

        The message is delivered on creation and unread until the other participant
        marks the conversation read.

        Raises:
            InvalidInputError: Empty text or unknown kind.
        """
        body = clean_text(text)
        message_kind = coerce_kind(kind)

        message = await self.create(
            conversation_id=conversation_id,
            sender_id=sender_id,
            body=body,
            kind=message_kind,
            is_read=False,
            is_delivered=True,
            created_at=at or utcnow(),
        )
        logger.debug(
            "message.appended",
            extra={"conversation_id": str(conversation_id), "message_id": str(message.id), "kind": message_kind.value},
        )
        return message

    # =================================================================================================================
    # History
    # =================================================================================================================

    async def get_in_conversation(self, conversation_id: UUID, message_id: UUID) -> Message:
        """
        Raises:
            NotFoundError: If the message does not belong to the conversation.
        """
        stmt = select(Message).where(Message.id == message_id, Message.conversation_id == conversation_id)
        result = await self._execute(stmt, "get_message")
        message = result.scalar_one_or_none()
        if message is None:
            raise NotFoundError(f"Message with ID {message_id} not found in this conversation", fields=["anchor"])
        return message

    async def get_latest(self, conversation_id: UUID) -> Message | None:
        """The ledger tail, or None for an empty conversation."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
        result = await self._execute(stmt, "get_latest_message")
        return result.scalar_one_or_none()

    async def page(
        self,
        conversation_id: UUID,
        page: int = 1,
        page_size: int = 50,
        anchor: Message | None = None,
    ) -> list[Message]:
        """
        One window of history, oldest-first.

        Page 1 is the newest `page_size` messages, page 2 the ones before them, and so on.
        With an `anchor`, messages newer than the anchor are ignored, so a client that
        pins the anchor from page 1 gets gap-free, duplicate-free pages while new
        messages keep arriving.
        """
        stmt = select(Message).where(Message.conversation_id == conversation_id)
        if anchor is not None:
            stmt = stmt.where(_at_or_before(anchor))

        stmt = (
            stmt.order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._execute(stmt, "page_messages")

        messages = list(result.scalars().all())
        messages.reverse()
        return messages

    async def count_for_conversation(self, conversation_id: UUID, anchor: Message | None = None) -> int:
        stmt = select(func.count()).select_from(Message).where(Message.conversation_id == conversation_id)
        if anchor is not None:
            stmt = stmt.where(_at_or_before(anchor))
        result = await self._execute(stmt, "count_messages")
        return result.scalar() or 0

    # =================================================================================================================
    # Read flags
    # =================================================================================================================

    async def mark_all_read(self, conversation_id: UUID, reader_id: UUID) -> int:
        """
        Flag every unread message from the other participant as read.

        Returns:
            Number of messages flipped (0 on repeated calls).
        """
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                update(Message)
                .where(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != reader_id,
                    Message.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    # =================================================================================================================
    # Purge
    # =================================================================================================================

    async def delete_conversation_messages(self, conversation_id: UUID) -> int:
        """
        Remove every message of the conversation.
        Only called from ConversationRepository.delete_conversation.
        """
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                delete(Message)
                .where(Message.conversation_id == conversation_id)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount
