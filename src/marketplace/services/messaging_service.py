"""
Messaging service: start conversations, send messages, read history, acknowledge reads.

Every public method is one unit of work. It opens its own session, runs all existence and
membership checks before the first write, and commits once at the end. Any exception
(including cancellation of the calling task) rolls the whole transaction back, so a
message is never visible without its conversation summary and a delete never leaves
half a conversation behind.
"""

import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.config.settings import Settings, get_settings
from marketplace.database.base import utcnow
from marketplace.exceptions.base import (
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
)
from marketplace.models import Message, MessageKind
from marketplace.repositories import (
    ConversationRepository,
    MessageRepository,
    ProductRepository,
    UserRepository,
)
from marketplace.repositories.message_repository import coerce_kind
from marketplace.schemas import Ack, ConversationPage, ConversationView, MessageHistory, MessageView
from marketplace.validators.normalizers import clean_text

logger = logging.getLogger(__name__)


@dataclass
class UnitOfWork:
    """Repositories bound to one session/transaction."""

    session: AsyncSession
    users: UserRepository
    products: ProductRepository
    conversations: ConversationRepository
    messages: MessageRepository

    @classmethod
    def bind(cls, session: AsyncSession) -> "UnitOfWork":
        return cls(
            session=session,
            users=UserRepository(session),
            products=ProductRepository(session),
            conversations=ConversationRepository(session),
            messages=MessageRepository(session),
        )


class MessagingService:
    """
    Orchestrates the conversation directory and the message ledger.

    Args:
        session_factory: async_sessionmaker producing sessions for each unit of work
        clock: returns the current UTC time; injectable so tests can control ordering
        settings: pagination defaults and limits
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utcnow,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self._session_factory = session_factory
        self._clock = clock
        self.default_page_size = settings.DEFAULT_PAGE_SIZE
        self.default_message_page_size = settings.DEFAULT_MESSAGE_PAGE_SIZE
        self.max_page_size = settings.MAX_PAGE_SIZE

    # =================================================================================================================
    # Plumbing
    # =================================================================================================================

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncIterator[UnitOfWork]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield UnitOfWork.bind(session)
        except SQLAlchemyError as exc:
            # commit/rollback failures; repository errors are already app-level
            logger.exception("messaging.%s.storage_failure", operation, extra={"operation": operation})
            raise InternalError() from exc

    def _paging(self, page: int, page_size: int | None, default: int) -> tuple[int, int]:
        if page_size is None:
            page_size = default
        if page < 1:
            raise InvalidInputError("Page must be 1 or greater", fields=["page"])
        if page_size < 1:
            raise InvalidInputError("Page size must be 1 or greater", fields=["limit"])
        return page, min(page_size, self.max_page_size)

    async def _append_and_record(
        self,
        uow: UnitOfWork,
        conversation_id: UUID,
        sender_id: UUID,
        text: str,
        kind: MessageKind,
        at: datetime,
    ) -> Message:
        message = await uow.messages.append(conversation_id, sender_id, text, kind, at)
        await uow.conversations.record_outgoing_message(conversation_id, sender_id, message.body, at)
        return message

    # =================================================================================================================
    # Conversations
    # =================================================================================================================

    async def start_conversation(
        self,
        requester_id: UUID,
        product_id: UUID,
        receiver_id: UUID,
        initial_text: str | None = None,
    ) -> ConversationView:
        """
        Open (or reopen) the conversation with `receiver_id` about `product_id`.

        Calling it again for the same pair and product returns the same conversation.
        With `initial_text` the requester's first message is appended in the same
        transaction.

        Raises:
            InvalidInputError: receiver is the requester, or the initial text is blank.
            NotFoundError: product missing/deleted, receiver or requester unknown.
            ForbiddenError: initial text sent into a blocked conversation.
        """
        start = time.perf_counter()

        if requester_id == receiver_id:
            raise InvalidInputError("Cannot start a conversation with yourself", fields=["receiver_id"])
        text = clean_text(initial_text, field="initial_message") if initial_text else None

        async with self._unit_of_work("start") as uow:
            await uow.products.get_messageable(product_id)
            if not await uow.users.exists(receiver_id):
                raise NotFoundError("Receiver not found", fields=["receiver_id"])
            if not await uow.users.exists(requester_id):
                raise NotFoundError("User not found")

            now = self._clock()
            conversation = await uow.conversations.find_or_create(product_id, requester_id, receiver_id, at=now)

            if text is not None:
                if conversation.is_blocked:
                    raise ForbiddenError("This conversation is blocked")
                await self._append_and_record(uow, conversation.id, requester_id, text, MessageKind.TEXT, now)
                conversation = await uow.conversations.reload(conversation.id)

            view = ConversationView.for_viewer(conversation, requester_id)

        logger.info(
            "messaging.start.success",
            extra={
                "conversation_id": str(view.id),
                "product_id": str(product_id),
                "with_initial_message": text is not None,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return view

    async def list_conversations(
        self,
        requester_id: UUID,
        page: int = 1,
        page_size: int | None = None,
    ) -> ConversationPage:
        """Conversations of the requester, most recently active first."""
        page, page_size = self._paging(page, page_size, self.default_page_size)

        async with self._unit_of_work("list") as uow:
            conversations = await uow.conversations.list_for_user(requester_id, page, page_size)
            total = await uow.conversations.count_for_user(requester_id)
            items = [ConversationView.for_viewer(c, requester_id) for c in conversations]

        return ConversationPage(items=items, total=total, page=page, page_size=page_size)

    async def get_conversation(self, requester_id: UUID, conversation_id: UUID) -> ConversationView:
        async with self._unit_of_work("get") as uow:
            conversation = await uow.conversations.get_for_participant(conversation_id, requester_id)
            return ConversationView.for_viewer(conversation, requester_id)

    async def delete_conversation(self, requester_id: UUID, conversation_id: UUID) -> Ack:
        """
        Hard-delete the conversation and all of its messages.

        Raises:
            NotFoundError / NotParticipantError
        """
        async with self._unit_of_work("delete") as uow:
            purged = await uow.conversations.delete_conversation(conversation_id, requester_id, uow.messages)

        logger.info("messaging.delete.success", extra={"conversation_id": str(conversation_id)})
        return Ack(message="Conversation deleted", affected=purged)

    # =================================================================================================================
    # Messages
    # =================================================================================================================

    async def send_message(
        self,
        requester_id: UUID,
        conversation_id: UUID,
        text: str,
        kind: MessageKind | str = MessageKind.TEXT,
    ) -> MessageView:
        """
        Append a message and fold it into the conversation summary atomically.

        Raises:
            NotFoundError: the conversation does not exist.
            NotParticipantError: the requester is not in it.
            ForbiddenError: the conversation is blocked.
            InvalidInputError: empty text or unknown kind.
        """
        start = time.perf_counter()

        async with self._unit_of_work("send") as uow:
            conversation = await uow.conversations.get_for_participant(conversation_id, requester_id)
            body = clean_text(text)
            message_kind = coerce_kind(kind)
            if conversation.is_blocked:
                raise ForbiddenError("This conversation is blocked")

            message = await self._append_and_record(
                uow, conversation_id, requester_id, body, message_kind, self._clock()
            )
            view = MessageView.for_viewer(message, requester_id)

        logger.info(
            "messaging.send.success",
            extra={
                "conversation_id": str(conversation_id),
                "message_id": str(view.id),
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        logger.debug("messaging.send.body", extra={"message_id": str(view.id), "text": view.text})
        return view

    async def history(
        self,
        requester_id: UUID,
        conversation_id: UUID,
        page: int = 1,
        page_size: int | None = None,
        anchor: UUID | None = None,
    ) -> MessageHistory:
        """
        One page of messages, oldest-first.

        Without an `anchor` the window is pinned to the current newest message and that
        message's id is returned as `anchor`; passing it back on later pages keeps the
        windows stable while new messages arrive.

        Raises:
            NotFoundError: conversation missing, or anchor not in this conversation.
            NotParticipantError: the requester is not in it.
        """
        async with self._unit_of_work("history") as uow:
            await uow.conversations.get_for_participant(conversation_id, requester_id)
            page, page_size = self._paging(page, page_size, self.default_message_page_size)

            if anchor is not None:
                anchor_message = await uow.messages.get_in_conversation(conversation_id, anchor)
            else:
                anchor_message = await uow.messages.get_latest(conversation_id)

            total = await uow.messages.count_for_conversation(conversation_id, anchor_message)
            messages = await uow.messages.page(conversation_id, page, page_size, anchor_message)
            items = [MessageView.for_viewer(m, requester_id) for m in messages]

        return MessageHistory(
            items=items,
            total=total,
            total_pages=math.ceil(total / page_size),
            page=page,
            page_size=page_size,
            anchor=anchor_message.id if anchor_message is not None else None,
        )

    async def mark_read(self, requester_id: UUID, conversation_id: UUID) -> Ack:
        """
        Move the requester's read cursor, reset the unread counter and flag the other
        participant's messages as read.
        """
        async with self._unit_of_work("mark_read") as uow:
            await uow.conversations.get_for_participant(conversation_id, requester_id)
            await uow.conversations.mark_read(conversation_id, requester_id, self._clock())
            flipped = await uow.messages.mark_all_read(conversation_id, requester_id)

        logger.info(
            "messaging.mark_read.success",
            extra={"conversation_id": str(conversation_id), "messages_read": flipped},
        )
        return Ack(message="Messages marked as read", affected=flipped)

    # =================================================================================================================
    # Blocking
    # =================================================================================================================

    async def block_conversation(self, requester_id: UUID, conversation_id: UUID) -> Ack:
        """Stop both participants from sending messages until the requester unblocks."""
        async with self._unit_of_work("block") as uow:
            changed = await uow.conversations.set_blocked(conversation_id, requester_id, True)
        return Ack(message="Conversation blocked", affected=int(changed))

    async def unblock_conversation(self, requester_id: UUID, conversation_id: UUID) -> Ack:
        """
        Raises:
            ForbiddenError: the conversation was blocked by the other participant.
        """
        async with self._unit_of_work("unblock") as uow:
            changed = await uow.conversations.set_blocked(conversation_id, requester_id, False)
        return Ack(message="Conversation unblocked", affected=int(changed))

    # =================================================================================================================
    # Maintenance
    # =================================================================================================================

    async def rebuild_summary(self, conversation_id: UUID) -> Ack:
        """
        Re-derive `last_message` / `last_message_at` from the ledger tail.

        Repair path for a summary that diverged from the ledger; not used when sending.
        """
        async with self._unit_of_work("rebuild_summary") as uow:
            conversation = await uow.conversations.get_by_id_or_raise(conversation_id)
            latest = await uow.messages.get_latest(conversation_id)

            if latest is not None:
                expected = (latest.body, latest.created_at)
            else:
                expected = ("", conversation.created_at)

            changed = (conversation.last_message, conversation.last_message_at) != expected
            if changed:
                logger.warning("messaging.summary.diverged", extra={"conversation_id": str(conversation_id)})
                await uow.conversations.overwrite_summary(conversation_id, *expected)

        return Ack(message="Summary rebuilt", affected=int(changed))
