"""
Conversation repository (the conversation directory).

Maps (product, unordered participant pair) to a single conversation and owns the
participants' read cursors and the denormalized ledger summary. Every change to the
unread counter goes through `record_outgoing_message` (increment) or `mark_read` (reset),
both single UPDATE statements evaluated by the database.
"""

from datetime import datetime
from uuid import UUID
from typing import TYPE_CHECKING
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, case, delete, func, literal, or_, select, update
import logging

from marketplace.database.base import utcnow
from marketplace.exceptions.base import (
    DuplicateError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    NotParticipantError,
)
from marketplace.exceptions.mapper import db_error_handler
from marketplace.models.conversation import Conversation, ConversationParticipant, canonical_pair
from .base_repository import BaseRepository

if TYPE_CHECKING:
    from .message_repository import MessageRepository

logger = logging.getLogger(__name__)


def _involves(user_id: UUID):
    return or_(Conversation.participant_low_id == user_id, Conversation.participant_high_id == user_id)


class ConversationRepository(BaseRepository[Conversation]):
    """
    Repository for Conversation entity operations.

    Conversations returned by this repository always come from a SELECT, so the
    participants (with their users) and the product are loaded eagerly and safe to read
    outside of an awaitable context.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Conversation, db)

    # =================================================================================================================
    # Lookup
    # =================================================================================================================

    async def find_by_pair(self, product_id: UUID, user_a: UUID, user_b: UUID) -> Conversation | None:
        """
        The conversation between `user_a` and `user_b` about `product_id`, in either order.
        """
        low, high = canonical_pair(user_a, user_b)
        stmt = select(Conversation).where(
            Conversation.product_id == product_id,
            Conversation.participant_low_id == low,
            Conversation.participant_high_id == high,
        )
        result = await self._execute(stmt, "find_conversation")
        return result.scalar_one_or_none()

    async def reload(self, conversation_id: UUID) -> Conversation:
        """
        Re-read a conversation after UPDATE statements, overwriting the identity map copy.
        """
        stmt = (
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt, "reload_conversation")
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise NotFoundError(f"Conversation with ID {conversation_id} not found")
        return conversation

    async def get_for_participant(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        """
        Membership-checked lookup.

        Raises:
            NotFoundError: If the conversation does not exist (or was deleted).
            NotParticipantError: If it exists but `user_id` is not one of its participants.
        """
        conversation = await self.get_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation with ID {conversation_id} not found")

        if not conversation.has_participant(user_id):
            logger.info(
                "conversation.access_denied",
                extra={"conversation_id": str(conversation_id), "user_id": str(user_id)},
            )
            raise NotParticipantError()

        return conversation

    # =================================================================================================================
    # Create
    # =================================================================================================================

    async def find_or_create(
        self,
        product_id: UUID,
        user_a: UUID,
        user_b: UUID,
        *,
        at: datetime | None = None,
    ) -> Conversation:
        """
        Return the conversation for this pair and product, creating it on first contact.

        `user_a` is recorded as the starter (position 0). Both read cursors and
        `last_message_at` start at the creation time; `unread_count` starts at 0.

        Safe under concurrent calls: the insert runs in a SAVEPOINT and a unique violation
        (another request created the row first) falls back to reading the winner's row.

        Raises:
            InvalidInputError: If both users are the same person.
        """
        if user_a == user_b:
            raise InvalidInputError("Cannot start a conversation with yourself", fields=["receiver_id"])

        existing = await self.find_by_pair(product_id, user_a, user_b)
        if existing is not None:
            logger.debug("conversation.find_or_create.found", extra={"conversation_id": str(existing.id)})
            return existing

        at = at or utcnow()
        low, high = canonical_pair(user_a, user_b)

        try:
            async with db_error_handler(self.db, self.model_name):
                conversation = Conversation(
                    product_id=product_id,
                    participant_low_id=low,
                    participant_high_id=high,
                    last_message="",
                    last_message_at=at,
                    unread_count=0,
                    created_at=at,
                    updated_at=at,
                    participants=[
                        ConversationParticipant(user_id=user_a, position=0, last_read_at=at),
                        ConversationParticipant(user_id=user_b, position=1, last_read_at=at),
                    ],
                )
                self.db.add(conversation)
                await self.db.flush()
        except DuplicateError as exc:
            logger.info(
                "conversation.find_or_create.race_lost",
                extra={"product_id": str(product_id), "constraint": exc.constraint},
            )
            winner = await self.find_by_pair(product_id, user_a, user_b)
            if winner is None:
                # the unique violation came from something other than the pair key
                raise InternalError("Failed to create conversation") from exc
            return winner

        logger.info(
            "conversation.created",
            extra={"conversation_id": str(conversation.id), "product_id": str(product_id)},
        )
        return await self.reload(conversation.id)

    # =================================================================================================================
    # Listing
    # =================================================================================================================

    async def list_for_user(self, user_id: UUID, page: int = 1, page_size: int = 20) -> list[Conversation]:
        """
        Conversations `user_id` participates in, most recently active first.
        Ties on `last_message_at` are broken by id so pages never overlap.
        """
        stmt = (
            select(Conversation)
            .where(_involves(user_id))
            .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._execute(stmt, "list_conversations")
        return list(result.scalars().all())

    async def count_for_user(self, user_id: UUID) -> int:
        stmt = select(func.count()).select_from(Conversation).where(_involves(user_id))
        result = await self._execute(stmt, "count_conversations")
        return result.scalar() or 0

    # =================================================================================================================
    # Read cursors and summary
    # =================================================================================================================

    async def mark_read(self, conversation_id: UUID, user_id: UUID, at: datetime | None = None) -> None:
        """
        Move `user_id`'s read cursor to `at` and reset the unread counter.

        Raises:
            NotParticipantError: If `user_id` is not in the conversation.
        """
        at = at or utcnow()

        async with db_error_handler(self.db, self.model_name):
            cursor = await self.db.execute(
                update(ConversationParticipant)
                .where(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id == user_id,
                )
                .values(last_read_at=at)
                .execution_options(synchronize_session=False)
            )
            if cursor.rowcount == 0:
                raise NotParticipantError()

            await self.db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(unread_count=0, updated_at=at)
                .execution_options(synchronize_session=False)
            )

        logger.debug("conversation.mark_read", extra={"conversation_id": str(conversation_id)})

    async def record_outgoing_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        text: str,
        at: datetime,
    ) -> None:
        """
        Fold a newly appended message into the conversation summary.

        One UPDATE statement, so concurrent senders never lose an increment:
          - unread_count += 1 (the one other participant)
          - last_message_at = max(last_message_at, at)
          - last_message replaced only if `at` is not older than the current summary

        The row is only touched while the conversation is not blocked.

        Raises:
            NotFoundError / NotParticipantError / ForbiddenError: when no row was updated.
        """
        at_value = literal(at, Conversation.__table__.c.last_message_at.type)

        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    _involves(sender_id),
                    Conversation.blocked_by_id.is_(None),
                )
                .values(
                    unread_count=Conversation.unread_count + 1,
                    last_message=case(
                        (Conversation.last_message_at <= at_value, text),
                        else_=Conversation.last_message,
                    ),
                    last_message_at=case(
                        (Conversation.last_message_at < at_value, at_value),
                        else_=Conversation.last_message_at,
                    ),
                    updated_at=at,
                )
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            conversation = await self.reload(conversation_id)
            if not conversation.has_participant(sender_id):
                raise NotParticipantError()
            if conversation.is_blocked:
                raise ForbiddenError("This conversation is blocked")
            raise InternalError("Failed to update conversation summary")

    async def overwrite_summary(
        self,
        conversation_id: UUID,
        last_message: str,
        last_message_at: datetime,
    ) -> None:
        """
        Replace the summary with values re-derived from the ledger (repair path).
        """
        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(last_message=last_message, last_message_at=last_message_at)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 0:
            raise NotFoundError(f"Conversation with ID {conversation_id} not found")

    # =================================================================================================================
    # Blocking
    # =================================================================================================================

    async def set_blocked(self, conversation_id: UUID, user_id: UUID, blocked: bool) -> bool:
        """
        Block or unblock the conversation on behalf of `user_id`.

        Blocking an already-blocked conversation and unblocking an open one are no-ops.
        Only the participant who blocked may unblock.

        Returns:
            True if the block state changed.

        Raises:
            NotFoundError / NotParticipantError: membership check.
            ForbiddenError: unblock attempted by the participant who did not block.
        """
        conversation = await self.get_for_participant(conversation_id, user_id)

        if blocked:
            condition = Conversation.blocked_by_id.is_(None)
            new_value = user_id
        else:
            condition = Conversation.blocked_by_id == user_id
            new_value = None

        async with db_error_handler(self.db, self.model_name):
            result = await self.db.execute(
                update(Conversation)
                .where(and_(Conversation.id == conversation_id, condition))
                .values(blocked_by_id=new_value)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount:
            logger.info(
                "conversation.block_state_changed",
                extra={"conversation_id": str(conversation_id), "blocked": blocked},
            )
            return True

        conversation = await self.reload(conversation.id)
        if not blocked and conversation.blocked_by_id is not None:
            raise ForbiddenError("Only the participant who blocked this conversation can unblock it")
        return False

    # =================================================================================================================
    # Delete
    # =================================================================================================================

    async def delete_conversation(
        self,
        conversation_id: UUID,
        requester_id: UUID,
        ledger: "MessageRepository",
    ) -> int:
        """
        Hard-delete a conversation and everything it owns, in the caller's transaction.

        Order: messages, participant rows, conversation row. Nothing is visible to other
        transactions until the caller commits.

        Returns:
            Number of messages purged.

        Raises:
            NotFoundError / NotParticipantError: checked before anything is deleted.
        """
        await self.get_for_participant(conversation_id, requester_id)

        purged = await ledger.delete_conversation_messages(conversation_id)

        async with db_error_handler(self.db, self.model_name):
            await self.db.execute(
                delete(ConversationParticipant).where(ConversationParticipant.conversation_id == conversation_id)
            )
            await self.db.execute(delete(Conversation).where(Conversation.id == conversation_id))

        logger.info(
            "conversation.deleted",
            extra={"conversation_id": str(conversation_id), "messages_purged": purged},
        )
        return purged
