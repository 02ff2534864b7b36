import asyncio
import uuid
import pytest
from marketplace.exceptions.base import (
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    NotParticipantError,
)
from marketplace.models import ProductStatus
from marketplace.repositories import ConversationRepository, MessageRepository
from marketplace.services.messaging_service import MessagingService


@pytest.mark.asyncio
class TestStartConversation:

    async def test_start_returns_caller_relative_view(self, service: MessagingService, alice, bob, listing):
        view = await service.start_conversation(alice.id, listing.id, bob.id)

        assert view.participant.id == bob.id
        assert view.participant.name == "Bob Otieno"
        assert view.product.id == listing.id
        assert view.product.title == "Used bicycle"
        assert view.product.status == "active"
        assert view.last_message == ""
        assert view.unread_count == 0
        assert view.is_blocked is False
        assert view.last_message_at == view.created_at

    async def test_start_is_idempotent_for_either_participant(self, service: MessagingService, alice, bob, listing):
        """
        Behavior:
          - Alice starts, starts again, then Bob starts towards Alice about the same product.
          - One conversation; Bob's view shows Alice as the other participant.
        """
        first = await service.start_conversation(alice.id, listing.id, bob.id)
        second = await service.start_conversation(alice.id, listing.id, bob.id)
        from_seller = await service.start_conversation(bob.id, listing.id, alice.id)

        assert first.id == second.id == from_seller.id
        assert from_seller.participant.id == alice.id

        page = await service.list_conversations(alice.id)
        assert page.total == 1

    async def test_concurrent_starts_create_one_conversation(self, service: MessagingService, alice, bob, listing):
        views = await asyncio.gather(
            *(service.start_conversation(alice.id, listing.id, bob.id) for _ in range(5)),
            *(service.start_conversation(bob.id, listing.id, alice.id) for _ in range(5)),
        )

        assert len({v.id for v in views}) == 1
        assert (await service.list_conversations(bob.id)).total == 1

    async def test_start_with_initial_message(self, service: MessagingService, alice, bob, listing):
        """
        The initial message is appended in the same unit of work: the summary shows it,
        the receiver has one unread message and history holds exactly one message by Alice.
        """
        view = await service.start_conversation(alice.id, listing.id, bob.id, "Is this still available?")

        assert view.last_message == "Is this still available?"
        assert view.unread_count == 1

        bob_view = await service.get_conversation(bob.id, view.id)
        assert bob_view.unread_count == 1
        assert bob_view.participant.id == alice.id
        assert bob_view.last_message == "Is this still available?"

        history = await service.history(bob.id, view.id)
        assert history.total == 1
        [message] = history.items
        assert message.text == "Is this still available?"
        assert message.sender.id == alice.id
        assert message.is_mine is False
        assert message.is_read is False

    async def test_restart_with_initial_message_appends_to_existing(self, service: MessagingService, alice, bob, listing):
        first = await service.start_conversation(alice.id, listing.id, bob.id, "Hello")
        second = await service.start_conversation(alice.id, listing.id, bob.id, "Hello again")

        assert first.id == second.id
        assert second.last_message == "Hello again"
        assert second.unread_count == 2

    async def test_blank_initial_message_is_rejected_before_anything_is_written(
        self, service: MessagingService, alice, bob, listing
    ):
        with pytest.raises(InvalidInputError) as exc_info:
            await service.start_conversation(alice.id, listing.id, bob.id, "   ")

        assert exc_info.value.fields == ["initial_message"]
        assert (await service.list_conversations(alice.id)).total == 0

    async def test_start_with_self_is_rejected(self, service: MessagingService, bob, listing):
        with pytest.raises(InvalidInputError) as exc_info:
            await service.start_conversation(bob.id, listing.id, bob.id)
        assert exc_info.value.fields == ["receiver_id"]

    async def test_start_about_deleted_or_missing_product(self, service: MessagingService, make_product, alice, bob):
        deleted = await make_product(bob, status=ProductStatus.DELETED)

        for product_id in (deleted.id, uuid.uuid4()):
            with pytest.raises(NotFoundError) as exc_info:
                await service.start_conversation(alice.id, product_id, bob.id)
            assert exc_info.value.fields == ["product_id"]

    async def test_start_with_sold_product_is_allowed(self, service: MessagingService, make_product, alice, bob):
        sold = await make_product(bob, status=ProductStatus.SOLD)
        view = await service.start_conversation(alice.id, sold.id, bob.id)
        assert view.product.status == "sold"

    async def test_start_with_unknown_receiver(self, service: MessagingService, alice, listing):
        with pytest.raises(NotFoundError) as exc_info:
            await service.start_conversation(alice.id, listing.id, uuid.uuid4())
        assert exc_info.value.fields == ["receiver_id"]

    async def test_start_by_unknown_requester(self, service: MessagingService, bob, listing):
        with pytest.raises(NotFoundError):
            await service.start_conversation(uuid.uuid4(), listing.id, bob.id)


@pytest.mark.asyncio
class TestListAndGet:

    async def test_list_orders_by_latest_activity(self, service: MessagingService, make_product, alice, bob, carol):
        """
        Behavior:
          - Alice talks to Bob about two products and to Carol about one.
          - Activity in the oldest conversation moves it to the top.
        """
        bike = await make_product(bob)
        lamp = await make_product(bob)
        chair = await make_product(carol)

        c_bike = await service.start_conversation(alice.id, bike.id, bob.id)
        c_lamp = await service.start_conversation(alice.id, lamp.id, bob.id)
        c_chair = await service.start_conversation(alice.id, chair.id, carol.id)

        await service.send_message(bob.id, c_bike.id, "Yes, still available")

        page = await service.list_conversations(alice.id)
        assert [c.id for c in page.items] == [c_bike.id, c_chair.id, c_lamp.id]
        assert page.total == 3
        assert page.page == 1
        assert page.page_size == service.default_page_size

        bob_page = await service.list_conversations(bob.id)
        assert {c.id for c in bob_page.items} == {c_bike.id, c_lamp.id}
        assert all(c.participant.id == alice.id for c in bob_page.items)

    async def test_list_pagination_and_limits(self, service: MessagingService, make_product, alice, bob):
        for _ in range(3):
            product = await make_product(bob)
            await service.start_conversation(alice.id, product.id, bob.id)

        first = await service.list_conversations(alice.id, page=1, page_size=2)
        second = await service.list_conversations(alice.id, page=2, page_size=2)
        assert len(first.items) == 2 and len(second.items) == 1
        assert first.total == second.total == 3

        clamped = await service.list_conversations(alice.id, page=1, page_size=10_000)
        assert clamped.page_size == service.max_page_size

        with pytest.raises(InvalidInputError):
            await service.list_conversations(alice.id, page=0)
        with pytest.raises(InvalidInputError):
            await service.list_conversations(alice.id, page_size=0)

    async def test_list_for_user_without_conversations(self, service: MessagingService, carol):
        page = await service.list_conversations(carol.id)
        assert page.items == [] and page.total == 0

    async def test_get_requires_membership(self, service: MessagingService, conversation, alice, carol):
        assert (await service.get_conversation(alice.id, conversation.id)).id == conversation.id

        with pytest.raises(NotParticipantError):
            await service.get_conversation(carol.id, conversation.id)
        with pytest.raises(NotFoundError):
            await service.get_conversation(alice.id, uuid.uuid4())


@pytest.mark.asyncio
class TestDeleteConversation:

    async def test_delete_removes_conversation_and_messages(self, service: MessagingService, conversation, alice, bob, listing):
        for text in ("one", "two", "three"):
            await service.send_message(alice.id, conversation.id, text)

        ack = await service.delete_conversation(bob.id, conversation.id)
        assert ack.ok is True
        assert ack.affected == 3

        with pytest.raises(NotFoundError):
            await service.get_conversation(alice.id, conversation.id)
        with pytest.raises(NotFoundError):
            await service.history(alice.id, conversation.id)
        with pytest.raises(NotFoundError):
            await service.send_message(alice.id, conversation.id, "hello?")

        assert (await service.list_conversations(alice.id)).total == 0

        # starting again opens a brand new, empty conversation
        fresh = await service.start_conversation(alice.id, listing.id, bob.id)
        assert fresh.id != conversation.id
        assert (await service.history(alice.id, fresh.id)).total == 0

    async def test_failed_delete_keeps_every_message(
        self, service: MessagingService, conversation, alice, bob, monkeypatch
    ):
        """
        Behavior:
          - The messages are purged, then removing the conversation row fails.
          - The whole delete rolls back: conversation and messages are still there.
        """
        for text in ("one", "two"):
            await service.send_message(alice.id, conversation.id, text)

        real_purge = MessageRepository.delete_conversation_messages
        purged = []

        async def purge_then_fail(self, conversation_id):
            purged.append(await real_purge(self, conversation_id))
            raise InternalError()

        monkeypatch.setattr(MessageRepository, "delete_conversation_messages", purge_then_fail)

        with pytest.raises(InternalError):
            await service.delete_conversation(bob.id, conversation.id)

        assert purged == [2]
        history = await service.history(alice.id, conversation.id)
        assert [m.text for m in history.items] == ["one", "two"]
        assert (await service.get_conversation(bob.id, conversation.id)).last_message == "two"

    async def test_delete_by_non_participant_is_forbidden(self, service: MessagingService, conversation, alice, carol):
        await service.send_message(alice.id, conversation.id, "keep")

        with pytest.raises(NotParticipantError):
            await service.delete_conversation(carol.id, conversation.id)

        assert (await service.history(alice.id, conversation.id)).total == 1

    async def test_delete_missing_conversation(self, service: MessagingService, alice):
        with pytest.raises(NotFoundError):
            await service.delete_conversation(alice.id, uuid.uuid4())


@pytest.mark.asyncio
class TestBlocking:

    async def test_block_stops_both_participants(self, service: MessagingService, conversation, alice, bob):
        ack = await service.block_conversation(bob.id, conversation.id)
        assert ack.affected == 1
        assert (await service.get_conversation(alice.id, conversation.id)).is_blocked is True

        for sender in (alice, bob):
            with pytest.raises(ForbiddenError):
                await service.send_message(sender.id, conversation.id, "hello")

        assert (await service.history(alice.id, conversation.id)).total == 0

    async def test_block_is_idempotent(self, service: MessagingService, conversation, alice, bob):
        assert (await service.block_conversation(bob.id, conversation.id)).affected == 1
        assert (await service.block_conversation(bob.id, conversation.id)).affected == 0
        # blocked by Bob already; Alice's block changes nothing
        assert (await service.block_conversation(alice.id, conversation.id)).affected == 0

    async def test_only_the_blocker_can_unblock(self, service: MessagingService, conversation, alice, bob):
        await service.block_conversation(bob.id, conversation.id)

        with pytest.raises(ForbiddenError):
            await service.unblock_conversation(alice.id, conversation.id)

        assert (await service.unblock_conversation(bob.id, conversation.id)).affected == 1
        assert (await service.unblock_conversation(bob.id, conversation.id)).affected == 0

        message = await service.send_message(alice.id, conversation.id, "Thanks for unblocking")
        assert message.text == "Thanks for unblocking"

    async def test_initial_message_into_blocked_conversation(self, service: MessagingService, conversation, alice, bob, listing):
        await service.block_conversation(bob.id, conversation.id)

        with pytest.raises(ForbiddenError):
            await service.start_conversation(alice.id, listing.id, bob.id, "Please?")

        # without text the existing conversation is still returned
        view = await service.start_conversation(alice.id, listing.id, bob.id)
        assert view.id == conversation.id and view.is_blocked

    async def test_block_requires_membership(self, service: MessagingService, conversation, carol):
        with pytest.raises(NotParticipantError):
            await service.block_conversation(carol.id, conversation.id)


@pytest.mark.asyncio
class TestRebuildSummary:

    async def test_consistent_summary_is_left_alone(self, service: MessagingService, conversation, alice):
        await service.send_message(alice.id, conversation.id, "first")
        await service.send_message(alice.id, conversation.id, "second")

        ack = await service.rebuild_summary(conversation.id)
        assert ack.affected == 0

    async def test_diverged_summary_is_repaired(self, service: MessagingService, session_factory, conversation, alice):
        sent = await service.send_message(alice.id, conversation.id, "the real last message")

        async with session_factory() as session:
            async with session.begin():
                await ConversationRepository(session).overwrite_summary(
                    conversation.id, "stale", conversation.created_at
                )

        ack = await service.rebuild_summary(conversation.id)
        assert ack.affected == 1

        view = await service.get_conversation(alice.id, conversation.id)
        assert view.last_message == "the real last message"
        assert view.last_message_at == sent.timestamp

    async def test_empty_conversation_summary(self, service: MessagingService, conversation):
        assert (await service.rebuild_summary(conversation.id)).affected == 0

    async def test_missing_conversation(self, service: MessagingService):
        with pytest.raises(NotFoundError):
            await service.rebuild_summary(uuid.uuid4())
