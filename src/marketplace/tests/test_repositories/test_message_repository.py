import pytest
import uuid
from datetime import datetime, timedelta, timezone
from marketplace.exceptions.base import InvalidInputError, NotFoundError
from marketplace.models import MessageKind
from marketplace.repositories import ConversationRepository, MessageRepository
from marketplace.repositories.message_repository import coerce_kind

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
async def thread(conversation_repository: ConversationRepository, product, buyer, seller):
    return await conversation_repository.find_or_create(product.id, buyer.id, seller.id, at=T0)


@pytest.fixture
async def five_messages(message_repository: MessageRepository, thread, buyer, seller):
    """m1..m5, alternating senders, one second apart."""
    senders = [buyer, seller, buyer, seller, buyer]
    return [
        await message_repository.append(thread.id, sender.id, f"m{i}", at=at(i))
        for i, sender in enumerate(senders, start=1)
    ]


class TestCoerceKind:

    @pytest.mark.parametrize("value, expected", [
        (None, MessageKind.TEXT),
        ("text", MessageKind.TEXT),
        (" IMAGE ", MessageKind.IMAGE),
        (MessageKind.SYSTEM, MessageKind.SYSTEM),
    ])
    def test_accepts_known_kinds(self, value, expected):
        assert coerce_kind(value) is expected

    def test_rejects_unknown_kind(self):
        with pytest.raises(InvalidInputError) as exc_info:
            coerce_kind("video")
        assert exc_info.value.fields == ["kind"]


@pytest.mark.asyncio
class TestAppend:

    async def test_append_initial_flags(self, message_repository: MessageRepository, thread, buyer):
        message = await message_repository.append(thread.id, buyer.id, "  Is this still available?  ", at=at(1))

        assert message.body == "Is this still available?"
        assert message.kind is MessageKind.TEXT
        assert message.is_delivered is True
        assert message.is_read is False
        assert message.created_at == at(1)
        assert message.sender.id == buyer.id

    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_append_rejects_empty_text(self, message_repository: MessageRepository, thread, buyer, text):
        with pytest.raises(InvalidInputError) as exc_info:
            await message_repository.append(thread.id, buyer.id, text)
        assert exc_info.value.fields == ["text"]

    async def test_append_to_missing_conversation_is_not_found(self, message_repository: MessageRepository, buyer):
        """The foreign key rejects the row and the violation maps to NotFoundError."""
        with pytest.raises(NotFoundError):
            await message_repository.append(uuid.uuid4(), buyer.id, "hello")


@pytest.mark.asyncio
class TestPaging:
    """
    Pages are cut newest-first and returned oldest-first:
    with five messages and page size 2, page 1 = [m4, m5], page 2 = [m2, m3], page 3 = [m1].
    """

    async def test_pages_without_anchor(self, message_repository: MessageRepository, thread, five_messages):
        pages = [
            [m.body for m in await message_repository.page(thread.id, page, 2)]
            for page in (1, 2, 3, 4)
        ]
        assert pages == [["m4", "m5"], ["m2", "m3"], ["m1"], []]
        assert await message_repository.count_for_conversation(thread.id) == 5

    async def test_anchor_pins_the_window(self, message_repository: MessageRepository, thread, five_messages, buyer):
        anchor = await message_repository.get_latest(thread.id)
        assert anchor.body == "m5"

        await message_repository.append(thread.id, buyer.id, "m6", at=at(6))

        page_two = await message_repository.page(thread.id, 2, 2, anchor)
        assert [m.body for m in page_two] == ["m2", "m3"]
        assert await message_repository.count_for_conversation(thread.id, anchor) == 5
        assert await message_repository.count_for_conversation(thread.id) == 6

    async def test_identical_timestamps_are_ordered_by_id(self, message_repository: MessageRepository, thread, buyer):
        same = [await message_repository.append(thread.id, buyer.id, f"s{i}", at=at(1)) for i in range(4)]

        listed = await message_repository.page(thread.id, 1, 10)
        assert [m.id for m in listed] == sorted(m.id for m in same)

        first = await message_repository.page(thread.id, 1, 2)
        second = await message_repository.page(thread.id, 2, 2)
        assert {m.id for m in first}.isdisjoint({m.id for m in second})

    async def test_get_in_conversation(self, message_repository: MessageRepository, thread, five_messages):
        message = await message_repository.get_in_conversation(thread.id, five_messages[0].id)
        assert message.body == "m1"

        with pytest.raises(NotFoundError) as exc_info:
            await message_repository.get_in_conversation(uuid.uuid4(), five_messages[0].id)
        assert exc_info.value.fields == ["anchor"]

    async def test_get_latest_of_empty_conversation(self, message_repository: MessageRepository, thread):
        assert await message_repository.get_latest(thread.id) is None


@pytest.mark.asyncio
class TestReadFlags:

    async def test_mark_all_read_flips_only_incoming(self, message_repository: MessageRepository, thread, five_messages, seller):
        """
        The seller reads: the buyer's three messages flip, the seller's own two do not.
        A second call flips nothing.
        """
        assert await message_repository.mark_all_read(thread.id, seller.id) == 3
        assert await message_repository.mark_all_read(thread.id, seller.id) == 0

        assert await message_repository.count(conversation_id=thread.id, is_read=True) == 3
        assert await message_repository.count(conversation_id=thread.id, is_read=False) == 2

    async def test_delete_conversation_messages(self, message_repository: MessageRepository, thread, five_messages):
        assert await message_repository.delete_conversation_messages(thread.id) == 5
        assert await message_repository.count_for_conversation(thread.id) == 0
