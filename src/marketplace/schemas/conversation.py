"""Caller-relative conversation projections."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models import Conversation, Product, User


class ParticipantSummary(BaseModel):
    """Public identity of the other participant."""

    id: UUID
    name: str
    avatar: str = ""

    @classmethod
    def from_user(cls, user: User) -> "ParticipantSummary":
        return cls(id=user.id, name=user.name, avatar=user.profile_picture or "")


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    price: Decimal
    image_url: str | None = None
    status: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductSummary":
        return cls(
            id=product.id,
            title=product.title,
            price=product.price,
            image_url=product.image_url,
            status=product.status.value,
        )


class ConversationView(BaseModel):
    """A conversation as seen by one of its participants."""

    id: UUID
    participant: ParticipantSummary
    product: ProductSummary
    last_message: str
    last_message_at: datetime
    unread_count: int
    is_blocked: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def for_viewer(cls, conversation: Conversation, viewer_id: UUID) -> "ConversationView":
        other = conversation.other_participant(viewer_id)
        return cls(
            id=conversation.id,
            participant=ParticipantSummary.from_user(other.user),
            product=ProductSummary.from_product(conversation.product),
            last_message=conversation.last_message,
            last_message_at=conversation.last_message_at,
            unread_count=conversation.unread_count,
            is_blocked=conversation.is_blocked,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationPage(BaseModel):
    items: list[ConversationView] = Field(default_factory=list)
    total: int
    page: int
    page_size: int
