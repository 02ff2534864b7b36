from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from marketplace.database.base import Base, UTCDateTime, utcnow
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .user import User


# ------------------------------
# Listing lifecycle
# ------------------------------
class ProductStatus(PyEnum):
    """Lifecycle status of a listing."""
    DRAFT = "draft"
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"
    DELETED = "deleted"   # soft-deleted by the seller; hidden from messaging


class Product(Base):
    """
    SQLAlchemy model for a marketplace listing.

    Conversations reference a product; only its summary fields are projected into
    conversation views.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False
    )

    category: Mapped[str] = mapped_column(
        String(50),
        default="other",
        nullable=False
    )

    condition: Mapped[str] = mapped_column(
        String(20),
        default="used",
        nullable=False
    )

    # Primary image URL
    image_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True
    )

    status: Mapped[ProductStatus] = mapped_column(
        SQLEnum(ProductStatus, values_callable=lambda enum: [member.value for member in enum]),
        default=ProductStatus.DRAFT,
        nullable=False,
        index=True
    )

    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True
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

    seller: Mapped["User"] = relationship("User", lazy="selectin")

    @property
    def is_messageable(self) -> bool:
        """Buyers may message about any listing that has not been deleted."""
        return self.status is not ProductStatus.DELETED

    def __repr__(self) -> str:
        return f"<Product(id={self.id!r}, title={self.title!r}, status={self.status.value!r})>"
