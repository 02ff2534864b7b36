from sqlalchemy import String, Boolean, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from marketplace.database.base import Base, UTCDateTime, utcnow
import uuid


class User(Base):
    """
    SQLAlchemy model for User.

    Marketplace account created through phone verification. Messaging only reads users
    (participant identity and avatar), it never writes them.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Identifier issued by the phone-auth provider
    firebase_uid: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        index=True,
        nullable=False
    )

    # Display name shown to the other participant
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False
    )

    # E.164 phone number, unique per account
    phone: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        index=True,
        nullable=False
    )

    # Optional, stored lowercased
    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True
    )

    # Avatar URL ("" when the user has not uploaded one)
    profile_picture: Mapped[str] = mapped_column(
        String(500),
        default="",
        nullable=False
    )

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
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

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, name={self.name!r}, phone={self.phone!r})>"
