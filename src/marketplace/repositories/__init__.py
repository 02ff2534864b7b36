"""
Repository layer initialization module.

Usage:
    from marketplace.repositories import ConversationRepository, MessageRepository
"""

from .base_repository import BaseRepository
from .user_repository import UserRepository
from .product_repository import ProductRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "ProductRepository",
    "ConversationRepository",
    "MessageRepository",
]
