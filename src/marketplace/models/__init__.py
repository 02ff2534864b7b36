r"""
Centralized access to all database models of the messaging service.

Importing the models from one place also guarantees every table is registered on
`Base.metadata` before `create_all()` or relationship configuration runs.

Example:

    from marketplace.models import User, Product, Conversation, Message, MessageKind
"""

from .user import User
from .product import Product, ProductStatus
from .conversation import Conversation, ConversationParticipant, canonical_pair
from .message import Message, MessageKind

__all__ = [
    "User",
    "Product",
    "ProductStatus",
    "Conversation",
    "ConversationParticipant",
    "canonical_pair",
    "Message",
    "MessageKind",
]
