from .conversation import ConversationPage, ConversationView, ParticipantSummary, ProductSummary
from .message import (
    Ack,
    MessageHistory,
    MessageView,
    SendMessageRequest,
    SenderSummary,
    StartConversationRequest,
)

__all__ = [
    "Ack",
    "ConversationPage",
    "ConversationView",
    "MessageHistory",
    "MessageView",
    "ParticipantSummary",
    "ProductSummary",
    "SendMessageRequest",
    "SenderSummary",
    "StartConversationRequest",
]
