"""Database models for the chat service."""

from counsel_service.models.chat_session import ChatSession
from counsel_service.models.message import (
    Message,
    MessageEditHistory,
    MessageReaction,
    MessageRole,
)
from counsel_service.models.user import User

__all__ = [
    "ChatSession",
    "Message",
    "MessageEditHistory",
    "MessageReaction",
    "MessageRole",
    "User",
]
