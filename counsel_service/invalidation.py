"""Query keys a client must refetch after a mutation.

The service does not cache anything itself; mutating routes return these keys
so the client layer knows which query families went stale.
"""

from uuid import UUID


def sessions_key(user_id: UUID) -> str:
    return f"sessions:{user_id}"


def session_key(session_id: UUID) -> str:
    return f"session:{session_id}"


def messages_key(session_id: UUID) -> str:
    return f"messages:{session_id}"


def reactions_key(message_id: int) -> str:
    return f"reactions:{message_id}"


def bookmarks_key(user_id: UUID) -> str:
    return f"bookmarks:{user_id}"


def after_session_change(user_id: UUID, session_id: UUID) -> list[str]:
    """Session created, renamed, archived or deleted."""
    return [sessions_key(user_id), session_key(session_id)]


def after_message_change(user_id: UUID, session_id: UUID) -> list[str]:
    """Message created, edited, deleted or read state changed."""
    return [messages_key(session_id), session_key(session_id), sessions_key(user_id)]


def after_reaction_change(session_id: UUID, message_id: int) -> list[str]:
    """Reaction added or removed."""
    return [reactions_key(message_id), messages_key(session_id)]


def after_bookmark_change(user_id: UUID, session_id: UUID) -> list[str]:
    """Bookmark toggled."""
    return [bookmarks_key(user_id), messages_key(session_id)]


def after_bulk_session_change(user_id: UUID, session_ids: list[UUID]) -> list[str]:
    """Several sessions archived, unarchived or deleted together."""
    keys = [sessions_key(user_id)]
    for session_id in dict.fromkeys(session_ids):
        keys.extend([session_key(session_id), messages_key(session_id)])
    return keys
