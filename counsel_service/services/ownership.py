"""Ownership checks shared by every session and message operation.

The owner predicate is part of the lookup query itself, so a row that does not
exist and a row that belongs to another user produce the same empty result and
the same NotFoundError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service.errors import NotFoundError, message_not_found, session_not_found
from counsel_service.models.chat_session import ChatSession
from counsel_service.models.message import Message
from counsel_service.validation import is_storable_id


async def get_owned_session(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    *,
    for_update: bool = False,
) -> ChatSession:
    """Load a chat session owned by ``user_id``.

    Args:
        db: Database session
        session_id: Chat session ID
        user_id: Calling user ID
        for_update: Lock the row until the surrounding transaction ends

    Returns:
        ChatSession instance

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    query = select(ChatSession).where(
        ChatSession.id == session_id,
        ChatSession.user_id == user_id,
    )
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    session = result.scalar_one_or_none()
    if session is None:
        raise session_not_found()
    return session


async def get_owned_message(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    *,
    session_id: UUID | None = None,
    for_update: bool = False,
) -> Message:
    """Load a message whose session is owned by ``user_id``.

    Args:
        db: Database session
        message_id: Message ID
        user_id: Calling user ID
        session_id: Session the caller claims the message is in (optional)
        for_update: Lock the message row until the surrounding transaction ends

    Returns:
        Message instance

    Raises:
        NotFoundError: If the message is missing, in another session, or in a
            session owned by another user
    """
    if not is_storable_id(message_id):
        raise message_not_found()

    query = (
        select(Message)
        .join(ChatSession, Message.session_id == ChatSession.id)
        .where(
            Message.id == message_id,
            ChatSession.user_id == user_id,
        )
    )
    if session_id is not None:
        query = query.where(Message.session_id == session_id)
    if for_update:
        query = query.with_for_update(of=Message)

    result = await db.execute(query)
    message = result.scalar_one_or_none()
    if message is None:
        raise message_not_found()
    return message


async def get_owned_sessions(
    db: AsyncSession,
    session_ids: list[UUID],
    user_id: UUID,
) -> list[ChatSession]:
    """Load a batch of chat sessions, all of which must belong to ``user_id``.

    Raises:
        NotFoundError: If any session is missing or owned by another user
    """
    query = select(ChatSession).where(
        ChatSession.id.in_(session_ids),
        ChatSession.user_id == user_id,
    )
    result = await db.execute(query)
    sessions = list(result.scalars().all())
    if len(sessions) != len(set(session_ids)):
        raise NotFoundError("One or more chat sessions not found")
    return sessions
