"""Message storage: create, page, edit, delete, search and read receipts."""

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service.config import get_settings
from counsel_service.errors import ValidationError
from counsel_service.models.base import utcnow
from counsel_service.models.message import Message, MessageEditHistory, MessageRole
from counsel_service.pagination import Page, paginate
from counsel_service.services.ownership import get_owned_message, get_owned_session
from counsel_service.validation import clamp_limit, validate_message_content

logger = logging.getLogger(__name__)


async def create_message(
    db: AsyncSession,
    session_id: UUID,
    role: MessageRole,
    content: str,
    user_id: UUID | None = None,
) -> Message:
    """Append a message to a session.

    A ``USER`` message always goes through the ownership check. An
    ``ASSISTANT`` message written with ``user_id=None`` is the reply half of a
    send whose user message was already checked, and is stored without one.

    Args:
        db: Database session
        session_id: Chat session ID
        role: Author of the message
        content: Message text
        user_id: Calling user ID (required for USER messages)

    Returns:
        Created Message instance

    Raises:
        ValidationError: If content is empty or too long
        NotFoundError: If the session is missing or owned by another user
    """
    content = validate_message_content(content)

    if user_id is not None:
        await get_owned_session(db, session_id, user_id)
    elif role == MessageRole.USER:
        raise ValueError("USER messages require the calling user_id")

    message = Message(session_id=session_id, role=role, content=content)
    db.add(message)
    await db.commit()
    await db.refresh(message)

    logger.debug(f"Created {role.value} message {message.id} in session {session_id}")
    return message


async def create_message_pair(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    user_content: str,
    assistant_content: str,
) -> tuple[Message, Message]:
    """Store a user message and the assistant reply in one transaction.

    Returns:
        Tuple of (user message, assistant message)

    Raises:
        ValidationError: If either content is empty or too long
        NotFoundError: If the session is missing or owned by another user
    """
    user_content = validate_message_content(user_content)
    assistant_content = validate_message_content(assistant_content)

    await get_owned_session(db, session_id, user_id)

    # Same timestamp for both; the id keeps the user message first
    now = utcnow()
    user_message = Message(
        session_id=session_id,
        role=MessageRole.USER,
        content=user_content,
        created_at=now,
    )
    db.add(user_message)
    await db.flush()

    assistant_message = Message(
        session_id=session_id,
        role=MessageRole.ASSISTANT,
        content=assistant_content,
        created_at=now,
    )
    db.add(assistant_message)
    await db.commit()

    await db.refresh(user_message)
    await db.refresh(assistant_message)
    return user_message, assistant_message


async def list_messages(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    limit: int | None = None,
    cursor: str | None = None,
) -> Page[Message]:
    """Page through a session's messages in chronological order.

    Args:
        db: Database session
        session_id: Chat session ID
        user_id: Calling user ID
        limit: Page size (clamped to the configured maximum)
        cursor: ``next_cursor`` of the previous page

    Returns:
        Page of Message instances, oldest first

    Raises:
        NotFoundError: If the session is missing or owned by another user
        ValidationError: If the cursor is invalid
    """
    settings = get_settings()
    limit = clamp_limit(limit, settings.message_page_size, settings.max_page_size)

    await get_owned_session(db, session_id, user_id)

    query = select(Message).where(Message.session_id == session_id)
    return await paginate(db, query, Message, limit=limit, cursor=cursor)


async def get_context(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    window_size: int | None = None,
    before_message_id: int | None = None,
) -> list[Message]:
    """Most recent messages of a session, oldest first, for the completion service.

    Args:
        db: Database session
        session_id: Chat session ID
        user_id: Calling user ID
        window_size: Number of messages (defaults to the configured window)
        before_message_id: Only include messages ordered before this one

    Returns:
        Up to ``window_size`` messages in chronological order

    Raises:
        NotFoundError: If the session (or the anchor message) is not owned
    """
    settings = get_settings()
    window_size = clamp_limit(
        window_size, settings.context_window_size, settings.max_page_size
    )

    await get_owned_session(db, session_id, user_id)

    query = select(Message).where(Message.session_id == session_id)
    if before_message_id is not None:
        anchor = await get_owned_message(
            db, before_message_id, user_id, session_id=session_id
        )
        query = query.where(
            (Message.created_at < anchor.created_at)
            | ((Message.created_at == anchor.created_at) & (Message.id < anchor.id))
        )

    query = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(
        window_size
    )
    result = await db.execute(query)
    newest_first = list(result.scalars().all())
    newest_first.reverse()
    return newest_first


async def get_message(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    session_id: UUID | None = None,
) -> Message:
    """Get a single message owned (through its session) by the user.

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    return await get_owned_message(db, message_id, user_id, session_id=session_id)


async def update_message(
    db: AsyncSession,
    message_id: int,
    session_id: UUID,
    user_id: UUID,
    new_content: str,
) -> Message:
    """Replace a message's content and record the previous version.

    Also used to regenerate an assistant answer in place.

    Raises:
        ValidationError: If the new content is empty or too long
        NotFoundError: If the message is missing or not owned
    """
    new_content = validate_message_content(new_content)
    message = await get_owned_message(
        db, message_id, user_id, session_id=session_id, for_update=True
    )

    now = utcnow()
    db.add(
        MessageEditHistory(
            message_id=message.id,
            previous_content=message.content,
            new_content=new_content,
            edited_at=now,
        )
    )
    message.content = new_content
    message.is_edited = True
    message.edited_at = now

    await db.commit()
    await db.refresh(message)

    logger.info(f"Edited message {message_id} in session {session_id}")
    return message


async def get_edit_history(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    session_id: UUID | None = None,
) -> list[MessageEditHistory]:
    """Edit history of a message, oldest edit first.

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    await get_owned_message(db, message_id, user_id, session_id=session_id)

    query = (
        select(MessageEditHistory)
        .where(MessageEditHistory.message_id == message_id)
        .order_by(MessageEditHistory.edited_at.asc(), MessageEditHistory.id.asc())
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def delete_message(
    db: AsyncSession,
    message_id: int,
    session_id: UUID,
    user_id: UUID,
) -> None:
    """Delete a message together with its reactions and edit history.

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    message = await get_owned_message(
        db, message_id, user_id, session_id=session_id, for_update=True
    )

    await db.delete(message)
    await db.commit()

    logger.info(f"Deleted message {message_id} from session {session_id}")


async def count_messages(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
) -> int:
    """Current number of messages in a session.

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    await get_owned_session(db, session_id, user_id)

    query = (
        select(func.count())
        .select_from(Message)
        .where(Message.session_id == session_id)
    )
    result = await db.execute(query)
    return result.scalar_one()


async def search_messages(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    query: str,
    limit: int | None = None,
) -> list[Message]:
    """Case-insensitive substring search over a session's messages.

    Args:
        db: Database session
        session_id: Chat session ID
        user_id: Calling user ID
        query: Text to look for; LIKE wildcards are matched literally
        limit: Maximum number of results

    Returns:
        Matching messages, newest first

    Raises:
        ValidationError: If the query is empty
        NotFoundError: If the session is missing or owned by another user
    """
    if not query or not query.strip():
        raise ValidationError("Search query cannot be empty")

    settings = get_settings()
    limit = clamp_limit(limit, settings.search_page_size, settings.max_page_size)

    await get_owned_session(db, session_id, user_id)

    stmt = (
        select(Message)
        .where(
            Message.session_id == session_id,
            Message.content.icontains(query, autoescape=True),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession,
    message_id: int,
    session_id: UUID,
    user_id: UUID,
) -> Message:
    """Set the read receipt of a message; no-op when already read.

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    message = await get_owned_message(
        db, message_id, user_id, session_id=session_id, for_update=True
    )

    if message.read_at is None:
        message.read_at = utcnow()
        await db.commit()
        await db.refresh(message)

    return message


async def mark_session_read(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
) -> int:
    """Mark every unread message of a session as read.

    Returns:
        Number of messages that changed state (0 when all were read already)

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    await get_owned_session(db, session_id, user_id, for_update=True)

    stmt = (
        update(Message)
        .where(Message.session_id == session_id, Message.read_at.is_(None))
        .values(read_at=utcnow())
    )
    result = await db.execute(stmt)
    await db.commit()

    return result.rowcount or 0
