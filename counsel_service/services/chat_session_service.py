"""CRUD operations for chat sessions."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service.config import get_settings
from counsel_service.errors import NotFoundError
from counsel_service.models.base import as_utc, utcnow
from counsel_service.models.chat_session import ChatSession
from counsel_service.models.message import Message
from counsel_service.pagination import Page, paginate
from counsel_service.services.ownership import get_owned_session, get_owned_sessions
from counsel_service.validation import (
    MAX_BULK_SESSIONS,
    MAX_EXPORT_SESSIONS,
    clamp_limit,
    validate_session_ids,
    validate_session_title,
)

logger = logging.getLogger(__name__)

AUTO_TITLE_LENGTH = 50
UNTITLED_EXPORT_TITLE = "Untitled Chat"
RECENT_SESSIONS_WINDOW = timedelta(days=7)


@dataclass
class SessionStats:
    """Values derived from a session's current messages."""

    message_count: int
    last_message_at: datetime | None

    def last_activity(self, updated_at: datetime) -> datetime:
        """Later of the stored update time and the newest message."""
        if self.last_message_at is None:
            return as_utc(updated_at)
        return max(as_utc(updated_at), as_utc(self.last_message_at))


async def create_chat_session(
    db: AsyncSession,
    user_id: UUID,
    title: str | None = None,
) -> ChatSession:
    """Create new chat session for user.

    Args:
        db: Database session
        user_id: User ID
        title: Optional chat title

    Returns:
        Created ChatSession instance

    Raises:
        ValidationError: If the title is blank or too long
    """
    title = validate_session_title(title)

    session = ChatSession(user_id=user_id, title=title, is_archived=False)

    db.add(session)
    await db.commit()
    await db.refresh(session)

    logger.info(f"Created chat session {session.id} for user {user_id}")
    return session


async def list_chat_sessions(
    db: AsyncSession,
    user_id: UUID,
    limit: int | None = None,
    cursor: str | None = None,
    include_archived: bool = False,
    search: str | None = None,
) -> Page[ChatSession]:
    """List user's chat sessions, newest first.

    Args:
        db: Database session
        user_id: User ID
        limit: Page size (clamped to the configured maximum)
        cursor: ``next_cursor`` of the previous page
        include_archived: Include archived chats
        search: Case-insensitive title filter

    Returns:
        Page of ChatSession instances
    """
    settings = get_settings()
    limit = clamp_limit(limit, settings.session_page_size, settings.max_page_size)

    query = select(ChatSession).where(ChatSession.user_id == user_id)

    if not include_archived:
        query = query.where(ChatSession.is_archived == False)  # noqa: E712
    if search:
        query = query.where(ChatSession.title.icontains(search, autoescape=True))

    return await paginate(
        db, query, ChatSession, limit=limit, cursor=cursor, descending=True
    )


async def get_chat_session(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
) -> ChatSession:
    """Get chat session owned by the user.

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    return await get_owned_session(db, session_id, user_id)


async def get_session_stats(
    db: AsyncSession,
    session_ids: list[UUID],
) -> dict[UUID, SessionStats]:
    """Derive message count and last message time for sessions.

    Callers must already have checked ownership of ``session_ids``.

    Returns:
        Mapping of session ID to stats; sessions without messages get zeros
    """
    stats = {session_id: SessionStats(0, None) for session_id in session_ids}
    if not session_ids:
        return stats

    query = (
        select(
            Message.session_id,
            func.count(Message.id),
            func.max(Message.created_at),
        )
        .where(Message.session_id.in_(session_ids))
        .group_by(Message.session_id)
    )
    result = await db.execute(query)
    for session_id, count, last_message_at in result.all():
        stats[session_id] = SessionStats(count, last_message_at)
    return stats


async def rename_chat_session(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    title: str,
) -> ChatSession:
    """Change a session's title.

    Raises:
        NotFoundError: If the session is missing or owned by another user
        ValidationError: If the title is blank or too long
    """
    title = validate_session_title(title)
    session = await get_owned_session(db, session_id, user_id, for_update=True)

    session.title = title
    session.updated_at = utcnow()

    await db.commit()
    await db.refresh(session)
    return session


async def set_archived(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    archived: bool,
) -> ChatSession:
    """Archive or unarchive a session.

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    session = await get_owned_session(db, session_id, user_id, for_update=True)

    session.is_archived = archived
    session.archived_at = utcnow() if archived else None
    session.updated_at = utcnow()

    await db.commit()
    await db.refresh(session)

    logger.info(f"Session {session_id} archived={archived}")
    return session


async def delete_chat_session(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
) -> None:
    """Permanently delete a session with its messages, reactions and history.

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    session = await get_owned_session(db, session_id, user_id, for_update=True)

    await db.delete(session)
    await db.commit()

    logger.info(f"Deleted chat session {session_id} for user {user_id}")


async def ensure_title(
    db: AsyncSession,
    session: ChatSession,
    first_message: str,
) -> ChatSession:
    """Give an untitled session a title taken from its first message."""
    if session.title:
        return session

    title = first_message.strip().splitlines()[0]
    if len(title) > AUTO_TITLE_LENGTH:
        title = title[: AUTO_TITLE_LENGTH - 3].rstrip() + "..."
    session.title = title

    await db.commit()
    await db.refresh(session)
    return session


async def bulk_delete_sessions(
    db: AsyncSession,
    session_ids: list[UUID],
    user_id: UUID,
) -> int:
    """Delete several sessions at once; all of them must belong to the user.

    Returns:
        Number of deleted sessions

    Raises:
        ValidationError: If no ids or more than MAX_BULK_SESSIONS were given
        NotFoundError: If any session is missing or owned by another user
    """
    session_ids = validate_session_ids(session_ids, MAX_BULK_SESSIONS)
    await get_owned_sessions(db, session_ids, user_id)

    stmt = delete(ChatSession).where(
        ChatSession.id.in_(session_ids),
        ChatSession.user_id == user_id,
    )
    result = await db.execute(stmt)
    await db.commit()

    logger.info(f"Bulk deleted {result.rowcount} chat sessions for user {user_id}")
    return result.rowcount


async def bulk_set_archived(
    db: AsyncSession,
    session_ids: list[UUID],
    user_id: UUID,
    archived: bool,
) -> int:
    """Archive or unarchive several sessions at once.

    Returns:
        Number of updated sessions

    Raises:
        ValidationError: If no ids or more than MAX_BULK_SESSIONS were given
        NotFoundError: If any session is missing or owned by another user
    """
    session_ids = validate_session_ids(session_ids, MAX_BULK_SESSIONS)
    await get_owned_sessions(db, session_ids, user_id)

    now = utcnow()
    stmt = (
        update(ChatSession)
        .where(ChatSession.id.in_(session_ids), ChatSession.user_id == user_id)
        .values(
            is_archived=archived,
            archived_at=now if archived else None,
            updated_at=now,
        )
    )
    result = await db.execute(stmt)
    await db.commit()

    logger.info(f"Bulk set archived={archived} on {result.rowcount} sessions")
    return result.rowcount


@dataclass
class SessionExport:
    """A session with its full transcript, oldest message first."""

    session: ChatSession
    messages: list[Message]
    updated_at: datetime

    @property
    def title(self) -> str:
        return self.session.title or UNTITLED_EXPORT_TITLE

    @property
    def message_count(self) -> int:
        return len(self.messages)


async def _build_exports(
    db: AsyncSession, sessions: list[ChatSession]
) -> list[SessionExport]:
    session_ids = [session.id for session in sessions]
    transcripts: dict[UUID, list[Message]] = {session_id: [] for session_id in session_ids}

    query = (
        select(Message)
        .where(Message.session_id.in_(session_ids))
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    result = await db.execute(query)
    for message in result.scalars().all():
        transcripts[message.session_id].append(message)

    exports = []
    for session in sessions:
        messages = transcripts[session.id]
        stats = SessionStats(
            len(messages), messages[-1].created_at if messages else None
        )
        exports.append(
            SessionExport(session, messages, stats.last_activity(session.updated_at))
        )
    return exports


async def export_session(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
) -> SessionExport:
    """Full transcript of one session, archived or not.

    Raises:
        NotFoundError: If the session is missing or owned by another user
    """
    session = await get_owned_session(db, session_id, user_id)
    (export,) = await _build_exports(db, [session])
    return export


async def export_sessions(
    db: AsyncSession,
    session_ids: list[UUID],
    user_id: UUID,
    include_archived: bool = False,
) -> list[SessionExport]:
    """Transcripts of several sessions, newest session first.

    Ids that are missing, foreign, or archived (unless ``include_archived``)
    are skipped.

    Raises:
        ValidationError: If no ids or more than MAX_EXPORT_SESSIONS were given
        NotFoundError: If none of the requested sessions could be exported
    """
    session_ids = validate_session_ids(session_ids, MAX_EXPORT_SESSIONS)

    query = select(ChatSession).where(
        ChatSession.id.in_(session_ids),
        ChatSession.user_id == user_id,
    )
    if not include_archived:
        query = query.where(ChatSession.is_archived == False)  # noqa: E712
    query = query.order_by(ChatSession.created_at.desc(), ChatSession.id.desc())

    result = await db.execute(query)
    sessions = list(result.scalars().all())
    if not sessions:
        raise NotFoundError("No chat sessions found")

    return await _build_exports(db, sessions)


@dataclass
class UserStats:
    """Totals across all of a user's sessions."""

    total_sessions: int
    total_messages: int
    recent_sessions: int


async def get_user_stats(db: AsyncSession, user_id: UUID) -> UserStats:
    """Count the user's sessions, their messages, and sessions started recently.

    Archived sessions are included in every total.
    """
    total_sessions = await db.scalar(
        select(func.count(ChatSession.id)).where(ChatSession.user_id == user_id)
    )
    total_messages = await db.scalar(
        select(func.count(Message.id))
        .join(ChatSession, Message.session_id == ChatSession.id)
        .where(ChatSession.user_id == user_id)
    )
    recent_sessions = await db.scalar(
        select(func.count(ChatSession.id)).where(
            ChatSession.user_id == user_id,
            ChatSession.created_at >= utcnow() - RECENT_SESSIONS_WINDOW,
        )
    )
    return UserStats(total_sessions, total_messages, recent_sessions)
