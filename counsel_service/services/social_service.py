"""Reactions and bookmarks attached to messages."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service.config import get_settings
from counsel_service.errors import ConflictError
from counsel_service.models.chat_session import ChatSession
from counsel_service.models.message import Message, MessageReaction
from counsel_service.pagination import Page, paginate
from counsel_service.services.ownership import get_owned_message
from counsel_service.validation import clamp_limit, validate_emoji

logger = logging.getLogger(__name__)


@dataclass
class ReactionSummary:
    """Reactions of one emoji on one message."""

    emoji: str
    count: int
    reacted_by_me: bool


async def add_reaction(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    emoji: str,
    session_id: UUID | None = None,
) -> MessageReaction:
    """Add the caller's reaction to a message.

    Raises:
        NotFoundError: If the message is missing or not owned
        ConflictError: If the caller already reacted with this emoji
        ValidationError: If the emoji is empty or too long
    """
    emoji = validate_emoji(emoji)
    await get_owned_message(db, message_id, user_id, session_id=session_id)

    existing = await _find_reaction(db, message_id, user_id, emoji)
    if existing is not None:
        raise ConflictError(
            "Reaction already exists",
            details={"message_id": message_id, "emoji": emoji},
        )

    reaction = MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji)
    db.add(reaction)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        # Only a concurrent add of the same triple is a conflict
        if await _find_reaction(db, message_id, user_id, emoji) is None:
            logger.error(f"Reaction insert on message {message_id} failed: {e}")
            raise
        raise ConflictError(
            "Reaction already exists",
            details={"message_id": message_id, "emoji": emoji},
        ) from e

    await db.refresh(reaction)
    return reaction


async def remove_reaction(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    emoji: str,
    session_id: UUID | None = None,
) -> bool:
    """Remove the caller's reaction; succeeds when there is nothing to remove.

    Returns:
        True if a reaction was deleted, False if none existed

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    emoji = validate_emoji(emoji)
    await get_owned_message(db, message_id, user_id, session_id=session_id)

    stmt = delete(MessageReaction).where(
        MessageReaction.message_id == message_id,
        MessageReaction.user_id == user_id,
        MessageReaction.emoji == emoji,
    )
    result = await db.execute(stmt)
    await db.commit()

    return bool(result.rowcount)


async def toggle_bookmark(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    session_id: UUID | None = None,
) -> bool:
    """Flip the bookmark flag of a message.

    Returns:
        New bookmark state

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    message = await get_owned_message(
        db, message_id, user_id, session_id=session_id, for_update=True
    )

    message.is_bookmarked = not message.is_bookmarked
    await db.commit()

    logger.debug(f"Message {message_id} bookmarked={message.is_bookmarked}")
    return message.is_bookmarked


async def get_reaction_summary(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    session_id: UUID | None = None,
) -> list[ReactionSummary]:
    """Reactions on a message grouped by emoji.

    Raises:
        NotFoundError: If the message is missing or not owned
    """
    await get_owned_message(db, message_id, user_id, session_id=session_id)
    summaries = await summaries_for_messages(db, [message_id], user_id)
    return summaries[message_id]


async def summaries_for_messages(
    db: AsyncSession,
    message_ids: list[int],
    user_id: UUID,
) -> dict[int, list[ReactionSummary]]:
    """Reaction summaries for several messages at once.

    Callers must already have checked ownership of ``message_ids``.

    Returns:
        Mapping of message ID to summaries sorted by emoji
    """
    summaries: dict[int, list[ReactionSummary]] = {mid: [] for mid in message_ids}
    if not message_ids:
        return summaries

    query = select(
        MessageReaction.message_id,
        MessageReaction.emoji,
        MessageReaction.user_id,
    ).where(MessageReaction.message_id.in_(message_ids))
    result = await db.execute(query)

    users_by_key: dict[tuple[int, str], set[UUID]] = {}
    for message_id, emoji, reactor_id in result.all():
        users_by_key.setdefault((message_id, emoji), set()).add(reactor_id)

    for (message_id, emoji), reactors in sorted(users_by_key.items()):
        summaries[message_id].append(
            ReactionSummary(
                emoji=emoji,
                count=len(reactors),
                reacted_by_me=user_id in reactors,
            )
        )
    return summaries


async def list_bookmarked_messages(
    db: AsyncSession,
    user_id: UUID,
    limit: int | None = None,
    cursor: str | None = None,
) -> Page[Message]:
    """Bookmarked messages across all of the caller's sessions, newest first."""
    settings = get_settings()
    limit = clamp_limit(limit, settings.session_page_size, settings.max_page_size)

    query = (
        select(Message)
        .join(ChatSession, Message.session_id == ChatSession.id)
        .where(
            ChatSession.user_id == user_id,
            Message.is_bookmarked == True,  # noqa: E712
        )
    )
    return await paginate(
        db, query, Message, limit=limit, cursor=cursor, descending=True
    )


async def _find_reaction(
    db: AsyncSession,
    message_id: int,
    user_id: UUID,
    emoji: str,
) -> MessageReaction | None:
    query = select(MessageReaction).where(
        MessageReaction.message_id == message_id,
        MessageReaction.user_id == user_id,
        MessageReaction.emoji == emoji,
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()
