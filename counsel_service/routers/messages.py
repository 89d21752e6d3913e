"""Message, reaction and bookmark routes, nested under a chat session."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service import invalidation
from counsel_service.ai_client import CompletionClient, get_completion_client
from counsel_service.auth import current_user
from counsel_service.database import get_async_session
from counsel_service.models.message import Message
from counsel_service.models.user import User
from counsel_service.rate_limit import scoped_rate_limit
from counsel_service.schemas.chat import (
    BookmarkResponse,
    DeletedResponse,
    EditHistoryResponse,
    ExchangeResponse,
    MarkSessionReadResponse,
    MessageCountResponse,
    MessageCreate,
    MessageEdit,
    MessageResponse,
    MutationResponse,
    PageResponse,
    ReactionCreate,
    ReactionRemoved,
    ReactionSummaryResponse,
)
from counsel_service.services import (
    conversation_service,
    message_service,
    social_service,
)

router = APIRouter(prefix="/chat_sessions/{session_id}/messages", tags=["messages"])
bookmarks_router = APIRouter(prefix="/bookmarks", tags=["messages"])


async def to_responses(
    db: AsyncSession, messages: list[Message], user_id: UUID
) -> list[MessageResponse]:
    """Attach reaction summaries computed for the caller."""
    summaries = await social_service.summaries_for_messages(
        db, [m.id for m in messages], user_id
    )
    responses = []
    for message in messages:
        response = MessageResponse.model_validate(message)
        response.reactions = [
            ReactionSummaryResponse.model_validate(s) for s in summaries[message.id]
        ]
        responses.append(response)
    return responses


# ============================================================================
# Session-wide message operations
# ============================================================================


@router.get("", response_model=PageResponse[MessageResponse])
async def list_messages(
    session_id: UUID,
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = Query(default=None),
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Page through the session's messages, oldest first."""
    page = await message_service.list_messages(db, session_id, user.id, limit, cursor)
    return PageResponse[MessageResponse](
        items=await to_responses(db, page.items, user.id),
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.post(
    "",
    response_model=MutationResponse[ExchangeResponse],
    dependencies=[Depends(scoped_rate_limit("message"))],
)
async def send_message(
    session_id: UUID,
    data: MessageCreate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
    client: CompletionClient = Depends(get_completion_client),
):
    """Send a message and receive the counselor's reply."""
    exchange = await conversation_service.send_message(
        db, client, session_id, user.id, data.content
    )
    user_message, assistant_message = await to_responses(
        db, [exchange.user_message, exchange.assistant_message], user.id
    )
    return MutationResponse[ExchangeResponse](
        data=ExchangeResponse(
            user_message=user_message,
            assistant_message=assistant_message,
            session_title=exchange.session_title,
        ),
        invalidate=invalidation.after_message_change(user.id, session_id),
    )


@router.get("/count", response_model=MessageCountResponse)
async def count_messages(
    session_id: UUID,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Number of messages in the session."""
    count = await message_service.count_messages(db, session_id, user.id)
    return MessageCountResponse(count=count)


@router.get(
    "/search",
    response_model=list[MessageResponse],
    dependencies=[Depends(scoped_rate_limit("search"))],
)
async def search_messages(
    session_id: UUID,
    q: str = Query(default=""),
    limit: int | None = Query(default=None, ge=1),
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Case-insensitive search within the session, newest first."""
    messages = await message_service.search_messages(db, session_id, user.id, q, limit)
    return await to_responses(db, messages, user.id)


@router.get("/context", response_model=list[MessageResponse])
async def get_context(
    session_id: UUID,
    window_size: int | None = Query(default=None, ge=1),
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Conversation window handed to the completion service."""
    messages = await message_service.get_context(db, session_id, user.id, window_size)
    return await to_responses(db, messages, user.id)


@router.post("/read", response_model=MutationResponse[MarkSessionReadResponse])
async def mark_session_read(
    session_id: UUID,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Mark every message of the session as read."""
    marked = await message_service.mark_session_read(db, session_id, user.id)
    return MutationResponse[MarkSessionReadResponse](
        data=MarkSessionReadResponse(marked=marked),
        invalidate=invalidation.after_message_change(user.id, session_id),
    )


# ============================================================================
# Single message
# ============================================================================


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    message = await message_service.get_message(
        db, message_id, user.id, session_id=session_id
    )
    (response,) = await to_responses(db, [message], user.id)
    return response


@router.patch("/{message_id}", response_model=MutationResponse[MessageResponse])
async def edit_message(
    session_id: UUID,
    message_id: int,
    data: MessageEdit,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Edit a message; the previous content goes to its edit history."""
    message = await message_service.update_message(
        db, message_id, session_id, user.id, data.content
    )
    (response,) = await to_responses(db, [message], user.id)
    return MutationResponse[MessageResponse](
        data=response,
        invalidate=invalidation.after_message_change(user.id, session_id),
    )


@router.delete("/{message_id}", response_model=MutationResponse[DeletedResponse])
async def delete_message(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete a message with its reactions and edit history."""
    await message_service.delete_message(db, message_id, session_id, user.id)
    return MutationResponse[DeletedResponse](
        data=DeletedResponse(success=True),
        invalidate=[
            *invalidation.after_message_change(user.id, session_id),
            invalidation.reactions_key(message_id),
            invalidation.bookmarks_key(user.id),
        ],
    )


@router.post(
    "/{message_id}/regenerate",
    response_model=MutationResponse[MessageResponse],
    dependencies=[Depends(scoped_rate_limit("message"))],
)
async def regenerate_response(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
    client: CompletionClient = Depends(get_completion_client),
):
    """Replace an assistant answer with a new one."""
    message = await conversation_service.regenerate_response(
        db, client, session_id, message_id, user.id
    )
    (response,) = await to_responses(db, [message], user.id)
    return MutationResponse[MessageResponse](
        data=response,
        invalidate=invalidation.after_message_change(user.id, session_id),
    )


@router.post("/{message_id}/read", response_model=MutationResponse[MessageResponse])
async def mark_read(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Set the read receipt of a message (idempotent)."""
    message = await message_service.mark_read(db, message_id, session_id, user.id)
    (response,) = await to_responses(db, [message], user.id)
    return MutationResponse[MessageResponse](
        data=response,
        invalidate=invalidation.after_message_change(user.id, session_id),
    )


@router.get("/{message_id}/history", response_model=list[EditHistoryResponse])
async def get_edit_history(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    return await message_service.get_edit_history(
        db, message_id, user.id, session_id=session_id
    )


# ============================================================================
# Reactions and bookmarks
# ============================================================================


@router.get("/{message_id}/reactions", response_model=list[ReactionSummaryResponse])
async def get_reactions(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Reactions grouped by emoji."""
    summaries = await social_service.get_reaction_summary(
        db, message_id, user.id, session_id=session_id
    )
    return [ReactionSummaryResponse.model_validate(s) for s in summaries]


@router.post(
    "/{message_id}/reactions",
    response_model=MutationResponse[list[ReactionSummaryResponse]],
)
async def add_reaction(
    session_id: UUID,
    message_id: int,
    data: ReactionCreate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Add a reaction; 409 if the caller already used this emoji."""
    await social_service.add_reaction(
        db, message_id, user.id, data.emoji, session_id=session_id
    )
    summaries = await social_service.get_reaction_summary(
        db, message_id, user.id, session_id=session_id
    )
    return MutationResponse[list[ReactionSummaryResponse]](
        data=[ReactionSummaryResponse.model_validate(s) for s in summaries],
        invalidate=invalidation.after_reaction_change(session_id, message_id),
    )


@router.delete(
    "/{message_id}/reactions/{emoji}",
    response_model=MutationResponse[ReactionRemoved],
)
async def remove_reaction(
    session_id: UUID,
    message_id: int,
    emoji: str,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Remove a reaction; succeeds when it was already gone."""
    removed = await social_service.remove_reaction(
        db, message_id, user.id, emoji, session_id=session_id
    )
    return MutationResponse[ReactionRemoved](
        data=ReactionRemoved(removed=removed),
        invalidate=invalidation.after_reaction_change(session_id, message_id),
    )


@router.post("/{message_id}/bookmark", response_model=MutationResponse[BookmarkResponse])
async def toggle_bookmark(
    session_id: UUID,
    message_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Flip the bookmark flag."""
    is_bookmarked = await social_service.toggle_bookmark(
        db, message_id, user.id, session_id=session_id
    )
    return MutationResponse[BookmarkResponse](
        data=BookmarkResponse(message_id=message_id, is_bookmarked=is_bookmarked),
        invalidate=invalidation.after_bookmark_change(user.id, session_id),
    )


@bookmarks_router.get("", response_model=PageResponse[MessageResponse])
async def list_bookmarked_messages(
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = Query(default=None),
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Bookmarked messages across all sessions, newest first."""
    page = await social_service.list_bookmarked_messages(db, user.id, limit, cursor)
    return PageResponse[MessageResponse](
        items=await to_responses(db, page.items, user.id),
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )
