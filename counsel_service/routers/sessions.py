"""Chat session routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service import invalidation
from counsel_service.auth import current_user
from counsel_service.database import get_async_session
from counsel_service.models.base import as_utc, utcnow
from counsel_service.models.chat_session import ChatSession
from counsel_service.models.user import User
from counsel_service.rate_limit import scoped_rate_limit
from counsel_service.schemas.chat import (
    BulkSessionRequest,
    BulkSessionResponse,
    ChatSessionCreate,
    ChatSessionResponse,
    ChatSessionUpdate,
    DeletedResponse,
    ExportedMessage,
    ExportedSession,
    ExportedUser,
    ExportSessionsRequest,
    MutationResponse,
    PageResponse,
    SessionExportResponse,
    SessionsExportResponse,
    UserStatsResponse,
)
from counsel_service.services import chat_session_service
from counsel_service.services.chat_session_service import SessionExport

router = APIRouter(prefix="/chat_sessions", tags=["chat_sessions"])


async def to_responses(
    db: AsyncSession, sessions: list[ChatSession]
) -> list[ChatSessionResponse]:
    """Attach derived message count and activity times.

    ``updated_at`` is reported as the later of the stored value and the newest
    message, so sending a message moves the session forward.
    """
    stats = await chat_session_service.get_session_stats(db, [s.id for s in sessions])
    responses = []
    for session in sessions:
        response = ChatSessionResponse.model_validate(session)
        session_stats = stats[session.id]
        response.message_count = session_stats.message_count
        response.updated_at = session_stats.last_activity(session.updated_at)
        if session_stats.last_message_at is not None:
            response.last_message_at = as_utc(session_stats.last_message_at)
        responses.append(response)
    return responses


@router.get("", response_model=PageResponse[ChatSessionResponse])
async def list_chat_sessions(
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = Query(default=None),
    include_archived: bool = Query(default=False),
    search: str | None = Query(default=None),
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """List current user's chat sessions, newest first."""
    page = await chat_session_service.list_chat_sessions(
        db, user.id, limit, cursor, include_archived, search
    )
    return PageResponse[ChatSessionResponse](
        items=await to_responses(db, page.items),
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.post(
    "",
    response_model=MutationResponse[ChatSessionResponse],
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def create_chat_session(
    data: ChatSessionCreate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Create new chat session."""
    session = await chat_session_service.create_chat_session(db, user.id, data.title)
    (response,) = await to_responses(db, [session])
    return MutationResponse[ChatSessionResponse](
        data=response,
        invalidate=invalidation.after_session_change(user.id, session.id),
    )


def to_exported_session(export: SessionExport) -> ExportedSession:
    """Flatten a transcript into its export schema."""
    session = export.session
    return ExportedSession(
        id=session.id,
        title=export.title,
        is_archived=session.is_archived,
        archived_at=as_utc(session.archived_at) if session.archived_at else None,
        created_at=as_utc(session.created_at),
        updated_at=export.updated_at,
        messages=[ExportedMessage.model_validate(m) for m in export.messages],
        message_count=export.message_count,
    )


@router.get(
    "/stats",
    response_model=UserStatsResponse,
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def get_user_stats(
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Totals across all of the current user's sessions."""
    stats = await chat_session_service.get_user_stats(db, user.id)
    return UserStatsResponse(
        total_sessions=stats.total_sessions,
        total_messages=stats.total_messages,
        recent_sessions=stats.recent_sessions,
    )


@router.post(
    "/bulk_delete",
    response_model=MutationResponse[BulkSessionResponse],
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def bulk_delete_sessions(
    data: BulkSessionRequest,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete several sessions; nothing is deleted unless all are owned."""
    count = await chat_session_service.bulk_delete_sessions(db, data.session_ids, user.id)
    return MutationResponse[BulkSessionResponse](
        data=BulkSessionResponse(success=True, count=count),
        invalidate=[
            *invalidation.after_bulk_session_change(user.id, data.session_ids),
            invalidation.bookmarks_key(user.id),
        ],
    )


async def _bulk_archive(
    data: BulkSessionRequest, user: User, db: AsyncSession, archived: bool
) -> MutationResponse[BulkSessionResponse]:
    count = await chat_session_service.bulk_set_archived(
        db, data.session_ids, user.id, archived
    )
    return MutationResponse[BulkSessionResponse](
        data=BulkSessionResponse(success=True, count=count),
        invalidate=invalidation.after_bulk_session_change(user.id, data.session_ids),
    )


@router.post(
    "/bulk_archive",
    response_model=MutationResponse[BulkSessionResponse],
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def bulk_archive_sessions(
    data: BulkSessionRequest,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Archive several sessions."""
    return await _bulk_archive(data, user, db, archived=True)


@router.post(
    "/bulk_unarchive",
    response_model=MutationResponse[BulkSessionResponse],
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def bulk_unarchive_sessions(
    data: BulkSessionRequest,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Unarchive several sessions."""
    return await _bulk_archive(data, user, db, archived=False)


@router.post(
    "/export",
    response_model=SessionsExportResponse,
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def export_sessions(
    data: ExportSessionsRequest,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Export several sessions with their transcripts."""
    exports = await chat_session_service.export_sessions(
        db, data.session_ids, user.id, data.include_archived
    )
    return SessionsExportResponse(
        user=ExportedUser(full_name=user.full_name, email=user.email),
        sessions=[to_exported_session(export) for export in exports],
        total_sessions=len(exports),
        total_messages=sum(export.message_count for export in exports),
        exported_at=utcnow(),
    )


@router.get(
    "/{session_id}/export",
    response_model=SessionExportResponse,
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def export_session(
    session_id: UUID,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Export one session with its transcript."""
    export = await chat_session_service.export_session(db, session_id, user.id)
    return SessionExportResponse(
        user=ExportedUser(full_name=user.full_name, email=user.email),
        session=to_exported_session(export),
        exported_at=utcnow(),
    )


@router.get("/{session_id}", response_model=ChatSessionResponse)
async def get_chat_session(
    session_id: UUID,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Get chat session (with ownership check)."""
    session = await chat_session_service.get_chat_session(db, session_id, user.id)
    (response,) = await to_responses(db, [session])
    return response


@router.patch(
    "/{session_id}",
    response_model=MutationResponse[ChatSessionResponse],
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def update_chat_session(
    session_id: UUID,
    data: ChatSessionUpdate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Rename and/or archive a chat session."""
    session = await chat_session_service.get_chat_session(db, session_id, user.id)
    if data.title is not None:
        session = await chat_session_service.rename_chat_session(
            db, session_id, user.id, data.title
        )
    if data.is_archived is not None:
        session = await chat_session_service.set_archived(
            db, session_id, user.id, data.is_archived
        )

    (response,) = await to_responses(db, [session])
    return MutationResponse[ChatSessionResponse](
        data=response,
        invalidate=invalidation.after_session_change(user.id, session_id),
    )


@router.delete(
    "/{session_id}",
    response_model=MutationResponse[DeletedResponse],
    dependencies=[Depends(scoped_rate_limit("session"))],
)
async def delete_chat_session(
    session_id: UUID,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Delete a chat session with all of its messages."""
    await chat_session_service.delete_chat_session(db, session_id, user.id)
    return MutationResponse[DeletedResponse](
        data=DeletedResponse(success=True),
        invalidate=[
            *invalidation.after_session_change(user.id, session_id),
            invalidation.messages_key(session_id),
            invalidation.bookmarks_key(user.id),
        ],
    )
