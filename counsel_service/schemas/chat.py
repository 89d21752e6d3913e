"""Request and response schemas for sessions and messages."""

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from counsel_service.models.message import MessageRole

T = TypeVar("T")


class ORMModel(BaseModel):
    """Base schema readable from ORM instances."""

    model_config = ConfigDict(from_attributes=True)


class PageResponse(BaseModel, Generic[T]):
    """One page of a cursor-paginated collection."""

    items: list[T]
    next_cursor: str | None = None
    has_more: bool


class MutationResponse(BaseModel, Generic[T]):
    """Result of a mutation plus the query keys that went stale."""

    data: T
    invalidate: list[str]


# ============================================================================
# Sessions
# ============================================================================


class ChatSessionCreate(BaseModel):
    """Schema for creating chat session."""

    title: str | None = None


class ChatSessionUpdate(BaseModel):
    """Schema for updating chat session."""

    title: str | None = None
    is_archived: bool | None = None


class ChatSessionResponse(ORMModel):
    """Response schema for chat session."""

    id: UUID
    title: str | None
    is_archived: bool
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    last_message_at: datetime | None = None


# ============================================================================
# Messages
# ============================================================================


class ReactionSummaryResponse(ORMModel):
    """Reactions of one emoji on a message."""

    emoji: str
    count: int
    reacted_by_me: bool


class MessageResponse(ORMModel):
    """Response schema for a message."""

    id: int
    session_id: UUID
    content: str
    role: MessageRole
    created_at: datetime
    is_edited: bool
    edited_at: datetime | None
    is_bookmarked: bool
    read_at: datetime | None
    reactions: list[ReactionSummaryResponse] = Field(default_factory=list)


class MessageCreate(BaseModel):
    """Schema for sending a message."""

    content: str


class MessageEdit(BaseModel):
    """Schema for editing a message."""

    content: str


class ExchangeResponse(BaseModel):
    """User message with the counselor's reply."""

    user_message: MessageResponse
    assistant_message: MessageResponse
    session_title: str | None


class EditHistoryResponse(ORMModel):
    """One recorded edit."""

    id: UUID
    message_id: int
    previous_content: str
    new_content: str
    edited_at: datetime


class MessageCountResponse(BaseModel):
    count: int


class MarkSessionReadResponse(BaseModel):
    marked: int


# ============================================================================
# Reactions and bookmarks
# ============================================================================


class ReactionCreate(BaseModel):
    """Schema for adding a reaction."""

    emoji: str


class ReactionRemoved(BaseModel):
    removed: bool


class BookmarkResponse(BaseModel):
    message_id: int
    is_bookmarked: bool


class DeletedResponse(BaseModel):
    success: bool


# ============================================================================
# Bulk operations, export and stats
# ============================================================================


class BulkSessionRequest(BaseModel):
    """Schema for acting on several sessions at once."""

    session_ids: list[UUID]


class BulkSessionResponse(BaseModel):
    success: bool
    count: int


class ExportSessionsRequest(BaseModel):
    """Schema for exporting several sessions."""

    session_ids: list[UUID]
    include_archived: bool = False


class ExportedMessage(ORMModel):
    id: int
    role: MessageRole
    content: str
    created_at: datetime


class ExportedUser(BaseModel):
    full_name: str | None
    email: str


class ExportedSession(BaseModel):
    """A session's metadata with its messages in chronological order."""

    id: UUID
    title: str
    is_archived: bool
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime
    messages: list[ExportedMessage]
    message_count: int


class SessionExportResponse(BaseModel):
    user: ExportedUser
    session: ExportedSession
    exported_at: datetime


class SessionsExportResponse(BaseModel):
    user: ExportedUser
    sessions: list[ExportedSession]
    total_sessions: int
    total_messages: int
    exported_at: datetime


class UserStatsResponse(BaseModel):
    total_sessions: int
    total_messages: int
    recent_sessions: int
