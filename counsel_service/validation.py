"""Input validation utilities for the chat service."""

import re
from uuid import UUID

from counsel_service.errors import ValidationError

# User input constraints
MAX_MESSAGE_LENGTH = 4000
MAX_TITLE_LENGTH = 100
MAX_EMOJI_LENGTH = 32
MAX_BULK_SESSIONS = 50
MAX_EXPORT_SESSIONS = 20
# Largest id a BIGINT primary key can hold
MAX_STORED_ID = 2**63 - 1
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def validate_message_content(text: str) -> str:
    """Sanitize and validate message content.

    Args:
        text: Raw message content

    Returns:
        Sanitized content

    Raises:
        ValidationError: If content is empty or exceeds the length limit
    """
    if not text:
        raise ValidationError("Message content cannot be empty")

    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message too long: {len(text)} characters > {MAX_MESSAGE_LENGTH} characters",
            details={"max_length": MAX_MESSAGE_LENGTH},
        )

    # Remove control characters (except newline \n and tab \t)
    sanitized = CONTROL_CHARS.sub("", text).strip()

    if not sanitized:
        raise ValidationError("Message contains only whitespace or control characters")

    return sanitized


def validate_session_title(title: str | None) -> str | None:
    """Validate an optional session title.

    Returns:
        Stripped title, or None when no title was given

    Raises:
        ValidationError: If the title is blank or longer than MAX_TITLE_LENGTH
    """
    if title is None:
        return None

    stripped = CONTROL_CHARS.sub("", title).strip()
    if not stripped:
        raise ValidationError("Session title cannot be empty")
    if len(stripped) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Session title too long: {len(stripped)} characters > {MAX_TITLE_LENGTH}",
            details={"max_length": MAX_TITLE_LENGTH},
        )
    return stripped


def validate_emoji(emoji: str) -> str:
    """Validate a reaction emoji."""
    stripped = emoji.strip() if emoji else ""
    if not stripped:
        raise ValidationError("Emoji cannot be empty")
    if len(stripped) > MAX_EMOJI_LENGTH:
        raise ValidationError(f"Emoji too long (max {MAX_EMOJI_LENGTH} characters)")
    return stripped


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    """Clamp a caller-supplied page size to [1, maximum]."""
    if limit is None:
        limit = default
    return max(1, min(limit, maximum))


def is_storable_id(value: int) -> bool:
    """Whether an integer id fits the store's signed 64-bit key columns."""
    return -MAX_STORED_ID - 1 <= value <= MAX_STORED_ID


def validate_session_ids(session_ids: list[UUID], maximum: int) -> list[UUID]:
    """Deduplicate a batch of session ids, keeping the caller's order.

    Raises:
        ValidationError: If the batch is empty or larger than ``maximum``
    """
    unique = list(dict.fromkeys(session_ids))
    if not unique:
        raise ValidationError("At least one chat session is required")
    if len(unique) > maximum:
        raise ValidationError(
            f"Too many chat sessions: {len(unique)} > {maximum}",
            details={"max_sessions": maximum},
        )
    return unique
