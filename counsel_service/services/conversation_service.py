"""Send a message and get the counselor's reply; regenerate a reply."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from counsel_service.ai_client import CompletionClient
from counsel_service.errors import message_not_found
from counsel_service.models.message import Message, MessageRole
from counsel_service.services import chat_session_service, message_service
from counsel_service.services.ownership import get_owned_message, get_owned_session
from counsel_service.validation import MAX_MESSAGE_LENGTH

logger = logging.getLogger(__name__)


@dataclass
class Exchange:
    """Result of one send: both stored messages and the session title."""

    user_message: Message
    assistant_message: Message
    session_title: str | None


async def send_message(
    db: AsyncSession,
    client: CompletionClient,
    session_id: UUID,
    user_id: UUID,
    content: str,
) -> Exchange:
    """Store the user's message, ask the completion service, store the reply.

    The user message stays stored when the completion call fails.

    Raises:
        ValidationError: If content is empty or too long
        NotFoundError: If the session is missing or owned by another user
        InternalFailureError: If the completion service fails
    """
    session = await get_owned_session(db, session_id, user_id)

    user_message = await message_service.create_message(
        db, session_id, MessageRole.USER, content, user_id=user_id
    )
    context = await message_service.get_context(db, session_id, user_id)

    logger.info(f"Requesting reply for session {session_id} ({len(context)} messages)")
    reply = (await client.complete(context))[:MAX_MESSAGE_LENGTH]

    # Reply half of the send; ownership was checked for the user message
    assistant_message = await message_service.create_message(
        db, session_id, MessageRole.ASSISTANT, reply
    )

    session = await chat_session_service.ensure_title(db, session, user_message.content)

    return Exchange(
        user_message=user_message,
        assistant_message=assistant_message,
        session_title=session.title,
    )


async def regenerate_response(
    db: AsyncSession,
    client: CompletionClient,
    session_id: UUID,
    message_id: int,
    user_id: UUID,
) -> Message:
    """Replace an assistant answer with a fresh one, keeping the old text in history.

    Raises:
        NotFoundError: If the message is missing, not owned, or not an assistant reply
        InternalFailureError: If the completion service fails
    """
    message = await get_owned_message(db, message_id, user_id, session_id=session_id)
    if message.role != MessageRole.ASSISTANT:
        raise message_not_found()

    context = await message_service.get_context(
        db, session_id, user_id, before_message_id=message_id
    )
    reply = (await client.complete(context))[:MAX_MESSAGE_LENGTH]

    return await message_service.update_message(
        db, message_id, session_id, user_id, reply
    )
