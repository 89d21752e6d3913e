"""Adapter for the external completion service."""

import logging
from collections.abc import Sequence
from functools import lru_cache
from typing import Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from counsel_service.config import Settings, get_settings
from counsel_service.errors import InternalFailureError
from counsel_service.models.message import Message, MessageRole

logger = logging.getLogger(__name__)


COUNSELOR_SYSTEM_PROMPT = """You are a supportive, practical career counselor.

You help people with:
- Exploring career paths and transitions
- Resumes, cover letters and interviews
- Skill development and learning plans
- Workplace challenges and negotiation

Ask clarifying questions when the situation is unclear. Give concrete, actionable
advice and keep answers focused.
"""


class CompletionClient(Protocol):
    """Anything that turns an ordered conversation into the next reply."""

    async def complete(self, messages: Sequence[Message]) -> str: ...


def to_langchain_messages(messages: Sequence[Message]) -> list[BaseMessage]:
    """Convert stored messages, oldest first, into chat model input."""
    converted: list[BaseMessage] = [SystemMessage(content=COUNSELOR_SYSTEM_PROMPT)]
    for message in messages:
        if message.role == MessageRole.USER:
            converted.append(HumanMessage(content=message.content))
        else:
            converted.append(AIMessage(content=message.content))
    return converted


def response_text(content: str | list) -> str:
    """Plain text of a model reply.

    Providers may answer with a list of content blocks instead of a string;
    text blocks are joined in order and any other block kind is ignored.
    """
    if isinstance(content, str):
        return content

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type", "text") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class OpenAICompletionClient:
    """Completion client backed by an OpenAI-compatible chat model."""

    def __init__(self, settings: Settings) -> None:
        self.llm = ChatOpenAI(
            model=settings.openai_model,
            temperature=0.7,
            openai_api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )

    async def complete(self, messages: Sequence[Message]) -> str:
        """Generate the counselor's next reply.

        Raises:
            InternalFailureError: If the model call fails or returns nothing
        """
        try:
            response = await self.llm.ainvoke(to_langchain_messages(messages))
        except Exception as e:
            logger.exception(f"Completion request failed: {e}")
            raise InternalFailureError(
                "Failed to generate AI response. Please try again."
            ) from e

        text = response_text(response.content)
        if not text.strip():
            logger.error("Completion service returned an empty response")
            raise InternalFailureError(
                "Failed to generate AI response. Please try again."
            )
        return text


@lru_cache(maxsize=1)
def get_completion_client() -> CompletionClient:
    """FastAPI dependency returning the shared completion client."""
    return OpenAICompletionClient(get_settings())
