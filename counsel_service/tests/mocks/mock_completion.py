"""Mock completion client for testing."""

from collections.abc import Sequence
from unittest.mock import AsyncMock

from counsel_service.errors import InternalFailureError
from counsel_service.models.message import Message


class MockCompletionClient:
    """Completion client that answers from a script instead of a model."""

    def __init__(self) -> None:
        self.complete = AsyncMock(side_effect=self._complete)
        self.replies: list[str] = []
        self.fail = False
        self.calls = 0

    async def _complete(self, messages: Sequence[Message]) -> str:
        self.calls += 1
        if self.fail:
            raise InternalFailureError(
                "Failed to generate AI response. Please try again."
            )
        if self.replies:
            return self.replies.pop(0)
        return f"Counselor reply #{self.calls} to: {messages[-1].content}"

    def last_context(self) -> list[Message]:
        """Messages handed to the most recent call."""
        return list(self.complete.await_args.args[0])
