"""Mock collaborators for testing."""

from counsel_service.tests.mocks.mock_completion import MockCompletionClient

__all__ = ["MockCompletionClient"]
