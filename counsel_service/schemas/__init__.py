"""Pydantic schemas for the chat service."""

from counsel_service.schemas.user import UserCreate, UserRead, UserUpdate

__all__ = ["UserRead", "UserCreate", "UserUpdate"]
