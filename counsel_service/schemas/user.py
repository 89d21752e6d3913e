"""Pydantic schemas for user data."""

from uuid import UUID

from fastapi_users import schemas


class UserRead(schemas.BaseUser[UUID]):
    """Public view of a counseling client."""

    full_name: str | None = None


class UserCreate(schemas.BaseUserCreate):
    """Registration payload."""

    full_name: str | None = None


class UserUpdate(schemas.BaseUserUpdate):
    """Profile update payload."""

    full_name: str | None = None
