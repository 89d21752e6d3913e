"""Identity provider wiring.

The chat core only needs ``current_user``; everything else here is the
fastapi-users JWT setup that issues the tokens it verifies.
"""

from uuid import UUID

from fastapi_users import FastAPIUsers
from fastapi_users.authentication import (
    AuthenticationBackend,
    BearerTransport,
    JWTStrategy,
)

from counsel_service.config import get_settings
from counsel_service.models.user import User
from counsel_service.services.user_manager import get_user_manager

settings = get_settings()


def get_jwt_strategy() -> JWTStrategy:
    """Get JWT authentication strategy."""
    return JWTStrategy(
        secret=settings.secret_key,
        lifetime_seconds=settings.token_lifetime_seconds,
    )


bearer_transport = BearerTransport(tokenUrl="auth/login")
auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, UUID](
    get_user_manager,
    [auth_backend],
)

current_user = fastapi_users.current_user(active=True)
