"""Main FastAPI application for the career counsel chat service."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from counsel_service.auth import auth_backend, fastapi_users
from counsel_service.database import create_db_and_tables, dispose_engine
from counsel_service.errors import ChatServiceError, InternalFailureError, RateLimitedError
from counsel_service.rate_limit import enforce_rate_limit
from counsel_service.routers import messages, sessions
from counsel_service.schemas.user import UserCreate, UserRead, UserUpdate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Creating database tables...")
    await create_db_and_tables()
    logger.info("Counsel service started")
    yield
    await dispose_engine()
    logger.info("Counsel service stopped")


app = FastAPI(
    title="Career Counsel Chat Service",
    description="Chat sessions and messages with an AI career counselor",
    version="0.1.0",
    lifespan=lifespan,
    dependencies=[Depends(enforce_rate_limit)],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError):
    """Render service errors as ErrorResponse bodies."""
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
        headers=headers,
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Log store failures in full; the client only sees a generic message."""
    logger.exception(f"Database error on {request.method} {request.url.path}: {exc}")
    error = InternalFailureError()
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Any other failure is reported as an internal error."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    error = InternalFailureError()
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(),
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)

app.include_router(sessions.router)
app.include_router(messages.router)
app.include_router(messages.bookmarks_router)
