"""Shared request dependencies: current user and app-wide services."""
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import UnauthorizedError
from app.core.security import user_id_from_access_token, verify_session_token
from app.db.session import get_db
from app.models.user import User
from app.services.quiz_session import QuizSessionManager
from app.services.realtime import RoomEventBus
from app.services.syllabus import SyllabusGenerator

settings = get_settings()


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_user_optional(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User | None:
    """Return the user from a bearer token or the auth cookie; else None."""
    user_id = None
    token = _bearer_token(request)
    if token:
        user_id = user_id_from_access_token(token)
    if user_id is None:
        user_id = verify_session_token(request.cookies.get(settings.auth_cookie_name))
    if user_id is None:
        return None
    return await db.get(User, user_id)


async def get_current_user(
    current_user: Annotated[User | None, Depends(get_current_user_optional)],
) -> User:
    if current_user is None:
        raise UnauthorizedError()
    return current_user


def get_event_bus(request: Request) -> RoomEventBus:
    return request.app.state.event_bus


def get_quiz_manager(request: Request) -> QuizSessionManager:
    return request.app.state.quiz_manager


def get_session_factory(request: Request):
    return request.app.state.session_factory


def get_syllabus_generator(request: Request) -> SyllabusGenerator:
    generator = getattr(request.app.state, "syllabus_generator", None)
    if generator is None:
        generator = SyllabusGenerator.from_settings(get_settings())
        request.app.state.syllabus_generator = generator
    return generator


CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
