"""Auth routes: register, login, logout, me. Bearer JWT plus a signed session cookie."""
from __future__ import annotations

import logging
import re

from fastapi import APIRouter, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.config import get_settings
from app.core.exceptions import ConflictError, InvalidInputError, UnauthorizedError
from app.core.security import (
    MAX_PASSWORD_BYTES,
    MIN_PASSWORD_LENGTH,
    create_access_token,
    create_session_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.routers.deps import CurrentUser, DbSession
from app.schemas.auth import LoginSchema, RegisterSchema, TokenOutSchema, UserOutSchema

router = APIRouter(prefix="/api/auth", tags=["auth"])
settings = get_settings()
logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _issue(response: Response, user: User) -> TokenOutSchema:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=create_session_token(user.id),
        max_age=settings.auth_cookie_max_age,
        httponly=True,
        samesite="lax",
        path="/",
    )
    return TokenOutSchema(
        access_token=create_access_token(user.id),
        user=UserOutSchema.model_validate(user),
    )


@router.post("/register", response_model=TokenOutSchema, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterSchema, response: Response, db: DbSession):
    """Create user and log in."""
    email_norm = _normalize_email(body.email)
    pwd = body.password or ""
    username = body.username.strip()

    if not email_norm or not EMAIL_RE.match(email_norm):
        raise InvalidInputError("Invalid email")
    if len(pwd) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(pwd.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidInputError("Password is too long")
    if not username:
        raise InvalidInputError("Username is required")

    existing = await db.execute(select(User).where(User.email == email_norm))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Email already registered")

    user = User(email=email_norm, username=username, hashed_password=hash_password(pwd))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Email already registered") from exc
    await db.refresh(user)
    logger.info("user %s registered", user.id)
    return _issue(response, user)


@router.post("/login", response_model=TokenOutSchema)
async def login(body: LoginSchema, response: Response, db: DbSession):
    result = await db.execute(select(User).where(User.email == _normalize_email(body.email)))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(body.password, user.hashed_password):
        raise UnauthorizedError("Invalid email or password")
    return _issue(response, user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(response: Response):
    # path must match the one used in set_cookie()
    response.delete_cookie(settings.auth_cookie_name, path="/")


@router.get("/me", response_model=UserOutSchema)
async def me(current_user: CurrentUser):
    return current_user
