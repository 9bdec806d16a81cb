"""Password hashing, signed session cookies and JWT bearer tokens."""
import base64
import hashlib
import hmac
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt hard limit: 72 bytes (UTF-8)
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def _signature(payload: bytes) -> str:
    key = get_settings().secret_key.encode("utf-8")
    return hmac.new(key, payload, hashlib.sha256).hexdigest()


# Session token: base64(user_id:timestamp).hmac
def create_session_token(user_id: int) -> str:
    """Create a signed session token for the auth cookie."""
    payload = f"{user_id}:{int(time.time())}".encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=") + "." + _signature(payload)


def verify_session_token(token: str | None) -> int | None:
    """Verify signed token and return user_id if valid; None otherwise."""
    if not token or "." not in token:
        return None
    try:
        encoded, sig = token.rsplit(".", 1)
        encoded += "=" * (-len(encoded) % 4)
        payload = base64.urlsafe_b64decode(encoded)
        if not hmac.compare_digest(_signature(payload), sig):
            return None
        user_part, ts_part = payload.decode("utf-8").split(":", 1)
        user_id, ts = int(user_part), int(ts_part)
    except (ValueError, UnicodeDecodeError):
        return None
    if abs(time.time() - ts) > get_settings().auth_cookie_max_age:
        return None
    return user_id


def create_access_token(subject: str | int, extra: dict[str, Any] | None = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(subject), "exp": expire, "type": "access"}
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict | None:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def user_id_from_access_token(token: str) -> int | None:
    claims = decode_access_token(token)
    if not claims or claims.get("type") != "access":
        return None
    try:
        return int(claims["sub"])
    except (KeyError, ValueError):
        return None
