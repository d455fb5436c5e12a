from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from coursechat.core.errors import UnauthenticatedError
from coursechat.core.settings import Settings, get_settings


def _expiry_delta(settings: Settings, expires_delta: Optional[timedelta]) -> timedelta:
    if expires_delta is not None:
        return expires_delta
    minutes = settings.access_token_expire_minutes
    if minutes <= 0:
        minutes = 60
    return timedelta(minutes=minutes)


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.setdefault("iat", now)
    to_encode.update({"exp": now + _expiry_delta(settings, expires_delta)})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.algorithm])


def user_id_from_token(token: str, settings: Optional[Settings] = None) -> int:
    """Return the ``sub`` claim of a valid token as a user id."""
    try:
        payload = decode_token(token, settings)
        raw_user_id = payload.get("sub")
        if raw_user_id is None:
            raise UnauthenticatedError()
        return int(raw_user_id)
    except (JWTError, ValueError, TypeError) as exc:
        raise UnauthenticatedError("Invalid or expired token") from exc
