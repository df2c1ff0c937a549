from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from rewards_api.config import Settings
from rewards_api.errors import AuthenticationError

_INVALID_TOKEN_STATUS = 403


@lru_cache()
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


# PUBLIC_INTERFACE
def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a plaintext password."""
    return _pwd_context(rounds).hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify a plaintext password against a stored hash; a missing or unreadable hash never matches."""
    if not password or not password_hash:
        return False
    try:
        return _pwd_context(10).verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def _create_access_token(payload: Dict[str, Any], settings: Settings, expires_delta: timedelta) -> str:
    to_encode = payload.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret(), algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def create_user_access_token(
    user_id: int,
    email: str,
    settings: Settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token carrying the user's id and email."""
    return _create_access_token(
        {"sub": str(user_id), "id": user_id, "email": email},
        settings,
        expires_delta=expires_delta or timedelta(hours=settings.JWT_EXPIRES_HOURS),
    )


# PUBLIC_INTERFACE
def decode_access_token(token: Optional[str], settings: Settings) -> Dict[str, Any]:
    """Return the `{id, email}` identity embedded in a token."""
    if not token:
        raise AuthenticationError("missing token")
    secret = settings.jwt_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
        user_id = int(payload["id"])
        email = payload["email"]
    except (JWTError, KeyError, TypeError, ValueError):
        raise AuthenticationError("invalid or expired token", status_code=_INVALID_TOKEN_STATUS)
    if user_id <= 0 or not email:
        raise AuthenticationError("invalid or expired token", status_code=_INVALID_TOKEN_STATUS)
    return {"id": user_id, "email": email}
