import logging
from typing import Any, Dict, Optional

from rewards_api.auth_utils import create_user_access_token, decode_access_token, hash_password, verify_password
from rewards_api.config import Settings
from rewards_api.errors import AuthenticationError, ValidationError
from rewards_api.repositories import UserRepository

logger = logging.getLogger(__name__)

_PUBLIC_USER_FIELDS = ("id", "name", "email", "created_at")


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    """Strip everything but the public user fields."""
    return {k: row.get(k) for k in _PUBLIC_USER_FIELDS}


class AuthService:
    """Registration, login and token verification on top of the user repository."""

    def __init__(self, users: UserRepository, settings: Settings) -> None:
        self.users = users
        self.settings = settings

    def _issue(self, user: Dict[str, Any]) -> Dict[str, Any]:
        token = create_user_access_token(int(user["id"]), user["email"], self.settings)
        return {"user": public_user(user), "token": token}

    # PUBLIC_INTERFACE
    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """Create a user with a hashed password and return it with a fresh token."""
        if not name or not email or not password:
            raise ValidationError("name, email and password are required")
        user = self.users.create(name, email, hash_password(password, self.settings.BCRYPT_ROUNDS))
        return self._issue(user)

    # PUBLIC_INTERFACE
    def login(self, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """
        Check credentials and return the user with a fresh token.

        Unknown emails and wrong passwords fail with the same error.
        """
        if not email or not password:
            raise ValidationError("email and password are required")
        user = self.users.get_by_email(email)
        if not user or not verify_password(password, user.get("password_hash")):
            logger.info("Rejected login attempt")
            raise AuthenticationError("invalid credentials")
        return self._issue(user)

    # PUBLIC_INTERFACE
    def verify_token(self, token: Optional[str]) -> Dict[str, Any]:
        """Return the `{id, email}` identity of a valid token."""
        return decode_access_token(token, self.settings)
