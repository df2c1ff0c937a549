"""
SQL repositories for the `users` and `settings` tables.

Each repository receives the `Database` handle it queries; nothing here reaches
for a global pool.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from rewards_api.auth_utils import hash_password
from rewards_api.db import Database
from rewards_api.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

SETTINGS_DDL = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
)
"""

_PUBLIC_USER_COLUMNS = "id, name, email, created_at"
_UPDATABLE_USER_FIELDS = ("name", "email", "password")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _require_positive_id(user_id: Any) -> int:
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        raise ValidationError("id must be a positive integer")
    return user_id


class UserRepository:
    """CRUD over the `users` table. Public rows never include the password hash."""

    def __init__(self, db: Database, page_limit: int = 100, bcrypt_rounds: int = 10) -> None:
        self.db = db
        self.page_limit = page_limit
        self.bcrypt_rounds = bcrypt_rounds

    # PUBLIC_INTERFACE
    def ensure_table(self) -> None:
        """Create the users table if it does not exist."""
        self.db.execute(USERS_DDL)

    # PUBLIC_INTERFACE
    def list(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """List users, newest id first, capped at the page limit."""
        if limit is None or limit <= 0 or limit > self.page_limit:
            limit = self.page_limit
        return self.db.fetch_all(
            f"SELECT {_PUBLIC_USER_COLUMNS} FROM users ORDER BY id DESC LIMIT %s",
            [limit],
        )

    # PUBLIC_INTERFACE
    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Fetch a user row including its password hash, for credential checks."""
        return self.db.fetch_one(
            f"SELECT {_PUBLIC_USER_COLUMNS}, password_hash FROM users WHERE email=%s",
            [normalize_email(email)],
        )

    # PUBLIC_INTERFACE
    def create(self, name: str, email: str, password_hash: Optional[str] = None) -> Dict[str, Any]:
        """Insert a user; duplicate emails raise ConflictError."""
        if not name or not name.strip() or not email or not email.strip():
            raise ValidationError("name and email are required")
        try:
            user = self.db.execute_returning_one(
                f"INSERT INTO users (name, email, password_hash) VALUES (%s, %s, %s) RETURNING {_PUBLIC_USER_COLUMNS}",
                [name.strip(), normalize_email(email), password_hash],
            )
        except ConflictError:
            raise ConflictError("email already exists")
        logger.info("Created user %s", user["id"])
        return user

    # PUBLIC_INTERFACE
    def update(self, user_id: int, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a partial update of name/email/password; passwords are re-hashed."""
        _require_positive_id(user_id)
        provided = {k: v for k, v in fields.items() if k in _UPDATABLE_USER_FIELDS and v is not None}
        if not provided:
            raise ValidationError("no fields to update")

        assignments = []
        params: List[Any] = []
        if "name" in provided:
            if not str(provided["name"]).strip():
                raise ValidationError("name must not be empty")
            assignments.append("name=%s")
            params.append(str(provided["name"]).strip())
        if "email" in provided:
            if not str(provided["email"]).strip():
                raise ValidationError("email must not be empty")
            assignments.append("email=%s")
            params.append(normalize_email(str(provided["email"])))
        if "password" in provided:
            if not provided["password"]:
                raise ValidationError("password must not be empty")
            assignments.append("password_hash=%s")
            params.append(hash_password(provided["password"], self.bcrypt_rounds))

        params.append(user_id)
        try:
            user = self.db.execute_returning_one(
                f"UPDATE users SET {', '.join(assignments)} WHERE id=%s RETURNING {_PUBLIC_USER_COLUMNS}",
                params,
            )
        except ConflictError:
            raise ConflictError("email already exists")
        if not user:
            raise NotFoundError("user not found")
        return user

    # PUBLIC_INTERFACE
    def delete(self, user_id: int) -> bool:
        """Delete a user by id. Returns False when no row matched."""
        _require_positive_id(user_id)
        affected = self.db.execute("DELETE FROM users WHERE id=%s", [user_id])
        if affected == 0:
            logger.info("Delete of user %s matched no row", user_id)
        return affected > 0

    # PUBLIC_INTERFACE
    def count(self) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) AS users_count FROM users")
        return int(row["users_count"]) if row else 0


class SettingsRepository:
    """Key/value storage in the `settings` table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # PUBLIC_INTERFACE
    def ensure_table(self) -> None:
        self.db.execute(SETTINGS_DDL)

    # PUBLIC_INTERFACE
    def list(self) -> List[Dict[str, Any]]:
        return self.db.fetch_all("SELECT key, value FROM settings ORDER BY key ASC")

    # PUBLIC_INTERFACE
    def upsert(self, key: str, value: Optional[str]) -> Dict[str, Any]:
        """Insert or overwrite a setting in one statement."""
        if not key or not key.strip():
            raise ValidationError("key is required")
        return self.db.execute_returning_one(
            """
            INSERT INTO settings (key, value)
            VALUES (%s, %s)
            ON CONFLICT (key) DO UPDATE SET value=EXCLUDED.value
            RETURNING key, value
            """,
            [key.strip(), value],
        )
