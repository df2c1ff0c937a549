"""
Application settings loaded from environment variables or a `.env` file.

Resolved once at startup and passed explicitly to the database client,
the auth helpers and the HTTP layer.
"""
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from rewards_api.errors import NotConfiguredError

logger = logging.getLogger(__name__)

_DEV_JWT_SECRET = "dev-only-insecure-jwt-secret"
_PRODUCTION_NAMES = ("production", "prod")


class Settings(BaseSettings):
    """Typed view of the service environment."""

    # Database
    DATABASE_URL: Optional[str] = Field(default=None)
    DB_SSL: bool = Field(default=True)
    DB_SSLMODE: Optional[str] = Field(default=None)
    DB_POOL_MIN: int = Field(default=1, ge=0)
    DB_POOL_MAX: int = Field(default=10, ge=1)
    DB_POOL_TIMEOUT: float = Field(default=30.0, gt=0)
    DB_CONNECT_TIMEOUT: int = Field(default=10, ge=1)

    # HTTP
    ALLOWED_ORIGIN: str = Field(default="*")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=10000)
    USERS_PAGE_LIMIT: int = Field(default=100, ge=1)

    # Auth
    JWT_SECRET: Optional[str] = Field(default=None)
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_EXPIRES_HOURS: int = Field(default=12, ge=1)
    BCRYPT_ROUNDS: int = Field(default=10, ge=4, le=31)

    # Runtime
    ENVIRONMENT: Optional[str] = Field(default=None)
    LOG_LEVEL: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        """An unset ENVIRONMENT counts as production once a database is configured."""
        if not self.ENVIRONMENT:
            return bool(self.DATABASE_URL)
        return self.ENVIRONMENT.strip().lower() in _PRODUCTION_NAMES

    def allowed_origins(self) -> List[str]:
        """Origins for the CORS middleware; `*` means any origin."""
        origins = [o.strip() for o in self.ALLOWED_ORIGIN.split(",") if o.strip()]
        return origins or ["*"]

    def require(self, name: str) -> str:
        """Return a configured value or raise NotConfiguredError naming it."""
        value = getattr(self, name, None)
        if not value:
            raise NotConfiguredError(f"{name} not configured")
        return value

    def jwt_secret(self) -> str:
        if self.JWT_SECRET:
            return self.JWT_SECRET
        if self.is_production:
            raise NotConfiguredError("JWT_SECRET not configured")
        return _DEV_JWT_SECRET

    def check_startup(self) -> None:
        """Fail fast on configuration the service must not run without."""
        if self.is_production and not self.JWT_SECRET:
            raise NotConfiguredError(
                "JWT_SECRET must be set in production (ENVIRONMENT=production, or DATABASE_URL set without ENVIRONMENT)"
            )
        if not self.JWT_SECRET:
            logger.error("JWT_SECRET is not set; tokens are signed with the development fallback secret")
        if not self.DATABASE_URL:
            logger.warning("DATABASE_URL is not set; database routes will fail until it is configured")


# PUBLIC_INTERFACE
@lru_cache()
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
