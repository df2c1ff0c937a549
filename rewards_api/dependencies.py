"""FastAPI dependencies wiring the app-scoped handles into route handlers."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rewards_api.auth_service import AuthService
from rewards_api.config import Settings
from rewards_api.db import Database
from rewards_api.repositories import SettingsRepository, UserRepository
from rewards_api.schemas import TokenIdentity

_bearer = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_user_repository(
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
) -> UserRepository:
    return UserRepository(db, page_limit=settings.USERS_PAGE_LIMIT, bcrypt_rounds=settings.BCRYPT_ROUNDS)


def get_settings_repository(db: Database = Depends(get_database)) -> SettingsRepository:
    return SettingsRepository(db)


def get_auth_service(
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(users, settings)


# PUBLIC_INTERFACE
def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    auth: AuthService = Depends(get_auth_service),
) -> TokenIdentity:
    """Dependency gating protected routes: 401 without a bearer token, 403 for a bad one."""
    token = credentials.credentials if credentials else None
    return TokenIdentity(**auth.verify_token(token))
