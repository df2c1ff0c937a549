from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class OkResponse(BaseModel):
    ok: bool = Field(True, description="True when the request succeeded")


class MessageResponse(OkResponse):
    message: str = Field(..., description="Human readable message")


class ErrorResponse(BaseModel):
    ok: bool = Field(False, description="Always false for errors")
    error: str = Field(..., description="Error message")


class DbTimeResponse(BaseModel):
    ok: bool
    time: Optional[datetime] = None
    error: Optional[str] = None


class PingResponse(OkResponse):
    received: Any = None


# =========================
# Users
# =========================

class UserPublic(BaseModel):
    id: int
    name: str
    email: str
    created_at: Optional[datetime] = None


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr = Field(..., description="Unique email address")
    password: Optional[str] = Field(None, min_length=1, description="Optional password")


class UserUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=1)


class UserResponse(OkResponse):
    user: UserPublic


class UserListResponse(OkResponse):
    users: List[UserPublic]


class DeleteResponse(OkResponse):
    deleted: int


class StatsResponse(OkResponse):
    stats: Dict[str, int]


# =========================
# Auth
# =========================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="Password")


class LoginRequest(BaseModel):
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="Password")


class AuthResponse(OkResponse):
    user: UserPublic
    token: str = Field(..., description="JWT bearer token")


class TokenIdentity(BaseModel):
    id: int
    email: str


class IdentityResponse(OkResponse):
    identity: TokenIdentity


# =========================
# Settings
# =========================

class Setting(BaseModel):
    key: str
    value: Optional[str] = None


class SettingUpsertRequest(BaseModel):
    key: str = Field(..., min_length=1, description="Setting key")
    value: Optional[str] = Field(None, description="Setting value")


class SettingResponse(OkResponse):
    setting: Setting


class SettingListResponse(OkResponse):
    settings: List[Setting]
