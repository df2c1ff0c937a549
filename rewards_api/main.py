import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rewards_api.auth_service import AuthService, public_user
from rewards_api.auth_utils import hash_password
from rewards_api.config import Settings, get_settings
from rewards_api.db import Database
from rewards_api.dependencies import (
    get_app_settings,
    get_auth_service,
    get_current_identity,
    get_database,
    get_settings_repository,
    get_user_repository,
)
from rewards_api.errors import AppError
from rewards_api.logging_config import setup_logging
from rewards_api.repositories import SettingsRepository, UserRepository
from rewards_api.schemas import (
    AuthResponse,
    DbTimeResponse,
    DeleteResponse,
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    PingResponse,
    RegisterRequest,
    SettingListResponse,
    SettingResponse,
    SettingUpsertRequest,
    StatsResponse,
    TokenIdentity,
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Liveness and database checks."},
    {"name": "Auth", "description": "Registration, login and current identity."},
    {"name": "Users", "description": "User administration for the dashboard."},
    {"name": "Settings", "description": "Key/value dashboard settings."},
]

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid value")
        parts.append(f"{field}: {msg}" if field else msg)
    return "; ".join(parts) or "invalid request"


def ensure_tables(db: Database) -> bool:
    """Create the users and settings tables; failures are logged, not raised."""
    try:
        UserRepository(db).ensure_table()
        SettingsRepository(db).ensure_table()
    except AppError as exc:
        logger.warning("Skipping table creation: %s", exc.message)
        return False
    logger.info("Tables ready")
    return True


# =========================
# Health
# =========================

@router.get("/", response_model=MessageResponse, tags=["Health"], summary="Liveness check")
def health_check() -> Dict[str, Any]:
    """Liveness endpoint used by the dashboard to verify backend availability."""
    return {"ok": True, "message": "Rewards backend is running"}


@router.get(
    "/api/testdb",
    response_model=DbTimeResponse,
    response_model_exclude_none=True,
    tags=["Health"],
    summary="Database check",
)
def test_db(db: Database = Depends(get_database)) -> Dict[str, Any]:
    """Run `SELECT NOW()`; failures are reported in the body with ok=false."""
    if not db.configured:
        return {"ok": False, "error": "DATABASE_URL not configured"}
    try:
        return {"ok": True, "time": db.now()}
    except AppError as exc:
        return {"ok": False, "error": exc.message}


@router.post("/api/ping", response_model=PingResponse, tags=["Health"], summary="Echo a JSON body")
def ping(payload: Any = Body(None)) -> Dict[str, Any]:
    return {"ok": True, "received": payload}


@router.get("/api/init-db", response_model=MessageResponse, tags=["Health"], summary="Create tables")
@router.get("/setup-db", response_model=MessageResponse, tags=["Health"], summary="Create tables")
def init_db(
    users: UserRepository = Depends(get_user_repository),
    settings_repo: SettingsRepository = Depends(get_settings_repository),
) -> Dict[str, Any]:
    """Idempotently create the users and settings tables."""
    users.ensure_table()
    settings_repo.ensure_table()
    return {"ok": True, "message": "tables ready"}


# =========================
# Auth
# =========================

@router.post("/auth/register", response_model=AuthResponse, tags=["Auth"], summary="Register")
def register(payload: RegisterRequest, auth: AuthService = Depends(get_auth_service)) -> Dict[str, Any]:
    """Create a user and return it with an access token."""
    result = auth.register(payload.name, payload.email, payload.password)
    return {"ok": True, **result}


@router.post("/auth/login", response_model=AuthResponse, tags=["Auth"], summary="Login")
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)) -> Dict[str, Any]:
    """Authenticate a user and return an access token."""
    result = auth.login(payload.email, payload.password)
    return {"ok": True, **result}


@router.get("/auth/me", response_model=IdentityResponse, tags=["Auth"], summary="Current identity")
def me(identity: TokenIdentity = Depends(get_current_identity)) -> Dict[str, Any]:
    return {"ok": True, "identity": identity}


# =========================
# Users
# =========================

@router.get("/users", response_model=UserListResponse, tags=["Users"], summary="List users")
@router.get("/api/users", response_model=UserListResponse, tags=["Users"], summary="List users")
def list_users(
    limit: Optional[int] = Query(None, ge=1, description="Page size, capped at the configured limit"),
    users: UserRepository = Depends(get_user_repository),
    _: TokenIdentity = Depends(get_current_identity),
) -> Dict[str, Any]:
    """List users, newest first."""
    return {"ok": True, "users": [public_user(u) for u in users.list(limit)]}


@router.post("/users", response_model=UserResponse, tags=["Users"], summary="Create user")
@router.post("/api/users", response_model=UserResponse, tags=["Users"], summary="Create user")
def create_user(
    payload: UserCreateRequest,
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_app_settings),
    _: TokenIdentity = Depends(get_current_identity),
) -> Dict[str, Any]:
    """Admin insert; the password is optional."""
    password_hash = hash_password(payload.password, settings.BCRYPT_ROUNDS) if payload.password else None
    user = users.create(payload.name, payload.email, password_hash)
    return {"ok": True, "user": public_user(user)}


@router.put("/users/{user_id}", response_model=UserResponse, tags=["Users"], summary="Update user")
@router.put("/api/users/{user_id}", response_model=UserResponse, tags=["Users"], summary="Update user")
def update_user(
    user_id: int,
    payload: UserUpdateRequest,
    users: UserRepository = Depends(get_user_repository),
    _: TokenIdentity = Depends(get_current_identity),
) -> Dict[str, Any]:
    """Partially update name, email and/or password."""
    user = users.update(user_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "user": public_user(user)}


@router.delete("/users/{user_id}", response_model=DeleteResponse, tags=["Users"], summary="Delete user")
@router.delete("/api/users/{user_id}", response_model=DeleteResponse, tags=["Users"], summary="Delete user")
def delete_user(
    user_id: int,
    users: UserRepository = Depends(get_user_repository),
    _: TokenIdentity = Depends(get_current_identity),
) -> Dict[str, Any]:
    """Delete a user; deleting an absent id still succeeds."""
    users.delete(user_id)
    return {"ok": True, "deleted": user_id}


@router.get("/stats", response_model=StatsResponse, tags=["Users"], summary="Dashboard stats")
def stats(
    users: UserRepository = Depends(get_user_repository),
    _: TokenIdentity = Depends(get_current_identity),
) -> Dict[str, Any]:
    return {"ok": True, "stats": {"users_count": users.count()}}


# =========================
# Settings
# =========================

@router.get("/api/settings", response_model=SettingListResponse, tags=["Settings"], summary="List settings")
def list_settings(settings_repo: SettingsRepository = Depends(get_settings_repository)) -> Dict[str, Any]:
    return {"ok": True, "settings": settings_repo.list()}


@router.post("/api/settings", response_model=SettingResponse, tags=["Settings"], summary="Upsert setting")
def upsert_setting(
    payload: SettingUpsertRequest,
    settings_repo: SettingsRepository = Depends(get_settings_repository),
    _: TokenIdentity = Depends(get_current_identity),
) -> Dict[str, Any]:
    """Insert a setting or overwrite its value."""
    return {"ok": True, "setting": settings_repo.upsert(payload.key, payload.value)}


# =========================
# Application
# =========================

def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal error")


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API with its settings, database handle, CORS policy and error handlers."""
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Rewards Backend API",
        description=(
            "Backend API for the rewards dashboard: users, settings and authentication.\n\n"
            "Auth: Use the `Authorization: Bearer <token>` header for protected routes."
        ),
        version="1.0.0",
        openapi_tags=openapi_tags,
    )
    app.state.settings = settings
    app.state.database = database or Database(settings)

    origins: List[str] = settings.allowed_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentialed responses for a wildcard origin.
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)
    app.include_router(router)

    @app.on_event("startup")
    def _startup() -> None:
        settings.check_startup()
        app.state.table_setup = threading.Thread(
            target=ensure_tables, args=(app.state.database,), name="ensure-tables", daemon=True
        )
        app.state.table_setup.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        table_setup = getattr(app.state, "table_setup", None)
        if table_setup is not None:
            table_setup.join(timeout=settings.DB_CONNECT_TIMEOUT)
        app.state.database.close()

    return app


app = create_app()
