from typing import Dict

import pytest
from fastapi.testclient import TestClient

from rewards_api.config import Settings
from rewards_api.dependencies import get_settings_repository, get_user_repository
from rewards_api.main import create_app

from .fakes import TEST_ROUNDS, InMemorySettingsRepository, InMemoryUserRepository


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=None,
        JWT_SECRET="test-secret",
        BCRYPT_ROUNDS=TEST_ROUNDS,
        ENVIRONMENT="test",
    )


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def settings_repo() -> InMemorySettingsRepository:
    return InMemorySettingsRepository()


@pytest.fixture
def app(settings, user_repo, settings_repo):
    application = create_app(settings)
    application.dependency_overrides[get_user_repository] = lambda: user_repo
    application.dependency_overrides[get_settings_repository] = lambda: settings_repo
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    def _register(name: str = "Ana", email: str = "a@x.com", password: str = "pw123456"):
        return client.post("/auth/register", json={"name": name, "email": email, "password": password})

    return _register


@pytest.fixture
def auth_headers(register) -> Dict[str, str]:
    response = register(name="Admin", email="admin@x.com", password="admin-pass")
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
