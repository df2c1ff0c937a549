import time
from datetime import timedelta

import pytest
from jose import jwt

from rewards_api.auth_service import AuthService
from rewards_api.auth_utils import create_user_access_token, decode_access_token, hash_password, verify_password
from rewards_api.errors import AuthenticationError, ConflictError, NotConfiguredError, ValidationError

from .fakes import TEST_ROUNDS, InMemoryUserRepository


@pytest.fixture
def auth(settings):
    return AuthService(InMemoryUserRepository(), settings)


def test_hash_and_verify_password():
    hashed = hash_password("pw123456", TEST_ROUNDS)
    assert hashed != "pw123456"
    assert verify_password("pw123456", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_treats_missing_or_garbage_hash_as_mismatch():
    assert verify_password("pw123456", None) is False
    assert verify_password("pw123456", "") is False
    assert verify_password("pw123456", "not-a-bcrypt-hash") is False


def test_default_cost_factor_is_ten():
    assert hash_password("pw123456").startswith("$2b$10$")


def test_token_carries_id_and_email(settings):
    token = create_user_access_token(7, "a@x.com", settings)
    assert decode_access_token(token, settings) == {"id": 7, "email": "a@x.com"}

    assert jwt.get_unverified_claims(token)["sub"] == "7"


def test_token_expires_after_configured_hours(settings):
    token = create_user_access_token(7, "a@x.com", settings)
    lifetime = jwt.get_unverified_claims(token)["exp"] - time.time()
    assert 12 * 3600 - 5 <= lifetime <= 12 * 3600


def test_missing_token_is_401(settings):
    with pytest.raises(AuthenticationError) as excinfo:
        decode_access_token(None, settings)
    assert excinfo.value.status_code == 401


def test_expired_or_malformed_token_is_403(settings):
    expired = create_user_access_token(7, "a@x.com", settings, expires_delta=timedelta(seconds=-1))
    for token in (expired, "garbage", expired + "x"):
        with pytest.raises(AuthenticationError) as excinfo:
            decode_access_token(token, settings)
        assert excinfo.value.status_code == 403


def test_token_without_identity_claims_is_403(settings):
    token = jwt.encode({"sub": "7"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError) as excinfo:
        decode_access_token(token, settings)
    assert excinfo.value.status_code == 403


def test_production_without_secret_cannot_sign(settings):
    production = settings.model_copy(update={"ENVIRONMENT": "production", "JWT_SECRET": None})
    with pytest.raises(NotConfiguredError):
        create_user_access_token(1, "a@x.com", production)
    with pytest.raises(NotConfiguredError):
        production.check_startup()


def test_development_without_secret_uses_fallback(settings):
    development = settings.model_copy(update={"ENVIRONMENT": "development", "JWT_SECRET": None})
    token = create_user_access_token(1, "a@x.com", development)
    assert decode_access_token(token, development)["id"] == 1
    development.check_startup()


def test_register_rejects_missing_fields(auth):
    for name, email, password in (("", "a@x.com", "pw"), ("Ana", None, "pw"), ("Ana", "a@x.com", "")):
        with pytest.raises(ValidationError):
            auth.register(name, email, password)


def test_register_hashes_password_and_hides_it(auth):
    result = auth.register("Ana", "a@x.com", "pw123456")
    assert set(result["user"]) == {"id", "name", "email", "created_at"}
    stored = auth.users.get_by_email("a@x.com")
    assert stored["password_hash"] != "pw123456"
    assert verify_password("pw123456", stored["password_hash"])
    assert auth.verify_token(result["token"])["email"] == "a@x.com"


def test_register_duplicate_email_conflicts(auth):
    auth.register("Ana", "a@x.com", "pw123456")
    with pytest.raises(ConflictError):
        auth.register("Other", "a@x.com", "pw654321")


def test_login_errors_are_indistinguishable(auth):
    auth.register("Ana", "a@x.com", "pw123456")
    with pytest.raises(AuthenticationError) as wrong_password:
        auth.login("a@x.com", "nope")
    with pytest.raises(AuthenticationError) as unknown_email:
        auth.login("ghost@x.com", "nope")
    assert wrong_password.value.message == unknown_email.value.message == "invalid credentials"
    assert wrong_password.value.status_code == unknown_email.value.status_code == 401


def test_login_requires_both_fields(auth):
    with pytest.raises(ValidationError):
        auth.login("a@x.com", None)
