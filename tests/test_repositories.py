from unittest.mock import MagicMock

import pytest

from rewards_api.auth_utils import verify_password
from rewards_api.errors import ConflictError, NotFoundError, ValidationError
from rewards_api.repositories import SettingsRepository, UserRepository

from .fakes import TEST_ROUNDS


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def users(db):
    return UserRepository(db, page_limit=100, bcrypt_rounds=TEST_ROUNDS)


def test_ensure_table_is_idempotent_ddl(users, db):
    users.ensure_table()
    sql = db.execute.call_args.args[0]
    assert "CREATE TABLE IF NOT EXISTS users" in sql
    assert "email TEXT UNIQUE NOT NULL" in sql


def test_list_orders_by_id_desc_and_caps_limit(users, db):
    db.fetch_all.return_value = []
    users.list(500)
    sql, params = db.fetch_all.call_args.args
    assert "ORDER BY id DESC" in sql
    assert "password_hash" not in sql
    assert params == [100]

    users.list(5)
    assert db.fetch_all.call_args.args[1] == [5]


def test_create_normalizes_email(users, db):
    db.execute_returning_one.return_value = {"id": 1, "name": "Ana", "email": "a@x.com", "created_at": None}
    users.create(" Ana ", " A@X.com ", None)
    params = db.execute_returning_one.call_args.args[1]
    assert params == ["Ana", "a@x.com", None]


def test_create_duplicate_email_is_conflict(users, db):
    db.execute_returning_one.side_effect = ConflictError("duplicate value violates a unique constraint")
    with pytest.raises(ConflictError, match="email already exists"):
        users.create("Ana", "a@x.com", None)


def test_create_requires_name_and_email(users, db):
    with pytest.raises(ValidationError):
        users.create("Ana", "  ", None)
    db.execute_returning_one.assert_not_called()


def test_update_without_fields_performs_no_write(users, db):
    with pytest.raises(ValidationError, match="no fields"):
        users.update(3, {})
    with pytest.raises(ValidationError):
        users.update(3, {"name": None, "unknown": "x"})
    db.execute_returning_one.assert_not_called()


@pytest.mark.parametrize("bad_id", [0, -1, "3", None, True])
def test_update_rejects_non_positive_ids(users, db, bad_id):
    with pytest.raises(ValidationError):
        users.update(bad_id, {"name": "Ana"})
    db.execute_returning_one.assert_not_called()


def test_update_applies_only_provided_fields_and_hashes_password(users, db):
    db.execute_returning_one.return_value = {"id": 3, "name": "Ana", "email": "a@x.com", "created_at": None}
    users.update(3, {"password": "new-secret"})
    sql, params = db.execute_returning_one.call_args.args
    assert "SET password_hash=%s WHERE id=%s" in sql
    assert "name=%s" not in sql
    assert params[0] != "new-secret"
    assert verify_password("new-secret", params[0])
    assert params[1] == 3


def test_update_unknown_user_is_not_found(users, db):
    db.execute_returning_one.return_value = None
    with pytest.raises(NotFoundError):
        users.update(42, {"name": "Ana"})


def test_update_duplicate_email_is_conflict(users, db):
    db.execute_returning_one.side_effect = ConflictError()
    with pytest.raises(ConflictError, match="email already exists"):
        users.update(3, {"email": "taken@x.com"})


def test_delete_reports_whether_a_row_matched(users, db):
    db.execute.return_value = 1
    assert users.delete(3) is True
    db.execute.return_value = 0
    assert users.delete(3) is False


def test_count(users, db):
    db.fetch_one.return_value = {"users_count": 4}
    assert users.count() == 4


def test_settings_upsert_is_a_single_statement():
    db = MagicMock()
    db.execute_returning_one.return_value = {"key": "theme", "value": "light"}
    repo = SettingsRepository(db)

    repo.upsert("theme", "dark")
    repo.upsert("theme", "light")

    assert db.execute_returning_one.call_count == 2
    sql, params = db.execute_returning_one.call_args.args
    assert "ON CONFLICT (key) DO UPDATE SET value=EXCLUDED.value" in sql
    assert params == ["theme", "light"]
    db.execute.assert_not_called()


def test_settings_upsert_requires_key():
    repo = SettingsRepository(MagicMock())
    with pytest.raises(ValidationError):
        repo.upsert(" ", "x")
