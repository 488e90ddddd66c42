"""Tests for AccountStore."""

from datetime import timedelta

import pytest

from shopfront.accounts import SESSIONS, AccountStore, hash_password
from shopfront.errors import (
    EmailTakenError,
    InvalidCredentialsError,
    InvalidFieldError,
    NotAuthenticatedError,
    UserNotFoundError,
)


@pytest.fixture
def accounts(store):
    return AccountStore(store)


class TestRegister:
    def test_register_starts_session(self, accounts, store):
        user, session = accounts.register("Ada", "Ada@Shopfront.io", "secret123")

        assert user.email == "ada@shopfront.io"
        assert user.role == "user"
        assert session.user_id == user.id
        assert store.count(SESSIONS) == 1
        assert user.password_hash != "secret123"
        assert user.password_hash == hash_password("secret123", user.salt)

    def test_duplicate_email(self, accounts):
        accounts.register("Ada", "ada@shopfront.io", "secret123")
        with pytest.raises(EmailTakenError, match="Email already registered"):
            accounts.register("Other", "ADA@shopfront.io", "secret456")

    def test_short_password_and_blank_name(self, accounts):
        with pytest.raises(InvalidFieldError) as exc_info:
            accounts.register(" ", "ada@shopfront.io", "123")
        assert set(exc_info.value.fields) == {"name", "password"}


class TestLogin:
    def test_login(self, accounts):
        registered, _ = accounts.register("Ada", "ada@shopfront.io", "secret123")
        user, session = accounts.login("ADA@shopfront.io", "secret123")

        assert user.id == registered.id
        assert accounts.authenticate(session.token).id == registered.id

    def test_wrong_password(self, accounts):
        accounts.register("Ada", "ada@shopfront.io", "secret123")
        with pytest.raises(InvalidCredentialsError):
            accounts.login("ada@shopfront.io", "wrong-password")

    def test_unknown_email(self, accounts):
        with pytest.raises(InvalidCredentialsError):
            accounts.login("nobody@shopfront.io", "secret123")


class TestAuthenticate:
    def test_missing_token(self, accounts):
        with pytest.raises(NotAuthenticatedError):
            accounts.authenticate(None)

    def test_unknown_token(self, accounts):
        with pytest.raises(NotAuthenticatedError):
            accounts.authenticate("forged")

    def test_logout_revokes(self, accounts):
        _, session = accounts.register("Ada", "ada@shopfront.io", "secret123")
        accounts.logout(session.token)

        with pytest.raises(NotAuthenticatedError):
            accounts.authenticate(session.token)

    def test_expired_session_is_removed(self, store):
        accounts = AccountStore(store, session_ttl=timedelta(seconds=-1))
        _, session = accounts.register("Ada", "ada@shopfront.io", "secret123")

        with pytest.raises(NotAuthenticatedError, match="expired"):
            accounts.authenticate(session.token)
        assert store.count(SESSIONS) == 0

    def test_deleted_user(self, accounts, store):
        user, session = accounts.register("Ada", "ada@shopfront.io", "secret123")
        store.delete("user", {"id": user.id})

        with pytest.raises(NotAuthenticatedError):
            accounts.authenticate(session.token)

    def test_get_user(self, accounts):
        user, _ = accounts.register("Ada", "ada@shopfront.io", "secret123")
        assert accounts.get_user(user.id).name == "Ada"
        with pytest.raises(UserNotFoundError):
            accounts.get_user("missing")
