"""User accounts and cookie sessions."""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from .documents import DocumentStore
from .errors import (
    EmailTakenError,
    InvalidCredentialsError,
    InvalidFieldError,
    NotAuthenticatedError,
    UserNotFoundError,
)
from .models import Session, User, _format_ts, _utc_now

logger = logging.getLogger(__name__)

USERS = "user"
SESSIONS = "session"

MIN_PASSWORD_LENGTH = 6
_PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ITERATIONS
    )
    return digest.hex()


class AccountStore:
    """Registers users and issues, resolves and revokes session tokens."""

    def __init__(self, store: DocumentStore, session_ttl: timedelta = timedelta(days=7)):
        self.store = store
        self.session_ttl = session_ttl

    def _start_session(self, user: User) -> Session:
        now = datetime.now(timezone.utc)
        session = Session(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            expires_at=_format_ts(now + self.session_ttl),
            created_at=_format_ts(now),
        )
        doc = session.to_dict()
        del doc["id"]
        return Session.from_dict(self.store.insert(SESSIONS, doc))

    def register(self, name: str, email: str, password: str) -> tuple[User, Session]:
        """
        Create an account and log it in.

        Raises:
            InvalidFieldError: Blank name or short password.
            EmailTakenError: If the email already has an account.
        """
        problems: dict[str, str] = {}
        if not name.strip():
            problems["name"] = "is required"
        if len(password) < MIN_PASSWORD_LENGTH:
            problems["password"] = f"must be at least {MIN_PASSWORD_LENGTH} characters"
        if problems:
            raise InvalidFieldError(problems)

        normalized = email.strip().lower()
        if self.store.find_one(USERS, {"email": normalized}) is not None:
            raise EmailTakenError(normalized)

        salt = secrets.token_hex(16)
        doc = self.store.insert(
            USERS,
            {
                "name": name.strip(),
                "email": normalized,
                "passwordHash": hash_password(password, salt),
                "salt": salt,
                "role": "user",
                "createdAt": _utc_now(),
            },
        )
        user = User.from_dict(doc)
        logger.info("Registered user %s", user.id)
        return user, self._start_session(user)

    def login(self, email: str, password: str) -> tuple[User, Session]:
        """
        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
        """
        doc = self.store.find_one(USERS, {"email": email.strip().lower()})
        if doc is None:
            raise InvalidCredentialsError()
        user = User.from_dict(doc)
        if not hmac.compare_digest(user.password_hash, hash_password(password, user.salt)):
            raise InvalidCredentialsError()
        return user, self._start_session(user)

    def logout(self, token: str | None) -> None:
        if token:
            self.store.delete(SESSIONS, {"token": token})

    def authenticate(self, token: str | None) -> User:
        """
        Resolve a session token to its user.

        Raises:
            NotAuthenticatedError: Missing, unknown or expired token.
        """
        if not token:
            raise NotAuthenticatedError()
        doc = self.store.find_one(SESSIONS, {"token": token})
        if doc is None:
            raise NotAuthenticatedError("session not found")
        session = Session.from_dict(doc)
        if session.is_expired():
            self.store.delete(SESSIONS, {"token": token})
            raise NotAuthenticatedError("session expired")
        try:
            return self.get_user(session.user_id)
        except UserNotFoundError:
            raise NotAuthenticatedError("user no longer exists")

    def get_user(self, user_id: str) -> User:
        doc = self.store.get(USERS, user_id)
        if doc is None:
            raise UserNotFoundError(user_id)
        return User.from_dict(doc)
