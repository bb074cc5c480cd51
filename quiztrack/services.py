"""Business logic services used by the HTTP controllers and the UI glue.

`AuthService` owns registration, login and logout against the user
directory kept by the progress store. A successful login marks the user as
active in the store and populates the state container's `user` subtree;
logout clears both.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from .config import settings
from .errors import AuthenticationError, InvalidDataError, NotFoundError
from .progress_store import ProgressStore
from .schemas import DirectoryEntry
from .state import StateContainer, StatePath

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

logger = logging.getLogger("quiztrack.auth")


def validate_registration(username: str, email: str, password: str) -> None:
    """Raise InvalidDataError describing the first problem with the payload."""
    if not username or len(username.strip()) < 3:
        raise InvalidDataError("username must be at least 3 characters")
    if not email or not EMAIL_RE.match(email.strip()):
        raise InvalidDataError("invalid email")
    if not password or len(password) < 6:
        raise InvalidDataError("password must be at least 6 characters")


def generate_user_id() -> str:
    now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"user_{now_ms}_{uuid.uuid4().hex[:9]}"


def issue_token(user: DirectoryEntry) -> str:
    """Sign a JWT carrying the user's id and username."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {"user_id": user.id, "username": user.username, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class AuthService:
    """Register, log in and log out users of the local directory."""
    def __init__(self, store: ProgressStore, state: Optional[StateContainer] = None):
        self.store = store
        self.state = state

    def register(self, username: str, email: str, password: str) -> DirectoryEntry:
        """Create a directory entry and an empty progress record, then log in.

        Validation failures raise InvalidDataError and leave nothing stored.
        """
        validate_registration(username, email, password)
        if self.store.find_user_by_email(email):
            raise InvalidDataError("email already registered")
        now = datetime.now(timezone.utc)
        user = DirectoryEntry(
            id=generate_user_id(),
            username=username.strip(),
            email=email.strip().lower(),
            password_hash=PWD_CTX.hash(password),
            created_at=now,
            last_login=now,
        )
        self.store.upsert_user_directory_entry(user)
        self.store.save(user.id, self.store.load(user.id))
        logger.info("registered user %s", user.id)
        return self.login(email, password)

    def login(self, email: str, password: str) -> DirectoryEntry:
        """Verify credentials, mark the user active and populate the state."""
        user = self.store.find_user_by_email(email)
        if not user:
            raise AuthenticationError("email not found")
        if not user.password_hash or not PWD_CTX.verify(password, user.password_hash):
            raise AuthenticationError("incorrect password")
        user = self.store.upsert_user_directory_entry(
            DirectoryEntry(id=user.id, username=user.username, email=user.email, last_login=datetime.now(timezone.utc))
        )
        self.store.set_active_user(user.id)
        if self.state is not None:
            self.state.login(user)
        return user

    def restore_session(self) -> Optional[DirectoryEntry]:
        """Log the stored active user back in, if there is one."""
        user_id = self.store.get_active_user()
        if not user_id:
            return None
        user = self.store.get_user(user_id)
        if user is None:
            return None
        if self.state is not None:
            self.state.login(user)
        return user

    def logout(self) -> None:
        self.store.clear_active_user()
        if self.state is not None:
            self.state.logout()

    def update_profile(self, user_id: str, username: str) -> DirectoryEntry:
        """Rename a user in the directory and in the state."""
        if not username or not username.strip():
            raise InvalidDataError("no changes provided")
        existing = self.store.get_user(user_id)
        if existing is None:
            raise NotFoundError(f"user not found: {user_id}")
        user = self.store.upsert_user_directory_entry(
            DirectoryEntry(id=existing.id, username=username.strip(), email=existing.email)
        )
        if self.state is not None and self.state.get(StatePath.USER_ID) == user_id:
            self.state.set(StatePath.USER_USERNAME, user.username)
        return user

    def request_password_reset(self, email: str) -> bool:
        """Confirm the email belongs to a user; no mail is sent by the local backend."""
        if not self.store.find_user_by_email(email):
            raise NotFoundError("email not found")
        logger.info("password reset requested for %s", email.strip().lower())
        return True
