"""Identity provider backed by the application's identity workbook.

Users register with an email and password; passwords are stored as salted
PBKDF2-HMAC-SHA256 digests. A provider instance tracks at most one signed-in
session and notifies observers whenever it changes.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, List, Optional
from zipfile import BadZipFile

from openpyxl.utils.exceptions import InvalidFileException

from . import data_manager, log, setup_excel
from .constants import MIN_PASSWORD_LENGTH, AuthErrorCode
from .exceptions import AuthError

PBKDF2_ROUNDS = 260_000
HASH_SCHEME = "pbkdf2_sha256"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_STORE_ERRORS = (OSError, BadZipFile, InvalidFileException)

SessionListener = Callable[[Optional["Session"]], None]


@dataclass(frozen=True)
class Session:
    """Authenticated user session."""

    user_id: str
    email: str
    signed_in_at: datetime


def _hash_password(password: str, salt: str, rounds: int) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        rounds,
    )
    return digest.hex()


def _encode_hash(password: str, salt: str, rounds: int) -> str:
    return f"{HASH_SCHEME}${rounds}${_hash_password(password, salt, rounds)}"


def _verify_password(password: str, salt: str, stored: str) -> bool:
    try:
        scheme, rounds_raw, expected = stored.split("$", 2)
        rounds = int(rounds_raw)
    except ValueError:
        log.error("Unreadable password hash in identity workbook")
        return False
    if scheme != HASH_SCHEME:
        log.error("Unsupported password hash scheme '%s'", scheme)
        return False
    return hmac.compare_digest(_hash_password(password, salt, rounds), expected)


def normalize_email(email: str) -> str:
    """Return the canonical (trimmed, case-folded) form of ``email``.

    Raises:
        AuthError: With ``invalid-email`` when the address is malformed.
    """
    normalized = (email or "").strip().casefold()
    if not _EMAIL_RE.match(normalized):
        log.warning("Rejected malformed email address %r", email)
        raise AuthError(AuthErrorCode.INVALID_EMAIL, f"Invalid email address: {email!r}")
    return normalized


class IdentityProvider:
    """Register, sign in, and sign out users stored in ``identity.xlsx``.

    Args:
        identity_file (Path): Workbook that stores registered users. It is
            created on the first registration when missing.
        rounds (int): PBKDF2 iteration count for newly registered users.
    """

    def __init__(self, identity_file: Path, *, rounds: int = PBKDF2_ROUNDS) -> None:
        self.identity_file = Path(identity_file)
        self.rounds = rounds
        self._session: Optional[Session] = None
        self._listeners: List[SessionListener] = []

    @classmethod
    def from_settings(cls, settings: data_manager.ConfigSettings) -> "IdentityProvider":
        return cls(data_manager.identity_path(settings))

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        """Observe session changes; ``callback`` fires now and on every change.

        Returns:
            Callable[[], None]: Function that removes the observer.
        """
        self._listeners.append(callback)
        callback(self._session)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def register(self, email: str, password: str) -> Session:
        """Create a user and sign it in.

        Raises:
            AuthError: ``invalid-email``, ``weak-password`` (fewer than six
                characters), ``email-in-use``, or ``unknown`` when the identity
                workbook cannot be locked or written.
        """
        normalized = normalize_email(email)
        if len(password or "") < MIN_PASSWORD_LENGTH:
            log.warning("Rejected weak password for '%s'", normalized)
            raise AuthError(
                AuthErrorCode.WEAK_PASSWORD,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            )

        try:
            with data_manager.store_lock(self.identity_file):
                if not self.identity_file.exists():
                    setup_excel.create_identity_workbook(self.identity_file)
                    log.info("Created identity workbook at '%s'", self.identity_file)
                workbook = data_manager.open_workbook(self.identity_file)
                if any(user.email == normalized for user in data_manager.iter_users(workbook)):
                    log.warning("Registration rejected: '%s' already in use", normalized)
                    raise AuthError(AuthErrorCode.EMAIL_IN_USE, f"Email already registered: {normalized}")

                salt = secrets.token_hex(16)
                user = data_manager.insert_user(
                    workbook,
                    data_manager.UserRow(
                        user_id="",
                        email=normalized,
                        password_hash=_encode_hash(password, salt, self.rounds),
                        salt=salt,
                    ),
                )
                data_manager.save_workbook(workbook, self.identity_file)
        except _STORE_ERRORS as exc:
            log.error("Unable to update identity workbook: %s", exc)
            raise AuthError(AuthErrorCode.UNKNOWN, f"Unable to register user: {exc}") from exc

        log.info("Registered user '%s' (%s)", user.user_id, user.email)
        return self._start_session(user)

    def sign_in(self, email: str, password: str) -> Session:
        """Verify credentials and start a session.

        Raises:
            AuthError: ``invalid-email`` for a malformed address,
                ``invalid-credentials`` for an unknown user or wrong password,
                ``unknown`` when the identity workbook cannot be read.
        """
        normalized = normalize_email(email)
        if not self.identity_file.exists():
            log.warning("Sign-in for '%s' failed: no users registered", normalized)
            raise AuthError(AuthErrorCode.INVALID_CREDENTIALS)

        try:
            workbook = data_manager.open_workbook(self.identity_file)
            user = next(
                (row for row in data_manager.iter_users(workbook) if row.email == normalized),
                None,
            )
        except _STORE_ERRORS as exc:
            log.error("Unable to read identity workbook: %s", exc)
            raise AuthError(AuthErrorCode.UNKNOWN, f"Unable to sign in: {exc}") from exc

        if user is None or not _verify_password(password or "", user.salt, user.password_hash):
            log.warning("Sign-in for '%s' failed: invalid credentials", normalized)
            raise AuthError(AuthErrorCode.INVALID_CREDENTIALS)

        log.info("User '%s' signed in", user.user_id)
        return self._start_session(user)

    def sign_out(self) -> None:
        if self._session is None:
            return
        log.info("User '%s' signed out", self._session.user_id)
        self._session = None
        self._emit()

    def _start_session(self, user: data_manager.UserRow) -> Session:
        self._session = Session(user_id=user.user_id, email=user.email, signed_in_at=datetime.now(UTC))
        self._emit()
        return self._session

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._session)


__all__ = ["Session", "IdentityProvider", "normalize_email", "PBKDF2_ROUNDS"]
