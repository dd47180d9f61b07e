"""Tests for the workbook-backed identity provider."""

from __future__ import annotations

import pytest

from icarstok import auth, data_manager
from icarstok.constants import AuthErrorCode
from icarstok.exceptions import AuthError


def test_register_creates_identity_workbook_and_session(identity_provider):
    session = identity_provider.register("Owner@Example.com", "secret1")

    assert identity_provider.identity_file.exists()
    assert session.email == "owner@example.com"
    assert session.user_id
    assert identity_provider.current_session == session


def test_register_stores_salted_hash_not_password(identity_provider):
    identity_provider.register("owner@example.com", "secret1")
    identity_provider.register("other@example.com", "secret1")

    users = list(data_manager.iter_users(data_manager.open_workbook(identity_provider.identity_file)))
    assert len(users) == 2
    assert all("secret1" not in user.password_hash for user in users)
    assert users[0].salt != users[1].salt
    assert users[0].password_hash != users[1].password_hash


def test_register_rejects_duplicate_email_case_insensitively(identity_provider):
    identity_provider.register("owner@example.com", "secret1")

    with pytest.raises(AuthError) as excinfo:
        identity_provider.register(" OWNER@example.com ", "another1")

    assert excinfo.value.code is AuthErrorCode.EMAIL_IN_USE


@pytest.mark.parametrize(
    ("email", "password", "code"),
    [
        ("not-an-email", "secret1", AuthErrorCode.INVALID_EMAIL),
        ("", "secret1", AuthErrorCode.INVALID_EMAIL),
        ("owner@example.com", "12345", AuthErrorCode.WEAK_PASSWORD),
    ],
)
def test_register_validates_input(identity_provider, email, password, code):
    with pytest.raises(AuthError) as excinfo:
        identity_provider.register(email, password)

    assert excinfo.value.code is code
    assert identity_provider.current_session is None


def test_sign_in_with_valid_credentials(identity_provider, settings):
    registered = identity_provider.register("owner@example.com", "secret1")
    identity_provider.sign_out()

    fresh_provider = auth.IdentityProvider(data_manager.identity_path(settings))
    session = fresh_provider.sign_in("OWNER@example.com", "secret1")

    assert session.user_id == registered.user_id


@pytest.mark.parametrize(
    ("email", "password"),
    [("owner@example.com", "wrong-pass"), ("nobody@example.com", "secret1")],
)
def test_sign_in_rejects_bad_credentials(identity_provider, email, password):
    identity_provider.register("owner@example.com", "secret1")
    identity_provider.sign_out()

    with pytest.raises(AuthError) as excinfo:
        identity_provider.sign_in(email, password)

    assert excinfo.value.code is AuthErrorCode.INVALID_CREDENTIALS
    assert identity_provider.current_session is None


def test_sign_in_without_any_users(identity_provider):
    with pytest.raises(AuthError) as excinfo:
        identity_provider.sign_in("owner@example.com", "secret1")

    assert excinfo.value.code is AuthErrorCode.INVALID_CREDENTIALS


def test_on_session_change_reports_transitions(identity_provider):
    seen = []
    unsubscribe = identity_provider.on_session_change(seen.append)

    identity_provider.register("owner@example.com", "secret1")
    identity_provider.sign_out()
    unsubscribe()
    identity_provider.sign_in("owner@example.com", "secret1")

    assert seen[0] is None
    assert seen[1].email == "owner@example.com"
    assert seen[2] is None
    assert len(seen) == 3


def test_sign_out_without_session_is_a_no_op(identity_provider):
    seen = []
    identity_provider.on_session_change(seen.append)

    identity_provider.sign_out()

    assert seen == [None]


def test_unreadable_identity_workbook_surfaces_unknown(identity_provider):
    identity_provider.identity_file.parent.mkdir(parents=True, exist_ok=True)
    identity_provider.identity_file.write_bytes(b"not a workbook")

    with pytest.raises(AuthError) as excinfo:
        identity_provider.sign_in("owner@example.com", "secret1")

    assert excinfo.value.code is AuthErrorCode.UNKNOWN


def test_register_waits_for_identity_lock(identity_provider, monkeypatch):
    """Registrations are serialized so a concurrent writer cannot drop a user."""

    identity_provider.register("first@example.com", "secret1")
    monkeypatch.setattr(data_manager, "LOCK_TIMEOUT_SECONDS", 0.05)

    with data_manager.store_lock(identity_provider.identity_file):
        with pytest.raises(AuthError) as excinfo:
            identity_provider.register("second@example.com", "secret1")

    assert excinfo.value.code is AuthErrorCode.UNKNOWN
    identity_provider.register("second@example.com", "secret1")

    users = data_manager.iter_users(data_manager.open_workbook(identity_provider.identity_file))
    assert [user.email for user in users] == ["first@example.com", "second@example.com"]
