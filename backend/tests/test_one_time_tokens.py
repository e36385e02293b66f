from datetime import timedelta

import pytest

from app.errors import TokenError, TokenErrorKind, ValidationError
from app.services.credentials import CredentialStore
from app.services.one_time_tokens import ResetTokenBroker, hash_token

from conftest import DOCTOR, PASSWORD, make_user

NEW_PASSWORD = "Xyz98765!"


def test_only_the_digest_is_stored(db, frozen_clock):
    user = make_user(db, DOCTOR)

    token = ResetTokenBroker.issue_reset_token(db, user)

    db.refresh(user)
    assert user.password_reset_token == hash_token(token)
    assert user.password_reset_token != token
    assert user.password_reset_expires == frozen_clock.now + timedelta(minutes=10)


def test_reset_token_is_single_use(db):
    user = make_user(db, DOCTOR)
    token = ResetTokenBroker.issue_reset_token(db, user)

    reset = ResetTokenBroker.consume_reset_token(db, token, NEW_PASSWORD)

    assert CredentialStore.verify_password(reset, NEW_PASSWORD)
    assert not CredentialStore.verify_password(reset, PASSWORD)
    assert reset.password_reset_token is None
    assert reset.password_reset_expires is None

    with pytest.raises(TokenError) as exc:
        ResetTokenBroker.consume_reset_token(db, token, "Another1!")
    assert exc.value.kind == TokenErrorKind.INVALID_OR_EXPIRED
    assert exc.value.status_code == 400


def test_reset_token_expires_after_ten_minutes(db, frozen_clock):
    user = make_user(db, DOCTOR)
    token = ResetTokenBroker.issue_reset_token(db, user)

    frozen_clock.advance(minutes=10, seconds=1)

    with pytest.raises(TokenError) as exc:
        ResetTokenBroker.consume_reset_token(db, token, NEW_PASSWORD)
    assert exc.value.kind == TokenErrorKind.INVALID_OR_EXPIRED
    db.refresh(user)
    assert CredentialStore.verify_password(user, PASSWORD)


def test_new_request_invalidates_the_previous_token(db):
    user = make_user(db, DOCTOR)
    first = ResetTokenBroker.issue_reset_token(db, user)
    second = ResetTokenBroker.issue_reset_token(db, user)

    with pytest.raises(TokenError):
        ResetTokenBroker.consume_reset_token(db, first, NEW_PASSWORD)
    assert ResetTokenBroker.consume_reset_token(db, second, NEW_PASSWORD).id == user.id


def test_weak_new_password_keeps_the_token(db):
    user = make_user(db, DOCTOR)
    token = ResetTokenBroker.issue_reset_token(db, user)

    with pytest.raises(ValidationError):
        ResetTokenBroker.consume_reset_token(db, token, "weak")

    assert ResetTokenBroker.consume_reset_token(db, token, NEW_PASSWORD).id == user.id


def test_reset_bumps_token_version(db):
    user = make_user(db, DOCTOR)
    version = user.token_version
    token = ResetTokenBroker.issue_reset_token(db, user)

    reset = ResetTokenBroker.consume_reset_token(db, token, NEW_PASSWORD)

    assert reset.token_version == version + 1


def test_verification_token(db, frozen_clock):
    user = make_user(db, DOCTOR)
    token = ResetTokenBroker.issue_verification_token(db, user)

    verified = ResetTokenBroker.consume_verification_token(db, token)

    assert verified.is_email_verified is True
    assert verified.email_verification_token is None
    with pytest.raises(TokenError):
        ResetTokenBroker.consume_verification_token(db, token)


def test_verification_token_expires_after_a_day(db, frozen_clock):
    user = make_user(db, DOCTOR)
    token = ResetTokenBroker.issue_verification_token(db, user)

    frozen_clock.advance(hours=24, seconds=1)

    with pytest.raises(TokenError):
        ResetTokenBroker.consume_verification_token(db, token)


def test_unknown_token_is_rejected(db):
    make_user(db, DOCTOR)

    with pytest.raises(TokenError) as exc:
        ResetTokenBroker.consume_reset_token(db, "0" * 40, NEW_PASSWORD)
    assert exc.value.kind == TokenErrorKind.INVALID_OR_EXPIRED
