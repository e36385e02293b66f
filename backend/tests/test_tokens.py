from datetime import datetime, timedelta

import pytest
from jose import jwt

from app.config import get_settings
from app.errors import (
    AccountDeactivatedError, AccountLockedError, TokenError, TokenErrorKind,
)
from app.services.credentials import CredentialStore
from app.services.tokens import TokenIssuer

from conftest import DOCTOR, make_user


def test_issue_and_resolve_round_trip(db):
    user = make_user(db, DOCTOR)

    token = TokenIssuer.issue(user)
    claims = TokenIssuer.decode(token)

    assert claims["sub"] == user.id
    assert claims["exp"] - claims["iat"] == int(TokenIssuer.lifetime().total_seconds())
    assert TokenIssuer.resolve(db, token).id == user.id


def test_tampered_token_is_invalid(db):
    user = make_user(db, DOCTOR)
    token = TokenIssuer.issue(user)
    forged = jwt.encode(TokenIssuer.decode(token), "wrong-key", algorithm="HS256")
    head, signature = token.rsplit(".", 1)
    altered = head + "." + ("A" if signature[0] != "A" else "B") + signature[1:]

    for bad in (forged, altered, "not-a-token"):
        with pytest.raises(TokenError) as exc:
            TokenIssuer.resolve(db, bad)
        assert exc.value.kind == TokenErrorKind.INVALID_TOKEN
        assert exc.value.status_code == 401


def test_expired_token(db):
    user = make_user(db, DOCTOR)
    token = TokenIssuer.issue(user, expires_delta=timedelta(seconds=-10))

    with pytest.raises(TokenError) as exc:
        TokenIssuer.resolve(db, token)
    assert exc.value.kind == TokenErrorKind.EXPIRED_TOKEN


def test_expiry_is_measured_against_the_clock(db, frozen_clock):
    user = make_user(db, DOCTOR)
    token = TokenIssuer.issue(user)

    frozen_clock.advance(days=7, seconds=-1)
    assert TokenIssuer.resolve(db, token).id == user.id

    frozen_clock.advance(seconds=1)
    with pytest.raises(TokenError) as exc:
        TokenIssuer.resolve(db, token)
    assert exc.value.kind == TokenErrorKind.EXPIRED_TOKEN


def test_token_without_expiry_is_invalid(db):
    user = make_user(db, DOCTOR)
    settings = get_settings()
    token = jwt.encode({"sub": user.id, "ver": 0}, settings.secret_key,
                       algorithm=settings.algorithm)

    with pytest.raises(TokenError) as exc:
        TokenIssuer.resolve(db, token)
    assert exc.value.kind == TokenErrorKind.INVALID_TOKEN


def test_identity_not_found(db):
    settings = get_settings()
    expires = datetime.utcnow() + timedelta(hours=1)
    token = jwt.encode({"sub": "missing-id", "ver": 0, "exp": expires}, settings.secret_key,
                       algorithm=settings.algorithm)

    with pytest.raises(TokenError) as exc:
        TokenIssuer.resolve(db, token)
    assert exc.value.kind == TokenErrorKind.IDENTITY_NOT_FOUND


def test_deactivated_identity_cannot_use_token(db):
    user = make_user(db, DOCTOR)
    token = TokenIssuer.issue(user)
    user.is_active = False
    db.commit()

    with pytest.raises(AccountDeactivatedError):
        TokenIssuer.resolve(db, token)
    with pytest.raises(AccountDeactivatedError):
        TokenIssuer.refresh(user)


def test_locked_identity_cannot_use_token(db, frozen_clock):
    user = make_user(db, DOCTOR)
    token = TokenIssuer.issue(user)
    user.lock_until = frozen_clock.now + timedelta(hours=1)
    db.commit()

    with pytest.raises(AccountLockedError):
        TokenIssuer.resolve(db, token)

    frozen_clock.advance(hours=2)
    assert TokenIssuer.resolve(db, token).id == user.id


def test_password_change_revokes_earlier_tokens(db):
    user = make_user(db, DOCTOR)
    old_token = TokenIssuer.issue(user)

    CredentialStore.set_password(db, user, "Xyz98765!")

    with pytest.raises(TokenError) as exc:
        TokenIssuer.resolve(db, old_token)
    assert exc.value.kind == TokenErrorKind.INVALID_TOKEN
    assert TokenIssuer.resolve(db, TokenIssuer.issue(user)).id == user.id


def test_refresh_issues_a_usable_token(db):
    user = make_user(db, DOCTOR)

    token = TokenIssuer.refresh(user)

    assert TokenIssuer.resolve(db, token).id == user.id
