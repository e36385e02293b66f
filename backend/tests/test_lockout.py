import pytest

from app.errors import AccountLockedError, AuthenticationError
from app.services.auth_service import AuthService
from app.services.lockout import LockoutGuard

from conftest import DOCTOR, PASSWORD, make_user


def fail_login(db, email="d@x.com"):
    with pytest.raises(AuthenticationError):
        AuthService.authenticate_user(db, email, "Wrong123!")


def test_fifth_failure_locks_for_two_hours(db, frozen_clock):
    user = make_user(db, DOCTOR)

    for _ in range(4):
        fail_login(db)
    db.refresh(user)
    assert user.login_attempts == 4
    assert user.lock_until is None

    fail_login(db)
    db.refresh(user)
    assert user.login_attempts == 5
    assert user.lock_until == frozen_clock.now + LockoutGuard.lock_duration()


def test_locked_account_rejects_correct_password(db, frozen_clock):
    make_user(db, DOCTOR)
    for _ in range(5):
        fail_login(db)

    with pytest.raises(AccountLockedError):
        AuthService.authenticate_user(db, "d@x.com", PASSWORD)


def test_lock_expires_and_success_resets_counter(db, frozen_clock):
    user = make_user(db, DOCTOR)
    for _ in range(5):
        fail_login(db)

    frozen_clock.advance(hours=2, seconds=1)
    authenticated = AuthService.authenticate_user(db, "d@x.com", PASSWORD)

    assert authenticated.id == user.id
    assert authenticated.login_attempts == 0
    assert authenticated.lock_until is None
    assert authenticated.last_login == frozen_clock.now


def test_failure_after_expired_lock_restarts_count_at_one(db, frozen_clock):
    user = make_user(db, DOCTOR)
    for _ in range(5):
        fail_login(db)

    frozen_clock.advance(hours=3)
    fail_login(db)

    db.refresh(user)
    assert user.login_attempts == 1
    assert user.lock_until is None


def test_failures_during_lock_do_not_extend_it(db, frozen_clock):
    user = make_user(db, DOCTOR)
    for _ in range(5):
        fail_login(db)
    db.refresh(user)
    locked_until = user.lock_until

    frozen_clock.advance(minutes=30)
    LockoutGuard.record_failure(db, user)

    assert user.lock_until == locked_until
    assert user.login_attempts == 6


def test_unknown_email_gets_the_same_error(db):
    make_user(db, DOCTOR)

    with pytest.raises(AuthenticationError) as unknown:
        AuthService.authenticate_user(db, "nobody@x.com", PASSWORD)
    with pytest.raises(AuthenticationError) as wrong:
        AuthService.authenticate_user(db, "d@x.com", "Wrong123!")

    assert unknown.value.message == wrong.value.message == "Invalid credentials"
