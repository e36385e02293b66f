"""
Lockout guard: counts failed logins per identity and applies a timed lock.

The counter lives on the user row and is changed with single conditional
UPDATE statements, so two failed logins racing on the same account both
land.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, case, or_, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import User as UserDB
from app.services import clock

logger = logging.getLogger(__name__)

settings = get_settings()


class LockoutGuard:

    @staticmethod
    def max_attempts() -> int:
        return settings.max_login_attempts

    @staticmethod
    def lock_duration() -> timedelta:
        return timedelta(minutes=settings.lockout_minutes)

    @staticmethod
    def is_locked(user: UserDB, now: Optional[datetime] = None) -> bool:
        now = now or clock.utcnow()
        return bool(user.lock_until and user.lock_until > now)

    @staticmethod
    def record_failure(db: Session, user: UserDB) -> None:
        """Count a failed password check, locking the account at the threshold.

        When a previous lock has lapsed the count
        restarts at 1; otherwise it increments. Committed immediately.
        """
        now = clock.utcnow()
        lock_live = and_(UserDB.lock_until.isnot(None), UserDB.lock_until > now)
        next_count = case(
            (lock_live, UserDB.login_attempts + 1),
            (UserDB.lock_until.isnot(None), 1),
            else_=UserDB.login_attempts + 1,
        )
        next_lock = case(
            (lock_live, UserDB.lock_until),
            (
                and_(
                    or_(UserDB.lock_until.is_(None), UserDB.lock_until <= now),
                    case((UserDB.lock_until.isnot(None), 1), else_=UserDB.login_attempts + 1)
                    >= LockoutGuard.max_attempts(),
                ),
                now + LockoutGuard.lock_duration(),
            ),
            else_=None,
        )
        db.execute(
            update(UserDB)
            .where(UserDB.id == user.id)
            .values(login_attempts=next_count, lock_until=next_lock)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(user)

        if LockoutGuard.is_locked(user, now):
            logger.warning(f"Account locked after {user.login_attempts} failed logins: {user.id}")
        else:
            logger.info(f"Failed login recorded for {user.id} ({user.login_attempts} attempts)")

    @staticmethod
    def record_success(db: Session, user: UserDB) -> None:
        db.execute(
            update(UserDB)
            .where(UserDB.id == user.id)
            .values(login_attempts=0, lock_until=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(user)
