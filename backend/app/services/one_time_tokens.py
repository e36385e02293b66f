"""
Password-reset and email-verification secrets.

Only a SHA-256 digest of each secret is stored. Consuming a secret is a
single conditional UPDATE keyed on the digest and expiry, which clears the
secret in the same statement; a second consumer matches zero rows.
"""
import hashlib
import logging
import secrets
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import User as UserDB
from app.errors import TokenError, TokenErrorKind
from app.services import clock
from app.services.credentials import CredentialStore, ensure_password_strength

logger = logging.getLogger(__name__)

settings = get_settings()


def generate_random_token() -> str:
    return secrets.token_hex(20)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ResetTokenBroker:

    @staticmethod
    def issue_reset_token(db: Session, user: UserDB) -> str:
        """Store a fresh reset digest, replacing any earlier one, and return the plaintext once."""
        token = generate_random_token()
        user.password_reset_token = hash_token(token)
        user.password_reset_expires = clock.utcnow() + timedelta(
            minutes=settings.password_reset_expire_minutes
        )
        db.commit()
        logger.info(f"Password reset token issued for {user.id}")
        return token

    @staticmethod
    def consume_reset_token(db: Session, token: str, new_password: str) -> UserDB:
        ensure_password_strength(new_password)
        digest = hash_token(token or "")
        now = clock.utcnow()

        user_id = db.query(UserDB.id).filter(
            UserDB.password_reset_token == digest,
            UserDB.password_reset_expires > now,
        ).scalar()
        if user_id is None:
            raise TokenError(TokenErrorKind.INVALID_OR_EXPIRED, "Invalid or expired reset token")

        result = db.execute(
            update(UserDB)
            .where(
                UserDB.id == user_id,
                UserDB.password_reset_token == digest,
                UserDB.password_reset_expires > now,
            )
            .values(
                hashed_password=CredentialStore.hash_password(new_password),
                password_reset_token=None,
                password_reset_expires=None,
                token_version=UserDB.token_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            # Another request consumed it between the lookup and the update
            raise TokenError(TokenErrorKind.INVALID_OR_EXPIRED, "Invalid or expired reset token")

        user = db.query(UserDB).filter(UserDB.id == user_id).first()
        db.refresh(user)
        logger.info(f"Password reset completed for {user.id}")
        return user

    @staticmethod
    def issue_verification_token(db: Session, user: UserDB) -> str:
        token = generate_random_token()
        user.email_verification_token = hash_token(token)
        user.email_verification_expires = clock.utcnow() + timedelta(
            hours=settings.email_verification_expire_hours
        )
        db.commit()
        return token

    @staticmethod
    def consume_verification_token(db: Session, token: str) -> UserDB:
        digest = hash_token(token or "")
        now = clock.utcnow()

        user_id = db.query(UserDB.id).filter(
            UserDB.email_verification_token == digest,
            UserDB.email_verification_expires > now,
        ).scalar()
        if user_id is None:
            raise TokenError(
                TokenErrorKind.INVALID_OR_EXPIRED, "Invalid or expired verification token"
            )

        result = db.execute(
            update(UserDB)
            .where(
                UserDB.id == user_id,
                UserDB.email_verification_token == digest,
                UserDB.email_verification_expires > now,
            )
            .values(
                is_email_verified=True,
                email_verification_token=None,
                email_verification_expires=None,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            raise TokenError(
                TokenErrorKind.INVALID_OR_EXPIRED, "Invalid or expired verification token"
            )

        user = db.query(UserDB).filter(UserDB.id == user_id).first()
        db.refresh(user)
        logger.info(f"Email verified for {user.id}")
        return user
