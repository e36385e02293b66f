"""
Authentication service: login, registration and password flows, plus the
FastAPI dependencies that resolve the caller's identity.
"""
import logging
from typing import Optional, Tuple

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db, Patient as PatientDB, User as UserDB
from app.errors import (
    AccountDeactivatedError, AccountLockedError, AuthenticationError, TokenError,
    TokenErrorKind,
)
from app.models.user import UserCreate, UserRole, UserUpdateDetails
from app.services import clock
from app.services.access_control import Actor, require_role
from app.services.credentials import CredentialStore, clean_details, ensure_password_strength
from app.services.lockout import LockoutGuard
from app.services.one_time_tokens import ResetTokenBroker
from app.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

settings = get_settings()


class AuthService:
    """Service for authentication and account lifecycle."""

    @staticmethod
    def register(db: Session, user_data: UserCreate) -> Tuple[UserDB, str]:
        """Create an identity (and its patient record for patients).

        Returns the user and the plaintext email verification secret, which
        the caller is responsible for delivering.
        """
        user = CredentialStore.create(db, user_data)
        if user.role == UserRole.PATIENT.value:
            db.add(PatientDB(user_id=user.id, status="active", risk_level="low"))
        db.commit()
        db.refresh(user)

        verification_token = ResetTokenBroker.issue_verification_token(db, user)
        logger.info(f"User registered: {user.id} ({user.role})")
        return user, verification_token

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> UserDB:
        """Check credentials, applying lockout.

        The lock is checked before the password is compared, and the attempt
        is recorded only once the comparison result is known. Unknown emails
        still pay for a hash comparison and get the same error as a wrong
        password.
        """
        user = CredentialStore.find_by_email(db, email)
        if user is None:
            CredentialStore.dummy_verify(password)
            raise AuthenticationError()

        if LockoutGuard.is_locked(user):
            logger.info(f"Login rejected, account locked: {user.id}")
            raise AccountLockedError()

        if not CredentialStore.verify_password(user, password):
            LockoutGuard.record_failure(db, user)
            raise AuthenticationError()

        if not user.is_active:
            raise AccountDeactivatedError()

        LockoutGuard.record_success(db, user)
        user.last_login = clock.utcnow()
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def update_details(db: Session, user: UserDB, data: UserUpdateDetails) -> UserDB:
        for key, value in clean_details(data.model_dump(exclude_unset=True)).items():
            setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def update_password(db: Session, user: UserDB, current_password: str,
                        new_password: str) -> UserDB:
        if not CredentialStore.verify_password(user, current_password):
            raise AuthenticationError("Current password is incorrect")
        ensure_password_strength(new_password, "New password does not meet requirements")
        user = CredentialStore.set_password(db, user, new_password)
        logger.info(f"Password changed for {user.id}")
        return user

    @staticmethod
    def forgot_password(db: Session, email: str) -> Optional[str]:
        """Issue a reset secret when the email belongs to an active account.

        Returns None otherwise; callers answer identically either way.
        """
        user = CredentialStore.find_by_email(db, email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for an unknown or inactive account")
            return None
        return ResetTokenBroker.issue_reset_token(db, user)

    @staticmethod
    def reset_password(db: Session, token: str, new_password: str) -> UserDB:
        user = ResetTokenBroker.consume_reset_token(db, token, new_password)
        # A successful reset proves ownership of the mailbox, so lift any lock
        LockoutGuard.record_success(db, user)
        return user

    @staticmethod
    def verify_email(db: Session, token: str) -> UserDB:
        return ResetTokenBroker.consume_verification_token(db, token)

    @staticmethod
    def revoke_all_tokens(db: Session, user: UserDB) -> UserDB:
        user.token_version = (user.token_version or 0) + 1
        db.commit()
        db.refresh(user)
        logger.info(f"All sessions revoked for {user.id}")
        return user


def get_request_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, falling back to the cookie."""
    authorization = request.headers.get("Authorization")
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
        return None
    return request.cookies.get(settings.cookie_name)


def get_client_origin(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_current_user(request: Request, db: Session = Depends(get_db)) -> UserDB:
    """Dependency to get the current authenticated user from the bearer token."""
    token = get_request_token(request)
    if not token:
        raise TokenError(TokenErrorKind.INVALID_TOKEN)
    return TokenIssuer.resolve(db, token)


def get_current_actor(current_user: UserDB = Depends(get_current_user)) -> Actor:
    return Actor.from_user(current_user)


def require_roles(*roles: UserRole):
    """Dependency factory that admits only the given roles."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        require_role(actor, *roles)
        return actor

    return dependency
