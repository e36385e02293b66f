"""
Token issuer: signed bearer session tokens (JWT).
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import User as UserDB
from app.errors import (
    AccountDeactivatedError, AccountLockedError, TokenError, TokenErrorKind,
)
from app.services import clock
from app.services.lockout import LockoutGuard

logger = logging.getLogger(__name__)

settings = get_settings()

_EPOCH = datetime(1970, 1, 1)


def _timestamp(moment: datetime) -> float:
    return (moment - _EPOCH).total_seconds()


class TokenIssuer:
    """Issues and resolves session tokens.

    Tokens are not stored server side. A token is only usable while the
    identity it names exists, is active, is not locked, and still carries
    the token version the token was issued under.
    """

    @staticmethod
    def lifetime() -> timedelta:
        return timedelta(minutes=settings.access_token_expire_minutes)

    @staticmethod
    def issue(user: UserDB, expires_delta: Optional[timedelta] = None) -> str:
        now = clock.utcnow()
        expire = now + (expires_delta if expires_delta is not None else TokenIssuer.lifetime())
        payload = {
            "sub": str(user.id),
            "iat": now,
            "exp": expire,
            "ver": user.token_version or 0,
        }
        return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def decode(token: str) -> dict:
        """Verify signature and expiry, returning the claims.

        jose only checks that ``exp`` is present; expiry is compared against
        ``clock`` like every other time-dependent rule.
        """
        if not token:
            raise TokenError(TokenErrorKind.INVALID_TOKEN)
        try:
            payload = jwt.decode(
                token, settings.secret_key, algorithms=[settings.algorithm],
                options={"require_exp": True, "verify_exp": False},
            )
        except JWTError as e:
            logger.info(f"Rejected malformed token: {e}")
            raise TokenError(TokenErrorKind.INVALID_TOKEN)
        if not payload.get("sub") or not isinstance(payload["exp"], (int, float)):
            raise TokenError(TokenErrorKind.INVALID_TOKEN)
        if payload["exp"] <= _timestamp(clock.utcnow()):
            raise TokenError(TokenErrorKind.EXPIRED_TOKEN)
        return payload

    @staticmethod
    def resolve(db: Session, token: str) -> UserDB:
        """Map a bearer token to its current identity, or raise the reason it is unusable."""
        payload = TokenIssuer.decode(token)

        user = db.query(UserDB).filter(UserDB.id == payload["sub"]).first()
        if user is None:
            raise TokenError(TokenErrorKind.IDENTITY_NOT_FOUND)
        if payload.get("ver", 0) != (user.token_version or 0):
            raise TokenError(TokenErrorKind.INVALID_TOKEN, "Token has been revoked")
        if not user.is_active:
            raise AccountDeactivatedError("User account is deactivated")
        if LockoutGuard.is_locked(user):
            raise AccountLockedError()
        return user

    @staticmethod
    def refresh(user: UserDB) -> str:
        """Re-issue a token for an identity that has already been resolved."""
        if not user.is_active:
            raise AccountDeactivatedError("User account is deactivated")
        if LockoutGuard.is_locked(user):
            raise AccountLockedError()
        return TokenIssuer.issue(user)
