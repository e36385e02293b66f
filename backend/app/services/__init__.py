"""
Services for the MedVault Records API.
"""
from app.services.credentials import CredentialStore
from app.services.tokens import TokenIssuer
from app.services.lockout import LockoutGuard
from app.services.one_time_tokens import ResetTokenBroker
from app.services.audit import AuditLogger
from app.services.rate_limit import RateLimiter
from app.services.auth_service import AuthService

__all__ = [
    "CredentialStore",
    "TokenIssuer",
    "LockoutGuard",
    "ResetTokenBroker",
    "AuditLogger",
    "RateLimiter",
    "AuthService"
]
