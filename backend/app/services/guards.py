"""
Route dependencies for rate limiting and audit logging.

The limiters and the audit logger are created once per application (see
``app.main.create_app``) and read from ``app.state``.
"""
from fastapi import Depends, Request

from app.database import User as UserDB
from app.services.audit import AuditLogger
from app.services.auth_service import get_client_origin, get_current_user
from app.services.rate_limit import RateLimiters, rate_limit_key


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger


def auth_rate_limit(request: Request, limiters: RateLimiters = Depends(get_rate_limiters)):
    limiters.auth.check(rate_limit_key(get_client_origin(request)))


def password_reset_rate_limit(request: Request,
                              limiters: RateLimiters = Depends(get_rate_limiters)):
    limiters.password_reset.check(rate_limit_key(get_client_origin(request)))


def sensitive_rate_limit(request: Request,
                         limiters: RateLimiters = Depends(get_rate_limiters),
                         current_user: UserDB = Depends(get_current_user)):
    limiters.sensitive.check(rate_limit_key(get_client_origin(request), current_user.id))


def audit_public(action: str):
    """Record ``action`` for a route that may be called anonymously."""

    def dependency(request: Request, audit_logger: AuditLogger = Depends(get_audit_logger)):
        audit_logger.record(
            action,
            actor_id=None,
            origin=get_client_origin(request),
            user_agent=request.headers.get("User-Agent"),
        )

    return dependency


def audit(action: str):
    """Record ``action`` against the authenticated caller."""

    def dependency(request: Request,
                   audit_logger: AuditLogger = Depends(get_audit_logger),
                   current_user: UserDB = Depends(get_current_user)):
        audit_logger.record(
            action,
            actor_id=current_user.id,
            origin=get_client_origin(request),
            user_agent=request.headers.get("User-Agent"),
            details=f"{request.method} {request.url.path}",
        )

    return dependency
