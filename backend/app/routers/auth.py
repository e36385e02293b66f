"""
Authentication routes: registration, login, password flows and sessions.
"""
import logging
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db, User as UserDB
from app.errors import ValidationError
from app.models.common import envelope
from app.models.user import (
    ForgotPassword, PasswordUpdate, ResetPassword, UserCreate, UserLogin, UserResponse,
    UserUpdateDetails,
)
from app.services.auth_service import AuthService, get_current_user
from app.services.guards import (
    audit, audit_public, auth_rate_limit, password_reset_rate_limit, sensitive_rate_limit,
)
from app.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])
settings = get_settings()


def _set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=int(TokenIssuer.lifetime().total_seconds()),
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def _token_response(response: Response, user: UserDB, message: str, **extra) -> dict:
    """Issue a session token, deliver it as a cookie too, and wrap it with the user."""
    token = TokenIssuer.issue(user)
    _set_token_cookie(response, token)
    data = {"token": token, "user": UserResponse.from_user(user)}
    data.update(extra)
    return envelope(message, data)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit), Depends(audit_public("user_register"))],
)
def register(user_data: UserCreate, response: Response, db: Session = Depends(get_db)):
    """Register a new admin, doctor or patient account."""
    logger.info(f"Registering new {user_data.role.value} account")
    user, verification_token = AuthService.register(db, user_data)

    extra = {}
    if settings.environment == "development":
        extra["verification_token"] = verification_token
    return _token_response(
        response, user,
        "User registered successfully. Please check your email for verification.",
        **extra,
    )


@router.post(
    "/login",
    dependencies=[Depends(auth_rate_limit), Depends(audit_public("user_login"))],
)
def login(credentials: UserLogin, response: Response, db: Session = Depends(get_db)):
    """Authenticate with email and password and receive a session token."""
    if not credentials.email or not credentials.password:
        raise ValidationError("Please provide an email and password")

    user = AuthService.authenticate_user(db, credentials.email, credentials.password)
    return _token_response(response, user, "Login successful")


@router.get("/me")
def get_me(current_user: UserDB = Depends(get_current_user)):
    """Get current authenticated user information."""
    return envelope("Current user", UserResponse.from_user(current_user))


@router.put("/updatedetails", dependencies=[Depends(audit("update_profile"))])
def update_details(
    details: UserUpdateDetails,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user)
):
    user = AuthService.update_details(db, current_user, details)
    return envelope("Details updated successfully", UserResponse.from_user(user))


@router.put(
    "/updatepassword",
    dependencies=[Depends(sensitive_rate_limit), Depends(audit("password_change"))],
)
def update_password(
    passwords: PasswordUpdate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user)
):
    """Rotate the password after checking the current one.

    Tokens issued before the change stop working; a fresh one is returned.
    """
    if not passwords.current_password or not passwords.new_password:
        raise ValidationError("Please provide current and new password")

    user = AuthService.update_password(
        db, current_user, passwords.current_password, passwords.new_password
    )
    return _token_response(response, user, "Password updated successfully")


@router.post(
    "/forgotpassword",
    dependencies=[Depends(password_reset_rate_limit), Depends(audit_public("password_reset_request"))],
)
def forgot_password(payload: ForgotPassword, db: Session = Depends(get_db)):
    """Issue a password reset secret.

    The answer is the same whether or not the email is registered.
    """
    if not payload.email:
        raise ValidationError("Please provide an email address")

    token = AuthService.forgot_password(db, payload.email)
    data = None
    if token and settings.environment == "development":
        data = {"reset_token": token}
    return envelope(
        "If an account exists for that email, a password reset email has been sent", data
    )


@router.put(
    "/resetpassword/{token}",
    dependencies=[Depends(password_reset_rate_limit), Depends(audit_public("password_reset"))],
)
def reset_password(
    token: str,
    payload: ResetPassword,
    response: Response,
    db: Session = Depends(get_db)
):
    if not payload.new_password:
        raise ValidationError("Please provide a new password")

    user = AuthService.reset_password(db, token, payload.new_password)
    return _token_response(response, user, "Password reset successful")


@router.get("/verifyemail/{token}", dependencies=[Depends(audit_public("email_verification"))])
def verify_email(token: str, db: Session = Depends(get_db)):
    AuthService.verify_email(db, token)
    return envelope("Email verified successfully")


@router.post("/logout", dependencies=[Depends(audit("user_logout"))])
def logout(response: Response, current_user: UserDB = Depends(get_current_user)):
    """Clear the token cookie. The bearer token itself stays valid until it expires."""
    response.delete_cookie(settings.cookie_name, httponly=True, samesite="strict")
    return envelope("Logged out successfully")


@router.post("/logout-all", dependencies=[Depends(audit("logout_all"))])
def logout_all(
    response: Response,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user)
):
    """Invalidate every token issued to the caller so far."""
    AuthService.revoke_all_tokens(db, current_user)
    response.delete_cookie(settings.cookie_name, httponly=True, samesite="strict")
    return envelope("Logged out from all sessions")


@router.post("/refresh")
def refresh_token(response: Response, current_user: UserDB = Depends(get_current_user)):
    """Refresh JWT token for authenticated user."""
    token = TokenIssuer.refresh(current_user)
    _set_token_cookie(response, token)
    return envelope(
        "Token refreshed successfully",
        {"token": token, "user": UserResponse.from_user(current_user)},
    )
