"""
Credential store: identity persistence, password hashing and role profiles.
"""
import logging
import re
import secrets
from datetime import datetime
from functools import lru_cache
from typing import List, Optional, Union

from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import User as UserDB
from app.errors import DuplicateError, ValidationError
from app.models.user import (
    BLOOD_TYPES, DoctorProfile, Gender, PatientProfile, UserCreate, UserRole,
)

logger = logging.getLogger(__name__)

settings = get_settings()

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds
)

PHONE_RE = re.compile(r"^[+]?[\d\s\-()]+$")
SPECIAL_CHARS = "@$!%*?&"

Profile = Union[DoctorProfile, PatientProfile, None]


def sanitize_input(value):
    """Strip markup and script vectors from free-text input."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    value = re.sub(r"[<>]", "", value)
    value = re.sub(r"javascript:", "", value, flags=re.IGNORECASE)
    return re.sub(r"on\w+=", "", value, flags=re.IGNORECASE)


def validate_password(password: str) -> List[str]:
    """Return every strength rule the password breaks (empty when valid)."""
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not any(ch in SPECIAL_CHARS for ch in password):
        errors.append(f"Password must contain at least one special character ({SPECIAL_CHARS})")
    return errors


def ensure_password_strength(password: str, message: str = "Password does not meet requirements"):
    errors = validate_password(password)
    if errors:
        raise ValidationError(message, errors)


def check_contact_details(name: Optional[str], phone: Optional[str], errors: List[str]):
    """Append a message for a bad name or phone; ``None`` means the field is not being set."""
    if name is not None and not 2 <= len(name) <= 50:
        errors.append("Name must be between 2 and 50 characters long")
    if phone is not None and not PHONE_RE.match(phone):
        errors.append("Please provide a valid phone number")


def clean_details(changes: dict) -> dict:
    """Sanitize a partial profile update, rejecting an invalid name or phone."""
    cleaned = {key: sanitize_input(value) for key, value in changes.items() if value is not None}
    errors = []
    check_contact_details(cleaned.get("name"), cleaned.get("phone"), errors)
    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned


def _doctor_profile(data: UserCreate, errors: List[str]) -> Optional[DoctorProfile]:
    specialization = sanitize_input(data.specialization or "")
    license_number = sanitize_input(data.license_number or "")
    if not specialization:
        errors.append("Specialization is required for doctors")
    if not license_number:
        errors.append("License number is required for doctors")
    if not (specialization and license_number):
        return None
    return DoctorProfile(specialization=specialization, license_number=license_number)


def _patient_profile(data: UserCreate, errors: List[str]) -> Optional[PatientProfile]:
    contact = data.emergency_contact
    gender = sanitize_input(data.gender or "")
    blood_type = sanitize_input(data.blood_type or "")
    start = len(errors)

    if data.date_of_birth is None:
        errors.append("Date of birth is required for patients")
    if not gender:
        errors.append("Gender is required for patients")
    elif gender not in {g.value for g in Gender}:
        errors.append("Gender must be male, female, or other")
    if not blood_type:
        errors.append("Blood type is required for patients")
    elif blood_type not in BLOOD_TYPES:
        errors.append(f"Blood type must be one of {', '.join(BLOOD_TYPES)}")
    for field in ("name", "phone", "relationship"):
        if not contact or not sanitize_input(getattr(contact, field) or ""):
            errors.append(f"Emergency contact {field} is required for patients")

    if len(errors) > start:
        return None
    contact = contact.model_copy(update={
        "name": sanitize_input(contact.name),
        "phone": sanitize_input(contact.phone),
        "relationship": sanitize_input(contact.relationship),
    })
    return PatientProfile(
        date_of_birth=data.date_of_birth, gender=gender,
        blood_type=blood_type, emergency_contact=contact,
    )


_PROFILE_BUILDERS = {
    UserRole.DOCTOR: _doctor_profile,
    UserRole.PATIENT: _patient_profile,
}


def build_profile(data: UserCreate, errors: List[str]) -> Profile:
    """Validate the role-specific fields, appending every problem to ``errors``."""
    builder = _PROFILE_BUILDERS.get(data.role)
    return builder(data, errors) if builder else None


@lru_cache()
def _dummy_hash() -> str:
    return pwd_context.hash(secrets.token_hex(16))


class CredentialStore:
    """Reads and writes identities; the only place passwords are hashed or compared."""

    @staticmethod
    def _truncate_password(password: str) -> str:
        """Truncate password to 72 bytes (bcrypt limit)."""
        return password.encode("utf-8")[:72].decode("utf-8", errors="ignore")

    @staticmethod
    def hash_password(password: str) -> str:
        return pwd_context.hash(CredentialStore._truncate_password(password))

    @staticmethod
    def verify_password(user: UserDB, candidate: str) -> bool:
        """Constant-time comparison of the candidate against the stored hash."""
        if not candidate or not user.hashed_password:
            return False
        return pwd_context.verify(
            CredentialStore._truncate_password(candidate), user.hashed_password
        )

    @staticmethod
    def dummy_verify(candidate: str) -> bool:
        """Spend the cost of a real verify when there is no identity to check."""
        pwd_context.verify(CredentialStore._truncate_password(candidate or ""), _dummy_hash())
        return False

    @staticmethod
    def normalize_email(email: str) -> str:
        return sanitize_input(email or "").lower()

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[UserDB]:
        normalized = CredentialStore.normalize_email(email)
        if not normalized:
            return None
        return db.query(UserDB).filter(func.lower(UserDB.email) == normalized).first()

    @staticmethod
    def find_by_id(db: Session, user_id: str) -> Optional[UserDB]:
        return db.query(UserDB).filter(UserDB.id == user_id).first()

    @staticmethod
    def create(db: Session, data: UserCreate) -> UserDB:
        """Validate and stage a new identity.

        The row is flushed, not committed, so the caller can add dependent
        rows (the patient record) in the same transaction.
        """
        errors = validate_password(data.password)
        name = sanitize_input(data.name)
        phone = sanitize_input(data.phone)
        check_contact_details(name, phone, errors)
        profile = build_profile(data, errors)
        if errors:
            raise ValidationError("Validation failed", errors)

        email = CredentialStore.normalize_email(data.email)
        if CredentialStore.find_by_email(db, email):
            raise DuplicateError("email", "User with this email already exists")

        user = UserDB(
            name=name,
            email=email,
            phone=phone,
            role=data.role.value,
            hashed_password=CredentialStore.hash_password(data.password),
            is_active=True,
            is_email_verified=False,
            login_attempts=0,
            token_version=0,
        )

        if isinstance(profile, DoctorProfile):
            taken = db.query(UserDB).filter(
                UserDB.license_number == profile.license_number
            ).first()
            if taken:
                raise DuplicateError("license_number", "License number is already registered")
            user.specialization = profile.specialization
            user.license_number = profile.license_number
        elif isinstance(profile, PatientProfile):
            user.date_of_birth = datetime.combine(profile.date_of_birth, datetime.min.time())
            user.gender = profile.gender.value
            user.blood_type = profile.blood_type
            user.emergency_contact_name = profile.emergency_contact.name
            user.emergency_contact_phone = profile.emergency_contact.phone
            user.emergency_contact_relationship = profile.emergency_contact.relationship

        db.add(user)
        try:
            db.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent registration
            db.rollback()
            field = "license_number" if "license" in str(e.orig).lower() else "email"
            message = ("License number is already registered" if field == "license_number"
                       else "User with this email already exists")
            raise DuplicateError(field, message)

        logger.info(f"Identity staged: {user.id} ({user.role})")
        return user

    @staticmethod
    def set_password(db: Session, user: UserDB, new_password: str) -> UserDB:
        """Replace the password hash and invalidate previously issued tokens."""
        user.hashed_password = CredentialStore.hash_password(new_password)
        user.token_version = (user.token_version or 0) + 1
        db.commit()
        db.refresh(user)
        return user
