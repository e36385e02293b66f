"""
User models for authentication and authorization.
"""
from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime, date
from enum import Enum


class UserRole(str, Enum):
    """User roles in the system."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


BLOOD_TYPES = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]


class EmergencyContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class DoctorProfile(BaseModel):
    """Fields every doctor account carries."""
    specialization: str
    license_number: str


class PatientProfile(BaseModel):
    """Fields every patient account carries."""
    date_of_birth: date
    gender: Gender
    blood_type: str
    emergency_contact: EmergencyContact


class UserCreate(BaseModel):
    """Registration payload.

    Role-specific fields are optional here; the credential store checks them
    against the role and reports every missing one at once.
    """
    name: str
    email: EmailStr
    password: str
    phone: str
    role: UserRole

    # Doctor
    specialization: Optional[str] = None
    license_number: Optional[str] = None

    # Patient
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    blood_type: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None


class UserLogin(BaseModel):
    email: str
    password: str


class UserUpdateDetails(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class AdminUserUpdate(UserUpdateDetails):
    """Admin edits. Role is deliberately absent: it never changes after creation."""
    is_active: Optional[bool] = None
    specialization: Optional[str] = None


class PasswordUpdate(BaseModel):
    current_password: str
    new_password: str


class ForgotPassword(BaseModel):
    email: str


class ResetPassword(BaseModel):
    new_password: str


class UserResponse(BaseModel):
    """User model for API responses (no password or token fields)."""
    id: str
    name: str
    email: str
    phone: str
    role: UserRole
    is_active: bool
    is_email_verified: bool
    profile_picture: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    specialization: Optional[str] = None
    license_number: Optional[str] = None

    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = None
    blood_type: Optional[str] = None
    age: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        data = dict(
            id=str(user.id),
            name=user.name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            is_active=user.is_active,
            is_email_verified=user.is_email_verified,
            profile_picture=user.profile_picture,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        if user.role == UserRole.DOCTOR.value:
            data.update(specialization=user.specialization, license_number=user.license_number)
        elif user.role == UserRole.PATIENT.value:
            data.update(
                date_of_birth=user.date_of_birth,
                gender=user.gender,
                blood_type=user.blood_type,
                age=_age(user.date_of_birth),
            )
        return cls(**data)


class DoctorSummary(BaseModel):
    id: str
    name: str
    email: str
    specialization: Optional[str] = None
    license_number: Optional[str] = None


class AuditLogResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    action: str
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


def _age(date_of_birth: Optional[datetime]) -> Optional[int]:
    if not date_of_birth:
        return None
    days = (datetime.utcnow() - date_of_birth).days
    return int(days // 365.25)
