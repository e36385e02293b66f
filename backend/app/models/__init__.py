"""
Pydantic models for the MedVault Records API.
"""
from app.models.common import ApiResponse, envelope, error_envelope
from app.models.user import (
    UserRole, UserCreate, UserLogin, UserUpdateDetails, AdminUserUpdate, PasswordUpdate,
    ForgotPassword, ResetPassword, UserResponse, DoctorSummary, AuditLogResponse
)
from app.models.patient import PatientStatus, RiskLevel, PatientUpdate, AssignDoctor, PatientResponse
from app.models.record import (
    VisitType, RecordStatus, Priority, SharePermission, AttachmentType, MedicalRecordCreate,
    MedicalRecordUpdate, ShareRequest, AttachmentCreate, MedicalRecordResponse
)

__all__ = [
    "ApiResponse", "envelope", "error_envelope",
    "UserRole", "UserCreate", "UserLogin", "UserUpdateDetails", "AdminUserUpdate",
    "PasswordUpdate", "ForgotPassword", "ResetPassword", "UserResponse", "DoctorSummary",
    "AuditLogResponse",
    "PatientStatus", "RiskLevel", "PatientUpdate", "AssignDoctor", "PatientResponse",
    "VisitType", "RecordStatus", "Priority", "SharePermission", "AttachmentType",
    "MedicalRecordCreate", "MedicalRecordUpdate", "ShareRequest", "AttachmentCreate",
    "MedicalRecordResponse"
]
