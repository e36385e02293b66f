"""
Patient models for patient data and doctor assignments.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class PatientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DECEASED = "deceased"
    TRANSFERRED = "transferred"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PatientUpdate(BaseModel):
    """Model for updating patient data."""
    status: Optional[PatientStatus] = None
    risk_level: Optional[RiskLevel] = None
    notes: Optional[str] = None


class AssignDoctor(BaseModel):
    doctor_id: str
    is_primary: bool = False
    specialization: Optional[str] = ""


class DoctorAssignment(BaseModel):
    doctor_id: str
    doctor_name: Optional[str] = None
    is_primary: bool
    specialization: Optional[str] = None
    assigned_date: datetime


class PatientResponse(BaseModel):
    """Patient model for API responses."""
    id: str
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    status: PatientStatus
    risk_level: RiskLevel
    notes: Optional[str] = None
    primary_doctor_id: Optional[str] = None
    assigned_doctors: List[DoctorAssignment] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    # updated_at is null until the first update
    updated_at: Optional[datetime] = None

    @classmethod
    def from_patient(cls, patient) -> "PatientResponse":
        assignments = [
            DoctorAssignment(
                doctor_id=a.doctor_id,
                doctor_name=a.doctor.name if a.doctor else None,
                is_primary=a.is_primary,
                specialization=a.specialization,
                assigned_date=a.assigned_date,
            )
            for a in patient.assigned_doctors
        ]
        primary = next((a.doctor_id for a in assignments if a.is_primary), None)
        return cls(
            id=patient.id,
            user_id=patient.user_id,
            name=patient.user.name if patient.user else None,
            email=patient.user.email if patient.user else None,
            status=patient.status,
            risk_level=patient.risk_level,
            notes=patient.notes,
            primary_doctor_id=primary,
            assigned_doctors=assignments,
            created_at=patient.created_at,
            updated_at=patient.updated_at,
        )
