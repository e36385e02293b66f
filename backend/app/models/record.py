"""
Medical record models, including sharing grants and attachment metadata.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class VisitType(str, Enum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow-up"
    EMERGENCY = "emergency"
    ROUTINE_CHECKUP = "routine-checkup"
    PROCEDURE = "procedure"
    LAB_REVIEW = "lab-review"
    TELEMEDICINE = "telemedicine"


class RecordStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending-review"
    COMPLETED = "completed"
    AMENDED = "amended"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class SharePermission(str, Enum):
    READ = "read"
    WRITE = "write"
    SHARE = "share"


class AttachmentType(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    DOCUMENT = "document"
    LAB_RESULT = "lab-result"
    IMAGING = "imaging"


class MedicalRecordCreate(BaseModel):
    patient_id: str
    visit_type: VisitType
    chief_complaint: str = Field(..., min_length=1, max_length=500)
    visit_date: Optional[datetime] = None
    notes: Optional[str] = None
    private_notes: Optional[str] = Field(None, max_length=2000)
    status: RecordStatus = RecordStatus.DRAFT
    priority: Priority = Priority.NORMAL


class MedicalRecordUpdate(BaseModel):
    visit_type: Optional[VisitType] = None
    visit_date: Optional[datetime] = None
    chief_complaint: Optional[str] = Field(None, min_length=1, max_length=500)
    notes: Optional[str] = None
    private_notes: Optional[str] = Field(None, max_length=2000)
    status: Optional[RecordStatus] = None
    priority: Optional[Priority] = None


class ShareRequest(BaseModel):
    user_id: str
    permissions: List[SharePermission] = Field(default_factory=lambda: [SharePermission.READ])
    expiry_date: Optional[datetime] = None


class AttachmentCreate(BaseModel):
    file_name: str
    file_path: str
    file_type: AttachmentType
    file_size: Optional[int] = None
    description: Optional[str] = None


class ShareResponse(BaseModel):
    user_id: str
    permissions: List[SharePermission]
    shared_date: datetime
    expiry_date: Optional[datetime] = None


class AttachmentResponse(AttachmentCreate):
    uploaded_by: str
    uploaded_date: datetime


class MedicalRecordResponse(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    visit_date: datetime
    visit_type: VisitType
    chief_complaint: str
    notes: Optional[str] = None
    private_notes: Optional[str] = None
    status: RecordStatus
    priority: Priority
    version: int
    shared_with: List[ShareResponse] = Field(default_factory=list)
    attachments: List[AttachmentResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record, include_private: bool = True) -> "MedicalRecordResponse":
        return cls(
            id=record.id,
            patient_id=record.patient_id,
            doctor_id=record.doctor_id,
            visit_date=record.visit_date,
            visit_type=record.visit_type,
            chief_complaint=record.chief_complaint,
            notes=record.notes,
            private_notes=record.private_notes if include_private else None,
            status=record.status,
            priority=record.priority,
            version=record.version,
            shared_with=[
                ShareResponse(
                    user_id=s.user_id,
                    permissions=s.permissions,
                    shared_date=s.shared_date,
                    expiry_date=s.expiry_date,
                )
                for s in record.shares
            ],
            attachments=[
                AttachmentResponse(
                    file_name=a.file_name,
                    file_path=a.file_path,
                    file_type=a.file_type,
                    file_size=a.file_size,
                    description=a.description,
                    uploaded_by=a.uploaded_by,
                    uploaded_date=a.uploaded_date,
                )
                for a in record.attachments
            ],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
