"""
Medical record routes: authoring, sharing and attachments.

Every per-record decision goes through the access control evaluator.
"""
import logging
from datetime import datetime
from enum import Enum

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import exists, or_
from sqlalchemy.orm import Session

from app.database import (
    get_db, MedicalRecord as RecordDB, Patient as PatientDB, RecordAttachment, RecordShare,
)
from app.errors import NotFoundError
from app.models.common import envelope
from app.models.record import (
    AttachmentCreate, MedicalRecordCreate, MedicalRecordResponse, MedicalRecordUpdate,
    RecordStatus, ShareRequest, VisitType,
)
from app.models.user import UserRole
from app.services import clock
from app.services.access_control import (
    Action, Actor, evaluate, patient_resource, record_resource, require,
)
from app.services.auth_service import require_roles
from app.services.credentials import sanitize_input
from app.services.guards import audit
from app.services.relationships import share_record, to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["Medical Records"])

any_role = require_roles(UserRole.ADMIN, UserRole.DOCTOR, UserRole.PATIENT)
clinician = require_roles(UserRole.ADMIN, UserRole.DOCTOR)
doctor_only = require_roles(UserRole.DOCTOR)


def get_record_or_404(db: Session, record_id: str) -> RecordDB:
    record = db.query(RecordDB).filter(RecordDB.id == record_id).first()
    if not record:
        raise NotFoundError("Medical record not found")
    return record


def _column_value(value):
    """Convert an update value to the form the column stores."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return sanitize_input(value)


def _to_response(record: RecordDB, actor: Actor) -> MedicalRecordResponse:
    # Private notes are for clinicians only
    return MedicalRecordResponse.from_record(record, include_private=actor.role != UserRole.PATIENT)


@router.get("/", dependencies=[Depends(audit("view_records"))])
def list_records(
    patient: str = Query(None),
    record_status: RecordStatus = Query(None, alias="status"),
    visit_type: VisitType = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(clinician)
):
    """List records. Doctors see the ones they wrote or that are shared with them."""
    query = db.query(RecordDB)
    if patient:
        query = query.filter(RecordDB.patient_id == patient)
    if record_status:
        query = query.filter(RecordDB.status == record_status.value)
    if visit_type:
        query = query.filter(RecordDB.visit_type == visit_type.value)

    if actor.role == UserRole.DOCTOR:
        now = clock.utcnow()
        live_share = exists().where(
            RecordShare.record_id == RecordDB.id,
            RecordShare.user_id == actor.id,
            or_(RecordShare.expiry_date.is_(None), RecordShare.expiry_date > now),
        )
        query = query.filter(or_(RecordDB.doctor_id == actor.id, live_share))

    total = query.count()
    records = (query.order_by(RecordDB.visit_date.desc())
               .offset((page - 1) * limit).limit(limit).all())

    return envelope(
        "Medical records retrieved",
        [_to_response(r, actor) for r in records],
        count=len(records),
        total=total,
        pagination={"page": page, "limit": limit, "pages": (total + limit - 1) // limit},
    )


@router.post("/", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(audit("create_record"))])
def create_record(
    record_data: MedicalRecordCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(doctor_only)
):
    """Create a record for a patient the calling doctor is assigned to."""
    patient = db.query(PatientDB).filter(PatientDB.id == record_data.patient_id).first()
    if not patient:
        raise NotFoundError("Patient not found")
    require(actor, Action.WRITE, patient_resource(patient))

    record = RecordDB(
        patient_id=patient.id,
        doctor_id=actor.id,
        visit_date=to_naive_utc(record_data.visit_date) or clock.utcnow(),
        visit_type=record_data.visit_type.value,
        chief_complaint=sanitize_input(record_data.chief_complaint),
        notes=sanitize_input(record_data.notes),
        private_notes=sanitize_input(record_data.private_notes),
        status=record_data.status.value,
        priority=record_data.priority.value,
        version=1,
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    logger.info(f"Medical record {record.id} created by {actor.id} for patient {patient.id}")
    return envelope("Medical record created successfully", _to_response(record, actor))


@router.get("/patient/{patient_id}", dependencies=[Depends(audit("view_patient_records"))])
def list_patient_records(
    patient_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(any_role)
):
    """Records of one patient, newest visit first, filtered to what the caller may read."""
    patient = db.query(PatientDB).filter(PatientDB.id == patient_id).first()
    if not patient:
        raise NotFoundError("Patient not found")
    if actor.role == UserRole.PATIENT:
        require(actor, Action.READ, patient_resource(patient),
                "Not authorized to access these records")

    records = (db.query(RecordDB).filter(RecordDB.patient_id == patient.id)
               .order_by(RecordDB.visit_date.desc()).all())
    now = clock.utcnow()
    visible = [r for r in records if evaluate(actor, Action.READ, record_resource(r), now)]

    data = [_to_response(r, actor) for r in visible[:limit]]
    return envelope("Medical records retrieved", data, count=len(data))


@router.get("/{record_id}", dependencies=[Depends(audit("view_record"))])
def get_record(
    record_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(any_role)
):
    record = get_record_or_404(db, record_id)
    require(actor, Action.READ, record_resource(record))
    return envelope("Medical record retrieved", _to_response(record, actor))


@router.put("/{record_id}", dependencies=[Depends(audit("update_record"))])
def update_record(
    record_id: str,
    changes: MedicalRecordUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(clinician)
):
    """Update a record. Needs authorship, admin, or a live write share."""
    record = get_record_or_404(db, record_id)
    require(actor, Action.WRITE, record_resource(record), "Not authorized to edit this record")

    for key, value in changes.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(record, key, _column_value(value))
    record.version = (record.version or 1) + 1

    db.commit()
    db.refresh(record)
    return envelope("Medical record updated successfully", _to_response(record, actor))


@router.delete("/{record_id}", dependencies=[Depends(audit("delete_record"))])
def delete_record(
    record_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(clinician)
):
    record = get_record_or_404(db, record_id)
    require(actor, Action.DELETE, record_resource(record), "Not authorized to delete this record")

    db.delete(record)
    db.commit()
    logger.info(f"Medical record {record_id} deleted by {actor.id}")
    return envelope("Medical record deleted successfully")


@router.post("/{record_id}/share", dependencies=[Depends(audit("share_record"))])
def share(
    record_id: str,
    share_data: ShareRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(clinician)
):
    record = get_record_or_404(db, record_id)
    require(actor, Action.SHARE, record_resource(record), "Not authorized to share this record")

    share_record(db, record, share_data.user_id, share_data.permissions, share_data.expiry_date)
    return envelope("Record shared successfully", _to_response(record, actor))


@router.post("/{record_id}/attachments", status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(audit("add_attachment"))])
def add_attachment(
    record_id: str,
    attachment: AttachmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(doctor_only)
):
    """Attach file metadata to a record the caller may edit."""
    record = get_record_or_404(db, record_id)
    require(actor, Action.WRITE, record_resource(record), "Not authorized to edit this record")

    record.attachments.append(RecordAttachment(
        file_name=sanitize_input(attachment.file_name),
        file_path=attachment.file_path,
        file_type=attachment.file_type.value,
        file_size=attachment.file_size,
        description=sanitize_input(attachment.description),
        uploaded_by=actor.id,
        uploaded_date=clock.utcnow(),
    ))
    db.commit()
    db.refresh(record)
    return envelope("Attachment added successfully", _to_response(record, actor))
