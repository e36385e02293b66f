"""
Mutations of the patient/record relationship graph: doctor assignments and
record sharing grants.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.database import (
    MedicalRecord as RecordDB, Patient as PatientDB, PatientDoctor, RecordShare,
    User as UserDB,
)
from app.errors import NotFoundError, ValidationError
from app.models.user import UserRole
from app.services import clock

logger = logging.getLogger(__name__)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise client-supplied datetimes to the naive UTC the database stores."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def assign_doctor(db: Session, patient: PatientDB, doctor_id: str,
                  is_primary: bool = False, specialization: str = "") -> PatientDoctor:
    """Assign a doctor to a patient, keeping at most one primary.

    Re-assigning an already assigned doctor updates the existing entry.
    Marking a doctor primary demotes whoever was primary before.
    """
    doctor = db.query(UserDB).filter(UserDB.id == doctor_id).first()
    if doctor is None or not doctor.is_active:
        raise NotFoundError("Doctor not found")
    if doctor.role != UserRole.DOCTOR.value:
        raise ValidationError("User is not a doctor", [f"User {doctor_id} is not a doctor"])

    if is_primary:
        for other in patient.assigned_doctors:
            if other.doctor_id != doctor_id:
                other.is_primary = False

    assignment = next((a for a in patient.assigned_doctors if a.doctor_id == doctor_id), None)
    if assignment:
        assignment.is_primary = is_primary
        assignment.specialization = specialization
    else:
        assignment = PatientDoctor(
            doctor_id=doctor_id,
            is_primary=is_primary,
            specialization=specialization,
            assigned_date=clock.utcnow(),
        )
        patient.assigned_doctors.append(assignment)

    db.commit()
    db.refresh(patient)
    logger.info(f"Doctor {doctor_id} assigned to patient {patient.id} (primary={is_primary})")
    return assignment


def remove_doctor(db: Session, patient: PatientDB, doctor_id: str) -> None:
    assignment = next((a for a in patient.assigned_doctors if a.doctor_id == doctor_id), None)
    if assignment is None:
        raise NotFoundError("Doctor is not assigned to this patient")
    patient.assigned_doctors.remove(assignment)
    db.commit()
    db.refresh(patient)


def share_record(db: Session, record: RecordDB, user_id: str,
                 permissions: Iterable[str], expiry_date: Optional[datetime] = None) -> RecordShare:
    """Grant ``user_id`` access to a record, replacing any earlier grant for that user."""
    target = db.query(UserDB).filter(UserDB.id == user_id).first()
    if target is None:
        raise NotFoundError("User not found")
    if user_id == record.doctor_id:
        raise ValidationError("Cannot share a record with its author",
                              ["Record author already has full access"])

    perms = sorted({p.value if hasattr(p, "value") else str(p) for p in permissions})
    if not perms:
        raise ValidationError("At least one permission is required", ["permissions is empty"])

    for existing in [s for s in record.shares if s.user_id == user_id]:
        record.shares.remove(existing)
    db.flush()

    share = RecordShare(
        user_id=user_id,
        permissions=perms,
        shared_date=clock.utcnow(),
        expiry_date=to_naive_utc(expiry_date),
    )
    record.shares.append(share)
    db.commit()
    db.refresh(record)
    logger.info(f"Record {record.id} shared with {user_id} ({','.join(perms)})")
    return share
