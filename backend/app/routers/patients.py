"""
Patient management routes.
"""
import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db, Patient as PatientDB, PatientDoctor
from app.errors import NotFoundError
from app.models.common import envelope
from app.models.patient import (
    AssignDoctor, PatientResponse, PatientStatus, PatientUpdate, RiskLevel,
)
from app.models.user import UserRole
from app.services.access_control import Action, Actor, patient_resource, require
from app.services.auth_service import require_roles
from app.services.credentials import sanitize_input
from app.services.guards import audit
from app.services.relationships import assign_doctor, remove_doctor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patients", tags=["Patients"])

any_role = require_roles(UserRole.ADMIN, UserRole.DOCTOR, UserRole.PATIENT)
clinician = require_roles(UserRole.ADMIN, UserRole.DOCTOR)
require_admin = require_roles(UserRole.ADMIN)


def get_patient_or_404(db: Session, patient_id: str) -> PatientDB:
    patient = db.query(PatientDB).filter(PatientDB.id == patient_id).first()
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


@router.get("/", dependencies=[Depends(audit("view_patients"))])
def list_patients(
    status: PatientStatus = Query(None),
    risk_level: RiskLevel = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(clinician)
):
    """List patients. Doctors only see the patients assigned to them."""
    query = db.query(PatientDB)
    if actor.role == UserRole.DOCTOR:
        query = query.join(PatientDoctor).filter(PatientDoctor.doctor_id == actor.id)
    if status:
        query = query.filter(PatientDB.status == status.value)
    if risk_level:
        query = query.filter(PatientDB.risk_level == risk_level.value)

    total = query.count()
    patients = (query.order_by(PatientDB.created_at.desc())
                .offset((page - 1) * limit).limit(limit).all())

    return envelope(
        "Patients retrieved",
        [PatientResponse.from_patient(p) for p in patients],
        count=len(patients),
        total=total,
    )


@router.get("/{patient_id}", dependencies=[Depends(audit("view_patient"))])
def get_patient(
    patient_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(any_role)
):
    """Get a specific patient by ID."""
    patient = get_patient_or_404(db, patient_id)
    require(actor, Action.READ, patient_resource(patient))
    return envelope("Patient retrieved", PatientResponse.from_patient(patient))


@router.put("/{patient_id}", dependencies=[Depends(audit("update_patient"))])
def update_patient(
    patient_id: str,
    patient_data: PatientUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(clinician)
):
    """Update status, risk level or notes of a patient."""
    patient = get_patient_or_404(db, patient_id)
    require(actor, Action.WRITE, patient_resource(patient))

    update_data = patient_data.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if value is None:
            continue
        setattr(patient, key, value.value if hasattr(value, "value") else sanitize_input(value))
    patient.last_updated_by = actor.id

    db.commit()
    db.refresh(patient)
    return envelope("Patient updated successfully", PatientResponse.from_patient(patient))


@router.post("/{patient_id}/assign-doctor", dependencies=[Depends(audit("assign_doctor"))])
def assign_doctor_to_patient(
    patient_id: str,
    assignment: AssignDoctor,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    patient = get_patient_or_404(db, patient_id)
    assign_doctor(
        db, patient, assignment.doctor_id,
        is_primary=assignment.is_primary,
        specialization=sanitize_input(assignment.specialization or ""),
    )
    return envelope("Doctor assigned successfully", PatientResponse.from_patient(patient))


@router.delete("/{patient_id}/doctors/{doctor_id}",
               dependencies=[Depends(audit("remove_doctor"))])
def remove_doctor_from_patient(
    patient_id: str,
    doctor_id: str,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    patient = get_patient_or_404(db, patient_id)
    remove_doctor(db, patient, doctor_id)
    logger.info(f"Doctor {doctor_id} removed from patient {patient.id} by {admin.id}")
    return envelope("Doctor removed successfully", PatientResponse.from_patient(patient))
