"""
User management routes and the audit log (admin), plus role directories.
"""
import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.database import get_db, AuditLog as AuditLogDB, User as UserDB
from app.errors import NotFoundError, ValidationError
from app.models.common import envelope
from app.models.user import (
    AdminUserUpdate, AuditLogResponse, DoctorSummary, UserResponse, UserRole,
)
from app.services.access_control import Actor
from app.services.auth_service import get_current_actor, require_roles
from app.services.credentials import clean_details
from app.services.guards import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

require_admin = require_roles(UserRole.ADMIN)


def _pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "pages": (total + limit - 1) // limit}


@router.get("/", dependencies=[Depends(audit("view_users"))])
def list_users(
    role: UserRole = Query(None),
    status: str = Query(None, pattern="^(active|inactive)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    """List all users (admin only)."""
    query = db.query(UserDB)
    if role:
        query = query.filter(UserDB.role == role.value)
    if status:
        query = query.filter(UserDB.is_active == (status == "active"))

    total = query.count()
    users = (query.order_by(desc(UserDB.created_at))
             .offset((page - 1) * limit).limit(limit).all())

    return envelope(
        "Users retrieved",
        [UserResponse.from_user(u) for u in users],
        count=len(users),
        total=total,
        pagination=_pagination(page, limit, total),
    )


@router.get("/role/doctors")
def list_doctors(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Active doctors, visible to any authenticated user."""
    doctors = db.query(UserDB).filter(
        UserDB.role == UserRole.DOCTOR.value, UserDB.is_active.is_(True)
    ).all()
    data = [
        DoctorSummary(
            id=d.id, name=d.name, email=d.email,
            specialization=d.specialization, license_number=d.license_number,
        )
        for d in doctors
    ]
    return envelope("Doctors retrieved", data, count=len(data))


@router.get("/role/patients")
def list_patient_users(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.DOCTOR, UserRole.ADMIN))
):
    patients = db.query(UserDB).filter(
        UserDB.role == UserRole.PATIENT.value, UserDB.is_active.is_(True)
    ).all()
    data = [UserResponse.from_user(p) for p in patients]
    return envelope("Patients retrieved", data, count=len(data))


@router.get("/audit-logs")
def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    action: str = Query(None),
    user_id: str = Query(None),
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    """List audit logs (admin only)."""
    query = db.query(AuditLogDB)
    if action:
        query = query.filter(AuditLogDB.action == action)
    if user_id:
        query = query.filter(AuditLogDB.user_id == user_id)

    total = query.count()
    logs = (query.order_by(desc(AuditLogDB.created_at))
            .offset((page - 1) * limit).limit(limit).all())

    data = [
        AuditLogResponse(
            id=log.id,
            user_id=log.user_id,
            action=log.action,
            details=log.details,
            ip_address=log.ip_address,
            user_agent=log.user_agent,
            created_at=log.created_at,
        )
        for log in logs
    ]
    return envelope("Audit logs retrieved", data, count=len(data), total=total)


@router.get("/{user_id}", dependencies=[Depends(audit("view_user"))])
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    """Get a specific user (admin only)."""
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return envelope("User retrieved", UserResponse.from_user(user))


@router.put("/{user_id}", dependencies=[Depends(audit("update_user"))])
def update_user(
    user_id: str,
    changes: AdminUserUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    """Update a user (admin only). Role cannot be changed."""
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    update_data = changes.model_dump(exclude_unset=True)
    if update_data.get("is_active") is False and user.id == admin.id:
        raise ValidationError("Cannot deactivate yourself")
    if "specialization" in update_data and user.role != UserRole.DOCTOR.value:
        raise ValidationError("Only doctors have a specialization")

    for key, value in clean_details(update_data).items():
        setattr(user, key, value)

    db.commit()
    db.refresh(user)
    return envelope("User updated successfully", UserResponse.from_user(user))


@router.delete("/{user_id}", dependencies=[Depends(audit("delete_user"))])
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin)
):
    """Deactivate a user (admin only). Accounts are never physically removed."""
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    if user.id == admin.id:
        raise ValidationError("Cannot deactivate yourself")

    user.is_active = False
    db.commit()
    logger.info(f"User {user.id} deactivated by {admin.id}")
    return envelope("User deactivated successfully")
