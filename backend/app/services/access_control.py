"""
Access control evaluator.

``evaluate`` is a pure decision over (actor, action, resource). It combines
the actor's role with the relationships carried by the resource: patient
ownership, doctor assignment, record authorship and sharing grants. It does
no I/O; the ``*_resource`` helpers snapshot ORM rows into the plain
structures it reads.

Rules, first match wins:

1. admins may do anything;
2. patient resources: the owning patient, or an assigned doctor, else
   NotAssigned; only doctors and admins may modify them;
3. medical records: the owning patient may read (anyone else's record is
   NotOwner for a patient); a doctor may read when they authored the
   record, are assigned to its patient, or hold a live grant that
   includes read (write implies read);
4. modifying a record (write/delete) needs authorship or a live write
   grant; sharing needs authorship or a live share grant;
5. anything else is denied for insufficient role.

A grant whose expiry has passed is treated as if it did not exist.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple, Union

from app.errors import AuthorizationError, DenyReason
from app.models.user import UserRole
from app.services import clock


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    SHARE = "share"


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=str(user.id), role=UserRole(user.role))


@dataclass(frozen=True)
class Grant:
    user_id: str
    permissions: FrozenSet[str]
    expiry_date: Optional[datetime] = None

    def is_live(self, now: datetime) -> bool:
        return self.expiry_date is None or self.expiry_date > now

    def allows(self, permission: str, now: datetime) -> bool:
        return self.is_live(now) and permission in self.permissions


@dataclass(frozen=True)
class PatientResource:
    owner_id: str
    assigned_doctor_ids: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class RecordResource:
    author_id: str
    patient: PatientResource
    grants: Tuple[Grant, ...] = ()

    def grant_for(self, user_id: str, now: datetime) -> Optional[Grant]:
        for grant in self.grants:
            if grant.user_id == user_id and grant.is_live(now):
                return grant
        return None


@dataclass(frozen=True)
class FileResource:
    filename: str


Resource = Union[PatientResource, RecordResource, FileResource]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


_DENY_MESSAGES = {
    DenyReason.NOT_ASSIGNED: "Not authorized to access this patient data",
    DenyReason.NOT_OWNER: "Not authorized to access this resource",
    DenyReason.NOT_SHARED: "Not authorized to access this medical record",
    DenyReason.INSUFFICIENT_ROLE: "User role is not authorized to perform this action",
}


def _evaluate_patient(actor: Actor, action: Action, patient: PatientResource) -> Decision:
    if actor.role == UserRole.PATIENT:
        if patient.owner_id != actor.id:
            return Decision.deny(DenyReason.NOT_ASSIGNED)
        if action != Action.READ:
            return Decision.deny(DenyReason.INSUFFICIENT_ROLE)
        return Decision.allow()
    if actor.role == UserRole.DOCTOR:
        if actor.id in patient.assigned_doctor_ids:
            return Decision.allow()
        return Decision.deny(DenyReason.NOT_ASSIGNED)
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def _evaluate_record(actor: Actor, action: Action, record: RecordResource,
                     now: datetime) -> Decision:
    if actor.role == UserRole.PATIENT:
        if record.patient.owner_id != actor.id:
            return Decision.deny(DenyReason.NOT_OWNER)
        if action != Action.READ:
            return Decision.deny(DenyReason.INSUFFICIENT_ROLE)
        return Decision.allow()

    if actor.role != UserRole.DOCTOR:
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

    if record.author_id == actor.id:
        return Decision.allow()

    grant = record.grant_for(actor.id, now)
    if action == Action.READ:
        if actor.id in record.patient.assigned_doctor_ids:
            return Decision.allow()
        if grant and (grant.allows("read", now) or grant.allows("write", now)):
            return Decision.allow()
    elif action in (Action.WRITE, Action.DELETE):
        if grant and grant.allows("write", now):
            return Decision.allow()
    elif action == Action.SHARE:
        if grant and grant.allows("share", now):
            return Decision.allow()
    return Decision.deny(DenyReason.NOT_SHARED)


def _evaluate_file(actor: Actor, action: Action) -> Decision:
    if action == Action.READ:
        return Decision.allow()
    if action == Action.DELETE and actor.role == UserRole.DOCTOR:
        return Decision.allow()
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def evaluate(actor: Actor, action: Action, resource: Resource,
             now: Optional[datetime] = None) -> Decision:
    """Decide whether ``actor`` may perform ``action`` on ``resource``."""
    if actor.role == UserRole.ADMIN:
        return Decision.allow()

    now = now or clock.utcnow()
    if isinstance(resource, PatientResource):
        return _evaluate_patient(actor, action, resource)
    if isinstance(resource, RecordResource):
        return _evaluate_record(actor, action, resource, now)
    if isinstance(resource, FileResource):
        return _evaluate_file(actor, action)
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def require(actor: Actor, action: Action, resource: Resource,
            message: Optional[str] = None) -> None:
    """Raise ``AuthorizationError`` unless the actor is allowed."""
    decision = evaluate(actor, action, resource)
    if not decision:
        raise AuthorizationError(decision.reason, message or _DENY_MESSAGES[decision.reason])


def require_role(actor: Actor, *roles: UserRole) -> None:
    if actor.role not in roles:
        raise AuthorizationError(
            DenyReason.INSUFFICIENT_ROLE,
            f"User role {actor.role.value} is not authorized to access this route",
        )


# Snapshots of ORM rows

def patient_resource(patient) -> PatientResource:
    return PatientResource(
        owner_id=str(patient.user_id),
        assigned_doctor_ids=frozenset(str(a.doctor_id) for a in patient.assigned_doctors),
    )


def record_resource(record) -> RecordResource:
    return RecordResource(
        author_id=str(record.doctor_id),
        patient=patient_resource(record.patient),
        grants=tuple(
            Grant(
                user_id=str(s.user_id),
                permissions=frozenset(s.permissions or []),
                expiry_date=s.expiry_date,
            )
            for s in record.shares
        ),
    )
