from datetime import datetime, timedelta

import pytest

from app.database import MedicalRecord as RecordDB, Patient as PatientDB
from app.errors import AuthorizationError, DenyReason, NotFoundError, ValidationError
from app.models.user import UserRole
from app.services.access_control import (
    Action, Actor, FileResource, Grant, PatientResource, RecordResource, evaluate,
    patient_resource, record_resource, require,
)
from app.services.relationships import assign_doctor, remove_doctor, share_record

from conftest import DOCTOR, PATIENT, make_user

NOW = datetime(2024, 1, 1, 12, 0, 0)

ADMIN = Actor("admin-1", UserRole.ADMIN)
OWNER = Actor("patient-1", UserRole.PATIENT)
STRANGER = Actor("patient-2", UserRole.PATIENT)
ASSIGNED = Actor("doctor-1", UserRole.DOCTOR)
AUTHOR = Actor("doctor-2", UserRole.DOCTOR)
OTHER_DOCTOR = Actor("doctor-3", UserRole.DOCTOR)

PATIENT_RES = PatientResource(owner_id=OWNER.id, assigned_doctor_ids=frozenset({ASSIGNED.id}))


def record_with(*grants):
    return RecordResource(author_id=AUTHOR.id, patient=PATIENT_RES, grants=tuple(grants))


def test_admin_may_do_anything():
    for action in Action:
        assert evaluate(ADMIN, action, PATIENT_RES, NOW)
        assert evaluate(ADMIN, action, record_with(), NOW)


def test_patient_resource_rules():
    assert evaluate(OWNER, Action.READ, PATIENT_RES, NOW)
    assert evaluate(ASSIGNED, Action.READ, PATIENT_RES, NOW)
    assert evaluate(ASSIGNED, Action.WRITE, PATIENT_RES, NOW)

    assert evaluate(STRANGER, Action.READ, PATIENT_RES, NOW).reason == DenyReason.NOT_ASSIGNED
    assert evaluate(OTHER_DOCTOR, Action.READ, PATIENT_RES, NOW).reason == DenyReason.NOT_ASSIGNED
    assert evaluate(OWNER, Action.WRITE, PATIENT_RES, NOW).reason == DenyReason.INSUFFICIENT_ROLE


def test_record_read_rules():
    record = record_with()

    assert evaluate(OWNER, Action.READ, record, NOW)
    assert evaluate(AUTHOR, Action.READ, record, NOW)
    assert evaluate(ASSIGNED, Action.READ, record, NOW)
    assert evaluate(STRANGER, Action.READ, record, NOW).reason == DenyReason.NOT_OWNER
    assert evaluate(OTHER_DOCTOR, Action.READ, record, NOW).reason == DenyReason.NOT_SHARED


def test_patients_never_modify_records():
    for action in (Action.WRITE, Action.DELETE, Action.SHARE):
        decision = evaluate(OWNER, action, record_with(), NOW)
        assert not decision
        assert decision.reason == DenyReason.INSUFFICIENT_ROLE


def test_author_may_do_everything():
    for action in Action:
        assert evaluate(AUTHOR, action, record_with(), NOW)


def test_assignment_alone_does_not_allow_mutation():
    record = record_with()

    assert evaluate(ASSIGNED, Action.WRITE, record, NOW).reason == DenyReason.NOT_SHARED
    assert evaluate(ASSIGNED, Action.DELETE, record, NOW).reason == DenyReason.NOT_SHARED


def test_read_only_share_allows_read_but_not_write():
    record = record_with(Grant(OTHER_DOCTOR.id, frozenset({"read"})))

    assert evaluate(OTHER_DOCTOR, Action.READ, record, NOW)
    assert evaluate(OTHER_DOCTOR, Action.WRITE, record, NOW).reason == DenyReason.NOT_SHARED
    assert not evaluate(OTHER_DOCTOR, Action.SHARE, record, NOW)


def test_write_share_implies_read():
    record = record_with(Grant(OTHER_DOCTOR.id, frozenset({"write"})))

    assert evaluate(OTHER_DOCTOR, Action.READ, record, NOW)
    assert evaluate(OTHER_DOCTOR, Action.WRITE, record, NOW)
    assert evaluate(OTHER_DOCTOR, Action.DELETE, record, NOW)


def test_expired_share_is_treated_as_absent():
    record = record_with(Grant(OTHER_DOCTOR.id, frozenset({"read", "write"}), NOW))

    for action in (Action.READ, Action.WRITE):
        decision = evaluate(OTHER_DOCTOR, action, record, NOW)
        assert decision.reason == DenyReason.NOT_SHARED

    assert evaluate(OTHER_DOCTOR, Action.READ, record, NOW - timedelta(seconds=1))


def test_file_rules():
    assert evaluate(OWNER, Action.READ, FileResource("scan.pdf"), NOW)
    assert evaluate(ASSIGNED, Action.DELETE, FileResource("scan.pdf"), NOW)
    assert not evaluate(OWNER, Action.DELETE, FileResource("scan.pdf"), NOW)


def test_require_raises_with_reason():
    with pytest.raises(AuthorizationError) as exc:
        require(OTHER_DOCTOR, Action.READ, PATIENT_RES)
    assert exc.value.reason == DenyReason.NOT_ASSIGNED
    assert exc.value.status_code == 403


# Relationship graph

@pytest.fixture
def graph(db):
    patient_user = make_user(db, PATIENT)
    first = make_user(db, DOCTOR)
    second = make_user(db, DOCTOR, email="d2@x.com", license_number="LIC-0002")
    patient = db.query(PatientDB).filter(PatientDB.user_id == patient_user.id).one()
    return patient, first, second


def test_assignment_gates_doctor_access(db, graph):
    patient, first, _ = graph
    doctor = Actor.from_user(first)

    assert evaluate(doctor, Action.READ, patient_resource(patient)).reason == DenyReason.NOT_ASSIGNED

    assign_doctor(db, patient, first.id)
    assert evaluate(doctor, Action.READ, patient_resource(patient))

    remove_doctor(db, patient, first.id)
    assert not evaluate(doctor, Action.READ, patient_resource(patient))


def test_single_primary_doctor(db, graph):
    patient, first, second = graph

    assign_doctor(db, patient, first.id, is_primary=True)
    assign_doctor(db, patient, second.id, is_primary=True)

    primaries = [a.doctor_id for a in patient.assigned_doctors if a.is_primary]
    assert primaries == [second.id]
    assert len(patient.assigned_doctors) == 2


def test_reassigning_updates_in_place(db, graph):
    patient, first, _ = graph

    assign_doctor(db, patient, first.id, specialization="Cardiology")
    assign_doctor(db, patient, first.id, is_primary=True, specialization="Oncology")

    assert len(patient.assigned_doctors) == 1
    assert patient.assigned_doctors[0].is_primary
    assert patient.assigned_doctors[0].specialization == "Oncology"


def test_only_doctors_can_be_assigned(db, graph):
    patient, _, _ = graph

    with pytest.raises(ValidationError):
        assign_doctor(db, patient, patient.user_id)
    with pytest.raises(NotFoundError):
        assign_doctor(db, patient, "missing")


def test_share_replaces_existing_grant(db, graph):
    patient, first, second = graph
    assign_doctor(db, patient, first.id)
    record = RecordDB(patient_id=patient.id, doctor_id=first.id, visit_date=NOW,
                      visit_type="consultation", chief_complaint="Chest pain")
    db.add(record)
    db.commit()

    share_record(db, record, second.id, ["read", "write"])
    share_record(db, record, second.id, ["read"])

    assert len(record.shares) == 1
    assert record.shares[0].permissions == ["read"]
    assert not evaluate(Actor.from_user(second), Action.WRITE, record_resource(record))

    with pytest.raises(ValidationError):
        share_record(db, record, first.id, ["read"])
