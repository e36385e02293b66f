"""
Database connection and models using SQLAlchemy.
"""
from sqlalchemy import (
    create_engine, Column, String, DateTime, Text, Boolean, JSON, ForeignKey, Integer,
    UniqueConstraint,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, relationship
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func
from app.config import get_settings
import uuid
import logging

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options = {"connect_args": {"check_same_thread": False}}
    # In-memory databases only live as long as their single connection
    if url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url:
        options["poolclass"] = StaticPool
    return options


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# SQLAlchemy Models
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(30), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)  # admin, doctor, patient
    is_active = Column(Boolean, default=True, nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    profile_picture = Column(String(500), nullable=True)

    # Doctor profile
    specialization = Column(String(100), nullable=True)
    license_number = Column(String(100), unique=True, nullable=True)

    # Patient profile
    date_of_birth = Column(DateTime, nullable=True)
    gender = Column(String(20), nullable=True)
    blood_type = Column(String(5), nullable=True)
    emergency_contact_name = Column(String(100), nullable=True)
    emergency_contact_phone = Column(String(30), nullable=True)
    emergency_contact_relationship = Column(String(50), nullable=True)

    # Authentication state
    last_login = Column(DateTime, nullable=True)
    login_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime, nullable=True)
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires = Column(DateTime, nullable=True)
    email_verification_token = Column(String(64), nullable=True, index=True)
    email_verification_expires = Column(DateTime, nullable=True)
    token_version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship(
        "Patient", back_populates="user", uselist=False, foreign_keys="Patient.user_id"
    )


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    status = Column(String(20), default="active")  # active, inactive, deceased, transferred
    risk_level = Column(String(20), default="low")  # low, medium, high, critical
    notes = Column(Text, nullable=True)
    last_updated_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="patient", foreign_keys=[user_id])
    assigned_doctors = relationship(
        "PatientDoctor", back_populates="patient", cascade="all, delete-orphan"
    )
    records = relationship("MedicalRecord", back_populates="patient")


class PatientDoctor(Base):
    __tablename__ = "patient_doctors"
    __table_args__ = (UniqueConstraint("patient_id", "doctor_id", name="uq_patient_doctor"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    specialization = Column(String(100), nullable=True)
    assigned_date = Column(DateTime, nullable=False)

    patient = relationship("Patient", back_populates="assigned_doctors")
    doctor = relationship("User")


class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    visit_date = Column(DateTime, nullable=False)
    visit_type = Column(String(30), nullable=False)
    chief_complaint = Column(String(500), nullable=False)
    notes = Column(Text, nullable=True)
    private_notes = Column(String(2000), nullable=True)
    status = Column(String(20), default="draft")  # draft, pending-review, completed, amended
    priority = Column(String(20), default="normal")  # low, normal, high, urgent
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship("Patient", back_populates="records")
    doctor = relationship("User")
    shares = relationship("RecordShare", back_populates="record", cascade="all, delete-orphan")
    attachments = relationship(
        "RecordAttachment", back_populates="record", cascade="all, delete-orphan"
    )


class RecordShare(Base):
    __tablename__ = "record_shares"
    __table_args__ = (UniqueConstraint("record_id", "user_id", name="uq_record_share"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("medical_records.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    permissions = Column(JSON, nullable=False)  # subset of ["read", "write", "share"]
    shared_date = Column(DateTime, nullable=False)
    expiry_date = Column(DateTime, nullable=True)

    record = relationship("MedicalRecord", back_populates="shares")


class RecordAttachment(Base):
    __tablename__ = "record_attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("medical_records.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_type = Column(String(20), nullable=False)  # image, pdf, document, lab-result, imaging
    file_size = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    uploaded_date = Column(DateTime, nullable=False)

    record = relationship("MedicalRecord", back_populates="attachments")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)  # null for anonymous requests
    action = Column(String(100), nullable=False, index=True)  # user_login, password_change, view_record, etc.
    details = Column(Text, nullable=True)
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False)


def init_db():
    """Create all tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
