# saludlibre/models.py
from sqlalchemy import Column, Integer, String, LargeBinary, Boolean, Date, DateTime, ForeignKey, Text, JSON, SmallInteger
from sqlalchemy import Enum as SAEnum
from sqlalchemy.sql import func

from .database import Base
from .status import AppointmentStatus, RecordType, UserRole


def _enum_column(enum_cls, **kw):
    return Column(
        SAEnum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        **kw,
    )


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(200), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = _enum_column(UserRole, nullable=False)
    is_active = Column(Boolean, default=True)
    must_change_password = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

class Doctor(Base):
    __tablename__ = "doctors"

    doctor_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), unique=True, nullable=False)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    specialty = Column(String(120), nullable=True)
    profession = Column(String(120), nullable=True)
    license_number = Column(String(60), nullable=True)
    phone = Column(String(40), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    signature_url = Column(String(500), nullable=True)
    stamp_url = Column(String(500), nullable=True)
    verified = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Patient(Base):
    __tablename__ = "patients"

    patient_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), unique=True, nullable=True)
    doctor_id = Column(Integer, ForeignKey("doctors.doctor_id"), nullable=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(40), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    dni = Column(String(20), nullable=True)
    gender = Column(String(30), nullable=True)
    address = Column(String(255), nullable=True)
    emergency_contact_name = Column(String(200), nullable=True)
    emergency_contact_phone = Column(String(40), nullable=True)
    insurance_provider = Column(String(120), nullable=True)
    insurance_plan = Column(String(120), nullable=True)
    insurance_member_id = Column(String(60), nullable=True)
    medical_notes = Column(Text, nullable=True)
    profile_complete = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class Appointment(Base):
    __tablename__ = "appointments"

    appointment_id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.patient_id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.doctor_id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)
    status = _enum_column(AppointmentStatus, nullable=False, default=AppointmentStatus.PENDING)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class Prescription(Base):
    __tablename__ = "prescriptions"

    prescription_id = Column(Integer, primary_key=True, index=True)
    number = Column(String(40), unique=True, nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.doctor_id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.patient_id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.appointment_id"), nullable=True)
    doctor_info = Column(JSON)
    patient_info = Column(JSON)
    medications = Column(JSON)
    diagnosis = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Document(Base):
    __tablename__ = "documents"

    document_id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.patient_id"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.appointment_id"), nullable=True)
    title = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    content_type = Column(String(120), nullable=False)
    storage_path = Column(String(500), nullable=False)
    uploaded_by = _enum_column(UserRole, nullable=False)
    blob = Column(LargeBinary, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

class MedicalRecord(Base):
    __tablename__ = "medical_records"

    record_id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.patient_id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.doctor_id"), nullable=True)
    type = _enum_column(RecordType, nullable=False, default=RecordType.CONSULTATION)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class Review(Base):
    __tablename__ = "reviews"

    review_id = Column(Integer, primary_key=True, index=True)
    # one review per appointment
    appointment_id = Column(Integer, ForeignKey("appointments.appointment_id"), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.patient_id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.doctor_id"), nullable=False, index=True)
    rating = Column(SmallInteger, nullable=False)
    comment = Column(Text, nullable=True)
    would_recommend = Column(Boolean, default=True)
    aspects = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
