# saludlibre/services.py
"""Per-entity data access used by the routers.

Every function takes the request's ``Session`` and returns ``Ok``/``Err``;
database failures are rolled back, logged and reported as ``DB_ERROR``.
"""
import functools
import logging
import math
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .results import DB_ERROR, Err, Ok, Result
from .status import ACTIVE_STATUSES, AppointmentStatus, RecordType, UserRole

logger = logging.getLogger(__name__)

PATIENT_NOT_FOUND = "Paciente no encontrado"
DOCTOR_NOT_FOUND = "Doctor no encontrado"
APPOINTMENT_NOT_FOUND = "Cita no encontrada"
PRESCRIPTION_NOT_FOUND = "Receta no encontrada"
DOCUMENT_NOT_FOUND = "Documento no encontrado"
RECORD_NOT_FOUND = "Registro médico no encontrado"
ALREADY_REVIEWED = "Esta cita ya fue calificada"

# fields that must be present for a patient profile to count as complete
REQUIRED_PROFILE_FIELDS = ("full_name", "phone", "date_of_birth", "dni")

DOCTOR_FIELDS = (
    "full_name", "specialty", "profession", "license_number", "phone",
    "address", "city", "signature_url", "stamp_url",
)
PATIENT_FIELDS = (
    "full_name", "phone", "date_of_birth", "dni", "gender", "address",
    "emergency_contact_name", "emergency_contact_phone", "insurance_provider",
    "insurance_plan", "insurance_member_id", "medical_notes",
)


def _guarded(fn):
    @functools.wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("%s failed", fn.__name__)
            return Err(DB_ERROR)
    return wrapper


def _apply(row, updates: dict, allowed) -> None:
    for field, value in updates.items():
        if field in allowed:
            setattr(row, field, value)


# ---- Users

@_guarded
def set_user_password(db: Session, user: models.User, password_hash: str, must_change: bool) -> Result[models.User]:
    user.password_hash = password_hash
    user.must_change_password = must_change
    db.add(user)
    db.commit()
    return Ok(user)


# ---- Doctors

@_guarded
def get_doctor(db: Session, doctor_id: int) -> Result[models.Doctor]:
    doc = db.get(models.Doctor, doctor_id)
    if not doc:
        return Err(DOCTOR_NOT_FOUND, 404)
    return Ok(doc)

@_guarded
def get_doctor_by_user(db: Session, user_id: int) -> Result[models.Doctor]:
    doc = db.query(models.Doctor).filter(models.Doctor.user_id == user_id).first()
    if not doc:
        return Err(DOCTOR_NOT_FOUND, 404)
    return Ok(doc)

@_guarded
def list_doctors(
    db: Session,
    search: Optional[str] = None,
    specialty: Optional[str] = None,
    verified_only: bool = True,
) -> Result[List[models.Doctor]]:
    q = db.query(models.Doctor)
    if verified_only:
        q = q.filter(models.Doctor.verified.is_(True))
    if specialty:
        q = q.filter(models.Doctor.specialty.ilike(f"%{specialty.strip()}%"))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(models.Doctor.full_name.ilike(term), models.Doctor.specialty.ilike(term)))
    return Ok(q.order_by(models.Doctor.full_name.asc()).all())

@_guarded
def update_doctor(db: Session, doctor: models.Doctor, updates: dict) -> Result[models.Doctor]:
    _apply(doctor, updates, DOCTOR_FIELDS)
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return Ok(doctor)


# ---- Patients

def is_profile_complete(patient: models.Patient) -> bool:
    return all(getattr(patient, f) not in (None, "") for f in REQUIRED_PROFILE_FIELDS)

@_guarded
def create_patient(db: Session, fields: dict, doctor_id: Optional[int], user_id: Optional[int]) -> Result[models.Patient]:
    patient = models.Patient(doctor_id=doctor_id, user_id=user_id)
    _apply(patient, fields, PATIENT_FIELDS + ("email",))
    patient.profile_complete = is_profile_complete(patient)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return Ok(patient)

@_guarded
def get_patient(db: Session, patient_id: int) -> Result[models.Patient]:
    patient = db.get(models.Patient, patient_id)
    if not patient:
        return Err(PATIENT_NOT_FOUND, 404)
    return Ok(patient)

@_guarded
def get_patient_by_user(db: Session, user_id: int) -> Result[models.Patient]:
    patient = db.query(models.Patient).filter(models.Patient.user_id == user_id).first()
    if not patient:
        return Err(PATIENT_NOT_FOUND, 404)
    return Ok(patient)

def _doctor_patient_ids(db: Session, doctor_id: int):
    # patients assigned to the doctor plus anyone who booked with them
    booked = db.query(models.Appointment.patient_id).filter(models.Appointment.doctor_id == doctor_id)
    return or_(models.Patient.doctor_id == doctor_id, models.Patient.patient_id.in_(booked))

@_guarded
def list_patients_for_doctor(db: Session, doctor_id: int, search: Optional[str] = None) -> Result[List[models.Patient]]:
    q = db.query(models.Patient).filter(_doctor_patient_ids(db, doctor_id))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(
            models.Patient.full_name.ilike(term),
            models.Patient.email.ilike(term),
            models.Patient.dni.ilike(term),
            models.Patient.phone.ilike(term),
        ))
    return Ok(q.order_by(models.Patient.full_name.asc()).all())

@_guarded
def doctor_can_access_patient(db: Session, doctor_id: int, patient_id: int) -> Result[models.Patient]:
    patient = (
        db.query(models.Patient)
        .filter(models.Patient.patient_id == patient_id, _doctor_patient_ids(db, doctor_id))
        .first()
    )
    if not patient:
        # either not found or not one of this doctor's patients
        return Err(PATIENT_NOT_FOUND, 404)
    return Ok(patient)

@_guarded
def update_patient(db: Session, patient: models.Patient, updates: dict) -> Result[models.Patient]:
    _apply(patient, updates, PATIENT_FIELDS)
    patient.profile_complete = is_profile_complete(patient)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return Ok(patient)


# ---- Appointments

SLOT_START_HOUR = 9
SLOT_END_HOUR = 18

def all_time_slots() -> List[str]:
    slots = []
    for hour in range(SLOT_START_HOUR, SLOT_END_HOUR):
        slots.append(f"{hour:02d}:00")
        slots.append(f"{hour:02d}:30")
    return slots

def _booked_times(db: Session, doctor_id: int, day: date) -> List[str]:
    rows = (
        db.query(models.Appointment.time)
        .filter(
            models.Appointment.doctor_id == doctor_id,
            models.Appointment.date == day,
            models.Appointment.status.in_(ACTIVE_STATUSES),
        )
        .all()
    )
    return [r.time for r in rows]

@_guarded
def available_time_slots(db: Session, doctor_id: int, day: date) -> Result[List[str]]:
    booked = set(_booked_times(db, doctor_id, day))
    return Ok([slot for slot in all_time_slots() if slot not in booked])

@_guarded
def create_appointment(
    db: Session,
    patient_id: int,
    doctor_id: int,
    day: date,
    time: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    status: AppointmentStatus = AppointmentStatus.PENDING,
) -> Result[models.Appointment]:
    if time in _booked_times(db, doctor_id, day):
        return Err("El horario seleccionado ya no está disponible", 409)
    appt = models.Appointment(
        patient_id=patient_id,
        doctor_id=doctor_id,
        date=day,
        time=time,
        status=status,
        reason=reason,
        notes=notes,
    )
    db.add(appt)
    db.commit()
    db.refresh(appt)
    return Ok(appt)

@_guarded
def get_appointment(db: Session, appointment_id: int) -> Result[models.Appointment]:
    appt = db.get(models.Appointment, appointment_id)
    if not appt:
        return Err(APPOINTMENT_NOT_FOUND, 404)
    return Ok(appt)

@_guarded
def list_appointments(
    db: Session,
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
) -> Result[List[models.Appointment]]:
    q = db.query(models.Appointment)
    if doctor_id is not None:
        q = q.filter(models.Appointment.doctor_id == doctor_id)
    if patient_id is not None:
        q = q.filter(models.Appointment.patient_id == patient_id)
    if status is not None:
        q = q.filter(models.Appointment.status == status)
    return Ok(q.order_by(models.Appointment.date.desc(), models.Appointment.time.desc()).all())

@_guarded
def update_appointment_status(
    db: Session,
    appt: models.Appointment,
    new_status: AppointmentStatus,
    notes: Optional[str] = None,
) -> Result[models.Appointment]:
    current = AppointmentStatus(appt.status)
    if current.is_terminal:
        return Err(f"La cita ya está {current.label.lower()} y no admite cambios", 409)
    if not current.can_transition_to(new_status):
        return Err(f"No se puede cambiar una cita {current.label.lower()} a {new_status.label.lower()}", 409)
    appt.status = new_status
    if notes:
        appt.notes = notes
    db.add(appt)
    db.commit()
    db.refresh(appt)
    return Ok(appt)

@_guarded
def delete_appointment(db: Session, appt: models.Appointment) -> Result[bool]:
    db.query(models.Document).filter(models.Document.appointment_id == appt.appointment_id).delete()
    db.query(models.Review).filter(models.Review.appointment_id == appt.appointment_id).delete()
    db.delete(appt)
    db.commit()
    return Ok(True)


# ---- Prescriptions

@_guarded
def create_prescription(db: Session, **fields) -> Result[models.Prescription]:
    presc = models.Prescription(**fields)
    db.add(presc)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return Err("Ya existe una receta con ese número", 409)
    db.refresh(presc)
    return Ok(presc)

@_guarded
def get_prescription(db: Session, prescription_id: int) -> Result[models.Prescription]:
    presc = db.get(models.Prescription, prescription_id)
    if not presc:
        return Err(PRESCRIPTION_NOT_FOUND, 404)
    return Ok(presc)

@_guarded
def list_prescriptions(
    db: Session,
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
) -> Result[List[models.Prescription]]:
    q = db.query(models.Prescription)
    if doctor_id is not None:
        q = q.filter(models.Prescription.doctor_id == doctor_id)
    if patient_id is not None:
        q = q.filter(models.Prescription.patient_id == patient_id)
    if appointment_id is not None:
        q = q.filter(models.Prescription.appointment_id == appointment_id)
    return Ok(q.order_by(models.Prescription.created_at.desc(), models.Prescription.prescription_id.desc()).all())

@_guarded
def delete_prescription(db: Session, presc: models.Prescription) -> Result[bool]:
    db.delete(presc)
    db.commit()
    return Ok(True)


# ---- Documents

def storage_path_for(patient_id: int, file_name: str, appointment_id: Optional[int] = None) -> str:
    stamp = int(datetime.utcnow().timestamp() * 1000)
    if appointment_id is not None:
        return f"appointment-documents/{appointment_id}/{stamp}_{file_name}"
    return f"patient-documents/{patient_id}/{stamp}_{file_name}"

@_guarded
def create_document(
    db: Session,
    patient_id: int,
    title: str,
    file_name: str,
    content_type: str,
    data: bytes,
    uploaded_by: UserRole,
    appointment_id: Optional[int] = None,
) -> Result[models.Document]:
    doc = models.Document(
        patient_id=patient_id,
        appointment_id=appointment_id,
        title=title,
        file_name=file_name,
        file_size=len(data),
        content_type=content_type,
        storage_path=storage_path_for(patient_id, file_name, appointment_id),
        uploaded_by=uploaded_by,
        blob=data,
    )
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return Ok(doc)

@_guarded
def get_document(db: Session, document_id: int) -> Result[models.Document]:
    doc = db.get(models.Document, document_id)
    if not doc:
        return Err(DOCUMENT_NOT_FOUND, 404)
    return Ok(doc)

@_guarded
def list_documents(
    db: Session,
    patient_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
) -> Result[List[models.Document]]:
    q = db.query(models.Document)
    if patient_id is not None:
        q = q.filter(models.Document.patient_id == patient_id)
    if appointment_id is not None:
        q = q.filter(models.Document.appointment_id == appointment_id)
    return Ok(q.order_by(models.Document.uploaded_at.desc(), models.Document.document_id.desc()).all())

@_guarded
def update_document_title(db: Session, doc: models.Document, title: str) -> Result[models.Document]:
    doc.title = title.strip()
    doc.updated_at = datetime.utcnow()
    db.add(doc)
    db.commit()
    db.refresh(doc)
    return Ok(doc)

@_guarded
def delete_document(db: Session, doc: models.Document) -> Result[bool]:
    db.delete(doc)
    db.commit()
    return Ok(True)


# ---- Medical records

RECORD_FIELDS = ("type", "title", "description", "date")

@_guarded
def create_medical_record(
    db: Session,
    patient_id: int,
    fields: dict,
    doctor_id: Optional[int] = None,
) -> Result[models.MedicalRecord]:
    record = models.MedicalRecord(patient_id=patient_id, doctor_id=doctor_id)
    _apply(record, fields, RECORD_FIELDS)
    db.add(record)
    db.commit()
    db.refresh(record)
    return Ok(record)

@_guarded
def get_medical_record(db: Session, record_id: int, patient_id: Optional[int] = None) -> Result[models.MedicalRecord]:
    record = db.get(models.MedicalRecord, record_id)
    if not record or (patient_id is not None and record.patient_id != patient_id):
        return Err(RECORD_NOT_FOUND, 404)
    return Ok(record)

@_guarded
def list_medical_records(
    db: Session,
    patient_id: int,
    record_type: Optional[RecordType] = None,
) -> Result[List[models.MedicalRecord]]:
    """Newest first by the date the record refers to."""
    q = db.query(models.MedicalRecord).filter(models.MedicalRecord.patient_id == patient_id)
    if record_type is not None:
        q = q.filter(models.MedicalRecord.type == record_type)
    return Ok(q.order_by(models.MedicalRecord.date.desc(), models.MedicalRecord.record_id.desc()).all())

@_guarded
def update_medical_record(db: Session, record: models.MedicalRecord, updates: dict) -> Result[models.MedicalRecord]:
    _apply(record, updates, RECORD_FIELDS)
    db.add(record)
    db.commit()
    db.refresh(record)
    return Ok(record)

@_guarded
def delete_medical_record(db: Session, record: models.MedicalRecord) -> Result[bool]:
    db.delete(record)
    db.commit()
    return Ok(True)


# ---- Reviews

REVIEW_ASPECTS = ("punctuality", "attention", "explanation", "facilities")

def _one_decimal(value: float) -> float:
    # half up, so 4.25 shows as 4.3
    return math.floor(value * 10 + 0.5) / 10

def _review_blocker(db: Session, appt: models.Appointment, patient_id: int) -> Optional[Err]:
    if appt.patient_id != patient_id:
        return Err(APPOINTMENT_NOT_FOUND, 404)
    if AppointmentStatus(appt.status) != AppointmentStatus.COMPLETED:
        return Err("Solo se pueden calificar citas completadas", 400)
    exists = db.query(models.Review.review_id).filter(models.Review.appointment_id == appt.appointment_id).first()
    if exists:
        return Err(ALREADY_REVIEWED, 409)
    return None

@_guarded
def can_review_appointment(db: Session, appt: models.Appointment, patient_id: int) -> Result[bool]:
    return Ok(_review_blocker(db, appt, patient_id) is None)

@_guarded
def create_review(
    db: Session,
    appt: models.Appointment,
    patient_id: int,
    rating: int,
    comment: Optional[str] = None,
    would_recommend: bool = True,
    aspects: Optional[dict] = None,
) -> Result[models.Review]:
    blocker = _review_blocker(db, appt, patient_id)
    if blocker is not None:
        return blocker
    review = models.Review(
        appointment_id=appt.appointment_id,
        patient_id=patient_id,
        doctor_id=appt.doctor_id,
        rating=rating,
        comment=comment,
        would_recommend=would_recommend,
        aspects={a: (aspects or {}).get(a, 0) for a in REVIEW_ASPECTS},
    )
    db.add(review)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with another submission for the same appointment
        db.rollback()
        return Err(ALREADY_REVIEWED, 409)
    db.refresh(review)
    return Ok(review)

@_guarded
def list_reviews(
    db: Session,
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
) -> Result[List[models.Review]]:
    q = db.query(models.Review)
    if doctor_id is not None:
        q = q.filter(models.Review.doctor_id == doctor_id)
    if patient_id is not None:
        q = q.filter(models.Review.patient_id == patient_id)
    return Ok(q.order_by(models.Review.created_at.desc(), models.Review.review_id.desc()).all())

@_guarded
def list_reviewable_appointments(db: Session, patient_id: int) -> Result[List[models.Appointment]]:
    """Completed appointments the patient has not reviewed yet."""
    reviewed = db.query(models.Review.appointment_id).filter(models.Review.patient_id == patient_id)
    q = db.query(models.Appointment).filter(
        models.Appointment.patient_id == patient_id,
        models.Appointment.status == AppointmentStatus.COMPLETED,
        models.Appointment.appointment_id.notin_(reviewed),
    )
    return Ok(q.order_by(models.Appointment.date.desc(), models.Appointment.time.desc()).all())

def summarize_reviews(reviews: List[models.Review]) -> dict:
    """Average rating and per-aspect averages, rounded to one decimal."""
    if not reviews:
        return {
            "average_rating": 0.0,
            "total_reviews": 0,
            "aspect_averages": {a: 0.0 for a in REVIEW_ASPECTS},
        }
    total = len(reviews)
    aspect_totals = {a: 0 for a in REVIEW_ASPECTS}
    for review in reviews:
        for aspect in REVIEW_ASPECTS:
            aspect_totals[aspect] += (review.aspects or {}).get(aspect) or 0
    return {
        "average_rating": _one_decimal(sum(r.rating for r in reviews) / total),
        "total_reviews": total,
        "aspect_averages": {a: _one_decimal(aspect_totals[a] / total) for a in REVIEW_ASPECTS},
    }

@_guarded
def doctor_rating(db: Session, doctor_id: int) -> Result[dict]:
    reviews = db.query(models.Review).filter(models.Review.doctor_id == doctor_id).all()
    return Ok(summarize_reviews(reviews))

@_guarded
def average_ratings(db: Session, doctor_ids: List[int]) -> Result[dict]:
    """doctor_id -> (average_rating, total_reviews) for the directory listing."""
    if not doctor_ids:
        return Ok({})
    rows = (
        db.query(models.Review.doctor_id, func.avg(models.Review.rating), func.count(models.Review.review_id))
        .filter(models.Review.doctor_id.in_(doctor_ids))
        .group_by(models.Review.doctor_id)
        .all()
    )
    return Ok({doctor_id: (_one_decimal(float(avg)), count) for doctor_id, avg, count in rows})
