# saludlibre/appointments.py
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from . import database, models, notifications, schemas, services
from .deps import (
    RequestContext,
    ensure_appointment_access,
    ensure_patient_access,
    get_request_context,
    require_doctor,
    require_patient,
)
from .documents import store_upload
from .results import Err, unwrap
from .status import AppointmentStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _notify(result, what: str) -> None:
    if isinstance(result, Err):
        logger.warning("%s email not sent: %s", what, result.message)

# ---- Request (patient) or schedule (doctor) an appointment
@router.post("/", response_model=schemas.AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: schemas.AppointmentCreate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if payload.date < date.today():
        raise HTTPException(status_code=400, detail="No se pueden agendar turnos en fechas pasadas")
    if payload.time not in services.all_time_slots():
        raise HTTPException(status_code=400, detail="Horario inválido")

    if ctx.doctor is not None:
        if payload.patient_id is None:
            raise HTTPException(status_code=400, detail="Debe indicar el paciente")
        patient = ensure_patient_access(db, ctx, payload.patient_id)
        doctor = ctx.doctor
        initial = AppointmentStatus.CONFIRMED
    elif ctx.patient is not None:
        if payload.doctor_id is None:
            raise HTTPException(status_code=400, detail="Debe indicar el médico")
        doctor = unwrap(services.get_doctor(db, payload.doctor_id))
        patient = ctx.patient
        initial = AppointmentStatus.PENDING
    else:
        raise HTTPException(status_code=403, detail="Perfil incompleto")

    appt = unwrap(services.create_appointment(
        db,
        patient_id=patient.patient_id,
        doctor_id=doctor.doctor_id,
        day=payload.date,
        time=payload.time,
        reason=payload.reason,
        notes=payload.notes,
        status=initial,
    ))
    if initial == AppointmentStatus.PENDING:
        _notify(
            notifications.send_appointment_requested(doctor.email, doctor.full_name, patient.full_name,
                                                     appt.date, appt.time),
            "Appointment request",
        )
    return appt

# ---- The caller's appointments
@router.get("/", response_model=list[schemas.AppointmentOut])
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if ctx.doctor is not None:
        return unwrap(services.list_appointments(db, doctor_id=ctx.doctor.doctor_id, status=status))
    if ctx.patient is not None:
        return unwrap(services.list_appointments(db, patient_id=ctx.patient.patient_id, status=status))
    return []

# ---- Completed appointments still waiting for the patient's review
@router.get("/reviewable", response_model=list[schemas.AppointmentOut])
def list_reviewable(
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_patient),
):
    return unwrap(services.list_reviewable_appointments(db, ctx.patient.patient_id))

@router.get("/{appointment_id}", response_model=schemas.AppointmentOut)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return ensure_appointment_access(db, ctx, appointment_id)

@router.patch("/{appointment_id}/status", response_model=schemas.AppointmentOut)
def change_status(
    appointment_id: int,
    payload: schemas.AppointmentStatusUpdate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    appt = ensure_appointment_access(db, ctx, appointment_id)
    if ctx.doctor is None and payload.status != AppointmentStatus.CANCELLED:
        raise HTTPException(status_code=403, detail="Los pacientes solo pueden cancelar sus turnos")

    appt = unwrap(services.update_appointment_status(db, appt, payload.status, payload.notes))
    if appt.status == AppointmentStatus.CONFIRMED:
        patient = db.get(models.Patient, appt.patient_id)
        doctor = db.get(models.Doctor, appt.doctor_id)
        if patient is not None and patient.email:
            _notify(
                notifications.send_appointment_confirmed(patient.email, patient.full_name, doctor.full_name,
                                                         appt.date, appt.time),
                "Appointment confirmation",
            )
    return appt

@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    appt = ensure_appointment_access(db, ctx, appointment_id)
    unwrap(services.delete_appointment(db, appt))

# ---- Documents shared on an appointment
@router.get("/{appointment_id}/documents", response_model=list[schemas.DocumentOut])
def list_appointment_documents(
    appointment_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    ensure_appointment_access(db, ctx, appointment_id)
    return unwrap(services.list_documents(db, appointment_id=appointment_id))

@router.post("/{appointment_id}/documents", response_model=schemas.DocumentOut, status_code=status.HTTP_201_CREATED)
async def upload_appointment_document(
    appointment_id: int,
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    appt = ensure_appointment_access(db, ctx, appointment_id)
    return await store_upload(db, ctx, appt.patient_id, file, title, appointment_id=appt.appointment_id)

# ---- Patient review of a completed appointment
@router.get("/{appointment_id}/can-review")
def can_review(
    appointment_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_patient),
):
    appt = ensure_appointment_access(db, ctx, appointment_id)
    return {"can_review": unwrap(services.can_review_appointment(db, appt, ctx.patient.patient_id))}

@router.post("/{appointment_id}/review", response_model=schemas.ReviewOut, status_code=status.HTTP_201_CREATED)
def review_appointment(
    appointment_id: int,
    payload: schemas.ReviewCreate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_patient),
):
    appt = ensure_appointment_access(db, ctx, appointment_id)
    review = unwrap(services.create_review(
        db,
        appt,
        patient_id=ctx.patient.patient_id,
        rating=payload.rating,
        comment=payload.comment,
        would_recommend=payload.would_recommend,
        aspects=payload.aspects.model_dump(),
    ))
    logger.info("Review %s stored for doctor %s", review.review_id, review.doctor_id)
    return review
