# saludlibre/prescriptions.py
import logging
import os
import traceback
from datetime import date, datetime
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from . import database, models, schemas, services
from .deps import (
    RequestContext,
    ensure_appointment_access,
    ensure_patient_access,
    get_request_context,
    require_doctor,
)
from .formatting import content_disposition, pdf_filename
from .prescription_pdf import generate_prescription_number, render_prescription
from .results import unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])


def age_on(born: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if born is None:
        return None
    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

def doctor_snapshot(doctor: models.Doctor) -> dict:
    return schemas.DoctorInfo.model_validate({
        "name": doctor.full_name,
        "specialty": doctor.specialty,
        "profession": doctor.profession,
        "license_number": doctor.license_number,
        "phone": doctor.phone,
        "address": ", ".join(p for p in (doctor.address, doctor.city) if p),
        "signature_url": doctor.signature_url,
        "stamp_url": doctor.stamp_url,
    }).model_dump()

def patient_snapshot(patient: models.Patient) -> dict:
    insurance = " ".join(p for p in (patient.insurance_provider, patient.insurance_plan) if p)
    return schemas.PatientInfo.model_validate({
        "name": patient.full_name,
        "age": age_on(patient.date_of_birth),
        "date_of_birth": patient.date_of_birth,
        "dni": patient.dni,
        "gender": patient.gender,
        "insurance": insurance,
    }).model_dump()

def record_from_row(presc: models.Prescription) -> schemas.PrescriptionRecord:
    return schemas.PrescriptionRecord.model_validate({
        "number": presc.number,
        "doctor_info": presc.doctor_info,
        "patient_info": presc.patient_info,
        "medications": presc.medications,
        "diagnosis": presc.diagnosis,
        "notes": presc.notes,
        "created_at": presc.created_at,
    })

def error_location(exc: Exception) -> Optional[str]:
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return None
    last = frames[-1]
    return f"{os.path.basename(last.filename)}:{last.lineno} in {last.name}"

async def pdf_response(record: schemas.PrescriptionRecord, disposition: str, prescription_id):
    try:
        rendered = await run_in_threadpool(render_prescription, record)
    except Exception as exc:
        logger.exception("Error generating prescription PDF %s", prescription_id)
        return JSONResponse(
            status_code=500,
            content={
                "message": "Error generating prescription PDF",
                "error": str(exc),
                "details": {
                    "prescription_id": prescription_id,
                    "error_location": error_location(exc),
                },
            },
        )
    return StreamingResponse(
        BytesIO(rendered.content),
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(disposition, pdf_filename(record.patient_info.name)),
            "Content-Length": str(len(rendered.content)),
        },
    )

def _visible_prescription(db: Session, ctx: RequestContext, prescription_id: int) -> models.Prescription:
    presc = unwrap(services.get_prescription(db, prescription_id))
    if ctx.doctor is not None:
        allowed = presc.doctor_id == ctx.doctor.doctor_id
    else:
        allowed = ctx.patient is not None and presc.patient_id == ctx.patient.patient_id
    if not allowed:
        raise HTTPException(status_code=404, detail=services.PRESCRIPTION_NOT_FOUND)
    return presc

# ---- Issue a prescription for one of the doctor's patients
@router.post("/", response_model=schemas.PrescriptionOut, status_code=status.HTTP_201_CREATED)
def create_prescription(
    payload: schemas.PrescriptionCreate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    patient = ensure_patient_access(db, ctx, payload.patient_id)
    if payload.appointment_id is not None:
        appt = ensure_appointment_access(db, ctx, payload.appointment_id)
        if appt.patient_id != patient.patient_id:
            raise HTTPException(status_code=400, detail="La cita no corresponde al paciente")

    presc = unwrap(services.create_prescription(
        db,
        number=generate_prescription_number(datetime.now()),
        doctor_id=ctx.doctor.doctor_id,
        patient_id=patient.patient_id,
        appointment_id=payload.appointment_id,
        doctor_info=doctor_snapshot(ctx.doctor),
        patient_info=patient_snapshot(patient),
        medications=[m.model_dump() for m in payload.medications],
        diagnosis=payload.diagnosis,
        notes=payload.notes,
    ))
    logger.info("Prescription %s issued by doctor %s", presc.number, ctx.doctor.doctor_id)
    return presc

@router.get("/", response_model=list[schemas.PrescriptionOut])
def list_prescriptions(
    patient_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    if ctx.doctor is not None:
        return unwrap(services.list_prescriptions(
            db, doctor_id=ctx.doctor.doctor_id, patient_id=patient_id, appointment_id=appointment_id,
        ))
    if ctx.patient is None:
        return []
    return unwrap(services.list_prescriptions(
        db, patient_id=ctx.patient.patient_id, appointment_id=appointment_id,
    ))

# ---- Render a posted record without storing it
@router.post("/generate")
async def generate_pdf(
    payload: schemas.GeneratePrescriptionIn,
    ctx: RequestContext = Depends(require_doctor),
):
    record = payload.prescription_data
    if payload.prescription_id:
        record = record.model_copy(update={"number": payload.prescription_id})
    return await pdf_response(record, "attachment", payload.prescription_id)

@router.get("/{prescription_id}", response_model=schemas.PrescriptionOut)
def get_prescription(
    prescription_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return _visible_prescription(db, ctx, prescription_id)

@router.delete("/{prescription_id}", status_code=204)
def delete_prescription(
    prescription_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    presc = _visible_prescription(db, ctx, prescription_id)
    unwrap(services.delete_prescription(db, presc))

@router.get("/{prescription_id}/pdf")
async def prescription_pdf(
    prescription_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    presc = _visible_prescription(db, ctx, prescription_id)
    return await pdf_response(record_from_row(presc), "inline", prescription_id)
