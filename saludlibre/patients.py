# saludlibre/patients.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from . import database, models, notifications, schemas, services
from .auth import create_user, email_taken, generate_temporary_password
from .deps import RequestContext, ensure_patient_access, get_request_context, require_doctor, require_patient
from .documents import store_upload
from .results import Err, unwrap
from .status import RecordType, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patients", tags=["patients"])

# ---- Create a patient account owned by the current doctor
@router.post("/", response_model=schemas.PatientCreated, status_code=status.HTTP_201_CREATED)
def create_patient(
    payload: schemas.PatientCreate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    if email_taken(db, payload.email):
        raise HTTPException(status_code=400, detail="Ya existe una cuenta con ese email")

    temporary_password = generate_temporary_password()
    user = create_user(db, payload.email, payload.full_name, temporary_password, UserRole.PATIENT,
                       must_change_password=True)
    fields = payload.model_dump(exclude_unset=True)
    fields["email"] = user.email
    patient = unwrap(services.create_patient(db, fields, doctor_id=ctx.doctor.doctor_id, user_id=user.user_id))

    sent = notifications.send_welcome_email(patient.full_name, user.email, temporary_password, ctx.doctor.full_name)
    if isinstance(sent, Err):
        # the account exists either way; the doctor can resend later
        logger.warning("Welcome email to %s not sent: %s", user.email, sent.message)

    return {
        "patient": patient,
        "user_id": user.user_id,
        "temporary_password": temporary_password,
        "email_sent": not isinstance(sent, Err),
    }

# ---- List patients for current doctor
@router.get("/", response_model=list[schemas.PatientOut])
def list_patients(
    q: Optional[str] = None,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    return unwrap(services.list_patients_for_doctor(db, ctx.doctor.doctor_id, search=q))

# ---- The calling patient's own profile
@router.get("/me", response_model=schemas.PatientOut)
def read_my_profile(ctx: RequestContext = Depends(require_patient)):
    return ctx.patient

@router.put("/me", response_model=schemas.PatientOut)
def update_my_profile(
    payload: schemas.PatientUpdate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_patient),
):
    updates = payload.model_dump(exclude_unset=True)
    # clinical notes belong to the doctor
    updates.pop("medical_notes", None)
    return unwrap(services.update_patient(db, ctx.patient, updates))

@router.get("/me/reviews", response_model=list[schemas.ReviewOut])
def read_my_reviews(
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_patient),
):
    return unwrap(services.list_reviews(db, patient_id=ctx.patient.patient_id))

# ---- Get a single patient (doctor must be treating them)
@router.get("/{patient_id}", response_model=schemas.PatientOut)
def get_patient(
    patient_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    return ensure_patient_access(db, ctx, patient_id)

@router.put("/{patient_id}", response_model=schemas.PatientOut)
def update_patient(
    patient_id: int,
    payload: schemas.PatientUpdate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    patient = ensure_patient_access(db, ctx, patient_id)
    return unwrap(services.update_patient(db, patient, payload.model_dump(exclude_unset=True)))

# ---- Reset the temporary password and email it again
@router.post("/{patient_id}/send-welcome-email")
def resend_welcome_email(
    patient_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    patient = ensure_patient_access(db, ctx, patient_id)
    user = db.get(models.User, patient.user_id) if patient.user_id else None
    if not user:
        raise HTTPException(status_code=400, detail="El paciente no tiene una cuenta asociada")

    previous = (user.password_hash, user.must_change_password)
    temporary_password = generate_temporary_password()
    # the emailed password must already work when the patient reads it
    unwrap(services.set_user_password(db, user, bcrypt.hash(temporary_password), must_change=True))

    sent = notifications.send_welcome_email(patient.full_name, user.email, temporary_password, ctx.doctor.full_name)
    if isinstance(sent, Err):
        logger.warning("Welcome email to %s not sent, restoring previous password: %s", user.email, sent.message)
        unwrap(services.set_user_password(db, user, previous[0], must_change=previous[1]))
    unwrap(sent)
    return {"message": "Email de bienvenida enviado", "email": user.email}

# ---- Documents attached to the patient's record
@router.get("/{patient_id}/documents", response_model=list[schemas.DocumentOut])
def list_patient_documents(
    patient_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    ensure_patient_access(db, ctx, patient_id)
    return unwrap(services.list_documents(db, patient_id=patient_id))

@router.post("/{patient_id}/documents", response_model=schemas.DocumentOut, status_code=status.HTTP_201_CREATED)
async def upload_patient_document(
    patient_id: int,
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    ensure_patient_access(db, ctx, patient_id)
    return await store_upload(db, ctx, patient_id, file, title)

# ---- Medical records: the doctor writes, the patient reads their own
@router.get("/{patient_id}/records", response_model=list[schemas.MedicalRecordOut])
def list_medical_records(
    patient_id: int,
    type: Optional[RecordType] = None,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    ensure_patient_access(db, ctx, patient_id)
    return unwrap(services.list_medical_records(db, patient_id, record_type=type))

@router.post("/{patient_id}/records", response_model=schemas.MedicalRecordOut, status_code=status.HTTP_201_CREATED)
def create_medical_record(
    patient_id: int,
    payload: schemas.MedicalRecordCreate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    ensure_patient_access(db, ctx, patient_id)
    return unwrap(services.create_medical_record(db, patient_id, payload.model_dump(),
                                                 doctor_id=ctx.doctor.doctor_id))

@router.put("/{patient_id}/records/{record_id}", response_model=schemas.MedicalRecordOut)
def update_medical_record(
    patient_id: int,
    record_id: int,
    payload: schemas.MedicalRecordUpdate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    ensure_patient_access(db, ctx, patient_id)
    record = unwrap(services.get_medical_record(db, record_id, patient_id=patient_id))
    updates = payload.model_dump(exclude_unset=True)
    # only the description can be cleared
    updates = {k: v for k, v in updates.items() if v is not None or k == "description"}
    return unwrap(services.update_medical_record(db, record, updates))

@router.delete("/{patient_id}/records/{record_id}", status_code=204)
def delete_medical_record(
    patient_id: int,
    record_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    ensure_patient_access(db, ctx, patient_id)
    record = unwrap(services.get_medical_record(db, record_id, patient_id=patient_id))
    unwrap(services.delete_medical_record(db, record))
