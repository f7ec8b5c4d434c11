# saludlibre/deps.py
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import config, database, models, services
from .results import Err, Result, unwrap
from .status import UserRole

bearer = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    """Who is calling, resolved once per request from the bearer token."""
    user: models.User
    role: UserRole
    doctor: Optional[models.Doctor] = None
    patient: Optional[models.Patient] = None

    @property
    def is_doctor(self) -> bool:
        return self.role == UserRole.DOCTOR


def _profile(result: Result):
    """The looked-up profile, or None when the account has none yet."""
    if isinstance(result, Err) and result.status_code == 404:
        return None
    return unwrap(result)


def get_request_context(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(database.get_db),
) -> RequestContext:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = creds.credentials
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(models.User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid user")

    role = UserRole(user.role)
    ctx = RequestContext(user=user, role=role)
    if role == UserRole.DOCTOR:
        ctx.doctor = _profile(services.get_doctor_by_user(db, user.user_id))
    else:
        ctx.patient = _profile(services.get_patient_by_user(db, user.user_id))
    return ctx


def require_doctor(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if ctx.role != UserRole.DOCTOR or ctx.doctor is None:
        raise HTTPException(status_code=403, detail="Solo disponible para médicos")
    return ctx


def require_patient(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if ctx.role != UserRole.PATIENT or ctx.patient is None:
        raise HTTPException(status_code=403, detail="Solo disponible para pacientes")
    return ctx


def ensure_patient_access(db: Session, ctx: RequestContext, patient_id: int) -> models.Patient:
    """The patient themself, or a doctor treating them."""
    if ctx.doctor is not None:
        return unwrap(services.doctor_can_access_patient(db, ctx.doctor.doctor_id, patient_id))
    if ctx.patient is None or ctx.patient.patient_id != patient_id:
        raise HTTPException(status_code=404, detail=services.PATIENT_NOT_FOUND)
    return ctx.patient


def ensure_appointment_access(db: Session, ctx: RequestContext, appointment_id: int) -> models.Appointment:
    appt = unwrap(services.get_appointment(db, appointment_id))
    if ctx.is_doctor:
        allowed = ctx.doctor is not None and appt.doctor_id == ctx.doctor.doctor_id
    else:
        allowed = ctx.patient is not None and appt.patient_id == ctx.patient.patient_id
    if not allowed:
        # not one of the caller's appointments
        raise HTTPException(status_code=404, detail=services.APPOINTMENT_NOT_FOUND)
    return appt
