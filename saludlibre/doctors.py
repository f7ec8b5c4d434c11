# saludlibre/doctors.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from . import database, models, schemas, services
from .deps import RequestContext, require_doctor
from .results import unwrap

router = APIRouter(prefix="/doctors", tags=["doctors"])


def _with_ratings(db: Session, doctors: List[models.Doctor]) -> List[schemas.DoctorOut]:
    ratings = unwrap(services.average_ratings(db, [d.doctor_id for d in doctors]))
    out = []
    for doc in doctors:
        item = schemas.DoctorOut.model_validate(doc)
        item.average_rating, item.total_reviews = ratings.get(doc.doctor_id, (0.0, 0))
        out.append(item)
    return out

# ---- Public directory (verified doctors only)
@router.get("/", response_model=list[schemas.DoctorOut])
def list_doctors(
    q: Optional[str] = None,
    specialty: Optional[str] = None,
    db: Session = Depends(database.get_db),
):
    return _with_ratings(db, unwrap(services.list_doctors(db, search=q, specialty=specialty)))

# ---- Update the calling doctor's profile
@router.put("/me", response_model=schemas.DoctorOut)
def update_me(
    payload: schemas.DoctorUpdate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(require_doctor),
):
    doc = unwrap(services.update_doctor(db, ctx.doctor, payload.model_dump(exclude_unset=True)))
    return _with_ratings(db, [doc])[0]

@router.get("/{doctor_id}", response_model=schemas.DoctorOut)
def get_doctor(doctor_id: int, db: Session = Depends(database.get_db)):
    return _with_ratings(db, [unwrap(services.get_doctor(db, doctor_id))])[0]

@router.get("/{doctor_id}/available-slots")
def available_slots(doctor_id: int, date: date, db: Session = Depends(database.get_db)):
    unwrap(services.get_doctor(db, doctor_id))
    slots = unwrap(services.available_time_slots(db, doctor_id, date))
    return {"doctor_id": doctor_id, "date": date.isoformat(), "slots": slots}

# ---- Patient reviews with the rating summary
@router.get("/{doctor_id}/reviews", response_model=schemas.DoctorReviews)
def doctor_reviews(doctor_id: int, db: Session = Depends(database.get_db)):
    unwrap(services.get_doctor(db, doctor_id))
    return {
        "summary": unwrap(services.doctor_rating(db, doctor_id)),
        "reviews": unwrap(services.list_reviews(db, doctor_id=doctor_id)),
    }
