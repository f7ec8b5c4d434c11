# saludlibre/auth.py
import logging
import secrets
import string
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from jose import jwt
from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from . import config, database, models, schemas, services
from .deps import RequestContext, get_request_context
from .results import unwrap
from .status import UserRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def create_access_token(sub: str, role: UserRole) -> str:
    expire = datetime.utcnow() + timedelta(hours=config.JWT_EXPIRE_HOURS)
    payload = {"sub": sub, "role": role.value, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

def generate_temporary_password(length: int = 10) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))

def email_taken(db: Session, email: str) -> bool:
    return db.query(models.User).filter(models.User.email == email.lower()).first() is not None

def create_user(db: Session, email: str, full_name: str, password: str, role: UserRole,
                must_change_password: bool = False) -> models.User:
    """Adds the user to the session; the caller commits."""
    user = models.User(
        email=email.lower(),
        full_name=full_name,
        password_hash=bcrypt.hash(password),
        role=role,
        is_active=True,
        must_change_password=must_change_password,
    )
    db.add(user)
    db.flush()
    return user

@router.post("/signup", response_model=schemas.DoctorOut)
def signup(payload: schemas.DoctorSignup, db: Session = Depends(database.get_db)):
    if email_taken(db, payload.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = create_user(db, payload.email, payload.full_name, payload.password, UserRole.DOCTOR)
    doc = models.Doctor(
        user_id=user.user_id,
        email=user.email,
        full_name=payload.full_name,
        specialty=payload.specialty,
        license_number=payload.license_number,
        phone=payload.phone,
        profession="Médico",
        verified=False,
    )
    db.add(doc)
    db.commit()
    db.refresh(doc)
    logger.info("Doctor account created for %s", user.email)
    return doc

@router.post("/login", response_model=schemas.Token)
def login(payload: schemas.Login, db: Session = Depends(database.get_db)):
    user = db.query(models.User).filter(models.User.email == payload.email.lower()).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not bcrypt.verify(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(str(user.user_id), UserRole(user.role))
    user.last_login_at = datetime.utcnow()
    db.add(user); db.commit()
    return {"access_token": token, "token_type": "bearer"}

@router.get("/me", response_model=schemas.UserOut)
def read_current_user(ctx: RequestContext = Depends(get_request_context)):
    return ctx.user

@router.post("/change-password")
def change_password(
    payload: schemas.ChangePassword,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(database.get_db),
):
    user = ctx.user
    if not bcrypt.verify(payload.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="La contraseña actual es incorrecta")
    unwrap(services.set_user_password(db, user, bcrypt.hash(payload.new_password), must_change=False))
    return {"message": "Contraseña actualizada"}
