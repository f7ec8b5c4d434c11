# saludlibre/schemas.py
from datetime import date, datetime
from typing import Annotated, Dict, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .formatting import PLACEHOLDER, format_file_size
from .status import AppointmentStatus, RecordType, UserRole
from .validators import format_argentine_phone, validate_argentine_phone, validate_name, validate_password


def _check_password(value: str) -> str:
    ok, message = validate_password(value)
    if not ok:
        raise ValueError(message)
    return value

def _check_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not validate_name(value):
        raise ValueError("El nombre solo puede contener letras y espacios")
    return value.strip()

def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    if not validate_argentine_phone(value):
        raise ValueError("Número de teléfono inválido")
    return format_argentine_phone(value.strip())

Password = Annotated[str, AfterValidator(_check_password)]
PersonName = Annotated[str, AfterValidator(_check_name)]
Phone = Annotated[Optional[str], AfterValidator(_check_phone)]

# ---- Auth

class DoctorSignup(BaseModel):
    full_name: PersonName
    email: EmailStr
    password: Password
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    phone: Phone = None

class Login(BaseModel):
    email: EmailStr
    password: str

class ChangePassword(BaseModel):
    current_password: str
    new_password: Password

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class UserOut(BaseModel):
    user_id: int
    email: EmailStr
    full_name: str
    role: UserRole
    must_change_password: bool = False
    class Config:
        from_attributes = True

# ---- Doctors

class DoctorOut(BaseModel):
    doctor_id: int
    full_name: str
    email: Optional[str] = None
    specialty: Optional[str] = None
    profession: Optional[str] = None
    license_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    signature_url: Optional[str] = None
    stamp_url: Optional[str] = None
    verified: bool = False
    average_rating: float = 0.0
    total_reviews: int = 0
    class Config:
        from_attributes = True

class DoctorUpdate(BaseModel):
    full_name: Optional[PersonName] = None
    specialty: Optional[str] = None
    profession: Optional[str] = None
    license_number: Optional[str] = None
    phone: Phone = None
    address: Optional[str] = None
    city: Optional[str] = None
    signature_url: Optional[str] = None
    stamp_url: Optional[str] = None

# ---- Patients

class PatientProfile(BaseModel):
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    dni: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    insurance_provider: Optional[str] = None
    insurance_plan: Optional[str] = None
    insurance_member_id: Optional[str] = None

class PatientCreate(PatientProfile):
    full_name: PersonName
    email: EmailStr
    phone: Phone = None
    emergency_contact_phone: Phone = None

class PatientUpdate(PatientProfile):
    full_name: Optional[PersonName] = None
    phone: Phone = None
    emergency_contact_phone: Phone = None
    medical_notes: Optional[str] = None

class PatientOut(PatientProfile):
    patient_id: int
    full_name: str
    email: Optional[str] = None
    doctor_id: Optional[int] = None
    medical_notes: Optional[str] = None
    profile_complete: bool = False
    class Config:
        from_attributes = True

class PatientCreated(BaseModel):
    patient: PatientOut
    user_id: int
    temporary_password: str
    email_sent: bool

# ---- Appointments

class AppointmentCreate(BaseModel):
    date: date
    time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    notes: Optional[str] = None

class AppointmentOut(BaseModel):
    appointment_id: int
    patient_id: int
    doctor_id: int
    date: date
    time: str
    status: AppointmentStatus
    status_label: str = ""
    status_color: str = ""
    reason: Optional[str] = None
    notes: Optional[str] = None
    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def _display(self):
        self.status_label = self.status.label
        self.status_color = self.status.color
        return self

class DocumentOut(BaseModel):
    document_id: int
    patient_id: int
    appointment_id: Optional[int] = None
    title: str
    file_name: str
    file_size: int
    content_type: str
    storage_path: str
    uploaded_by: UserRole
    uploaded_at: Optional[datetime] = None
    size_label: str = ""
    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def _size_label(self):
        self.size_label = format_file_size(self.file_size)
        return self

class DocumentTitleUpdate(BaseModel):
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

# ---- Medical records

RecordTitle = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

class MedicalRecordCreate(BaseModel):
    type: RecordType = RecordType.CONSULTATION
    title: RecordTitle
    description: Optional[str] = None
    date: date

class MedicalRecordUpdate(BaseModel):
    type: Optional[RecordType] = None
    title: Optional[RecordTitle] = None
    description: Optional[str] = None
    date: Optional[date] = None

class MedicalRecordOut(BaseModel):
    record_id: int
    patient_id: int
    doctor_id: Optional[int] = None
    type: RecordType
    title: str
    description: Optional[str] = None
    date: date
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

# ---- Prescriptions
#
# Records arrive either from our own rows (snake_case) or posted by the web
# client in camelCase, sometimes with the Spanish keys of older clients.

RECORD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

DOCTOR_INFO_SYNONYMS = {
    "name": ("nombre",),
    "specialty": ("especialidad",),
    "profession": ("profesion",),
    "license_number": ("matricula",),
    "phone": ("telefono",),
    "address": ("domicilio",),
}
PATIENT_INFO_SYNONYMS = {
    "insurance": ("obraSocial",),
}

def _fill_defaults(model_cls, data, synonyms=None):
    """Blank or missing values become the field's documented placeholder."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        return data
    synonyms = synonyms or {}
    cleaned = {}
    for name, field in model_cls.model_fields.items():
        keys = (name, field.alias) + synonyms.get(name, ())
        value = next((data[k] for k in keys if k and data.get(k) not in (None, "")), None)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        if isinstance(value, str):
            value = value.strip()
        cleaned[name] = field.default if value in (None, "") else value
    return cleaned

class DoctorInfo(BaseModel):
    model_config = RECORD_CONFIG

    name: str = "Doctor"
    specialty: str = "Medicina General"
    profession: str = "Médico"
    license_number: str = "N/A"
    phone: str = PLACEHOLDER
    address: str = PLACEHOLDER
    signature_url: Optional[str] = None
    stamp_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, data):
        return _fill_defaults(cls, data, DOCTOR_INFO_SYNONYMS)

class PatientInfo(BaseModel):
    model_config = RECORD_CONFIG

    name: str = "Paciente"
    age: str = "N/A"
    date_of_birth: str = PLACEHOLDER
    dni: str = PLACEHOLDER
    gender: str = PLACEHOLDER
    insurance: str = "Particular"

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, data):
        return _fill_defaults(cls, data, PATIENT_INFO_SYNONYMS)

class Medication(BaseModel):
    name: str = PLACEHOLDER
    dosage: str = PLACEHOLDER
    frequency: str = PLACEHOLDER
    duration: Optional[str] = None
    instructions: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, data):
        return _fill_defaults(cls, data)

class PrescriptionRecord(BaseModel):
    """Everything the PDF layout needs; every field has a safe default."""
    model_config = RECORD_CONFIG

    number: Optional[str] = None
    doctor_info: DoctorInfo = Field(default_factory=DoctorInfo)
    patient_info: PatientInfo = Field(default_factory=PatientInfo)
    medications: List[Medication] = Field(default_factory=list)
    diagnosis: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None

    @field_validator("doctor_info", "patient_info", mode="before")
    @classmethod
    def _info_or_empty(cls, value):
        return {} if value is None else value

    @field_validator("medications", mode="before")
    @classmethod
    def _medication_list(cls, value):
        if not isinstance(value, list):
            return []
        return [m for m in value if m is not None]

    @field_validator("diagnosis", "notes", mode="before")
    @classmethod
    def _text(cls, value):
        return "" if value is None else str(value).strip()

class MedicationIn(BaseModel):
    name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    frequency: str = Field(min_length=1)
    duration: Optional[str] = None
    instructions: Optional[str] = None

class PrescriptionCreate(BaseModel):
    patient_id: int
    appointment_id: Optional[int] = None
    medications: List[MedicationIn] = Field(min_length=1)
    diagnosis: Optional[str] = None
    notes: Optional[str] = None

class PrescriptionOut(BaseModel):
    prescription_id: int
    number: str
    doctor_id: int
    patient_id: Optional[int] = None
    appointment_id: Optional[int] = None
    doctor_info: dict
    patient_info: dict
    medications: List[dict]
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class GeneratePrescriptionIn(BaseModel):
    model_config = RECORD_CONFIG

    prescription_data: PrescriptionRecord
    prescription_id: Optional[str] = None

# ---- Reviews

AspectScore = Annotated[int, Field(ge=0, le=5)]

class ReviewAspects(BaseModel):
    """Optional 1-5 scores per aspect; 0 means not rated."""
    punctuality: AspectScore = 0
    attention: AspectScore = 0
    explanation: AspectScore = 0
    facilities: AspectScore = 0

class ReviewCreate(BaseModel):
    model_config = RECORD_CONFIG

    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    would_recommend: bool = True
    aspects: ReviewAspects = Field(default_factory=ReviewAspects)

    @field_validator("comment")
    @classmethod
    def _strip_comment(cls, value):
        if value is None:
            return None
        return value.strip() or None

class ReviewOut(BaseModel):
    review_id: int
    appointment_id: int
    patient_id: int
    doctor_id: int
    rating: int
    comment: Optional[str] = None
    would_recommend: bool = True
    aspects: Dict[str, int] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class RatingSummary(BaseModel):
    average_rating: float = 0.0
    total_reviews: int = 0
    aspect_averages: Dict[str, float] = Field(default_factory=dict)

class DoctorReviews(BaseModel):
    summary: RatingSummary
    reviews: List[ReviewOut]

# ---- Chat

class ChatIn(BaseModel):
    message: str = ""
    chat_history: List[dict] = Field(default_factory=list)

class ChatOut(BaseModel):
    response: str
    success: bool = True
