# saludlibre/status.py
from enum import Enum


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return STATUS_DISPLAY[self][0]

    @property
    def color(self) -> str:
        return STATUS_DISPLAY[self][1]

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self]

    def can_transition_to(self, new_status: "AppointmentStatus") -> bool:
        return new_status in VALID_TRANSITIONS[self]


# status -> (label, color)
STATUS_DISPLAY = {
    AppointmentStatus.PENDING: ("Pendiente", "yellow"),
    AppointmentStatus.CONFIRMED: ("Confirmada", "blue"),
    AppointmentStatus.COMPLETED: ("Completada", "green"),
    AppointmentStatus.CANCELLED: ("Cancelada", "red"),
}

VALID_TRANSITIONS = {
    AppointmentStatus.PENDING: (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED),
    AppointmentStatus.CONFIRMED: (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
    AppointmentStatus.COMPLETED: (),
    AppointmentStatus.CANCELLED: (),
}

# statuses that hold a slot in the doctor's agenda
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


class UserRole(str, Enum):
    DOCTOR = "doctor"
    PATIENT = "patient"


class RecordType(str, Enum):
    CONSULTATION = "consultation"
    LAB_RESULT = "lab_result"
    PRESCRIPTION = "prescription"
