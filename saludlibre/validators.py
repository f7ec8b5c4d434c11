# saludlibre/validators.py
import re
from typing import Tuple

_NAME_RE = re.compile(r"^[a-zA-ZáéíóúÁÉÍÓÚñÑüÜ\s]+$")


def _clean_phone(phone: str) -> str:
    return re.sub(r"[^\d+]", "", phone or "")


def validate_argentine_phone(phone: str) -> bool:
    """Accept 10 local digits, or the same with a 54 / +54 country prefix."""
    if not phone or not phone.strip():
        return False
    clean = _clean_phone(phone)
    if len(clean) == 10 and clean.isdigit():
        return True
    if clean.startswith("+54") and len(clean) == 13 and clean[1:].isdigit():
        return True
    if clean.startswith("54") and len(clean) == 12 and clean.isdigit():
        return True
    return False


def format_argentine_phone(phone: str) -> str:
    """Format as ``+54 11 2345-6789``; unknown shapes are returned untouched."""
    if not phone:
        return ""
    clean = _clean_phone(phone)
    if clean.startswith("+54"):
        number = clean[3:]
    elif clean.startswith("54") and len(clean) == 12:
        number = clean[2:]
    else:
        number = clean
    if len(number) == 10 and number.isdigit():
        return f"+54 {number[:2]} {number[2:6]}-{number[6:]}"
    return phone


def validate_password(password: str) -> Tuple[bool, str]:
    if not password:
        return False, "La contraseña es requerida"
    if len(password) < 6:
        return False, "La contraseña debe tener al menos 6 caracteres"
    if len(password) > 128:
        return False, "La contraseña no puede tener más de 128 caracteres"
    return True, ""


def validate_name(name: str) -> bool:
    if not name or not name.strip():
        return False
    name = name.strip()
    return bool(_NAME_RE.match(name)) and len(name) >= 2
