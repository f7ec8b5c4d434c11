# saludlibre/formatting.py
import re
from urllib.parse import quote
from datetime import date, datetime
from typing import Optional, Union

PLACEHOLDER = "No especificado"

FILE_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_file_size(size: Optional[int]) -> str:
    """Human readable size: 0 -> '0 Bytes', 1024 -> '1 KB', 1536 -> '1.5 KB'."""
    if not size or size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(FILE_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    number = f"{round(value, 2):.2f}".rstrip("0").rstrip(".")
    return f"{number} {FILE_SIZE_UNITS[unit]}"


def _coerce_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%d/%m/%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def format_date_es(value: Union[date, datetime, str, None], default: str = PLACEHOLDER) -> str:
    """Short es-ES date, e.g. 5/3/2024 (no zero padding)."""
    d = _coerce_date(value)
    if d is None:
        return default
    return f"{d.day}/{d.month}/{d.year}"


def pdf_filename(patient_name: Optional[str]) -> str:
    name = re.sub(r"\s+", "_", (patient_name or "").strip()) or "paciente"
    # header-safe: drop quotes and path separators
    name = re.sub(r'["/\\]', "", name)
    return f"receta-{name}.pdf"


def content_disposition(disposition: str, filename: str) -> str:
    """``inline``/``attachment`` header value; non latin-1 names use RFC 5987."""
    filename = filename.replace('"', "")
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        return f"{disposition}; filename*=UTF-8''{quote(filename)}"
    return f'{disposition}; filename="{filename}"'
