# saludlibre/faq.py
import re
import unicodedata
from typing import List, Optional

FAQS = [
    {
        "question": "¿Qué es Salud Libre?",
        "answer": (
            "Salud Libre es una plataforma digital que conecta pacientes con profesionales de la salud en "
            "Argentina. Ofrecemos un directorio de médicos verificados, sistema de agendamiento de citas, "
            "gestión de historiales médicos digitales y almacenamiento seguro de recetas médicas."
        ),
        "keywords": ["que es", "quienes son", "plataforma", "de que se trata"],
    },
    {
        "question": "¿Cómo agendo una cita médica?",
        "answer": (
            "Para agendar una cita, busque el médico de su preferencia, seleccione una fecha y horario "
            "disponible en su calendario, complete sus datos y confirme la cita. Recibirá una confirmación "
            "por email."
        ),
        "keywords": ["agendar", "agendo", "cita", "turno", "reservar", "horario"],
    },
    {
        "question": "¿Es gratuito usar Salud Libre?",
        "answer": (
            "El registro y uso básico de la plataforma es gratuito. Esto incluye buscar médicos, ver perfiles "
            "profesionales y gestionar su historial médico. Algunas funcionalidades premium pueden tener "
            "costo adicional."
        ),
        "keywords": ["gratis", "gratuito", "costo", "precio", "pagar", "cuesta", "cobran"],
    },
    {
        "question": "¿Qué tan segura es mi información médica?",
        "answer": (
            "Utilizamos encriptación de nivel bancario, servidores certificados y cumplimos con todas las "
            "regulaciones argentinas de protección de datos médicos. Su información está protegida con los "
            "más altos estándares de seguridad."
        ),
        "keywords": ["segura", "seguro", "seguridad", "privacidad", "mis datos", "informacion medica"],
    },
    {
        "question": "¿Funcionan las citas con obra social?",
        "answer": (
            "Muchos de nuestros profesionales aceptan diferentes obras sociales. Puede filtrar médicos por obra "
            "social en nuestra búsqueda y confirmar la cobertura al agendar la cita."
        ),
        "keywords": ["obra social", "obras sociales", "prepaga", "cobertura", "osde", "swiss medical"],
    },
]

DEFAULT_REPLY = "Lo siento, no pude procesar tu consulta. ¿Podrías reformularla?"


def normalize(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    text = unicodedata.normalize("NFKD", text or "")
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).lower()
    return " ".join(re.findall(r"\w+", text))


def score(message: str, keywords: List[str]) -> int:
    padded = f" {normalize(message)} "
    return sum(1 for kw in keywords if f" {normalize(kw)} " in padded)


def match_faq(message: str) -> Optional[dict]:
    best, best_score = None, 0
    for faq in FAQS:
        s = score(message, faq["keywords"])
        if s > best_score:
            best, best_score = faq, s
    return best


def faq_context() -> str:
    return "\n\n".join(f"P: {f['question']}\nR: {f['answer']}" for f in FAQS)
