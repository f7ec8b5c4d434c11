# saludlibre/chat.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from google import genai
from google.genai import types
from sqlalchemy.orm import Session

from . import config, database, schemas, services
from .faq import DEFAULT_REPLY, faq_context, match_faq, normalize
from .results import Err

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

MAX_DOCTORS_LISTED = 5
HISTORY_TURNS = 6

SYSTEM_INSTRUCTION = (
    "Sos el asistente virtual de Salud Libre, una plataforma argentina que conecta pacientes con médicos. "
    "Respondé en español, de forma breve y amable. Usá solo la información de las preguntas frecuentes "
    "provistas; si la consulta es médica, recomendá consultar con un profesional. No inventes datos."
)


def _specialty_matches(specialty: str, words: List[str]) -> bool:
    target = normalize(specialty)
    if not target:
        return False
    if target in " ".join(words):
        return True
    # "cardiologo" should find "Cardiología"
    stem = target[:6]
    return len(stem) == 6 and any(w.startswith(stem) for w in words)


def search_doctors_reply(db: Session, message: str) -> Optional[str]:
    result = services.list_doctors(db)
    if isinstance(result, Err):
        logger.warning("Doctor search for chat failed: %s", result.message)
        return None
    words = normalize(message).split()
    found = [d for d in result.value if d.specialty and _specialty_matches(d.specialty, words)]
    if not found:
        return None
    specialty = found[0].specialty
    lines = [f"Encontré {len(found)} profesional(es) de {specialty}:"]
    for doc in found[:MAX_DOCTORS_LISTED]:
        where = f" ({doc.city})" if doc.city else ""
        lines.append(f"- {doc.full_name}{where}")
    lines.append("Podés ver sus perfiles y agendar un turno desde la sección de médicos.")
    return "\n".join(lines)


def ask_gemini(message: str, history: List[dict]) -> Optional[str]:
    if not config.GEMINI_API_KEY:
        return None
    past = []
    for turn in history[-HISTORY_TURNS:]:
        text = turn.get("content") or turn.get("text") or ""
        if text:
            past.append(f"{turn.get('role', 'user')}: {text}")
    prompt = (
        f"PREGUNTAS FRECUENTES:\n{faq_context()}\n\n"
        f"CONVERSACION PREVIA:\n{chr(10).join(past) or '(sin historial)'}\n\n"
        f"CONSULTA DEL USUARIO:\n{message}"
    )
    try:
        client = genai.Client(api_key=config.GEMINI_API_KEY)
        response = client.models.generate_content(
            model=config.GEMINI_MODEL,
            contents=prompt,
            config=types.GenerateContentConfig(system_instruction=SYSTEM_INSTRUCTION, temperature=0.3),
        )
    except Exception as exc:
        logger.error("Gemini request failed: %s", exc)
        return None
    text = (response.text or "").strip()
    return text or None


@router.post("/", response_model=schemas.ChatOut)
async def chat(payload: schemas.ChatIn, db: Session = Depends(database.get_db)):
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Mensaje requerido")

    faq = match_faq(message)
    if faq:
        return {"response": faq["answer"], "success": True}

    reply = await run_in_threadpool(search_doctors_reply, db, message)
    if reply:
        return {"response": reply, "success": True}

    reply = await run_in_threadpool(ask_gemini, message, payload.chat_history)
    return {"response": reply or DEFAULT_REPLY, "success": True}
