# saludlibre/documents.py
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from . import config, database, models, schemas, services
from .deps import RequestContext, ensure_patient_access, get_request_context
from .formatting import content_disposition
from .results import unwrap

router = APIRouter(prefix="/documents", tags=["documents"])

INVALID_TYPE = "Tipo de archivo no permitido. Solo se permiten PDF, DOC, DOCX, JPG, PNG y TXT"
TOO_LARGE = "El archivo es demasiado grande. Máximo 10MB"


async def read_upload(file: UploadFile) -> bytes:
    """Validate type and size of an uploaded file and return its bytes."""
    content_type = (file.content_type or "").lower()
    if content_type not in config.ALLOWED_UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail=INVALID_TYPE)
    data = await file.read()
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=TOO_LARGE)
    if not data:
        raise HTTPException(status_code=400, detail="El archivo está vacío")
    return data


async def store_upload(
    db: Session,
    ctx: RequestContext,
    patient_id: int,
    file: UploadFile,
    title: Optional[str],
    appointment_id: Optional[int] = None,
) -> models.Document:
    data = await read_upload(file)
    file_name = file.filename or "documento"
    return unwrap(services.create_document(
        db,
        patient_id=patient_id,
        title=(title or "").strip() or file_name,
        file_name=file_name,
        content_type=file.content_type.lower(),
        data=data,
        uploaded_by=ctx.role,
        appointment_id=appointment_id,
    ))


def _owned_document(db: Session, ctx: RequestContext, document_id: int, modifying: bool = False) -> models.Document:
    doc = unwrap(services.get_document(db, document_id))
    ensure_patient_access(db, ctx, doc.patient_id)
    if modifying and doc.uploaded_by != ctx.role:
        raise HTTPException(status_code=403, detail="Solo quien subió el documento puede modificarlo")
    return doc


@router.get("/{document_id}")
def download_document(
    document_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    doc = _owned_document(db, ctx, document_id)
    return StreamingResponse(
        BytesIO(doc.blob),
        media_type=doc.content_type,
        headers={"Content-Disposition": content_disposition("attachment", doc.file_name)},
    )

@router.patch("/{document_id}", response_model=schemas.DocumentOut)
def rename_document(
    document_id: int,
    payload: schemas.DocumentTitleUpdate,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    doc = _owned_document(db, ctx, document_id, modifying=True)
    return unwrap(services.update_document_title(db, doc, payload.title))

@router.delete("/{document_id}", status_code=204)
def delete_document(
    document_id: int,
    db: Session = Depends(database.get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    doc = _owned_document(db, ctx, document_id, modifying=True)
    unwrap(services.delete_document(db, doc))
