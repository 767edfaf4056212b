import io
import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user
from app.middleware.rate_limit import rate_limiter, upload_limiter
from app.models import Document, User
from app.schemas.document import DocumentMove, DocumentPage, DocumentResponse, DocumentUpdate
from app.services import documents as document_service
from app.services.errors import InvalidInput, NotFound

router = APIRouter(prefix="/documents", tags=["documents"])


def _parse_folder_id(folder_id: str | None) -> tuple[uuid.UUID | None, bool]:
    if folder_id is None or folder_id == "":
        return None, False
    if folder_id in ("root", "null"):
        return None, True
    try:
        return uuid.UUID(folder_id), False
    except ValueError:
        raise InvalidInput("Invalid folder ID format", reason="folder_id")


@router.post("/upload", response_model=DocumentResponse, status_code=201)
@upload_limiter
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    folder_id: str | None = Form(None),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Document:
    folder_uuid, _ = _parse_folder_id(folder_id)
    data = await file.read()
    if not data:
        raise InvalidInput("File is empty", reason="empty")
    return await document_service.upload_document(
        db,
        user.id,
        filename=file.filename or "",
        content_type=file.content_type,
        data=data,
        folder_id=folder_uuid,
    )


@router.get("", response_model=DocumentPage)
async def list_documents(
    folder_id: str | None = None,
    q: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DocumentPage:
    folder_uuid, unfiled_only = _parse_folder_id(folder_id)
    size = min(page_size or settings.default_page_size, settings.max_page_size)
    documents, total = await document_service.list_documents(
        db,
        user.id,
        page=page,
        page_size=size,
        folder_id=folder_uuid,
        unfiled_only=unfiled_only,
        search=q,
    )
    return DocumentPage(
        documents=[DocumentResponse.model_validate(d) for d in documents],
        total=total,
        page=page,
        page_size=size,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Document:
    return await document_service.get_document(db, user.id, document_id)


@router.get("/{document_id}/file")
async def download_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StreamingResponse:
    document, data = await document_service.read_document_content(db, user.id, document_id)
    filename = quote(document.original_name)
    return StreamingResponse(
        io.BytesIO(data),
        media_type=document.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@router.patch("/{document_id}", response_model=DocumentResponse)
@rate_limiter
async def update_document(
    request: Request,
    document_id: uuid.UUID,
    data: DocumentUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Document:
    return await document_service.update_document(
        db,
        user.id,
        document_id,
        name=data.name,
        folder_id=data.folder_id,
        refile="folder_id" in data.model_fields_set,
    )


@router.post("/{document_id}/move", response_model=DocumentResponse)
@rate_limiter
async def move_document(
    request: Request,
    document_id: uuid.UUID,
    data: DocumentMove,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Document:
    return await document_service.move_document(db, user.id, document_id, data.folder_id)


@router.delete("/{document_id}")
@rate_limiter
async def delete_document(
    request: Request,
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, bool]:
    deleted = await document_service.delete_document(db, user.id, document_id)
    if not deleted:
        raise NotFound("Document not found")
    return {"success": True}
