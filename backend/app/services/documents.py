import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Document, Folder
from app.services import storage
from app.services.errors import InvalidInput, NotFound
from app.services.folders import write_scope

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"application/pdf"}
ALLOWED_EXTENSIONS = {"pdf"}
DOCUMENT_NAME_MAX_LENGTH = 255
RECENT_DEFAULT_LIMIT = 5
RECENT_MAX_LIMIT = 10


def validate_upload(filename: str | None, content_type: str | None, size: int) -> None:
    if not filename:
        raise InvalidInput("File name is required", reason="filename")
    if size <= 0:
        raise InvalidInput("File is empty", reason="empty")
    if size > settings.max_upload_size:
        limit_mb = settings.max_upload_size // (1024 * 1024)
        raise InvalidInput(f"File size exceeds maximum allowed size of {limit_mb}MB", reason="too_large")
    if content_type not in ALLOWED_MIME_TYPES:
        raise InvalidInput(
            f"Invalid file type. Only PDF files are allowed. Received: {content_type}", reason="mime_type"
        )
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension not in ALLOWED_EXTENSIONS:
        raise InvalidInput("Invalid file extension. Only .pdf files are allowed.", reason="extension")


def validate_document_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise InvalidInput("Document name is required", reason="empty")
    if len(name) > DOCUMENT_NAME_MAX_LENGTH:
        raise InvalidInput(
            f"Document name cannot exceed {DOCUMENT_NAME_MAX_LENGTH} characters", reason="too_long"
        )
    return name


def display_name(filename: str) -> str:
    if filename.lower().endswith(".pdf"):
        return filename[:-4]
    return filename


async def _ensure_folder(db: AsyncSession, user_id: int, folder_id: uuid.UUID | None) -> None:
    if folder_id is None:
        return
    result = await db.execute(
        select(Folder.id).where(Folder.id == folder_id, Folder.user_id == user_id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Folder not found", reason="folder")


async def _get_document_for_user(
    db: AsyncSession, document_id: uuid.UUID, user_id: int
) -> Document | None:
    result = await db.execute(
        select(Document).where(Document.id == document_id, Document.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_document(db: AsyncSession, user_id: int, document_id: uuid.UUID) -> Document:
    document = await _get_document_for_user(db, document_id, user_id)
    if document is None:
        raise NotFound("Document not found")
    return document


async def read_document_content(db: AsyncSession, user_id: int, document_id: uuid.UUID) -> tuple[Document, bytes]:
    document = await get_document(db, user_id, document_id)
    try:
        data = storage.read(document.storage_key)
    except FileNotFoundError:
        logger.warning("Blob missing for document", extra={"document_id": str(document_id)})
        raise NotFound("Document content not found", reason="blob")
    return document, data


async def upload_document(
    db: AsyncSession,
    user_id: int,
    filename: str,
    content_type: str | None,
    data: bytes,
    folder_id: uuid.UUID | None = None,
) -> Document:
    """Store the blob, then record its metadata.

    If the metadata insert fails the freshly stored blob is removed again.
    """
    validate_upload(filename, content_type, len(data))
    await _ensure_folder(db, user_id, folder_id)

    key = storage.generate_key(user_id, folder_id, filename)
    url = storage.store(key, data)
    document = Document(
        user_id=user_id,
        folder_id=folder_id,
        name=display_name(filename),
        original_name=filename,
        storage_key=key,
        url=url,
        file_size=len(data),
        mime_type=content_type,
    )
    try:
        async with write_scope(db, "upload", conflict_detail="Document already exists", user_id=user_id, key=key):
            db.add(document)
            await db.flush()
    except BaseException:
        storage.delete(key)
        raise
    await db.refresh(document)
    logger.info("Document uploaded", extra={"user_id": user_id, "document_id": str(document.id)})
    return document


async def list_documents(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 20,
    folder_id: uuid.UUID | None = None,
    unfiled_only: bool = False,
    search: str | None = None,
) -> tuple[list[Document], int]:
    if page < 1:
        raise InvalidInput("Page must be at least 1", reason="page")
    if page_size < 1:
        raise InvalidInput("Page size must be at least 1", reason="page_size")

    filters = [Document.user_id == user_id]
    if folder_id is not None:
        filters.append(Document.folder_id == folder_id)
    elif unfiled_only:
        filters.append(Document.folder_id.is_(None))
    if search:
        filters.append(Document.name.ilike(f"%{search.strip()}%"))

    total = await db.scalar(select(func.count()).select_from(Document).where(*filters))
    result = await db.execute(
        select(Document)
        .where(*filters)
        .order_by(Document.created_at.desc(), Document.name)
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    return list(result.scalars().all()), total or 0


async def move_document(
    db: AsyncSession, user_id: int, document_id: uuid.UUID, folder_id: uuid.UUID | None
) -> Document:
    async with write_scope(db, "move_document", user_id=user_id, document_id=str(document_id)):
        document = await _get_document_for_user(db, document_id, user_id)
        if document is None:
            raise NotFound("Document not found")
        await _ensure_folder(db, user_id, folder_id)
        document.folder_id = folder_id
    await db.refresh(document)
    return document


async def update_document(
    db: AsyncSession,
    user_id: int,
    document_id: uuid.UUID,
    name: str | None = None,
    folder_id: uuid.UUID | None = None,
    refile: bool = False,
) -> Document:
    """Rename and/or refile. With ``refile`` a ``folder_id`` of None unfiles."""
    if name is not None:
        name = validate_document_name(name)
    async with write_scope(db, "update_document", user_id=user_id, document_id=str(document_id)):
        document = await _get_document_for_user(db, document_id, user_id)
        if document is None:
            raise NotFound("Document not found")
        if refile:
            await _ensure_folder(db, user_id, folder_id)
            document.folder_id = folder_id
        if name is not None:
            document.name = name
    await db.refresh(document)
    return document


async def count_documents(db: AsyncSession, user_id: int) -> int:
    total = await db.scalar(select(func.count()).select_from(Document).where(Document.user_id == user_id))
    return total or 0


async def recent_documents(db: AsyncSession, user_id: int, limit: int = RECENT_DEFAULT_LIMIT) -> list[Document]:
    limit = min(max(limit, 1), RECENT_MAX_LIMIT)
    result = await db.execute(
        select(Document)
        .where(Document.user_id == user_id)
        .order_by(Document.created_at.desc(), Document.name)
        .limit(limit)
    )
    return list(result.scalars().all())


async def delete_document(db: AsyncSession, user_id: int, document_id: uuid.UUID) -> bool:
    key = None
    async with write_scope(db, "delete_document", user_id=user_id, document_id=str(document_id)):
        document = await _get_document_for_user(db, document_id, user_id)
        if document is not None:
            key = document.storage_key
            await db.delete(document)
    if key is None:
        return False
    try:
        storage.delete(key)
    except (OSError, ValueError):
        logger.exception("Failed to delete blob", extra={"key": key})
    return True
