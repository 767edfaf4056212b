import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user
from app.middleware.rate_limit import rate_limiter
from app.models import Folder, User
from app.schemas.folder import (
    FolderCreate,
    FolderMove,
    FolderPage,
    FolderPathResponse,
    FolderRename,
    FolderResponse,
    FolderTreeResponse,
)
from app.services import folders as folder_service
from app.services.errors import InvalidInput, NotFound
from app.services.folder_tree import get_folder_tree

router = APIRouter(prefix="/folders", tags=["folders"])

ROOT_ALIASES = {"root", "null"}


def _parse_parent_filter(parent_id: str | None) -> tuple[uuid.UUID | None, bool]:
    """Map the ``parent_id`` query value to (parent uuid, roots only)."""
    if parent_id is None or parent_id == "":
        return None, False
    if parent_id in ROOT_ALIASES:
        return None, True
    try:
        return uuid.UUID(parent_id), False
    except ValueError:
        raise InvalidInput("Invalid parent folder ID format", reason="parent_id")


@router.get("", response_model=FolderPage)
async def list_folders(
    parent_id: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> FolderPage:
    parent_uuid, roots_only = _parse_parent_filter(parent_id)
    size = min(page_size or settings.default_page_size, settings.max_page_size)
    folders, total = await folder_service.list_folders_paginated(
        db, user.id, page=page, page_size=size, parent_id=parent_uuid, roots_only=roots_only
    )
    return FolderPage(
        folders=[FolderResponse.model_validate(f) for f in folders],
        total=total,
        page=page,
        page_size=size,
    )


@router.get("/tree", response_model=FolderTreeResponse)
async def folder_tree(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> FolderTreeResponse:
    return await get_folder_tree(db, user.id)


@router.post("/repair-paths")
@rate_limiter
async def repair_paths(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, int]:
    repaired = await folder_service.repair_folder_paths(db, user.id)
    return {"repaired": repaired}


@router.post("", response_model=FolderResponse, status_code=201)
@rate_limiter
async def create_folder(
    request: Request,
    data: FolderCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Folder:
    return await folder_service.create_folder(db, user.id, data.name, data.parent_id)


@router.get("/{folder_id}", response_model=FolderResponse)
async def get_folder(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Folder:
    return await folder_service.get_folder(db, user.id, folder_id)


@router.put("/{folder_id}", response_model=FolderResponse)
@rate_limiter
async def rename_folder(
    request: Request,
    folder_id: uuid.UUID,
    data: FolderRename,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Folder:
    return await folder_service.rename_folder(db, user.id, folder_id, data.name)


@router.post("/{folder_id}/move", response_model=FolderResponse)
@rate_limiter
async def move_folder(
    request: Request,
    folder_id: uuid.UUID,
    data: FolderMove,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Folder:
    return await folder_service.move_folder(db, user.id, folder_id, data.new_parent_id)


@router.delete("/{folder_id}")
@rate_limiter
async def delete_folder(
    request: Request,
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, bool]:
    deleted = await folder_service.delete_folder(db, user.id, folder_id)
    if not deleted:
        raise NotFound("Folder not found")
    return {"success": True}


@router.get("/{folder_id}/path", response_model=FolderPathResponse)
async def get_folder_path(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> FolderPathResponse:
    chain = await folder_service.get_folder_path(db, user.id, folder_id)
    if not chain:
        raise NotFound("Folder not found")
    return FolderPathResponse(path=[FolderResponse.model_validate(f) for f in chain])


@router.get("/{folder_id}/children", response_model=list[FolderResponse])
async def list_children(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[Folder]:
    await folder_service.get_folder(db, user.id, folder_id)
    return await folder_service.list_children(db, user.id, folder_id)


@router.get("/{folder_id}/descendants", response_model=list[FolderResponse])
async def list_descendants(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[Folder]:
    return await folder_service.list_descendants(db, user.id, folder_id)
