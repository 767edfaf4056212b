"""Folder hierarchy operations.

Every function is scoped to one owner: a folder that belongs to somebody else
is reported exactly like a missing one. Mutations validate and write inside a
single transaction on the given session and commit before returning; any
failure rolls the whole operation back so no half-rewritten subtree is ever
visible.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Document, Folder
from app.services import storage
from app.services.errors import Conflict, HierarchyError, InvalidInput, NotFound, StorageFailure
from app.services.folder_paths import (
    SEPARATOR,
    build_path,
    descendants_query,
    propagate_path_change,
    rebuild_paths,
    replace_last_segment,
    rewritten_descendant_paths,
)
from app.services.folder_validation import (
    ensure_path_length,
    ensure_unique_sibling,
    ensure_valid_move,
    validate_folder_name,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def write_scope(
    db: AsyncSession,
    action: str,
    conflict_detail: str = "A folder with this name already exists in this location",
    **context,
) -> AsyncIterator[None]:
    """Commit on success; roll back and classify the error otherwise."""
    try:
        yield
        await db.commit()
    except HierarchyError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        if "unique" in str(e.orig).lower():
            logger.info("Unique constraint hit during %s", action, extra=context)
            raise Conflict(conflict_detail, reason=Conflict.DUPLICATE_NAME) from e
        logger.exception("Integrity error during %s", action, extra=context)
        raise StorageFailure() from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Database error during %s", action, extra=context)
        raise StorageFailure() from e
    except BaseException:
        # Cancellation included: no flushed partial rewrite may stay pending.
        await db.rollback()
        raise


async def _get_folder_for_user(
    db: AsyncSession, folder_id: uuid.UUID, user_id: int, lock: bool = False
) -> Folder | None:
    q = select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id)
    if lock:
        q = q.with_for_update()
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def _get_descendant_folder_ids(
    db: AsyncSession, folder_id: uuid.UUID, user_id: int
) -> set[uuid.UUID]:
    # Walks parent pointers rather than paths so a drifted path cache can
    # never hide a cycle.
    result: set[uuid.UUID] = set()
    frontier = [folder_id]
    while frontier:
        q = select(Folder.id).where(
            Folder.user_id == user_id,
            Folder.parent_id.in_(frontier),
        )
        r = await db.execute(q)
        next_ids = list(r.scalars().all())
        frontier = [i for i in next_ids if i not in result and i != folder_id]
        result.update(frontier)
    return result


async def get_folder(db: AsyncSession, user_id: int, folder_id: uuid.UUID) -> Folder:
    folder = await _get_folder_for_user(db, folder_id, user_id)
    if folder is None:
        raise NotFound("Folder not found")
    return folder


async def create_folder(
    db: AsyncSession, user_id: int, name: str, parent_id: uuid.UUID | None = None
) -> Folder:
    name = validate_folder_name(name)
    async with write_scope(db, "create", user_id=user_id, parent_id=str(parent_id)):
        parent_path = None
        if parent_id is not None:
            parent = await _get_folder_for_user(db, parent_id, user_id, lock=True)
            if parent is None:
                raise NotFound("Parent folder not found", reason="parent")
            parent_path = parent.path
        path = build_path(parent_path, name)
        ensure_path_length(path)
        await ensure_unique_sibling(db, user_id, parent_id, name)
        folder = Folder(
            user_id=user_id,
            name=name,
            parent_id=parent_id,
            path=path,
        )
        db.add(folder)
        await db.flush()
    await db.refresh(folder)
    logger.info("Folder created", extra={"user_id": user_id, "folder_id": str(folder.id), "path": folder.path})
    return folder


async def rename_folder(
    db: AsyncSession, user_id: int, folder_id: uuid.UUID, new_name: str
) -> Folder:
    new_name = validate_folder_name(new_name)
    async with write_scope(db, "rename", user_id=user_id, folder_id=str(folder_id)):
        folder = await _get_folder_for_user(db, folder_id, user_id, lock=True)
        if folder is None:
            raise NotFound("Folder not found")
        if folder.name == new_name:
            return folder
        await ensure_unique_sibling(db, user_id, folder.parent_id, new_name, exclude_id=folder.id)
        old_path = folder.path
        new_path = replace_last_segment(old_path, new_name)
        ensure_path_length(new_path, *await rewritten_descendant_paths(db, user_id, old_path, new_path))
        folder.name = new_name
        folder.path = new_path
        await db.flush()
        rewritten = await propagate_path_change(db, user_id, old_path, new_path)
    await db.refresh(folder)
    logger.info(
        "Folder renamed",
        extra={"user_id": user_id, "folder_id": str(folder_id), "path": folder.path, "descendants": rewritten},
    )
    return folder


async def move_folder(
    db: AsyncSession, user_id: int, folder_id: uuid.UUID, new_parent_id: uuid.UUID | None
) -> Folder:
    async with write_scope(db, "move", user_id=user_id, folder_id=str(folder_id)):
        folder = await _get_folder_for_user(db, folder_id, user_id, lock=True)
        if folder is None:
            raise NotFound("Folder not found")
        ensure_valid_move(folder.id, new_parent_id, ())
        if new_parent_id == folder.parent_id:
            return folder

        new_parent = None
        if new_parent_id is not None:
            new_parent = await _get_folder_for_user(db, new_parent_id, user_id, lock=True)
            if new_parent is None:
                raise NotFound("Target parent folder not found", reason="parent")
            descendant_ids = await _get_descendant_folder_ids(db, folder.id, user_id)
            ensure_valid_move(folder.id, new_parent_id, descendant_ids)

        await ensure_unique_sibling(db, user_id, new_parent_id, folder.name, exclude_id=folder.id)
        old_path = folder.path
        new_path = build_path(new_parent.path if new_parent is not None else None, folder.name)
        ensure_path_length(new_path, *await rewritten_descendant_paths(db, user_id, old_path, new_path))
        folder.parent_id = new_parent_id
        folder.path = new_path
        await db.flush()
        rewritten = await propagate_path_change(db, user_id, old_path, new_path)
    await db.refresh(folder)
    logger.info(
        "Folder moved",
        extra={"user_id": user_id, "folder_id": str(folder_id), "path": folder.path, "descendants": rewritten},
    )
    return folder


async def delete_folder(db: AsyncSession, user_id: int, folder_id: uuid.UUID) -> bool:
    """Delete a folder, its whole subtree and every document filed in it.

    Returns False when there was nothing to delete. Blobs of removed documents
    are dropped from storage only after the metadata deletion committed.
    """
    storage_keys: list[str] = []
    deleted = False
    async with write_scope(db, "delete", user_id=user_id, folder_id=str(folder_id)):
        folder = await _get_folder_for_user(db, folder_id, user_id, lock=True)
        if folder is not None:
            subtree_ids = {folder.id} | await _get_descendant_folder_ids(db, folder.id, user_id)
            docs = await db.execute(
                select(Document.storage_key).where(
                    Document.user_id == user_id, Document.folder_id.in_(list(subtree_ids))
                )
            )
            storage_keys = list(docs.scalars().all())
            await db.execute(
                delete(Document).where(Document.user_id == user_id, Document.folder_id.in_(list(subtree_ids)))
            )
            result = await db.execute(
                delete(Folder).where(Folder.user_id == user_id, Folder.id.in_(list(subtree_ids)))
            )
            deleted = result.rowcount > 0
    if not deleted:
        return False

    for key in storage_keys:
        try:
            storage.delete(key)
        except (OSError, ValueError):
            logger.exception("Failed to delete blob of removed document", extra={"key": key})
    logger.info(
        "Folder deleted",
        extra={"user_id": user_id, "folder_id": str(folder_id), "documents": len(storage_keys)},
    )
    return True


async def get_folder_path(db: AsyncSession, user_id: int, folder_id: uuid.UUID) -> list[Folder]:
    """Ancestor chain root -> folder, inclusive. Empty when the folder is unknown."""
    folder = await _get_folder_for_user(db, folder_id, user_id)
    if folder is None:
        return []
    segments = folder.path.split(SEPARATOR)[1:]
    prefixes = [SEPARATOR + SEPARATOR.join(segments[: i + 1]) for i in range(len(segments))]
    result = await db.execute(
        select(Folder).where(Folder.user_id == user_id, Folder.path.in_(prefixes))
    )
    chain = sorted(result.scalars().all(), key=lambda f: len(f.path))
    return chain


async def list_children(
    db: AsyncSession, user_id: int, parent_id: uuid.UUID | None
) -> list[Folder]:
    q = select(Folder).where(Folder.user_id == user_id)
    if parent_id is None:
        q = q.where(Folder.parent_id.is_(None))
    else:
        q = q.where(Folder.parent_id == parent_id)
    result = await db.execute(q.order_by(Folder.name))
    return list(result.scalars().all())


async def list_descendants(db: AsyncSession, user_id: int, folder_id: uuid.UUID) -> list[Folder]:
    folder = await get_folder(db, user_id, folder_id)
    result = await db.execute(descendants_query(user_id, folder.path))
    return list(result.scalars().all())


async def list_folders_paginated(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 20,
    parent_id: uuid.UUID | None = None,
    roots_only: bool = False,
) -> tuple[list[Folder], int]:
    """One page of folders ordered by name.

    ``parent_id`` selects its children, ``roots_only`` the root folders;
    with neither, all of the user's folders are listed.
    """
    if page < 1:
        raise InvalidInput("Page must be at least 1", reason="page")
    if page_size < 1:
        raise InvalidInput("Page size must be at least 1", reason="page_size")

    filters = [Folder.user_id == user_id]
    if parent_id is not None:
        filters.append(Folder.parent_id == parent_id)
    elif roots_only:
        filters.append(Folder.parent_id.is_(None))

    total = await db.scalar(select(func.count()).select_from(Folder).where(*filters))
    result = await db.execute(
        select(Folder)
        .where(*filters)
        .order_by(Folder.name, Folder.path)
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    return list(result.scalars().all()), total or 0


async def repair_folder_paths(db: AsyncSession, user_id: int) -> int:
    async with write_scope(db, "repair_paths", user_id=user_id):
        repaired = await rebuild_paths(db, user_id)
    if repaired:
        logger.warning("Repaired folder paths", extra={"user_id": user_id, "repaired": repaired})
    return repaired


async def count_folders(db: AsyncSession, user_id: int) -> int:
    total = await db.scalar(select(func.count()).select_from(Folder).where(Folder.user_id == user_id))
    return total or 0
