"""Checks that run before any folder write."""

import re
import uuid
from collections.abc import Collection

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Folder
from app.models.folder import FOLDER_NAME_MAX_LENGTH, FOLDER_PATH_MAX_BYTES
from app.services.errors import Conflict, InvalidInput, InvalidMove

FORBIDDEN_NAME_CHARS = re.compile(r'[<>:"/\\|?*]')
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
RESERVED_NAMES = {".", ".."}


def validate_folder_name(name: str | None) -> str:
    """Return the trimmed name or raise ``InvalidInput`` naming the broken rule."""
    if name is None:
        raise InvalidInput("Folder name is required", reason="required")
    name = name.strip()
    if not name:
        raise InvalidInput("Folder name cannot be empty", reason="empty")
    if len(name) > FOLDER_NAME_MAX_LENGTH:
        raise InvalidInput(
            f"Folder name cannot exceed {FOLDER_NAME_MAX_LENGTH} characters", reason="too_long"
        )
    if FORBIDDEN_NAME_CHARS.search(name):
        raise InvalidInput("Folder name contains invalid characters", reason="invalid_characters")
    if CONTROL_CHARS.search(name):
        raise InvalidInput("Folder name contains control characters", reason="invalid_characters")
    if name in RESERVED_NAMES:
        raise InvalidInput("Folder name is reserved", reason="reserved")
    return name


def ensure_path_length(*paths: str) -> None:
    for path in paths:
        if len(path.encode("utf-8")) > FOLDER_PATH_MAX_BYTES:
            raise InvalidInput(
                f"Folder path cannot exceed {FOLDER_PATH_MAX_BYTES} bytes", reason="path_too_long"
            )


def ensure_valid_move(
    folder_id: uuid.UUID,
    new_parent_id: uuid.UUID | None,
    descendant_ids: Collection[uuid.UUID],
) -> None:
    if new_parent_id is None:
        return
    if new_parent_id == folder_id:
        raise InvalidMove("Cannot move folder into itself", reason=InvalidMove.SELF)
    if new_parent_id in descendant_ids:
        raise InvalidMove("Cannot move folder into its own descendant", reason=InvalidMove.DESCENDANT)


async def ensure_unique_sibling(
    db: AsyncSession,
    user_id: int,
    parent_id: uuid.UUID | None,
    name: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    q = select(Folder.id).where(Folder.user_id == user_id, Folder.name == name)
    if parent_id is None:
        q = q.where(Folder.parent_id.is_(None))
    else:
        q = q.where(Folder.parent_id == parent_id)
    if exclude_id is not None:
        q = q.where(Folder.id != exclude_id)
    result = await db.execute(q.limit(1))
    if result.scalar_one_or_none() is not None:
        raise Conflict(
            "A folder with this name already exists in this location",
            reason=Conflict.DUPLICATE_NAME,
        )
