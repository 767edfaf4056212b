"""Materialized path maintenance for folders.

A folder's ``path`` is ``/`` joined with the names of its ancestors and itself,
e.g. ``/Biology/Exam1``. Renames and moves change the path of one folder and
then rewrite the prefix of every descendant path; descendants keep their own
suffix untouched.
"""

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Folder

logger = logging.getLogger(__name__)

SEPARATOR = "/"


def build_path(parent_path: str | None, name: str) -> str:
    if parent_path is None:
        return f"{SEPARATOR}{name}"
    return f"{parent_path}{SEPARATOR}{name}"


def replace_last_segment(path: str, name: str) -> str:
    head, _, _ = path.rpartition(SEPARATOR)
    return f"{head}{SEPARATOR}{name}"


def is_descendant_path(path: str, ancestor_path: str) -> bool:
    """True if ``path`` lies strictly below ``ancestor_path``."""
    return path.startswith(ancestor_path + SEPARATOR)


def rewrite_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    if not is_descendant_path(path, old_prefix):
        raise ValueError(f"{path!r} is not below {old_prefix!r}")
    return new_prefix + path[len(old_prefix):]


def descendants_query(user_id: int, ancestor_path: str):
    prefix = ancestor_path + SEPARATOR
    return (
        select(Folder)
        .where(
            Folder.user_id == user_id,
            Folder.path.startswith(prefix, autoescape=True),
            # LIKE is case-insensitive on some backends; pin the exact prefix.
            func.substr(Folder.path, 1, len(prefix)) == prefix,
        )
        .order_by(Folder.path)
    )


def path_depth(path: str) -> int:
    """Number of segments; 1 for a root folder."""
    return path.count(SEPARATOR)


async def rewritten_descendant_paths(
    db: AsyncSession, user_id: int, old_path: str, new_path: str
) -> list[str]:
    """Paths the descendants of ``old_path`` would get under ``new_path``.

    Locks the descendant rows; ``propagate_path_change`` then finds them in the
    session's identity map.
    """
    result = await db.execute(descendants_query(user_id, old_path).with_for_update())
    return [rewrite_prefix(f.path, old_path, new_path) for f in result.scalars().all()]


async def propagate_path_change(
    db: AsyncSession, user_id: int, old_path: str, new_path: str
) -> int:
    """Rewrite every descendant of ``old_path`` to live under ``new_path``.

    Must run inside the transaction that changed the folder's own row. Returns
    the number of rewritten descendants.
    """
    if old_path == new_path:
        return 0
    result = await db.execute(descendants_query(user_id, old_path).with_for_update())
    descendants = list(result.scalars().all())
    for folder in descendants:
        folder.path = rewrite_prefix(folder.path, old_path, new_path)
    await db.flush()
    logger.debug(
        "Rewrote descendant paths",
        extra={"user_id": user_id, "old_path": old_path, "new_path": new_path, "count": len(descendants)},
    )
    return len(descendants)


def compute_expected_paths(folders: Iterable[Folder]) -> dict[uuid.UUID, str]:
    """Derive every path from ``parent_id`` pointers alone.

    Folders whose parent chain is broken or cyclic are left out.
    """
    by_id = {f.id: f for f in folders}
    resolved: dict[uuid.UUID, str] = {}

    for start in by_id:
        chain: list[Folder] = []
        on_chain: set[uuid.UUID] = set()
        base: str | None = None
        node_id = start
        broken = False
        while node_id not in resolved:
            node = by_id.get(node_id)
            if node is None or node_id in on_chain:
                broken = True
                break
            chain.append(node)
            on_chain.add(node_id)
            if node.parent_id is None:
                break
            node_id = node.parent_id
        else:
            base = resolved[node_id]
        if broken:
            continue

        for folder in reversed(chain):
            base = build_path(base, folder.name)
            resolved[folder.id] = base

    return resolved


async def rebuild_paths(db: AsyncSession, user_id: int) -> int:
    """Recompute all paths of a user from the tree structure and repair drift.

    Returns the number of repaired rows. The caller commits.
    """
    result = await db.execute(select(Folder).where(Folder.user_id == user_id).with_for_update())
    folders = list(result.scalars().all())
    expected = compute_expected_paths(folders)
    repaired = 0
    for folder in folders:
        path = expected.get(folder.id)
        if path is not None and folder.path != path:
            logger.warning(
                "Repairing folder path",
                extra={"user_id": user_id, "folder_id": str(folder.id), "stored": folder.path, "expected": path},
            )
            folder.path = path
            repaired += 1
    await db.flush()
    return repaired
