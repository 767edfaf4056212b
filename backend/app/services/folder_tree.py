"""Nested folder tree of a user, with documents filed under their folders."""

import logging
import uuid
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Document, Folder
from app.schemas.folder import DocumentRef, FolderTree, FolderTreeResponse
from app.services.folder_paths import path_depth

logger = logging.getLogger(__name__)


async def get_folder_tree(db: AsyncSession, user_id: int) -> FolderTreeResponse:
    """Nest folders shallowest first, so every parent node exists before its
    children attach. Siblings come out sorted by name.
    """
    result = await db.execute(select(Folder).where(Folder.user_id == user_id))
    folders = sorted(result.scalars().all(), key=lambda f: (path_depth(f.path), f.name))

    docs = await db.execute(
        select(Document).where(Document.user_id == user_id).order_by(Document.name)
    )
    refs: dict[uuid.UUID | None, list[DocumentRef]] = defaultdict(list)
    for doc in docs.scalars().all():
        refs[doc.folder_id].append(DocumentRef.model_validate(doc))

    nodes: dict[uuid.UUID, FolderTree] = {}
    roots: list[FolderTree] = []
    for folder in folders:
        node = FolderTree(
            id=folder.id,
            name=folder.name,
            parent_id=folder.parent_id,
            path=folder.path,
            documents=refs.get(folder.id, []),
        )
        nodes[folder.id] = node
        if folder.parent_id is None:
            roots.append(node)
        elif folder.parent_id in nodes:
            nodes[folder.parent_id].children.append(node)
        else:
            # Only reachable when the path cache has drifted from the parent pointers.
            logger.warning(
                "Folder left out of tree", extra={"user_id": user_id, "folder_id": str(folder.id)}
            )

    return FolderTreeResponse(roots=roots, root_documents=refs.get(None, []))
