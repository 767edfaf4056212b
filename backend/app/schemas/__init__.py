from app.schemas.auth import TokenData
from app.schemas.document import (
    DashboardStats,
    DocumentMove,
    DocumentPage,
    DocumentResponse,
    DocumentUpdate,
    RecentDocuments,
)
from app.schemas.folder import (
    DocumentRef,
    FolderCreate,
    FolderMove,
    FolderPage,
    FolderPathResponse,
    FolderRename,
    FolderResponse,
    FolderTree,
    FolderTreeResponse,
)

__all__ = [
    "TokenData",
    "DashboardStats",
    "DocumentMove",
    "DocumentPage",
    "DocumentResponse",
    "DocumentUpdate",
    "RecentDocuments",
    "DocumentRef",
    "FolderCreate",
    "FolderMove",
    "FolderPage",
    "FolderPathResponse",
    "FolderRename",
    "FolderResponse",
    "FolderTree",
    "FolderTreeResponse",
]
