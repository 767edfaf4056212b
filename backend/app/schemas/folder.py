import uuid
from datetime import datetime

from pydantic import BaseModel


class FolderCreate(BaseModel):
    name: str
    parent_id: uuid.UUID | None = None


class FolderRename(BaseModel):
    name: str


class FolderMove(BaseModel):
    new_parent_id: uuid.UUID | None


class FolderResponse(BaseModel):
    id: uuid.UUID
    name: str
    parent_id: uuid.UUID | None
    path: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FolderPage(BaseModel):
    folders: list[FolderResponse]
    total: int
    page: int
    page_size: int


class FolderPathResponse(BaseModel):
    path: list[FolderResponse]


class DocumentRef(BaseModel):
    id: uuid.UUID
    name: str
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class FolderTree(BaseModel):
    id: uuid.UUID
    name: str
    parent_id: uuid.UUID | None
    path: str
    children: list["FolderTree"] = []
    documents: list[DocumentRef] = []


class FolderTreeResponse(BaseModel):
    roots: list[FolderTree] = []
    root_documents: list[DocumentRef] = []


FolderTree.model_rebuild()
