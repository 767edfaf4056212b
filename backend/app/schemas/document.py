import uuid
from datetime import datetime

from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: uuid.UUID
    name: str
    original_name: str
    folder_id: uuid.UUID | None
    url: str
    file_size: int
    mime_type: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentMove(BaseModel):
    folder_id: uuid.UUID | None


class DocumentUpdate(BaseModel):
    name: str | None = None
    folder_id: uuid.UUID | None = None


class DocumentPage(BaseModel):
    documents: list[DocumentResponse]
    total: int
    page: int
    page_size: int


class RecentDocuments(BaseModel):
    documents: list[DocumentResponse]


class DashboardStats(BaseModel):
    documents: int
    folders: int
