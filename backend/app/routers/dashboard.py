from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models import User
from app.schemas.document import DashboardStats, DocumentResponse, RecentDocuments
from app.services import documents as document_service
from app.services import folders as folder_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
async def stats(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DashboardStats:
    return DashboardStats(
        documents=await document_service.count_documents(db, user.id),
        folders=await folder_service.count_folders(db, user.id),
    )


@router.get("/recent-documents", response_model=RecentDocuments)
async def recent_documents(
    limit: int = Query(document_service.RECENT_DEFAULT_LIMIT),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> RecentDocuments:
    # Out-of-range limits are clamped, not rejected.
    documents = await document_service.recent_documents(db, user.id, limit)
    return RecentDocuments(documents=[DocumentResponse.model_validate(d) for d in documents])
