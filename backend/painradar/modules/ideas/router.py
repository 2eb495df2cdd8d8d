from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from painradar.core.database import get_db
from painradar.modules.ideas import service
from painradar.modules.ideas.schemas import IdeaOut, PaginatedIdeasResponse

router = APIRouter(prefix="/ideas", tags=["ideas"])


@router.get("", response_model=PaginatedIdeasResponse)
async def list_ideas(
    category: str | None = Query(None),
    min_score: float | None = Query(None, ge=0, le=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PaginatedIdeasResponse:
    items, total = await service.list_ideas(
        db,
        category=category,
        min_score=min_score,
        page=page,
        page_size=page_size,
    )
    return PaginatedIdeasResponse(
        items=[IdeaOut.model_validate(i) for i in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size if total > 0 else 0,
    )
