"""
Formation retrieval and export endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, or_
from api.dependencies import get_db, get_exporter
from exporters.exporter import FormationExporter
from models.base import SyncStatus
from models.formation import Formation
from schemas.api import FormationListResponse, PaginationMetadata
from schemas.export import ExportRequest
from schemas.formation import FormationResponse, FormationDetailResponse
from typing import Optional
import time
import uuid
import math
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/formations", tags=["Formations"])


@router.get("", response_model=FormationListResponse)
async def list_formations(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=500, description="Items per page"),
    category: Optional[str] = Query(None, description="Filter by category"),
    source: Optional[str] = Query(None, description="Filter by origin system"),
    sync_status: Optional[SyncStatus] = Query(None, description="Filter by sync status"),
    search: Optional[str] = Query(None, description="Search in name, description and tags"),
    db: AsyncSession = Depends(get_db)
):
    """
    Retrieve stored formations, newest first.

    Features:
    - Pagination
    - Category, source and sync status filters
    - Substring search
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    logger.info(
        f"[{request_id}] GET /formations - page={page}, page_size={page_size}, "
        f"filters: category={category}, source={source}, search={search}"
    )

    filters = []

    if category:
        filters.append(Formation.category == category)

    if source:
        filters.append(Formation.source == source)

    if sync_status:
        filters.append(Formation.sync_status == sync_status)

    if search:
        filters.append(or_(
            Formation.name.ilike(f"%{search}%"),
            Formation.description.ilike(f"%{search}%"),
            Formation.tags.ilike(f"%{search}%"),
        ))

    query = select(Formation)
    count_query = select(func.count()).select_from(Formation)
    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    total_items = (await db.execute(count_query)).scalar() or 0

    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    offset = (page - 1) * page_size

    query = query.order_by(Formation.created_at.desc()).offset(offset).limit(page_size)
    result = await db.execute(query)
    items = [FormationResponse.model_validate(item) for item in result.scalars().all()]

    api_latency_ms = (time.time() - start_time) * 1000
    logger.info(f"[{request_id}] Returned {len(items)} formations ({api_latency_ms:.2f}ms)")

    return FormationListResponse(
        items=items,
        pagination=PaginationMetadata(
            current_page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        ),
        filters_applied={k: v for k, v in {
            "category": category,
            "source": source,
            "sync_status": sync_status.value if sync_status else None,
            "search": search,
        }.items() if v is not None}
    )


async def _get_formation(db: AsyncSession, formation_id: str) -> Formation:
    formation = await db.get(Formation, formation_id)
    if formation is None:
        raise HTTPException(status_code=404, detail=f"Formation {formation_id} not found")
    return formation


@router.get("/{formation_id}", response_model=FormationDetailResponse)
async def get_formation(formation_id: str, db: AsyncSession = Depends(get_db)):
    return FormationDetailResponse.model_validate(await _get_formation(db, formation_id))


@router.post("/{formation_id}/export")
async def export_formation(
    formation_id: str,
    body: ExportRequest,
    db: AsyncSession = Depends(get_db),
    exporter: FormationExporter = Depends(get_exporter),
):
    """Download the formation in the requested format"""
    formation = await _get_formation(db, formation_id)
    result = await exporter.export_formation(formation, body.format, body.options)

    if not result.success:
        raise HTTPException(status_code=422, detail=f"Export failed: {result.error}")

    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.file_name}"',
            "X-Frame-Count": str(result.metadata.get("frame_count", 0)),
            "X-Synthetic-Preview": str(result.metadata.get("synthetic", False)).lower(),
        },
    )
