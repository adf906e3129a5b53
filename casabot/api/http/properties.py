"""HTTP API layer: listing catalog read/search/create endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from casabot.agent.runtime.chat_runtime import to_listing_dto
from casabot.api.deps import get_container
from casabot.core.container import AppContainer
from casabot.infra.observability.logger import get_logger
from casabot.protocol.messages import ListingCreateRequest, ListingDto

router = APIRouter(prefix="/api/properties", tags=["properties"])
logger = get_logger(__name__)


@router.get("", response_model=list[ListingDto], response_model_by_alias=True)
def list_properties(container: AppContainer = Depends(get_container)) -> list[ListingDto]:
    return [to_listing_dto(row) for row in container.listing_store.list_listings()]


@router.get("/search", response_model=list[ListingDto], response_model_by_alias=True)
def search_properties(
    q: str | None = Query(default=None),
    limit: int = Query(default=3, ge=1, le=50),
    container: AppContainer = Depends(get_container),
) -> list[ListingDto]:
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")
    listings = container.listing_store.list_listings()
    rows = None
    if container.vector_index is not None:
        scored = container.vector_index.search(q, listings, limit=limit)
        if scored is not None:
            rows = [item.listing for item in scored]
    if rows is None:
        rows = container.listing_store.search(q, limit=limit)
    logger.info("api.properties.search q=%s results=%s", q[:80], len(rows))
    return [to_listing_dto(row) for row in rows]


@router.get("/{property_id}", response_model=ListingDto, response_model_by_alias=True)
def get_property(property_id: str, container: AppContainer = Depends(get_container)) -> ListingDto:
    row = container.listing_store.get(property_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return to_listing_dto(row)


@router.post(
    "",
    response_model=ListingDto,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_property(
    request: ListingCreateRequest,
    container: AppContainer = Depends(get_container),
) -> ListingDto:
    try:
        row = container.listing_store.create(request.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Failed to create property: {exc}") from exc
    logger.info("api.properties.created id=%s title=%s", row["id"], row["title"])
    return to_listing_dto(row)
