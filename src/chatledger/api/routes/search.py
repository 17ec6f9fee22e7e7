"""
Search API routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from chatledger.api.deps import get_search
from chatledger.api.schemas import SearchHitResponse, SearchResponse
from chatledger.services.search_service import SEARCH_KINDS, SearchService

router = APIRouter()


@router.get("", response_model=SearchResponse)
def search(
    q: str = Query(..., min_length=1, description="Search terms"),
    kind: str = Query("message", description=f"One of {', '.join(SEARCH_KINDS)}"),
    limit: int = Query(20, ge=1, le=200),
    service: SearchService = Depends(get_search),
) -> SearchResponse:
    """Full-text search over messages, documents or memories."""
    if kind not in SEARCH_KINDS:
        raise HTTPException(status_code=422, detail=f"Unknown search kind {kind!r}")
    hits = service.search(kind, q, limit)
    return SearchResponse(
        query=q,
        kind=kind,
        hits=[
            SearchHitResponse(
                kind=h.kind, entity_id=h.entity_id, score=h.score, entity=h.entity
            )
            for h in hits
        ],
    )
