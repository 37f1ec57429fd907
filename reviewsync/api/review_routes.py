"""
Review API Routes
=================

GET /api/reviews        - served review set (refreshes first if empty or ?refresh=true)
GET /api/reviews/stats  - mean rating + count
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..data.data_models import ReviewSource
from ..storage.backends import PersistenceError
from .models import ReviewModel, ReviewStatsModel
from .services import ReviewServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])

CACHE_REVIEWS = "public, max-age=1800, must-revalidate"
CACHE_EMPTY = "public, max-age=300, must-revalidate"


# Plain `def` endpoints run in the threadpool, so an on-demand refresh keeps
# running to completion even if the client disconnects.

@router.get("", response_model=List[ReviewModel])
def list_reviews(
    response: Response,
    category: Optional[str] = Query(None, description="Only reviews tagged with this category"),
    min_rating: int = Query(4, alias="minRating", description="Read-time rating filter"),
    refresh: bool = Query(False, description="Force a full refresh before answering"),
    source: Optional[ReviewSource] = Query(None, description="Only reviews from this source"),
    services: ReviewServices = Depends(get_services),
):
    """
    Served reviews, newest first.

    An empty store (or refresh=true) triggers a synchronous full refresh.
    A failed refresh answers 500 and leaves the stored reviews untouched.
    """
    try:
        services.refresher.ensure_fresh(force=refresh)
    except PersistenceError as e:
        logger.error(f"On-demand review refresh failed: {e.message}")
        raise HTTPException(status_code=500, detail=f"Review refresh failed: {e.message}")

    try:
        reviews = services.store.query(
            category=category,
            min_rating=min_rating,
            source=source.value if source else None,
        )
    except PersistenceError as e:
        logger.error(f"Review read failed: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to fetch reviews")

    if not refresh:
        response.headers["Cache-Control"] = CACHE_REVIEWS

    return [ReviewModel(**review.to_dict()) for review in reviews]


@router.get("/stats", response_model=ReviewStatsModel)
def review_stats(response: Response, services: ReviewServices = Depends(get_services)):
    """Mean rating to one decimal (string) and review count; null rating when empty."""
    try:
        stats = services.store.stats()
    except PersistenceError as e:
        logger.error(f"Review stats failed: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to fetch review stats")

    response.headers["Cache-Control"] = CACHE_REVIEWS if stats["review_count"] else CACHE_EMPTY
    return ReviewStatsModel(ratingValue=stats["rating_value"], reviewCount=stats["review_count"])
