"""
Reviewsync API Models
=====================

Pydantic models for API request/response serialization.
Field names are the camelCase keys the site front-end consumes.
"""

from pydantic import BaseModel
from typing import List, Dict, Optional, Any


class ReviewModel(BaseModel):
    """One served review."""
    id: str
    authorName: str
    authorUrl: Optional[str] = None
    profilePhotoUrl: Optional[str] = None
    rating: int
    text: str
    relativeTime: str
    timestamp: int
    categories: List[str]
    fetchedAt: Optional[str] = None
    source: str


class ReviewStatsModel(BaseModel):
    """Aggregate rating for structured data (schema.org AggregateRating)."""
    ratingValue: Optional[str] = None
    reviewCount: int


class OAuthStatusModel(BaseModel):
    isAuthenticated: bool
    hasAccountId: bool
    hasLocationId: bool


class OAuthInitResponse(BaseModel):
    authUrl: str


class SetIdsRequest(BaseModel):
    """Account/location ids for the Business Profile API. Both required."""
    accountId: Optional[str] = None
    locationId: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    storage: str
    storageBackend: str
    sources: List[str]
    scheduler: Dict[str, Any]
