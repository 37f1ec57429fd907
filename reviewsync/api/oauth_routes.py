"""
Google OAuth API Routes
=======================

One-time authorization of the Google Business Profile listing:

GET  /api/oauth/status    - is a token stored, are account/location ids set
GET  /api/oauth/init      - consent URL
GET  /api/oauth/callback  - exchange ?code= for tokens
POST /api/oauth/set-ids   - {accountId, locationId}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..sources.oauth_tokens import AuthExpiredError, TokenNotFoundError
from ..storage.backends import PersistenceError
from .models import OAuthStatusModel, OAuthInitResponse, SetIdsRequest, MessageResponse
from .services import ReviewServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/oauth", tags=["OAuth"])


@router.get("/status", response_model=OAuthStatusModel)
def oauth_status(services: ReviewServices = Depends(get_services)):
    try:
        status = services.token_manager.status(services.oauth_service)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Failed to check OAuth status: {e.message}")
    return OAuthStatusModel(
        isAuthenticated=status["is_authenticated"],
        hasAccountId=status["has_account_id"],
        hasLocationId=status["has_location_id"],
    )


@router.get("/init", response_model=OAuthInitResponse)
def oauth_init(services: ReviewServices = Depends(get_services)):
    manager = services.token_manager
    if not manager.client_id:
        raise HTTPException(status_code=500, detail="Failed to initialize OAuth: client id not configured")
    return OAuthInitResponse(authUrl=manager.get_authorization_url())


@router.get("/callback", response_model=MessageResponse)
def oauth_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    services: ReviewServices = Depends(get_services),
):
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    try:
        services.token_manager.exchange_code(code, service=services.oauth_service)
    except (AuthExpiredError, PersistenceError) as e:
        logger.error(f"OAuth callback error: {e.message}")
        raise HTTPException(status_code=500, detail=f"OAuth failed: {e.message}")

    return MessageResponse(message="Authorization complete. Set account and location ids next.")


@router.post("/set-ids", response_model=MessageResponse)
def oauth_set_ids(body: SetIdsRequest, services: ReviewServices = Depends(get_services)):
    if not body.accountId or not body.locationId:
        raise HTTPException(status_code=400, detail="Missing account ID or location ID")

    try:
        services.token_manager.set_location(services.oauth_service, body.accountId, body.locationId)
    except TokenNotFoundError:
        raise HTTPException(status_code=404, detail="No OAuth token found. Please authenticate first.")
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Failed to update IDs: {e.message}")

    return MessageResponse(message="Account and location IDs updated successfully")
