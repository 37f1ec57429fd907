"""
OAuth Token Manager (Google My Business)
========================================

Owns the stored OAuth2 credential for a service:

    get_valid_access_token(service)
        - expiry more than 5 minutes away: stored token, no network call
        - otherwise: refresh-token grant, persist, then return the new token

    get_authorization_url()          consent URL (offline access)
    exchange_code(code)              authorization-code grant, upsert token row
    set_location(service, acc, loc)  attach the GMB account/location ids
    status(service)                  {is_authenticated, has_account_id, has_location_id}

A token row is created once and mutated in place afterwards.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests

from ..data.data_models import OAuthToken
from ..storage.backends import StorageBackend
from .base import ProviderError, utc_now

logger = logging.getLogger(__name__)


AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
BUSINESS_SCOPE = "https://www.googleapis.com/auth/business.manage"

# Refresh when the token expires within this window
EXPIRY_SKEW = timedelta(minutes=5)

# Used when the token endpoint omits expires_in
DEFAULT_EXPIRES_IN = 3600


class AuthExpiredError(ProviderError):
    """Stored credential cannot be used or refreshed; manual re-authorization required."""
    pass


class TokenNotFoundError(AuthExpiredError):
    """No token stored for the service."""
    pass


class OAuthTokenManager:
    """
    Google OAuth2 token lifecycle over the oauth_tokens table.

    Args:
        backend: StorageBackend holding oauth_tokens
        client_id: OAuth client id
        client_secret: OAuth client secret
        redirect_uri: Callback registered with the client
        session: requests.Session for the token endpoint
        clock: returns the current aware datetime
        timeout: (connect, read) seconds
    """

    def __init__(
        self,
        backend: StorageBackend,
        client_id: str,
        client_secret: str,
        redirect_uri: str = "",
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utc_now,
        timeout: Tuple[float, float] = (10.0, 30.0),
    ):
        self.backend = backend
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.session = session or requests.Session()
        self.clock = clock
        self.timeout = timeout

    @classmethod
    def from_settings(cls, backend: StorageBackend, settings=None, **kwargs) -> "OAuthTokenManager":
        if settings is None:
            from ..data.config import get_settings
            settings = get_settings()
        cfg = settings.google_oauth
        return cls(
            backend,
            client_id=cfg.client_id,
            client_secret=cfg.client_secret,
            redirect_uri=cfg.redirect_uri,
            timeout=settings.refresh.http_timeout,
            **kwargs
        )

    # =========================================================================
    # Token endpoint
    # =========================================================================

    def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        payload = dict(data, client_id=self.client_id, client_secret=self.client_secret)
        try:
            response = self.session.post(TOKEN_URL, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthExpiredError(f"Token endpoint unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or "access_token" not in body:
            reason = body.get("error_description") or body.get("error") or response.text[:200]
            raise AuthExpiredError(
                f"Token grant '{data.get('grant_type')}' failed: {reason}",
                status_code=response.status_code,
                response=body,
            )
        return body

    def _expiry_from(self, body: Dict[str, Any]) -> datetime:
        expires_in = int(body.get("expires_in") or DEFAULT_EXPIRES_IN)
        return self.clock() + timedelta(seconds=expires_in)

    # =========================================================================
    # Access tokens
    # =========================================================================

    def needs_refresh(self, token: OAuthToken) -> bool:
        return self.clock() >= token.expiry_date - EXPIRY_SKEW

    def get_token(self, service: str) -> Optional[OAuthToken]:
        return self.backend.get_token(service)

    def get_valid_access_token(self, service: str) -> str:
        """
        Access token usable for at least the next five minutes.

        Raises:
            TokenNotFoundError: nothing stored for the service
            AuthExpiredError: refresh token missing or rejected
        """
        token = self.backend.get_token(service)
        if token is None:
            raise TokenNotFoundError(f"No OAuth token stored for {service}")

        if not self.needs_refresh(token):
            return token.access_token

        if not token.refresh_token:
            raise AuthExpiredError(f"{service} token expired and no refresh token is stored")

        logger.info(f"[{service}] access token expires at {token.expiry_date.isoformat()}, refreshing")
        body = self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
        })

        fields = {
            "access_token": body["access_token"],
            "expiry_date": self._expiry_from(body),
        }
        if body.get("refresh_token"):
            fields["refresh_token"] = body["refresh_token"]

        self.backend.update_token(service, **fields)
        logger.info(f"[{service}] access token refreshed, valid until {fields['expiry_date'].isoformat()}")
        return fields["access_token"]

    # =========================================================================
    # Authorization flow
    # =========================================================================

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": BUSINESS_SCOPE,
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, service: str = "google_my_business") -> OAuthToken:
        """
        Trade an authorization code for tokens and store them.

        Updates the existing row in place; account/location ids are kept.
        """
        body = self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        if not body.get("refresh_token"):
            raise AuthExpiredError("Authorization code grant returned no refresh token")

        expiry = self._expiry_from(body)
        existing = self.backend.get_token(service)
        if existing is not None:
            self.backend.update_token(
                service,
                access_token=body["access_token"],
                refresh_token=body["refresh_token"],
                expiry_date=expiry,
            )
            logger.info(f"[{service}] OAuth token updated from authorization code")
        else:
            self.backend.insert_token(OAuthToken(
                service=service,
                access_token=body["access_token"],
                refresh_token=body["refresh_token"],
                expiry_date=expiry,
            ))
            logger.info(f"[{service}] OAuth token stored")

        return self.backend.get_token(service)

    def set_location(self, service: str, account_id: str, location_id: str) -> None:
        if self.backend.get_token(service) is None:
            raise TokenNotFoundError(f"No OAuth token stored for {service}")
        self.backend.update_token(service, account_id=account_id, location_id=location_id)
        logger.info(f"[{service}] account/location ids set")

    def status(self, service: str) -> Dict[str, bool]:
        token = self.backend.get_token(service)
        return {
            "is_authenticated": token is not None,
            "has_account_id": bool(token and token.account_id),
            "has_location_id": bool(token and token.location_id),
        }
