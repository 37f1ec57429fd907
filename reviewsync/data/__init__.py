"""
Reviewsync Data Module
======================

Configuration and canonical data models shared by every layer.

This module provides:
    - Settings: environment-driven configuration (see config.py)
    - Review / OAuthToken / FetchResult: canonical dataclasses

Required Environment Variables (postgres backend):
    DATABASE_PASSWORD: PostgreSQL password
"""

from .config import settings, get_settings, reset_settings, Settings
from .data_models import (
    Review,
    ReviewSource,
    OAuthToken,
    FetchResult,
    FetchStatus,
    DEFAULT_CATEGORY,
)

__all__ = [
    # Configuration
    "settings",
    "get_settings",
    "reset_settings",
    "Settings",
    # Data models
    "Review",
    "ReviewSource",
    "OAuthToken",
    "FetchResult",
    "FetchStatus",
    "DEFAULT_CATEGORY",
]
