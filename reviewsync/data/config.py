"""
Reviewsync Configuration Module
===============================

Centralized configuration management using environment variables.
Supports both .env files and system environment variables.

Environment Variables:
    STORAGE_BACKEND: "postgres" or "memory" (default: postgres)
    DATABASE_HOST: PostgreSQL host (default: localhost)
    DATABASE_PORT: PostgreSQL port (default: 5432)
    DATABASE_NAME: Database name (default: reviewsync)
    DATABASE_USER: Database user (default: reviewsync_app)
    DATABASE_PASSWORD: Database password (required for postgres)
    DATABASE_POOL_MIN: Minimum pool connections (default: 1)
    DATABASE_POOL_MAX: Maximum pool connections (default: 10)

    GOOGLE_PLACES_API_KEY / GOOGLE_PLACE_ID: Places details API
    DATAFORSEO_LOGIN / DATAFORSEO_PASSWORD: DataForSEO task API (Google + Yelp)
    YELP_BUSINESS_ALIAS: Yelp business alias queried through DataForSEO
    FACEBOOK_PAGE_ID / FACEBOOK_ACCESS_TOKEN: Graph API page ratings
    GOOGLE_OAUTH_CLIENT_ID / GOOGLE_OAUTH_CLIENT_SECRET / GOOGLE_OAUTH_REDIRECT_URI:
        Google My Business OAuth2 client

    REFRESH_INTERVAL_HOURS: Periodic refresh cadence (default: 24)
    REFRESH_ADAPTER_TIMEOUT_SECONDS: Per-source budget inside one cycle (default: 60)
    REVIEWS_MIN_RATING_FLOOR: Ingestion-time rating floor (default: 4)
    REVIEWS_SOURCE_PRIORITY: Comma-separated source order, highest first
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from pathlib import Path
from dotenv import load_dotenv


# Load environment variables from .env file if present
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()


DEFAULT_SOURCE_PRIORITY = "places_api,dataforseo,yelp,facebook,google_my_business"


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """
    Get environment variable with optional default and required validation.

    Args:
        key: Environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        Environment variable value or default

    Raises:
        ValueError: If required=True and variable is not set
    """
    value = os.getenv(key, default)
    if required and value is None:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be an integer, got: {value}")


def get_env_float(key: str, default: float) -> float:
    """Get environment variable as float."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be a float, got: {value}")


def get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def get_env_list(key: str, default: str) -> List[str]:
    """Get a comma-separated environment variable as a list of stripped items."""
    value = os.getenv(key, default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class DatabaseConfig:
    """Persistence configuration (PostgreSQL or in-process memory)."""

    backend: str = field(default_factory=lambda: get_env("STORAGE_BACKEND", "postgres"))

    host: str = field(default_factory=lambda: get_env("DATABASE_HOST", "localhost"))
    port: int = field(default_factory=lambda: get_env_int("DATABASE_PORT", 5432))
    name: str = field(default_factory=lambda: get_env("DATABASE_NAME", "reviewsync"))
    user: str = field(default_factory=lambda: get_env("DATABASE_USER", "reviewsync_app"))
    password: str = field(default_factory=lambda: get_env("DATABASE_PASSWORD", ""))

    # Connection pool settings
    pool_min_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MIN", 1))
    pool_max_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MAX", 10))

    connect_timeout: int = field(default_factory=lambda: get_env_int("DATABASE_CONNECT_TIMEOUT", 10))

    # SSL mode: disable, allow, prefer, require, verify-ca, verify-full
    ssl_mode: str = field(default_factory=lambda: get_env("DATABASE_SSL_MODE", "prefer"))

    @property
    def connection_dict(self) -> dict:
        """Connection parameters as dictionary for psycopg2."""
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.name,
            "user": self.user,
            "password": self.password,
            "sslmode": self.ssl_mode,
            "connect_timeout": self.connect_timeout,
        }

    def __post_init__(self):
        """Validate configuration."""
        self.backend = self.backend.lower()
        if self.backend not in ("postgres", "memory"):
            raise ValueError(f"STORAGE_BACKEND must be 'postgres' or 'memory', got: {self.backend}")
        if self.backend == "postgres" and not self.password:
            raise ValueError("DATABASE_PASSWORD is required for the postgres backend")
        if self.pool_min_size > self.pool_max_size:
            raise ValueError("pool_min_size cannot exceed pool_max_size")


@dataclass
class PlacesConfig:
    """Google Places details API (synchronous, newest reviews only)."""

    api_key: str = field(default_factory=lambda: get_env("GOOGLE_PLACES_API_KEY", ""))
    place_id: str = field(default_factory=lambda: get_env("GOOGLE_PLACE_ID", ""))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.place_id)


@dataclass
class DataForSeoConfig:
    """DataForSEO business data API (async task queue, Basic auth)."""

    login: str = field(default_factory=lambda: get_env("DATAFORSEO_LOGIN", ""))
    password: str = field(default_factory=lambda: get_env("DATAFORSEO_PASSWORD", ""))
    base_url: str = field(default_factory=lambda: get_env(
        "DATAFORSEO_BASE_URL", "https://api.dataforseo.com/v3/business_data"
    ))
    yelp_alias: str = field(default_factory=lambda: get_env("YELP_BUSINESS_ALIAS", ""))

    # Reviews requested per task (DataForSEO bills per 10)
    google_depth: int = field(default_factory=lambda: get_env_int("DATAFORSEO_GOOGLE_DEPTH", 500))
    yelp_depth: int = field(default_factory=lambda: get_env_int("DATAFORSEO_YELP_DEPTH", 150))

    @property
    def is_configured(self) -> bool:
        return bool(self.login and self.password)


@dataclass
class FacebookConfig:
    """Facebook Graph API page ratings."""

    page_id: str = field(default_factory=lambda: get_env("FACEBOOK_PAGE_ID", ""))
    access_token: str = field(default_factory=lambda: get_env("FACEBOOK_ACCESS_TOKEN", ""))
    graph_version: str = field(default_factory=lambda: get_env("FACEBOOK_GRAPH_VERSION", "v18.0"))

    @property
    def is_configured(self) -> bool:
        return bool(self.page_id and self.access_token)


@dataclass
class GoogleOAuthConfig:
    """OAuth2 client used for the Google My Business listing API."""

    client_id: str = field(default_factory=lambda: get_env("GOOGLE_OAUTH_CLIENT_ID", ""))
    client_secret: str = field(default_factory=lambda: get_env("GOOGLE_OAUTH_CLIENT_SECRET", ""))
    redirect_uri: str = field(default_factory=lambda: get_env(
        "GOOGLE_OAUTH_REDIRECT_URI", "http://localhost:8000/api/oauth/callback"
    ))
    service_name: str = "google_my_business"

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class RefreshConfig:
    """Refresh cycle configuration."""

    enabled: bool = field(default_factory=lambda: get_env_bool("SCHEDULER_ENABLED", True))
    interval_hours: int = field(default_factory=lambda: get_env_int("REFRESH_INTERVAL_HOURS", 24))

    # Per-adapter budget for one fan-out (seconds)
    adapter_timeout: float = field(default_factory=lambda: get_env_float("REFRESH_ADAPTER_TIMEOUT_SECONDS", 60.0))

    # HTTP timeouts applied to every provider call
    http_connect_timeout: float = field(default_factory=lambda: get_env_float("HTTP_CONNECT_TIMEOUT", 10.0))
    http_read_timeout: float = field(default_factory=lambda: get_env_float("HTTP_READ_TIMEOUT", 30.0))

    min_rating_floor: int = field(default_factory=lambda: get_env_int("REVIEWS_MIN_RATING_FLOOR", 4))
    source_priority: List[str] = field(default_factory=lambda: get_env_list(
        "REVIEWS_SOURCE_PRIORITY", DEFAULT_SOURCE_PRIORITY
    ))

    @property
    def http_timeout(self) -> Tuple[float, float]:
        """(connect, read) tuple for requests."""
        return (self.http_connect_timeout, self.http_read_timeout)

    def __post_init__(self):
        """Validate configuration."""
        if self.interval_hours <= 0:
            raise ValueError("interval_hours must be positive")
        if self.adapter_timeout <= 0:
            raise ValueError("adapter_timeout must be positive")
        if not 1 <= self.min_rating_floor <= 5:
            raise ValueError("min_rating_floor must be between 1 and 5")
        if len(set(self.source_priority)) != len(self.source_priority):
            raise ValueError("source_priority contains duplicates")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: get_env(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    log_file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE"))

    # Structured logging
    json_logs: bool = field(default_factory=lambda: get_env_bool("LOG_JSON", False))


@dataclass
class Settings:
    """Main application settings container."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    places: PlacesConfig = field(default_factory=PlacesConfig)
    dataforseo: DataForSeoConfig = field(default_factory=DataForSeoConfig)
    facebook: FacebookConfig = field(default_factory=FacebookConfig)
    google_oauth: GoogleOAuthConfig = field(default_factory=GoogleOAuthConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_settings() -> Settings:
    """
    Load and validate all application settings.

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    return Settings()


# Global settings instance (lazy-loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Proxy class for lazy settings access."""

    def __getattr__(self, name):
        return getattr(get_settings(), name)


settings = _SettingsProxy()
