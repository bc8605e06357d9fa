from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Literal, Optional
import os

from trailkeeper.core.clock import DEFAULT_TTL_SECONDS
from trailkeeper.core.exceptions import ConfigurationError


class Config(BaseSettings):
    # Self-signed token configuration
    token_secret: str = Field(default="", alias="TOKEN_SECRET")
    self_signed_token_max_age_seconds: int = Field(
        default=0, alias="SELF_SIGNED_TOKEN_MAX_AGE_SECONDS"
    )

    # Draft lifecycle
    draft_ttl_seconds: int = Field(default=DEFAULT_TTL_SECONDS, alias="DRAFT_TTL_SECONDS")
    allow_free_status_overwrite: bool = Field(
        default=False, alias="ALLOW_FREE_STATUS_OVERWRITE"
    )
    enable_debug_listing: bool = Field(default=True, alias="ENABLE_DEBUG_LISTING")

    # Storage backend
    store_backend: Literal["file", "sql"] = Field(default="file", alias="DRAFT_STORE_BACKEND")
    data_file_path: str = Field(default="data/draftTrails.json", alias="DRAFT_DATA_FILE")
    database_url: str = Field(
        default="sqlite+aiosqlite:///data/draft_trails.db", alias="DB_URL"
    )
    db_auto_create: bool = Field(default=True, alias="DB_AUTO_CREATE")
    store_timeout_seconds: float = Field(default=5.0, alias="STORE_TIMEOUT_SECONDS")

    # Externally-issued identity tokens
    external_token_trust: Literal["unverified", "shared_secret", "jwks"] = Field(
        default="unverified", alias="EXTERNAL_TOKEN_TRUST"
    )
    external_token_secret: str = Field(default="", alias="EXTERNAL_TOKEN_SECRET")
    external_jwks_url: str = Field(default="", alias="EXTERNAL_JWKS_URL")
    external_jwks_timeout_seconds: float = Field(
        default=5.0, alias="EXTERNAL_JWKS_TIMEOUT_SECONDS"
    )
    external_token_algorithms: List[str] = Field(
        default=["RS256"], alias="EXTERNAL_TOKEN_ALGORITHMS"
    )
    external_token_audience: Optional[str] = Field(default=None, alias="EXTERNAL_TOKEN_AUDIENCE")
    external_token_issuer: Optional[str] = Field(default=None, alias="EXTERNAL_TOKEN_ISSUER")

    # HTTP
    cors_origins: List[str] = Field(
        default=["http://localhost", "http://localhost:5173"], alias="CORS_ORIGINS"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    is_production: bool = (
        os.getenv("ENVIRONMENT", "development").lower() == "production"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        populate_by_name = True
        extra = "ignore"

    def validate_for_startup(self) -> "Config":
        """
        Fail closed on settings that would leave the service insecure or broken.

        Raises:
            ConfigurationError: On the first invalid setting found
        """
        if not self.token_secret:
            raise ConfigurationError("TOKEN_SECRET must be set")
        if self.draft_ttl_seconds <= 0:
            raise ConfigurationError("DRAFT_TTL_SECONDS must be positive")
        if self.store_timeout_seconds <= 0:
            raise ConfigurationError("STORE_TIMEOUT_SECONDS must be positive")
        if self.external_jwks_timeout_seconds <= 0:
            raise ConfigurationError("EXTERNAL_JWKS_TIMEOUT_SECONDS must be positive")
        if self.external_token_trust == "shared_secret" and not self.external_token_secret:
            raise ConfigurationError(
                "EXTERNAL_TOKEN_SECRET is required when EXTERNAL_TOKEN_TRUST=shared_secret"
            )
        if self.external_token_trust == "jwks" and not self.external_jwks_url:
            raise ConfigurationError(
                "EXTERNAL_JWKS_URL is required when EXTERNAL_TOKEN_TRUST=jwks"
            )
        return self


def get_config() -> Config:
    """Load settings from the environment and validate them."""
    return Config().validate_for_startup()
