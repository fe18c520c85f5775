"""Application settings using Pydantic Settings for typed configuration.

This module centralizes all configuration and provides type-safe access to settings.
Settings are loaded from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    env_name: str = Field(default="development", alias="ENV_NAME")

    # Database
    database_url: str = Field(alias="DATABASE_URL")

    # Admin panel
    session_secret_key: str = Field(alias="SESSION_SECRET_KEY")
    admin_username: str = Field(alias="ADMIN_USERNAME")
    admin_password: str = Field(alias="ADMIN_PASSWORD")

    # CORS
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # Firebase / OAuth
    firebase_project_id: str | None = Field(
        default=None, alias="FIREBASE_PROJECT_ID"
    )
    firebase_api_key: str | None = Field(default=None, alias="FIREBASE_API_KEY")
    oauth_redirect_uri: str = Field(
        default="verigate://auth/callback", alias="OAUTH_REDIRECT_URI"
    )
    oauth_provider_id: str = Field(default="google.com", alias="OAUTH_PROVIDER_ID")

    # Identity orchestration
    provisioning_max_attempts: int = Field(
        default=3, alias="PROVISIONING_MAX_ATTEMPTS", ge=1, le=10
    )
    provisioning_backoff_ms: int = Field(
        default=1000, alias="PROVISIONING_BACKOFF_MS", ge=0
    )
    oauth_poll_max_attempts: int = Field(
        default=5, alias="OAUTH_POLL_MAX_ATTEMPTS", ge=1, le=10
    )
    oauth_poll_interval_ms: int = Field(
        default=1500, alias="OAUTH_POLL_INTERVAL_MS", ge=0
    )
    identity_recheck_seconds: float = Field(
        default=30.0, alias="IDENTITY_RECHECK_SECONDS", ge=0
    )

    @computed_field
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        origins = []
        for o in self.cors_origins.split(","):
            trimmed = o.strip()
            if trimmed:
                origins.append(trimmed)
        return origins

    @computed_field
    @property
    def is_secure_cookie(self) -> bool:
        """Whether the admin panel session cookie gets the Secure flag."""
        return self.env_name.lower() not in {"dev", "development", "local"}

    @computed_field
    @property
    def provisioning_backoff(self) -> float:
        """Linear provisioning backoff step in seconds."""
        return self.provisioning_backoff_ms / 1000

    @computed_field
    @property
    def oauth_poll_interval(self) -> float:
        """Fixed OAuth callback polling interval in seconds."""
        return self.oauth_poll_interval_ms / 1000

    @computed_field
    @property
    def identity_toolkit_base_url(self) -> str:
        """Google Identity Toolkit API base URL."""
        return "https://identitytoolkit.googleapis.com"

    @computed_field
    @property
    def secure_token_base_url(self) -> str:
        """Google Secure Token API base URL (refresh token exchange)."""
        return "https://securetoken.googleapis.com"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
