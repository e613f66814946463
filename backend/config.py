"""
Configuration and settings for the Teamera backend.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid. Not recoverable."""


class Settings(BaseSettings):
    """Environment-backed settings for the API and the session manager."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Supabase project (all three are required)
    supabase_url: str = Field(min_length=1, validation_alias="SUPABASE_URL")
    supabase_service_key: str = Field(min_length=1, validation_alias="SUPABASE_SERVICE_KEY")
    supabase_anon_key: str = Field(min_length=1, validation_alias="SUPABASE_ANON_KEY")

    # Base URL the OAuth and password-reset flows redirect back to
    site_url: str = Field(default="http://localhost:5173", validation_alias="SITE_URL")

    # Session manager timings
    profile_fetch_timeout_seconds: float = Field(
        default=5.0, validation_alias="PROFILE_FETCH_TIMEOUT_SECONDS"
    )
    signup_reconcile_delay_seconds: float = Field(
        default=0.1, validation_alias="SIGNUP_RECONCILE_DELAY_SECONDS"
    )
    user_lookup_retry_delay_seconds: float = Field(
        default=0.3, validation_alias="USER_LOOKUP_RETRY_DELAY_SECONDS"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="TEAMERA_USE_IN_MEMORY_BACKENDS"
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


def _missing_fields(exc: ValidationError) -> list[str]:
    names = []
    for error in exc.errors():
        if error.get("type") in ("missing", "string_too_short"):
            names.extend(str(part) for part in error.get("loc", ()))
    return names


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance. Raises ConfigurationError when incomplete."""
    try:
        return Settings()
    except ValidationError as exc:
        missing = _missing_fields(exc)
        if missing:
            raise ConfigurationError(
                "Missing Supabase environment variables: "
                + ", ".join(missing)
                + ". Please check your .env file."
            ) from exc
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
