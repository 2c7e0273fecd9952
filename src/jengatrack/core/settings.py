"""
JengaTrack Settings

Environment-driven configuration for the backend.

Two values are required and have no defaults: the database endpoint
(DATABASE_URL) and the service-role credential (SUPABASE_SERVICE_ROLE_KEY).
Everything else falls back to development-friendly defaults.
"""

import functools

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_VARIABLES = ("DATABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "jengatrack"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Hosted database
    DATABASE_URL: str = Field(min_length=1)
    SUPABASE_SERVICE_ROLE_KEY: str = Field(min_length=1)

    # WhatsApp gateway
    WHATSAPP_PROVIDER: str = "stub"  # twilio, stub
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_WHATSAPP_NUMBER: str = "whatsapp:+14155238886"
    TWILIO_WEBHOOK_SECRET: str | None = None
    VALIDATE_TWILIO_SIGNATURE: bool = False
    PUBLIC_WEBHOOK_URL: str | None = None

    # Replies
    DASHBOARD_URL: str = "https://jengatrack.app"
    DEFAULT_CURRENCY: str = "UGX"

    # Interaction log
    REDIS_URL: str | None = None
    INTERACTION_LOG_CAPACITY: int = 500

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN)

    @property
    def webhook_secret(self) -> str | None:
        return self.TWILIO_WEBHOOK_SECRET or self.TWILIO_AUTH_TOKEN


@functools.lru_cache()
def get_settings() -> Settings:
    """
    Load settings (cached).

    Raises:
        ConfigurationError: if DATABASE_URL or SUPABASE_SERVICE_ROLE_KEY is unset
    """
    try:
        return Settings()
    except ValidationError as e:
        missing = [
            str(err["loc"][0])
            for err in e.errors()
            if err.get("type") in ("missing", "string_too_short") and err.get("loc")
        ]
        if missing:
            raise ConfigurationError(
                "Missing database credentials. "
                f"Set {' and '.join(REQUIRED_VARIABLES)} in the environment or .env file "
                f"(missing: {', '.join(missing)})"
            ) from e
        raise ConfigurationError(f"Invalid configuration: {e}") from e
