from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Runtime configuration read from the environment (and .env)."""

    # Gemini
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "GEMINI_API_KEY", "API_KEY"),
    )
    gemini_model: str = "gemini-2.5-flash"

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # HTTP / sessions
    request_timeout: float = 10.0
    session_ttl: float = 12 * 60 * 60  # seconds of inactivity before a token is dropped
    search_simulated_latency: float = 0.0

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: str = "*"

    model_config = SettingsConfigDict(extra="ignore", env_ignore_empty=True)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def supabase_configured(self) -> bool:
        """The hosted backend is only used when both URL and key are present."""
        return bool(
            self.supabase_url
            and self.supabase_anon_key
            and self.supabase_url.startswith("http")
        )
