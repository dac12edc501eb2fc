"""
Sweetlease Configuration
Pydantic Settings for environment-based configuration.
Single source of truth for all app settings.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Use .env file for local development, env vars for production.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # App Identity
    # ==========================================================================
    app_name: str = "Sweetlease"
    app_version: str = "1.0.0"
    app_description: str = """
## Sweetlease - AI Lease Extractor

Upload a lease PDF and get a structured summary: parties, key dates, rent,
break clause, permitted use and the critical dates you need to act on.

- 📄 **Extraction** - Page-ordered text with a confidence estimate
- 🤖 **Analysis** - Schema-constrained Gemini extraction
- 💬 **Ask the lease** - Answers grounded in the uploaded document only
- 📅 **Reminders** - Download .ics invites ahead of critical dates
"""
    debug: bool = False
    enable_docs: bool = True

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8000

    # ==========================================================================
    # Database
    # ==========================================================================
    database_url: str = "sqlite+aiosqlite:///./sweetlease.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_to_async_driver(cls, v: str) -> str:
        """A plain sqlite:// URL is upgraded to the aiosqlite driver."""
        if v and isinstance(v, str):
            if v.startswith("sqlite://") and "+aiosqlite" not in v:
                v = v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v

    # ==========================================================================
    # Uploads
    # ==========================================================================
    max_upload_size_mb: int = 20

    # ==========================================================================
    # Generative AI (Google Gemini)
    # ==========================================================================
    gemini_api_key: str = ""
    google_ai_api_key: str = ""  # Alias for gemini_api_key
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_timeout_seconds: float = 60.0

    @model_validator(mode="after")
    def resolve_gemini_alias(self) -> "Settings":
        if not self.gemini_api_key and self.google_ai_api_key:
            self.gemini_api_key = self.google_ai_api_key
        return self

    # ==========================================================================
    # Extraction confidence heuristic (text-layer PDFs carry no OCR score)
    # ==========================================================================
    confidence_floor: float = 95.0
    confidence_ceiling: float = 99.0

    # ==========================================================================
    # Subscription tiers
    # ==========================================================================
    free_tier_limit: int = 3

    # ==========================================================================
    # In-memory analysis sessions
    # ==========================================================================
    max_active_sessions: int = 500

    # ==========================================================================
    # Authentication
    # ==========================================================================
    session_ttl_hours: int = 24 * 14
    # Only enable behind an auth proxy that strips client-supplied X-User-ID
    trust_proxy_user_header: bool = False

    # ==========================================================================
    # Observability
    # ==========================================================================
    log_level: str = "INFO"
    log_json_format: bool = False
    log_file: str = "logs/sweetlease.log"

    # ==========================================================================
    # Deployment
    # ==========================================================================
    cors_origins: str = ""  # Comma-separated list of allowed origins. Leave empty for secure defaults.

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS origins into a list with secure defaults.
        - If explicit origins set: use those
        - If empty: restrict to localhost only
        """
        if self.cors_origins:
            if self.cors_origins == "*":
                return ["*"]
            return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

        return [
            "http://localhost:8000",
            "http://127.0.0.1:8000",
            "http://localhost:5173",  # Vite dev server
            "http://127.0.0.1:5173",
        ]

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def ai_configured(self) -> bool:
        return bool(self.gemini_api_key)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Use dependency injection: Depends(get_settings)
    """
    return Settings()
