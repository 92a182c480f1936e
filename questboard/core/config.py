"""Configuration management for questboard."""

from enum import StrEnum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryPointPolicy(StrEnum):
    """How a retry adjusts the points already awarded to a task."""

    ADDITIVE = "ADDITIVE"  # previous award plus a flat increment
    RECOMPUTE = "RECOMPUTE"  # tariff award recomputed from the parent quest


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/questboard.db", description="Path to the SQLite database file")

    # OpenRouter Configuration
    openrouter_api_key: str | None = Field(default=None, description="OpenRouter API key for vision model access")

    # Identity provider (Supabase-compatible auth API)
    supabase_url: str = Field(default="http://127.0.0.1:54321", description="Identity provider base URL")
    supabase_anon_key: str | None = Field(default=None, description="Public API key sent with token lookups")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Redis Configuration (optional)
    redis_url: str | None = Field(default=None, description="Redis connection URL (e.g., redis://localhost:6379)")

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value

    # Vision Model Configuration
    model_id: str = Field(
        default="openai/gpt-4o-mini",
        description="Vision-capable model ID on OpenRouter used to judge proof images",
    )
    model_provider: str | None = Field(default=None, description="Pin OpenRouter routing to a single provider")
    classifier_timeout_seconds: float = Field(
        default=30.0, description="Upper bound on a single classification call (in seconds)"
    )
    classifier_max_tokens: int = Field(default=300, description="Maximum tokens the classifier may generate")

    # Points tariff
    main_quest_points: int = Field(default=5, description="Points awarded for a verified task under a main quest")
    side_quest_points: int = Field(default=2, description="Points awarded for a verified task under a side quest")

    # Retry chances
    retry_allowance_per_quarter: int = Field(
        default=3, description="Number of verification retries allowed per user per quarter"
    )
    retry_point_policy: RetryPointPolicy = Field(
        default=RetryPointPolicy.ADDITIVE, description="How a successful retry adjusts the task's award"
    )
    retry_point_increment: int = Field(
        default=15, description="Flat bonus added to the previous award under the ADDITIVE policy"
    )

    # Upload limits
    max_proof_image_bytes: int = Field(default=5 * 1024 * 1024, description="Largest accepted proof image (bytes)")

    # Rate Limiting
    verification_rate_limit_per_hour: int = Field(
        default=20, description="Maximum verify/retry calls per user per hour"
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_CREATED: int = 201
    HTTP_BAD_REQUEST: int = 400
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_NOT_FOUND: int = 404
    HTTP_SERVER_ERROR: int = 500

    # Vision classifier sampling (kept fixed, not a caller knob)
    CLASSIFIER_TEMPERATURE: float = 0.7

    # Rate Limiting Windows
    VERIFICATION_RATE_LIMIT_WINDOW_SECONDS: int = 3600

    # Progress bounds
    PROGRESS_MIN: int = 0
    PROGRESS_MAX: int = 100

    # Scoreboard
    SCOREBOARD_TOP_TASKS: int = 5

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 500

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
