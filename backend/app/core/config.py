"""
Application configuration settings.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "TestDesk API"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:9002",
    ]

    # Security
    # Tokens are issued by the session service; this API only verifies them.
    JWT_SECRET_KEY: str = Field(..., description="JWT signing secret key (required)")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Test lifecycle policy
    # Reverting a test to draft discards every session recorded for it, so by
    # default only admins may do it.
    OWNER_CAN_REVERT_TO_DRAFT: bool = False
    # What happens to a draft test's questions when the test is deleted:
    # "cascade" deletes them in the same transaction, "restrict" refuses the
    # delete while questions remain.
    QUESTION_DELETE_POLICY: Literal["cascade", "restrict"] = "cascade"

    # Count reconciler
    COUNT_RECONCILER_MAX_ATTEMPTS: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts per question mutation before a version conflict "
        "is surfaced as a storage error",
    )

    # Bulk import
    IMPORT_ONE_BASED_INDEX: bool = Field(
        default=True,
        description="Whether numeric correct-option columns in imported rows "
        "count from 1 (spreadsheet convention) instead of 0",
    )
    IMPORT_MAX_ROWS: int = Field(default=500, ge=1)

    # Question editor autosave
    AUTOSAVE_DEBOUNCE_SECONDS: float = Field(default=1.5, gt=0.0)

    # Sentry Error Tracking
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking (leave empty to disable)",
    )
    SENTRY_TRACES_SAMPLE_RATE: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry traces sample rate (0.0-1.0, 0.1 = 10% of transactions)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )


# mypy doesn't understand that pydantic_settings loads required fields from env vars
settings = Settings()  # type: ignore[call-arg]
