from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os
from dotenv import load_dotenv

from carsearch.services.readiness import ReadinessOptions

# Load environment variables from .env file
load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application Settings
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Database Settings
    DATABASE_URL: Optional[str] = Field(default=os.getenv("DATABASE_URL"), validate_default=True)

    # OpenAI Settings
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    EXTRACTION_MODEL: str = "gpt-4o-mini"
    COMPOSER_MODEL: str = "gpt-4o"

    # Per-call timeouts (seconds). Extraction timing out degrades, the others fail the turn.
    EXTRACTION_TIMEOUT_SECONDS: float = 8.0
    EXTRACTION_RETRY_BACKOFF_SECONDS: float = 0.5
    SEARCH_TIMEOUT_SECONDS: float = 5.0
    COMPOSE_TIMEOUT_SECONDS: float = 45.0

    # Search Settings (the hard ceiling lives in services/query_builder.py)
    SEARCH_RESULT_CAP: int = 5

    # Readiness Policy
    READINESS_PRIMARY_FIELDS: List[str] = ["body_type", "price_max", "brand"]
    MAX_CLARIFYING_TURNS: int = 3

    # Streaming
    STREAM_MAX_PENDING_EVENTS: int = 64

    # Validate database URL format
    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> str:
        if not v:
            raise ValueError("DATABASE_URL is not set in environment variables")
        if not v.startswith(("postgresql://", "postgresql+psycopg://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must start with postgresql:// or postgresql+psycopg://")
        # Always talk to Postgres through the async psycopg driver
        for prefix in ("postgresql+asyncpg://", "postgresql://"):
            if v.startswith(prefix):
                v = v.replace(prefix, "postgresql+psycopg://", 1)
        return v

    @property
    def readiness_options(self) -> ReadinessOptions:
        return ReadinessOptions(
            primary_fields=frozenset(self.READINESS_PRIMARY_FIELDS),
            max_clarifying_turns=self.MAX_CLARIFYING_TURNS,
        )

# Create settings instance
settings = Settings()
