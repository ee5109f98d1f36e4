"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticket-triage-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tickets",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Job Queue ==========
    queue_backend: str = Field(
        default="memory",
        description="Triage job queue backend (memory or redis)"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the triage job queue"
    )
    triage_queue_name: str = Field(default="ticket", description="Queue name / key prefix")

    # ========== Triage Worker ==========
    triage_worker_enabled: bool = Field(
        default=True,
        description="Start the triage worker pool with the application"
    )
    triage_worker_concurrency: int = Field(
        default=4,
        description="Number of concurrent triage job handlers",
        ge=1,
        le=64
    )
    triage_max_attempts: int = Field(
        default=3,
        description="Delivery attempts per triage job before it is dead-lettered",
        ge=1
    )
    triage_backoff_base_seconds: float = Field(
        default=1.0,
        description="Base delay of the exponential retry backoff",
        ge=0.0
    )
    triage_dead_job_retention: int = Field(
        default=5000,
        description="Dead jobs kept for inspection; older ones are discarded",
        ge=1
    )
    triage_stalled_check_interval: int = Field(
        default=30,
        description="Seconds between stalled-job recovery sweeps",
        ge=1
    )
    triage_stalled_job_timeout: int = Field(
        default=300,
        description="Seconds a delivered job may stay un-acknowledged before it is re-queued",
        ge=1
    )

    # ========== LLM Settings ==========
    llm_provider: str = Field(
        default="openai",
        description="Model client used for triage (openai, zai or mock)"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    zai_api_key: Optional[str] = Field(default=None, description="Z.AI API key")
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model used for triage")
    llm_temperature: float = Field(
        default=0.2,
        description="Sampling temperature for triage (low for structured output)",
        ge=0.0,
        le=2.0
    )
    llm_max_tokens: int = Field(
        default=1024,
        description="Max tokens for a triage completion",
        ge=1,
        le=8000
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single model call",
        gt=0
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("queue_backend")
    @classmethod
    def validate_queue_backend(cls, v: str) -> str:
        """Ensure queue backend is supported."""
        allowed = {"memory", "redis"}
        if v not in allowed:
            raise ValueError(f"queue_backend must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Ensure LLM provider is supported."""
        allowed = {"openai", "zai", "mock"}
        if v not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class TriageCategory(str, Enum):
    """Categories a ticket can be triaged into."""
    BILLING = "Billing"
    TECHNICAL = "Technical"
    FEATURE_REQUEST = "Feature Request"


class UrgencyLevel(str, Enum):
    """Ticket urgency levels."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ReplyAuthor(str, Enum):
    """Provenance of the current response draft."""
    AI = "AI"
    HUMAN_AI = "HUMAN_AI"


class Actor(str, Enum):
    """Who is performing a lifecycle action."""
    HUMAN = "HUMAN"
    SYSTEM = "SYSTEM"


class TicketSortField(str, Enum):
    """Sort keys of the ticket listing."""
    CREATED_AT = "created_at"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class WorkerProcessStatus(str, Enum):
    """Outcome of a single triage processing attempt."""
    INFO = "INFO"
    FAILED = "FAILED"
    INVALID_RESPONSE = "INVALID_RESPONSE"


# ========== Lifecycle and triage constants ==========

# Statuses in which the draft may change and the ticket may be resolved
EDITABLE_STATUSES = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS)

DEFAULT_CATEGORY = TriageCategory.TECHNICAL
DEFAULT_URGENCY = UrgencyLevel.MEDIUM
DEFAULT_SENTIMENT = 5
SENTIMENT_MIN = 1
SENTIMENT_MAX = 10

TITLE_MAX_LENGTH = 255
CONTENT_MAX_LENGTH = 50_000

TRIAGE_DONE_TAG = "triage-done"
