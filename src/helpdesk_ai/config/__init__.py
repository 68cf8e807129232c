"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Every threshold the triage pipeline consults (confidence cut-offs, SLA hours,
vector dimension, hybrid weight, similarity threshold) is supplied here from
the environment rather than hardcoded in the services.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-ai", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Managed Search Backend (Milvus) ==========
    milvus_uri: str = Field(
        default="",
        description="Milvus / Zilliz Cloud URI; empty disables the managed backend"
    )
    milvus_token: str = Field(default="", description="Milvus / Zilliz Cloud API token")
    milvus_collection_name: str = Field(
        default="kb_articles",
        description="Milvus collection holding article vectors"
    )
    backend_probe_ttl_seconds: float = Field(
        default=300.0,
        description="How long a backend availability answer is trusted",
        ge=0
    )
    backend_probe_timeout_seconds: float = Field(
        default=2.0,
        description="Upper bound on a single backend availability probe",
        gt=0,
        le=30
    )

    # ========== Embeddings & Retrieval ==========
    embedding_dimension: int = Field(
        default=384,
        description="Embedding vector dimension",
        ge=16
    )
    embedding_model_tag: str = Field(
        default="local-embeddings-v1",
        description="Model tag stored with each article embedding"
    )
    similarity_threshold: float = Field(
        default=0.3,
        description="Minimum cosine similarity for local vector matches",
        ge=-1.0,
        le=1.0
    )
    hybrid_weight: float = Field(
        default=0.7,
        description="Weight of the vector score in hybrid ranking",
        ge=0.0,
        le=1.0
    )
    max_context_tokens: int = Field(
        default=8000,
        description="Token budget for the drafting context",
        ge=1
    )
    chunk_threshold: int = Field(
        default=2000,
        description="Article content length above which chunk embeddings are stored",
        ge=1
    )
    chunk_size: int = Field(default=1000, description="Character size for article chunks", ge=1)
    chunk_overlap: int = Field(default=100, description="Overlap between article chunks", ge=0)
    stored_content_limit: int = Field(
        default=10000,
        description="Max characters of article content kept alongside the embedding",
        ge=1
    )
    embedding_batch_pause_seconds: float = Field(
        default=0.1,
        description="Pause between articles during bulk embedding generation",
        ge=0
    )
    retrieval_limit: int = Field(
        default=5,
        description="Articles retrieved per ticket during triage",
        ge=1,
        le=20
    )

    # ========== LLM Provider ==========
    llm_provider: str = Field(
        default="stub",
        description="Triage provider: 'stub' (keyword rules) or 'openai'"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model for classify/draft")
    llm_temperature: float = Field(
        default=0.2,
        description="Default temperature for LLM",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=1200,
        description="Default max tokens for LLM generation",
        ge=1,
        le=8000
    )
    prompt_version: str = Field(default="v1", description="Prompt version recorded on suggestions")

    # ========== Triage Decisions ==========
    auto_close_enabled: bool = Field(default=True, description="Allow auto-closing tickets")
    auto_close_threshold: float = Field(
        default=0.8,
        description="Confidence at or above which a ticket is auto-closed",
        ge=0.0,
        le=1.0
    )
    low_confidence_threshold: float = Field(
        default=0.5,
        description="Confidence below which a ticket is escalated to an admin",
        ge=0.0,
        le=1.0
    )
    critical_confidence_threshold: float = Field(
        default=0.3,
        description="Confidence below which a ticket becomes urgent",
        ge=0.0,
        le=1.0
    )
    triage_max_retries: int = Field(default=3, description="Workflow retry attempts", ge=0)
    triage_batch_size: int = Field(default=5, description="Tickets triaged concurrently", ge=1)

    # ========== Escalation ==========
    escalation_enabled: bool = Field(default=True, description="Enable the escalation rule engine")
    sla_hours: float = Field(default=24.0, description="Hours before an unresolved ticket breaches SLA", gt=0)
    escalation_config_path: Path = Field(
        default=Path("escalation_config.yaml"),
        description="Optional YAML file overriding escalation thresholds"
    )
    escalation_sweep_interval: int = Field(
        default=300,
        description="Seconds between periodic escalation sweeps",
        ge=10
    )
    escalation_sweep_limit: int = Field(
        default=100,
        description="Max tickets inspected per sweep",
        ge=1
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving user notifications"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )
    notification_queue_size: int = Field(
        default=1000,
        description="Bounded size of the outbound notification queue",
        ge=1
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
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Ensure the provider is one we can build."""
        allowed = {"stub", "openai"}
        if v not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        """Confidence thresholds must be ordered critical <= low <= auto-close."""
        if not (
            self.critical_confidence_threshold
            <= self.low_confidence_threshold
            <= self.auto_close_threshold
        ):
            raise ValueError(
                "thresholds must satisfy critical <= low <= auto_close"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str):
    """Ticket categories predicted by the classifier."""
    BILLING = "billing"
    TECH = "tech"
    SHIPPING = "shipping"
    OTHER = "other"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    TRIAGED = "triaged"
    WAITING_HUMAN = "waiting_human"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ArticleStatus(str):
    """Knowledge-base article states."""
    DRAFT = "draft"
    PUBLISHED = "published"


class UserRole(str):
    """Roles in the user directory."""
    ADMIN = "admin"
    AGENT = "agent"
    USER = "user"


class AuthorType(str):
    """Who wrote a ticket reply."""
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class SearchMethod(str):
    """Retrieval tier that produced a result set."""
    BACKEND_VECTOR = "backend-vector"
    BACKEND_HYBRID = "backend-hybrid"
    BACKEND_TEXT = "backend-text"
    VECTOR = "vector"
    HYBRID = "hybrid"
    KEYWORD = "keyword"


class FeedbackAction(str):
    """Agent feedback on a suggestion."""
    ACCEPT = "accept"
    REJECT = "reject"
    MODIFY = "modify"


class LLMProviderName(str):
    """Provider recorded in suggestion model info."""
    STUB = "stub"
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"


class AuditActor(str):
    """Actors written to the audit log."""
    SYSTEM = "system"
    AGENT = "agent"


# ========== Lists for validation ==========

VALID_CATEGORIES = [
    TicketCategory.BILLING, TicketCategory.TECH,
    TicketCategory.SHIPPING, TicketCategory.OTHER
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.TRIAGED, TicketStatus.WAITING_HUMAN,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
VALID_PRIORITIES = [
    TicketPriority.LOW, TicketPriority.MEDIUM,
    TicketPriority.HIGH, TicketPriority.URGENT
]
VALID_FEEDBACK_ACTIONS = [FeedbackAction.ACCEPT, FeedbackAction.REJECT, FeedbackAction.MODIFY]
VALID_PROVIDERS = [
    LLMProviderName.STUB, LLMProviderName.OPENAI,
    LLMProviderName.GEMINI, LLMProviderName.CLAUDE
]
CLOSED_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
