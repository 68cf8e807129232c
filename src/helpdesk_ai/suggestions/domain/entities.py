"""
Suggestion Domain Entities
==========================

The stored output of one triage run and the agent feedback it collects.

Prediction fields (category, articles, draft, confidence, model info) are
fixed once the suggestion is created. Only the auto-closed flag and the
feedback list change afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from helpdesk_ai.config import (
    FeedbackAction,
    VALID_CATEGORIES,
    VALID_FEEDBACK_ACTIONS,
    VALID_PROVIDERS,
)
from helpdesk_ai.core.exceptions import ValidationException

AUTO_CLOSE_MIN_CONFIDENCE = 0.7
MAX_ARTICLES = 10
MIN_DRAFT_LENGTH = 10
MAX_DRAFT_LENGTH = 5000
MAX_LATENCY_MS = 300_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ModelInfo:
    """Which provider and model produced a suggestion, and how long it took."""
    provider: str
    model: str
    prompt_version: str
    latency_ms: int

    def __post_init__(self):
        """Validate model info."""
        if self.provider not in VALID_PROVIDERS:
            raise ValidationException(f"Invalid provider: {self.provider}")
        if not self.model or len(self.model) > 100:
            raise ValidationException("Model name must be 1-100 characters")
        if not self.prompt_version or len(self.prompt_version) > 50:
            raise ValidationException("Prompt version must be 1-50 characters")
        if not 0 <= self.latency_ms <= MAX_LATENCY_MS:
            raise ValidationException(f"Latency must be between 0 and {MAX_LATENCY_MS} ms")


@dataclass
class SuggestionFeedback:
    """One agent's verdict on a suggestion."""
    agent_id: str
    action: str
    comment: Optional[str] = None
    edited_reply: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Validate feedback action."""
        if self.action not in VALID_FEEDBACK_ACTIONS:
            raise ValidationException(f"Invalid feedback action: {self.action}")


@dataclass
class AgentSuggestion:
    """
    AI-generated triage suggestion for one ticket.

    Invariant: ``auto_closed`` implies ``confidence >= 0.7``.
    """
    ticket_id: str
    predicted_category: str
    article_ids: List[str]
    draft_reply: str
    confidence: float
    model_info: ModelInfo
    auto_closed: bool = False
    feedback: List[SuggestionFeedback] = field(default_factory=list)
    id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Validate suggestion fields and normalize confidence."""
        if not self.ticket_id:
            raise ValidationException("Suggestion requires a ticket id")
        if self.predicted_category not in VALID_CATEGORIES:
            raise ValidationException(f"Invalid category: {self.predicted_category}")
        if len(self.article_ids) > MAX_ARTICLES:
            raise ValidationException(f"A suggestion references at most {MAX_ARTICLES} articles")
        if not MIN_DRAFT_LENGTH <= len(self.draft_reply) <= MAX_DRAFT_LENGTH:
            raise ValidationException(
                f"Draft reply must be {MIN_DRAFT_LENGTH}-{MAX_DRAFT_LENGTH} characters"
            )
        if not 0.0 <= self.confidence <= 1.0:
            raise ValidationException("Confidence must be between 0 and 1")
        self.confidence = round(self.confidence, 3)
        if self.auto_closed and self.confidence < AUTO_CLOSE_MIN_CONFIDENCE:
            raise ValidationException(
                f"Auto-closed suggestions require confidence >= {AUTO_CLOSE_MIN_CONFIDENCE}",
                {"confidence": self.confidence}
            )

    @property
    def confidence_level(self) -> str:
        if self.confidence >= 0.8:
            return "high"
        if self.confidence >= 0.5:
            return "medium"
        return "low"

    def mark_auto_closed(self) -> None:
        if self.confidence < AUTO_CLOSE_MIN_CONFIDENCE:
            raise ValidationException(
                f"Auto-closed suggestions require confidence >= {AUTO_CLOSE_MIN_CONFIDENCE}",
                {"confidence": self.confidence}
            )
        self.auto_closed = True
        self.updated_at = _utcnow()

    def add_feedback(self, feedback: SuggestionFeedback) -> None:
        self.feedback.append(feedback)
        self.updated_at = _utcnow()

    @property
    def latest_feedback(self) -> Optional[SuggestionFeedback]:
        return self.feedback[-1] if self.feedback else None

    @property
    def was_accepted(self) -> bool:
        return any(f.action in (FeedbackAction.ACCEPT, FeedbackAction.MODIFY) for f in self.feedback)
