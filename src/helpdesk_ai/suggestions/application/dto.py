"""
Suggestion Application DTOs
===========================

Pydantic models for suggestion metrics and list filters, and the result
of applying agent feedback.
"""

from dataclasses import dataclass
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from helpdesk_ai.suggestions.domain import AgentSuggestion
from helpdesk_ai.tickets.domain import Ticket

PerformanceRating = Literal["excellent", "good", "fair", "poor", "no_data"]


class CategoryBreakdown(BaseModel):
    """Per-category suggestion statistics."""
    count: int = Field(..., ge=0)
    average_confidence: float = Field(..., ge=0.0, le=1.0)
    auto_close_rate: float = Field(..., ge=0.0, le=1.0)


class SuggestionMetrics(BaseModel):
    """Aggregate suggestion quality over a timeframe."""
    total_suggestions: int = Field(..., ge=0)
    auto_closed_count: int = Field(..., ge=0)
    auto_close_rate: float = Field(..., ge=0.0, le=1.0)
    average_confidence: float = Field(..., ge=0.0, le=1.0)
    category_breakdown: Dict[str, CategoryBreakdown] = Field(default_factory=dict)
    feedback_counts: Dict[str, int] = Field(default_factory=dict)
    performance_rating: PerformanceRating
    timeframe_hours: Optional[float] = Field(None, description="None means all time")


class SuggestionListQuery(BaseModel):
    """Filters for listing suggestions."""
    auto_closed: Optional[bool] = None
    min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    limit: int = Field(default=100, ge=1, le=1000)

    @model_validator(mode="after")
    def validate_range(self) -> "SuggestionListQuery":
        """Ensure min_confidence does not exceed max_confidence."""
        if (
            self.min_confidence is not None
            and self.max_confidence is not None
            and self.min_confidence > self.max_confidence
        ):
            raise ValueError("min_confidence cannot exceed max_confidence")
        return self


@dataclass
class FeedbackResult:
    """Ticket and suggestion as stored after an accept or reject."""
    ticket: Ticket
    suggestion: AgentSuggestion
