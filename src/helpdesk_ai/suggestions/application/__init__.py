"""
Suggestion Application Layer
============================

Contains:
- Services: SuggestionService
- DTOs: SuggestionMetrics, CategoryBreakdown, SuggestionListQuery, FeedbackResult
- Repository interface: ISuggestionRepository
"""

from helpdesk_ai.suggestions.application.dto import (
    CategoryBreakdown,
    FeedbackResult,
    SuggestionMetrics,
    SuggestionListQuery,
)
from helpdesk_ai.suggestions.application.services import (
    ISuggestionRepository,
    SuggestionService,
    performance_rating,
)

__all__ = [
    # DTOs
    "CategoryBreakdown",
    "FeedbackResult",
    "SuggestionMetrics",
    "SuggestionListQuery",
    # Services
    "SuggestionService",
    "performance_rating",
    # Repository Interfaces
    "ISuggestionRepository",
]
