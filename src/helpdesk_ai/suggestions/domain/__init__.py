"""
Suggestion Domain Layer
=======================

Contains the AgentSuggestion entity, its ModelInfo value object and
SuggestionFeedback records.
"""

from helpdesk_ai.suggestions.domain.entities import (
    AgentSuggestion,
    ModelInfo,
    SuggestionFeedback,
    AUTO_CLOSE_MIN_CONFIDENCE,
)

__all__ = [
    "AgentSuggestion",
    "ModelInfo",
    "SuggestionFeedback",
    "AUTO_CLOSE_MIN_CONFIDENCE",
]
