"""
Escalation Domain Layer
=======================

Contains:
- Value Objects: EscalationThresholds, EscalationContext
- Rules: SLA breach, critical confidence, low confidence, category mismatch
"""

from helpdesk_ai.escalation.domain.value_objects import EscalationContext, EscalationThresholds
from helpdesk_ai.escalation.domain.rules import (
    CategoryMismatchRule,
    CriticalConfidenceRule,
    EscalationRule,
    IEscalationActions,
    LowConfidenceRule,
    SLABreachRule,
    ThresholdsProvider,
    default_rules,
)

__all__ = [
    # Value Objects
    "EscalationContext",
    "EscalationThresholds",
    # Rules
    "EscalationRule",
    "IEscalationActions",
    "ThresholdsProvider",
    "SLABreachRule",
    "CriticalConfidenceRule",
    "LowConfidenceRule",
    "CategoryMismatchRule",
    "default_rules",
]
