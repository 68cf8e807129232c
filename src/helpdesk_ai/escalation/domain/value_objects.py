"""
Escalation Value Objects
========================

Thresholds the escalation rules evaluate against, and the record of one
applied escalation.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from helpdesk_ai.config import settings


class EscalationThresholds(BaseModel):
    """
    Escalation configuration.

    Loaded from settings, optionally overridden by the escalation YAML file.
    """
    enabled: bool = Field(default_factory=lambda: settings.escalation_enabled)
    critical_confidence: float = Field(
        default_factory=lambda: settings.critical_confidence_threshold, ge=0.0, le=1.0
    )
    low_confidence: float = Field(
        default_factory=lambda: settings.low_confidence_threshold, ge=0.0, le=1.0
    )
    auto_close_confidence: float = Field(
        default_factory=lambda: settings.auto_close_threshold, ge=0.0, le=1.0
    )
    mismatch_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    sla_hours: float = Field(default_factory=lambda: settings.sla_hours, gt=0)

    @model_validator(mode="after")
    def validate_order(self) -> "EscalationThresholds":
        """Critical threshold must not exceed the low threshold."""
        if self.critical_confidence > self.low_confidence:
            raise ValueError("critical_confidence cannot exceed low_confidence")
        return self


@dataclass
class EscalationContext:
    """
    Outcome of one applied escalation rule.

    ``escalated_to`` is set when the rule reassigned the ticket.
    """
    ticket_id: str
    trace_id: str
    initiated_by: str
    rule_name: str
    rule_priority: int
    reason: str = ""
    escalated_to: Optional[str] = None
    created_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)

    def to_meta(self) -> dict:
        """Audit payload."""
        return {
            "rule": self.rule_name,
            "reason": self.reason,
            "escalated_to": self.escalated_to,
            "priority": self.rule_priority,
        }
