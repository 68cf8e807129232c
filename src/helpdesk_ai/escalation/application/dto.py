"""
Escalation Data Transfer Objects
================================

Pydantic models returned by the escalation service.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class EscalationMetrics(BaseModel):
    """Snapshot of escalation pressure."""
    urgent_open: int = Field(..., ge=0)
    high_open: int = Field(..., ge=0)
    sla_breaches: int = Field(..., ge=0)
    escalations_last_24h: int = Field(..., ge=0)
    sla_hours: float
    critical_confidence: float
    low_confidence: float
    enabled: bool
    generated_at: datetime


class SweepResult(BaseModel):
    """Outcome of one periodic escalation sweep."""
    trace_id: str
    processed: int = 0
    escalated: int = 0
    failed: int = 0
    skipped: bool = False
