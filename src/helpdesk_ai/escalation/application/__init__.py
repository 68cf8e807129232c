"""
Escalation Application Layer
============================

Contains:
- Services: EscalationService
- DTOs: EscalationMetrics, SweepResult
- Config interface: IEscalationConfigProvider
"""

from helpdesk_ai.escalation.application.dto import EscalationMetrics, SweepResult
from helpdesk_ai.escalation.application.services import (
    EscalationService,
    IEscalationConfigProvider,
    StaticEscalationConfig,
)

__all__ = [
    "EscalationMetrics",
    "SweepResult",
    "EscalationService",
    "IEscalationConfigProvider",
    "StaticEscalationConfig",
]
