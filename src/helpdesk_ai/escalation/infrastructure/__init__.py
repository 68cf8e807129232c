"""
Escalation Infrastructure Layer
===============================

YAML config hot reload and the sweep scheduler.
"""

from helpdesk_ai.escalation.infrastructure.external import (
    ConfigFileHandler,
    EscalationConfigManager,
    EscalationScheduler,
)

__all__ = ["ConfigFileHandler", "EscalationConfigManager", "EscalationScheduler"]
