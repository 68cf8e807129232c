"""
Triage Domain Layer
===================

Contains:
- Entities: ClassificationResult, DraftResult, WorkflowContext
- Value Objects: keyword tables and reply templates
"""

from helpdesk_ai.triage.domain.entities import (
    ClassificationResult,
    DraftResult,
    WorkflowContext,
    WorkflowState,
)

__all__ = [
    "ClassificationResult",
    "DraftResult",
    "WorkflowContext",
    "WorkflowState",
]
