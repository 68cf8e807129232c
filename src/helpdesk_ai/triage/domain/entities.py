"""
Triage Domain Entities
======================

Results produced by classification and reply drafting, and the state of
one triage run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from helpdesk_ai.config import VALID_CATEGORIES


@dataclass
class ClassificationResult:
    """
    Predicted ticket category.

    ``scores`` holds the per-category keyword score when the keyword
    classifier produced the result.
    """
    predicted_category: str
    confidence: float
    scores: dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        """Validate classification result."""
        if self.predicted_category not in VALID_CATEGORIES:
            raise ValueError(f"Invalid category: {self.predicted_category}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")


@dataclass
class DraftResult:
    """Drafted reply with up to three cited article IDs."""
    draft_reply: str
    citations: List[str]
    confidence: float

    def __post_init__(self):
        """Validate draft result."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")
        if len(self.citations) > 3:
            raise ValueError("A draft cites at most 3 articles")


class WorkflowState(str):
    """Triage workflow states."""
    PLANNING = "planning"
    CLASSIFYING = "classifying"
    RETRIEVING = "retrieving"
    DRAFTING = "drafting"
    DECIDING = "deciding"
    ASSIGNING = "assigning"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WorkflowContext:
    """
    Everything one triage run learned about a ticket.

    Returned to the caller whether the run completed or failed.
    """
    ticket_id: str
    trace_id: str
    state: str = WorkflowState.PLANNING
    classification: Optional[ClassificationResult] = None
    article_ids: List[str] = field(default_factory=list)
    search_method: Optional[str] = None
    draft: Optional[DraftResult] = None
    auto_closed: bool = False
    assigned_to: Optional[str] = None
    escalations: List[str] = field(default_factory=list)
    retry_count: int = 0
    error: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.state == WorkflowState.COMPLETED
