"""
Suggestion Application Services
===============================

Stores triage suggestions and applies agent feedback to them.

Accepting a suggestion sends the (possibly edited) reply and resolves the
ticket; rejecting it hands the ticket to a human queue. Both record
feedback on the suggestion without touching its prediction fields.
"""

from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from helpdesk_ai.config import (
    AuditActor,
    AuthorType,
    FeedbackAction,
    TicketStatus,
)
from helpdesk_ai.core.exceptions import ResourceNotFoundException
from helpdesk_ai.core.ports import IAuditLog, INotifier
from helpdesk_ai.shared.infrastructure.logging import get_context_logger
from helpdesk_ai.suggestions.application.dto import (
    CategoryBreakdown,
    FeedbackResult,
    SuggestionListQuery,
    SuggestionMetrics,
)
from helpdesk_ai.suggestions.domain import AgentSuggestion, ModelInfo, SuggestionFeedback
from helpdesk_ai.tickets.application import ITicketRepository
from helpdesk_ai.tickets.domain import Ticket
from helpdesk_ai.triage.domain import ClassificationResult, DraftResult


# ========== Repository Interfaces ==========

class ISuggestionRepository(ABC):
    """Interface for suggestion storage. One suggestion per ticket."""

    @abstractmethod
    async def create(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        """
        Insert a suggestion.

        Raises:
            DuplicateSuggestionError: If the ticket already has one
        """

    @abstractmethod
    async def get_by_ticket(self, ticket_id: str) -> Optional[AgentSuggestion]:
        """Suggestion for a ticket, if any."""

    @abstractmethod
    async def update(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        """Persist the auto-closed flag and feedback list."""

    @abstractmethod
    async def list(self, query: SuggestionListQuery) -> List[AgentSuggestion]:
        """Suggestions matching ``query``, newest first."""

    @abstractmethod
    async def list_since(self, since: Optional[datetime]) -> List[AgentSuggestion]:
        """Suggestions created at or after ``since`` (all when None)."""


def performance_rating(average_confidence: float, total: int) -> str:
    if total == 0:
        return "no_data"
    if average_confidence >= 0.9:
        return "excellent"
    if average_confidence >= 0.75:
        return "good"
    if average_confidence >= 0.6:
        return "fair"
    return "poor"


# ========== Application Services ==========

class SuggestionService:
    """
    Service for suggestion lifecycle and feedback.

    Coordinates the suggestion repository, ticket repository, audit log and
    notifier.
    """

    def __init__(
        self,
        suggestions: ISuggestionRepository,
        tickets: ITicketRepository,
        audit_log: IAuditLog,
        notifier: INotifier,
    ):
        self._suggestions = suggestions
        self._tickets = tickets
        self._audit = audit_log
        self._notifier = notifier

    async def create(
        self,
        ticket_id: str,
        classification: ClassificationResult,
        draft: DraftResult,
        model_info: ModelInfo,
        article_ids: Sequence[str],
        auto_closed: bool = False,
    ) -> AgentSuggestion:
        """
        Store the suggestion for a ticket.

        Raises:
            DuplicateSuggestionError: If the ticket already has a suggestion
            ValidationException: If the suggestion violates its invariants
        """
        suggestion = AgentSuggestion(
            ticket_id=ticket_id,
            predicted_category=classification.predicted_category,
            article_ids=list(article_ids),
            draft_reply=draft.draft_reply,
            confidence=draft.confidence,
            model_info=model_info,
            auto_closed=auto_closed,
        )
        return await self._suggestions.create(suggestion)

    async def get(self, ticket_id: str) -> Optional[AgentSuggestion]:
        return await self._suggestions.get_by_ticket(ticket_id)

    async def list(self, query: Optional[SuggestionListQuery] = None) -> List[AgentSuggestion]:
        return await self._suggestions.list(query or SuggestionListQuery())

    async def mark_auto_closed(self, ticket_id: str) -> AgentSuggestion:
        suggestion = await self._require_suggestion(ticket_id)
        suggestion.mark_auto_closed()
        return await self._suggestions.update(suggestion)

    async def accept(
        self,
        ticket_id: str,
        agent_id: str,
        edited_reply: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> FeedbackResult:
        """
        Send the suggested (or edited) reply and resolve the ticket.

        Feedback is recorded as ``modify`` when the sent text differs from
        the draft, otherwise ``accept``.

        Raises:
            ResourceNotFoundException: If the ticket or its suggestion is missing
        """
        log = get_context_logger(__name__, trace_id)
        ticket = await self._require_ticket(ticket_id)
        suggestion = await self._require_suggestion(ticket_id)

        reply_text = suggestion.draft_reply
        if edited_reply is not None and edited_reply.strip():
            reply_text = edited_reply.strip()
        modified = reply_text != suggestion.draft_reply

        ticket.add_reply(reply_text, AuthorType.AGENT, agent_id)
        ticket.resolve()
        ticket = await self._tickets.save(ticket)

        suggestion.add_feedback(SuggestionFeedback(
            agent_id=agent_id,
            action=FeedbackAction.MODIFY if modified else FeedbackAction.ACCEPT,
            edited_reply=reply_text if modified else None,
        ))
        suggestion = await self._suggestions.update(suggestion)

        await self._audit.append(
            ticket_id, trace_id, AuditActor.AGENT, "REPLY_SENT",
            {"agent_id": agent_id, "modified": modified, "suggestion_id": suggestion.id}
        )
        await self._audit.append(
            ticket_id, trace_id, AuditActor.AGENT, "TICKET_RESOLVED",
            {"agent_id": agent_id, "via": "suggestion"}
        )
        await self._notifier.notify_user(
            ticket.created_by, "ticket_status",
            {"ticket_id": ticket.id, "status": ticket.status, "title": ticket.title}
        )

        log.info(
            "Suggestion accepted",
            extra={"ticket_id": ticket_id, "agent_id": agent_id, "modified": modified}
        )
        return FeedbackResult(ticket=ticket, suggestion=suggestion)

    async def reject(
        self,
        ticket_id: str,
        agent_id: str,
        feedback: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> FeedbackResult:
        """
        Record a rejection and route the ticket to a human.

        Open or triaged tickets move to ``waiting_human``; other statuses
        are left alone.

        Raises:
            ResourceNotFoundException: If the ticket or its suggestion is missing
        """
        log = get_context_logger(__name__, trace_id)
        ticket = await self._require_ticket(ticket_id)
        suggestion = await self._require_suggestion(ticket_id)

        if ticket.status in (TicketStatus.OPEN, TicketStatus.TRIAGED):
            ticket.set_status(TicketStatus.WAITING_HUMAN)
            ticket = await self._tickets.save(ticket)

        suggestion.add_feedback(SuggestionFeedback(
            agent_id=agent_id,
            action=FeedbackAction.REJECT,
            comment=feedback,
        ))
        suggestion = await self._suggestions.update(suggestion)

        await self._audit.append(
            ticket_id, trace_id, AuditActor.AGENT, "SUGGESTION_REJECTED",
            {"agent_id": agent_id, "feedback": feedback, "suggestion_id": suggestion.id}
        )
        log.info("Suggestion rejected", extra={"ticket_id": ticket_id, "agent_id": agent_id})
        return FeedbackResult(ticket=ticket, suggestion=suggestion)

    async def metrics(self, timeframe: Optional[timedelta] = None) -> SuggestionMetrics:
        """
        Aggregate suggestion statistics.

        Args:
            timeframe: Only suggestions created within this window; all when None
        """
        since = datetime.now(timezone.utc) - timeframe if timeframe is not None else None
        suggestions = await self._suggestions.list_since(since)

        total = len(suggestions)
        auto_closed = sum(1 for s in suggestions if s.auto_closed)
        average = sum(s.confidence for s in suggestions) / total if total else 0.0

        by_category: dict[str, List[AgentSuggestion]] = defaultdict(list)
        for suggestion in suggestions:
            by_category[suggestion.predicted_category].append(suggestion)

        breakdown = {
            category: CategoryBreakdown(
                count=len(items),
                average_confidence=round(sum(s.confidence for s in items) / len(items), 3),
                auto_close_rate=round(sum(1 for s in items if s.auto_closed) / len(items), 3),
            )
            for category, items in sorted(by_category.items())
        }

        feedback_counts = Counter(f.action for s in suggestions for f in s.feedback)

        return SuggestionMetrics(
            total_suggestions=total,
            auto_closed_count=auto_closed,
            auto_close_rate=round(auto_closed / total, 3) if total else 0.0,
            average_confidence=round(average, 3),
            category_breakdown=breakdown,
            feedback_counts={
                action: feedback_counts.get(action, 0)
                for action in (FeedbackAction.ACCEPT, FeedbackAction.MODIFY, FeedbackAction.REJECT)
            },
            performance_rating=performance_rating(average, total),
            timeframe_hours=timeframe.total_seconds() / 3600 if timeframe is not None else None,
        )

    async def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def _require_suggestion(self, ticket_id: str) -> AgentSuggestion:
        suggestion = await self._suggestions.get_by_ticket(ticket_id)
        if suggestion is None:
            raise ResourceNotFoundException("AgentSuggestion", ticket_id)
        return suggestion
