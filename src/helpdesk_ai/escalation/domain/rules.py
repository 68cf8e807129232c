"""
Escalation Rules
================

Each rule pairs a predicate over (ticket, suggestion, now) with an action.
The engine tries rules by descending priority and applies only the first
that matches.

Actions reach the outside world only through ``IEscalationActions``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from helpdesk_ai.config import TicketPriority, TicketStatus
from helpdesk_ai.escalation.domain.value_objects import EscalationContext, EscalationThresholds
from helpdesk_ai.suggestions.domain import AgentSuggestion
from helpdesk_ai.tickets.domain import Ticket, User

ThresholdsProvider = Callable[[], EscalationThresholds]


class IEscalationActions(ABC):
    """Side effects available to rule actions."""

    @abstractmethod
    async def list_admins(self) -> List[User]:
        """Active admins."""

    @abstractmethod
    async def save_ticket(self, ticket: Ticket) -> None:
        """Persist ticket changes (optimistic concurrency)."""

    @abstractmethod
    async def notify(self, user_id: str, event: str, payload: dict) -> None:
        """Emit a user notification without waiting for delivery. Never raises."""

    @abstractmethod
    async def audit(self, ticket_id: str, trace_id: str, action: str, meta: dict) -> None:
        """Append an audit event."""


class EscalationRule(ABC):
    """Base class for escalation rules."""

    name: str
    priority: int

    def __init__(self, thresholds: ThresholdsProvider):
        self._thresholds = thresholds

    @property
    def thresholds(self) -> EscalationThresholds:
        return self._thresholds()

    @abstractmethod
    def matches(self, ticket: Ticket, suggestion: Optional[AgentSuggestion], now: datetime) -> bool:
        """Whether the rule applies."""

    @abstractmethod
    async def apply(
        self,
        ticket: Ticket,
        suggestion: Optional[AgentSuggestion],
        context: EscalationContext,
        actions: IEscalationActions,
    ) -> None:
        """Mutate the ticket and emit side effects. Fills ``context.reason``."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name} priority={self.priority}>"


def _percent(confidence: float) -> str:
    return f"{confidence * 100:.1f}%"


class SLABreachRule(EscalationRule):
    """Unresolved ticket older than the SLA: make it urgent."""

    name = "SLA_BREACH_ESCALATION"
    priority = 3

    def matches(self, ticket: Ticket, suggestion: Optional[AgentSuggestion], now: datetime) -> bool:
        return not ticket.is_closed and ticket.age_hours(now) > self.thresholds.sla_hours

    async def apply(self, ticket, suggestion, context, actions) -> None:
        hours = round(ticket.age_hours(), 1)
        ticket.set_priority(TicketPriority.URGENT)
        if ticket.status == TicketStatus.OPEN:
            ticket.set_status(TicketStatus.TRIAGED)
        await actions.save_ticket(ticket)

        payload = {"ticket_id": ticket.id, "ticket_title": ticket.title, "hours_since_creation": hours}
        recipients = [ticket.created_by]
        if ticket.assignee and ticket.assignee != ticket.created_by:
            recipients.append(ticket.assignee)
        for user_id in recipients:
            await actions.notify(user_id, "sla_breach", payload)

        context.reason = f"SLA breach: {hours}h > {self.thresholds.sla_hours}h"


class CriticalConfidenceRule(EscalationRule):
    """Confidence below the critical threshold: urgent, all admins alerted."""

    name = "HIGH_PRIORITY_ESCALATION"
    priority = 2

    def matches(self, ticket: Ticket, suggestion: Optional[AgentSuggestion], now: datetime) -> bool:
        return (
            suggestion is not None
            and not ticket.is_closed
            and suggestion.confidence < self.thresholds.critical_confidence
        )

    async def apply(self, ticket, suggestion, context, actions) -> None:
        ticket.set_priority(TicketPriority.URGENT)
        ticket.set_status(TicketStatus.TRIAGED)
        await actions.save_ticket(ticket)

        payload = {
            "ticket_id": ticket.id,
            "ticket_title": ticket.title,
            "confidence": suggestion.confidence,
        }
        for admin in await actions.list_admins():
            await actions.notify(admin.id, "urgent_ticket", payload)

        context.reason = (
            f"Very low confidence score requires immediate attention: {_percent(suggestion.confidence)}"
        )


class LowConfidenceRule(EscalationRule):
    """Confidence in [critical, low): assign to the first admin at high priority."""

    name = "LOW_CONFIDENCE_ESCALATION"
    priority = 1

    def matches(self, ticket: Ticket, suggestion: Optional[AgentSuggestion], now: datetime) -> bool:
        if suggestion is None or ticket.is_closed:
            return False
        thresholds = self.thresholds
        return thresholds.critical_confidence <= suggestion.confidence < thresholds.low_confidence

    async def apply(self, ticket, suggestion, context, actions) -> None:
        admins = await actions.list_admins()
        admin = admins[0] if admins else None
        if admin is not None:
            ticket.assign_to(admin.id)
            context.escalated_to = admin.id
        ticket.set_priority(TicketPriority.HIGH)
        ticket.set_status(TicketStatus.TRIAGED)
        await actions.save_ticket(ticket)

        if admin is not None:
            await actions.notify(admin.id, "ticket_escalated", {
                "ticket_id": ticket.id,
                "ticket_title": ticket.title,
                "confidence": suggestion.confidence,
            })

        context.reason = f"Low confidence score: {_percent(suggestion.confidence)}"


class CategoryMismatchRule(EscalationRule):
    """Confident prediction disagrees with the declared category: human review."""

    name = "CATEGORY_MISMATCH_ESCALATION"
    priority = 1

    def matches(self, ticket: Ticket, suggestion: Optional[AgentSuggestion], now: datetime) -> bool:
        return (
            suggestion is not None
            and not ticket.is_closed
            and suggestion.predicted_category != ticket.category
            and suggestion.confidence > self.thresholds.mismatch_confidence
        )

    async def apply(self, ticket, suggestion, context, actions) -> None:
        ticket.set_status(TicketStatus.WAITING_HUMAN)
        await actions.save_ticket(ticket)
        await actions.audit(ticket.id, context.trace_id, "CATEGORY_MISMATCH", {
            "declared_category": ticket.category,
            "predicted_category": suggestion.predicted_category,
            "confidence": suggestion.confidence,
        })
        context.reason = (
            f"Category mismatch: declared {ticket.category}, predicted "
            f"{suggestion.predicted_category} ({_percent(suggestion.confidence)})"
        )


def default_rules(thresholds: ThresholdsProvider) -> List[EscalationRule]:
    """The standard rule set."""
    return [
        SLABreachRule(thresholds),
        CriticalConfidenceRule(thresholds),
        LowConfidenceRule(thresholds),
        CategoryMismatchRule(thresholds),
    ]
