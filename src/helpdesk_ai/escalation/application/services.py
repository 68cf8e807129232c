"""
Escalation Application Services
===============================

Evaluates escalation rules against a ticket and its suggestion.

Rules are tried in descending priority; the first match is applied and
the chain stops there, whether its action succeeds or fails. Ticket writes
go through the repository's optimistic concurrency check, so an action
working on a stale copy fails instead of overwriting newer changes.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from uuid import uuid4

from helpdesk_ai.config import AuditActor, TicketPriority, TicketStatus, settings
from helpdesk_ai.core.exceptions import ResourceNotFoundException
from helpdesk_ai.core.ports import IAuditLog, INotifier
from helpdesk_ai.escalation.application.dto import EscalationMetrics, SweepResult
from helpdesk_ai.escalation.domain import (
    EscalationContext,
    EscalationRule,
    EscalationThresholds,
    IEscalationActions,
    default_rules,
)
from helpdesk_ai.shared.infrastructure.logging import get_context_logger, get_logger
from helpdesk_ai.suggestions.application import ISuggestionRepository
from helpdesk_ai.tickets.application import ITicketRepository, IUserDirectory
from helpdesk_ai.tickets.domain import Ticket, User

logger = get_logger(__name__)

SWEEP_STATUSES = (TicketStatus.OPEN, TicketStatus.WAITING_HUMAN, TicketStatus.TRIAGED)


class IEscalationConfigProvider(ABC):
    """Interface for escalation configuration access."""

    @abstractmethod
    def get_thresholds(self) -> EscalationThresholds:
        """Current thresholds."""


class StaticEscalationConfig(IEscalationConfigProvider):
    """Fixed thresholds, defaulting to the values from settings."""

    def __init__(self, thresholds: Optional[EscalationThresholds] = None):
        self._thresholds = thresholds or EscalationThresholds()

    def get_thresholds(self) -> EscalationThresholds:
        return self._thresholds


class _RepositoryActions(IEscalationActions):
    """Binds rule side effects to the repositories and ports."""

    def __init__(
        self,
        tickets: ITicketRepository,
        users: IUserDirectory,
        audit_log: IAuditLog,
        notifier: INotifier,
    ):
        self._tickets = tickets
        self._users = users
        self._audit = audit_log
        self._notifier = notifier

    async def list_admins(self) -> List[User]:
        return await self._users.list_admins()

    async def save_ticket(self, ticket: Ticket) -> None:
        await self._tickets.save(ticket)

    async def notify(self, user_id: str, event: str, payload: dict) -> None:
        # Rules notify after the ticket is saved; delivery failures are only logged.
        try:
            await self._notifier.notify_user(user_id, event, payload)
        except Exception as e:
            logger.error(
                "Escalation notification failed",
                extra={"user_id": user_id, "event": event, "error": str(e)}
            )

    async def audit(self, ticket_id: str, trace_id: str, action: str, meta: dict) -> None:
        await self._audit.append(ticket_id, trace_id, AuditActor.SYSTEM, action, meta)


class EscalationService:
    """
    Rule-based escalation engine.

    Used inline by the triage workflow and by the periodic sweep.
    """

    def __init__(
        self,
        tickets: ITicketRepository,
        suggestions: ISuggestionRepository,
        users: IUserDirectory,
        audit_log: IAuditLog,
        notifier: INotifier,
        config_provider: Optional[IEscalationConfigProvider] = None,
        rules: Optional[Sequence[EscalationRule]] = None,
        sweep_limit: Optional[int] = None,
    ):
        self._tickets = tickets
        self._suggestions = suggestions
        self._audit = audit_log
        self._config = config_provider or StaticEscalationConfig()
        self._actions = _RepositoryActions(tickets, users, audit_log, notifier)
        rules = list(rules) if rules is not None else default_rules(self._config.get_thresholds)
        # sorted() is stable: equal priorities keep registration order
        self._rules = sorted(rules, key=lambda rule: rule.priority, reverse=True)
        self._sweep_limit = sweep_limit or settings.escalation_sweep_limit
        self._sweep_lock = asyncio.Lock()

    @property
    def rules(self) -> List[EscalationRule]:
        return list(self._rules)

    @property
    def thresholds(self) -> EscalationThresholds:
        return self._config.get_thresholds()

    async def evaluate(self, ticket_id: str, trace_id: Optional[str] = None) -> List[EscalationContext]:
        """
        Apply the first matching rule to a ticket.

        Args:
            ticket_id: Ticket to evaluate
            trace_id: Trace to attach audit events to; generated when omitted

        Returns:
            The applied escalation, or an empty list when nothing matched,
            escalation is disabled, or the matched action failed

        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        if not self.thresholds.enabled:
            return []

        trace_id = trace_id or str(uuid4())
        log = get_context_logger(__name__, trace_id)

        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        suggestion = await self._suggestions.get_by_ticket(ticket_id)
        now = datetime.now(timezone.utc)

        for rule in self._rules:
            if not rule.matches(ticket, suggestion, now):
                continue

            context = EscalationContext(
                ticket_id=ticket_id,
                trace_id=trace_id,
                initiated_by=AuditActor.SYSTEM,
                rule_name=rule.name,
                rule_priority=rule.priority,
            )
            try:
                await rule.apply(ticket, suggestion, context, self._actions)
            except Exception as e:
                log.error(
                    "Escalation action failed",
                    extra={"ticket_id": ticket_id, "rule": rule.name, "error": str(e)}
                )
                await self._audit.append(
                    ticket_id, trace_id, AuditActor.SYSTEM, "ESCALATION_FAILED",
                    {"rule": rule.name, "error": str(e)}
                )
                return []

            await self._audit.append(
                ticket_id, trace_id, AuditActor.SYSTEM, "ESCALATION_TRIGGERED", context.to_meta()
            )
            log.info(
                "Ticket escalated",
                extra={
                    "ticket_id": ticket_id,
                    "rule": rule.name,
                    "reason": context.reason,
                    "escalated_to": context.escalated_to,
                }
            )
            return [context]

        return []

    async def run_periodic_sweep(self) -> SweepResult:
        """
        Evaluate every active, non-urgent ticket.

        Every candidate counts as processed; per-ticket failures are also
        counted in ``failed`` and logged, and the sweep continues.
        A sweep requested while another is running is skipped.
        """
        trace_id = str(uuid4())
        if self._sweep_lock.locked():
            logger.warning("Escalation sweep already running, skipping")
            return SweepResult(trace_id=trace_id, skipped=True)

        async with self._sweep_lock:
            result = SweepResult(trace_id=trace_id)
            if not self.thresholds.enabled:
                result.skipped = True
                return result

            tickets = await self._tickets.list_by_status(
                SWEEP_STATUSES,
                exclude_priority=TicketPriority.URGENT,
                limit=self._sweep_limit,
            )
            for ticket in tickets:
                result.processed += 1
                try:
                    contexts = await self.evaluate(ticket.id, trace_id)
                except Exception as e:
                    result.failed += 1
                    logger.error(
                        "Escalation check failed",
                        extra={"ticket_id": ticket.id, "trace_id": trace_id, "error": str(e)}
                    )
                    continue
                if contexts:
                    result.escalated += 1

            await self._audit.append(
                "system", trace_id, AuditActor.SYSTEM, "ESCALATION_CHECK_COMPLETED",
                {"processed": result.processed, "escalated": result.escalated, "failed": result.failed}
            )
            logger.info(
                "Escalation sweep completed",
                extra={
                    "trace_id": trace_id,
                    "processed": result.processed,
                    "escalated": result.escalated,
                    "failed": result.failed,
                }
            )
            return result

    async def metrics(self) -> EscalationMetrics:
        """Counts of urgent, high-priority and SLA-breaching open tickets."""
        thresholds = self.thresholds
        now = datetime.now(timezone.utc)

        return EscalationMetrics(
            urgent_open=await self._tickets.count_open(priority=TicketPriority.URGENT),
            high_open=await self._tickets.count_open(priority=TicketPriority.HIGH),
            sla_breaches=await self._tickets.count_open(
                created_before=now - timedelta(hours=thresholds.sla_hours)
            ),
            escalations_last_24h=await self._audit.count_since(
                "ESCALATION_TRIGGERED", now - timedelta(hours=24)
            ),
            sla_hours=thresholds.sla_hours,
            critical_confidence=thresholds.critical_confidence,
            low_confidence=thresholds.low_confidence,
            enabled=thresholds.enabled,
            generated_at=now,
        )
