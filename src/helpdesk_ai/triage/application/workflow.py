"""
Triage Workflow
===============

Drives one ticket from classification to a decision:

    planning -> classifying -> retrieving -> drafting -> deciding
             -> assigning -> completed | failed

Every step is audited under a per-run trace ID. A confident suggestion
auto-closes the ticket; otherwise the ticket goes to a human agent. The
escalation engine runs last and never fails the workflow.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from helpdesk_ai.config import AuditActor, AuthorType, TicketStatus, settings
from helpdesk_ai.core.exceptions import (
    DuplicateSuggestionError,
    LLMException,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk_ai.core.ports import IAuditLog, INotifier
from helpdesk_ai.escalation.application import EscalationService
from helpdesk_ai.knowledge.application import ContextBuilder, RetrievalOrchestrator
from helpdesk_ai.shared.infrastructure.logging import LoggerLike, get_context_logger, get_logger, log_latency
from helpdesk_ai.shared.infrastructure.resilience import retry_with_backoff
from helpdesk_ai.suggestions.application import SuggestionService
from helpdesk_ai.suggestions.domain import AUTO_CLOSE_MIN_CONFIDENCE, AgentSuggestion, ModelInfo
from helpdesk_ai.tickets.application import ITicketRepository, IUserDirectory
from helpdesk_ai.tickets.domain import Ticket, User
from helpdesk_ai.triage.application.services import ILLMProvider
from helpdesk_ai.triage.domain import WorkflowContext, WorkflowState

logger = get_logger(__name__)

MAX_LATENCY_MS = 300_000

AUTO_CLOSE_REPLY_PREFIX = "This ticket was resolved automatically with the following answer.\n\n"

# Failures that a rerun cannot fix
_NON_RETRYABLE = (ResourceNotFoundException, ValidationException)


class TriageWorkflow:
    """
    Orchestrates classification, retrieval, drafting and routing.

    Agent assignment rotates through the directory's agents, picking the one
    assigned least recently; agents never assigned come first, in directory
    order.
    """

    def __init__(
        self,
        tickets: ITicketRepository,
        users: IUserDirectory,
        provider: ILLMProvider,
        orchestrator: RetrievalOrchestrator,
        suggestion_service: SuggestionService,
        audit_log: IAuditLog,
        notifier: INotifier,
        escalation_service: Optional[EscalationService] = None,
        context_builder: Optional[ContextBuilder] = None,
        auto_close_enabled: Optional[bool] = None,
        auto_close_threshold: Optional[float] = None,
        low_confidence_threshold: Optional[float] = None,
        retrieval_limit: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0,
    ):
        self._tickets = tickets
        self._users = users
        self._provider = provider
        self._orchestrator = orchestrator
        self._suggestions = suggestion_service
        self._audit = audit_log
        self._notifier = notifier
        self._escalation = escalation_service
        self._context_builder = context_builder or ContextBuilder()

        self._auto_close_enabled = (
            settings.auto_close_enabled if auto_close_enabled is None else auto_close_enabled
        )
        self._auto_close_threshold = (
            settings.auto_close_threshold if auto_close_threshold is None else auto_close_threshold
        )
        self._low_threshold = (
            settings.low_confidence_threshold if low_confidence_threshold is None else low_confidence_threshold
        )
        self._retrieval_limit = retrieval_limit or settings.retrieval_limit
        self._max_retries = settings.triage_max_retries if max_retries is None else max_retries
        self._retry_delay = retry_delay

        self._assignment_counter = 0
        self._last_assigned: Dict[str, int] = {}

    # ========== Public API ==========

    async def triage_ticket(self, ticket_id: str) -> WorkflowContext:
        """
        Run the workflow for one ticket.

        Failed runs are retried with exponential backoff. The returned
        context reports ``failed`` once retries are exhausted; it is never
        raised.
        """
        context = WorkflowContext(ticket_id=ticket_id, trace_id=str(uuid4()))
        log = get_context_logger(__name__, context.trace_id)

        while True:
            try:
                await self._run(context, log)
                context.state = WorkflowState.COMPLETED
                break
            except _NON_RETRYABLE as e:
                await self._fail(context, e, log)
                break
            except Exception as e:
                if context.retry_count >= self._max_retries:
                    await self._fail(context, e, log)
                    break
                context.retry_count += 1
                delay = min(10.0, self._retry_delay * 2 ** (context.retry_count - 1))
                log.warning(
                    "Triage attempt failed, retrying",
                    extra={
                        "ticket_id": ticket_id,
                        "retry_count": context.retry_count,
                        "failed_state": context.state,
                        "error": str(e),
                    }
                )
                await self._audit.append(
                    ticket_id, context.trace_id, AuditActor.SYSTEM, "TRIAGE_RETRY",
                    {"retry_count": context.retry_count, "failed_state": context.state, "error": str(e)}
                )
                await asyncio.sleep(delay)

        context.finished_at = datetime.now(timezone.utc)
        log.info(
            "Triage finished",
            extra={
                "ticket_id": ticket_id,
                "state": context.state,
                "auto_closed": context.auto_closed,
                "assigned_to": context.assigned_to,
                "retry_count": context.retry_count,
            }
        )
        return context

    async def process_batch(
        self,
        ticket_ids: Sequence[str],
        batch_size: Optional[int] = None,
        pause_seconds: float = 1.0,
    ) -> List[WorkflowContext]:
        """
        Triage tickets in concurrent batches.

        Returns one context per ticket, in input order. An unexpected
        exception for one ticket yields a failed context for it.
        """
        batch_size = batch_size or settings.triage_batch_size
        ticket_ids = list(ticket_ids)
        results: List[WorkflowContext] = []

        for offset in range(0, len(ticket_ids), batch_size):
            batch = ticket_ids[offset:offset + batch_size]
            outcomes = await asyncio.gather(
                *(self.triage_ticket(ticket_id) for ticket_id in batch),
                return_exceptions=True,
            )
            for ticket_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "Batch triage raised",
                        extra={"ticket_id": ticket_id, "error": str(outcome)}
                    )
                    outcome = WorkflowContext(
                        ticket_id=ticket_id,
                        trace_id=str(uuid4()),
                        state=WorkflowState.FAILED,
                        error=str(outcome),
                    )
                results.append(outcome)

            if offset + batch_size < len(ticket_ids) and pause_seconds > 0:
                await asyncio.sleep(pause_seconds)

        logger.info(
            "Batch triage completed",
            extra={
                "total": len(results),
                "completed": sum(1 for r in results if r.succeeded),
                "auto_closed": sum(1 for r in results if r.auto_closed),
            }
        )
        return results

    # ========== Steps ==========

    async def _run(self, context: WorkflowContext, log: LoggerLike) -> None:
        context.state = WorkflowState.PLANNING
        ticket = await self._tickets.get_by_id(context.ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", context.ticket_id)
        if ticket.is_closed:
            log.info("Ticket already closed, nothing to triage", extra={"ticket_id": ticket.id})
            return

        await self._audit_step(context, "TRIAGE_PLANNED", {
            "attempt": context.retry_count + 1,
            "provider": self._provider.provider_name,
        })
        started = time.perf_counter()

        context.state = WorkflowState.CLASSIFYING
        classification = await retry_with_backoff(
            lambda: self._provider.classify(ticket.text),
            retries=self._max_retries,
            min_delay=self._retry_delay,
            retry_on=(LLMException,),
            log=log,
        )
        context.classification = classification
        await self._audit_step(context, "AGENT_CLASSIFIED", {
            "predicted_category": classification.predicted_category,
            "confidence": classification.confidence,
        })

        context.state = WorkflowState.RETRIEVING
        with log_latency(log, "triage_retrieval", ticket_id=ticket.id):
            rag = await self._orchestrator.retrieve(
                ticket.text, limit=self._retrieval_limit, trace_id=context.trace_id
            )
        retrieval_context = self._context_builder.build_context(rag.articles, ticket.text)
        articles = [scored.article for scored in retrieval_context.articles]
        context.article_ids = [article.id for article in articles]
        context.search_method = rag.search_method
        await self._audit_step(context, "KB_RETRIEVED", {
            "article_ids": context.article_ids,
            "search_method": rag.search_method,
            "total_matches": rag.total_matches,
            "context_tokens": retrieval_context.total_tokens,
        })

        context.state = WorkflowState.DRAFTING
        draft = await retry_with_backoff(
            lambda: self._provider.draft(ticket.text, articles),
            retries=self._max_retries,
            min_delay=self._retry_delay,
            retry_on=(LLMException,),
            log=log,
        )
        context.draft = draft
        await self._audit_step(context, "DRAFT_GENERATED", {
            "confidence": draft.confidence,
            "citations": draft.citations,
        })

        context.state = WorkflowState.DECIDING
        latency_ms = min(MAX_LATENCY_MS, int((time.perf_counter() - started) * 1000))
        suggestion = await self._store_suggestion(context, latency_ms, log)

        if self._should_auto_close(suggestion.confidence):
            await self._auto_close(ticket, suggestion, context)
        else:
            context.state = WorkflowState.ASSIGNING
            await self._assign_to_human(ticket, suggestion, context)

        await self._escalate(context, log)

    async def _store_suggestion(self, context: WorkflowContext, latency_ms: int, log: LoggerLike) -> AgentSuggestion:
        model_info = ModelInfo(
            provider=self._provider.provider_name,
            model=self._provider.model_name,
            prompt_version=settings.prompt_version,
            latency_ms=latency_ms,
        )
        try:
            return await self._suggestions.create(
                context.ticket_id,
                context.classification,
                context.draft,
                model_info,
                context.article_ids,
            )
        except DuplicateSuggestionError:
            existing = await self._suggestions.get(context.ticket_id)
            if existing is None:
                raise
            log.info("Suggestion already exists, reusing it", extra={"ticket_id": context.ticket_id})
            return existing

    def _should_auto_close(self, confidence: float) -> bool:
        threshold = max(self._auto_close_threshold, AUTO_CLOSE_MIN_CONFIDENCE)
        return self._auto_close_enabled and confidence >= threshold

    async def _auto_close(self, ticket: Ticket, suggestion: AgentSuggestion, context: WorkflowContext) -> None:
        ticket.add_reply(AUTO_CLOSE_REPLY_PREFIX + suggestion.draft_reply, AuthorType.SYSTEM)
        ticket.resolve()
        await self._tickets.save(ticket)

        if not suggestion.auto_closed:
            await self._suggestions.mark_auto_closed(ticket.id)
        context.auto_closed = True

        await self._audit_step(context, "AUTO_CLOSED", {
            "confidence": suggestion.confidence,
            "threshold": self._auto_close_threshold,
            "suggestion_id": suggestion.id,
        })
        await self._notifier.notify_user(ticket.created_by, "ticket_status", {
            "ticket_id": ticket.id,
            "status": ticket.status,
            "title": ticket.title,
        })

    async def _assign_to_human(self, ticket: Ticket, suggestion: AgentSuggestion, context: WorkflowContext) -> None:
        agent = await self._pick_agent()
        if agent is not None:
            ticket.assign_to(agent.id)
            context.assigned_to = agent.id
            await self._audit_step(context, "AUTO_ASSIGNED", {"assignee": agent.id})

        status = (
            TicketStatus.WAITING_HUMAN
            if suggestion.confidence >= self._low_threshold
            else TicketStatus.TRIAGED
        )
        ticket.set_status(status)
        await self._tickets.save(ticket)

        await self._audit_step(context, "ASSIGNED_TO_HUMAN", {
            "assignee": context.assigned_to,
            "status": status,
            "confidence": suggestion.confidence,
        })
        if agent is not None:
            await self._notifier.notify_user(agent.id, "ticket_assigned", {
                "ticket_id": ticket.id,
                "ticket_title": ticket.title,
                "confidence": suggestion.confidence,
            })

    async def _pick_agent(self) -> Optional[User]:
        agents = await self._users.list_agents()
        if not agents:
            return None
        agent = min(agents, key=lambda user: self._last_assigned.get(user.id, -1))
        self._assignment_counter += 1
        self._last_assigned[agent.id] = self._assignment_counter
        return agent

    async def _escalate(self, context: WorkflowContext, log: LoggerLike) -> None:
        if self._escalation is None:
            return
        try:
            applied = await self._escalation.evaluate(context.ticket_id, context.trace_id)
        except Exception as e:
            log.error(
                "Escalation evaluation failed",
                extra={"ticket_id": context.ticket_id, "error": str(e)}
            )
            return
        context.escalations = [escalation.rule_name for escalation in applied]

    # ========== Helpers ==========

    async def _audit_step(self, context: WorkflowContext, action: str, meta: dict) -> None:
        await self._audit.append(context.ticket_id, context.trace_id, AuditActor.SYSTEM, action, meta)

    async def _fail(self, context: WorkflowContext, error: Exception, log: LoggerLike) -> None:
        failed_state = context.state
        context.state = WorkflowState.FAILED
        context.error = str(error)
        log.error(
            "Triage failed",
            extra={
                "ticket_id": context.ticket_id,
                "failed_state": failed_state,
                "retry_count": context.retry_count,
                "error": str(error),
            }
        )
        await self._audit.append(
            context.ticket_id, context.trace_id, AuditActor.SYSTEM, "TRIAGE_FAILED",
            {"failed_state": failed_state, "retry_count": context.retry_count, "error": str(error)}
        )
