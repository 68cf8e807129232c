"""Tests for the triage workflow."""

import pytest

from conftest import ADMIN, AGENT_A, AGENT_B, FakeTicketRepository, make_suggestion, make_ticket
from helpdesk_ai.config import AuthorType, TicketPriority, TicketStatus
from helpdesk_ai.escalation.application import EscalationService
from helpdesk_ai.knowledge.application import RetrievalOrchestrator, SimilarityStore
from helpdesk_ai.knowledge.domain import Vectorizer
from helpdesk_ai.suggestions.application import SuggestionService
from helpdesk_ai.triage.application import KeywordLLMProvider, TriageWorkflow
from helpdesk_ai.triage.application.workflow import AUTO_CLOSE_REPLY_PREFIX
from helpdesk_ai.triage.domain import WorkflowState

# Classifies as "other" with a short text and no matching articles: draft confidence 0.675
UNSURE = {"title": "Question", "description": "hi", "category": "other"}
# No keywords at all: draft confidence below the low-confidence threshold
VAGUE = {"title": "Help", "description": "hi there"}


class FlakyProvider(KeywordLLMProvider):
    """Fails the first ``failures`` classify calls."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def classify(self, text):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("provider hiccup")
        return await super().classify(text)


class BrokenEscalation:
    async def evaluate(self, ticket_id, trace_id=None):
        raise RuntimeError("rules unavailable")


@pytest.fixture
def make_workflow(users, suggestion_repo, article_repo, embedding_repo, audit_log, notifier):
    def build(tickets, provider=None, escalation=True, **kwargs) -> TriageWorkflow:
        store = SimilarityStore(article_repo, embedding_repo, vectorizer=Vectorizer(384))
        escalation_service = None
        if escalation is True:
            escalation_service = EscalationService(tickets, suggestion_repo, users, audit_log, notifier)
        elif escalation:
            escalation_service = escalation
        kwargs.setdefault("auto_close_threshold", 0.8)
        kwargs.setdefault("low_confidence_threshold", 0.5)
        kwargs.setdefault("auto_close_enabled", True)
        kwargs.setdefault("max_retries", 2)
        return TriageWorkflow(
            tickets,
            users,
            provider or KeywordLLMProvider(),
            RetrievalOrchestrator(article_repo, store),
            SuggestionService(suggestion_repo, tickets, audit_log, notifier),
            audit_log,
            notifier,
            escalation_service=escalation_service,
            retry_delay=0,
            **kwargs,
        )
    return build


class TestAutoClose:
    async def test_confident_ticket_is_auto_closed(self, make_workflow, suggestion_repo, audit_log, notifier) -> None:
        tickets = FakeTicketRepository([make_ticket()])

        context = await make_workflow(tickets).triage_ticket("T-1")

        assert context.state == WorkflowState.COMPLETED
        assert context.succeeded
        assert context.auto_closed is True
        assert context.classification.predicted_category == "tech"
        assert context.escalations == []
        assert context.finished_at is not None
        assert audit_log.actions("T-1") == [
            "TRIAGE_PLANNED",
            "AGENT_CLASSIFIED",
            "KB_RETRIEVED",
            "DRAFT_GENERATED",
            "AUTO_CLOSED",
        ]
        assert len({e["trace_id"] for e in audit_log.events}) == 1

        ticket = tickets.stored("T-1")
        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.replies[-1].author_type == AuthorType.SYSTEM
        assert ticket.replies[-1].content.startswith(AUTO_CLOSE_REPLY_PREFIX)
        suggestion = await suggestion_repo.get_by_ticket("T-1")
        assert suggestion.auto_closed is True
        assert suggestion.model_info.provider == "stub"
        assert notifier.events_for("user-1") == ["ticket_status"]

    async def test_auto_close_disabled(self, make_workflow) -> None:
        tickets = FakeTicketRepository([make_ticket()])

        context = await make_workflow(tickets, auto_close_enabled=False).triage_ticket("T-1")

        assert context.auto_closed is False
        assert tickets.stored("T-1").status == TicketStatus.WAITING_HUMAN

    async def test_threshold_never_below_floor(self, make_workflow, suggestion_repo) -> None:
        tickets = FakeTicketRepository([make_ticket(**UNSURE)])

        context = await make_workflow(tickets, auto_close_threshold=0.5).triage_ticket("T-1")

        assert context.draft.confidence == pytest.approx(0.675)
        assert context.auto_closed is False
        assert (await suggestion_repo.get_by_ticket("T-1")).auto_closed is False

    async def test_existing_suggestion_is_reused(self, make_workflow, suggestion_repo) -> None:
        tickets = FakeTicketRepository([make_ticket(**UNSURE)])
        await suggestion_repo.create(make_suggestion(confidence=0.9, predicted_category="other"))

        context = await make_workflow(tickets).triage_ticket("T-1")

        assert context.succeeded
        assert context.auto_closed is True
        assert (await suggestion_repo.get_by_ticket("T-1")).id == "sugg-1"


class TestHumanRouting:
    async def test_assigns_with_rotation(self, make_workflow, audit_log, notifier) -> None:
        tickets = FakeTicketRepository([make_ticket(f"T-{n}", **UNSURE) for n in range(1, 5)])
        workflow = make_workflow(tickets)

        assignees = [(await workflow.triage_ticket(f"T-{n}")).assigned_to for n in range(1, 5)]

        assert assignees == [ADMIN.id, AGENT_A.id, AGENT_B.id, ADMIN.id]
        assert tickets.stored("T-1").status == TicketStatus.WAITING_HUMAN
        assert audit_log.actions("T-2")[-2:] == ["AUTO_ASSIGNED", "ASSIGNED_TO_HUMAN"]
        assert notifier.events_for(AGENT_A.id) == ["ticket_assigned"]

    async def test_low_confidence_is_escalated(self, make_workflow, audit_log) -> None:
        tickets = FakeTicketRepository([make_ticket(**VAGUE)])

        context = await make_workflow(tickets).triage_ticket("T-1")

        assert context.succeeded
        assert context.draft.confidence < 0.5
        assert context.escalations == ["LOW_CONFIDENCE_ESCALATION"]
        ticket = tickets.stored("T-1")
        assert ticket.status == TicketStatus.TRIAGED
        assert ticket.priority == TicketPriority.HIGH
        assert ticket.assignee == ADMIN.id
        assert audit_log.actions("T-1")[-1] == "ESCALATION_TRIGGERED"

    async def test_escalation_failure_does_not_fail_triage(self, make_workflow) -> None:
        tickets = FakeTicketRepository([make_ticket(**VAGUE)])

        context = await make_workflow(tickets, escalation=BrokenEscalation()).triage_ticket("T-1")

        assert context.succeeded
        assert context.escalations == []


class TestFailures:
    async def test_missing_ticket(self, make_workflow, audit_log) -> None:
        context = await make_workflow(FakeTicketRepository()).triage_ticket("T-404")

        assert context.state == WorkflowState.FAILED
        assert context.retry_count == 0
        assert "T-404" in context.error
        assert audit_log.actions("T-404") == ["TRIAGE_FAILED"]
        assert audit_log.events[0]["meta"]["failed_state"] == WorkflowState.PLANNING

    async def test_closed_ticket_is_skipped(self, make_workflow, audit_log, suggestion_repo) -> None:
        tickets = FakeTicketRepository([make_ticket(status=TicketStatus.CLOSED)])

        context = await make_workflow(tickets).triage_ticket("T-1")

        assert context.succeeded
        assert audit_log.events == []
        assert await suggestion_repo.get_by_ticket("T-1") is None

    async def test_transient_failure_is_retried(self, make_workflow, audit_log) -> None:
        tickets = FakeTicketRepository([make_ticket()])
        provider = FlakyProvider(failures=1)

        context = await make_workflow(tickets, provider=provider).triage_ticket("T-1")

        assert context.succeeded
        assert context.retry_count == 1
        actions = audit_log.actions("T-1")
        assert actions[:3] == ["TRIAGE_PLANNED", "TRIAGE_RETRY", "TRIAGE_PLANNED"]
        assert audit_log.events[1]["meta"]["failed_state"] == WorkflowState.CLASSIFYING

    async def test_retries_exhausted(self, make_workflow, audit_log) -> None:
        tickets = FakeTicketRepository([make_ticket()])

        context = await make_workflow(tickets, provider=FlakyProvider(failures=10)).triage_ticket("T-1")

        assert context.state == WorkflowState.FAILED
        assert context.retry_count == 2
        assert context.error == "provider hiccup"
        actions = audit_log.actions("T-1")
        assert actions.count("TRIAGE_RETRY") == 2
        assert actions[-1] == "TRIAGE_FAILED"
        assert tickets.stored("T-1").status == TicketStatus.OPEN


class TestBatch:
    async def test_results_in_input_order(self, make_workflow) -> None:
        tickets = FakeTicketRepository([make_ticket("T-1"), make_ticket("T-2", **UNSURE), make_ticket("T-3")])

        results = await make_workflow(tickets).process_batch(
            ["T-1", "T-2", "T-404", "T-3"], batch_size=2, pause_seconds=0
        )

        assert [r.ticket_id for r in results] == ["T-1", "T-2", "T-404", "T-3"]
        assert [r.state for r in results] == [
            WorkflowState.COMPLETED,
            WorkflowState.COMPLETED,
            WorkflowState.FAILED,
            WorkflowState.COMPLETED,
        ]
        assert [r.auto_closed for r in results] == [True, False, False, True]
