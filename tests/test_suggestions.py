"""Tests for suggestion storage, agent feedback and metrics."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeTicketRepository, make_suggestion, make_ticket
from helpdesk_ai.config import AuthorType, FeedbackAction, TicketStatus
from helpdesk_ai.core.exceptions import (
    DuplicateSuggestionError,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk_ai.suggestions.application import (
    SuggestionListQuery,
    SuggestionService,
    performance_rating,
)
from helpdesk_ai.suggestions.domain import ModelInfo
from helpdesk_ai.triage.domain import ClassificationResult, DraftResult

MODEL_INFO = ModelInfo(provider="stub", model="keyword-rules-v1", prompt_version="v1", latency_ms=40)


@pytest.fixture
def tickets() -> FakeTicketRepository:
    return FakeTicketRepository([make_ticket()])


@pytest.fixture
def service(suggestion_repo, tickets, audit_log, notifier) -> SuggestionService:
    return SuggestionService(suggestion_repo, tickets, audit_log, notifier)


def draft(confidence: float = 0.82) -> DraftResult:
    return DraftResult(
        draft_reply="Please reset your password from the login page.",
        citations=["kb-password"],
        confidence=confidence,
    )


class TestSuggestionEntity:
    def test_confidence_is_rounded(self) -> None:
        assert make_suggestion(confidence=0.123456).confidence == 0.123

    def test_auto_closed_requires_confidence(self) -> None:
        with pytest.raises(ValidationException):
            make_suggestion(confidence=0.65, auto_closed=True)

    def test_short_draft_rejected(self) -> None:
        with pytest.raises(ValidationException):
            make_suggestion(draft_reply="Hi")

    def test_invalid_provider(self) -> None:
        with pytest.raises(ValidationException):
            ModelInfo(provider="mystery", model="m", prompt_version="v1", latency_ms=1)

    def test_latency_limit(self) -> None:
        with pytest.raises(ValidationException):
            ModelInfo(provider="stub", model="m", prompt_version="v1", latency_ms=300_001)

    @pytest.mark.parametrize("confidence, level", [(0.85, "high"), (0.5, "medium"), (0.49, "low")])
    def test_confidence_level(self, confidence, level) -> None:
        assert make_suggestion(confidence=confidence).confidence_level == level


class TestCreate:
    async def test_create(self, service) -> None:
        classification = ClassificationResult(predicted_category="tech", confidence=0.9)

        suggestion = await service.create("T-1", classification, draft(), MODEL_INFO, ["kb-password"])

        assert suggestion.id == "sugg-1"
        assert suggestion.predicted_category == "tech"
        assert suggestion.confidence == 0.82
        assert (await service.get("T-1")).article_ids == ["kb-password"]

    async def test_duplicate(self, service) -> None:
        classification = ClassificationResult(predicted_category="tech", confidence=0.9)
        await service.create("T-1", classification, draft(), MODEL_INFO, [])

        with pytest.raises(DuplicateSuggestionError):
            await service.create("T-1", classification, draft(), MODEL_INFO, [])

    async def test_mark_auto_closed(self, service, suggestion_repo) -> None:
        await suggestion_repo.create(make_suggestion(confidence=0.85))
        suggestion = await service.mark_auto_closed("T-1")
        assert suggestion.auto_closed is True
        assert (await suggestion_repo.get_by_ticket("T-1")).auto_closed is True

    async def test_mark_auto_closed_low_confidence(self, service, suggestion_repo) -> None:
        await suggestion_repo.create(make_suggestion(confidence=0.6))
        with pytest.raises(ValidationException):
            await service.mark_auto_closed("T-1")


class TestFeedback:
    async def test_accept_unchanged(self, service, suggestion_repo, tickets, audit_log, notifier) -> None:
        await suggestion_repo.create(make_suggestion())

        result = await service.accept("T-1", "agent-a", trace_id="trace-9")
        suggestion = result.suggestion

        assert suggestion.latest_feedback.action == FeedbackAction.ACCEPT
        assert suggestion.latest_feedback.edited_reply is None
        assert result.ticket.status == TicketStatus.RESOLVED
        assert result.ticket.resolved_at is not None
        ticket = tickets.stored("T-1")
        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.resolved_at is not None
        assert ticket.replies[-1].content == "Please reset your password from the login page."
        assert ticket.replies[-1].author_type == AuthorType.AGENT
        assert audit_log.actions("T-1") == ["REPLY_SENT", "TICKET_RESOLVED"]
        assert notifier.events_for("user-1") == ["ticket_status"]

    async def test_accept_with_edit_is_modify(self, service, suggestion_repo, tickets) -> None:
        await suggestion_repo.create(make_suggestion())

        suggestion = (await service.accept("T-1", "agent-a", edited_reply="  Use the Forgot password link.  ")).suggestion

        assert suggestion.latest_feedback.action == FeedbackAction.MODIFY
        assert suggestion.latest_feedback.edited_reply == "Use the Forgot password link."
        assert tickets.stored("T-1").replies[-1].content == "Use the Forgot password link."
        assert suggestion.draft_reply == "Please reset your password from the login page."

    async def test_blank_edit_counts_as_accept(self, service, suggestion_repo) -> None:
        await suggestion_repo.create(make_suggestion())
        suggestion = (await service.accept("T-1", "agent-a", edited_reply="   ")).suggestion
        assert suggestion.latest_feedback.action == FeedbackAction.ACCEPT

    async def test_reject(self, service, suggestion_repo, tickets, audit_log) -> None:
        await suggestion_repo.create(make_suggestion())

        result = await service.reject("T-1", "agent-b", feedback="Wrong article")
        suggestion = result.suggestion

        assert suggestion.latest_feedback.action == FeedbackAction.REJECT
        assert suggestion.latest_feedback.comment == "Wrong article"
        assert suggestion.was_accepted is False
        assert result.ticket.status == TicketStatus.WAITING_HUMAN
        assert tickets.stored("T-1").status == TicketStatus.WAITING_HUMAN
        assert audit_log.actions("T-1") == ["SUGGESTION_REJECTED"]

    async def test_reject_keeps_resolved_status(self, suggestion_repo, audit_log, notifier) -> None:
        tickets = FakeTicketRepository([make_ticket(status=TicketStatus.RESOLVED)])
        service = SuggestionService(suggestion_repo, tickets, audit_log, notifier)
        await suggestion_repo.create(make_suggestion())

        result = await service.reject("T-1", "agent-b")

        assert result.ticket.status == TicketStatus.RESOLVED
        assert tickets.stored("T-1").status == TicketStatus.RESOLVED
        assert tickets.saves == 0

    async def test_missing_suggestion(self, service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await service.accept("T-1", "agent-a")

    async def test_missing_ticket(self, service, suggestion_repo) -> None:
        await suggestion_repo.create(make_suggestion(ticket_id="T-404"))
        with pytest.raises(ResourceNotFoundException):
            await service.reject("T-404", "agent-a")


class TestMetrics:
    async def test_no_data(self, service) -> None:
        metrics = await service.metrics()

        assert metrics.total_suggestions == 0
        assert metrics.auto_close_rate == 0.0
        assert metrics.performance_rating == "no_data"
        assert metrics.timeframe_hours is None

    async def test_aggregates(self, service, suggestion_repo) -> None:
        await suggestion_repo.create(make_suggestion("T-1", 0.875, "tech", auto_closed=True))
        await suggestion_repo.create(make_suggestion("T-2", 0.625, "billing"))
        await suggestion_repo.create(make_suggestion("T-3", 0.75, "billing"))

        metrics = await service.metrics()

        assert metrics.total_suggestions == 3
        assert metrics.auto_closed_count == 1
        assert metrics.auto_close_rate == 0.333
        assert metrics.average_confidence == 0.75
        assert metrics.performance_rating == "good"
        assert list(metrics.category_breakdown) == ["billing", "tech"]
        assert metrics.category_breakdown["billing"].count == 2
        assert metrics.category_breakdown["billing"].average_confidence == pytest.approx(0.6875, abs=1e-3)
        assert metrics.category_breakdown["tech"].auto_close_rate == 1.0

    async def test_feedback_counts(self, suggestion_repo, audit_log, notifier) -> None:
        tickets = FakeTicketRepository([make_ticket("T-1"), make_ticket("T-2")])
        service = SuggestionService(suggestion_repo, tickets, audit_log, notifier)
        await suggestion_repo.create(make_suggestion("T-1"))
        await suggestion_repo.create(make_suggestion("T-2"))
        await service.accept("T-1", "agent-a", edited_reply="A rewritten answer for the customer.")
        await service.reject("T-2", "agent-b")

        metrics = await service.metrics()

        assert metrics.feedback_counts == {"accept": 0, "modify": 1, "reject": 1}

    async def test_timeframe(self, service, suggestion_repo) -> None:
        old = datetime.now(timezone.utc) - timedelta(days=3)
        await suggestion_repo.create(make_suggestion("T-1", 0.95, created_at=old))
        await suggestion_repo.create(make_suggestion("T-2", 0.55))

        metrics = await service.metrics(timedelta(hours=24))

        assert metrics.total_suggestions == 1
        assert metrics.performance_rating == "poor"
        assert metrics.timeframe_hours == 24.0


class TestPerformanceRating:
    @pytest.mark.parametrize("average, expected", [
        (0.9, "excellent"),
        (0.75, "good"),
        (0.6, "fair"),
        (0.59, "poor"),
    ])
    def test_bands(self, average, expected) -> None:
        assert performance_rating(average, total=10) == expected

    def test_no_suggestions(self) -> None:
        assert performance_rating(0.0, total=0) == "no_data"


class TestListQuery:
    def test_range_validation(self) -> None:
        with pytest.raises(ValueError):
            SuggestionListQuery(min_confidence=0.8, max_confidence=0.2)
