"""Shared fixtures: in-memory ports and an aiosqlite-backed database."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helpdesk_ai.config import TicketStatus, UserRole
from helpdesk_ai.core.exceptions import ConcurrencyConflictError, DuplicateSuggestionError
from helpdesk_ai.core.ports import IAuditLog, INotifier
from helpdesk_ai.knowledge.application import (
    BackendHit,
    IArticleRepository,
    IEmbeddingRepository,
    ISearchBackend,
)
from helpdesk_ai.knowledge.domain import Article, ArticleEmbedding, tokenize
from helpdesk_ai.suggestions.application import ISuggestionRepository, SuggestionListQuery
from helpdesk_ai.suggestions.domain import AgentSuggestion, ModelInfo
from helpdesk_ai.tickets.application import ITicketRepository, IUserDirectory
from helpdesk_ai.tickets.domain import Ticket, User


# ========== Tickets & users ==========

class FakeTicketRepository(ITicketRepository):
    def __init__(self, tickets: Sequence[Ticket] = ()):
        self._rows: Dict[str, Ticket] = {}
        self.saves = 0
        for ticket in tickets:
            self._rows[ticket.id] = copy.deepcopy(ticket)

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._rows.get(ticket_id)
        return copy.deepcopy(ticket) if ticket else None

    async def create(self, ticket: Ticket) -> Ticket:
        self._rows[ticket.id] = copy.deepcopy(ticket)
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        stored = self._rows.get(ticket.id)
        if stored is None or stored.version != ticket.version:
            raise ConcurrencyConflictError("Ticket", ticket.id, ticket.version)
        ticket.version += 1
        self._rows[ticket.id] = copy.deepcopy(ticket)
        self.saves += 1
        return ticket

    async def list_by_status(self, statuses, exclude_priority=None, limit=100) -> List[Ticket]:
        rows = [
            t for t in self._rows.values()
            if t.status in statuses and (exclude_priority is None or t.priority != exclude_priority)
        ]
        rows.sort(key=lambda t: t.created_at)
        return [copy.deepcopy(t) for t in rows[:limit]]

    async def count_open(self, priority=None, created_before=None) -> int:
        return sum(
            1 for t in self._rows.values()
            if not t.is_closed
            and (priority is None or t.priority == priority)
            and (created_before is None or t.created_at < created_before)
        )

    def stored(self, ticket_id: str) -> Ticket:
        return self._rows[ticket_id]


class FakeUserDirectory(IUserDirectory):
    def __init__(self, users: Sequence[User] = ()):
        self._users = list(users)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return next((u for u in self._users if u.id == user_id), None)

    async def list_admins(self) -> List[User]:
        return [u for u in self._users if u.is_active and u.is_admin]

    async def list_agents(self) -> List[User]:
        return [u for u in self._users if u.is_active and u.can_handle_tickets]


# ========== Side channels ==========

class FakeAuditLog(IAuditLog):
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def append(self, ticket_id, trace_id, actor, action, meta=None) -> None:
        self.events.append({
            "ticket_id": ticket_id,
            "trace_id": trace_id,
            "actor": actor,
            "action": action,
            "meta": meta or {},
            "created_at": datetime.now(timezone.utc),
        })

    async def count_since(self, action: str, since: datetime) -> int:
        return sum(1 for e in self.events if e["action"] == action and e["created_at"] >= since)

    def actions(self, ticket_id: Optional[str] = None) -> List[str]:
        return [e["action"] for e in self.events if ticket_id is None or e["ticket_id"] == ticket_id]


class FakeNotifier(INotifier):
    def __init__(self):
        self.sent: List[tuple] = []

    async def notify_user(self, user_id: str, event: str, payload: dict) -> None:
        self.sent.append((user_id, event, payload))

    def events_for(self, user_id: str) -> List[str]:
        return [event for uid, event, _ in self.sent if uid == user_id]


# ========== Suggestions ==========

class FakeSuggestionRepository(ISuggestionRepository):
    def __init__(self):
        self._rows: Dict[str, AgentSuggestion] = {}
        self._next_id = 0

    async def create(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        if suggestion.ticket_id in self._rows:
            raise DuplicateSuggestionError(suggestion.ticket_id)
        self._next_id += 1
        suggestion.id = suggestion.id or f"sugg-{self._next_id}"
        self._rows[suggestion.ticket_id] = copy.deepcopy(suggestion)
        return suggestion

    async def get_by_ticket(self, ticket_id: str) -> Optional[AgentSuggestion]:
        row = self._rows.get(ticket_id)
        return copy.deepcopy(row) if row else None

    async def update(self, suggestion: AgentSuggestion) -> AgentSuggestion:
        self._rows[suggestion.ticket_id] = copy.deepcopy(suggestion)
        return suggestion

    async def list(self, query: SuggestionListQuery) -> List[AgentSuggestion]:
        rows = sorted(self._rows.values(), key=lambda s: s.created_at, reverse=True)
        return [copy.deepcopy(s) for s in rows[:query.limit]]

    async def list_since(self, since: Optional[datetime]) -> List[AgentSuggestion]:
        return [
            copy.deepcopy(s) for s in self._rows.values()
            if since is None or s.created_at >= since
        ]


# ========== Knowledge ==========

class FakeArticleRepository(IArticleRepository):
    def __init__(self, articles: Sequence[Article] = ()):
        self._rows: Dict[str, Article] = {a.id: a for a in articles}

    async def get_by_id(self, article_id: str) -> Optional[Article]:
        return self._rows.get(article_id)

    async def get_many(self, article_ids: Sequence[str]) -> dict:
        return {i: self._rows[i] for i in article_ids if i in self._rows}

    async def list_published(self) -> List[Article]:
        return [a for a in self._rows.values() if a.is_published]

    async def search_text(self, terms: Sequence[str], limit: int) -> List[Article]:
        matches = []
        for article in self.published_in_order():
            words = set(tokenize(f"{article.title} {article.body} {' '.join(article.tags)}"))
            if any(term in words for term in terms):
                matches.append(article)
        return matches[:limit]

    async def search_substring(self, query: str, limit: int) -> List[Article]:
        needle = query.lower()
        return [
            a for a in self.published_in_order()
            if needle in a.title.lower() or needle in a.body.lower()
            or needle in (t.lower() for t in a.tags)
        ][:limit]

    async def save(self, article: Article) -> Article:
        self._rows[article.id] = article
        return article

    def published_in_order(self) -> List[Article]:
        return [a for a in self._rows.values() if a.is_published]


class FakeEmbeddingRepository(IEmbeddingRepository):
    def __init__(self):
        self._rows: Dict[str, ArticleEmbedding] = {}

    async def get(self, article_id: str) -> Optional[ArticleEmbedding]:
        return self._rows.get(article_id)

    async def save(self, embedding: ArticleEmbedding) -> None:
        self._rows[embedding.article_id] = embedding

    async def delete(self, article_id: str) -> bool:
        return self._rows.pop(article_id, None) is not None

    async def list_all(self) -> List[ArticleEmbedding]:
        return list(self._rows.values())


class FakeSearchBackend(ISearchBackend):
    """Backend with canned hits; ``available`` and ``fail`` toggle its health."""

    def __init__(self, available: bool = True, vector_hits=(), hybrid_hits=(), text_hits=()):
        self.available = available
        self.vector_hits = list(vector_hits)
        self.hybrid_hits = list(hybrid_hits)
        self.text_hits = list(text_hits)
        self.probes = 0
        self.indexed: List[str] = []
        self.removed: List[str] = []

    async def is_available(self) -> bool:
        self.probes += 1
        return self.available

    async def vector_search(self, vector: np.ndarray, limit: int) -> List[BackendHit]:
        return self.vector_hits[:limit]

    async def hybrid_search(self, query, vector, limit, vector_weight) -> List[BackendHit]:
        return self.hybrid_hits[:limit]

    async def text_search(self, query: str, limit: int) -> List[BackendHit]:
        return self.text_hits[:limit]

    async def index(self, embedding: ArticleEmbedding, article: Article) -> None:
        self.indexed.append(article.id)

    async def remove(self, article_id: str) -> None:
        self.removed.append(article_id)


# ========== Sample data ==========

REFUND_ARTICLE = Article(
    id="kb-refund",
    title="How to request a refund",
    body=(
        "Refunds are issued to the original payment method.\n"
        "1. Open your billing history\n"
        "2. Select the charge you want refunded\n"
        "3. Click Request refund and confirm\n"
        "Refunds usually arrive within 5 business days."
    ),
    tags=["billing", "refund", "payment"],
)

PASSWORD_ARTICLE = Article(
    id="kb-password",
    title="Resetting your password",
    body=(
        "If you cannot log in, reset your password from the login page.\n"
        "1. Click Forgot password\n"
        "2. Enter your account email\n"
        "3. Follow the link in the reset email"
    ),
    tags=["login", "password", "account"],
)

SHIPPING_ARTICLE = Article(
    id="kb-shipping",
    title="Tracking your delivery",
    body=(
        "Every shipment has a tracking number.\n"
        "- Open the order page\n"
        "- Copy the tracking number into the carrier website\n"
        "Delayed packages are usually delivered within 48 hours."
    ),
    tags=["shipping", "delivery", "tracking"],
)


def make_ticket(
    ticket_id: str = "T-1",
    title: str = "Cannot log in",
    description: str = "The app shows an error when I try to log in with my password",
    category: str = "tech",
    status: str = TicketStatus.OPEN,
    age_hours: float = 0.0,
    **kwargs,
) -> Ticket:
    created = datetime.now(timezone.utc) - timedelta(hours=age_hours)
    return Ticket(
        id=ticket_id,
        title=title,
        description=description,
        created_by=kwargs.pop("created_by", "user-1"),
        category=category,
        status=status,
        created_at=created,
        updated_at=created,
        **kwargs,
    )


def make_suggestion(
    ticket_id: str = "T-1",
    confidence: float = 0.9,
    predicted_category: str = "tech",
    **kwargs,
) -> AgentSuggestion:
    return AgentSuggestion(
        ticket_id=ticket_id,
        predicted_category=predicted_category,
        article_ids=kwargs.pop("article_ids", ["kb-password"]),
        draft_reply=kwargs.pop("draft_reply", "Please reset your password from the login page."),
        confidence=confidence,
        model_info=ModelInfo(provider="stub", model="keyword-rules-v1", prompt_version="v1", latency_ms=12),
        **kwargs,
    )


ADMIN = User(id="admin-1", name="Ada Admin", role=UserRole.ADMIN)
AGENT_A = User(id="agent-a", name="Agent A", role=UserRole.AGENT)
AGENT_B = User(id="agent-b", name="Agent B", role=UserRole.AGENT)
CUSTOMER = User(id="user-1", name="Casey Customer", role=UserRole.USER)


# ========== Fixtures ==========

@pytest.fixture
def audit_log() -> FakeAuditLog:
    return FakeAuditLog()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def users() -> FakeUserDirectory:
    return FakeUserDirectory([ADMIN, AGENT_A, AGENT_B, CUSTOMER])


@pytest.fixture
def suggestion_repo() -> FakeSuggestionRepository:
    return FakeSuggestionRepository()


@pytest.fixture
def article_repo() -> FakeArticleRepository:
    return FakeArticleRepository([REFUND_ARTICLE, PASSWORD_ARTICLE, SHIPPING_ARTICLE])


@pytest.fixture
def embedding_repo() -> FakeEmbeddingRepository:
    return FakeEmbeddingRepository()


@pytest.fixture
async def session_maker():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    # Import models so their tables register on Base.metadata
    from helpdesk_ai.infrastructure.database import Base
    import helpdesk_ai.knowledge.infrastructure.models  # noqa: F401
    import helpdesk_ai.tickets.infrastructure.models  # noqa: F401
    import helpdesk_ai.suggestions.infrastructure.models  # noqa: F401
    import helpdesk_ai.shared.infrastructure.audit  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
