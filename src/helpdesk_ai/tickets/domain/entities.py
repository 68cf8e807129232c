"""
Ticket Domain Entities
======================

Tickets, replies and users as the triage pipeline sees them.

Tickets carry a ``version`` used for optimistic concurrency: a save based
on a stale copy is rejected by the repository.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from helpdesk_ai.config import (
    AuthorType,
    CLOSED_STATUSES,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    UserRole,
    VALID_CATEGORIES,
    VALID_PRIORITIES,
    VALID_STATUSES,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Reply:
    """A message appended to a ticket thread."""
    author_id: Optional[str]
    author_type: str
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    id: Optional[str] = None  # None until persisted


@dataclass
class Ticket:
    """
    Support ticket.

    The pipeline mutates only status, priority, assignee and replies.
    """
    id: str
    title: str
    description: str
    created_by: str
    category: str = TicketCategory.OTHER
    status: str = TicketStatus.OPEN
    priority: str = TicketPriority.MEDIUM
    assignee: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None
    replies: List[Reply] = field(default_factory=list)
    version: int = 1

    def __post_init__(self):
        """Validate ticket fields."""
        if self.category not in VALID_CATEGORIES:
            raise ValueError(f"Invalid category: {self.category}")
        if self.status not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {self.status}")
        if self.priority not in VALID_PRIORITIES:
            raise ValueError(f"Invalid priority: {self.priority}")

    @property
    def text(self) -> str:
        """Text classified and used as the retrieval query."""
        return f"{self.title}\n{self.description}"

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def age_hours(self, now: Optional[datetime] = None) -> float:
        now = now or _utcnow()
        return (now - self.created_at).total_seconds() / 3600

    def add_reply(self, content: str, author_type: str = AuthorType.AGENT, author_id: Optional[str] = None) -> Reply:
        reply = Reply(author_id=author_id, author_type=author_type, content=content)
        self.replies.append(reply)
        self.touch()
        return reply

    def assign_to(self, user_id: str) -> None:
        self.assignee = user_id
        self.touch()

    def set_status(self, status: str) -> None:
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        self.status = status
        self.touch()

    def set_priority(self, priority: str) -> None:
        if priority not in VALID_PRIORITIES:
            raise ValueError(f"Invalid priority: {priority}")
        self.priority = priority
        self.touch()

    def resolve(self) -> None:
        self.status = TicketStatus.RESOLVED
        self.resolved_at = _utcnow()
        self.touch()

    def touch(self) -> None:
        self.updated_at = _utcnow()


@dataclass
class User:
    """Entry in the user directory."""
    id: str
    name: str
    role: str = UserRole.USER
    email: Optional[str] = None
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_handle_tickets(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.AGENT)
