"""
Outbound Ports
==============

Interfaces for the side channels every module writes to.

Both are append/emit only: the audit log never updates an entry, and
``notify_user`` is allowed to return before the notification is delivered.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional


class IAuditLog(ABC):
    """Immutable audit event sink."""

    @abstractmethod
    async def append(
        self,
        ticket_id: str,
        trace_id: Optional[str],
        actor: str,
        action: str,
        meta: Optional[dict[str, Any]] = None
    ) -> None:
        """Append an audit event."""

    @abstractmethod
    async def count_since(self, action: str, since: datetime) -> int:
        """Number of ``action`` events recorded at or after ``since``."""


class INotifier(ABC):
    """Per-user notification sink."""

    @abstractmethod
    async def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        """Emit ``event`` to ``user_id``. Delivery is not awaited."""
