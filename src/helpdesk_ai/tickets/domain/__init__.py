"""
Ticket Domain Layer
===================

Contains the Ticket, Reply and User entities.
"""

from helpdesk_ai.tickets.domain.entities import Ticket, Reply, User

__all__ = ["Ticket", "Reply", "User"]
