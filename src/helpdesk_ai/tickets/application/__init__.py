"""
Ticket Application Layer
========================

Repository interfaces for tickets and users.
"""

from helpdesk_ai.tickets.application.services import ITicketRepository, IUserDirectory

__all__ = ["ITicketRepository", "IUserDirectory"]
