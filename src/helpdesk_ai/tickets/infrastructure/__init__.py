"""
Ticket Infrastructure Layer
===========================

SQLAlchemy models and repositories for tickets, replies and users.
"""
