"""
Suggestion Infrastructure Layer
===============================

SQLAlchemy model and repository for agent suggestions.
"""
