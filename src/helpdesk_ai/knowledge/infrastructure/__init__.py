"""
Knowledge Infrastructure Layer
==============================

SQLAlchemy models and repositories for articles and their embeddings.
"""
