"""
Knowledge Module
================

Bounded Context for knowledge-base retrieval.

Responsibilities:
- Embed published articles and keep embeddings fresh
- Rank articles for a ticket query through a fallback chain of search tiers
- Assemble a token-bounded context for reply drafting
"""
