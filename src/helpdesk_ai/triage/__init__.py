"""
AI Triage Module
================

Bounded Context for ticket classification and reply drafting.

Responsibilities:
- Classify tickets into billing / tech / shipping / other
- Draft a reply grounded in retrieved knowledge-base articles
- Run the end-to-end triage workflow: classify, retrieve, draft, persist,
  then auto-close or hand off to a human, then evaluate escalation
"""
