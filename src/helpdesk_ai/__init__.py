"""
Helpdesk AI
===========

Automated support-ticket triage: classification, knowledge-base retrieval,
reply drafting, and confidence-driven auto-close / escalation.
"""

__version__ = "1.0.0"
