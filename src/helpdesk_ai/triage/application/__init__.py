"""
Triage Application Layer
========================

Contains:
- Services: KeywordClassifier, ReplyDrafter, KeywordLLMProvider, TriageWorkflow
- Provider interface: ILLMProvider
"""

from helpdesk_ai.triage.application.services import (
    ILLMProvider,
    KeywordClassifier,
    ReplyDrafter,
    KeywordLLMProvider,
)
from helpdesk_ai.triage.application.workflow import TriageWorkflow

__all__ = [
    "ILLMProvider",
    "KeywordClassifier",
    "ReplyDrafter",
    "KeywordLLMProvider",
    "TriageWorkflow",
]
