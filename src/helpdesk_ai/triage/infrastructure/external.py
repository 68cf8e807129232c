"""
Triage External Providers
=========================

LLM-backed implementation of ``ILLMProvider``.

The model is asked for JSON. Out-of-range numbers are clamped; output that
cannot be parsed falls back to the keyword provider so triage still
produces a result.
"""

import json
from typing import List, Optional, Sequence

from helpdesk_ai.config import LLMProviderName, TicketCategory, VALID_CATEGORIES, settings
from helpdesk_ai.core.exceptions import ConfigurationException
from helpdesk_ai.infrastructure.llm import ILLMClient, OpenAILLMClient
from helpdesk_ai.knowledge.domain import Article
from helpdesk_ai.shared.infrastructure.logging import get_logger
from helpdesk_ai.triage.application.services import ILLMProvider, KeywordLLMProvider
from helpdesk_ai.triage.domain import ClassificationResult, DraftResult

logger = get_logger(__name__)


class TriagePromptBuilder:
    """
    Builds prompts for classification and drafting.

    All prompt text lives here.
    """

    CLASSIFY_SYSTEM_PROMPT = """You are a support ticket classifier.

Classify the ticket into exactly one category:
- billing: payments, refunds, invoices, subscriptions, charges
- tech: errors, bugs, crashes, outages, things not working
- shipping: deliveries, tracking, lost or damaged packages, addresses
- other: accounts, logins, general questions

Respond with a JSON object: {"category": "<billing|tech|shipping|other>", "confidence": <0.0-1.0>}"""

    DRAFT_SYSTEM_PROMPT = """You are a friendly, precise customer support agent.

Write a reply to the customer's ticket using ONLY the knowledge-base articles provided.
Give concrete numbered steps. Do not invent policies.

Respond with a JSON object:
{"reply": "<full reply text>", "citations": ["<article id>", ...], "confidence": <0.0-1.0>}
Cite at most 3 article ids, most relevant first."""

    @staticmethod
    def classify_messages(text: str) -> List[dict]:
        return [
            {"role": "system", "content": TriagePromptBuilder.CLASSIFY_SYSTEM_PROMPT},
            {"role": "user", "content": f"Ticket:\n{text}"},
        ]

    @staticmethod
    def draft_messages(text: str, articles: Sequence[Article]) -> List[dict]:
        kb = "\n\n".join(
            f"[{article.id}] {article.title}\n{article.body[:1500]}" for article in articles
        ) or "(no articles found)"
        return [
            {"role": "system", "content": TriagePromptBuilder.DRAFT_SYSTEM_PROMPT},
            {"role": "user", "content": f"Knowledge base:\n{kb}\n\n---\n\nTicket:\n{text}"},
        ]


def _parse_json(content: str) -> dict:
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]
    data = json.loads(content.strip())
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _clamp(value, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


class OpenAILLMProvider(ILLMProvider):
    """Classify and draft with an OpenAI chat model."""

    provider_name = LLMProviderName.OPENAI

    def __init__(
        self,
        client: Optional[ILLMClient] = None,
        fallback: Optional[ILLMProvider] = None
    ):
        self._client = client or OpenAILLMClient()
        self._fallback = fallback or KeywordLLMProvider()
        self.model_name = self._client.model

    async def classify(self, text: str) -> ClassificationResult:
        response = await self._client.chat_completion(
            TriagePromptBuilder.classify_messages(text),
            temperature=0.0,
            max_tokens=100,
            operation="classification",
            json_mode=True,
        )
        try:
            data = _parse_json(response.content)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning("Unparseable classification, using keyword rules", extra={"error": str(e)})
            return await self._fallback.classify(text)

        category = str(data.get("category", "")).lower()
        if category not in VALID_CATEGORIES:
            category = TicketCategory.OTHER
        return ClassificationResult(
            predicted_category=category,
            confidence=_clamp(data.get("confidence"), 0.0, 1.0, 0.5),
        )

    async def draft(self, text: str, articles: Sequence[Article]) -> DraftResult:
        articles = list(articles)
        response = await self._client.chat_completion(
            TriagePromptBuilder.draft_messages(text, articles),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            operation="draft",
            json_mode=True,
        )
        try:
            data = _parse_json(response.content)
            reply = str(data["reply"]).strip()
            if not reply:
                raise ValueError("empty reply")
        except (ValueError, KeyError, json.JSONDecodeError) as e:
            logger.warning("Unparseable draft, using template drafter", extra={"error": str(e)})
            return await self._fallback.draft(text, articles)

        known = {article.id for article in articles}
        citations = [str(c) for c in data.get("citations") or [] if str(c) in known][:3]
        return DraftResult(
            draft_reply=reply[:5000],
            citations=citations,
            confidence=_clamp(data.get("confidence"), 0.3, 0.95, 0.5),
        )


def build_llm_provider(provider: Optional[str] = None) -> ILLMProvider:
    """Provider selected by ``settings.llm_provider``."""
    provider = provider or settings.llm_provider
    if provider == LLMProviderName.OPENAI:
        try:
            return OpenAILLMProvider()
        except ConfigurationException as e:
            logger.warning("OpenAI provider unavailable, using keyword rules", extra={"error": str(e)})
    return KeywordLLMProvider()
