"""
Triage Application Services
============================

Keyword classification and reply drafting, plus the provider interface the
triage workflow depends on.

Both services are deterministic: the same ticket text and articles always
produce the same category, confidence and draft.
"""

import hashlib
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from helpdesk_ai.config import LLMProviderName, TicketCategory
from helpdesk_ai.knowledge.domain import Article
from helpdesk_ai.triage.domain import ClassificationResult, DraftResult
from helpdesk_ai.triage.domain.value_objects import (
    ACTION_VERBS,
    BASE_ACTION_STEPS,
    BASE_CONFIDENCE,
    CATEGORY_KEYWORDS,
    CATEGORY_PRECEDENCE,
    CONFIDENCE_STEPS,
    FOLLOW_UP_HIGH,
    FOLLOW_UP_LOW,
    FOLLOW_UP_MEDIUM,
    IMPORTANT_NOTES,
    MAX_CLASSIFY_CONFIDENCE,
    REPLY_OPENINGS,
    SIGN_OFF,
)

MAX_DRAFT_LENGTH = 5000
MAX_STEPS = 4

_NUMBERED_LINE = re.compile(r"^\s*\d+[.)]\s+(.+)$")
_BULLET_LINE = re.compile(r"^\s*[-*•]\s+(.+)$")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _stable_index(text: str, size: int) -> int:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % size


# ========== Provider Interface ==========

class ILLMProvider(ABC):
    """
    Interface for classify/draft providers.

    Following Interface Segregation Principle - only the two operations the
    workflow needs.
    """

    provider_name: str
    model_name: str

    @abstractmethod
    async def classify(self, text: str) -> ClassificationResult:
        """Predict the ticket category."""

    @abstractmethod
    async def draft(self, text: str, articles: Sequence[Article]) -> DraftResult:
        """Draft a reply grounded in ``articles`` (ranked, best first)."""


# ========== Application Services ==========

class KeywordClassifier:
    """
    Rule-based category classifier.

    Each category keyword found in the lowercased text scores 1, or 2 when
    it appears as a whole word. The highest score wins; ties go to
    tech, then billing, then shipping, then other.
    """

    def score(self, text: str) -> dict[str, int]:
        lowered = text.lower()
        scores: dict[str, int] = {}
        for category, keywords in CATEGORY_KEYWORDS.items():
            total = 0
            for keyword in keywords:
                if keyword in lowered:
                    whole_word = re.search(rf"\b{re.escape(keyword)}\b", lowered)
                    total += 2 if whole_word else 1
            scores[category] = total
        return scores

    def classify(self, text: str) -> ClassificationResult:
        scores = self.score(text)
        best = max(scores.values()) if scores else 0

        if best == 0:
            category = TicketCategory.OTHER
        else:
            category = next(c for c in CATEGORY_PRECEDENCE if scores.get(c) == best)

        confidence = BASE_CONFIDENCE
        for minimum, step in CONFIDENCE_STEPS:
            if best >= minimum:
                confidence = step
                break
        confidence += min(0.15, len(text.split()) / 80)

        return ClassificationResult(
            predicted_category=category,
            confidence=round(min(MAX_CLASSIFY_CONFIDENCE, confidence), 4),
            scores=scores,
        )


class ReplyDrafter:
    """
    Template-based reply drafter.

    Action steps are pulled from the top two articles (numbered lines,
    then bullets, then sentences with category action verbs) and padded
    with generic category steps up to four.
    """

    def __init__(self, classifier: Optional[KeywordClassifier] = None):
        self._classifier = classifier or KeywordClassifier()

    def draft(
        self,
        text: str,
        articles: Sequence[Article],
        classification: Optional[ClassificationResult] = None
    ) -> DraftResult:
        """
        Draft a reply for ``text``.

        Args:
            text: Ticket text
            articles: Ranked articles, best first
            classification: Reuse an existing classification instead of re-classifying

        Returns:
            DraftResult with confidence in [0.3, 0.95]
        """
        classification = classification or self._classifier.classify(text)
        category = classification.predicted_category
        articles = list(articles)
        cited = articles[:2]
        citations = [article.id for article in articles[:3]]

        confidence = classification.confidence + min(0.15, 0.05 * len(articles))
        if len(text.strip()) < 20:
            confidence -= 0.1
        if citations:
            confidence += 0.1
        confidence = round(_clamp(confidence, 0.3, 0.95), 4)

        openings = REPLY_OPENINGS[category]
        sections = [openings[_stable_index(text, len(openings))]]

        steps = self.extract_steps(cited, category)
        sections.append(
            "Here's what you can do:\n"
            + "\n".join(f"{n}. {step}" for n, step in enumerate(steps, start=1))
        )

        if cited:
            sections.append(
                "Helpful resources:\n"
                + "\n".join(f"- {article.title}: {self._summary(article)}" for article in cited)
            )

        sections.append(f"Important: {IMPORTANT_NOTES[category]}")

        if confidence > 0.8:
            sections.append(FOLLOW_UP_HIGH)
        elif confidence > 0.6:
            sections.append(FOLLOW_UP_MEDIUM)
        else:
            sections.append(FOLLOW_UP_LOW)

        sections.append(SIGN_OFF)
        reply = "\n\n".join(sections)

        return DraftResult(
            draft_reply=reply[:MAX_DRAFT_LENGTH],
            citations=citations,
            confidence=confidence,
        )

    def extract_steps(self, articles: Sequence[Article], category: str) -> List[str]:
        steps: List[str] = []
        for article in articles:
            for step in self._steps_from_body(article.body, category):
                if step not in steps:
                    steps.append(step)
                if len(steps) >= MAX_STEPS:
                    return steps

        for step in BASE_ACTION_STEPS[category]:
            if len(steps) >= MAX_STEPS:
                break
            if step not in steps:
                steps.append(step)
        return steps

    @staticmethod
    def _steps_from_body(body: str, category: str) -> List[str]:
        lines = body.splitlines()

        numbered = [m.group(1).strip() for m in map(_NUMBERED_LINE.match, lines) if m]
        if numbered:
            return [s[:200] for s in numbered]

        bullets = [m.group(1).strip() for m in map(_BULLET_LINE.match, lines) if m]
        if bullets:
            return [s[:200] for s in bullets]

        verbs = ACTION_VERBS[category]
        sentences = []
        for sentence in _SENTENCE_BOUNDARY.split(" ".join(body.split())):
            words = re.findall(r"[a-z]+", sentence.lower())
            if any(verb in words for verb in verbs):
                sentences.append(sentence.strip()[:200])
        return sentences

    @staticmethod
    def _summary(article: Article) -> str:
        flat = " ".join(article.body.split())
        first = _SENTENCE_BOUNDARY.split(flat, maxsplit=1)[0] if flat else ""
        return first if len(first) <= 120 else first[:117] + "..."


class KeywordLLMProvider(ILLMProvider):
    """Deterministic provider backed by the keyword classifier and template drafter."""

    provider_name = LLMProviderName.STUB
    model_name = "keyword-rules-v1"

    def __init__(
        self,
        classifier: Optional[KeywordClassifier] = None,
        drafter: Optional[ReplyDrafter] = None
    ):
        self._classifier = classifier or KeywordClassifier()
        self._drafter = drafter or ReplyDrafter(self._classifier)

    async def classify(self, text: str) -> ClassificationResult:
        return self._classifier.classify(text)

    async def draft(self, text: str, articles: Sequence[Article]) -> DraftResult:
        return self._drafter.draft(text, articles)
