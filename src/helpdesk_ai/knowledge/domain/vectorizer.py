"""
Vectorizer
==========

Deterministic text-to-vector feature extractor.

No model is loaded: a vector is assembled from three bands of hand-built
features and then L2-normalized.

Layout for the default 384 dimensions (bands scale with the dimension):
- ``[0, 200)``    word features, each distinct word hashed into a bucket
- ``[200, 300)``  support-domain category scores, cycled over the band
- ``[300, 384)``  statistical features of the raw text, cycled over the band
"""

import hashlib
import re
from collections import Counter
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from helpdesk_ai.config import settings
from helpdesk_ai.core.exceptions import DimensionMismatchError, EmptyInputError
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"[.!?]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")

CATEGORY_KEYWORDS = {
    "billing": (
        "payment", "charge", "refund", "billing", "invoice",
        "money", "cost", "price", "fee", "subscription",
    ),
    "technical": (
        "error", "bug", "login", "password", "access",
        "system", "application", "website", "loading", "connection",
    ),
    "shipping": (
        "delivery", "shipping", "package", "tracking", "order",
        "shipment", "address", "carrier", "fedex", "ups",
    ),
    "support": (
        "help", "support", "assistance", "question",
        "issue", "problem", "trouble", "difficulty",
    ),
}


def preprocess(text: str) -> str:
    """Lowercase, replace punctuation with spaces, collapse whitespace."""
    cleaned = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def tokenize(text: str) -> List[str]:
    """Words longer than two characters after preprocessing."""
    return [word for word in preprocess(text).split(" ") if len(word) > 2]


def _stable_bucket(word: str, buckets: int) -> int:
    digest = hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % buckets


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors.

    Returns 0.0 when either vector is all zeros.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.size, vb.size)

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def fit_dimension(vector: Sequence[float], dimension: int) -> np.ndarray:
    """Truncate or zero-pad a foreign vector to ``dimension``."""
    arr = np.nan_to_num(np.asarray(vector, dtype=np.float64), nan=0.0, posinf=0.0, neginf=0.0)
    if arr.size == dimension:
        return arr
    logger.warning(
        "Correcting embedding dimension",
        extra={"actual_dimension": int(arr.size), "expected_dimension": dimension}
    )
    if arr.size > dimension:
        return arr[:dimension].copy()
    return np.concatenate([arr, np.zeros(dimension - arr.size, dtype=np.float64)])


def chunk_spans(text: str, max_size: int, overlap: int = 0) -> List[Tuple[int, int]]:
    """
    Sliding-window ``(start, end)`` spans over ``text``.

    A window ends just after the last ``.``, ``?`` or ``!`` found in its
    second half, otherwise at ``max_size``. The next window starts
    ``overlap`` characters before the previous end and always moves
    forward by at least one character. A piece with ten or fewer non-blank
    characters is folded into the previous span when that adds at most ten
    characters, and dropped otherwise, so no span exceeds ``max_size + 10``.

    Raises:
        ValueError: If ``max_size`` is less than 1
    """
    if max_size < 1:
        raise ValueError("max_size must be at least 1")
    overlap = max(0, overlap)
    length = len(text)
    if length <= max_size:
        return [(0, length)] if text.strip() else []

    spans: List[Tuple[int, int]] = []
    start = 0
    while start < length:
        end = min(start + max_size, length)
        if end < length:
            window = text[start:end]
            boundary = max(window.rfind("."), window.rfind("?"), window.rfind("!"))
            if boundary > max_size * 0.5:
                end = start + boundary + 1

        if len(text[start:end].strip()) > 10:
            spans.append((start, end))
        elif spans and end - spans[-1][1] <= 10:
            spans[-1] = (spans[-1][0], end)

        if end >= length:
            break
        start = max(end - overlap, start + 1)
    return spans


def chunk_text(text: str, max_size: int, overlap: int = 0) -> List[str]:
    """Split ``text`` into overlapping chunks of roughly ``max_size`` characters."""
    if len(text) <= max_size:
        return [text]
    return [text[start:end] for start, end in chunk_spans(text, max_size, overlap)]


class Vectorizer:
    """
    Deterministic embedding generator.

    The same text always yields a byte-identical vector of ``dimension``
    finite floats with unit L2 norm (or all zeros).
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension or settings.embedding_dimension
        self._word_end = self.dimension * 200 // 384
        self._semantic_end = self.dimension * 300 // 384

    def embed(self, text: str) -> np.ndarray:
        """
        Embed one text.

        Raises:
            EmptyInputError: If ``text`` is empty or whitespace
        """
        if not text or not text.strip():
            raise EmptyInputError()

        words = tokenize(text)
        vector = np.zeros(self.dimension, dtype=np.float64)

        self._add_word_features(vector, words)
        self._add_semantic_features(vector, words)
        self._add_statistical_features(vector, text, words)

        vector = np.nan_to_num(vector, nan=0.0, posinf=0.0, neginf=0.0)
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector = vector / norm
        return vector

    def embed_batch(self, texts: Iterable[str]) -> List[np.ndarray]:
        """Embed many texts; a failing item yields a zero vector."""
        vectors = []
        for index, text in enumerate(texts):
            try:
                vectors.append(self.embed(text))
            except Exception as e:
                logger.warning(
                    "Embedding failed for batch item, using zero vector",
                    extra={"index": index, "error": str(e)}
                )
                vectors.append(np.zeros(self.dimension, dtype=np.float64))
        return vectors

    def fit(self, vector: Sequence[float]) -> np.ndarray:
        """Coerce a vector from any source to this vectorizer's dimension."""
        return fit_dimension(vector, self.dimension)

    # ========== Feature bands ==========

    def _add_word_features(self, vector: np.ndarray, words: List[str]) -> None:
        if not words or self._word_end == 0:
            return
        for word, freq in Counter(words).items():
            weight = 1.2 if len(word) > 5 else 1.0
            vector[_stable_bucket(word, self._word_end)] += freq * weight / 10.0

    def _add_semantic_features(self, vector: np.ndarray, words: List[str]) -> None:
        band = self._semantic_end - self._word_end
        if band <= 0:
            return
        counts = Counter(words)
        scores = []
        for keywords in CATEGORY_KEYWORDS.values():
            total = sum(counts[k] + 0.5 for k in keywords if counts[k])
            scores.append(total / len(keywords))
        for offset in range(band):
            vector[self._word_end + offset] = scores[offset % len(scores)]

    def _add_statistical_features(self, vector: np.ndarray, text: str, words: List[str]) -> None:
        band = self.dimension - self._semantic_end
        if band <= 0:
            return

        length = len(text)
        raw_words = text.split()
        sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
        avg_sentence_words = (
            sum(len(s.split()) for s in sentences) / len(sentences) if sentences else 0.0
        )

        features = [
            length / 1000.0,
            len(raw_words) / 100.0,
            sum(1 for c in text if c.isupper()) / length,
            sum(1 for c in text if c.isdigit()) / length,
            len(_SENTENCE_END.findall(text)) / length,
            len(set(words)) / len(words) if words else 0.0,
            (sum(len(w) for w in raw_words) / len(raw_words) / 10.0) if raw_words else 0.0,
            min(avg_sentence_words / 20.0, 1.0),
        ]
        for offset in range(band):
            vector[self._semantic_end + offset] = features[offset % len(features)]
