"""Tests for knowledge.domain.vectorizer."""

import numpy as np
import pytest

from helpdesk_ai.core.exceptions import DimensionMismatchError, EmptyInputError
from helpdesk_ai.knowledge.domain import (
    Vectorizer,
    chunk_spans,
    chunk_text,
    cosine_similarity,
    fit_dimension,
    tokenize,
)


class TestTokenize:
    def test_drops_short_words_and_punctuation(self) -> None:
        assert tokenize("I can't LOG in, ok?") == ["can", "log"]

    def test_empty_text(self) -> None:
        assert tokenize("   ") == []


class TestVectorizer:
    def test_dimension_and_finite(self) -> None:
        vector = Vectorizer(384).embed("My payment failed and I was charged twice")
        assert vector.shape == (384,)
        assert np.all(np.isfinite(vector))

    def test_unit_norm(self) -> None:
        vector = Vectorizer(384).embed("Where is my package?")
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_deterministic(self) -> None:
        text = "Refund request for order 1234"
        first = Vectorizer(384).embed(text)
        second = Vectorizer(384).embed(text)
        assert first.tobytes() == second.tobytes()

    def test_smaller_dimension_scales_bands(self) -> None:
        vector = Vectorizer(64).embed("login error on the website")
        assert vector.shape == (64,)
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_input_raises(self, text: str) -> None:
        with pytest.raises(EmptyInputError):
            Vectorizer(384).embed(text)

    def test_batch_failure_yields_zero_vector(self) -> None:
        vectors = Vectorizer(32).embed_batch(["shipping delay", ""])
        assert len(vectors) == 2
        assert np.linalg.norm(vectors[0]) == pytest.approx(1.0)
        assert not vectors[1].any()

    def test_related_texts_score_higher(self) -> None:
        vectorizer = Vectorizer(384)
        refund = vectorizer.embed("I need a refund for a duplicate payment charge")
        billing = vectorizer.embed("Refund of a double charge on my payment card")
        shipping = vectorizer.embed("My package delivery is delayed, tracking shows nothing")
        assert cosine_similarity(refund, billing) > cosine_similarity(refund, shipping)


class TestCosineSimilarity:
    def test_self_similarity_is_one(self) -> None:
        vector = Vectorizer(128).embed("password reset email never arrives")
        assert cosine_similarity(vector, vector) == pytest.approx(1.0)

    def test_symmetric(self) -> None:
        a = [0.1, 0.4, -0.2]
        b = [0.3, -0.1, 0.9]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_zero_vector(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_dimension_mismatch(self) -> None:
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestFitDimension:
    def test_pads_short_vectors(self) -> None:
        result = fit_dimension([1.0, 2.0], 4)
        assert result.tolist() == [1.0, 2.0, 0.0, 0.0]

    def test_truncates_long_vectors(self) -> None:
        assert fit_dimension([1.0, 2.0, 3.0], 2).tolist() == [1.0, 2.0]

    def test_replaces_non_finite_values(self) -> None:
        assert fit_dimension([float("nan"), float("inf")], 2).tolist() == [0.0, 0.0]


class TestChunking:
    def test_short_text_is_single_chunk(self) -> None:
        assert chunk_text("short text", 100) == ["short text"]

    def test_spans_cover_text_and_overlap(self) -> None:
        text = " ".join(f"Sentence number {i} explains one step." for i in range(80))
        spans = chunk_spans(text, 200, 20)

        assert spans[0][0] == 0
        assert spans[-1][1] == len(text)
        for (_, prev_end), (start, _) in zip(spans, spans[1:]):
            assert start <= prev_end
        assert all(end - start <= 200 for start, end in spans)

    def test_prefers_sentence_boundaries(self) -> None:
        text = ("A" * 60 + ". ") * 10
        for start, end in chunk_spans(text, 100, 0)[:-1]:
            assert text[end - 1] == "."

    def test_no_boundaries_still_terminates(self) -> None:
        text = "x" * 1000
        spans = chunk_spans(text, 100, 99)
        assert spans[-1][1] == len(text)
        starts = [start for start, _ in spans]
        assert starts == sorted(set(starts))

    def test_tiny_tail_is_merged(self) -> None:
        text = "y" * 100 + "tail"
        spans = chunk_spans(text, 100, 0)
        assert spans == [(0, len(text))]

    def test_blank_tail_is_dropped_not_merged(self) -> None:
        text = "x" * 100 + " " * 95 + "ab"
        spans = chunk_spans(text, 100, 0)
        assert spans == [(0, 100)]
        assert all(end - start <= 110 for start, end in spans)

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            chunk_spans("text", 0)
