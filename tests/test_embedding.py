"""
Tests for the deterministic embedder
"""
import numpy as np
import pytest

from elasticops.services.embedding import DeterministicEmbedder


@pytest.fixture
def embedder():
    return DeterministicEmbedder(384)


class TestDeterministicEmbedder:

    def test_dimensions(self, embedder):
        assert len(embedder.embed("login failure")) == 384

    def test_bit_identical_for_same_text(self, embedder):
        assert embedder.embed("login failure") == embedder.embed("login failure")

    def test_normalizes_case_and_whitespace(self, embedder):
        assert embedder.embed("  Login Failure ") == embedder.embed("login failure")

    def test_unit_norm(self, embedder):
        vector = np.asarray(embedder.embed("payment declined"))
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-6)

    def test_values_in_range(self, embedder):
        vector = embedder.embed("payment declined")
        assert all(-1.0 <= value <= 1.0 for value in vector)

    def test_different_texts_differ(self, embedder):
        assert embedder.embed("payment declined") != embedder.embed("login failure")

    def test_empty_text(self, embedder):
        vector = embedder.embed("")
        assert len(vector) == 384
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-6)

    def test_non_multiple_dimensions(self):
        assert len(DeterministicEmbedder(100).embed("abc")) == 100

    def test_batch(self, embedder):
        vectors = embedder.embed_batch(["a", "b"])
        assert vectors == [embedder.embed("a"), embedder.embed("b")]

    def test_invalid_dims(self):
        with pytest.raises(ValueError):
            DeterministicEmbedder(0)
