"""
Embedding Service

Deterministic pseudo-embeddings derived from SHA-256 so that demo data and
queries are reproducible without an external model. The same text always
yields a bit-identical unit-norm vector of ``dims`` floats.
"""
import hashlib
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DIMS = 384
_BYTES_PER_ROUND = 32


class Embedder(ABC):
    """Text to fixed-length unit vector"""

    dims: int

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed a single text."""

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]


class DeterministicEmbedder(Embedder):
    """
    Hash-based embedder

    Each round hashes the text digest together with the round number; every
    digest byte maps to a float in [-1, 1]. The vector is L2 normalized.
    """

    def __init__(self, dims: int = DEFAULT_DIMS):
        if dims <= 0:
            raise ValueError("dims must be positive")
        self.dims = dims
        self.rounds = -(-dims // _BYTES_PER_ROUND)
        logger.info(f"DeterministicEmbedder initialized (dims={dims})")

    def embed(self, text: str) -> List[float]:
        normalized = (text or "").lower().strip()
        digest = hashlib.sha256(normalized.encode("utf-8")).digest()

        raw = bytearray()
        for round_index in range(self.rounds):
            round_hash = hashlib.sha256(digest + bytes([round_index % 256])).digest()
            raw.extend(round_hash)

        values = np.frombuffer(bytes(raw[:self.dims]), dtype=np.uint8).astype(np.float64)
        vector = (values / 255.0) * 2.0 - 1.0

        magnitude = np.linalg.norm(vector)
        if magnitude == 0:
            return vector.tolist()
        return (vector / magnitude).tolist()
