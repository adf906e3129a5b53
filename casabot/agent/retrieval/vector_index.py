"""Retrieval layer: naive in-memory vector index ranked by cosine similarity."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from threading import Lock
from typing import Any

from casabot.infra.db.listing_store import describe_listing
from casabot.infra.observability.logger import get_logger

logger = get_logger(__name__)

Embedder = Callable[[str], list[float] | None]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two vectors; 0 for empty, mismatched or zero-norm input."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


@dataclass(frozen=True)
class ScoredListing:
    listing: dict[str, Any]
    similarity: float


class VectorIndex:
    """Embeds listings on demand and ranks them against a free-text query."""

    def __init__(self, embedder: Embedder) -> None:
        self._embedder = embedder
        self._vectors: dict[str, list[float]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._vectors)

    def add(self, listing: dict[str, Any], vector: list[float] | None = None) -> bool:
        """Index one listing; returns False when no embedding could be produced."""
        embedding = vector if vector is not None else self._embedder(describe_listing(listing))
        if not embedding:
            return False
        with self._lock:
            self._vectors[listing["id"]] = list(embedding)
        return True

    def search(
        self,
        query: str,
        listings: Sequence[dict[str, Any]],
        *,
        limit: int = 3,
    ) -> list[ScoredListing] | None:
        """Top listings by similarity, or None when the query cannot be embedded."""
        if not listings:
            return []
        query_vector = self._embedder(query)
        if not query_vector:
            return None

        for listing in listings:
            with self._lock:
                known = listing["id"] in self._vectors
            if not known and not self.add(listing):
                logger.warning("vector_index.embed_failed listing_id=%s", listing["id"])

        scored: list[ScoredListing] = []
        with self._lock:
            for listing in listings:
                vector = self._vectors.get(listing["id"])
                if vector is None:
                    continue
                scored.append(ScoredListing(listing, cosine_similarity(query_vector, vector)))
        scored.sort(key=lambda item: item.similarity, reverse=True)
        return scored[: max(1, limit)]
