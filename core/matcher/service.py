#!/usr/bin/env python3
"""
Embedding Service - Semantic similarity between briefs and candidates.

Candidate embeddings are cached in a CandidateEmbeddingStore and regenerated
whenever the profile's content hash changes. Brief embeddings are computed
per call and never stored.

When an embedding cannot be produced the embedding score is the neutral
midpoint (50) so Phase 1 still completes.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol
import logging

from core.matcher.embedding_builder import (
    build_brief_text,
    build_candidate_text,
    candidate_source_fields,
)
from core.matcher.embedding_store import CandidateEmbeddingStore, InMemoryEmbeddingStore
from core.matcher.similarity import SimilarityCalculator
from core.models import Brief, Candidate
from core.utils import Fingerprinter

logger = logging.getLogger(__name__)

NEUTRAL_EMBEDDING_SCORE = 50.0


class Embedder(Protocol):
    def generate_embedding(self, text: str) -> List[float]:
        ...


@dataclass
class PrecomputeReport:
    total: int = 0
    regenerated: int = 0
    failed: int = 0


class EmbeddingService:
    """Embeds entities and converts cosine similarity into a 0-100 score."""

    def __init__(self, embedder: Embedder, store: Optional[CandidateEmbeddingStore] = None):
        self.embedder = embedder
        self.store = store if store is not None else InMemoryEmbeddingStore()

    @staticmethod
    def candidate_content_hash(candidate: Candidate) -> str:
        return Fingerprinter.content_hash(candidate_source_fields(candidate))

    def embed_candidate(self, candidate: Candidate) -> List[float]:
        """Return the stored embedding if fresh, otherwise regenerate and overwrite it."""
        content_hash = self.candidate_content_hash(candidate)
        stored = self.store.get_embedding(candidate.id)
        if stored is not None and stored.content_hash == content_hash:
            return stored.vector

        if stored is not None:
            logger.debug(f"Embedding for candidate {candidate.id} is stale, regenerating")

        vector = self.embedder.generate_embedding(build_candidate_text(candidate))
        self.store.save_embedding(candidate.id, vector, content_hash)
        return vector

    def embed_brief(self, brief: Brief) -> List[float]:
        return self.embedder.generate_embedding(build_brief_text(brief))

    @staticmethod
    def similarity(vec1: Optional[List[float]], vec2: Optional[List[float]]) -> float:
        return SimilarityCalculator.calculate(vec1, vec2)

    def calculate_embedding_score(
        self,
        candidate: Candidate,
        brief: Brief,
        brief_vector: Optional[List[float]] = None,
    ) -> float:
        """
        Similarity scaled to 0-100.

        Pass brief_vector to reuse one brief embedding across many candidates.
        Any generation failure yields NEUTRAL_EMBEDDING_SCORE.
        """
        try:
            if brief_vector is None:
                brief_vector = self.embed_brief(brief)
            candidate_vector = self.embed_candidate(candidate)
        except Exception as e:
            logger.warning(f"Embedding unavailable for candidate {candidate.id}: {e}")
            return NEUTRAL_EMBEDDING_SCORE

        return round(self.similarity(candidate_vector, brief_vector) * 100.0, 2)

    def precompute_candidate_embeddings(self, candidates: Iterable[Candidate]) -> PrecomputeReport:
        """Refresh missing or stale embeddings in bulk."""
        report = PrecomputeReport()
        for candidate in candidates:
            report.total += 1
            content_hash = self.candidate_content_hash(candidate)
            stored = self.store.get_embedding(candidate.id)
            if stored is not None and stored.content_hash == content_hash:
                continue
            try:
                vector = self.embedder.generate_embedding(build_candidate_text(candidate))
                self.store.save_embedding(candidate.id, vector, content_hash)
                report.regenerated += 1
            except Exception as e:
                report.failed += 1
                logger.warning(f"Failed to embed candidate {candidate.id}: {e}")

        logger.info(
            f"Precomputed embeddings: {report.regenerated} regenerated, "
            f"{report.failed} failed, {report.total} checked"
        )
        return report
