"""Matcher Module - Embedding similarity and match explanations."""
from core.matcher.similarity import SimilarityCalculator
from core.matcher.embedding_builder import HashingEmbedder
from core.matcher.embedding_store import (
    CandidateEmbeddingStore, InMemoryEmbeddingStore, StoredEmbedding
)
from core.matcher.service import EmbeddingService, NEUTRAL_EMBEDDING_SCORE
from core.matcher.explainability import generate_match_explanation, generate_key_strengths

__all__ = [
    'SimilarityCalculator', 'HashingEmbedder', 'EmbeddingService',
    'CandidateEmbeddingStore', 'InMemoryEmbeddingStore', 'StoredEmbedding',
    'NEUTRAL_EMBEDDING_SCORE', 'generate_match_explanation', 'generate_key_strengths'
]
