"""Null LLM provider used when remote scoring is disabled or unconfigured."""
from typing import Dict, List, Sequence

from core.exceptions import RemoteScoringUnavailableError
from core.llm.interfaces import LLMProvider
from core.models import Brief, Candidate, DeepAnalysis, ScoredCandidate


class NullLLMProvider(LLMProvider):
    """Every call fails fast, so refined and final phases are skipped."""

    @property
    def is_available(self) -> bool:
        return False

    def quick_score(self, brief: Brief, candidates: Sequence[Candidate]) -> Dict[str, float]:
        raise RemoteScoringUnavailableError("Remote scoring is not configured")

    def deep_analysis(self, brief: Brief, scored: ScoredCandidate) -> DeepAnalysis:
        raise RemoteScoringUnavailableError("Remote scoring is not configured")

    def generate_embedding(self, text: str) -> List[float]:
        raise RemoteScoringUnavailableError("Remote embeddings are not configured")
