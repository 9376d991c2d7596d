"""
LLM Provider Interface - Abstract base for remote scoring providers.

This module defines the interface for remote quick scoring, deep analysis and
embedding generation (OpenAI or any OpenAI-compatible endpoint).
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from core.models import Brief, Candidate, DeepAnalysis, ScoredCandidate


class LLMProvider(ABC):
    """
    Abstract Interface for remote scoring providers.

    Every method raises core.exceptions.RemoteScoringError (or a subclass) on
    failure; callers never see provider-specific exceptions.
    """

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Whether remote calls can be attempted at all."""
        pass

    @abstractmethod
    def quick_score(self, brief: Brief, candidates: Sequence[Candidate]) -> Dict[str, float]:
        """
        Score a batch of candidates in a single call.

        Returns:
            Mapping of candidate id -> score in [0, 100]. Candidates the
            provider did not score are absent from the mapping.
        """
        pass

    @abstractmethod
    def deep_analysis(self, brief: Brief, scored: ScoredCandidate) -> DeepAnalysis:
        """Detailed assessment of one candidate for one brief."""
        pass

    @abstractmethod
    def generate_embedding(self, text: str) -> List[float]:
        """
        Generate a vector embedding for the given text.
        """
        pass
