#!/usr/bin/env python3
"""
Candidate Pool - Eligibility filtering and the pool query seam.

A candidate is eligible when it is approved, verified, not unavailable and
not excluded by the brief. Pools return at most `limit` eligible candidates,
best-rated first, so the cap keeps the strongest profiles.
"""

from typing import Iterable, List, Optional, Protocol, runtime_checkable
import logging
import threading

from core.models import Availability, Brief, Candidate

logger = logging.getLogger(__name__)

ELIGIBLE_AVAILABILITY = frozenset({Availability.AVAILABLE, Availability.BUSY})


class EligibilityFilter:
    """Pure eligibility rules shared by every pool implementation."""

    @staticmethod
    def is_eligible(candidate: Candidate, brief: Optional[Brief] = None) -> bool:
        if not (candidate.is_approved and candidate.is_verified):
            return False
        if candidate.availability not in ELIGIBLE_AVAILABILITY:
            return False
        if brief is not None and candidate.id in brief.excluded_candidate_ids:
            return False
        return True

    @staticmethod
    def pool_order_key(candidate: Candidate):
        rating = candidate.metrics.avg_rating if candidate.metrics else None
        return (rating is None, -(rating or 0.0), candidate.id)


@runtime_checkable
class CandidatePool(Protocol):
    """Protocol for fetching the eligible candidates for a brief."""

    def fetch_eligible(self, brief: Brief, limit: int) -> List[Candidate]:
        """
        Return at most `limit` eligible candidates.

        Raises:
            CandidatePoolError: if the underlying query fails
        """
        ...


class InMemoryCandidatePool:
    """In-memory implementation of the candidate pool for tests and demos."""

    def __init__(self, candidates: Optional[Iterable[Candidate]] = None):
        self._lock = threading.Lock()
        self._candidates = {c.id: c for c in (candidates or [])}

    def add(self, candidate: Candidate) -> None:
        with self._lock:
            self._candidates[candidate.id] = candidate

    def remove(self, candidate_id: str) -> None:
        with self._lock:
            self._candidates.pop(candidate_id, None)

    def all(self) -> List[Candidate]:
        with self._lock:
            return list(self._candidates.values())

    def fetch_eligible(self, brief: Brief, limit: int) -> List[Candidate]:
        eligible = [c for c in self.all() if EligibilityFilter.is_eligible(c, brief)]
        eligible.sort(key=EligibilityFilter.pool_order_key)
        return eligible[:limit]
