"""Matching engine exceptions.

Only NoMatchAvailableError reaches the caller of a matching run. Everything
else is absorbed by the orchestrator and reflected in a lower confidence or
a missing later-phase event.
"""


class MatchingError(Exception):
    """Base class for matching engine errors."""


class NoMatchAvailableError(MatchingError):
    """Phase 1 could not produce a result (pool query failed or returned nobody)."""

    def __init__(self, brief_id: str, reason: str):
        self.brief_id = brief_id
        self.reason = reason
        super().__init__(f"No match available for brief {brief_id}: {reason}")


class CandidatePoolError(MatchingError):
    """The candidate-pool query failed."""


class RemoteScoringError(MatchingError):
    """A remote scoring call failed, timed out or returned unusable output."""


class RemoteScoringUnavailableError(RemoteScoringError):
    """No remote scoring provider is configured."""
