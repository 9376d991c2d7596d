#!/usr/bin/env python3
"""
Candidate Embedding Store - Interface for persisting candidate embeddings.

Each record carries the content hash of the profile fields it was generated
from; a reader compares hashes to decide whether to regenerate.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, runtime_checkable
import threading
import time


@dataclass(frozen=True)
class StoredEmbedding:
    vector: List[float]
    content_hash: str
    updated_at: float = field(default_factory=time.time)


@runtime_checkable
class CandidateEmbeddingStore(Protocol):
    """Protocol for storing candidate embeddings keyed by candidate id."""

    def get_embedding(self, candidate_id: str) -> Optional[StoredEmbedding]:
        ...

    def save_embedding(self, candidate_id: str, vector: List[float], content_hash: str) -> None:
        """Insert or overwrite the embedding for a candidate."""
        ...


class InMemoryEmbeddingStore:
    """In-memory implementation of embedding store for testing and single-process use."""

    def __init__(self):
        self._storage: Dict[str, StoredEmbedding] = {}
        self._lock = threading.Lock()

    def get_embedding(self, candidate_id: str) -> Optional[StoredEmbedding]:
        with self._lock:
            return self._storage.get(candidate_id)

    def save_embedding(self, candidate_id: str, vector: List[float], content_hash: str) -> None:
        with self._lock:
            self._storage[candidate_id] = StoredEmbedding(vector=list(vector), content_hash=content_hash)

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()

    def __len__(self) -> int:
        return len(self._storage)


class CandidateRepositoryAdapter:
    """Adapter that wraps a session factory + CandidateRepository to implement CandidateEmbeddingStore."""

    def __init__(self, session_scope):
        """
        Args:
            session_scope: Context-manager factory yielding a SQLAlchemy session
                (e.g. database.database.db_session_scope)
        """
        self._session_scope = session_scope

    def get_embedding(self, candidate_id: str) -> Optional[StoredEmbedding]:
        from database.repositories.candidate import CandidateRepository

        with self._session_scope() as session:
            return CandidateRepository(session).get_embedding(candidate_id)

    def save_embedding(self, candidate_id: str, vector: List[float], content_hash: str) -> None:
        from database.repositories.candidate import CandidateRepository

        with self._session_scope() as session:
            CandidateRepository(session).save_embedding(candidate_id, vector, content_hash)
