import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from core.exceptions import CandidatePoolError
from core.matcher.embedding_store import StoredEmbedding
from core.models import Brief, Candidate
from core.pool import ELIGIBLE_AVAILABILITY
from database.models import CandidateProfile, CandidateQuickStats
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = (
    "name", "availability", "years_experience", "design_philosophy",
    "preferred_project_size", "communication_style", "work_approach",
    "team_size", "is_approved", "is_verified",
)
_LIST_FIELDS = ("styles", "industries", "specializations", "tools_expertise", "portfolio_keywords")
_METRIC_FIELDS = (
    "project_completion_rate", "on_time_delivery_rate", "budget_adherence_rate",
    "client_retention_rate", "avg_client_satisfaction", "total_projects", "avg_rating",
)


class CandidateRepository(BaseRepository):
    def get_by_id(self, candidate_id: str) -> Optional[CandidateProfile]:
        stmt = (
            select(CandidateProfile)
            .options(selectinload(CandidateProfile.quick_stats))
            .where(CandidateProfile.id == candidate_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def upsert_candidate(self, candidate: Candidate) -> CandidateProfile:
        profile = self.get_by_id(candidate.id)
        if profile is None:
            profile = CandidateProfile(id=candidate.id)
            self.db.add(profile)

        data = candidate.to_dict()
        for name in _PROFILE_FIELDS:
            setattr(profile, name, data[name])
        for name in _LIST_FIELDS:
            setattr(profile, name, list(data[name]))

        if candidate.metrics is not None:
            if profile.quick_stats is None:
                profile.quick_stats = CandidateQuickStats(candidate_id=candidate.id)
            for name in _METRIC_FIELDS:
                setattr(profile.quick_stats, name, getattr(candidate.metrics, name))
        elif profile.quick_stats is not None:
            profile.quick_stats = None

        self.db.flush()
        return profile

    def list_eligible(self, brief: Brief, limit: int) -> List[Candidate]:
        """Approved, verified, not unavailable and not excluded; best-rated first."""
        stmt = (
            select(CandidateProfile)
            .outerjoin(CandidateQuickStats)
            .options(selectinload(CandidateProfile.quick_stats))
            .where(CandidateProfile.is_approved.is_(True))
            .where(CandidateProfile.is_verified.is_(True))
            .where(CandidateProfile.availability.in_([a.value for a in ELIGIBLE_AVAILABILITY]))
        )
        if brief.excluded_candidate_ids:
            stmt = stmt.where(CandidateProfile.id.not_in(list(brief.excluded_candidate_ids)))

        stmt = stmt.order_by(
            CandidateQuickStats.avg_rating.is_(None),
            CandidateQuickStats.avg_rating.desc(),
            CandidateProfile.id,
        ).limit(limit)

        return [profile.to_domain() for profile in self.db.execute(stmt).scalars().all()]

    def get_embedding(self, candidate_id: str) -> Optional[StoredEmbedding]:
        stmt = select(
            CandidateProfile.embedding,
            CandidateProfile.embedding_hash,
            CandidateProfile.embedding_updated_at,
        ).where(CandidateProfile.id == candidate_id)
        row = self.db.execute(stmt).first()
        if row is None or row.embedding is None or row.embedding_hash is None:
            return None
        updated_at = row.embedding_updated_at.timestamp() if row.embedding_updated_at else 0.0
        return StoredEmbedding(vector=list(row.embedding), content_hash=row.embedding_hash, updated_at=updated_at)

    def save_embedding(self, candidate_id: str, vector: List[float], content_hash: str) -> None:
        profile = self.db.get(CandidateProfile, candidate_id)
        if profile is None:
            logger.warning(f"Cannot store embedding for unknown candidate {candidate_id}")
            return
        profile.embedding = list(vector)
        profile.embedding_hash = content_hash
        profile.embedding_updated_at = datetime.now(timezone.utc)
        self.db.flush()


class SqlCandidatePool:
    """CandidatePool backed by the candidate_profile table."""

    def __init__(self, session_scope: Callable):
        self._session_scope = session_scope

    def fetch_eligible(self, brief: Brief, limit: int) -> List[Candidate]:
        try:
            with self._session_scope() as session:
                return CandidateRepository(session).list_eligible(brief, limit)
        except SQLAlchemyError as e:
            logger.error(f"Candidate pool query failed for brief {brief.id}: {e}")
            raise CandidatePoolError(str(e)) from e
