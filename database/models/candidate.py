from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from core.models import Availability, Candidate, PerformanceMetrics
from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CandidateProfile(Base):
    """
    Service-provider profile plus its cached embedding.

    The embedding is stored with the content hash of the fields it was built
    from; a mismatch means the profile changed and the vector is stale.
    """
    __tablename__ = 'candidate_profile'

    id = Column(String(64), primary_key=True)
    name = Column(Text, nullable=False, default="")

    styles = Column(JSON, nullable=False, default=list)
    industries = Column(JSON, nullable=False, default=list)
    specializations = Column(JSON, nullable=False, default=list)
    tools_expertise = Column(JSON, nullable=False, default=list)
    portfolio_keywords = Column(JSON, nullable=False, default=list)

    availability = Column(String(16), nullable=False, default=Availability.AVAILABLE.value)
    years_experience = Column(Float, nullable=False, default=0.0)
    design_philosophy = Column(Text)
    preferred_project_size = Column(String(16))
    communication_style = Column(String(16))
    work_approach = Column(Text)
    team_size = Column(String(16))

    is_approved = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)

    embedding = Column(JSON)
    embedding_hash = Column(String(64))
    embedding_updated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    quick_stats = relationship(
        "CandidateQuickStats", back_populates="candidate", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_candidate_eligibility', 'is_approved', 'is_verified', 'availability'),
    )

    def to_domain(self) -> Candidate:
        metrics = self.quick_stats.to_domain() if self.quick_stats else None
        return Candidate(
            id=self.id,
            name=self.name or "",
            styles=self.styles or (),
            industries=self.industries or (),
            availability=Availability(self.availability),
            years_experience=float(self.years_experience or 0.0),
            metrics=metrics,
            specializations=self.specializations or (),
            tools_expertise=self.tools_expertise or (),
            portfolio_keywords=self.portfolio_keywords or (),
            design_philosophy=self.design_philosophy,
            preferred_project_size=self.preferred_project_size,
            communication_style=self.communication_style,
            work_approach=self.work_approach,
            team_size=self.team_size,
            is_approved=bool(self.is_approved),
            is_verified=bool(self.is_verified),
        )


class CandidateQuickStats(Base):
    """Operational metrics for a candidate; every column is optional."""
    __tablename__ = 'candidate_quick_stats'

    candidate_id = Column(String(64), ForeignKey('candidate_profile.id', ondelete='CASCADE'), primary_key=True)
    project_completion_rate = Column(Float)
    on_time_delivery_rate = Column(Float)
    budget_adherence_rate = Column(Float)
    client_retention_rate = Column(Float)
    avg_client_satisfaction = Column(Float)
    total_projects = Column(Integer)
    avg_rating = Column(Float)

    candidate = relationship("CandidateProfile", back_populates="quick_stats")

    def to_domain(self) -> PerformanceMetrics:
        return PerformanceMetrics(
            project_completion_rate=self.project_completion_rate,
            on_time_delivery_rate=self.on_time_delivery_rate,
            budget_adherence_rate=self.budget_adherence_rate,
            client_retention_rate=self.client_retention_rate,
            avg_client_satisfaction=self.avg_client_satisfaction,
            total_projects=self.total_projects,
            avg_rating=self.avg_rating,
        )
