#!/usr/bin/env python3
"""
Matching Models - Domain data structures shared by every stage.

Candidate and Brief are immutable for the duration of a matching run.
ScoredCandidate is produced fresh by each phase and superseded (never
mutated) by the next one.
"""

from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple
import time


class Availability(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


class Phase(str, Enum):
    INSTANT = "instant"
    REFINED = "refined"
    FINAL = "final"

    @property
    def rank(self) -> int:
        return PHASE_ORDER.index(self)


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return CONFIDENCE_ORDER.index(self)


PHASE_ORDER: Tuple[Phase, ...] = (Phase.INSTANT, Phase.REFINED, Phase.FINAL)
CONFIDENCE_ORDER: Tuple[Confidence, ...] = (Confidence.LOW, Confidence.MEDIUM, Confidence.HIGH)

PHASE_CONFIDENCE: Dict[Phase, Confidence] = {
    Phase.INSTANT: Confidence.LOW,
    Phase.REFINED: Confidence.MEDIUM,
    Phase.FINAL: Confidence.HIGH,
}


def _as_tuple(values: Any) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(str(v) for v in values if v)


@dataclass(frozen=True)
class PerformanceMetrics:
    """Operational track record. Rates are percentages in [0, 100]."""
    project_completion_rate: Optional[float] = None
    on_time_delivery_rate: Optional[float] = None
    budget_adherence_rate: Optional[float] = None
    client_retention_rate: Optional[float] = None
    avg_client_satisfaction: Optional[float] = None  # 0-5
    total_projects: Optional[int] = None
    avg_rating: Optional[float] = None  # 0-5

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PerformanceMetrics"]:
        if not data:
            return None
        known = {k: data.get(k) for k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class Candidate:
    """Service-provider profile eligible for matching."""
    id: str
    name: str = ""
    styles: Tuple[str, ...] = ()
    industries: Tuple[str, ...] = ()
    availability: Availability = Availability.AVAILABLE
    years_experience: float = 0.0
    metrics: Optional[PerformanceMetrics] = None
    specializations: Tuple[str, ...] = ()
    tools_expertise: Tuple[str, ...] = ()
    portfolio_keywords: Tuple[str, ...] = ()
    design_philosophy: Optional[str] = None
    preferred_project_size: Optional[str] = None  # small|medium|large|enterprise
    communication_style: Optional[str] = None  # formal|casual|collaborative
    work_approach: Optional[str] = None
    team_size: Optional[str] = None  # solo|small_team|agency
    is_approved: bool = True
    is_verified: bool = True

    def __post_init__(self):
        for name in ("styles", "industries", "specializations", "tools_expertise", "portfolio_keywords"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))
        if not isinstance(self.availability, Availability):
            object.__setattr__(self, "availability", Availability(self.availability))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        values = {k: data[k] for k in cls.__dataclass_fields__ if k in data and k != "metrics"}
        values["metrics"] = PerformanceMetrics.from_dict(data.get("metrics"))
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["availability"] = self.availability.value
        for name in ("styles", "industries", "specializations", "tools_expertise", "portfolio_keywords"):
            data[name] = list(data[name])
        return data


@dataclass(frozen=True)
class Brief:
    """A client's project request."""
    id: str
    client_id: str = ""
    project_type: str = ""
    industry: str = ""
    styles: Tuple[str, ...] = ()
    timeline: str = ""
    budget: str = ""
    requirements: Optional[str] = None
    complexity_level: Optional[str] = None  # simple|moderate|complex
    required_tools: Tuple[str, ...] = ()
    target_audience: Optional[str] = None
    brand_personality: Optional[str] = None
    excluded_candidate_ids: Tuple[str, ...] = ()

    def __post_init__(self):
        for name in ("styles", "required_tools", "excluded_candidate_ids"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Brief":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class ClientPreferences:
    """Optional per-client preferences learned outside the engine."""
    preferred_styles: Tuple[str, ...] = ()
    avoided_styles: Tuple[str, ...] = ()
    communication_frequency: Optional[str] = None  # minimal|regular|frequent
    preferred_experience: Optional[str] = None  # junior|mid|senior|any

    def __post_init__(self):
        for name in ("preferred_styles", "avoided_styles"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))


@dataclass(frozen=True)
class DeepAnalysis:
    """Per-candidate result of the remote deep-analysis call."""
    score: float
    confidence: Confidence = Confidence.MEDIUM
    strengths: Tuple[str, ...] = ()
    risks: Tuple[str, ...] = ()
    unique_value: Optional[str] = None
    summary: Optional[str] = None


@dataclass
class ScoredCandidate:
    """Result of one scoring pass for one candidate."""
    candidate: Candidate
    score: float
    phase: Phase = Phase.INSTANT
    breakdown: Dict[str, float] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=dict)
    local_score: Optional[float] = None
    embedding_score: Optional[float] = None
    remote_score: Optional[float] = None
    explanation: Optional[str] = None
    strengths: List[str] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    analysis_confidence: Optional[Confidence] = None
    scored_at: float = field(default_factory=time.time)

    @property
    def candidate_id(self) -> str:
        return self.candidate.id

    def supersede(self, phase: Phase, score: float, **changes: Any) -> "ScoredCandidate":
        """Return a new result for a later phase, leaving this one untouched."""
        return replace(self, phase=phase, score=score, scored_at=time.time(), **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate": self.candidate.to_dict(),
            "score": self.score,
            "phase": self.phase.value,
            "breakdown": dict(self.breakdown),
            "weights": dict(self.weights),
            "local_score": self.local_score,
            "embedding_score": self.embedding_score,
            "remote_score": self.remote_score,
            "explanation": self.explanation,
            "strengths": list(self.strengths),
            "risks": list(self.risks),
            "analysis_confidence": self.analysis_confidence.value if self.analysis_confidence else None,
            "scored_at": self.scored_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoredCandidate":
        confidence = data.get("analysis_confidence")
        return cls(
            candidate=Candidate.from_dict(data["candidate"]),
            score=float(data["score"]),
            phase=Phase(data.get("phase", Phase.INSTANT.value)),
            breakdown=dict(data.get("breakdown") or {}),
            weights=dict(data.get("weights") or {}),
            local_score=data.get("local_score"),
            embedding_score=data.get("embedding_score"),
            remote_score=data.get("remote_score"),
            explanation=data.get("explanation"),
            strengths=list(data.get("strengths") or []),
            risks=list(data.get("risks") or []),
            analysis_confidence=Confidence(confidence) if confidence else None,
            scored_at=float(data.get("scored_at") or time.time()),
        )


@dataclass(frozen=True)
class MatchEvent:
    """Notification emitted each time a phase produces its best result."""
    run_id: str
    phase: Phase
    match: ScoredCandidate
    alternates: Tuple[ScoredCandidate, ...]
    confidence: Confidence
    elapsed_ms: float


def rank_results(results: List[ScoredCandidate]) -> List[ScoredCandidate]:
    """Sort descending by score; ties broken by candidate id for stable output."""
    return sorted(results, key=lambda r: (-r.score, r.candidate_id))
