#!/usr/bin/env python3
"""
Scoring Service - Phase 1 local scoring.

Weighted sum of bounded sub-scores:
- weights come from get_dynamic_weights(brief) and always sum to 1.0
- every sub-score is clamped to [0, 100], so the total is too
- no I/O and no randomness; identical inputs give identical output

The service holds no state and is safe to call from any worker thread.
"""

from typing import Callable, Dict, List, Optional, Tuple
import logging

from core.models import Brief, Candidate, ClientPreferences, Confidence
from core.scorer import components, weights as weight_table
from core.scorer.models import ScoreResult
from core.utils import parse_budget

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_SCORE = 85.0
LOW_CONFIDENCE_SCORE = 60.0
HIGH_CONFIDENCE_COMPLETENESS = 0.8
LOW_CONFIDENCE_COMPLETENESS = 0.5


def profile_completeness(candidate: Candidate) -> float:
    """Fraction of optional profile fields that are filled in."""
    optional_fields = (
        candidate.metrics,
        candidate.specializations,
        candidate.tools_expertise,
        candidate.portfolio_keywords,
        candidate.design_philosophy,
        candidate.preferred_project_size,
        candidate.communication_style,
        candidate.work_approach,
    )
    filled = sum(1 for value in optional_fields if value)
    return filled / len(optional_fields)


def confidence_label(total: float, completeness: float) -> Confidence:
    if total >= HIGH_CONFIDENCE_SCORE and completeness >= HIGH_CONFIDENCE_COMPLETENESS:
        return Confidence.HIGH
    if total < LOW_CONFIDENCE_SCORE or completeness < LOW_CONFIDENCE_COMPLETENESS:
        return Confidence.LOW
    return Confidence.MEDIUM


def calculate_breakdown(
    candidate: Candidate,
    brief: Brief,
    preferences: Optional[ClientPreferences] = None,
) -> Dict[str, float]:
    budget_amount = parse_budget(brief.budget)
    return {
        weight_table.STYLE: components.calculate_style_match(candidate.styles, brief.styles),
        weight_table.INDUSTRY: components.calculate_industry_match(candidate.industries, brief.industry),
        weight_table.AVAILABILITY: components.calculate_availability_match(candidate.availability, brief.timeline),
        weight_table.EXPERIENCE: components.match_experience_level(candidate.years_experience, brief.complexity_level),
        weight_table.PROJECT_SIZE: components.match_project_size(candidate.preferred_project_size, budget_amount),
        weight_table.SPECIALIZATION: components.match_specializations(candidate.specializations, brief.project_type),
        weight_table.PERFORMANCE: components.calculate_performance_score(candidate.metrics),
        weight_table.SATISFACTION: components.calculate_satisfaction_score(candidate.metrics),
        weight_table.DELIVERY: components.calculate_delivery_reliability(candidate.metrics),
        weight_table.COMMUNICATION: components.match_communication_style(candidate.communication_style, preferences),
        weight_table.WORK_APPROACH: components.match_work_approach(candidate.work_approach, brief.requirements),
        weight_table.TOOLS: components.match_tools(candidate.tools_expertise, brief.required_tools),
        weight_table.CLIENT_PREFERENCE: components.calculate_client_preference_bonus(candidate, preferences),
    }


def score_candidate(
    candidate: Candidate,
    brief: Brief,
    preferences: Optional[ClientPreferences] = None,
) -> ScoreResult:
    """Score one candidate against one brief."""
    weights = weight_table.get_dynamic_weights(brief)
    breakdown = calculate_breakdown(candidate, brief, preferences)

    total = sum(breakdown[name] * weights.get(name, 0.0) for name in breakdown)
    total = round(components._clamp(total), 2)
    completeness = profile_completeness(candidate)

    logger.debug(f"Local score for {candidate.id} on brief {brief.id}: {total} ({breakdown})")

    return ScoreResult(
        total=total,
        breakdown=breakdown,
        weights=weights,
        confidence=confidence_label(total, completeness),
        completeness=completeness,
    )


class ScoringService:
    """
    Local (Phase 1) scorer.

    A thin object wrapper around score_candidate so the orchestrator can be
    handed an alternative scorer in tests.
    """

    def __init__(self, scorer: Callable[..., ScoreResult] = score_candidate):
        self._scorer = scorer

    def score(
        self,
        candidate: Candidate,
        brief: Brief,
        preferences: Optional[ClientPreferences] = None,
    ) -> ScoreResult:
        return self._scorer(candidate, brief, preferences)

    def score_all(
        self,
        candidates: List[Candidate],
        brief: Brief,
        preferences: Optional[ClientPreferences] = None,
    ) -> List[Tuple[Candidate, ScoreResult]]:
        """Score every candidate, best first (ties by candidate id)."""
        scored = [(c, self.score(c, brief, preferences)) for c in candidates]
        scored.sort(key=lambda pair: (-pair[1].total, pair[0].id))
        return scored
