#!/usr/bin/env python3
"""
Sub-score Calculations - Bounded, explainable 0-100 rules.

Every function here is pure and returns a value clamped to [0, 100].
Empty tag sets score 0 for tag-overlap rules (never divide by zero).
Missing optional candidate fields fall back to the NEUTRAL_* defaults below
instead of failing.
"""

from typing import Dict, Iterable, Optional, Sequence, Tuple
import logging

from core.models import Availability, Candidate, ClientPreferences, PerformanceMetrics

logger = logging.getLogger(__name__)

# ----------------------------
# Neutral defaults for missing data
# ----------------------------
NEUTRAL_PROJECT_SIZE = 80.0       # no size preference or no budget
NEUTRAL_SPECIALIZATION = 60.0     # no specializations listed
NEUTRAL_PERFORMANCE = 70.0        # no operational metrics at all
NEUTRAL_SATISFACTION_STARS = 4.0  # -> 80 after scaling
NEUTRAL_DELIVERY = 85.0           # no on-time rate
NEUTRAL_COMMUNICATION = 80.0      # style or client frequency unknown
UNKNOWN_COMMUNICATION_PAIR = 75.0
NEUTRAL_WORK_APPROACH = 75.0
NO_TOOLS_LISTED = 30.0

# ----------------------------
# Lookup tables
# ----------------------------
INDUSTRY_CLUSTERS: Dict[str, Tuple[str, ...]] = {
    "tech": ("saas", "software", "technology", "fintech", "edtech", "healthtech"),
    "retail": ("e-commerce", "retail", "fashion", "consumer goods"),
    "creative": ("media", "entertainment", "gaming", "arts"),
    "professional": ("consulting", "legal", "finance", "real estate"),
    "health": ("healthcare", "wellness", "fitness", "medical"),
}

TIMELINE_URGENCY: Dict[str, int] = {
    "ASAP": 5,
    "1-2 weeks": 4,
    "2-4 weeks": 3,
    "1-2 months": 2,
    "2-3 months": 1,
}
DEFAULT_URGENCY = 3

# complexity -> (minimum years, optimal years)
EXPERIENCE_BANDS: Dict[str, Tuple[float, float]] = {
    "simple": (1.0, 3.0),
    "moderate": (3.0, 5.0),
    "complex": (5.0, 8.0),
}
DEFAULT_COMPLEXITY = "moderate"

PROJECT_SIZES: Tuple[str, ...] = ("small", "medium", "large", "enterprise")

# budget floor in dollars -> size bucket (checked highest first)
BUDGET_SIZE_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (10000, "enterprise"),
    (5000, "large"),
    (2500, "medium"),
    (1, "small"),
)

COMMUNICATION_MATRIX: Dict[str, Dict[str, float]] = {
    "formal": {"minimal": 90.0, "regular": 80.0, "frequent": 60.0},
    "casual": {"minimal": 70.0, "regular": 90.0, "frequent": 80.0},
    "collaborative": {"minimal": 60.0, "regular": 80.0, "frequent": 100.0},
}

EXPERIENCE_PREFERENCE_BANDS: Dict[str, Tuple[float, float]] = {
    "junior": (0.0, 3.0),
    "mid": (3.0, 7.0),
    "senior": (7.0, 100.0),
    "any": (0.0, 100.0),
}


# ----------------------------
# Helpers
# ----------------------------
def _clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, x))


def _normalized(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(v.lower().strip() for v in values if v and v.strip())


def _words(text: Optional[str]) -> Tuple[str, ...]:
    if not text:
        return ()
    return tuple(w for w in text.lower().split() if w)


def urgency_level(timeline: str) -> int:
    return TIMELINE_URGENCY.get((timeline or "").strip(), DEFAULT_URGENCY)


def budget_to_size(budget_amount: int) -> Optional[str]:
    for floor, size in BUDGET_SIZE_THRESHOLDS:
        if budget_amount >= floor:
            return size
    return None


# ----------------------------
# Sub-scores
# ----------------------------
def calculate_style_match(candidate_styles: Sequence[str], brief_styles: Sequence[str]) -> float:
    """Exact tag fraction; 0.5 credit per brief tag with only a substring overlap."""
    cand = _normalized(candidate_styles)
    wanted = _normalized(brief_styles)
    if not cand or not wanted:
        return 0.0

    points = 0.0
    for style in wanted:
        if style in cand:
            points += 1.0
        elif any(style in c or c in style for c in cand):
            points += 0.5

    return _clamp(points / len(wanted) * 100.0)


def industry_cluster(industry: str) -> Optional[str]:
    name = (industry or "").lower().strip()
    for cluster, members in INDUSTRY_CLUSTERS.items():
        if name in members:
            return cluster
    return None


def calculate_industry_match(candidate_industries: Sequence[str], brief_industry: str) -> float:
    """100 on exact match, 75 when both sit in the same cluster, else 0."""
    industries = _normalized(candidate_industries)
    target = (brief_industry or "").lower().strip()
    if not industries or not target:
        return 0.0

    if target in industries:
        return 100.0

    target_cluster = industry_cluster(target)
    if target_cluster and any(industry_cluster(i) == target_cluster for i in industries):
        return 75.0
    return 0.0


def calculate_availability_match(availability: Availability, timeline: str) -> float:
    if availability == Availability.AVAILABLE:
        return 100.0
    if availability == Availability.BUSY:
        return _clamp(max(30.0, 100.0 - urgency_level(timeline) * 15.0))
    return 0.0


def match_experience_level(years_experience: float, complexity: Optional[str]) -> float:
    """Piecewise linear against the (minimum, optimal) band for the complexity."""
    band = EXPERIENCE_BANDS.get((complexity or DEFAULT_COMPLEXITY).lower(), EXPERIENCE_BANDS[DEFAULT_COMPLEXITY])
    minimum, optimal = band
    years = max(0.0, float(years_experience or 0.0))

    if years >= optimal:
        return 100.0
    if years < minimum:
        return _clamp(years / minimum * 50.0) if minimum > 0 else 50.0
    return _clamp(50.0 + (years - minimum) / (optimal - minimum) * 50.0)


def match_project_size(preferred_size: Optional[str], budget_amount: int) -> float:
    """Ordinal distance between preferred size and the budget's size bucket."""
    project_size = budget_to_size(budget_amount)
    pref = (preferred_size or "").lower().strip()
    if not pref or pref not in PROJECT_SIZES or not project_size:
        return NEUTRAL_PROJECT_SIZE

    distance = abs(PROJECT_SIZES.index(pref) - PROJECT_SIZES.index(project_size))
    if distance == 0:
        return 100.0
    return _clamp(max(40.0, 100.0 - distance * 30.0))


def match_specializations(specializations: Sequence[str], project_type: str) -> float:
    specs = _normalized(specializations)
    keywords = _words(project_type)
    if not specs or not keywords:
        return NEUTRAL_SPECIALIZATION

    points = 0.0
    per_hit = 50.0 / len(keywords)
    for spec in specs:
        for keyword in keywords:
            if keyword in spec or spec in keyword:
                points += per_hit
    return _clamp(points)


def calculate_performance_score(metrics: Optional[PerformanceMetrics]) -> float:
    """Mean of the operational rates that are present; missing ones are excluded."""
    if metrics is None:
        return NEUTRAL_PERFORMANCE

    present = [
        _clamp(float(value))
        for value in (
            metrics.project_completion_rate,
            metrics.on_time_delivery_rate,
            metrics.budget_adherence_rate,
            metrics.client_retention_rate,
        )
        if value is not None
    ]
    if not present:
        return NEUTRAL_PERFORMANCE
    return _clamp(sum(present) / len(present))


def calculate_satisfaction_score(metrics: Optional[PerformanceMetrics]) -> float:
    stars = metrics.avg_client_satisfaction if metrics else None
    if stars is None:
        stars = NEUTRAL_SATISFACTION_STARS
    return _clamp(float(stars) * 20.0)


def calculate_delivery_reliability(metrics: Optional[PerformanceMetrics]) -> float:
    rate = metrics.on_time_delivery_rate if metrics else None
    if rate is None:
        return NEUTRAL_DELIVERY
    return _clamp(float(rate))


def match_communication_style(style: Optional[str], preferences: Optional[ClientPreferences]) -> float:
    frequency = preferences.communication_frequency if preferences else None
    if not style or not frequency:
        return NEUTRAL_COMMUNICATION
    return COMMUNICATION_MATRIX.get(style.lower(), {}).get(frequency.lower(), UNKNOWN_COMMUNICATION_PAIR)


def match_work_approach(work_approach: Optional[str], requirements: Optional[str]) -> float:
    approach = set(_words(work_approach))
    required = set(_words(requirements))
    if not approach or not required:
        return NEUTRAL_WORK_APPROACH
    return _clamp(60.0 + len(approach & required) * 10.0)


def match_tools(candidate_tools: Sequence[str], required_tools: Sequence[str]) -> float:
    required = _normalized(required_tools)
    if not required:
        return 100.0
    tools = set(_normalized(candidate_tools))
    if not tools:
        return NO_TOOLS_LISTED
    matched = sum(1 for tool in required if tool in tools)
    return _clamp(matched / len(required) * 100.0)


def calculate_client_preference_bonus(candidate: Candidate, preferences: Optional[ClientPreferences]) -> float:
    if preferences is None:
        return 0.0

    styles = set(_normalized(candidate.styles))
    bonus = 0.0

    preferred = _normalized(preferences.preferred_styles)
    if preferred and styles:
        bonus += sum(1 for s in preferred if s in styles) / len(preferred) * 30.0

    avoided = _normalized(preferences.avoided_styles)
    if avoided and styles and any(s in styles for s in avoided):
        bonus -= 20.0

    band = EXPERIENCE_PREFERENCE_BANDS.get((preferences.preferred_experience or "").lower())
    if band:
        low, high = band
        if low <= float(candidate.years_experience or 0.0) <= high:
            bonus += 20.0

    return _clamp(bonus)
