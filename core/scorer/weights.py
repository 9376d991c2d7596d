#!/usr/bin/env python3
"""
Dynamic Weights - Priority shift driven by brief characteristics.

Urgent briefs favor availability and delivery reliability; complex briefs
favor seniority and specialization. The formula shape never changes, only
the weights, and they always sum to 1.0 after adjustment.
"""

from typing import Dict
import logging

from core.models import Brief

logger = logging.getLogger(__name__)

STYLE = "style_match"
INDUSTRY = "industry_match"
AVAILABILITY = "availability_match"
EXPERIENCE = "experience_fit"
PROJECT_SIZE = "project_size_fit"
SPECIALIZATION = "specialization_fit"
PERFORMANCE = "performance"
SATISFACTION = "client_satisfaction"
DELIVERY = "delivery_reliability"
COMMUNICATION = "communication_fit"
WORK_APPROACH = "work_approach_fit"
TOOLS = "tools_fit"
CLIENT_PREFERENCE = "client_preference_bonus"

BASE_WEIGHTS: Dict[str, float] = {
    STYLE: 0.20,
    INDUSTRY: 0.15,
    AVAILABILITY: 0.10,
    EXPERIENCE: 0.10,
    PROJECT_SIZE: 0.08,
    SPECIALIZATION: 0.12,
    PERFORMANCE: 0.08,
    SATISFACTION: 0.07,
    DELIVERY: 0.05,
    COMMUNICATION: 0.03,
    WORK_APPROACH: 0.02,
    TOOLS: 0.05,
    CLIENT_PREFERENCE: 0.02,
}

URGENT_TIMELINES = frozenset({"ASAP", "1-2 weeks"})

URGENT_OVERRIDES: Dict[str, float] = {
    AVAILABILITY: 0.20,
    DELIVERY: 0.15,
    STYLE: 0.15,
    INDUSTRY: 0.10,
}

COMPLEX_OVERRIDES: Dict[str, float] = {
    EXPERIENCE: 0.15,
    SPECIALIZATION: 0.15,
    PERFORMANCE: 0.10,
}


def is_urgent(timeline: str) -> bool:
    return (timeline or "").strip() in URGENT_TIMELINES


def normalize_weights(weights: Dict[str, float]) -> Dict[str, float]:
    total = sum(weights.values())
    if total <= 0:
        # Degenerate table: fall back to uniform weights.
        return {k: 1.0 / len(weights) for k in weights}
    return {k: v / total for k, v in weights.items()}


def get_dynamic_weights(brief: Brief) -> Dict[str, float]:
    """Derive normalized weights for a brief."""
    weights = dict(BASE_WEIGHTS)

    if is_urgent(brief.timeline):
        weights.update(URGENT_OVERRIDES)

    if (brief.complexity_level or "").lower() == "complex":
        weights.update(COMPLEX_OVERRIDES)

    return normalize_weights(weights)
