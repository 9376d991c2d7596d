#!/usr/bin/env python3
"""
Explainability Module - Human-readable reasons behind a local score.

Turns a sub-score breakdown into a one-line explanation and a short list of
key strengths. Remote deep analysis replaces both in the final phase.
"""

from typing import Dict, List
import logging

from core.models import Brief, Candidate
from core.scorer import weights as weight_table

logger = logging.getLogger(__name__)

STRENGTH_THRESHOLD = 80.0
MAX_STRENGTHS = 3

STRENGTH_LABELS: Dict[str, str] = {
    weight_table.STYLE: "Strong style alignment",
    weight_table.INDUSTRY: "Relevant industry experience",
    weight_table.AVAILABILITY: "Available for the timeline",
    weight_table.EXPERIENCE: "Right level of experience",
    weight_table.PROJECT_SIZE: "Comfortable with this project size",
    weight_table.SPECIALIZATION: "Specializes in this kind of project",
    weight_table.PERFORMANCE: "Strong delivery track record",
    weight_table.SATISFACTION: "Highly rated by past clients",
    weight_table.DELIVERY: "Consistently delivers on time",
    weight_table.COMMUNICATION: "Communication style fits the client",
    weight_table.WORK_APPROACH: "Work approach fits the requirements",
    weight_table.TOOLS: "Uses the required tools",
    weight_table.CLIENT_PREFERENCE: "Matches the client's stated preferences",
}


def generate_key_strengths(breakdown: Dict[str, float], weights: Dict[str, float]) -> List[str]:
    """Top sub-scores above the threshold, ordered by weighted contribution."""
    strong = [
        (name, score * weights.get(name, 0.0))
        for name, score in breakdown.items()
        if score >= STRENGTH_THRESHOLD and name in STRENGTH_LABELS
    ]
    strong.sort(key=lambda pair: (-pair[1], pair[0]))
    return [STRENGTH_LABELS[name] for name, _ in strong[:MAX_STRENGTHS]]


def generate_match_explanation(
    candidate: Candidate,
    brief: Brief,
    breakdown: Dict[str, float],
    weights: Dict[str, float],
) -> str:
    strengths = generate_key_strengths(breakdown, weights)
    subject = candidate.name or candidate.id
    project = brief.project_type or "this project"

    if not strengths:
        return f"{subject} is a partial fit for {project}."
    if len(strengths) == 1:
        return f"{subject} fits {project}: {strengths[0].lower()}."
    joined = ", ".join(s.lower() for s in strengths[:-1])
    return f"{subject} fits {project}: {joined} and {strengths[-1].lower()}."
