#!/usr/bin/env python3
"""
Scoring Models - Data structures for local scoring results.
"""

from dataclasses import dataclass, field
from typing import Dict

from core.models import Confidence


@dataclass(frozen=True)
class ScoreResult:
    """Local score for one candidate against one brief."""
    total: float
    breakdown: Dict[str, float] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=dict)
    confidence: Confidence = Confidence.MEDIUM
    completeness: float = 1.0
