#!/usr/bin/env python3
"""
Scoring Module - Phase 1 local scoring.

Public API:
- ScoringService: Weighted, explainable local scorer
- ScoreResult: Dataclass for a local score with its breakdown

- weights.py: Base weights and brief-driven adjustments
- components.py: Bounded 0-100 sub-score rules
- service.py: Weighted total, confidence label, ScoringService
"""

from core.scorer.models import ScoreResult
from core.scorer.service import ScoringService, score_candidate

__all__ = ['ScoringService', 'ScoreResult', 'score_candidate']
