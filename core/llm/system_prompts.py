import json
from typing import Any, Dict, Sequence

from core.models import Brief, Candidate, ScoredCandidate

QUICK_SCORE_SYSTEM_PROMPT = """
You are a matching engine that rates how well service providers fit a client's project brief.

Task
- For every candidate in the input, output a fit score from 0 to 100.

Hard rules
- Use only the information given. Do not invent portfolio items, clients or skills.
- Score every candidate exactly once, using the candidate's "id" verbatim.
- Output JSON only, in the form {"scores": [{"id": "<candidate id>", "score": <0-100>}]}.

Scoring guidance
- Style and industry fit matter most, then relevant specialization and experience.
- Penalize clear mismatches in availability for urgent timelines.
- 90+ is an exceptional fit, 70-89 a good fit, 50-69 acceptable, below 50 a poor fit.
"""

DEEP_ANALYSIS_SYSTEM_PROMPT = """
You are a senior account manager assessing one service provider for one client project.

Task
- Judge the fit between the brief and the candidate, considering the local score breakdown provided.

Hard rules
- Use only the information given. No inference about facts not present.
- Output JSON only with exactly these keys:
  {"score": <0-100>, "confidence": "low"|"medium"|"high", "strengths": [<string>],
   "risks": [<string>], "unique_value": <string or null>, "summary": <string>}
- strengths and risks: at most 3 short phrases each.
- summary: one or two sentences a client could read.
"""


def _brief_payload(brief: Brief) -> Dict[str, Any]:
    return {
        "project_type": brief.project_type,
        "industry": brief.industry,
        "styles": list(brief.styles),
        "timeline": brief.timeline,
        "budget": brief.budget,
        "requirements": brief.requirements,
        "complexity": brief.complexity_level,
        "required_tools": list(brief.required_tools),
        "target_audience": brief.target_audience,
        "brand_personality": brief.brand_personality,
    }


def _candidate_payload(candidate: Candidate) -> Dict[str, Any]:
    metrics = candidate.metrics
    return {
        "id": candidate.id,
        "styles": list(candidate.styles),
        "industries": list(candidate.industries),
        "years_experience": candidate.years_experience,
        "availability": candidate.availability.value,
        "specializations": list(candidate.specializations),
        "tools": list(candidate.tools_expertise),
        "avg_rating": metrics.avg_rating if metrics else None,
        "on_time_delivery_rate": metrics.on_time_delivery_rate if metrics else None,
    }


def build_quick_score_message(brief: Brief, candidates: Sequence[Candidate]) -> str:
    payload = {
        "brief": _brief_payload(brief),
        "candidates": [_candidate_payload(c) for c in candidates],
    }
    return f"<MATCH_REQUEST>\n{json.dumps(payload, ensure_ascii=False)}\n</MATCH_REQUEST>\n\nScore every candidate."


def build_deep_analysis_message(brief: Brief, scored: ScoredCandidate) -> str:
    candidate = _candidate_payload(scored.candidate)
    candidate.update({
        "design_philosophy": scored.candidate.design_philosophy,
        "portfolio_keywords": list(scored.candidate.portfolio_keywords),
        "work_approach": scored.candidate.work_approach,
        "communication_style": scored.candidate.communication_style,
    })
    payload = {
        "brief": _brief_payload(brief),
        "candidate": candidate,
        "current_score": scored.score,
        "score_breakdown": scored.breakdown,
    }
    return f"<ANALYSIS_REQUEST>\n{json.dumps(payload, ensure_ascii=False)}\n</ANALYSIS_REQUEST>\n\nAssess this candidate."
