#!/usr/bin/env python3
"""
Embedding Text Builder - Canonical text for candidates and briefs.

The same entity always produces the same text, so the same embedding and
the same content hash.
"""

import hashlib
import re
from typing import Any, Dict, List

import numpy as np

from core.models import Brief, Candidate

_TOKEN = re.compile(r"[a-z0-9][a-z0-9+#.\-]*")


def candidate_source_fields(candidate: Candidate) -> Dict[str, Any]:
    """Fields that feed a candidate's embedding; hashed to detect staleness."""
    return {
        "styles": sorted(candidate.styles),
        "industries": sorted(candidate.industries),
        "specializations": sorted(candidate.specializations),
        "tools": sorted(candidate.tools_expertise),
        "portfolio_keywords": sorted(candidate.portfolio_keywords),
        "design_philosophy": candidate.design_philosophy or "",
    }


def build_candidate_text(candidate: Candidate) -> str:
    fields = candidate_source_fields(candidate)
    parts: List[str] = []
    if fields["styles"]:
        parts.append("Styles: " + ", ".join(fields["styles"]))
    if fields["industries"]:
        parts.append("Industries: " + ", ".join(fields["industries"]))
    if fields["specializations"]:
        parts.append("Specializations: " + ", ".join(fields["specializations"]))
    if fields["tools"]:
        parts.append("Tools: " + ", ".join(fields["tools"]))
    if fields["portfolio_keywords"]:
        parts.append("Portfolio: " + ", ".join(fields["portfolio_keywords"]))
    if fields["design_philosophy"]:
        parts.append("Philosophy: " + fields["design_philosophy"])
    return "\n".join(parts)


def build_brief_text(brief: Brief) -> str:
    parts = [
        f"Project: {brief.project_type}",
        f"Industry: {brief.industry}",
    ]
    if brief.styles:
        parts.append("Styles: " + ", ".join(brief.styles))
    if brief.requirements:
        parts.append("Requirements: " + brief.requirements)
    if brief.target_audience:
        parts.append("Audience: " + brief.target_audience)
    if brief.brand_personality:
        parts.append("Brand: " + brief.brand_personality)
    if brief.required_tools:
        parts.append("Tools: " + ", ".join(brief.required_tools))
    return "\n".join(parts)


def tokenize(text: str) -> List[str]:
    return _TOKEN.findall((text or "").lower())


class HashingEmbedder:
    """
    Local embedding via signed feature hashing of word tokens.

    Deterministic across processes (sha256, not the salted builtin hash).
    Vectors are L2-normalized; empty text gives the zero vector.
    """

    def __init__(self, dimensions: int = 512):
        self.dimensions = dimensions

    def generate_embedding(self, text: str) -> List[float]:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in tokenize(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()
