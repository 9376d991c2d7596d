import hashlib
import json
import logging
import re
from typing import Any, Dict, Optional

from core.models import Brief, ClientPreferences

logger = logging.getLogger(__name__)

_BUDGET_NUMBER = re.compile(r"\d[\d,]*")


def parse_budget(budget: Any) -> int:
    """Return the first number found in a budget bucket like '$2500-5000', or 0."""
    if budget is None:
        return 0
    if isinstance(budget, (int, float)):
        return int(budget)
    match = _BUDGET_NUMBER.search(str(budget))
    if not match:
        return 0
    return int(match.group(0).replace(",", ""))


class Fingerprinter:
    """
    Pure logic for creating deterministic fingerprints used as cache keys.
    """

    @staticmethod
    def content_hash(data: Dict[str, Any]) -> str:
        """
        SHA-256 of normalized JSON (sorted keys), first 32 hex characters.
        """
        normalized = json.dumps(data, sort_keys=True, ensure_ascii=False, default=list)
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()[:32]

    @staticmethod
    def brief_essentials(brief: Brief, preferences: Optional[ClientPreferences] = None) -> Dict[str, Any]:
        """
        Subset of brief fields (plus client preferences) that influence scoring.

        Budget is floored to a $1000 bucket so near-identical briefs share
        cache entries. Complexity and client preferences are included; both
        change the local score.
        """
        essentials: Dict[str, Any] = {
            "styles": sorted(s.lower().strip() for s in brief.styles),
            "industry": (brief.industry or "").lower().strip(),
            "project_type": (brief.project_type or "").lower().strip(),
            "timeline": (brief.timeline or "").strip(),
            "budget": parse_budget(brief.budget) // 1000,
            "complexity": (brief.complexity_level or "").lower().strip(),
        }
        if preferences is not None:
            essentials["preferences"] = {
                "preferred_styles": sorted(s.lower().strip() for s in preferences.preferred_styles),
                "avoided_styles": sorted(s.lower().strip() for s in preferences.avoided_styles),
                "communication_frequency": (preferences.communication_frequency or "").lower(),
                "preferred_experience": (preferences.preferred_experience or "").lower(),
            }
        return essentials

    @staticmethod
    def brief_hash(brief: Brief, preferences: Optional[ClientPreferences] = None) -> str:
        return Fingerprinter.content_hash(Fingerprinter.brief_essentials(brief, preferences))[:16]
