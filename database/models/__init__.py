from .base import Base
from .candidate import CandidateProfile, CandidateQuickStats

__all__ = [
    'Base',
    'CandidateProfile',
    'CandidateQuickStats',
]
