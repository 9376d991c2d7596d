from database.repositories.base import BaseRepository
from database.repositories.candidate import CandidateRepository, SqlCandidatePool

__all__ = [
    'BaseRepository',
    'CandidateRepository',
    'SqlCandidatePool',
]
