"""Pipeline execution modules for progressive matching."""

from .control import RunRegistry
from .events import MatchEventStream
from .orchestrator import MatchRun, ProgressiveMatcher, RunState

__all__ = ['MatchEventStream', 'MatchRun', 'ProgressiveMatcher', 'RunRegistry', 'RunState']
