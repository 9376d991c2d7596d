import logging
import threading
from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from pipeline.orchestrator import MatchRun

logger = logging.getLogger(__name__)


class RunRegistry:
    """
    Tracks the live matching run per client.

    When a client starts a new run while an older one is still in its
    background phases, the older run is cancelled if cancel_superseded is set.
    """

    def __init__(self, cancel_superseded: bool = True):
        self.cancel_superseded = cancel_superseded
        self._lock = threading.Lock()
        self._runs: Dict[str, "MatchRun"] = {}
        self._by_client: Dict[str, str] = {}

    def register(self, run: "MatchRun", client_id: Optional[str] = None) -> Optional["MatchRun"]:
        """
        Register a run. Returns the superseded run, if any.
        """
        superseded = None
        with self._lock:
            self._runs[run.run_id] = run
            if client_id:
                previous_id = self._by_client.get(client_id)
                self._by_client[client_id] = run.run_id
                if previous_id and previous_id != run.run_id:
                    superseded = self._runs.get(previous_id)

        if superseded is not None and self.cancel_superseded and not superseded.is_finished:
            logger.info(f"Run {run.run_id} supersedes run {superseded.run_id} for client {client_id}")
            superseded.cancel()
        return superseded

    def unregister(self, run: "MatchRun") -> None:
        with self._lock:
            self._runs.pop(run.run_id, None)
            for client_id, run_id in list(self._by_client.items()):
                if run_id == run.run_id:
                    del self._by_client[client_id]

    def get(self, run_id: str) -> Optional["MatchRun"]:
        with self._lock:
            return self._runs.get(run_id)

    def active_runs(self) -> List["MatchRun"]:
        with self._lock:
            return list(self._runs.values())

    def cancel_all(self) -> int:
        runs = self.active_runs()
        for run in runs:
            run.cancel()
        if runs:
            logger.info(f"Cancelled {len(runs)} active matching runs")
        return len(runs)
