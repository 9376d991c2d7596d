#!/usr/bin/env python3
"""
Progressive Matcher - Three passes over the candidate pool, one event per pass.

- Phase 1 (instant): local score + embedding similarity for every eligible
  candidate, emitted before find_match() returns
- Phase 2 (refined): one batched remote quick-score call for the top results
- Phase 3 (final): per-candidate remote deep analysis for the top few

Phases 2 and 3 run on a per-run coordinator thread and degrade silently: a
failing remote service means fewer events, never an error for the caller.
Only Phase 1 can fail a run (NoMatchAvailableError).
"""

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from core.cache import MatchCache
from core.config_loader import PhaseConfig
from core.exceptions import NoMatchAvailableError
from core.llm import LLMProvider, NullLLMProvider
from core.matcher import (
    EmbeddingService,
    HashingEmbedder,
    NEUTRAL_EMBEDDING_SCORE,
    generate_key_strengths,
    generate_match_explanation,
)
from core.models import (
    Brief,
    Candidate,
    ClientPreferences,
    MatchEvent,
    Phase,
    PHASE_CONFIDENCE,
    ScoredCandidate,
    rank_results,
)
from core.pool import CandidatePool, EligibilityFilter
from core.scorer import ScoreResult, ScoringService
from core.utils import Fingerprinter
from pipeline.control import RunRegistry
from pipeline.events import MatchEventStream

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    STARTED = "started"
    INSTANT_EMITTED = "instant_emitted"
    REFINED_EMITTED = "refined_emitted"
    FINAL_EMITTED = "final_emitted"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


_TRANSITIONS: Dict[RunState, Tuple[RunState, ...]] = {
    RunState.STARTED: (RunState.INSTANT_EMITTED, RunState.CANCELLED, RunState.COMPLETED),
    RunState.INSTANT_EMITTED: (
        RunState.REFINED_EMITTED, RunState.FINAL_EMITTED, RunState.CANCELLED, RunState.COMPLETED
    ),
    RunState.REFINED_EMITTED: (RunState.FINAL_EMITTED, RunState.CANCELLED, RunState.COMPLETED),
    RunState.FINAL_EMITTED: (RunState.CANCELLED, RunState.COMPLETED),
    RunState.CANCELLED: (),
    RunState.COMPLETED: (),
}

_EMITTED_STATE: Dict[Phase, RunState] = {
    Phase.INSTANT: RunState.INSTANT_EMITTED,
    Phase.REFINED: RunState.REFINED_EMITTED,
    Phase.FINAL: RunState.FINAL_EMITTED,
}


class _LazyBriefVector:
    """Brief embedding computed by the first Phase 1 task that misses the cache."""

    def __init__(self, compute: Callable[[], Optional[List[float]]]):
        self._compute = compute
        self._lock = threading.Lock()
        self._done = False
        self._vector: Optional[List[float]] = None

    def get(self) -> Optional[List[float]]:
        with self._lock:
            if not self._done:
                self._vector = self._compute()
                self._done = True
            return self._vector


class MatchRun:
    """Handle for one in-flight matching run."""

    def __init__(self, brief: Brief, preferences: Optional[ClientPreferences] = None,
                 run_id: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex
        self.brief = brief
        self.brief_hash = Fingerprinter.brief_hash(brief, preferences)
        self.preferences = preferences
        self.stream = MatchEventStream(self.run_id)
        self.started_at = time.monotonic()

        self.instant_results: List[ScoredCandidate] = []
        self.refined_results: Optional[List[ScoredCandidate]] = None
        self.final_results: Optional[List[ScoredCandidate]] = None

        self._lock = threading.Lock()
        self._state = RunState.STARTED
        self._history: List[RunState] = [RunState.STARTED]
        self._cancel_event = threading.Event()
        self._done_event = threading.Event()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def history(self) -> List[RunState]:
        with self._lock:
            return list(self._history)

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_finished(self) -> bool:
        return self._done_event.is_set()

    @property
    def best(self) -> Optional[ScoredCandidate]:
        """Best match from the most recent event."""
        latest = self.stream.latest
        return latest.match if latest else None

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000.0

    def transition(self, new_state: RunState) -> bool:
        with self._lock:
            if new_state not in _TRANSITIONS[self._state]:
                return False
            self._state = new_state
            self._history.append(new_state)
            return True

    def cancel(self) -> bool:
        """Stop background phases; nothing further is emitted."""
        if self.is_finished or self.is_cancelled:
            return False
        self._cancel_event.set()
        self.transition(RunState.CANCELLED)
        self.stream.close()
        logger.info(f"Run {self.run_id} cancelled after {self.elapsed_ms():.0f}ms")
        return True

    def wait_for_cancel(self, timeout: float) -> bool:
        return self._cancel_event.wait(timeout)

    def finish(self) -> None:
        self.transition(RunState.COMPLETED)
        self.stream.close()
        self._done_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until background phases are done. Returns False on timeout."""
        return self._done_event.wait(timeout)


class ProgressiveMatcher:
    """
    Runs the three matching phases and owns all concurrency and fallback policy.

    Two ThreadPoolExecutors are shared by every run: `executor` for Phase 1
    per-candidate work (cache lookup, local score, embedding score) and
    `remote_executor` for Phase 2/3 remote calls. A remote call that outlives
    its phase timeout keeps its remote worker, never a Phase 1 worker. Tasks
    never wait on other pool tasks; the waiting happens on the caller thread
    (Phase 1) or the run's coordinator thread (Phases 2 and 3).
    """

    def __init__(
        self,
        pool: CandidatePool,
        scorer: Optional[ScoringService] = None,
        embeddings: Optional[EmbeddingService] = None,
        cache: Optional[MatchCache] = None,
        llm: Optional[LLMProvider] = None,
        config: Optional[PhaseConfig] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        registry: Optional[RunRegistry] = None,
        remote_executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.config = config or PhaseConfig()
        self.pool = pool
        self.scorer = scorer or ScoringService()
        self.embeddings = embeddings or EmbeddingService(HashingEmbedder())
        self.cache = cache or MatchCache()
        self.llm = llm or NullLLMProvider()
        self.registry = registry or RunRegistry(cancel_superseded=self.config.cancel_superseded_runs)

        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="match-worker"
        )
        self._owns_remote_executor = remote_executor is None
        self.remote_executor = remote_executor or ThreadPoolExecutor(
            max_workers=self.config.remote_max_workers, thread_name_prefix="match-remote"
        )

    def __enter__(self) -> "ProgressiveMatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self.registry.cancel_all()
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
        if self._owns_remote_executor:
            self.remote_executor.shutdown(wait=wait)

    # ----------------------------------------------------------------------
    # Entry point
    # ----------------------------------------------------------------------

    def find_match(self, brief: Brief, preferences: Optional[ClientPreferences] = None) -> MatchRun:
        """
        Start a matching run.

        The instant event is already on run.stream when this returns; refined
        and final events follow in the background.

        Raises:
            NoMatchAvailableError: the pool query failed or nobody is eligible
        """
        run = MatchRun(brief, preferences)
        self.registry.register(run, client_id=brief.client_id or None)
        logger.info(f"Run {run.run_id}: matching brief {brief.id} (hash {run.brief_hash})")

        try:
            run.instant_results = self._run_instant(run)
        except NoMatchAvailableError as e:
            logger.warning(f"Run {run.run_id}: {e}")
            run.finish()
            self.registry.unregister(run)
            raise

        self._emit(run, Phase.INSTANT, run.instant_results)

        coordinator = threading.Thread(
            target=self._run_background,
            args=(run,),
            name=f"match-run-{run.run_id[:8]}",
            daemon=True,
        )
        coordinator.start()
        return run

    # ----------------------------------------------------------------------
    # Phase 1
    # ----------------------------------------------------------------------

    def _fetch_candidates(self, brief: Brief) -> List[Candidate]:
        limit = self.config.candidate_pool_limit
        try:
            candidates = self.pool.fetch_eligible(brief, limit)
        except Exception as e:
            logger.error(f"Candidate pool query failed for brief {brief.id}: {e}")
            raise NoMatchAvailableError(brief.id, f"candidate pool query failed: {e}") from e

        # Custom pools may filter less strictly
        candidates = [c for c in candidates if EligibilityFilter.is_eligible(c, brief)][:limit]
        if not candidates:
            raise NoMatchAvailableError(brief.id, "no eligible candidates")
        return candidates

    def _embed_brief(self, brief: Brief) -> Optional[List[float]]:
        try:
            return self.embeddings.embed_brief(brief)
        except Exception as e:
            logger.warning(f"Brief embedding unavailable for {brief.id}, using neutral similarity: {e}")
            return None

    def _embedding_score(self, candidate: Candidate, brief: Brief,
                         brief_vector: Optional[List[float]]) -> float:
        if brief_vector is None:
            return NEUTRAL_EMBEDDING_SCORE
        return self.embeddings.calculate_embedding_score(candidate, brief, brief_vector)

    def _combine_instant(self, candidate: Candidate, brief: Brief,
                         local: ScoreResult, embedding_score: float) -> ScoredCandidate:
        cfg = self.config
        score = round(cfg.instant_local_weight * local.total + cfg.instant_embedding_weight * embedding_score, 2)
        return ScoredCandidate(
            candidate=candidate,
            score=score,
            phase=Phase.INSTANT,
            breakdown=dict(local.breakdown),
            weights=dict(local.weights),
            local_score=local.total,
            embedding_score=embedding_score,
            explanation=generate_match_explanation(candidate, brief, local.breakdown, local.weights),
            strengths=generate_key_strengths(local.breakdown, local.weights),
            analysis_confidence=local.confidence,
        )

    def _run_instant(self, run: MatchRun) -> List[ScoredCandidate]:
        brief = run.brief
        candidates = self._fetch_candidates(brief)
        brief_vector = _LazyBriefVector(lambda: self._embed_brief(brief))

        futures = {
            c.id: self.executor.submit(self._instant_for, run, c, brief_vector) for c in candidates
        }

        results: Dict[str, ScoredCandidate] = {}
        from_cache = 0
        for candidate in candidates:
            try:
                scored, cached = futures[candidate.id].result()
            except Exception as e:
                logger.warning(f"Run {run.run_id}: local scoring failed for {candidate.id}: {e}")
                continue
            results[candidate.id] = scored
            from_cache += int(cached)

        if not results:
            raise NoMatchAvailableError(brief.id, "no candidate could be scored")

        logger.debug(
            f"Run {run.run_id}: instant phase scored {len(results) - from_cache} candidates, "
            f"{from_cache} from cache"
        )
        return rank_results(list(results.values()))

    def _instant_for(self, run: MatchRun, candidate: Candidate,
                     brief_vector: "_LazyBriefVector") -> Tuple[ScoredCandidate, bool]:
        """Phase 1 work for one candidate: cache lookup, else local + embedding score."""
        entry = self.cache.get(run.brief_hash, candidate.id, Phase.INSTANT)
        if entry is not None:
            return entry.result, True

        local = self.scorer.score(candidate, run.brief, run.preferences)
        try:
            embedding_score = self._embedding_score(candidate, run.brief, brief_vector.get())
        except Exception as e:
            logger.warning(f"Run {run.run_id}: embedding score failed for {candidate.id}: {e}")
            embedding_score = NEUTRAL_EMBEDDING_SCORE

        scored = self._combine_instant(candidate, run.brief, local, embedding_score)
        self.cache.set(run.brief_hash, candidate.id, scored, Phase.INSTANT)
        return scored, False

    # ----------------------------------------------------------------------
    # Phases 2 and 3 (coordinator thread)
    # ----------------------------------------------------------------------

    def _run_background(self, run: MatchRun) -> None:
        cfg = self.config
        try:
            if not self.llm.is_available:
                logger.debug(f"Run {run.run_id}: remote scoring unavailable, stopping after instant phase")
                return
            if run.is_cancelled:
                return

            top_refined = run.instant_results[:cfg.refined_top_n]
            top_final = run.instant_results[:cfg.final_top_n]

            refined_cached, refined_future = self._schedule_refined(run, top_refined)
            refined_deadline = time.monotonic() + cfg.refined_timeout_seconds

            if run.wait_for_cancel(cfg.final_phase_delay_seconds):
                return

            final_cached, final_futures = self._schedule_final(run, top_final)
            final_deadline = time.monotonic() + cfg.final_timeout_seconds

            refined = self._resolve_refined(run, top_refined, refined_cached, refined_future, refined_deadline)
            if refined is not None:
                run.refined_results = refined
                self._emit(run, Phase.REFINED, refined)

            final = self._resolve_final(run, top_final, final_cached, final_futures, final_deadline)
            if final is not None:
                run.final_results = final
                self._emit(run, Phase.FINAL, final)
        except Exception:
            logger.exception(f"Run {run.run_id}: background phases failed")
        finally:
            run.finish()
            self.registry.unregister(run)
            logger.info(f"Run {run.run_id} finished in state {run.state.value} after {run.elapsed_ms():.0f}ms")

    def _schedule_refined(
        self, run: MatchRun, top: List[ScoredCandidate]
    ) -> Tuple[Dict[str, ScoredCandidate], Optional[Future]]:
        cached: Dict[str, ScoredCandidate] = {}
        pending: List[Candidate] = []
        for scored in top:
            entry = self.cache.get(run.brief_hash, scored.candidate_id, Phase.REFINED)
            if entry is not None:
                cached[scored.candidate_id] = entry.result
            else:
                pending.append(scored.candidate)

        if not pending:
            logger.debug(f"Run {run.run_id}: all refined results cached, skipping quick score call")
            return cached, None
        return cached, self.remote_executor.submit(self.llm.quick_score, run.brief, pending)

    def _resolve_refined(
        self,
        run: MatchRun,
        top: List[ScoredCandidate],
        cached: Dict[str, ScoredCandidate],
        future: Optional[Future],
        deadline: float,
    ) -> Optional[List[ScoredCandidate]]:
        cfg = self.config
        remote_scores: Dict[str, float] = {}

        if future is not None:
            try:
                remote_scores = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                future.cancel()
                logger.warning(f"Run {run.run_id}: quick scoring timed out, skipping refined phase")
                return None
            except Exception as e:
                logger.warning(f"Run {run.run_id}: quick scoring failed, skipping refined phase: {e}")
                return None
            if not remote_scores:
                logger.warning(f"Run {run.run_id}: quick scoring returned nothing, skipping refined phase")
                return None

        if run.is_cancelled:
            return None

        results: List[ScoredCandidate] = []
        for scored in top:
            if scored.candidate_id in cached:
                results.append(cached[scored.candidate_id])
                continue

            # Candidates the remote scorer skipped keep their instant score
            remote = remote_scores.get(scored.candidate_id, scored.score)
            local = scored.local_score if scored.local_score is not None else scored.score
            score = round(cfg.refined_local_weight * local + cfg.refined_remote_weight * remote, 2)

            refined = scored.supersede(Phase.REFINED, score, remote_score=remote)
            self.cache.set(run.brief_hash, scored.candidate_id, refined, Phase.REFINED)
            results.append(refined)

        return rank_results(results)

    def _schedule_final(
        self, run: MatchRun, top: List[ScoredCandidate]
    ) -> Tuple[Dict[str, ScoredCandidate], Dict[str, Future]]:
        cached: Dict[str, ScoredCandidate] = {}
        futures: Dict[str, Future] = {}
        for scored in top:
            entry = self.cache.get(run.brief_hash, scored.candidate_id, Phase.FINAL)
            if entry is not None:
                cached[scored.candidate_id] = entry.result
            else:
                futures[scored.candidate_id] = self.remote_executor.submit(
                    self.llm.deep_analysis, run.brief, scored
                )
        return cached, futures

    def _resolve_final(
        self,
        run: MatchRun,
        top: List[ScoredCandidate],
        cached: Dict[str, ScoredCandidate],
        futures: Dict[str, Future],
        deadline: float,
    ) -> Optional[List[ScoredCandidate]]:
        if futures:
            _, not_done = wait(list(futures.values()), timeout=max(0.0, deadline - time.monotonic()))
            for future in not_done:
                future.cancel()

        if run.is_cancelled:
            return None

        prior = {s.candidate_id: s for s in (run.refined_results or [])}
        results: List[ScoredCandidate] = []
        succeeded = 0

        for scored in top:
            candidate_id = scored.candidate_id
            if candidate_id in cached:
                results.append(cached[candidate_id])
                succeeded += 1
                continue

            analysis = None
            future = futures[candidate_id]
            if future.done() and not future.cancelled():
                try:
                    analysis = future.result()
                except Exception as e:
                    logger.warning(f"Run {run.run_id}: deep analysis failed for {candidate_id}: {e}")
            else:
                logger.warning(f"Run {run.run_id}: deep analysis timed out for {candidate_id}")

            if analysis is None:
                results.append(prior.get(candidate_id, scored))
                continue

            final = scored.supersede(
                Phase.FINAL,
                round(analysis.score, 2),
                remote_score=analysis.score,
                explanation=analysis.summary or scored.explanation,
                strengths=list(analysis.strengths) or list(scored.strengths),
                risks=list(analysis.risks),
                analysis_confidence=analysis.confidence,
            )
            self.cache.set(run.brief_hash, candidate_id, final, Phase.FINAL)
            results.append(final)
            succeeded += 1

        if succeeded == 0:
            logger.warning(f"Run {run.run_id}: every deep analysis failed, skipping final phase")
            return None
        return rank_results(results)

    # ----------------------------------------------------------------------
    # Emission
    # ----------------------------------------------------------------------

    def _target_ms(self, phase: Phase) -> float:
        return {
            Phase.INSTANT: self.config.instant_target_ms,
            Phase.REFINED: self.config.refined_target_ms,
            Phase.FINAL: self.config.final_target_ms,
        }[phase]

    def _emit(self, run: MatchRun, phase: Phase, ranked: List[ScoredCandidate]) -> bool:
        if run.is_cancelled or not ranked:
            return False

        elapsed = run.elapsed_ms()
        event = MatchEvent(
            run_id=run.run_id,
            phase=phase,
            match=ranked[0],
            alternates=tuple(ranked[1:1 + self.config.alternates_count]),
            confidence=PHASE_CONFIDENCE[phase],
            elapsed_ms=elapsed,
        )
        if not run.stream.emit(event):
            return False
        run.transition(_EMITTED_STATE[phase])

        target = self._target_ms(phase)
        if elapsed > target:
            logger.warning(
                f"Run {run.run_id}: {phase.value} phase took {elapsed:.0f}ms (target {target:.0f}ms)"
            )
        logger.info(
            f"Run {run.run_id}: {phase.value} match {event.match.candidate_id} "
            f"score={event.match.score} after {elapsed:.0f}ms"
        )
        return True
