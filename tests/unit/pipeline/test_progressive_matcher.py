"""
Tests for the progressive matcher.

Covers phase ordering, blending, degradation when the remote scorer fails,
hard failures, caching between runs and cancellation.
"""
import time
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from core.cache import MatchCache, RedisMatchCacheStore
from core.config_loader import CacheConfig, PhaseConfig
from core.exceptions import CandidatePoolError, NoMatchAvailableError
from core.llm import NullLLMProvider
from core.matcher import EmbeddingService, HashingEmbedder
from core.models import Availability, Confidence, Phase
from core.pool import InMemoryCandidatePool
from core.scorer import ScoringService, score_candidate
from pipeline.orchestrator import ProgressiveMatcher, RunState
from tests.fixtures.candidates import (
    make_candidate,
    scenario_brief,
    scenario_candidate_a,
    scenario_candidate_b,
)
from tests.mocks.llm_mocks import BlockingLLMProvider, FailingEmbedder, FailingLLMProvider, MockLLMProvider

WAIT = 5.0


def fast_config(**overrides) -> PhaseConfig:
    values = dict(final_phase_delay_seconds=0.01, refined_timeout_seconds=2.0,
                  final_timeout_seconds=2.0, max_workers=8)
    values.update(overrides)
    return PhaseConfig(**values)


def pool_candidates():
    return [
        scenario_candidate_a(),
        scenario_candidate_b(),
        make_candidate("C", styles=("playful",), industries=("Gaming",)),
        make_candidate("D", styles=("modern",), industries=("Retail",), availability=Availability.BUSY),
        make_candidate("E", styles=("modern",), industries=("Legal",), years_experience=1),
        make_candidate("F", styles=("vintage",), industries=("Fashion",)),
        make_candidate("X", availability=Availability.UNAVAILABLE),
    ]


class FailingPool:
    def fetch_eligible(self, brief, limit):
        raise CandidatePoolError("database is down")


@pytest.fixture
def make_matcher():
    created = []

    def factory(candidates=None, llm=None, config=None, scorer=None, pool=None, embeddings=None, cache=None):
        matcher = ProgressiveMatcher(
            pool=pool or InMemoryCandidatePool(candidates if candidates is not None else pool_candidates()),
            scorer=scorer,
            embeddings=embeddings or EmbeddingService(HashingEmbedder(dimensions=64)),
            cache=cache or MatchCache(CacheConfig()),
            llm=llm,
            config=config or fast_config(),
        )
        created.append(matcher)
        return matcher

    yield factory
    for matcher in created:
        matcher.shutdown()


class TestInstantPhase:

    def test_instant_event_available_when_find_match_returns(self, make_matcher):
        run = make_matcher(llm=NullLLMProvider()).find_match(scenario_brief())

        events = run.stream.events
        assert len(events) == 1
        assert events[0].phase == Phase.INSTANT
        assert events[0].confidence == Confidence.LOW
        assert events[0].match.candidate_id == "A"
        assert len(events[0].alternates) == 3

    def test_a_ranked_above_b(self, make_matcher):
        run = make_matcher(candidates=[scenario_candidate_a(), scenario_candidate_b()],
                           llm=NullLLMProvider()).find_match(scenario_brief())
        assert [r.candidate_id for r in run.instant_results] == ["A", "B"]
        assert run.instant_results[0].score > run.instant_results[1].score

    def test_unavailable_candidates_never_scored(self, make_matcher):
        run = make_matcher(llm=NullLLMProvider()).find_match(scenario_brief())
        assert "X" not in {r.candidate_id for r in run.instant_results}

    def test_excluded_candidates_skipped(self, make_matcher):
        brief = scenario_brief()
        brief = replace(brief, excluded_candidate_ids=("A",))
        run = make_matcher(llm=NullLLMProvider()).find_match(brief)
        assert run.best.candidate_id != "A"

    def test_instant_score_blends_local_and_embedding(self, make_matcher):
        run = make_matcher(llm=NullLLMProvider()).find_match(scenario_brief())
        top = run.instant_results[0]
        assert top.score == pytest.approx(round(0.7 * top.local_score + 0.3 * top.embedding_score, 2))
        assert top.phase == Phase.INSTANT
        assert top.explanation

    def test_embedding_failure_uses_neutral_score(self, make_matcher):
        run = make_matcher(llm=NullLLMProvider(),
                           embeddings=EmbeddingService(FailingEmbedder())).find_match(scenario_brief())
        assert all(r.embedding_score == 50.0 for r in run.instant_results)
        assert run.best.candidate_id == "A"


class TestHardFailure:

    def test_empty_pool(self, make_matcher):
        with pytest.raises(NoMatchAvailableError):
            make_matcher(candidates=[]).find_match(scenario_brief())

    def test_nobody_eligible(self, make_matcher):
        with pytest.raises(NoMatchAvailableError):
            make_matcher(candidates=[make_candidate("X", availability=Availability.UNAVAILABLE)]).find_match(
                scenario_brief()
            )

    def test_pool_query_failure(self, make_matcher):
        with pytest.raises(NoMatchAvailableError) as exc_info:
            make_matcher(pool=FailingPool()).find_match(scenario_brief())
        assert "database is down" in str(exc_info.value)


class TestBackgroundPhases:

    def test_all_three_phases_in_order(self, make_matcher):
        run = make_matcher(llm=MockLLMProvider()).find_match(scenario_brief())
        assert run.wait(WAIT)

        events = run.stream.events
        assert [e.phase for e in events] == [Phase.INSTANT, Phase.REFINED, Phase.FINAL]
        assert [e.confidence for e in events] == [Confidence.LOW, Confidence.MEDIUM, Confidence.HIGH]
        assert run.history == [
            RunState.STARTED, RunState.INSTANT_EMITTED, RunState.REFINED_EMITTED,
            RunState.FINAL_EMITTED, RunState.COMPLETED,
        ]
        assert events[0].elapsed_ms <= events[1].elapsed_ms <= events[2].elapsed_ms

    def test_refined_blends_remote_with_local(self, make_matcher):
        llm = MockLLMProvider(quick_scores={"A": 10.0, "B": 100.0})
        run = make_matcher(llm=llm).find_match(scenario_brief())
        assert run.wait(WAIT)

        instant = {r.candidate_id: r for r in run.instant_results}
        refined = {r.candidate_id: r for r in run.refined_results}
        assert refined["B"].score == pytest.approx(round(0.3 * instant["B"].local_score + 0.7 * 100.0, 2))
        assert refined["B"].phase == Phase.REFINED
        assert len(llm.quick_score_calls) == 1
        assert len(llm.quick_score_calls[0]) == len(run.instant_results[:10])

    def test_candidate_missing_from_remote_keeps_instant_score(self, make_matcher):
        llm = MockLLMProvider(quick_scores={"A": 90.0}, default_quick_score=None)
        run = make_matcher(llm=llm).find_match(scenario_brief())
        assert run.wait(WAIT)

        instant = {r.candidate_id: r for r in run.instant_results}
        refined = {r.candidate_id: r for r in run.refined_results}
        expected = round(0.3 * instant["B"].local_score + 0.7 * instant["B"].score, 2)
        assert refined["B"].score == pytest.approx(expected)

    def test_final_phase_uses_deep_analysis(self, make_matcher):
        llm = MockLLMProvider(analysis_scores={"A": 99.0})
        run = make_matcher(llm=llm).find_match(scenario_brief())
        assert run.wait(WAIT)

        final_event = run.stream.latest
        assert final_event.phase == Phase.FINAL
        assert final_event.match.candidate_id == "A"
        assert final_event.match.score == 99.0
        assert final_event.match.risks == ["Busy next month"]
        assert sorted(llm.analysis_calls) == sorted(r.candidate_id for r in run.instant_results[:5])

    def test_failed_analysis_falls_back_to_refined_result(self, make_matcher):
        llm = MockLLMProvider(failing_analysis_ids={"A"})
        run = make_matcher(llm=llm).find_match(scenario_brief())
        assert run.wait(WAIT)

        final = {r.candidate_id: r for r in run.final_results}
        assert final["A"].phase == Phase.REFINED
        assert run.stream.latest.phase == Phase.FINAL

    def test_all_analyses_failing_skips_final_event(self, make_matcher):
        ids = {c.id for c in pool_candidates()}
        run = make_matcher(llm=MockLLMProvider(failing_analysis_ids=ids)).find_match(scenario_brief())
        assert run.wait(WAIT)
        assert [e.phase for e in run.stream.events] == [Phase.INSTANT, Phase.REFINED]

    def test_failing_remote_degrades_to_instant_only(self, make_matcher):
        llm = FailingLLMProvider()
        run = make_matcher(llm=llm).find_match(scenario_brief())
        assert run.wait(WAIT)

        assert [e.phase for e in run.stream.events] == [Phase.INSTANT]
        assert run.state == RunState.COMPLETED
        assert llm.calls >= 1

    def test_null_provider_stops_after_instant(self, make_matcher):
        run = make_matcher(llm=NullLLMProvider()).find_match(scenario_brief())
        assert run.wait(WAIT)
        assert [e.phase for e in run.stream.events] == [Phase.INSTANT]
        assert run.stream.closed

    def test_quick_score_failure_still_allows_final(self, make_matcher):
        run = make_matcher(llm=MockLLMProvider(fail_quick_score=True)).find_match(scenario_brief())
        assert run.wait(WAIT)
        assert [e.phase for e in run.stream.events] == [Phase.INSTANT, Phase.FINAL]

    def test_remote_timeouts_degrade(self, make_matcher):
        llm = BlockingLLMProvider()
        config = fast_config(refined_timeout_seconds=0.05, final_timeout_seconds=0.05)
        try:
            run = make_matcher(llm=llm, config=config).find_match(scenario_brief())
            assert run.wait(WAIT)
            assert [e.phase for e in run.stream.events] == [Phase.INSTANT]
        finally:
            llm.release.set()


class TestCaching:

    def test_second_run_reuses_cached_results(self, make_matcher):
        calls = []

        def counting_scorer(candidate, brief, preferences):
            calls.append(candidate.id)
            return score_candidate(candidate, brief, preferences)

        llm = MockLLMProvider()
        matcher = make_matcher(llm=llm, scorer=ScoringService(scorer=counting_scorer))

        first = matcher.find_match(scenario_brief())
        assert first.wait(WAIT)
        scored_once = len(calls)

        second = matcher.find_match(scenario_brief())
        assert second.wait(WAIT)

        assert len(calls) == scored_once
        assert len(llm.quick_score_calls) == 1
        assert len(llm.analysis_calls) == 5
        assert [e.phase for e in second.stream.events] == [Phase.INSTANT, Phase.REFINED, Phase.FINAL]
        assert second.stream.latest.match.candidate_id == first.stream.latest.match.candidate_id


class TestCancellation:

    def test_cancelled_run_emits_nothing_further(self, make_matcher):
        llm = BlockingLLMProvider()
        try:
            run = make_matcher(llm=llm).find_match(scenario_brief())
            assert llm.started.wait(WAIT)
            assert run.cancel()
            llm.release.set()
            assert run.wait(WAIT)

            assert [e.phase for e in run.stream.events] == [Phase.INSTANT]
            assert run.state == RunState.CANCELLED
            assert run.stream.closed
        finally:
            llm.release.set()

    def test_newer_brief_from_same_client_supersedes(self, make_matcher):
        llm = BlockingLLMProvider()
        try:
            matcher = make_matcher(llm=llm)
            first = matcher.find_match(scenario_brief())
            second = matcher.find_match(scenario_brief())

            assert first.is_cancelled
            assert not second.is_cancelled
            llm.release.set()
            assert second.wait(WAIT)
            assert second.stream.latest.phase == Phase.FINAL
        finally:
            llm.release.set()

    def test_cancel_after_finish_is_noop(self, make_matcher):
        run = make_matcher(llm=NullLLMProvider()).find_match(scenario_brief())
        assert run.wait(WAIT)
        assert run.cancel() is False
        assert run.state == RunState.COMPLETED


class TestPhaseOneIsolation:

    def test_slow_remote_scorer_does_not_delay_other_clients(self, make_matcher):
        llm = BlockingLLMProvider()
        config = fast_config(max_workers=4, remote_max_workers=2)
        try:
            matcher = make_matcher(llm=llm, config=config)
            first = matcher.find_match(scenario_brief())
            assert llm.started.wait(WAIT)
            time.sleep(0.1)

            started = time.monotonic()
            second = matcher.find_match(replace(scenario_brief(), client_id="client-2"))
            took = time.monotonic() - started

            assert took < 1.0
            assert second.stream.events[0].phase == Phase.INSTANT
            assert not first.is_cancelled
        finally:
            llm.release.set()

    def test_durable_cache_reads_run_concurrently(self, make_matcher):
        def slow_get(key):
            time.sleep(0.05)
            return None

        redis_client = MagicMock()
        redis_client.get.side_effect = slow_get
        cache = MatchCache(CacheConfig(), durable=RedisMatchCacheStore(redis_client=redis_client))
        candidates = [make_candidate(f"c-{i}") for i in range(20)]
        matcher = make_matcher(candidates=candidates, llm=NullLLMProvider(), cache=cache,
                               config=fast_config(max_workers=20))

        started = time.monotonic()
        run = matcher.find_match(scenario_brief())
        took = time.monotonic() - started

        assert took < 0.5
        assert len(run.instant_results) == 20
        assert redis_client.get.call_count == 20
        assert redis_client.setex.call_count == 20
