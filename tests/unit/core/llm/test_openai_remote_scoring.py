"""
Unit tests for the OpenAI remote scoring service.

Tests verify:
- Quick score and deep analysis responses are parsed and clamped
- Malformed output raises RemoteScoringError
- Transient API errors are retried, then surfaced as RemoteScoringError
- Each request carries the configured timeout
"""
import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from core.config_loader import LlmConfig
from core.exceptions import RemoteScoringError, RemoteScoringUnavailableError
from core.llm import NullLLMProvider, OpenAIService
from core.llm.openai_service import parse_deep_analysis, parse_quick_scores
from core.llm.system_prompts import build_quick_score_message
from core.models import Confidence, ScoredCandidate
from tests.fixtures.candidates import make_brief, make_candidate


def completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def timeout_error():
    return openai.APITimeoutError(request=httpx.Request("POST", "https://api.example.com/v1/chat/completions"))


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def service(client):
    return OpenAIService(config=LlmConfig(api_key="test", max_retries=2, request_timeout_seconds=3.0), client=client)


class TestParsing:

    def test_quick_scores_clamped_and_filtered(self):
        content = json.dumps({"scores": [
            {"id": "a", "score": 120},
            {"id": "b", "score": "55.5"},
            {"id": "ghost", "score": 90},
            {"id": "c", "score": "n/a"},
        ]})
        assert parse_quick_scores(content, ["a", "b", "c"]) == {"a": 100.0, "b": 55.5}

    @pytest.mark.parametrize("content", [None, "", "not json", "[1, 2]", json.dumps({"scores": "x"}),
                                         json.dumps({"scores": [{"id": "zzz", "score": 1}]})])
    def test_unusable_quick_scores_raise(self, content):
        with pytest.raises(RemoteScoringError):
            parse_quick_scores(content, ["a"])

    def test_deep_analysis_parsed(self):
        content = json.dumps({
            "score": 88, "confidence": "HIGH", "strengths": ["a", "b", "c", "d"],
            "risks": [], "unique_value": "", "summary": "Great fit.",
        })
        analysis = parse_deep_analysis(content)
        assert analysis.score == 88.0
        assert analysis.confidence == Confidence.HIGH
        assert analysis.strengths == ("a", "b", "c")
        assert analysis.unique_value is None
        assert analysis.summary == "Great fit."

    def test_deep_analysis_unknown_confidence_defaults_to_medium(self):
        analysis = parse_deep_analysis(json.dumps({"score": 50, "confidence": "certain"}))
        assert analysis.confidence == Confidence.MEDIUM

    def test_deep_analysis_without_score_raises(self):
        with pytest.raises(RemoteScoringError):
            parse_deep_analysis(json.dumps({"summary": "no score"}))


class TestOpenAIService:

    def test_quick_score_single_batched_call(self, service, client):
        client.chat.completions.create.return_value = completion(
            json.dumps({"scores": [{"id": "a", "score": 70}, {"id": "b", "score": 40}]})
        )
        scores = service.quick_score(make_brief(), [make_candidate("a"), make_candidate("b")])

        assert scores == {"a": 70.0, "b": 40.0}
        assert client.chat.completions.create.call_count == 1
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["timeout"] == 3.0
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_quick_score_empty_batch_skips_call(self, service, client):
        assert service.quick_score(make_brief(), []) == {}
        client.chat.completions.create.assert_not_called()

    def test_transient_error_retried(self, service, client):
        client.chat.completions.create.side_effect = [
            timeout_error(),
            completion(json.dumps({"scores": [{"id": "a", "score": 61}]})),
        ]
        assert service.quick_score(make_brief(), [make_candidate("a")]) == {"a": 61.0}
        assert client.chat.completions.create.call_count == 2

    def test_retry_logged_with_operation_name(self, service, client, caplog):
        client.chat.completions.create.side_effect = [
            timeout_error(),
            completion(json.dumps({"score": 72, "confidence": "high"})),
        ]
        scored = ScoredCandidate(candidate=make_candidate("a"), score=70.0)
        with caplog.at_level("WARNING", logger="core.llm.openai_service"):
            service.deep_analysis(make_brief(), scored)
        assert "Remote deep analysis failed on attempt 1" in caplog.text

    def test_retries_exhausted_raise_remote_error(self, service, client):
        client.chat.completions.create.side_effect = timeout_error()
        with pytest.raises(RemoteScoringError):
            service.quick_score(make_brief(), [make_candidate("a")])
        assert client.chat.completions.create.call_count == 2

    def test_deep_analysis(self, service, client):
        client.chat.completions.create.return_value = completion(
            json.dumps({"score": 91, "confidence": "high", "strengths": ["Bold work"], "summary": "Yes."})
        )
        scored = ScoredCandidate(candidate=make_candidate("a"), score=70.0)
        analysis = service.deep_analysis(make_brief(), scored)
        assert analysis.score == 91.0
        assert analysis.strengths == ("Bold work",)

    def test_generate_embedding(self, service, client):
        client.embeddings.create.return_value = MagicMock(data=[MagicMock(embedding=[0.1, 0.2])])
        assert service.generate_embedding("hello") == [0.1, 0.2]
        assert client.embeddings.create.call_args.kwargs["model"] == "text-embedding-3-small"

    def test_disabled_config_reports_unavailable(self, client):
        assert OpenAIService(config=LlmConfig(enabled=False), client=client).is_available is False


class TestPrompts:

    def test_quick_score_message_lists_every_candidate(self):
        message = build_quick_score_message(make_brief(), [make_candidate("a"), make_candidate("b")])
        payload = json.loads(message.split("\n")[1])
        assert [c["id"] for c in payload["candidates"]] == ["a", "b"]
        assert payload["brief"]["industry"] == "SaaS"


class TestNullProvider:

    def test_every_call_fails_fast(self):
        provider = NullLLMProvider()
        assert provider.is_available is False
        with pytest.raises(RemoteScoringUnavailableError):
            provider.quick_score(make_brief(), [make_candidate()])
        with pytest.raises(RemoteScoringUnavailableError):
            provider.deep_analysis(make_brief(), ScoredCandidate(candidate=make_candidate(), score=1.0))
        with pytest.raises(RemoteScoringUnavailableError):
            provider.generate_embedding("x")
