"""
OpenAI Service - Remote scoring using the OpenAI API.

Provides batched quick scoring, per-candidate deep analysis and embedding
generation against OpenAI or any OpenAI-compatible endpoint.
"""
from typing import Any, Dict, List, Optional, Sequence
import json
import logging

import openai
from openai import OpenAI
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config_loader import LlmConfig
from core.exceptions import RemoteScoringError
from core.llm.interfaces import LLMProvider
from core.llm.system_prompts import (
    DEEP_ANALYSIS_SYSTEM_PROMPT,
    QUICK_SCORE_SYSTEM_PROMPT,
    build_deep_analysis_message,
    build_quick_score_message,
)
from core.models import Brief, Candidate, Confidence, DeepAnalysis, ScoredCandidate

logger = logging.getLogger(__name__)

MAX_LISTED_ITEMS = 3

# ---------------------------------------------------------------------------
# Retry helpers
# ---------------------------------------------------------------------------

RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


def _retry_logger(operation: str):
    """before_sleep hook naming the remote operation being retried."""
    def log(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        reason = "rate limited" if isinstance(exc, openai.RateLimitError) else "failed"
        logger.warning(
            f"Remote {operation} {reason} on attempt {retry_state.attempt_number}, "
            f"retrying in {delay:.1f}s: {exc}"
        )
    return log


def _llm_retry(attempts: int, operation: str):
    """Return a tenacity @retry decorator for one kind of remote call.

    Backoff stays short: the orchestrator bounds the whole phase anyway.
    """
    return retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        stop=stop_after_attempt(attempts),
        before_sleep=_retry_logger(operation),
        reraise=True,
    )


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _clamp_score(value: Any) -> float:
    score = float(value)
    if score != score:  # NaN
        raise ValueError("score is NaN")
    return max(0.0, min(100.0, score))


def _string_list(value: Any) -> tuple:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value if v)[:MAX_LISTED_ITEMS]


def _load_json(content: Optional[str]) -> Dict[str, Any]:
    if not content:
        raise RemoteScoringError("Empty response from remote scorer")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise RemoteScoringError(f"Remote scorer returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise RemoteScoringError("Remote scorer response is not a JSON object")
    return data


def parse_quick_scores(content: Optional[str], expected_ids: Sequence[str]) -> Dict[str, float]:
    """Parse {"scores": [{"id", "score"}]}; unknown ids and bad rows are dropped."""
    data = _load_json(content)
    rows = data.get("scores")
    if not isinstance(rows, list):
        raise RemoteScoringError("Remote scorer response has no 'scores' list")

    expected = set(expected_ids)
    scores: Dict[str, float] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        candidate_id = str(row.get("id", ""))
        if candidate_id not in expected:
            continue
        try:
            scores[candidate_id] = _clamp_score(row.get("score"))
        except (TypeError, ValueError):
            logger.debug(f"Dropping unusable quick score for {candidate_id}: {row!r}")

    if not scores:
        raise RemoteScoringError("Remote scorer returned no usable scores")
    return scores


def parse_deep_analysis(content: Optional[str]) -> DeepAnalysis:
    data = _load_json(content)
    try:
        score = _clamp_score(data.get("score"))
    except (TypeError, ValueError) as e:
        raise RemoteScoringError(f"Deep analysis has no usable score: {e}") from e

    try:
        confidence = Confidence(str(data.get("confidence", "medium")).lower())
    except ValueError:
        confidence = Confidence.MEDIUM

    return DeepAnalysis(
        score=score,
        confidence=confidence,
        strengths=_string_list(data.get("strengths")),
        risks=_string_list(data.get("risks")),
        unique_value=data.get("unique_value") or None,
        summary=data.get("summary") or None,
    )


class OpenAIService(LLMProvider):
    """
    OpenAI remote scoring service.

    The client's own retries are disabled; tenacity handles transient errors
    and every request carries the configured timeout.
    """

    def __init__(self, config: Optional[LlmConfig] = None, client: Optional[OpenAI] = None):
        self.config = config or LlmConfig()

        if client is None:
            client_kwargs: Dict[str, Any] = {
                'timeout': self.config.request_timeout_seconds,
                'max_retries': 0,
            }
            if self.config.api_key:
                client_kwargs['api_key'] = self.config.api_key
            if self.config.base_url:
                client_kwargs['base_url'] = self.config.base_url
            client = OpenAI(**client_kwargs)
        self.client = client

        attempts = self.config.max_retries
        self._quick_complete = _llm_retry(attempts, "quick score")(self._complete_once)
        self._analysis_complete = _llm_retry(attempts, "deep analysis")(self._complete_once)
        self._embed = _llm_retry(attempts, "embedding")(self._embed_once)

    @property
    def is_available(self) -> bool:
        return self.config.enabled

    def _complete_once(self, model: str, system_prompt: str, user_message: str,
                       temperature: float, max_tokens: int) -> Optional[str]:
        response = self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
            timeout=self.config.request_timeout_seconds,
        )
        try:
            return response.choices[0].message.content
        except (IndexError, AttributeError) as e:
            raise RemoteScoringError(f"Malformed completion response: {e}") from e

    def _embed_once(self, text: str) -> List[float]:
        response = self.client.embeddings.create(
            input=text,
            model=self.config.embedding_model,
            timeout=self.config.request_timeout_seconds,
        )
        return list(response.data[0].embedding)

    def quick_score(self, brief: Brief, candidates: Sequence[Candidate]) -> Dict[str, float]:
        if not candidates:
            return {}
        try:
            content = self._quick_complete(
                self.config.quick_score_model,
                QUICK_SCORE_SYSTEM_PROMPT,
                build_quick_score_message(brief, candidates),
                self.config.quick_score_temperature,
                self.config.quick_score_max_tokens,
            )
        except openai.OpenAIError as e:
            raise RemoteScoringError(f"Quick score request failed: {e}") from e

        scores = parse_quick_scores(content, [c.id for c in candidates])
        logger.debug(f"Quick scores for brief {brief.id}: {scores}")
        return scores

    def deep_analysis(self, brief: Brief, scored: ScoredCandidate) -> DeepAnalysis:
        try:
            content = self._analysis_complete(
                self.config.analysis_model,
                DEEP_ANALYSIS_SYSTEM_PROMPT,
                build_deep_analysis_message(brief, scored),
                self.config.analysis_temperature,
                self.config.analysis_max_tokens,
            )
        except openai.OpenAIError as e:
            raise RemoteScoringError(f"Deep analysis request failed for {scored.candidate_id}: {e}") from e

        return parse_deep_analysis(content)

    def generate_embedding(self, text: str) -> List[float]:
        """Generate embedding vector for text."""
        try:
            return self._embed(text)
        except (openai.OpenAIError, IndexError, AttributeError) as e:
            raise RemoteScoringError(f"Embedding request failed: {e}") from e
