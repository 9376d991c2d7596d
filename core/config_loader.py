import yaml
import os
import logging
from typing import Optional, Literal
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    url: str


class LlmConfig(BaseModel):
    """Remote scoring provider (any OpenAI-compatible endpoint)."""
    enabled: bool = True
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    quick_score_model: str = "gpt-4o-mini"
    analysis_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    quick_score_temperature: float = 0.3
    analysis_temperature: float = 0.2
    quick_score_max_tokens: int = 300
    analysis_max_tokens: int = 600
    # Each remote call is bounded by this; a timed-out call counts as failed.
    request_timeout_seconds: float = 8.0
    max_retries: int = Field(default=2, ge=1)


class EmbeddingConfig(BaseModel):
    # "local" = deterministic feature hashing, "remote" = LLM provider embeddings
    provider: Literal["local", "remote"] = "local"
    dimensions: int = Field(default=512, ge=8)


class CacheConfig(BaseModel):
    """Two-tier result cache. Durable tier is disabled when redis_url is unset."""
    redis_url: Optional[str] = None
    redis_password: Optional[str] = None
    key_prefix: str = "match"
    memory_max_entries: int = Field(default=500, ge=1)
    memory_shards: int = Field(default=16, ge=1)
    socket_timeout_seconds: float = 0.5

    # Later phases are more expensive to recompute and treated as more stable.
    instant_ttl_seconds: int = 3600
    refined_ttl_seconds: int = 7200
    final_ttl_seconds: int = 14400


class PhaseConfig(BaseModel):
    """Progressive matching: pool size, blending and scheduling knobs."""
    candidate_pool_limit: int = Field(default=100, ge=1)
    alternates_count: int = Field(default=3, ge=0)

    # Phase 1 blend
    instant_local_weight: float = 0.7
    instant_embedding_weight: float = 0.3

    # Phase 2 blend
    refined_top_n: int = Field(default=10, ge=1)
    refined_local_weight: float = 0.3
    refined_remote_weight: float = 0.7

    # Phase 3
    final_top_n: int = Field(default=5, ge=1)
    final_phase_delay_seconds: float = 1.0

    # Upper bound on how long the orchestrator waits for a phase's remote work
    refined_timeout_seconds: float = 10.0
    final_timeout_seconds: float = 15.0

    # Latency targets; overruns are logged, not enforced
    instant_target_ms: float = 50.0
    refined_target_ms: float = 500.0
    final_target_ms: float = 2000.0

    # Local Phase 1 fan-out and remote Phase 2/3 calls use separate pools
    max_workers: int = Field(default=16, ge=1)
    remote_max_workers: int = Field(default=8, ge=1)

    # A newer brief from the same client cancels the older run's background phases
    cancel_superseded_runs: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class AppConfig(BaseModel):
    database: Optional[DatabaseConfig] = None
    llm: LlmConfig = Field(default_factory=LlmConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    matching: PhaseConfig = Field(default_factory=PhaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def configure_logging(config: LoggingConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format
    )


def load_config(config_path: str = "config.yaml") -> AppConfig:
    data = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Config file {config_path} not found, using defaults")

    # Allow env var override for DB URL
    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        data['database'] = data.get('database') or {}
        data['database']['url'] = env_db_url

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        data['cache'] = data.get('cache') or {}
        data['cache']['redis_url'] = env_redis_url

    # Allow env var override for LLM endpoint and key
    env_llm_base_url = os.environ.get("LLM_BASE_URL")
    if env_llm_base_url:
        data['llm'] = data.get('llm') or {}
        data['llm']['base_url'] = env_llm_base_url

    env_llm_api_key = os.environ.get("LLM_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if env_llm_api_key:
        data['llm'] = data.get('llm') or {}
        data['llm']['api_key'] = env_llm_api_key

    return AppConfig(**data)
