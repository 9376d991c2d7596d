import logging
from dataclasses import dataclass
from typing import Optional

from core.cache import MatchCache
from core.config_loader import AppConfig, EmbeddingConfig, LlmConfig
from core.llm import LLMProvider, NullLLMProvider, OpenAIService
from core.matcher import EmbeddingService, HashingEmbedder, InMemoryEmbeddingStore
from core.matcher.embedding_store import CandidateEmbeddingStore, CandidateRepositoryAdapter
from core.pool import CandidatePool, InMemoryCandidatePool
from core.scorer import ScoringService
from pipeline.orchestrator import ProgressiveMatcher

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    This eliminates duplicate wiring code and provides a single source
    of truth for service instantiation. The remote scoring provider is
    chosen here once: connected when configured, null otherwise.
    """
    config: AppConfig
    llm: LLMProvider
    embeddings: EmbeddingService
    cache: MatchCache
    pool: CandidatePool
    matcher: ProgressiveMatcher

    @classmethod
    def build(cls, config: AppConfig, candidate_pool: Optional[CandidatePool] = None) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            candidate_pool: Optional pool override; defaults to the database
                pool when a database is configured, else an empty in-memory pool

        Returns:
            Fully wired AppContext instance
        """
        if config.database:
            from database.database import configure_database
            configure_database(config.database.url)

        llm = cls._build_llm(config.llm)
        embeddings = EmbeddingService(
            embedder=cls._build_embedder(config.embedding, llm),
            store=cls._build_embedding_store(config),
        )
        cache = MatchCache.from_config(config.cache)
        pool = candidate_pool if candidate_pool is not None else cls._build_pool(config)

        matcher = ProgressiveMatcher(
            pool=pool,
            scorer=ScoringService(),
            embeddings=embeddings,
            cache=cache,
            llm=llm,
            config=config.matching,
        )

        return cls(
            config=config,
            llm=llm,
            embeddings=embeddings,
            cache=cache,
            pool=pool,
            matcher=matcher,
        )

    def close(self) -> None:
        self.matcher.shutdown()

    @staticmethod
    def _build_llm(llm_config: LlmConfig) -> LLMProvider:
        """Build the remote scoring provider, or the null one if unconfigured."""
        if not llm_config.enabled:
            logger.info("Remote scoring disabled in config")
            return NullLLMProvider()
        if not (llm_config.api_key or llm_config.base_url):
            logger.warning("No LLM api_key or base_url configured, remote scoring disabled")
            return NullLLMProvider()
        try:
            return OpenAIService(config=llm_config)
        except Exception as e:
            logger.warning(f"Could not create remote scoring client, remote scoring disabled: {e}")
            return NullLLMProvider()

    @staticmethod
    def _build_embedder(embedding_config: EmbeddingConfig, llm: LLMProvider):
        if embedding_config.provider == "remote":
            if llm.is_available:
                return llm
            logger.warning("Remote embeddings requested but no provider available, using local embeddings")
        return HashingEmbedder(dimensions=embedding_config.dimensions)

    @staticmethod
    def _build_embedding_store(config: AppConfig) -> CandidateEmbeddingStore:
        if config.database:
            from database.database import db_session_scope
            return CandidateRepositoryAdapter(db_session_scope)
        return InMemoryEmbeddingStore()

    @staticmethod
    def _build_pool(config: AppConfig) -> CandidatePool:
        if config.database:
            from database.database import db_session_scope
            from database.repositories.candidate import SqlCandidatePool
            return SqlCandidatePool(db_session_scope)
        logger.warning("No database configured and no candidate pool given, using an empty in-memory pool")
        return InMemoryCandidatePool()
