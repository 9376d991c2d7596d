import unittest
from unittest.mock import patch

from core.app_context import AppContext
from core.config_loader import AppConfig, DatabaseConfig, EmbeddingConfig, LlmConfig
from core.llm import NullLLMProvider, OpenAIService
from core.matcher import HashingEmbedder, InMemoryEmbeddingStore
from core.matcher.embedding_store import CandidateRepositoryAdapter
from core.pool import InMemoryCandidatePool
from database.repositories.candidate import SqlCandidatePool
from tests.fixtures.candidates import make_candidate


class TestAppContextBuild(unittest.TestCase):

    def build(self, config, **kwargs):
        ctx = AppContext.build(config, **kwargs)
        self.addCleanup(ctx.close)
        return ctx

    def test_defaults_are_local_only(self):
        ctx = self.build(AppConfig())

        self.assertIsInstance(ctx.llm, NullLLMProvider)
        self.assertIsInstance(ctx.embeddings.embedder, HashingEmbedder)
        self.assertIsInstance(ctx.embeddings.store, InMemoryEmbeddingStore)
        self.assertIsInstance(ctx.pool, InMemoryCandidatePool)
        self.assertIs(ctx.matcher.llm, ctx.llm)
        self.assertIs(ctx.matcher.cache, ctx.cache)
        self.assertIsNone(ctx.cache.durable)

    def test_disabled_llm_is_null_even_with_key(self):
        ctx = self.build(AppConfig(llm=LlmConfig(enabled=False, api_key="sk-test")))
        self.assertIsInstance(ctx.llm, NullLLMProvider)

    def test_api_key_enables_remote_scoring(self):
        ctx = self.build(AppConfig(llm=LlmConfig(api_key="sk-test")))
        self.assertIsInstance(ctx.llm, OpenAIService)
        self.assertTrue(ctx.matcher.llm.is_available)

    def test_client_construction_failure_falls_back_to_null(self):
        with patch("core.app_context.OpenAIService", side_effect=RuntimeError("bad config")):
            ctx = self.build(AppConfig(llm=LlmConfig(base_url="http://localhost:11434/v1")))
        self.assertIsInstance(ctx.llm, NullLLMProvider)

    def test_remote_embeddings_use_provider(self):
        config = AppConfig(llm=LlmConfig(api_key="sk-test"), embedding=EmbeddingConfig(provider="remote"))
        ctx = self.build(config)
        self.assertIs(ctx.embeddings.embedder, ctx.llm)

    def test_remote_embeddings_without_provider_fall_back(self):
        config = AppConfig(embedding=EmbeddingConfig(provider="remote", dimensions=64))
        ctx = self.build(config)
        self.assertIsInstance(ctx.embeddings.embedder, HashingEmbedder)
        self.assertEqual(ctx.embeddings.embedder.dimensions, 64)

    def test_candidate_pool_override(self):
        pool = InMemoryCandidatePool([make_candidate("c-1")])
        ctx = self.build(AppConfig(), candidate_pool=pool)
        self.assertIs(ctx.pool, pool)
        self.assertIs(ctx.matcher.pool, pool)

    @patch("database.database.configure_database")
    def test_database_config_wires_sql_pool(self, mock_configure):
        ctx = self.build(AppConfig(database=DatabaseConfig(url="sqlite://")))

        mock_configure.assert_called_once_with("sqlite://")
        self.assertIsInstance(ctx.pool, SqlCandidatePool)
        self.assertIsInstance(ctx.embeddings.store, CandidateRepositoryAdapter)


if __name__ == '__main__':
    unittest.main()
