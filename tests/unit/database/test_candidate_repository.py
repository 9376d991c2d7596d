"""
Candidate repository tests against an in-memory SQLite database.
"""
import contextlib

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.exceptions import CandidatePoolError
from core.matcher.embedding_store import CandidateRepositoryAdapter
from core.models import Availability
from database.models import Base
from database.repositories.candidate import CandidateRepository, SqlCandidatePool
from tests.fixtures.candidates import full_metrics, make_brief, make_candidate


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def session_scope(session_factory):
    @contextlib.contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


def seed(session_scope, *candidates):
    with session_scope() as session:
        repo = CandidateRepository(session)
        for candidate in candidates:
            repo.upsert_candidate(candidate)


class TestUpsert:

    def test_round_trips_profile_and_metrics(self, session_scope):
        original = make_candidate("c-1", styles=("minimal", "bold"), metrics=full_metrics(),
                                  communication_style="formal")
        seed(session_scope, original)

        with session_scope() as session:
            loaded = CandidateRepository(session).get_by_id("c-1").to_domain()

        assert loaded == original

    def test_update_replaces_fields_and_drops_metrics(self, session_scope):
        seed(session_scope, make_candidate("c-1", metrics=full_metrics()))
        seed(session_scope, make_candidate("c-1", name="Renamed", availability=Availability.BUSY))

        with session_scope() as session:
            loaded = CandidateRepository(session).get_by_id("c-1").to_domain()

        assert loaded.name == "Renamed"
        assert loaded.availability == Availability.BUSY
        assert loaded.metrics is None

    def test_unknown_id(self, session_scope):
        with session_scope() as session:
            assert CandidateRepository(session).get_by_id("missing") is None


class TestListEligible:

    def test_filters_ineligible_profiles(self, session_scope):
        seed(
            session_scope,
            make_candidate("ok"),
            make_candidate("busy", availability=Availability.BUSY),
            make_candidate("away", availability=Availability.UNAVAILABLE),
            make_candidate("unapproved", is_approved=False),
            make_candidate("unverified", is_verified=False),
            make_candidate("excluded"),
        )
        brief = make_brief(excluded_candidate_ids=("excluded",))

        with session_scope() as session:
            ids = {c.id for c in CandidateRepository(session).list_eligible(brief, limit=10)}

        assert ids == {"ok", "busy"}

    def test_orders_by_rating_then_unrated(self, session_scope):
        seed(
            session_scope,
            make_candidate("unrated"),
            make_candidate("low", metrics=full_metrics(avg_rating=3.1)),
            make_candidate("high", metrics=full_metrics(avg_rating=4.9)),
        )

        with session_scope() as session:
            ordered = [c.id for c in CandidateRepository(session).list_eligible(make_brief(), limit=10)]

        assert ordered == ["high", "low", "unrated"]

    def test_respects_limit(self, session_scope):
        seed(session_scope, *[make_candidate(f"c-{i}") for i in range(5)])

        with session_scope() as session:
            assert len(CandidateRepository(session).list_eligible(make_brief(), limit=3)) == 3


class TestEmbeddings:

    def test_save_and_get(self, session_scope):
        seed(session_scope, make_candidate("c-1"))

        with session_scope() as session:
            CandidateRepository(session).save_embedding("c-1", [0.1, 0.2, 0.3], "hash-1")

        with session_scope() as session:
            stored = CandidateRepository(session).get_embedding("c-1")

        assert stored.vector == [0.1, 0.2, 0.3]
        assert stored.content_hash == "hash-1"
        assert stored.updated_at > 0

    def test_missing_embedding(self, session_scope):
        seed(session_scope, make_candidate("c-1"))
        with session_scope() as session:
            repo = CandidateRepository(session)
            assert repo.get_embedding("c-1") is None
            assert repo.get_embedding("missing") is None

    def test_save_for_unknown_candidate_is_ignored(self, session_scope):
        with session_scope() as session:
            CandidateRepository(session).save_embedding("missing", [1.0], "h")
            assert CandidateRepository(session).get_embedding("missing") is None

    def test_adapter_uses_session_scope(self, session_scope):
        seed(session_scope, make_candidate("c-1"))
        store = CandidateRepositoryAdapter(session_scope)

        store.save_embedding("c-1", [1.0, 0.0], "abc")

        assert store.get_embedding("c-1").content_hash == "abc"


class TestSqlCandidatePool:

    def test_fetch_eligible(self, session_scope):
        seed(session_scope, make_candidate("a"), make_candidate("b", is_approved=False))
        pool = SqlCandidatePool(session_scope)

        assert [c.id for c in pool.fetch_eligible(make_brief(), limit=10)] == ["a"]

    def test_query_failure_raises_pool_error(self):
        @contextlib.contextmanager
        def broken_scope():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
            yield

        with pytest.raises(CandidatePoolError):
            SqlCandidatePool(broken_scope).fetch_eligible(make_brief(), limit=10)
