#!/usr/bin/env python3
"""
Test suite configuration.

    # Run all tests
    python -m pytest tests/ -v

    # Run only the orchestrator tests
    python -m pytest tests/unit/pipeline -v

No external services are needed: Redis and the remote scorer are mocked and
the database tests use in-memory SQLite.
"""
