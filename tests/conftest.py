"""
Pytest configuration and fixtures.

Shared candidate/brief builders live in tests/fixtures/candidates.py;
remote scorer doubles live in tests/mocks/llm_mocks.py.
"""

import pytest

from tests.fixtures.candidates import (
    make_brief,
    make_candidate,
    scenario_brief,
    scenario_candidate_a,
    scenario_candidate_b,
)


@pytest.fixture
def brief():
    return make_brief()


@pytest.fixture
def candidate():
    return make_candidate()


@pytest.fixture
def urgent_brief():
    return scenario_brief()


@pytest.fixture
def candidate_a():
    return scenario_candidate_a()


@pytest.fixture
def candidate_b():
    return scenario_candidate_b()
