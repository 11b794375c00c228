"""
Pytest configuration and shared fixtures for DHModeler tests.
"""

import pytest

from dhmodeler.core.terms import Agent, RunId
from dhmodeler.dh.environment import SessionEnvironment
from dhmodeler.dh.types import Role, RunInfo


# =============================================================================
# AGENT AND RUN FIXTURES
# =============================================================================


@pytest.fixture
def alice() -> Agent:
    """Honest initiator."""
    return Agent("A")


@pytest.fixture
def bob() -> Agent:
    """Honest responder."""
    return Agent("B")


@pytest.fixture
def eve() -> Agent:
    """Dishonest agent."""
    return Agent("E")


@pytest.fixture
def ra() -> RunId:
    return RunId("ra")


@pytest.fixture
def rb() -> RunId:
    return RunId("rb")


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================


@pytest.fixture
def honest_runs(alice, bob, ra, rb):
    """One initiator run of A with B and the matching responder run."""
    return {
        ra: RunInfo(Role.INIT, alice, bob),
        rb: RunInfo(Role.RESP, bob, alice),
    }


@pytest.fixture
def honest_env(honest_runs, ra) -> SessionEnvironment:
    """Honest pair, initiator run under test."""
    return SessionEnvironment.build(honest_runs, test=ra)


@pytest.fixture
def resp_test_env(honest_runs, rb) -> SessionEnvironment:
    """Honest pair, responder run under test."""
    return SessionEnvironment.build(honest_runs, test=rb)


@pytest.fixture
def crowded_env(alice, bob, eve, ra, rb) -> SessionEnvironment:
    """
    Honest pair plus a responder run fed by the attacker and runs with E.
    """
    runs = {
        ra: RunInfo(Role.INIT, alice, bob),
        rb: RunInfo(Role.RESP, bob, alice),
        RunId("rc"): RunInfo(Role.RESP, bob, alice),
        RunId("rd"): RunInfo(Role.INIT, alice, eve),
        RunId("re"): RunInfo(Role.RESP, eve, alice),
    }
    return SessionEnvironment.build(runs, test=ra)


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
