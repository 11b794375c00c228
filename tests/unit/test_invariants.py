"""
Unit tests for dhmodeler.dh.invariants module.

Each invariant is exercised on hand-built states that satisfy or break it.
"""

import pytest

from dhmodeler.core.terms import Exp, NonceF, Number, gexp
from dhmodeler.dh.invariants import (
    InvariantChecker,
    agreement_init,
    agreement_resp,
    inv1,
    inv2,
    inv3,
    inv4,
    progress_monotone,
    secrecy,
    secret_is_test_key,
)
from dhmodeler.dh.types import (
    STEP1_PROGRESS,
    STEP2_PROGRESS,
    STEP3_PROGRESS,
    STEP4_PROGRESS,
    GlobalState,
    Signal,
)


@pytest.fixture
def key(ra, rb):
    return Exp(gexp(NonceF(ra)), NonceF(rb))


@pytest.fixture
def completed(ra, rb):
    """Both honest runs finished."""
    return {ra: STEP3_PROGRESS, rb: STEP4_PROGRESS}


class TestSecrecy:
    def test_initial_state(self, honest_env):
        assert secrecy(honest_env, GlobalState.initial())

    def test_public_exponentials(self, honest_env, ra, rb, key):
        state = GlobalState(ik={gexp(NonceF(ra)), gexp(NonceF(rb))}, secret={key})
        assert secrecy(honest_env, state)

    def test_leaked_nonce(self, honest_env, ra, rb, key):
        state = GlobalState(ik={gexp(NonceF(ra)), NonceF(rb)}, secret={key})
        assert not secrecy(honest_env, state)

    def test_secret_is_test_key(self, honest_env, key):
        assert secret_is_test_key(honest_env, GlobalState(secret={key}))
        assert not secret_is_test_key(honest_env, GlobalState(secret={gexp(Number(1))}))


class TestCommitInvariants:
    def test_no_commits(self, honest_env):
        state = GlobalState.initial()
        for inv in (inv1, inv2, inv3, inv4):
            assert inv(honest_env, state)

    def test_init_commit_backed(self, honest_env, alice, bob, completed, key):
        state = GlobalState(
            progress=completed, signals_init={Signal.commit(alice, bob, key): 1}
        )
        assert inv1(honest_env, state)
        assert inv2(honest_env, state)

    def test_init_commit_without_finished_initiator(
        self, honest_env, alice, bob, ra, rb, key
    ):
        state = GlobalState(
            progress={ra: STEP1_PROGRESS, rb: STEP2_PROGRESS},
            signals_init={Signal.commit(alice, bob, key): 1},
        )
        assert not inv1(honest_env, state)
        assert inv2(honest_env, state)

    def test_init_commit_without_responder(self, honest_env, alice, bob, ra, key):
        state = GlobalState(
            progress={ra: STEP3_PROGRESS},
            signals_init={Signal.commit(alice, bob, key): 1},
        )
        assert inv1(honest_env, state)
        assert not inv2(honest_env, state)

    def test_init_commit_wrong_key(self, honest_env, alice, bob, completed):
        state = GlobalState(
            progress=completed,
            signals_init={Signal.commit(alice, bob, gexp(Number(3))): 1},
        )
        assert not inv1(honest_env, state)

    def test_resp_commit_backed(self, honest_env, alice, bob, completed, key):
        state = GlobalState(
            progress=completed, signals_resp={Signal.commit(alice, bob, key): 1}
        )
        assert inv3(honest_env, state)
        assert inv4(honest_env, state)

    def test_resp_commit_without_finished_responder(
        self, honest_env, alice, bob, ra, rb, key
    ):
        state = GlobalState(
            progress={ra: STEP3_PROGRESS, rb: STEP2_PROGRESS},
            signals_resp={Signal.commit(alice, bob, key): 1},
        )
        assert inv3(honest_env, state)
        assert not inv4(honest_env, state)

    def test_swapped_participants(self, honest_env, alice, bob, completed, key):
        state = GlobalState(
            progress=completed, signals_resp={Signal.commit(bob, alice, key): 1}
        )
        assert not inv3(honest_env, state)
        assert not inv4(honest_env, state)


class TestAgreement:
    def test_commit_matched_by_running(self, honest_env, alice, bob, key):
        counts = {Signal.running(alice, bob, key): 1, Signal.commit(alice, bob, key): 1}
        assert agreement_init(honest_env, GlobalState(signals_init=counts))
        assert agreement_resp(honest_env, GlobalState(signals_resp=counts))

    def test_commit_in_excess(self, honest_env, alice, bob, key):
        counts = {Signal.running(alice, bob, key): 1, Signal.commit(alice, bob, key): 2}
        assert not agreement_init(honest_env, GlobalState(signals_init=counts))
        assert not agreement_resp(honest_env, GlobalState(signals_resp=counts))

    def test_running_for_other_key(self, honest_env, alice, bob, key):
        counts = {
            Signal.running(alice, bob, gexp(Number(1))): 1,
            Signal.commit(alice, bob, key): 1,
        }
        assert not agreement_init(honest_env, GlobalState(signals_init=counts))

    def test_zero_counts_dropped(self, alice, bob, key):
        state = GlobalState(signals_init={Signal.commit(alice, bob, key): 0})
        assert state.signals_init == {}


class TestProgressMonotone:
    def test_growth_allowed(self, honest_env, ra):
        old = GlobalState(progress={ra: STEP1_PROGRESS})
        new = GlobalState(progress={ra: STEP3_PROGRESS})
        assert progress_monotone(honest_env, old, new)

    def test_new_runs_allowed(self, honest_env, ra, rb):
        old = GlobalState(progress={ra: STEP1_PROGRESS})
        new = GlobalState(progress={ra: STEP1_PROGRESS, rb: STEP2_PROGRESS})
        assert progress_monotone(honest_env, old, new)

    def test_shrinking_rejected(self, honest_env, ra):
        old = GlobalState(progress={ra: STEP3_PROGRESS})
        new = GlobalState(progress={ra: STEP1_PROGRESS})
        assert not progress_monotone(honest_env, old, new)

    def test_forgetting_run_rejected(self, honest_env, ra):
        old = GlobalState(progress={ra: STEP1_PROGRESS})
        assert not progress_monotone(honest_env, old, GlobalState.initial())


class TestInvariantChecker:
    def test_default_names(self):
        assert InvariantChecker().names == [
            "secrecy",
            "secret_is_test_key",
            "inv1",
            "inv2",
            "inv3",
            "inv4",
            "agreement_init",
            "agreement_resp",
            "progress_monotone",
        ]

    def test_check_reports_failures(self, honest_env, alice, bob, key):
        state = GlobalState(signals_init={Signal.commit(alice, bob, key): 1})
        failed = InvariantChecker().check(honest_env, state)
        assert failed == ["inv1", "inv2", "agreement_init"]

    def test_transition_invariants_need_previous(self, honest_env, ra):
        old = GlobalState(progress={ra: STEP1_PROGRESS})
        checker = InvariantChecker()
        assert checker.check(honest_env, GlobalState.initial()) == []
        assert checker.check(honest_env, GlobalState.initial(), previous=old) == [
            "progress_monotone"
        ]

    def test_only(self):
        checker = InvariantChecker.only("secrecy", "progress_monotone")
        assert checker.names == ["secrecy", "progress_monotone"]

    def test_only_unknown(self):
        with pytest.raises(ValueError):
            InvariantChecker.only("liveness")

    def test_register(self, honest_env):
        checker = InvariantChecker.only()
        checker.register("never", lambda env, s: False)
        assert checker.check(honest_env, GlobalState.initial()) == ["never"]
