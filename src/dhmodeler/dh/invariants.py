"""
DHModeler Invariants

State predicates that must hold in every reachable state of the model.

Secrecy:
- secrecy: no declared secret is derivable by the attacker
- secret_is_test_key: only the test run's key is ever declared secret

Authentication (A initiator, B responder, K key):
- inv1: signalsInit[Commit(A,B,K)] > 0 => a completed Init(A,B) run holds K
- inv2: signalsInit[Commit(A,B,K)] > 0 => a Resp(B,A) run past step2 holds K
- inv3: signalsResp[Commit(A,B,K)] > 0 => a completed Init(A,B) run holds K
- inv4: signalsResp[Commit(A,B,K)] > 0 => a completed Resp(B,A) run holds K
- agreement_init / agreement_resp: Commit counts never exceed the
  matching Running counts

Transition invariant:
- progress_monotone: progress only grows and is frozen once End is bound
"""

from __future__ import annotations

from typing import Callable, Iterator, List, Mapping, Optional, Tuple

import attrs
import structlog

from dhmodeler.core.terms import Agent, Term
from dhmodeler.dh.environment import SessionEnvironment
from dhmodeler.dh.types import (
    STEP2_PROGRESS,
    GlobalState,
    Role,
    Signal,
    SignalKind,
    Var,
)
from dhmodeler.intruder.closure import DeductionCache

logger = structlog.get_logger()

StateInvariant = Callable[[SessionEnvironment, GlobalState], bool]
TransitionInvariant = Callable[[SessionEnvironment, GlobalState, GlobalState], bool]

_cache = DeductionCache()


def _commits(counts: Mapping[Signal, int]) -> Iterator[Signal]:
    return (s for s, n in counts.items() if n > 0 and s.kind is SignalKind.COMMIT)


def _holds_key(
    env: SessionEnvironment,
    state: GlobalState,
    role: Role,
    owner: Agent,
    partner: Agent,
    key: Term,
    finished: bool,
) -> bool:
    for run in env.runs_with(role, owner, partner):
        bound = state.progress_of(run)
        if bound is None or env.frame_of(run)[Var.SK] != key:
            continue
        if finished and Var.END in bound:
            return True
        if not finished and bound >= STEP2_PROGRESS:
            return True
    return False


# =============================================================================
# STATE INVARIANTS
# =============================================================================


def secrecy(env: SessionEnvironment, state: GlobalState) -> bool:
    """synth(analz(ik)) ∩ secret = ∅"""
    return _cache.secrecy_holds(state.ik, state.secret)


def secret_is_test_key(env: SessionEnvironment, state: GlobalState) -> bool:
    return state.secret <= {env.frame_of(env.test)[Var.SK]}


def inv1(env: SessionEnvironment, state: GlobalState) -> bool:
    return all(
        _holds_key(env, state, Role.INIT, s.initiator, s.responder, s.key, finished=True)
        for s in _commits(state.signals_init)
    )


def inv2(env: SessionEnvironment, state: GlobalState) -> bool:
    return all(
        _holds_key(env, state, Role.RESP, s.responder, s.initiator, s.key, finished=False)
        for s in _commits(state.signals_init)
    )


def inv3(env: SessionEnvironment, state: GlobalState) -> bool:
    return all(
        _holds_key(env, state, Role.INIT, s.initiator, s.responder, s.key, finished=True)
        for s in _commits(state.signals_resp)
    )


def inv4(env: SessionEnvironment, state: GlobalState) -> bool:
    return all(
        _holds_key(env, state, Role.RESP, s.responder, s.initiator, s.key, finished=True)
        for s in _commits(state.signals_resp)
    )


def _agreement(counts: Mapping[Signal, int]) -> bool:
    return all(
        counts[s] <= counts.get(s.matching(SignalKind.RUNNING), 0)
        for s in _commits(counts)
    )


def agreement_init(env: SessionEnvironment, state: GlobalState) -> bool:
    """Initiator authenticates responder."""
    return _agreement(state.signals_init)


def agreement_resp(env: SessionEnvironment, state: GlobalState) -> bool:
    """Responder authenticates initiator."""
    return _agreement(state.signals_resp)


# =============================================================================
# TRANSITION INVARIANTS
# =============================================================================


def progress_monotone(
    env: SessionEnvironment, old: GlobalState, new: GlobalState
) -> bool:
    for run, bound in old.progress.items():
        after = new.progress_of(run)
        if after is None or not bound <= after:
            return False
        if Var.END in bound and after != bound:
            return False
    return True


DEFAULT_STATE_INVARIANTS: Tuple[Tuple[str, StateInvariant], ...] = (
    ("secrecy", secrecy),
    ("secret_is_test_key", secret_is_test_key),
    ("inv1", inv1),
    ("inv2", inv2),
    ("inv3", inv3),
    ("inv4", inv4),
    ("agreement_init", agreement_init),
    ("agreement_resp", agreement_resp),
)

DEFAULT_TRANSITION_INVARIANTS: Tuple[Tuple[str, TransitionInvariant], ...] = (
    ("progress_monotone", progress_monotone),
)


@attrs.define
class InvariantChecker:
    """
    Named registry of state and transition invariants.

    Example:
        checker = InvariantChecker()
        failed = checker.check(env, new_state, previous=old_state)
        if failed:
            ...
    """

    _state: List[Tuple[str, StateInvariant]] = attrs.Factory(
        lambda: list(DEFAULT_STATE_INVARIANTS)
    )
    _transition: List[Tuple[str, TransitionInvariant]] = attrs.Factory(
        lambda: list(DEFAULT_TRANSITION_INVARIANTS)
    )

    @classmethod
    def only(cls, *names: str) -> InvariantChecker:
        """Checker restricted to the named default invariants."""
        wanted = set(names)
        known = {n for n, _ in DEFAULT_STATE_INVARIANTS + DEFAULT_TRANSITION_INVARIANTS}
        unknown = wanted - known
        if unknown:
            raise ValueError(f"Unknown invariants: {sorted(unknown)}")
        return cls(
            [(n, f) for n, f in DEFAULT_STATE_INVARIANTS if n in wanted],
            [(n, f) for n, f in DEFAULT_TRANSITION_INVARIANTS if n in wanted],
        )

    def register(self, name: str, invariant: StateInvariant) -> None:
        """Add a state invariant (env, state) -> bool."""
        self._state.append((name, invariant))

    def register_transition(self, name: str, invariant: TransitionInvariant) -> None:
        """Add a transition invariant (env, old, new) -> bool."""
        self._transition.append((name, invariant))

    def state_invariants(self) -> List[Tuple[str, StateInvariant]]:
        return list(self._state)

    def transition_invariants(self) -> List[Tuple[str, TransitionInvariant]]:
        return list(self._transition)

    @property
    def names(self) -> List[str]:
        return [n for n, _ in self._state] + [n for n, _ in self._transition]

    def check(
        self,
        env: SessionEnvironment,
        state: GlobalState,
        previous: Optional[GlobalState] = None,
    ) -> List[str]:
        """
        Names of the invariants failing in state.

        Transition invariants are only evaluated when previous is given.
        """
        failed = [name for name, inv in self._state if not inv(env, state)]
        if previous is not None:
            failed.extend(
                name for name, inv in self._transition if not inv(env, previous, state)
            )
        if failed:
            logger.debug("invariants_failed", invariants=failed)
        return failed
