"""
DHModeler Protocol Transitions

Guarded transition rules of the authenticated Diffie-Hellman model.

Each rule is a pure function (env, state, event) -> Result: Success with
the successor state when the guard holds, Failure with the failed guard
otherwise. No rule ever removes information from the state. An event
naming a run the environment does not know is disabled like any other.

Transitions:
- learn(m):              attacker adds m to ik
- step1(Ra, A, B):       initiator starts
- step2(Rb, A, B, gnx):  responder answers, emits Running for the initiator
- step3(Ra, A, B, gny):  initiator completes, emits Commit / Running
- step4(Rb, A, B, gnx):  responder completes, emits Commit
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import attrs
import structlog
from returns.result import Failure, Result, Success

from dhmodeler.core.state_machine import GuardedStateMachine, Handler
from dhmodeler.core.terms import Agent, Exp, NonceF, RunId, Term
from dhmodeler.dh.environment import SessionEnvironment
from dhmodeler.dh.invariants import InvariantChecker
from dhmodeler.dh.types import (
    STEP1_PROGRESS,
    STEP2_PROGRESS,
    STEP3_PROGRESS,
    STEP4_PROGRESS,
    GlobalState,
    Learn,
    Role,
    RunInfo,
    Signal,
    Step1,
    Step2,
    Step3,
    Step4,
    Var,
    bump,
)
from dhmodeler.intruder.closure import DeductionCache

logger = structlog.get_logger()

Event = Any
Rule = Callable[[SessionEnvironment, GlobalState, Any, DeductionCache], Result[GlobalState, str]]

_default_cache = DeductionCache()


# =============================================================================
# GUARD HELPERS
# =============================================================================


def can_signal(env: SessionEnvironment, state: GlobalState, a: Agent, b: Agent) -> bool:
    """
    Signals about the A-B pair are only emitted while the test run is live.

    {A, B} must be the test run's participants and the test run must not
    have reached End.
    """
    return {a, b} == {env.test_owner, env.test_partner} and not state.is_finished(env.test)


def _has_progress(state: GlobalState, run: RunId, required: Iterable[Var]) -> bool:
    bound = state.progress_of(run)
    return bound is not None and bound >= frozenset(required)


def _matching_responder(
    env: SessionEnvironment, state: GlobalState, ra: RunId, a: Agent, b: Agent, gny: Term
) -> Optional[RunId]:
    """Responder run that genuinely used ra's exponential and sent gny."""
    for rb in env.runs_with(Role.RESP, b, a):
        frame = env.frame_of(rb)
        if (
            _has_progress(state, rb, STEP2_PROGRESS)
            and frame[Var.GNY] == gny
            and frame[Var.GNX] == env.own_exponential(ra)
        ):
            return rb
    return None


def _matching_initiator(
    env: SessionEnvironment, state: GlobalState, rb: RunId, a: Agent, b: Agent, gnx: Term
) -> Optional[RunId]:
    """Completed initiator run that sent gnx and accepted rb's exponential."""
    for ra in env.runs_with(Role.INIT, a, b):
        frame = env.frame_of(ra)
        if (
            _has_progress(state, ra, STEP3_PROGRESS)
            and frame[Var.GNX] == gnx
            and frame[Var.GNY] == env.own_exponential(rb)
        ):
            return ra
    return None


# =============================================================================
# TRANSITION RULES
# =============================================================================


def apply_learn(
    env: SessionEnvironment,
    state: GlobalState,
    event: Learn,
    cache: DeductionCache = _default_cache,
) -> Result[GlobalState, str]:
    """
    The attacker learns a message.

    Only learns that keep every declared secret underivable are explored.
    """
    ik = state.ik | {event.message}
    if not cache.secrecy_holds(ik, state.secret):
        return Failure("learn would expose a declared secret")
    return Success(attrs.evolve(state, ik=ik))


def apply_step1(
    env: SessionEnvironment,
    state: GlobalState,
    event: Step1,
    cache: DeductionCache = _default_cache,
) -> Result[GlobalState, str]:
    """Initiator generates its nonce and exponential."""
    if event.ra not in env.runs:
        return Failure(f"unknown run {event.ra}")
    if state.is_started(event.ra):
        return Failure(f"run {event.ra} already started")
    if env.role_of(event.ra) != RunInfo(Role.INIT, event.a, event.b):
        return Failure(f"run {event.ra} is not Init({event.a}, {event.b})")

    progress = dict(state.progress)
    progress[event.ra] = STEP1_PROGRESS
    return Success(attrs.evolve(state, progress=progress))


def apply_step2(
    env: SessionEnvironment,
    state: GlobalState,
    event: Step2,
    cache: DeductionCache = _default_cache,
) -> Result[GlobalState, str]:
    """
    Responder accepts gnx, generates its exponential and derives its key.

    gnx is attacker-supplied and unauthenticated at this point.
    """
    rb, a, b = event.rb, event.a, event.b
    if rb not in env.runs:
        return Failure(f"unknown run {rb}")
    if env.role_of(rb) != RunInfo(Role.RESP, b, a):
        return Failure(f"run {rb} is not Resp({b}, {a})")
    if state.is_started(rb):
        return Failure(f"run {rb} already started")

    frame = env.frame_of(rb)
    key = Exp(event.gnx, NonceF(rb))
    if frame[Var.GNX] != event.gnx:
        return Failure(f"run {rb} does not accept {event.gnx}")
    if frame[Var.SK] != key:
        return Failure(f"run {rb} frame key mismatch")

    progress = dict(state.progress)
    progress[rb] = STEP2_PROGRESS
    signals_init = state.signals_init
    if can_signal(env, state, a, b):
        signals_init = bump(signals_init, Signal.running(a, b, key))

    return Success(attrs.evolve(state, progress=progress, signals_init=signals_init))


def apply_step3(
    env: SessionEnvironment,
    state: GlobalState,
    event: Step3,
    cache: DeductionCache = _default_cache,
) -> Result[GlobalState, str]:
    """
    Initiator accepts gny and completes.

    While the test run is live, completion requires a responder run that
    genuinely used this run's exponential. The test run additionally
    requires its key to be underivable by the attacker.
    """
    ra, a, b = event.ra, event.a, event.b
    if ra not in env.runs:
        return Failure(f"unknown run {ra}")
    if env.role_of(ra) != RunInfo(Role.INIT, a, b):
        return Failure(f"run {ra} is not Init({a}, {b})")
    if state.progress_of(ra) != STEP1_PROGRESS:
        return Failure(f"run {ra} is not waiting for gny")

    frame = env.frame_of(ra)
    key = Exp(event.gny, NonceF(ra))
    if frame[Var.GNY] != event.gny:
        return Failure(f"run {ra} does not accept {event.gny}")
    if frame[Var.SK] != key:
        return Failure(f"run {ra} frame key mismatch")

    signalling = can_signal(env, state, a, b)
    if signalling and _matching_responder(env, state, ra, a, b, event.gny) is None:
        return Failure(f"no responder run matches {ra}")
    if ra == env.test and key in cache.derivable(state.ik):
        return Failure(f"test key of {ra} is already derivable")

    progress = dict(state.progress)
    progress[ra] = STEP3_PROGRESS
    changes: Dict[str, Any] = {"progress": progress}
    if ra == env.test:
        changes["secret"] = state.secret | {key}
    if signalling:
        changes["signals_init"] = bump(state.signals_init, Signal.commit(a, b, key))
        changes["signals_resp"] = bump(state.signals_resp, Signal.running(a, b, key))

    return Success(attrs.evolve(state, **changes))


def apply_step4(
    env: SessionEnvironment,
    state: GlobalState,
    event: Step4,
    cache: DeductionCache = _default_cache,
) -> Result[GlobalState, str]:
    """
    Responder completes.

    Mirror of step3: while the test run is live a completed initiator run
    must have sent gnx and accepted this run's exponential.
    """
    rb, a, b = event.rb, event.a, event.b
    if rb not in env.runs:
        return Failure(f"unknown run {rb}")
    if env.role_of(rb) != RunInfo(Role.RESP, b, a):
        return Failure(f"run {rb} is not Resp({b}, {a})")
    if state.progress_of(rb) != STEP2_PROGRESS:
        return Failure(f"run {rb} is not waiting for confirmation")

    frame = env.frame_of(rb)
    key = Exp(event.gnx, NonceF(rb))
    if frame[Var.GNX] != event.gnx:
        return Failure(f"run {rb} does not accept {event.gnx}")
    if frame[Var.SK] != key:
        return Failure(f"run {rb} frame key mismatch")

    signalling = can_signal(env, state, a, b)
    if signalling and _matching_initiator(env, state, rb, a, b, event.gnx) is None:
        return Failure(f"no initiator run matches {rb}")
    if rb == env.test and key in cache.derivable(state.ik):
        return Failure(f"test key of {rb} is already derivable")

    progress = dict(state.progress)
    progress[rb] = STEP4_PROGRESS
    changes: Dict[str, Any] = {"progress": progress}
    if rb == env.test:
        changes["secret"] = state.secret | {key}
    if signalling:
        changes["signals_resp"] = bump(state.signals_resp, Signal.commit(a, b, key))

    return Success(attrs.evolve(state, **changes))


RULES: Dict[type, Rule] = {
    Learn: apply_learn,
    Step1: apply_step1,
    Step2: apply_step2,
    Step3: apply_step3,
    Step4: apply_step4,
}


def successor(
    env: SessionEnvironment,
    state: GlobalState,
    event: Event,
    cache: DeductionCache = _default_cache,
) -> Result[GlobalState, str]:
    """Apply the rule matching event's type."""
    rule = RULES.get(type(event))
    if rule is None:
        return Failure(f"No transition for event {type(event).__name__}")
    return rule(env, state, event, cache)


# =============================================================================
# EVENT ENUMERATION
# =============================================================================


def candidate_events(
    env: SessionEnvironment, state: GlobalState, messages: Sequence[Term] = ()
) -> List[Event]:
    """
    Events worth trying in state.

    Step arguments are taken from frames, the only values their guards
    accept. Learn candidates are the given messages not yet in ik.
    """
    events: List[Event] = []
    for run, info in env.runs.items():
        frame = env.frame_of(run)
        bound = state.progress_of(run)
        if info.role is Role.INIT:
            a, b = info.owner, info.partner
            if bound is None:
                events.append(Step1(run, a, b))
            elif bound == STEP1_PROGRESS:
                events.append(Step3(run, a, b, frame[Var.GNY]))
        else:
            a, b = info.partner, info.owner
            if bound is None:
                events.append(Step2(run, a, b, frame[Var.GNX]))
            elif bound == STEP2_PROGRESS:
                events.append(Step4(run, a, b, frame[Var.GNX]))

    events.extend(Learn(m) for m in messages if m not in state.ik)
    return events


def enabled_events(
    env: SessionEnvironment,
    state: GlobalState,
    messages: Sequence[Term] = (),
    cache: DeductionCache = _default_cache,
) -> List[tuple]:
    """
    Enabled (event, successor state) pairs in state.

    Returns:
        List of (event, new_state) for every candidate whose guard holds
    """
    enabled = []
    for event in candidate_events(env, state, messages):
        result = successor(env, state, event, cache)
        if isinstance(result, Success):
            enabled.append((event, result.unwrap()))
    return enabled


# =============================================================================
# SINGLE-TRACE DRIVER
# =============================================================================


@attrs.define
class DHProtocolStateMachine(GuardedStateMachine[GlobalState, Any]):
    """
    Stateful driver for one trace of the protocol.

    Every invariant of the checker is registered at construction and
    evaluated after each committed transition.

    Example:
        machine = DHProtocolStateMachine(env=env)
        machine.process_event(Step1(ra, alice, bob))
        machine.process_event(Learn(gexp(NonceF(ra))))
        assert not machine.findings
    """

    env: SessionEnvironment = attrs.field(kw_only=True)
    checker: InvariantChecker = attrs.field(factory=InvariantChecker, kw_only=True)
    cache: DeductionCache = attrs.field(factory=DeductionCache, kw_only=True)

    def __attrs_post_init__(self) -> None:
        super().__attrs_post_init__()
        for name, invariant in self.checker.state_invariants():
            self.add_invariant(name, lambda s, inv=invariant: inv(self.env, s))
        for name, invariant in self.checker.transition_invariants():
            self.add_transition_invariant(
                name, lambda old, new, inv=invariant: inv(self.env, old, new)
            )

    def initial_state(self) -> GlobalState:
        return GlobalState.initial()

    def transition_table(self) -> Dict[type, Handler]:
        return {
            event_type: (lambda s, e, rule=rule: rule(self.env, s, e, self.cache))
            for event_type, rule in RULES.items()
        }

    def enabled(self, messages: Sequence[Term] = ()) -> List[Event]:
        """Events enabled in the current state."""
        return [event for event, _ in enabled_events(self.env, self.state, messages, self.cache)]
