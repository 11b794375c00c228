"""
DHModeler Diffie-Hellman Protocol Module

Session environment oracle, guarded transitions and security invariants
of the authenticated Diffie-Hellman model.
"""

from dhmodeler.dh.types import (
    ROLE_VARS,
    GlobalState,
    Learn,
    Role,
    RunInfo,
    Signal,
    SignalKind,
    Step1,
    Step2,
    Step3,
    Step4,
    Var,
)
from dhmodeler.dh.environment import SessionEnvironment, build_frame, pair_runs
from dhmodeler.dh.invariants import InvariantChecker
from dhmodeler.dh.protocol import (
    DHProtocolStateMachine,
    apply_learn,
    apply_step1,
    apply_step2,
    apply_step3,
    apply_step4,
    can_signal,
    candidate_events,
    enabled_events,
    successor,
)

__all__ = [
    # Types
    "Role",
    "Var",
    "ROLE_VARS",
    "RunInfo",
    "Signal",
    "SignalKind",
    "GlobalState",
    # Events
    "Learn",
    "Step1",
    "Step2",
    "Step3",
    "Step4",
    # Environment
    "SessionEnvironment",
    "build_frame",
    "pair_runs",
    # Transitions
    "can_signal",
    "apply_learn",
    "apply_step1",
    "apply_step2",
    "apply_step3",
    "apply_step4",
    "successor",
    "candidate_events",
    "enabled_events",
    "DHProtocolStateMachine",
    # Invariants
    "InvariantChecker",
]
