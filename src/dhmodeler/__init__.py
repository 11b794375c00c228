"""
DHModeler - Executable Model of Authenticated Diffie-Hellman

This package models a two-party authenticated Diffie-Hellman key exchange
under an active network attacker and explores its reachable states to
check secrecy of the session key and injective agreement between the
initiator and the responder.

Components:
- core: term algebra, exceptions, guarded state machine base
- intruder: Dolev-Yao analz/synth closures
- dh: session environment, protocol transitions, invariants
- checker: bounded exploration harness and findings

Example Usage:
    from dhmodeler import (
        Agent, Explorer, ExplorerConfig, Role, RunId, RunInfo, SessionEnvironment,
    )

    alice, bob = Agent("A"), Agent("B")
    env = SessionEnvironment.build(
        {
            RunId("ra"): RunInfo(Role.INIT, alice, bob),
            RunId("rb"): RunInfo(Role.RESP, bob, alice),
        },
        test=RunId("ra"),
    )
    report = Explorer(env, ExplorerConfig(max_depth=10)).explore()
    print(report.summary())
"""

from dhmodeler.core.terms import (
    END,
    GEN,
    Agent,
    Exp,
    NonceF,
    Number,
    RunId,
    Term,
    gexp,
)
from dhmodeler.core.findings import Finding
from dhmodeler.dh.environment import SessionEnvironment
from dhmodeler.dh.types import GlobalState, Role, RunInfo, Signal, Var
from dhmodeler.dh.protocol import DHProtocolStateMachine
from dhmodeler.checker.config import ExplorerConfig
from dhmodeler.checker.explorer import ExplorationReport, Explorer

__version__ = "0.1.0"

__all__ = [
    # Terms
    "Agent",
    "Number",
    "NonceF",
    "Exp",
    "GEN",
    "END",
    "Term",
    "RunId",
    "gexp",
    # Model
    "Role",
    "RunInfo",
    "Var",
    "Signal",
    "GlobalState",
    "SessionEnvironment",
    "DHProtocolStateMachine",
    # Exploration
    "Explorer",
    "ExplorerConfig",
    "ExplorationReport",
    "Finding",
    # Metadata
    "__version__",
]
