"""
DHModeler Core Module

Provides foundational types and abstractions used across the model.

Components:
- terms: Symbolic message terms with Diffie-Hellman canonicalisation
- state_machine: Guarded state machine base with invariant checking
- findings: Invariant violation records
- exceptions: Custom exception types
"""

from dhmodeler.core.terms import (
    END,
    GEN,
    Agent,
    EndMarker,
    Exp,
    Gen,
    LtK,
    NonceF,
    Number,
    RunId,
    Term,
    gexp,
    is_payload,
    term_sort_key,
)
from dhmodeler.core.state_machine import GuardedStateMachine, Transition
from dhmodeler.core.findings import Finding
from dhmodeler.core.exceptions import (
    DHModelerError,
    InvariantViolation,
    OracleContractError,
    StateError,
    TermError,
)

__all__ = [
    # Terms
    "Term",
    "Agent",
    "Number",
    "NonceF",
    "LtK",
    "Gen",
    "GEN",
    "EndMarker",
    "END",
    "Exp",
    "RunId",
    "gexp",
    "is_payload",
    "term_sort_key",
    # State Machine
    "GuardedStateMachine",
    "Transition",
    "Finding",
    # Exceptions
    "DHModelerError",
    "TermError",
    "OracleContractError",
    "StateError",
    "InvariantViolation",
]
