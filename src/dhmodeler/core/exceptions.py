"""
DHModeler Exception Types

Custom exceptions for the protocol model and its exploration harness.

Disabled protocol transitions are NOT exceptions: they are reported as
``returns.result.Failure`` values by the transition functions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from dhmodeler.core.findings import Finding


class DHModelerError(Exception):
    """Base exception for all DHModeler errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class TermError(DHModelerError):
    """
    Malformed term.

    Raised when a message term cannot be built from the given operands.
    """

    pass


class OracleContractError(DHModelerError):
    """
    Session environment contract violated.

    The harness supplied runs or frames that are ill-typed or inconsistent
    with each other. This is a programming error in the caller, not part
    of the protocol's own error space, so it is raised eagerly.
    """

    def __init__(self, message: str, run: Optional[object] = None) -> None:
        super().__init__(message)
        self.run = run


class StateError(DHModelerError):
    """
    Invalid driver usage.

    Raised when an event of an unknown type is submitted to a state
    machine.
    """

    pass


class InvariantViolation(DHModelerError):
    """
    Security invariant was violated.

    Only raised by drivers running in strict mode; exploration reports
    violations as findings instead.
    """

    def __init__(self, message: str, finding: Optional["Finding"] = None) -> None:
        super().__init__(message)
        self.finding = finding
