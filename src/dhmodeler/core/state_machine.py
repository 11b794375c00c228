"""
DHModeler State Machine Base

Abstract base class for guarded-transition protocol models with:
- Invariant checking after each transition
- Complete transition history for replay/verification
- JSON trace export

Design Principles:
1. Pure transition functions: handler(state, event) -> Result[state, reason]
2. A disabled transition is a Failure value, never a partial update
3. All state changes through explicit events
4. Violations are recorded as findings (or raised in strict mode)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    Tuple,
    TypeVar,
)
import json
import structlog

import attrs
from returns.result import Failure, Result, Success

from dhmodeler.core.exceptions import InvariantViolation, StateError
from dhmodeler.core.findings import Finding

logger = structlog.get_logger()


S = TypeVar("S")  # State type
E = TypeVar("E")  # Event type


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S, E]):
    """
    Immutable record of a committed transition.

    Used for trace export and replay.
    """

    index: int
    event: E
    from_state: S
    to_state: S
    timestamp: datetime
    violations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "index": self.index,
            "event_type": type(self.event).__name__,
            "event": str(self.event),
            "timestamp": self.timestamp.isoformat(),
            "violations": list(self.violations),
            "state": _snapshot(self.to_state),
        }


# Type alias for invariant functions
InvariantFn = Callable[[Any], bool]
TransitionInvariantFn = Callable[[Any, Any], bool]

# Type alias for transition table entry
Handler = Callable[[Any, Any], Result[Any, str]]


def _snapshot(state: Any) -> Any:
    if hasattr(state, "to_dict"):
        return state.to_dict()
    return repr(state)


@attrs.define
class GuardedStateMachine(ABC, Generic[S, E]):
    """
    Base state machine with verification hooks.

    Usage:
        class MyMachine(GuardedStateMachine[MyState, Any]):
            def initial_state(self) -> MyState:
                return MyState()

            def transition_table(self) -> Dict[type, Handler]:
                return {StartEvent: self._handle_start}

            def _handle_start(self, state, event) -> Result[MyState, str]:
                if state.started:
                    return Failure("already started")
                return Success(attrs.evolve(state, started=True))
    """

    strict: bool = False
    _state: Any = attrs.field(default=None, alias="_state")
    _history: List[Transition[S, E]] = attrs.field(factory=list, alias="_history")
    _invariants: List[Tuple[str, InvariantFn]] = attrs.field(factory=list, alias="_invariants")
    _transition_invariants: List[Tuple[str, TransitionInvariantFn]] = attrs.field(
        factory=list, alias="_transition_invariants"
    )
    _findings: List[Finding] = attrs.field(factory=list, alias="_findings")
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), alias="_logger")

    def __attrs_post_init__(self) -> None:
        if self._state is None:
            self._state = self.initial_state()

    @abstractmethod
    def initial_state(self) -> S:
        """Return the initial state for this state machine."""
        ...

    @abstractmethod
    def transition_table(self) -> Dict[type, Handler]:
        """
        Return the transition table.

        Maps event type to a pure handler (state, event) -> Result.
        """
        ...

    @property
    def state(self) -> S:
        """Current state (read-only)."""
        return self._state

    @property
    def findings(self) -> List[Finding]:
        """Invariant violations recorded so far."""
        return list(self._findings)

    def process_event(self, event: E) -> Result[S, str]:
        """
        Apply an event to the current state.

        Returns:
            Success(new_state) if the transition was enabled
            Failure(reason) if its guard failed (state unchanged)

        Raises:
            StateError: If no handler exists for the event type
            InvariantViolation: In strict mode, if an invariant fails
        """
        handler = self.transition_table().get(type(event))
        if handler is None:
            raise StateError(f"No transition for event {type(event).__name__}")

        result = handler(self._state, event)
        if isinstance(result, Failure):
            self._logger.debug(
                "transition_disabled",
                event_type=type(event).__name__,
                trigger=str(event),
                reason=result.failure(),
            )
            return result

        new_state = result.unwrap()
        violations = self.check(new_state, previous=self._state)
        trace = tuple(t.event for t in self._history) + (event,)

        if violations and self.strict:
            finding = Finding(violations[0], new_state, event, trace)
            self._logger.error(
                "invariant_violated",
                invariant=violations[0],
                trigger=str(event),
            )
            raise InvariantViolation(f"Invariant '{violations[0]}' violated", finding)

        self._history.append(
            Transition(
                index=len(self._history),
                event=event,
                from_state=self._state,
                to_state=new_state,
                timestamp=datetime.now(timezone.utc),
                violations=tuple(violations),
            )
        )
        self._findings.extend(Finding(name, new_state, event, trace) for name in violations)
        self._state = new_state

        for name in violations:
            self._logger.warning("invariant_violated", invariant=name, trigger=str(event))
        self._logger.info(
            "state_transition",
            event_type=type(event).__name__,
            trigger=str(event),
        )
        return Success(new_state)

    def check(self, state: S, previous: Any = None) -> List[str]:
        """
        Names of the invariants that fail in state.

        Transition invariants are only evaluated when previous is given.
        """
        failed = [name for name, inv in self._invariants if not inv(state)]
        if previous is not None:
            failed.extend(
                name
                for name, inv in self._transition_invariants
                if not inv(previous, state)
            )
        return failed

    def add_invariant(self, name: str, invariant: InvariantFn) -> None:
        """
        Register a state invariant checked after each transition.

        Args:
            name: Human-readable name for findings
            invariant: Function state -> bool
        """
        self._invariants.append((name, invariant))

    def add_transition_invariant(self, name: str, invariant: TransitionInvariantFn) -> None:
        """Register an invariant over (old_state, new_state) pairs."""
        self._transition_invariants.append((name, invariant))

    def get_trace(self) -> List[Transition[S, E]]:
        """Return a copy of the transition history."""
        return list(self._history)

    def events(self) -> List[E]:
        """Events committed so far, in order."""
        return [t.event for t in self._history]

    def export_trace_json(self) -> str:
        """Export trace as JSON string."""
        return json.dumps(
            {
                "initial_state": _snapshot(self.initial_state()),
                "final_state": _snapshot(self._state),
                "transitions": [t.to_dict() for t in self._history],
                "findings": [f.to_dict() for f in self._findings],
            },
            indent=2,
        )

    def reset(self) -> None:
        """
        Reset to the initial state.

        Clears history and findings. Registered invariants are kept.
        """
        self._state = self.initial_state()
        self._history = []
        self._findings = []
