"""
DHModeler Findings

A finding is the first-class output of invariant checking: the violated
invariant, the offending state, the event that produced it and the trace
that reached it.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

import attrs


@attrs.define(frozen=True, slots=True)
class Finding:
    """
    Invariant violation found in a reachable state.

    Attributes:
        invariant: Name of the violated invariant
        state: The offending state
        event: The transition that produced it (None for the initial state)
        trace: Every event from the initial state up to and including event
    """

    invariant: str
    state: Any = attrs.field(eq=False)
    event: Any = None
    trace: Tuple[Any, ...] = attrs.field(factory=tuple, converter=tuple)

    @property
    def depth(self) -> int:
        return len(self.trace)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        state = self.state.to_dict() if hasattr(self.state, "to_dict") else repr(self.state)
        return {
            "invariant": self.invariant,
            "event": None if self.event is None else str(self.event),
            "trace": [str(e) for e in self.trace],
            "state": state,
        }

    def __str__(self) -> str:
        steps = " -> ".join(str(e) for e in self.trace) or "<initial>"
        return f"{self.invariant} violated after {steps}"
