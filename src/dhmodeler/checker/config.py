"""
DHModeler Explorer Configuration
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

import attrs
from attrs import field, validators

from dhmodeler.core.terms import RunId, Term


@attrs.define
class ExplorerConfig:
    """
    Exploration bounds and attacker vocabulary.

    Attributes:
        max_depth: Longest trace explored by BFS
        max_states: Stop BFS after this many distinct states
        stop_at_first: Stop at the first finding
        attacker_exponents: Number of attacker-made exponentials g^k offered to learn
        leak_nonces: Runs whose raw nonce is offered to learn
        extra_messages: Further terms offered to learn
        walks: Number of random walks
        walk_depth: Length bound of each random walk
        seed: Base seed; walk i uses seed + i
        max_workers: Threads used for random walks
    """

    max_depth: int = field(default=12, validator=validators.ge(0))
    max_states: int = field(default=50_000, validator=validators.ge(1))
    stop_at_first: bool = False
    attacker_exponents: int = field(default=1, validator=validators.ge(0))
    leak_nonces: Tuple[RunId, ...] = field(factory=tuple, converter=tuple)
    extra_messages: Tuple[Term, ...] = field(factory=tuple, converter=tuple)
    walks: int = field(default=32, validator=validators.ge(0))
    walk_depth: int = field(default=20, validator=validators.ge(0))
    seed: int = 0
    max_workers: int = field(default=4, validator=validators.ge(1))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ExplorerConfig":
        """
        Create config from a plain mapping (e.g. parsed JSON).

        Unknown keys are rejected.
        """
        known = {a.name for a in attrs.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown explorer settings: {sorted(unknown)}")
        return cls(**dict(data))

    @classmethod
    def quick(cls, seed: Optional[int] = None) -> "ExplorerConfig":
        """Small bounds suited to unit tests."""
        return cls(max_depth=8, max_states=5_000, walks=8, walk_depth=12, seed=seed or 0)
