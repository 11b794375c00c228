"""
DHModeler Intruder Closures

Dolev-Yao attacker deduction over a set of known terms.

- analz(S): decomposition closure (what can be extracted from S)
- synth(S): composition closure (what can be built on top of S)
- derivable(ik) = synth(analz(ik)): the attacker's full deductive power

synth(S) is infinite (every public constant, every exponential over the
closure), so it is represented by SynthClosure, an immutable
object that decides membership instead of enumerating its elements.
"""

from __future__ import annotations

from collections import OrderedDict
import threading
from typing import Callable, Dict, FrozenSet, Iterable, List, Tuple

import attrs
import structlog

from dhmodeler.core.terms import (
    Agent,
    EndMarker,
    Exp,
    Gen,
    Number,
    Term,
    gexp,
)

logger = structlog.get_logger()


# Decomposition rules: (term, current closure) -> parts the attacker learns.
DecompositionRule = Callable[[Term, FrozenSet[Term]], Iterable[Term]]

# Exp is deliberately absent: knowing Exp(a, b) reveals neither a nor b.
DECOMPOSITION_RULES: Dict[type, DecompositionRule] = {}

# Constants the attacker can always produce.
PUBLIC_CONSTANTS: Tuple[type, ...] = (Agent, Number, Gen, EndMarker)


def analz(knowledge: Iterable[Term]) -> FrozenSet[Term]:
    """
    Least fixpoint containing knowledge, closed under decomposition.

    Args:
        knowledge: Terms the attacker has observed

    Returns:
        Every term extractable from knowledge
    """
    closure = frozenset(knowledge)
    pending: List[Term] = list(closure)

    while pending:
        term = pending.pop()
        rule = DECOMPOSITION_RULES.get(type(term))
        if rule is None:
            continue
        new_parts = [part for part in rule(term, closure) if part not in closure]
        if new_parts:
            closure = closure | frozenset(new_parts)
            pending.extend(new_parts)

    return closure


@attrs.define(frozen=True)
class SynthClosure:
    """
    Composition closure of a finite base set.

    Supports membership tests and intersection / disjointness against
    finite sets. The closure is infinite, so it is neither iterable nor
    sized: builtin set operations taking it as an argument raise TypeError
    instead of silently comparing against the base alone.
    """

    base: FrozenSet[Term] = attrs.field(converter=frozenset)
    _memo: Dict[Term, bool] = attrs.field(
        factory=dict, eq=False, repr=False, alias="_memo"
    )

    def __contains__(self, term: object) -> bool:
        if not isinstance(term, Term):
            return False
        cached = self._memo.get(term)
        if cached is None:
            cached = self._derive(term)
            self._memo[term] = cached
        return cached

    def _derive(self, term: Term) -> bool:
        if term in self.base:
            return True
        if isinstance(term, PUBLIC_CONSTANTS):
            return True
        if isinstance(term, Exp):
            if term.base in self and term.exponent in self:
                return True
            if term.is_double:
                # Commutativity: g^(a*b) is also reachable as (g^b)^a.
                first = term.base.exponent
                return gexp(term.exponent) in self and first in self
        return False

    def isdisjoint(self, other: Iterable[object]) -> bool:
        return not any(term in self for term in other)

    def intersection(self, other: Iterable[object]) -> FrozenSet[Term]:
        """Intersect with a finite collection of terms."""
        return frozenset(term for term in other if term in self)

    def __and__(self, other: Iterable[object]) -> FrozenSet[Term]:
        return self.intersection(other)

    __rand__ = __and__


def synth(knowledge: Iterable[Term]) -> SynthClosure:
    """Composition closure of knowledge."""
    return SynthClosure(frozenset(knowledge))


def derivable(ik: Iterable[Term]) -> SynthClosure:
    """Everything the attacker can derive: synth(analz(ik))."""
    return synth(analz(ik))


def secrecy_holds(ik: Iterable[Term], secret: Iterable[Term]) -> bool:
    """
    Check that no declared secret is derivable from ik.

    Holds iff synth(analz(ik)) ∩ secret = ∅.
    """
    return derivable(ik).isdisjoint(secret)


# =============================================================================
# DEDUCTION CACHE
# =============================================================================


@attrs.define
class DeductionCache:
    """
    Memoised derivable(ik) per knowledge set.

    Knowledge sets are immutable frozensets, so every ik mutation produces
    a new key and stale closures are never served. Least recently used
    entries are evicted beyond max_entries.

    Thread-safe for concurrent exploration.

    Example:
        cache = DeductionCache()
        if key in cache.derivable(state.ik):
            ...
    """

    max_entries: int = 4096

    _entries: "OrderedDict[FrozenSet[Term], SynthClosure]" = attrs.Factory(OrderedDict)
    _hits: int = 0
    _misses: int = 0
    _lock: threading.RLock = attrs.Factory(threading.RLock)
    _logger: structlog.BoundLogger = attrs.Factory(lambda: structlog.get_logger())

    def derivable(self, ik: FrozenSet[Term]) -> SynthClosure:
        """Return the cached closure for ik, computing it on a miss."""
        with self._lock:
            closure = self._entries.get(ik)
            if closure is not None:
                self._hits += 1
                self._entries.move_to_end(ik)
                return closure

            self._misses += 1
            closure = derivable(ik)
            self._entries[ik] = closure
            if len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._logger.debug("deduction_cache_evicted", size=len(self._entries))
            return closure

    def secrecy_holds(self, ik: FrozenSet[Term], secret: Iterable[Term]) -> bool:
        """Cached variant of secrecy_holds()."""
        return self.derivable(ik).isdisjoint(secret)

    @property
    def stats(self) -> Dict[str, int]:
        """Hit/miss counters and current size."""
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": len(self._entries),
        }

    def clear(self) -> None:
        """Drop all cached closures."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
