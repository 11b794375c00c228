"""
DHModeler Term Algebra

Symbolic message language for the authenticated Diffie-Hellman model.

Design Principles:
- Immutable: all terms are frozen attrs classes, usable in sets and as keys
- Validated: operand types enforced at construction
- Canonical: double exponentials are normalised so that
  Exp(Exp(Gen, a), b) == Exp(Exp(Gen, b), a) holds structurally

The commutative law is only used to recognise that two independently
computed keys are the same value. It never lets anybody derive one
exponent from another.
"""

from __future__ import annotations

from typing import Any, Tuple

import attrs
from attrs import field, validators

from dhmodeler.core.exceptions import TermError


# =============================================================================
# RUN IDENTIFIERS
# =============================================================================


@attrs.define(frozen=True, slots=True, order=True)
class RunId:
    """
    Opaque identifier of one protocol session instance.

    Ordered so that runs can be enumerated deterministically.
    """

    label: str = field(validator=[validators.instance_of(str), validators.min_len(1)])

    def __str__(self) -> str:
        return self.label


# =============================================================================
# TERMS
# =============================================================================


class Term:
    """Base class of every message term."""

    __slots__ = ()


@attrs.define(frozen=True, slots=True)
class Agent(Term):
    """Public agent name."""

    name: str = field(validator=[validators.instance_of(str), validators.min_len(1)])

    def __str__(self) -> str:
        return self.name


@attrs.define(frozen=True, slots=True)
class Number(Term):
    """Public numeric constant."""

    value: int = field(validator=validators.instance_of(int))

    def __str__(self) -> str:
        return str(self.value)


@attrs.define(frozen=True, slots=True)
class NonceF(Term):
    """
    Fresh secret value generated by a run.

    Unguessable by the attacker unless explicitly leaked.
    """

    run: RunId = field(validator=validators.instance_of(RunId))

    def __str__(self) -> str:
        return f"N({self.run})"


@attrs.define(frozen=True, slots=True)
class LtK(Term):
    """
    Long-term key of an agent.

    Never part of a frame and never synthesizable.
    """

    agent: Agent = field(validator=validators.instance_of(Agent))

    def __str__(self) -> str:
        return f"LtK({self.agent})"


@attrs.define(frozen=True, slots=True)
class Gen(Term):
    """The fixed public generator."""

    def __str__(self) -> str:
        return "g"


@attrs.define(frozen=True, slots=True)
class EndMarker(Term):
    """Sentinel bound to the End variable of a completed run."""

    def __str__(self) -> str:
        return "End"


GEN = Gen()
END = EndMarker()


@attrs.define(frozen=True, slots=True)
class Exp(Term):
    """
    Exponentiation base^exponent.

    INVARIANT: a double exponential Exp(Exp(Gen, a), b) is stored with
    term_sort_key(a) <= term_sort_key(b)
    """

    base: Term = field(validator=validators.instance_of(Term))
    exponent: Term = field(validator=validators.instance_of(Term))

    def __attrs_post_init__(self) -> None:
        inner = self.base
        if isinstance(inner, Exp) and inner.base == GEN:
            if term_sort_key(self.exponent) < term_sort_key(inner.exponent):
                outer_exponent = inner.exponent
                object.__setattr__(self, "base", Exp(GEN, self.exponent))
                object.__setattr__(self, "exponent", outer_exponent)

    @property
    def is_double(self) -> bool:
        """True for Exp(Exp(Gen, a), b)."""
        return isinstance(self.base, Exp) and self.base.base == GEN

    def __str__(self) -> str:
        return f"{self.base}^{self.exponent}"


# =============================================================================
# HELPERS
# =============================================================================


_TAGS = {
    Agent: 0,
    Number: 1,
    Gen: 2,
    EndMarker: 3,
    NonceF: 4,
    LtK: 5,
    Exp: 6,
}


def term_sort_key(term: Term) -> Tuple[Any, ...]:
    """
    Total order over terms.

    Used to canonicalise double exponentials and to enumerate terms
    deterministically.
    """
    tag = _TAGS.get(type(term))
    if tag is None:
        raise TermError(f"Not a message term: {term!r}")
    if isinstance(term, Agent):
        return (tag, term.name)
    if isinstance(term, Number):
        return (tag, term.value)
    if isinstance(term, NonceF):
        return (tag, term.run.label)
    if isinstance(term, LtK):
        return (tag, term.agent.name)
    if isinstance(term, Exp):
        return (tag, term_sort_key(term.base), term_sort_key(term.exponent))
    return (tag,)


def gexp(exponent: Term) -> Exp:
    """Return the public exponential g^exponent."""
    return Exp(GEN, exponent)


def is_payload(term: Term) -> bool:
    """
    Check that a term carries no raw long-term key material.

    Frames may only bind payload terms, even for dishonest agents.
    """
    if isinstance(term, LtK):
        return False
    if isinstance(term, Exp):
        return is_payload(term.base) and is_payload(term.exponent)
    return isinstance(term, Term)
