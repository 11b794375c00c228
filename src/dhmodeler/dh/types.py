"""
DHModeler Protocol Types

Roles, frame variables, signals, the global state record and the
transition events of the authenticated Diffie-Hellman model.

Protocol Flow (A initiator, B responder):
1. A: generate nx, send g^nx                      (step1)
2. B: receive gnx, generate ny, send g^ny          (step2, Running for A)
3. A: receive gny, derive sk = gny^nx              (step3, Commit for A)
4. B: confirm, derive sk = gnx^ny                  (step4, Commit for B)
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

import attrs
from attrs import field, validators

from dhmodeler.core.terms import Agent, RunId, Term, term_sort_key


# =============================================================================
# ENUMS
# =============================================================================


class Role(Enum):
    """Protocol role of a run."""

    INIT = "Init"
    RESP = "Resp"


class Var(Enum):
    """Frame variables."""

    NX = "nx"
    NY = "ny"
    GNX = "gnx"
    GNY = "gny"
    SK = "sk"
    END = "End"

    def __str__(self) -> str:
        return self.value


ROLE_VARS: Dict[Role, FrozenSet[Var]] = {
    Role.INIT: frozenset({Var.NX, Var.GNX, Var.GNY, Var.SK, Var.END}),
    Role.RESP: frozenset({Var.NY, Var.GNX, Var.GNY, Var.SK, Var.END}),
}

# Progress sets reached by each protocol step.
STEP1_PROGRESS: FrozenSet[Var] = frozenset({Var.NX, Var.GNX})
STEP2_PROGRESS: FrozenSet[Var] = frozenset({Var.NY, Var.GNY, Var.GNX, Var.SK})
STEP3_PROGRESS: FrozenSet[Var] = STEP1_PROGRESS | {Var.GNY, Var.SK, Var.END}
STEP4_PROGRESS: FrozenSet[Var] = STEP2_PROGRESS | {Var.END}


class SignalKind(Enum):
    """Authentication claim kinds."""

    RUNNING = "Running"
    COMMIT = "Commit"


# =============================================================================
# RECORDS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class RunInfo:
    """Role and participants of a run, as seen by its owner."""

    role: Role = field(validator=validators.instance_of(Role))
    owner: Agent = field(validator=validators.instance_of(Agent))
    partner: Agent = field(validator=validators.instance_of(Agent))

    def __str__(self) -> str:
        return f"{self.role.value}({self.owner}, {self.partner})"


@attrs.define(frozen=True, slots=True)
class Signal:
    """
    Running(A, B, key) or Commit(A, B, key).

    A is always the initiator and B the responder, whichever role emits it.
    """

    kind: SignalKind = field(validator=validators.instance_of(SignalKind))
    initiator: Agent = field(validator=validators.instance_of(Agent))
    responder: Agent = field(validator=validators.instance_of(Agent))
    key: Term = field(validator=validators.instance_of(Term))

    @classmethod
    def running(cls, a: Agent, b: Agent, key: Term) -> Signal:
        return cls(SignalKind.RUNNING, a, b, key)

    @classmethod
    def commit(cls, a: Agent, b: Agent, key: Term) -> Signal:
        return cls(SignalKind.COMMIT, a, b, key)

    def matching(self, kind: SignalKind) -> Signal:
        """Same (A, B, key) triple with another kind."""
        return attrs.evolve(self, kind=kind)

    def __str__(self) -> str:
        return f"{self.kind.value}({self.initiator}, {self.responder}, {self.key})"


def _freeze_progress(value: Mapping[RunId, FrozenSet[Var]]) -> Mapping[RunId, FrozenSet[Var]]:
    return MappingProxyType({run: frozenset(vars_) for run, vars_ in value.items()})


def _freeze_counts(value: Mapping[Signal, int]) -> Mapping[Signal, int]:
    return MappingProxyType({signal: count for signal, count in value.items() if count})


@attrs.define(frozen=True, slots=True)
class GlobalState:
    """
    Global protocol state.

    Attributes:
        ik: Intruder knowledge (grows monotonically)
        secret: Terms declared secret in this execution
        progress: Bound variables per started run (absent == not started)
        signals_init: Counters of signals observed by the initiator side
        signals_resp: Counters of signals observed by the responder side

    Signal maps are sparse: absent signals have count 0. The mappings are
    read-only views; transitions build new states with evolve().
    """

    ik: FrozenSet[Term] = field(factory=frozenset, converter=frozenset)
    secret: FrozenSet[Term] = field(factory=frozenset, converter=frozenset)
    progress: Mapping[RunId, FrozenSet[Var]] = field(
        factory=dict, converter=_freeze_progress, hash=False
    )
    signals_init: Mapping[Signal, int] = field(
        factory=dict, converter=_freeze_counts, hash=False
    )
    signals_resp: Mapping[Signal, int] = field(
        factory=dict, converter=_freeze_counts, hash=False
    )

    @classmethod
    def initial(cls) -> GlobalState:
        """Empty knowledge, no progress, zero signals."""
        return cls()

    def progress_of(self, run: RunId) -> Optional[FrozenSet[Var]]:
        """Bound variables of run, or None if it has not started."""
        return self.progress.get(run)

    def is_started(self, run: RunId) -> bool:
        return run in self.progress

    def is_finished(self, run: RunId) -> bool:
        return Var.END in self.progress.get(run, frozenset())

    def init_count(self, signal: Signal) -> int:
        return self.signals_init.get(signal, 0)

    def resp_count(self, signal: Signal) -> int:
        return self.signals_resp.get(signal, 0)

    def fingerprint(self) -> Tuple[Any, ...]:
        """Hashable canonical form used for visited-state deduplication."""
        return (
            self.ik,
            self.secret,
            frozenset(self.progress.items()),
            frozenset(self.signals_init.items()),
            frozenset(self.signals_resp.items()),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Readable snapshot for reports and trace export."""
        return {
            "ik": sorted((str(t) for t in self.ik)),
            "secret": sorted((str(t) for t in self.secret)),
            "progress": {
                str(run): sorted(str(v) for v in vars_)
                for run, vars_ in sorted(self.progress.items())
            },
            "signals_init": {str(s): n for s, n in _sorted_signals(self.signals_init)},
            "signals_resp": {str(s): n for s, n in _sorted_signals(self.signals_resp)},
        }


def _sorted_signals(counts: Mapping[Signal, int]):
    return sorted(
        counts.items(),
        key=lambda item: (
            item[0].kind.value,
            item[0].initiator.name,
            item[0].responder.name,
            term_sort_key(item[0].key),
        ),
    )


def bump(counts: Mapping[Signal, int], signal: Signal) -> Dict[Signal, int]:
    """Return a copy of counts with signal incremented."""
    updated = dict(counts)
    updated[signal] = updated.get(signal, 0) + 1
    return updated


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Learn:
    """The attacker learns message m."""

    message: Term = field(validator=validators.instance_of(Term))

    def __str__(self) -> str:
        return f"learn({self.message})"


@attrs.define(frozen=True, slots=True)
class Step1:
    """Initiator ra (A talking to B) generates its nonce and exponential."""

    ra: RunId = field(validator=validators.instance_of(RunId))
    a: Agent = field(validator=validators.instance_of(Agent))
    b: Agent = field(validator=validators.instance_of(Agent))

    def __str__(self) -> str:
        return f"step1({self.ra}, {self.a}, {self.b})"


@attrs.define(frozen=True, slots=True)
class Step2:
    """Responder rb (B answering A) accepts gnx and derives its key."""

    rb: RunId = field(validator=validators.instance_of(RunId))
    a: Agent = field(validator=validators.instance_of(Agent))
    b: Agent = field(validator=validators.instance_of(Agent))
    gnx: Term = field(validator=validators.instance_of(Term))

    def __str__(self) -> str:
        return f"step2({self.rb}, {self.a}, {self.b}, {self.gnx})"


@attrs.define(frozen=True, slots=True)
class Step3:
    """Initiator ra accepts gny and completes."""

    ra: RunId = field(validator=validators.instance_of(RunId))
    a: Agent = field(validator=validators.instance_of(Agent))
    b: Agent = field(validator=validators.instance_of(Agent))
    gny: Term = field(validator=validators.instance_of(Term))

    def __str__(self) -> str:
        return f"step3({self.ra}, {self.a}, {self.b}, {self.gny})"


@attrs.define(frozen=True, slots=True)
class Step4:
    """Responder rb completes."""

    rb: RunId = field(validator=validators.instance_of(RunId))
    a: Agent = field(validator=validators.instance_of(Agent))
    b: Agent = field(validator=validators.instance_of(Agent))
    gnx: Term = field(validator=validators.instance_of(Term))

    def __str__(self) -> str:
        return f"step4({self.rb}, {self.a}, {self.b}, {self.gnx})"
