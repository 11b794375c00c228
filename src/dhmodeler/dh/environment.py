"""
DHModeler Session Environment

Read-only oracle mapping run identifiers to their role/participants and
to their local variable store ("frame").

Frames are built deterministically from the run table: each run binds its
own nonce and exponential, the peer exponential it will accept, the key
derived from both, and the End sentinel. Which peer exponential a run
accepts is decided up front, either by explicit peers or by pairing
initiator and responder runs with mirrored participants in declaration
order. Runs left unpaired accept an attacker-made exponential.

Contract violations in the supplied runs or frames are harness bugs and
raise OracleContractError at construction time.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import attrs
import structlog

from dhmodeler.core.exceptions import OracleContractError
from dhmodeler.core.terms import (
    END,
    Agent,
    Exp,
    NonceF,
    Number,
    RunId,
    Term,
    gexp,
    is_payload,
)
from dhmodeler.dh.types import ROLE_VARS, Role, RunInfo, Var

logger = structlog.get_logger()

Frame = Mapping[Var, Term]
PeerRef = Union[RunId, Term]

OWN_NONCE_VAR = {Role.INIT: Var.NX, Role.RESP: Var.NY}
OWN_EXP_VAR = {Role.INIT: Var.GNX, Role.RESP: Var.GNY}
PEER_EXP_VAR = {Role.INIT: Var.GNY, Role.RESP: Var.GNX}


def attacker_exponential(k: int) -> Exp:
    """g^k for a public constant k, an exponential the attacker can make."""
    return gexp(Number(k))


def build_frame(run: RunId, info: RunInfo, peer_exponential: Term) -> Dict[Var, Term]:
    """
    Build the frame of one run.

    Args:
        run: The run identifier
        info: Role and participants of the run
        peer_exponential: The exponential this run will accept from its peer

    Returns:
        Frame binding exactly the variables of the run's role
    """
    nonce = NonceF(run)
    return {
        OWN_NONCE_VAR[info.role]: nonce,
        OWN_EXP_VAR[info.role]: gexp(nonce),
        PEER_EXP_VAR[info.role]: peer_exponential,
        Var.SK: Exp(peer_exponential, nonce),
        Var.END: END,
    }


def pair_runs(runs: Mapping[RunId, RunInfo]) -> Dict[RunId, RunId]:
    """
    Pair initiator and responder runs with mirrored participants.

    Runs are matched in declaration order; each run is used at most once.

    Returns:
        Symmetric mapping run -> peer run for every paired run
    """
    pairs: Dict[RunId, RunId] = {}
    for run, info in runs.items():
        if info.role is not Role.INIT or run in pairs:
            continue
        for other, other_info in runs.items():
            if (
                other not in pairs
                and other_info.role is Role.RESP
                and other_info.owner == info.partner
                and other_info.partner == info.owner
            ):
                pairs[run] = other
                pairs[other] = run
                break
    return pairs


@attrs.define
class SessionEnvironment:
    """
    Run table and frames of one exploration.

    Attributes:
        runs: RunId -> (role, owner, partner), in declaration order
        frames: RunId -> frame
        test: The run whose secrecy and agreement are under study

    Example:
        alice, bob = Agent("A"), Agent("B")
        env = SessionEnvironment.build(
            {
                RunId("ra"): RunInfo(Role.INIT, alice, bob),
                RunId("rb"): RunInfo(Role.RESP, bob, alice),
            },
            test=RunId("ra"),
        )
    """

    runs: Mapping[RunId, RunInfo] = attrs.field(converter=lambda r: MappingProxyType(dict(r)))
    frames: Mapping[RunId, Frame] = attrs.field(
        converter=lambda f: MappingProxyType(
            {run: MappingProxyType(dict(frame)) for run, frame in f.items()}
        )
    )
    test: RunId = attrs.field(validator=attrs.validators.instance_of(RunId))

    _logger: structlog.BoundLogger = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        self._validate()
        self._logger.debug(
            "environment_ready",
            runs=len(self.runs),
            test=str(self.test),
        )

    @classmethod
    def build(
        cls,
        runs: Mapping[RunId, RunInfo],
        test: RunId,
        peers: Optional[Mapping[RunId, PeerRef]] = None,
    ) -> SessionEnvironment:
        """
        Build an environment with deterministically constructed frames.

        Args:
            runs: Run table in declaration order
            test: The run under study
            peers: Optional overrides run -> peer run or peer exponential

        Raises:
            OracleContractError: if peers reference unknown runs
        """
        paired = pair_runs(runs)
        peers = dict(peers or {})
        frames: Dict[RunId, Dict[Var, Term]] = {}
        attacker_k = 0

        for run, info in runs.items():
            ref = peers.get(run, paired.get(run))
            if ref is None:
                attacker_k += 1
                peer_exp: Term = attacker_exponential(attacker_k)
            elif isinstance(ref, RunId):
                if ref not in runs:
                    raise OracleContractError(f"Unknown peer run {ref} for {run}", run=run)
                peer_exp = gexp(NonceF(ref))
            elif isinstance(ref, Term):
                peer_exp = ref
            else:
                raise OracleContractError(f"Peer of {run} is neither a run nor a term", run=run)
            frames[run] = build_frame(run, info, peer_exp)

        return cls(runs=runs, frames=frames, test=test)

    # -------------------------------------------------------------------------
    # Oracle interface
    # -------------------------------------------------------------------------

    def role_of(self, run: RunId) -> RunInfo:
        """Role and participants of run."""
        try:
            return self.runs[run]
        except KeyError:
            raise OracleContractError(f"Unknown run {run}", run=run) from None

    def frame_of(self, run: RunId) -> Frame:
        """Frame of run."""
        try:
            return self.frames[run]
        except KeyError:
            raise OracleContractError(f"Unknown run {run}", run=run) from None

    @property
    def test_owner(self) -> Agent:
        return self.runs[self.test].owner

    @property
    def test_partner(self) -> Agent:
        return self.runs[self.test].partner

    def __iter__(self) -> Iterator[RunId]:
        return iter(self.runs)

    def __len__(self) -> int:
        return len(self.runs)

    def runs_with(self, role: Role, owner: Agent, partner: Agent) -> List[RunId]:
        """All runs declared as (role, owner, partner)."""
        wanted = RunInfo(role, owner, partner)
        return [run for run, info in self.runs.items() if info == wanted]

    def agents(self) -> Tuple[Agent, ...]:
        """Every agent named in the run table."""
        seen: Dict[Agent, None] = {}
        for info in self.runs.values():
            seen.setdefault(info.owner)
            seen.setdefault(info.partner)
        return tuple(seen)

    def own_exponential(self, run: RunId) -> Term:
        """The exponential run sends."""
        return gexp(NonceF(run))

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    def _validate(self) -> None:
        if self.test not in self.runs:
            raise OracleContractError(f"Test run {self.test} is not declared", run=self.test)
        if set(self.runs) != set(self.frames):
            missing = set(self.runs) ^ set(self.frames)
            raise OracleContractError(
                f"Runs and frames disagree on {sorted(str(r) for r in missing)}"
            )

        for run, info in self.runs.items():
            if not isinstance(info, RunInfo):
                raise OracleContractError(f"Run {run} has no RunInfo", run=run)
            self._validate_frame(run, info, self.frames[run])

    def _validate_frame(self, run: RunId, info: RunInfo, frame: Frame) -> None:
        expected = ROLE_VARS[info.role]
        if set(frame) != expected:
            raise OracleContractError(
                f"Frame of {run} binds {sorted(str(v) for v in frame)}, "
                f"expected {sorted(str(v) for v in expected)}",
                run=run,
            )

        for var, value in frame.items():
            if not isinstance(value, Term) or not is_payload(value):
                raise OracleContractError(
                    f"Frame of {run} binds non-payload value to {var}", run=run
                )

        nonce = NonceF(run)
        if frame[OWN_NONCE_VAR[info.role]] != nonce:
            raise OracleContractError(f"Frame of {run} does not bind its own nonce", run=run)
        if frame[OWN_EXP_VAR[info.role]] != gexp(nonce):
            raise OracleContractError(
                f"Frame of {run} does not bind its own exponential", run=run
            )
        if frame[Var.SK] != Exp(frame[PEER_EXP_VAR[info.role]], nonce):
            raise OracleContractError(
                f"Frame of {run} binds a key not derived from its peer exponential",
                run=run,
            )
        if frame[Var.END] != END:
            raise OracleContractError(f"Frame of {run} binds End to a non-sentinel", run=run)
