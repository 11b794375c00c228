"""
DHModeler State-Space Explorer

Bounded exploration of the protocol's labeled transition system.

- explore(): breadth-first search from the initial state with visited-state
  deduplication, checking every invariant on the first edge into each state
- random_walks(): independent seeded walks, run concurrently
- replay(): re-execute a recorded trace

Invariant violations are reported as Finding values; a violating state is
reported once, along the first (shortest) trace that reaches it, and is
not expanded further. Exploration of other branches continues unless
stop_at_first is set.
"""

from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
import json
import random
from typing import Any, Deque, Dict, List, Optional, Sequence, Set, Tuple

import attrs
import structlog
from returns.result import Failure, Result, Success

from dhmodeler.checker.config import ExplorerConfig
from dhmodeler.core.exceptions import OracleContractError
from dhmodeler.core.findings import Finding
from dhmodeler.core.terms import NonceF, Term, term_sort_key
from dhmodeler.dh.environment import PEER_EXP_VAR, SessionEnvironment, attacker_exponential
from dhmodeler.dh.invariants import InvariantChecker
from dhmodeler.dh.protocol import enabled_events, successor
from dhmodeler.dh.types import GlobalState
from dhmodeler.intruder.closure import DeductionCache

logger = structlog.get_logger()


def attacker_messages(env: SessionEnvironment, config: ExplorerConfig) -> Tuple[Term, ...]:
    """
    Messages the attacker may be given through learn().

    Every run's own exponential (honest traffic on the network), every peer
    exponential a frame expects, attacker-made exponentials, leaked nonces
    and configured extras; deduplicated and in a deterministic order.
    """
    messages: Set[Term] = set(config.extra_messages)
    for run, info in env.runs.items():
        messages.add(env.own_exponential(run))
        messages.add(env.frame_of(run)[PEER_EXP_VAR[info.role]])
    for k in range(1, config.attacker_exponents + 1):
        messages.add(attacker_exponential(k))
    for run in config.leak_nonces:
        if run not in env.runs:
            raise OracleContractError(f"Cannot leak nonce of unknown run {run}", run=run)
        messages.add(NonceF(run))
    return tuple(sorted(messages, key=term_sort_key))


@attrs.define
class ExplorationReport:
    """
    Outcome of an exploration.

    Attributes:
        states: Distinct states visited
        transitions: Enabled transitions fired
        max_depth: Deepest trace reached
        bound_hit: Whether max_states or max_depth cut exploration short
        findings: Invariant violations, in discovery order
        walks: Random walks completed
    """

    states: int = 0
    transitions: int = 0
    max_depth: int = 0
    bound_hit: bool = False
    findings: List[Finding] = attrs.Factory(list)
    walks: int = 0

    @property
    def ok(self) -> bool:
        """True if no invariant was violated."""
        return not self.findings

    def violated(self) -> List[str]:
        """Names of violated invariants, without repetitions."""
        return list(dict.fromkeys(f.invariant for f in self.findings))

    def merge(self, other: ExplorationReport) -> None:
        self.states += other.states
        self.transitions += other.transitions
        self.max_depth = max(self.max_depth, other.max_depth)
        self.bound_hit = self.bound_hit or other.bound_hit
        self.findings.extend(other.findings)
        self.walks += other.walks

    def summary(self) -> str:
        status = "OK" if self.ok else f"VIOLATED {', '.join(self.violated())}"
        bound = " (bound hit)" if self.bound_hit else ""
        return (
            f"{status}: {self.states} states, {self.transitions} transitions, "
            f"depth {self.max_depth}{bound}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "states": self.states,
            "transitions": self.transitions,
            "max_depth": self.max_depth,
            "bound_hit": self.bound_hit,
            "walks": self.walks,
            "findings": [f.to_dict() for f in self.findings],
        }

    def export_json(self) -> str:
        """Export report as JSON string."""
        return json.dumps(self.to_dict(), indent=2)


@attrs.define
class Explorer:
    """
    Bounded model checker over one session environment.

    Example:
        explorer = Explorer(env, ExplorerConfig(max_depth=10))
        report = explorer.explore()
        for finding in report.findings:
            print(finding)
    """

    env: SessionEnvironment
    config: ExplorerConfig = attrs.Factory(ExplorerConfig)
    checker: InvariantChecker = attrs.Factory(InvariantChecker)

    _logger: structlog.BoundLogger = attrs.Factory(lambda: structlog.get_logger())

    @property
    def messages(self) -> Tuple[Term, ...]:
        return attacker_messages(self.env, self.config)

    def _check(
        self,
        state: GlobalState,
        previous: Any,
        event: Any,
        trace: Tuple[Any, ...],
    ) -> List[Finding]:
        return [
            Finding(name, state, event, trace)
            for name in self.checker.check(self.env, state, previous=previous)
        ]

    def explore(self) -> ExplorationReport:
        """
        Breadth-first search from the initial state.

        Returns:
            ExplorationReport with every finding reached within the bounds
        """
        config = self.config
        cache = DeductionCache()
        messages = self.messages
        report = ExplorationReport()

        initial = GlobalState.initial()
        report.findings.extend(self._check(initial, None, None, ()))
        visited: Set[Tuple[Any, ...]] = {initial.fingerprint()}
        queue: Deque[Tuple[GlobalState, Tuple[Any, ...]]] = deque([(initial, ())])
        report.states = 1

        self._logger.info(
            "exploration_started",
            runs=len(self.env),
            messages=len(messages),
            max_depth=config.max_depth,
        )

        while queue:
            if config.stop_at_first and report.findings:
                break
            state, trace = queue.popleft()
            enabled = enabled_events(self.env, state, messages, cache)
            if len(trace) >= config.max_depth:
                report.bound_hit = report.bound_hit or bool(enabled)
                continue

            for event, new_state in enabled:
                report.transitions += 1
                fingerprint = new_state.fingerprint()
                if fingerprint in visited:
                    continue
                new_trace = trace + (event,)
                findings = self._check(new_state, state, event, new_trace)
                if findings:
                    report.findings.extend(findings)
                    visited.add(fingerprint)
                    if config.stop_at_first:
                        break
                    continue
                if report.states >= config.max_states:
                    report.bound_hit = True
                    queue.clear()
                    break
                visited.add(fingerprint)
                report.states += 1
                report.max_depth = max(report.max_depth, len(new_trace))
                queue.append((new_state, new_trace))

        self._logger.info(
            "exploration_finished",
            states=report.states,
            transitions=report.transitions,
            findings=len(report.findings),
            bound_hit=report.bound_hit,
        )
        return report

    def random_walk(self, seed: int) -> ExplorationReport:
        """
        One seeded random walk, stopping at the first finding or dead end.
        """
        rng = random.Random(seed)
        cache = DeductionCache(max_entries=256)
        messages = self.messages
        report = ExplorationReport(states=1, walks=1)

        state = GlobalState.initial()
        trace: Tuple[Any, ...] = ()
        report.findings.extend(self._check(state, None, None, trace))

        while not report.findings and len(trace) < self.config.walk_depth:
            enabled = enabled_events(self.env, state, messages, cache)
            if not enabled:
                break
            event, new_state = rng.choice(enabled)
            trace = trace + (event,)
            report.transitions += 1
            report.states += 1
            report.findings.extend(self._check(new_state, state, event, trace))
            state = new_state

        report.max_depth = len(trace)
        report.bound_hit = len(trace) >= self.config.walk_depth
        return report

    def random_walks(self) -> ExplorationReport:
        """
        Run config.walks independent walks concurrently.

        Walk i uses seed config.seed + i, so results are reproducible.
        """
        combined = ExplorationReport()
        seeds = [self.config.seed + i for i in range(self.config.walks)]

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {executor.submit(self.random_walk, seed): seed for seed in seeds}

            for future in as_completed(futures):
                seed = futures[future]
                walk = future.result()
                combined.merge(walk)
                self._logger.debug(
                    "random_walk_complete",
                    seed=seed,
                    depth=walk.max_depth,
                    findings=len(walk.findings),
                )

        self._logger.info(
            "random_walks_finished",
            walks=combined.walks,
            findings=len(combined.findings),
        )
        return combined


def replay(
    env: SessionEnvironment,
    events: Sequence[Any],
    initial: Optional[GlobalState] = None,
) -> Result[GlobalState, str]:
    """
    Re-execute a trace.

    Returns:
        Success(final_state) if every event was enabled in turn
        Failure(message) naming the first disabled event
    """
    state = initial if initial is not None else GlobalState.initial()
    cache = DeductionCache()
    for index, event in enumerate(events):
        result = successor(env, state, event, cache)
        if isinstance(result, Failure):
            return Failure(f"event {index} ({event}) disabled: {result.failure()}")
        state = result.unwrap()
    return Success(state)
