#!/usr/bin/env python3
"""
Authenticated Diffie-Hellman Exploration Example

Demonstrates how to use DHModeler to drive the protocol by hand and to
explore every reachable state of a small session environment.

Features:
1. Building a session environment with an honest pair of runs
2. Stepping the protocol state machine manually
3. Fence enforcement on attacker learning
4. Bounded breadth-first exploration
5. Concurrent random walks
6. Finding a violation of a custom invariant and replaying its trace
"""

from returns.result import Failure, Success

from dhmodeler import (
    Agent,
    DHProtocolStateMachine,
    ExplorerConfig,
    Explorer,
    NonceF,
    Role,
    RunId,
    RunInfo,
    SessionEnvironment,
    gexp,
)
from dhmodeler.checker import replay
from dhmodeler.dh import InvariantChecker, Learn, Step1, Step2, Step3, Step4


def main():
    """Demonstrate manual stepping and bounded exploration."""

    print("=" * 70)
    print("DHModeler - Authenticated Diffie-Hellman")
    print("=" * 70)
    print()

    alice, bob, eve = Agent("A"), Agent("B"), Agent("E")
    ra, rb, rc = RunId("ra"), RunId("rb"), RunId("rc")

    # ==========================================================================
    # EXAMPLE 1: Build Session Environment
    # ==========================================================================
    print("1. Build Session Environment")
    print("-" * 40)

    env = SessionEnvironment.build(
        {
            ra: RunInfo(Role.INIT, alice, bob),
            rb: RunInfo(Role.RESP, bob, alice),
            rc: RunInfo(Role.RESP, bob, eve),
        },
        test=ra,
    )

    for run in env:
        print(f"   {run}: {env.role_of(run)}")
    print(f"   Test run: {env.test} ({env.test_owner} with {env.test_partner})")
    print()

    # ==========================================================================
    # EXAMPLE 2: Step The Protocol By Hand
    # ==========================================================================
    print("2. Step The Protocol By Hand")
    print("-" * 40)

    machine = DHProtocolStateMachine(env=env)
    gx, gy = gexp(NonceF(ra)), gexp(NonceF(rb))

    for event in (
        Step1(ra, alice, bob),
        Learn(gx),
        Step2(rb, alice, bob, gx),
        Learn(gy),
        Step3(ra, alice, bob, gy),
        Step4(rb, alice, bob, gx),
    ):
        result = machine.process_event(event)
        status = "ok" if isinstance(result, Success) else f"disabled: {result.failure()}"
        print(f"   {event}: {status}")

    print(f"   Secret: {[str(k) for k in machine.state.secret]}")
    print(f"   Findings: {len(machine.findings)}")
    print()

    # ==========================================================================
    # EXAMPLE 3: Fence On Attacker Learning
    # ==========================================================================
    print("3. Fence On Attacker Learning")
    print("-" * 40)

    result = machine.process_event(Learn(NonceF(rb)))
    match = isinstance(result, Failure)
    print(f"   learn(N(rb)) after the key is secret rejected: {match}")
    print()

    # ==========================================================================
    # EXAMPLE 4: Bounded Exploration
    # ==========================================================================
    print("4. Bounded Exploration")
    print("-" * 40)

    config = ExplorerConfig(max_depth=10, leak_nonces=(rc,))
    report = Explorer(env, config).explore()
    print(f"   {report.summary()}")
    print()

    # ==========================================================================
    # EXAMPLE 5: Random Walks
    # ==========================================================================
    print("5. Random Walks")
    print("-" * 40)

    walks = Explorer(env, ExplorerConfig(walks=16, walk_depth=15, seed=42)).random_walks()
    print(f"   {walks.walks} walks: {walks.summary()}")
    print()

    # ==========================================================================
    # EXAMPLE 6: Findings And Replay
    # ==========================================================================
    print("6. Findings And Replay")
    print("-" * 40)

    checker = InvariantChecker.only("secrecy")
    checker.register("responder_unfinished", lambda e, s: not s.is_finished(rb))
    report = Explorer(env, ExplorerConfig(stop_at_first=True), checker).explore()

    for finding in report.findings:
        print(f"   {finding}")
        replayed = replay(env, finding.trace)
        print(f"   Replays to the same state: {replayed.unwrap() == finding.state}")
    print()

    # ==========================================================================
    # SUMMARY
    # ==========================================================================
    print("=" * 70)
    print("Summary")
    print("=" * 70)
    print()
    print("This example demonstrated:")
    print("  1. Declaring runs and letting the environment pair them")
    print("  2. Driving the guarded state machine event by event")
    print("  3. The learn fence protecting the declared secret")
    print("  4. Breadth-first exploration with leaked nonces")
    print("  5. Reproducible concurrent random walks")
    print("  6. Replaying the trace of a finding")
    print()
    print("For larger environments:")
    print("  - Raise max_states and watch report.bound_hit")
    print("  - Export findings with report.export_json()")
    print()


if __name__ == "__main__":
    main()
