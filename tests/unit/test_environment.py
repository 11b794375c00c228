"""
Unit tests for dhmodeler.dh.environment module.

Tests deterministic frame construction, run pairing and contract checks.
"""

import pytest

from dhmodeler.core.exceptions import OracleContractError
from dhmodeler.core.terms import END, Agent, Exp, LtK, NonceF, Number, RunId, gexp
from dhmodeler.dh.environment import (
    SessionEnvironment,
    attacker_exponential,
    build_frame,
    pair_runs,
)
from dhmodeler.dh.types import ROLE_VARS, Role, RunInfo, Var


class TestBuildFrame:
    """Tests for frame construction."""

    def test_initiator_frame(self, alice, bob, ra, rb):
        peer = gexp(NonceF(rb))
        frame = build_frame(ra, RunInfo(Role.INIT, alice, bob), peer)
        assert set(frame) == ROLE_VARS[Role.INIT]
        assert frame[Var.NX] == NonceF(ra)
        assert frame[Var.GNX] == gexp(NonceF(ra))
        assert frame[Var.GNY] == peer
        assert frame[Var.SK] == Exp(peer, NonceF(ra))
        assert frame[Var.END] == END

    def test_responder_frame(self, alice, bob, ra, rb):
        peer = gexp(NonceF(ra))
        frame = build_frame(rb, RunInfo(Role.RESP, bob, alice), peer)
        assert set(frame) == ROLE_VARS[Role.RESP]
        assert frame[Var.NY] == NonceF(rb)
        assert frame[Var.GNY] == gexp(NonceF(rb))
        assert frame[Var.GNX] == peer

    def test_paired_frames_share_key(self, honest_env, ra, rb):
        assert honest_env.frame_of(ra)[Var.SK] == honest_env.frame_of(rb)[Var.SK]


class TestPairing:
    """Tests for default pairing of runs."""

    def test_pairs_mirrored_runs(self, honest_runs, ra, rb):
        assert pair_runs(honest_runs) == {ra: rb, rb: ra}

    def test_declaration_order(self, alice, bob):
        r1, r2, r3 = RunId("r1"), RunId("r2"), RunId("r3")
        runs = {
            r1: RunInfo(Role.INIT, alice, bob),
            r2: RunInfo(Role.RESP, bob, alice),
            r3: RunInfo(Role.RESP, bob, alice),
        }
        assert pair_runs(runs) == {r1: r2, r2: r1}

    def test_mismatched_participants_unpaired(self, alice, bob, eve, ra, rb):
        runs = {
            ra: RunInfo(Role.INIT, alice, bob),
            rb: RunInfo(Role.RESP, bob, eve),
        }
        assert pair_runs(runs) == {}


class TestSessionEnvironment:
    """Tests for the environment oracle."""

    def test_role_of(self, honest_env, alice, bob, ra):
        assert honest_env.role_of(ra) == RunInfo(Role.INIT, alice, bob)

    def test_test_participants(self, honest_env, alice, bob):
        assert honest_env.test_owner == alice
        assert honest_env.test_partner == bob

    def test_unpaired_run_accepts_attacker_exponential(self, crowded_env):
        rc = RunId("rc")
        assert crowded_env.frame_of(rc)[Var.GNX] == attacker_exponential(1)

    def test_runs_with(self, crowded_env, alice, bob):
        assert crowded_env.runs_with(Role.RESP, bob, alice) == [RunId("rb"), RunId("rc")]

    def test_agents(self, crowded_env, alice, bob, eve):
        assert set(crowded_env.agents()) == {alice, bob, eve}

    def test_iteration_in_declaration_order(self, crowded_env):
        assert [str(r) for r in crowded_env] == ["ra", "rb", "rc", "rd", "re"]
        assert len(crowded_env) == 5

    def test_explicit_peer_term(self, honest_runs, ra, rb):
        env = SessionEnvironment.build(honest_runs, test=ra, peers={ra: gexp(Number(9))})
        assert env.frame_of(ra)[Var.GNY] == gexp(Number(9))
        assert env.frame_of(rb)[Var.GNX] == gexp(NonceF(ra))

    def test_explicit_peer_run(self, alice, bob, ra, rb):
        rc = RunId("rc")
        runs = {
            ra: RunInfo(Role.INIT, alice, bob),
            rb: RunInfo(Role.RESP, bob, alice),
            rc: RunInfo(Role.RESP, bob, alice),
        }
        env = SessionEnvironment.build(runs, test=ra, peers={ra: rc})
        assert env.frame_of(ra)[Var.GNY] == gexp(NonceF(rc))

    def test_frames_read_only(self, honest_env, ra):
        with pytest.raises(TypeError):
            honest_env.frame_of(ra)[Var.SK] = END


class TestContract:
    """Tests for fail-fast contract validation."""

    def test_unknown_run(self, honest_env):
        with pytest.raises(OracleContractError):
            honest_env.role_of(RunId("nope"))
        with pytest.raises(OracleContractError):
            honest_env.frame_of(RunId("nope"))

    def test_unknown_test_run(self, honest_runs):
        with pytest.raises(OracleContractError):
            SessionEnvironment.build(honest_runs, test=RunId("nope"))

    def test_unknown_peer_run(self, honest_runs, ra):
        with pytest.raises(OracleContractError):
            SessionEnvironment.build(honest_runs, test=ra, peers={ra: RunId("nope")})

    def test_bad_peer_value(self, honest_runs, ra):
        with pytest.raises(OracleContractError):
            SessionEnvironment.build(honest_runs, test=ra, peers={ra: "g^x"})

    def _frames(self, env):
        return {run: dict(frame) for run, frame in env.frames.items()}

    def test_missing_frame(self, honest_env, ra, rb):
        frames = self._frames(honest_env)
        del frames[rb]
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_wrong_domain(self, honest_env, ra):
        frames = self._frames(honest_env)
        frames[ra][Var.NY] = NonceF(ra)
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_long_term_key_rejected(self, honest_env, ra, alice):
        frames = self._frames(honest_env)
        frames[ra][Var.GNY] = LtK(alice)
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_foreign_nonce_rejected(self, honest_env, ra, rb):
        frames = self._frames(honest_env)
        frames[ra][Var.NX] = NonceF(rb)
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_foreign_exponential_rejected(self, honest_env, ra, rb):
        frames = self._frames(honest_env)
        frames[rb][Var.GNY] = gexp(NonceF(ra))
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_inconsistent_key_rejected(self, honest_env, ra):
        frames = self._frames(honest_env)
        frames[ra][Var.SK] = gexp(Number(1))
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_end_sentinel_required(self, honest_env, ra):
        frames = self._frames(honest_env)
        frames[ra][Var.END] = Number(0)
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=honest_env.runs, frames=frames, test=ra)

    def test_run_info_required(self, honest_env, ra, alice):
        runs = dict(honest_env.runs)
        runs[ra] = (Role.INIT, alice, alice)
        with pytest.raises(OracleContractError):
            SessionEnvironment(runs=runs, frames=self._frames(honest_env), test=ra)
