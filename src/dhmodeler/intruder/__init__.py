"""
DHModeler Intruder Module

Dolev-Yao attacker deduction: analz (decomposition), synth (composition)
and a memoising cache of synth(analz(ik)).
"""

from dhmodeler.intruder.closure import (
    DeductionCache,
    SynthClosure,
    analz,
    derivable,
    secrecy_holds,
    synth,
)

__all__ = [
    "analz",
    "synth",
    "derivable",
    "secrecy_holds",
    "SynthClosure",
    "DeductionCache",
]
