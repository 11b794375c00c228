"""
DHModeler Checker Module

Bounded state-space exploration of the protocol model.
"""

from dhmodeler.checker.config import ExplorerConfig
from dhmodeler.checker.explorer import (
    ExplorationReport,
    Explorer,
    attacker_messages,
    replay,
)

__all__ = [
    "ExplorerConfig",
    "Explorer",
    "ExplorationReport",
    "attacker_messages",
    "replay",
]
