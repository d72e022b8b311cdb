"""Cross-turn memory kept per (game, player)."""

from .turn_memory import ProgressRecord, PursuitTarget, TurnMemory, TurnMemoryStore

__all__ = [
    "ProgressRecord",
    "PursuitTarget",
    "TurnMemory",
    "TurnMemoryStore",
]
