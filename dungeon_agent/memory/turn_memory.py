"""
Cross-turn memory for a single agent player.

Remembers which targets turned out to be unreachable, how close the
player got to each target over recent turns, what it is currently
pursuing, and where it has already explored. Everything here is derived
from the map, so a change in the placed-tile set invalidates most of it.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from ..api.models import Position
from ..config import AgentConfig

logger = logging.getLogger(__name__)


@dataclass
class ProgressRecord:
    """How the distance to one target evolved across turns."""

    distance: int
    stalled_turns: int = 0
    last_turn: int = -1
    recent: deque[Position] = field(default_factory=lambda: deque(maxlen=5))


@dataclass
class PursuitTarget:
    """A target the player keeps heading for across turns."""

    position: Position
    reason: str
    path: list[Position] = field(default_factory=list)

    def remaining_path(self, current: Position) -> list[Position]:
        """Cells still ahead of `current` on the stored path."""
        if current in self.path:
            return self.path[self.path.index(current) + 1:]
        return []


class TurnMemory:
    """
    Memory for one (game, player) pair, living for the whole game session.

    Example usage:
        memory = TurnMemory()

        # At the start of every turn
        memory.begin_turn(turn_number=7, revision=field_state.revision())

        # Once per turn for the goal target
        if memory.record_progress(target, distance, turn_number=7):
            ...  # target just became unreachable

        memory.set_pursuit(target, "collect chest", path)
    """

    def __init__(
        self,
        stall_threshold: int = 2,
        reset_interval: int = 5,
        recent_positions: int = 5,
        exploration_history_limit: int = 10,
    ):
        """
        Initialize turn memory.

        Args:
            stall_threshold: Turns without getting closer before a target is unreachable
            reset_interval: Every N-th turn all entries are cleared
            recent_positions: Positions kept per progress record
            exploration_history_limit: Explored cells kept before the history restarts
        """
        self.stall_threshold = stall_threshold
        self.reset_interval = reset_interval
        self.recent_positions = recent_positions
        self.exploration_history_limit = exploration_history_limit

        self.unreachable: set[Position] = set()
        self.progress: dict[Position, ProgressRecord] = {}
        self.pursuit: Optional[PursuitTarget] = None
        self.exploration_target: Optional[Position] = None
        self.exploration_history: set[Position] = set()
        self.unpickable: set[Position] = set()
        self.collected_chests: set[Position] = set()
        self.boss_pursuit: bool = False
        self.revision: Optional[str] = None

        self.turns_seen: int = 0
        self._last_reset_turn: Optional[int] = None

    @classmethod
    def from_config(cls, config: AgentConfig) -> "TurnMemory":
        return cls(
            stall_threshold=config.stall_turns_threshold,
            reset_interval=config.reset_interval_turns,
            recent_positions=config.recent_positions,
            exploration_history_limit=config.exploration_history_limit,
        )

    # ==================== Turn Lifecycle ====================

    def begin_turn(self, turn_number: int, revision: str) -> list[str]:
        """
        Apply invalidation rules at the start of a turn.

        Args:
            turn_number: Game turn number
            revision: Fingerprint of the current placed-tile set

        Returns:
            Names of the invalidations that fired ("map_changed", "periodic_reset")
        """
        fired = []
        self.turns_seen += 1

        if self.revision is not None and revision != self.revision:
            self.invalidate_map()
            fired.append("map_changed")
        self.revision = revision

        if (
            self.reset_interval > 0
            and turn_number > 0
            and turn_number % self.reset_interval == 0
            and self._last_reset_turn != turn_number
        ):
            self.reset()
            self._last_reset_turn = turn_number
            fired.append("periodic_reset")

        if fired:
            logger.debug(f"Turn {turn_number}: memory invalidated ({', '.join(fired)})")
        return fired

    def invalidate_map(self) -> None:
        """New tiles may open new routes: forget route-derived knowledge."""
        self.unreachable.clear()
        self.progress.clear()
        self.pursuit = None
        self.exploration_target = None
        self.exploration_history.clear()

    def reset(self) -> None:
        """Clear every entry except the map fingerprint."""
        self.invalidate_map()
        self.unpickable.clear()
        self.collected_chests.clear()
        self.boss_pursuit = False

    # ==================== Progress Tracking ====================

    def record_progress(
        self,
        target: Position,
        distance: int,
        turn_number: int,
        position: Optional[Position] = None,
    ) -> bool:
        """
        Record this turn's distance to a target.

        Only the first observation per turn counts. A turn in which the
        distance did not decrease adds to the stall count; any decrease
        resets it.

        Returns:
            True if the target has just been marked unreachable
        """
        record = self.progress.get(target)
        if record is None:
            record = ProgressRecord(distance=distance, last_turn=turn_number,
                                    recent=deque(maxlen=self.recent_positions))
            if position is not None:
                record.recent.append(position)
            self.progress[target] = record
            return False

        if record.last_turn == turn_number:
            return False

        if distance >= record.distance:
            record.stalled_turns += 1
        else:
            record.stalled_turns = 0
        record.distance = distance
        record.last_turn = turn_number
        if position is not None:
            record.recent.append(position)

        if record.stalled_turns >= self.stall_threshold:
            logger.info(f"Target {target} stalled for {record.stalled_turns} turns, marking unreachable")
            self.mark_unreachable(target)
            return True
        return False

    def stalled_turns(self, target: Position) -> int:
        record = self.progress.get(target)
        return record.stalled_turns if record else 0

    def mark_unreachable(self, target: Position) -> None:
        self.unreachable.add(target)
        self.progress.pop(target, None)
        if self.pursuit and self.pursuit.position == target:
            self.pursuit = None
        if self.exploration_target == target:
            self.exploration_target = None

    def is_unreachable(self, target: Position) -> bool:
        return target in self.unreachable

    # ==================== Pursuit ====================

    def set_pursuit(self, target: Position, reason: str, path: Optional[list[Position]] = None) -> None:
        self.pursuit = PursuitTarget(target, reason, list(path or []))

    def clear_pursuit(self, target: Optional[Position] = None) -> None:
        """Drop the pursuit target (only if it matches `target`, when given)."""
        if self.pursuit is None:
            return
        if target is None or self.pursuit.position == target:
            self.pursuit = None

    # ==================== Exploration ====================

    def note_explored(self, pos: Position) -> None:
        self.exploration_history.add(pos)
        if self.exploration_target == pos:
            self.exploration_target = None

    def is_explored(self, pos: Position) -> bool:
        return pos in self.exploration_history

    def exploration_exhausted(self) -> bool:
        return len(self.exploration_history) >= self.exploration_history_limit

    def restart_exploration(self) -> None:
        """Forget explored cells so a fully explored map can be revisited."""
        self.exploration_history.clear()
        self.exploration_target = None

    # ==================== Items ====================

    def mark_unpickable(self, pos: Position) -> None:
        self.unpickable.add(pos)

    def mark_chest_collected(self, pos: Position) -> None:
        self.collected_chests.add(pos)
        self.clear_pursuit(pos)

    def summary(self) -> dict:
        """Compact view for logging and the CLI."""
        return {
            "unreachable": sorted(str(pos) for pos in self.unreachable),
            "pursuit": str(self.pursuit.position) if self.pursuit else None,
            "exploration_target": str(self.exploration_target) if self.exploration_target else None,
            "explored": len(self.exploration_history),
            "unpickable": sorted(str(pos) for pos in self.unpickable),
            "boss_pursuit": self.boss_pursuit,
            "turns_seen": self.turns_seen,
        }


class TurnMemoryStore:
    """
    TurnMemory instances keyed by (game, player).

    Owned by the caller that runs turns. No internal locking: at most one
    turn per (game, player) may be in flight at a time.
    """

    def __init__(self, config: Optional[AgentConfig] = None):
        self.config = config or AgentConfig()
        self._memories: dict[tuple[str, str], TurnMemory] = {}

    def get(self, game_id: str, player_id: str) -> TurnMemory:
        """Get the memory for a player, creating it on first use."""
        key = (game_id, player_id)
        if key not in self._memories:
            self._memories[key] = TurnMemory.from_config(self.config)
        return self._memories[key]

    def drop(self, game_id: str, player_id: str) -> None:
        self._memories.pop((game_id, player_id), None)

    def clear_game(self, game_id: str) -> int:
        """Forget every player of a game. Returns how many entries were removed."""
        keys = [key for key in self._memories if key[0] == game_id]
        for key in keys:
            del self._memories[key]
        return len(keys)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._memories

    def __len__(self) -> int:
        return len(self._memories)
