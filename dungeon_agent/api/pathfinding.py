"""
Pathfinding over the revealed dungeon field.

Implements breadth-first search over the tile graph. Edges only exist
between placed tiles whose facing sides are open, so the graph grows as
tiles are placed and every search runs against the current snapshot.

Conventions:
- A start equal to the target yields a single-element path
- Exceeding the expansion cap is reported as "not found", never raised
- Returns PathResult with the reason for success/failure
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from .models import FieldState, Position

logger = logging.getLogger(__name__)

DEFAULT_ITERATION_CAP = 1000


class PathStopReason(Enum):
    """Reasons why pathfinding stopped or couldn't start."""
    SUCCESS = "success"
    ALREADY_AT_TARGET = "already_at_target"
    TARGET_NOT_PLACED = "target_not_placed"
    NO_PATH_EXISTS = "no_path_exists"
    ITERATION_CAP = "iteration_cap"


@dataclass
class PathResult:
    """Result of a pathfinding operation."""
    path: list[Position]
    reason: PathStopReason
    message: str = ""

    @property
    def success(self) -> bool:
        """Whether a route was found (including the trivial one)."""
        return self.reason in (PathStopReason.SUCCESS, PathStopReason.ALREADY_AT_TARGET)

    @property
    def next_step(self) -> Optional[Position]:
        """First cell to move to, if the route has one."""
        return self.path[1] if len(self.path) > 1 else None

    @property
    def steps(self) -> int:
        """Number of hops along the route."""
        return max(0, len(self.path) - 1)

    def __bool__(self) -> bool:
        """Allow `if result:` to check for success."""
        return self.success and len(self.path) > 0

    def __iter__(self):
        """Allow `for pos in result:` to iterate the path."""
        return iter(self.path)

    def __len__(self) -> int:
        """Return path length in cells."""
        return len(self.path)

    def __repr__(self) -> str:
        if self.success:
            return f"PathResult(path=[{len(self.path)} cells], reason=SUCCESS)"
        return f"PathResult(path=[], reason={self.reason.value}, message='{self.message}')"


NeighborFn = Callable[[Position], Iterable[Position]]


# =============================================================================
# Neighbour Functions
# =============================================================================


def grid_neighbors(placed: Iterable[Position]) -> NeighborFn:
    """
    Fallback transition function: 4 grid-adjacent cells that hold a tile.

    Used when open-side information is unavailable.
    """
    placed_set = set(placed)

    def neighbors(pos: Position) -> list[Position]:
        return [other for other in pos.adjacent() if other in placed_set]

    return neighbors


def field_neighbors(field_state: FieldState) -> NeighborFn:
    """Transition function honouring tile orientations where known."""
    if not field_state.orientations:
        return grid_neighbors(field_state.tiles.keys())
    return lambda pos: sorted(field_state.neighbors(pos))


# =============================================================================
# Search
# =============================================================================


class PathPlanner:
    """
    Bounded breadth-first search across the revealed tile graph.

    Example usage:
        planner = PathPlanner(iteration_cap=1000)

        result = planner.find_path(start, target, field_state)
        if result:
            next_cell = result.next_step

        # Avoid cells we are not willing to fight through
        result = planner.find_path(start, target, field_state, blocked={monster_pos})
    """

    def __init__(self, iteration_cap: int = DEFAULT_ITERATION_CAP):
        self.iteration_cap = iteration_cap

    def find_path(
        self,
        start: Position,
        target: Position,
        field_state: FieldState,
        blocked: Optional[set[Position]] = None,
    ) -> PathResult:
        """
        Find the shortest route from start to target.

        Args:
            start: Current cell
            target: Destination cell
            field_state: Revealed field used as the traversal graph
            blocked: Cells that may not be entered unless they are the target

        Returns:
            PathResult with the list of cells from start to target inclusive
        """
        if start == target:
            return PathResult([start], PathStopReason.ALREADY_AT_TARGET)
        if not field_state.has_tile(target):
            return PathResult([], PathStopReason.TARGET_NOT_PLACED, f"No tile at {target}")
        return self.search(start, target, field_neighbors(field_state), blocked)

    def search(
        self,
        start: Position,
        target: Position,
        neighbors: NeighborFn,
        blocked: Optional[set[Position]] = None,
    ) -> PathResult:
        """Run BFS with an arbitrary transition function."""
        if start == target:
            return PathResult([start], PathStopReason.ALREADY_AT_TARGET)

        blocked = blocked or set()
        visited = {start}
        queue: deque[list[Position]] = deque([[start]])
        expansions = 0

        while queue:
            if expansions >= self.iteration_cap:
                logger.debug(f"Path search {start} -> {target} hit iteration cap {self.iteration_cap}")
                return PathResult([], PathStopReason.ITERATION_CAP, f"Exceeded {self.iteration_cap} expansions")
            path = queue.popleft()
            expansions += 1

            for neighbor in neighbors(path[-1]):
                if neighbor in visited:
                    continue
                if neighbor in blocked and neighbor != target:
                    continue
                if neighbor == target:
                    return PathResult(path + [neighbor], PathStopReason.SUCCESS)
                visited.add(neighbor)
                queue.append(path + [neighbor])

        return PathResult([], PathStopReason.NO_PATH_EXISTS, f"{target} unreachable from {start}")
