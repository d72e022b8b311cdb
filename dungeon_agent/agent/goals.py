"""
Goal arbitration and goal-specific movement.

The GoalArbiter turns the current player and field into a single goal
for the turn, evaluated as an ordered cascade (first match wins):

    HEAL -> WIN_CONDITION -> COLLECT_TREASURE -> GET_STRONGER -> GET_KEY -> EXPLORE

A target pursued on earlier turns wins its category while it is still a
candidate. Otherwise ties go to the Manhattan-nearest candidate, then to
the lowest position, so the same snapshot always yields the same goal.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..api.models import ORIGIN, FieldState, ItemEntity, ItemType, PlayerState, Position
from ..api.pathfinding import PathResult
from ..config import StrategyProfile
from ..memory.turn_memory import TurnMemory
from .combat import CombatRiskEstimator, boss_within_reach
from .inventory import is_weapon_upgrade

logger = logging.getLogger(__name__)


class GoalType(Enum):
    """Strategic goals, value = priority (0 = most urgent)."""

    HEAL = 0
    WIN_CONDITION = 1
    COLLECT_TREASURE = 2
    GET_STRONGER = 3
    GET_KEY = 4
    EXPLORE = 5


@dataclass
class Goal:
    """The goal chosen for a turn."""

    type: GoalType
    target: Optional[Position] = None
    reason: str = ""

    @property
    def priority(self) -> int:
        return self.type.value

    @property
    def has_target(self) -> bool:
        return self.target is not None

    def to_dict(self) -> dict:
        return {
            "type": self.type.name,
            "target": str(self.target) if self.target else None,
            "reason": self.reason,
            "priority": self.priority,
        }


@dataclass
class ExplorationChoice:
    """A move (or tile placement) picked while exploring, with why it was picked."""

    position: Position
    reason: str
    place_tile: bool = False


def _nearest(origin: Position, candidates: dict[Position, ItemEntity], prefer_rank: bool = False) -> Optional[Position]:
    if not candidates:
        return None

    def key(pos: Position):
        rank = -candidates[pos].reward_rank if prefer_rank else 0
        return (pos.manhattan(origin), rank, pos)

    return min(candidates, key=key)


def _pursued(memory: TurnMemory, candidates: dict[Position, ItemEntity]) -> Optional[Position]:
    pursuit = memory.pursuit
    if pursuit is not None and pursuit.position in candidates:
        return pursuit.position
    return None


class GoalArbiter:
    """
    Ranks candidate goals into the single goal for a turn.

    Example usage:
        arbiter = GoalArbiter(CombatRiskEstimator(), get_strategy("balanced"))

        goal = arbiter.choose_goal(player, field_state, memory, position)
        if goal.has_target:
            route = planner.find_path(position, goal.target, field_state)
    """

    def __init__(
        self,
        estimator: CombatRiskEstimator,
        strategy: StrategyProfile,
        critical_hp: int = 1,
    ):
        self.estimator = estimator
        self.strategy = strategy
        self.critical_hp = critical_hp

    def choose_goal(
        self,
        player: PlayerState,
        field_state: FieldState,
        memory: TurnMemory,
        position: Optional[Position] = None,
    ) -> Goal:
        """
        Pick the goal for this turn.

        Args:
            player: Acting player
            field_state: Revealed field
            memory: The player's cross-turn memory
            position: Player position (looked up on the field when omitted)

        Returns:
            The first matching goal of the cascade
        """
        if position is None:
            position = field_state.player_positions.get(player.id, ORIGIN)

        def usable(pos: Position) -> bool:
            return not memory.is_unreachable(pos)

        # 1. Heal
        if player.hp <= self.critical_hp:
            target = self.nearest_healing(position, field_state, memory)
            return Goal(GoalType.HEAL, target, f"HP {player.hp} at or below {self.critical_hp}")

        strength = self.estimator.effective_strength(player, self.strategy)

        # 2. Win condition
        boss = field_state.boss()
        boss_defeatable = False
        if boss is not None:
            boss_pos, boss_item = boss
            boss_defeatable = boss_within_reach(boss_item, strength) or (
                memory.boss_pursuit and self.estimator.can_attempt(boss_item, player, self.strategy)
            )
            if boss_defeatable and usable(boss_pos):
                return Goal(
                    GoalType.WIN_CONDITION,
                    boss_pos,
                    f"Strength {strength} can take {boss_item.name} (HP {boss_item.guard_hp})",
                )

        inventory = player.inventory

        # 3. Treasure
        if inventory.has_key:
            chests = {
                pos: item for pos, item in field_state.chests().items()
                if usable(pos) and pos not in memory.collected_chests
            }
            target = _pursued(memory, chests) or _nearest(position, chests)
            if target is not None:
                return Goal(GoalType.COLLECT_TREASURE, target, f"Key in hand, chest at {target}")

        # 4. Stronger weapons, only needed while the boss is out of reach
        if boss is not None and not boss_defeatable:
            upgrades = {
                pos: item for pos, item in field_state.monsters().items()
                if usable(pos)
                and pos not in memory.unpickable
                and not item.is_boss
                and is_weapon_upgrade(inventory, item.type)
                and self.estimator.can_attempt(item, player, self.strategy)
            }
            target = _pursued(memory, upgrades) or _nearest(position, upgrades, prefer_rank=True)
            if target is not None:
                reward = upgrades[target].type
                return Goal(GoalType.GET_STRONGER, target, f"{reward.value} from {upgrades[target].name}")

        # 5. Key
        if not inventory.has_key:
            keys = {
                pos: item for pos, item in field_state.monsters().items()
                if usable(pos)
                and item.type == ItemType.KEY
                and self.estimator.can_attempt(item, player, self.strategy)
            }
            target = _pursued(memory, keys) or _nearest(position, keys)
            if target is not None:
                return Goal(GoalType.GET_KEY, target, f"Key guarded by {keys[target].name}")

        # 6. Explore
        return Goal(GoalType.EXPLORE, None, "Nothing better to do")

    def nearest_healing(self, position: Position, field_state: FieldState, memory: TurnMemory) -> Position:
        """Nearest reachable-looking healing cell, the origin as last resort."""
        cells = [pos for pos in field_state.healing_cells() if not memory.is_unreachable(pos)]
        if not cells:
            return ORIGIN
        return min(cells, key=lambda pos: (pos.manhattan(position), pos))

    # ==================== Movement ====================

    def step_towards(
        self,
        position: Position,
        target: Position,
        options: list[Position],
        route: Optional[PathResult] = None,
    ) -> Optional[Position]:
        """
        Move option that makes progress towards a target.

        Takes the target itself when it can be reached directly, else the
        furthest cell of the planned route that is a move option, else the
        option that is strictly closer by Manhattan distance.
        """
        if target in options:
            return target
        if route:
            for cell in reversed(route.path[1:]):
                if cell in options:
                    return cell
        current = position.manhattan(target)
        closer = [opt for opt in options if opt.manhattan(target) < current]
        if not closer:
            return None
        return min(closer, key=lambda pos: (pos.manhattan(target), pos))

    def choose_exploration_move(
        self,
        position: Position,
        options: list[Position],
        player: PlayerState,
        field_state: FieldState,
        memory: TurnMemory,
        placements: Optional[list[Position]] = None,
    ) -> Optional[ExplorationChoice]:
        """
        Frontier-seeking action for the EXPLORE goal.

        Keeps heading for a stored exploration target, then takes nearby
        opportunities (treasure, weapon upgrades, winnable fights, the
        boss, healing). After that it reveals new tiles next to the player
        when it can, then moves to cells next to unrevealed space, and
        finally to the farthest unexplored option, which becomes the new
        exploration target.

        Args:
            position: Player position
            options: Move options already filtered for this turn
            player: Acting player
            field_state: Revealed field
            memory: The player's cross-turn memory
            placements: Cells where a tile may be placed

        Returns:
            The chosen action, or None when nothing is usable
        """
        inventory = player.inventory
        placements = placements or []
        candidates = []
        for pos in options:
            if pos == position:
                continue
            item = field_state.item_at(pos)
            if item is not None and item.is_chest and not inventory.has_key:
                continue
            candidates.append(pos)

        def place(reason: str) -> Optional[ExplorationChoice]:
            cell = self.choose_placement(position, placements)
            return ExplorationChoice(cell, reason, place_tile=True) if cell is not None else None

        if not candidates:
            return place("No move options, revealing new tiles")

        target = memory.exploration_target
        if target is not None:
            if target == position:
                memory.note_explored(target)
            else:
                step = self.step_towards(position, target, candidates)
                if step is not None:
                    return ExplorationChoice(step, f"Continuing to exploration target {target}")

        fresh = [pos for pos in candidates if not memory.is_explored(pos)]
        if not fresh:
            if memory.exploration_exhausted():
                logger.debug("Exploration history exhausted, restarting")
                memory.restart_exploration()
            fresh = candidates

        def by_distance(cells: list[Position]) -> Position:
            return min(cells, key=lambda pos: (pos.manhattan(position), pos))

        def items_where(predicate) -> list[Position]:
            return [pos for pos in fresh if field_state.item_at(pos) is not None and predicate(field_state.item_at(pos))]

        treasure = items_where(
            lambda item: item.type is not None and item.type.is_treasure
            and not item.is_monster and (inventory.has_key or not item.locked)
        )
        if treasure:
            return ExplorationChoice(by_distance(treasure), "Treasure within reach")

        weapons = items_where(
            lambda item: not item.is_boss
            and is_weapon_upgrade(inventory, item.type)
            and self.estimator.can_attempt(item, player, self.strategy)
        )
        if weapons:
            return ExplorationChoice(by_distance(weapons), "Weapon upgrade within reach")

        battles = items_where(
            lambda item: item.is_monster and not item.is_boss
            and self.estimator.can_attempt(item, player, self.strategy)
        )
        if battles:
            return ExplorationChoice(by_distance(battles), "Winnable battle")

        boss = field_state.boss()
        if boss is not None and self.estimator.can_attempt(boss[1], player, self.strategy):
            near_boss = [pos for pos in fresh if pos.manhattan(boss[0]) == 1]
            if near_boss:
                return ExplorationChoice(by_distance(near_boss), f"Approaching {boss[1].name}")

        if player.needs_healing and player.hp <= self.strategy.healing_threshold:
            healing = [pos for pos in fresh if field_state.is_healing(pos)]
            if healing:
                return ExplorationChoice(by_distance(healing), "Healing cell")

        if any(cell.manhattan(position) == 1 for cell in placements):
            return place("Revealing unexplored space next to the player")

        frontier = [pos for pos in fresh if field_state.is_frontier(pos)]
        if frontier:
            choice = max(frontier, key=lambda pos: (pos.manhattan(position), _neg(pos)))
            return ExplorationChoice(choice, "Cell next to unrevealed space")

        farthest = max(fresh, key=lambda pos: (pos.manhattan(position), _neg(pos)))
        memory.exploration_target = farthest
        return ExplorationChoice(farthest, "Farthest unexplored cell")

    def choose_placement(
        self,
        position: Position,
        options: list[Position],
        target: Optional[Position] = None,
    ) -> Optional[Position]:
        """
        Where to place the next tile.

        Cells adjacent to the player are preferred. With a goal target the
        option nearest to it wins; without one, battle-seeking strategies
        expand outwards (last option) and the rest stay compact (first).
        """
        if not options:
            return None
        adjacent = [pos for pos in options if pos.manhattan(position) == 1]
        pool = adjacent or options
        if target is not None:
            return min(pool, key=lambda pos: (pos.manhattan(target), pos))
        return pool[-1] if self.strategy.prefer_battles else pool[0]


def _neg(pos: Position) -> tuple[int, int]:
    # max() with a negated position breaks ties towards the lowest position
    return (-pos.x, -pos.y)
