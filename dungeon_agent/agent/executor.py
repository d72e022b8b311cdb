"""
Turn execution state machine.

Drives one game turn for an agent player from start to end-turn:

    1. Preflight        finished game, defeated or stunned player -> end turn
    2. Self-rescue      no tile under the player -> place one there
    3. Standing item    claim a worthwhile item on the current cell
    4. Critical HP      head for a healing cell
    5. Goal pursuit     ask the GoalArbiter, move along a route or place tiles
    6. Outcomes         item and battle events after every move
    7. Termination      budgets, no options left, or any battle

Steps 4-6 run as a bounded loop. Every budget is a hard stop, and every
turn finishes with exactly one end-turn call, even after an internal
fault, which is captured in the action log instead of raised.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from ..api.client import ActionExecutor, item_payload
from ..api.models import (
    BOSS_NAME,
    ORIGIN,
    ActionResult,
    BattleInfo,
    BattleResult,
    FieldState,
    InventoryItem,
    ItemEntity,
    ItemInfo,
    ItemType,
    Position,
    required_open_side,
)
from ..api.pathfinding import PathPlanner, PathResult, PathStopReason
from ..api.snapshot import GameView, WorldSnapshot
from ..config import AgentConfig, StrategyProfile, get_strategy
from ..memory.turn_memory import TurnMemory, TurnMemoryStore
from .combat import CombatRiskEstimator, select_consumables
from .goals import Goal, GoalArbiter, GoalType
from .inventory import PickupDecision, find_replacement, should_pickup
from .logging import ActionLogger, DecisionLogger, GameStateLogger

logger = logging.getLogger(__name__)

# Log slots kept free for the fault entry and the final end-turn entry
RESERVED_LOG_SLOTS = 2


@dataclass
class ActionEntry:
    """One structured entry of a turn's action log."""

    type: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().strftime("%H:%M:%S.%f")[:-3])

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "timestamp": self.timestamp, **self.details}


class ActionLog:
    """
    Bounded per-turn action log.

    Regular entries may use `capacity - 2` slots. One slot is kept for an
    internal-fault entry and the last one for the end-turn entry, so the
    log never exceeds `capacity`.
    """

    def __init__(self, capacity: int = 30):
        self.capacity = capacity
        self.entries: list[ActionEntry] = []
        self.dropped = 0

    @property
    def regular_limit(self) -> int:
        return max(0, self.capacity - RESERVED_LOG_SLOTS)

    def remaining(self) -> int:
        return self.regular_limit - len(self.entries)

    @property
    def full(self) -> bool:
        return self.remaining() <= 0

    def record(self, entry_type: str, **details: Any) -> bool:
        return self._append(entry_type, details, self.regular_limit)

    def record_fault(self, entry_type: str, **details: Any) -> bool:
        return self._append(entry_type, details, self.capacity - 1)

    def record_final(self, entry_type: str, **details: Any) -> bool:
        return self._append(entry_type, details, self.capacity)

    def _append(self, entry_type: str, details: dict[str, Any], limit: int) -> bool:
        if len(self.entries) >= limit:
            self.dropped += 1
            logger.debug(f"Action log full, dropped '{entry_type}'")
            return False
        self.entries.append(ActionEntry(entry_type, details))
        return True

    def types(self) -> list[str]:
        return [entry.type for entry in self.entries]

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class TurnContext:
    """Counters and scratch state for the turn being executed."""

    game_id: str
    player_id: str
    log: ActionLog
    turn_id: Optional[str] = None
    turn_number: int = 0
    moves: int = 0
    calls: int = 0
    chain_length: int = 0
    longest_chain: int = 0
    visited: set[Position] = field(default_factory=set)
    tracked_targets: set[Position] = field(default_factory=set)
    goal: Optional[Goal] = None
    ended: bool = False

    def can_act(self, entries: int = 1) -> bool:
        """Whether `entries` more regular log entries fit in the budget."""
        return self.log.remaining() >= entries


class Outcome(Enum):
    """What the turn does after a sub-action."""

    CONTINUE = "continue"
    END = "end"


class StepKind(Enum):
    MOVE = "move"
    PLACE_TILE = "place_tile"


@dataclass
class Step:
    """The next sub-action chosen by goal pursuit."""

    kind: StepKind
    position: Position
    target: Optional[Position] = None
    reason: str = ""


@dataclass
class TurnResult:
    """
    Outcome of one turn: the action log, or the log plus the fault that cut it short.

    `ended` tells whether an end-turn call was issued.
    """

    game_id: str
    player_id: str
    turn_id: Optional[str]
    actions: list[ActionEntry]
    moves: int = 0
    longest_chain: int = 0
    ended: bool = False
    fault: Optional[str] = None
    goal: Optional[Goal] = None

    @property
    def ok(self) -> bool:
        return self.fault is None

    def action_types(self) -> list[str]:
        return [entry.type for entry in self.actions]

    def to_dict(self) -> dict[str, Any]:
        return {
            "gameId": self.game_id,
            "playerId": self.player_id,
            "turnId": self.turn_id,
            "moves": self.moves,
            "ended": self.ended,
            "fault": self.fault,
            "goal": self.goal.to_dict() if self.goal else None,
            "actions": [entry.to_dict() for entry in self.actions],
        }


class TurnExecutor:
    """
    Runs complete turns for agent players.

    Example usage:
        executor = TurnExecutor(
            snapshot=HttpWorldSnapshot(base_url),
            actions=GameApiClient(base_url),
            memory_store=TurnMemoryStore(config.agent),
            config=config.agent,
        )

        result = executor.execute_turn(game_id, player_id)
        for entry in result.actions:
            print(entry.type, entry.details)
    """

    def __init__(
        self,
        snapshot: WorldSnapshot,
        actions: ActionExecutor,
        memory_store: TurnMemoryStore,
        config: Optional[AgentConfig] = None,
        strategy: Optional[StrategyProfile] = None,
        estimator: Optional[CombatRiskEstimator] = None,
        planner: Optional[PathPlanner] = None,
        log_actions: bool = True,
    ):
        """
        Initialize the executor.

        Args:
            snapshot: Read-only game state provider
            actions: Mutating game actions
            memory_store: Cross-turn memory, keyed by (game, player)
            config: Budgets and planning settings
            strategy: Strategy profile (defaults to config.strategy)
            estimator: Combat risk estimator
            planner: Path planner
            log_actions: Whether to log every server call
        """
        self.snapshot = snapshot
        self.actions = actions
        self.memory_store = memory_store
        self.config = config or AgentConfig()
        self.strategy = strategy or get_strategy(self.config.strategy)
        self.estimator = estimator or CombatRiskEstimator()
        self.planner = planner or PathPlanner(self.config.path_iteration_cap)
        self.arbiter = GoalArbiter(self.estimator, self.strategy, self.config.critical_hp)

        self.decision_logger = DecisionLogger()
        self.action_logger = ActionLogger(log_actions)
        self.state_logger = GameStateLogger()

    def execute_turn(self, game_id: str, player_id: str) -> TurnResult:
        """
        Play one full turn.

        Never raises: internal faults are recorded as an `ai_error` entry
        and reported through `TurnResult.fault`.
        """
        ctx = TurnContext(game_id, player_id, ActionLog(self.config.max_actions_per_turn))
        fault = None
        try:
            self._run(ctx)
        except Exception as e:
            logger.exception(f"Turn for player {player_id} in game {game_id} failed: {e}")
            fault = f"{type(e).__name__}: {e}"
            ctx.log.record_fault("ai_error", error=fault)

        fault = self._end_turn(ctx) or fault

        return TurnResult(
            game_id=game_id,
            player_id=player_id,
            turn_id=ctx.turn_id,
            actions=list(ctx.log.entries),
            moves=ctx.moves,
            longest_chain=ctx.longest_chain,
            ended=ctx.ended,
            fault=fault,
            goal=ctx.goal,
        )

    # ==================== Turn Phases ====================

    def _run(self, ctx: TurnContext) -> None:
        view = self.snapshot.load(ctx.game_id, ctx.player_id)
        ctx.turn_id = view.game.current_turn_id
        ctx.turn_number = view.game.turn_number

        memory = self.memory_store.get(ctx.game_id, ctx.player_id)
        revision = view.field.revision()
        for invalidation in memory.begin_turn(ctx.turn_number, revision):
            ctx.log.record("memory_reset", reason=invalidation)

        player = view.player
        position = view.position
        self.state_logger.log_state(ctx.turn_number, player.hp, player.max_hp,
                                    str(position) if position else None, revision)

        # 1. Preflight
        skip_reason = self._preflight(view)
        if skip_reason:
            ctx.log.record("turn_skipped", reason=skip_reason)
            return

        # 2. Self-rescue
        if position is None or not view.field.has_tile(position):
            self._self_rescue(ctx, view, memory)
            return

        ctx.visited.add(position)
        memory.note_explored(position)

        if self._should_rest(view, position):
            ctx.log.record("healing_stop", position=str(position), hp=player.hp)
            return

        # 3. Standing item
        if self._claim_standing_item(ctx, view, memory, position) is Outcome.END:
            return

        # 4-7. Goal pursuit loop
        self._pursue(ctx, view, memory)

    def _preflight(self, view: GameView) -> Optional[str]:
        if view.game.is_finished:
            return "game_finished"
        if view.player.defeated:
            return "player_defeated"
        if view.player.is_stunned:
            return "player_stunned"
        return None

    def _should_rest(self, view: GameView, position: Position) -> bool:
        """Ending the turn on a healing cell restores HP."""
        return view.player.needs_healing and view.field.is_healing(position)

    def _self_rescue(self, ctx: TurnContext, view: GameView, memory: TurnMemory) -> None:
        position = view.position
        options = [] if view.deck.is_empty else view.available.place_tile
        if position is not None and position in options:
            placement = position
        else:
            placement = self.arbiter.choose_placement(position or ORIGIN, options)

        if placement is None:
            ctx.log.record("turn_skipped", reason="no_tile_under_player")
            return

        ctx.log.record("self_rescue", position=str(position) if position else None, placement=str(placement))
        self._place_tile_chain(ctx, view, memory, position or placement, placement, None)

    def _claim_standing_item(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                             position: Position) -> Outcome:
        item = view.field.item_at(position)
        if item is None or item.is_monster:
            return Outcome.CONTINUE
        if position in memory.unpickable or position in memory.collected_chests:
            return Outcome.CONTINUE
        if item.is_chest and not view.player.inventory.has_key:
            return Outcome.CONTINUE

        decision = should_pickup(item, view.player.inventory)
        if not decision:
            ctx.log.record("item_skipped", position=str(position), reason=decision.reason)
            return Outcome.CONTINUE
        return self._pickup(ctx, memory, position, item, decision)

    def _pursue(self, ctx: TurnContext, view: GameView, memory: TurnMemory) -> None:
        """Bounded loop over goal-pursuit sub-actions."""
        calls_seen = ctx.calls

        for _ in range(self.config.max_actions_per_turn):
            if ctx.moves >= self.config.max_moves_per_turn or not ctx.can_act():
                return

            if ctx.calls != calls_seen:
                view = self.snapshot.load(ctx.game_id, ctx.player_id)
                calls_seen = ctx.calls
                if self._preflight(view):
                    return

            position = view.position
            if position is None:
                return
            ctx.visited.add(position)

            step = self._plan_step(ctx, view, memory, position)
            if step is None:
                ctx.log.record("no_action", position=str(position))
                return

            if step.kind is StepKind.MOVE:
                outcome = self._move(ctx, view, memory, position, step.position)
            else:
                outcome = self._place_tile_chain(ctx, view, memory, position, step.position, step.target)

            if outcome is Outcome.END:
                return

    # ==================== Planning ====================

    def _plan_step(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                   position: Position) -> Optional[Step]:
        """
        Choose the next move or tile placement.

        A goal whose target stalls is marked unreachable and the cascade is
        asked again, at most once per known target.
        """
        field_state = view.field
        player = view.player
        blocked = self._blocked_cells(view)
        risky = self._risky_cells(view)
        options = [
            pos for pos in view.available.move_to
            if pos != position and pos not in ctx.visited and pos not in risky
        ]
        placements = [] if view.deck.is_empty else list(view.available.place_tile)

        for _ in range(len(field_state.items) + 2):
            goal = self.arbiter.choose_goal(player, field_state, memory, position)
            self._note_goal(ctx, goal)

            # 4. Critical HP escape: move only, never gamble on new tiles
            if goal.type is GoalType.HEAL:
                route = self.planner.find_path(position, goal.target, field_state, blocked=blocked)
                step = self.arbiter.step_towards(position, goal.target, options, route)
                if step is None:
                    return None
                return Step(StepKind.MOVE, step, goal.target, goal.reason)

            if not goal.has_target:
                return self._explore_step(view, memory, position, options, placements)

            target = goal.target
            if goal.type is GoalType.WIN_CONDITION:
                memory.boss_pursuit = True

            if target not in ctx.tracked_targets:
                ctx.tracked_targets.add(target)
                if memory.record_progress(target, position.manhattan(target), ctx.turn_number, position):
                    ctx.log.record("target_unreachable", target=str(target), goal=goal.type.name)
                    placement = self.arbiter.choose_placement(position, placements, target)
                    if placement is not None:
                        return Step(StepKind.PLACE_TILE, placement, None, "Target stalled, extending the map")
                    continue

            route = self._route(memory, position, target, field_state, blocked)
            memory.set_pursuit(target, goal.reason, route.path)

            step = self.arbiter.step_towards(position, target, options, route)
            if step is not None:
                return Step(StepKind.MOVE, step, target, goal.reason)

            placement = self.arbiter.choose_placement(position, placements, target)
            if placement is not None:
                return Step(StepKind.PLACE_TILE, placement, target, f"No route to {target}")

            return self._explore_step(view, memory, position, options, placements)

        return None

    def _route(self, memory: TurnMemory, position: Position, target: Position,
               field_state: FieldState, blocked: set[Position]) -> PathResult:
        """Plan a route, falling back to what is left of the stored pursuit path."""
        route = self.planner.find_path(position, target, field_state, blocked=blocked)
        if route or memory.pursuit is None or memory.pursuit.position != target:
            return route
        remaining = memory.pursuit.remaining_path(position)
        if not remaining:
            return route
        logger.debug(f"No fresh route to {target}, following the stored pursuit path")
        return PathResult([position] + remaining, PathStopReason.SUCCESS, "stored pursuit path")

    def _explore_step(self, view: GameView, memory: TurnMemory, position: Position,
                      options: list[Position], placements: list[Position]) -> Optional[Step]:
        choice = self.arbiter.choose_exploration_move(
            position, options, view.player, view.field, memory, placements
        )
        if choice is None:
            return None
        kind = StepKind.PLACE_TILE if choice.place_tile else StepKind.MOVE
        return Step(kind, choice.position, None, choice.reason)

    def _note_goal(self, ctx: TurnContext, goal: Goal) -> None:
        if ctx.goal is not None and ctx.goal.type == goal.type and ctx.goal.target == goal.target:
            return
        ctx.goal = goal
        ctx.log.record("goal", **goal.to_dict())
        self.decision_logger.log_goal(goal.type.name, str(goal.target) if goal.target else None, goal.reason)

    def _risky_cells(self, view: GameView) -> set[Position]:
        """Monster cells the strategy is not willing to fight."""
        return {
            pos for pos, item in view.field.monsters().items()
            if not self.estimator.can_attempt(item, view.player, self.strategy)
        }

    def _blocked_cells(self, view: GameView) -> set[Position]:
        """Cells a route may end at but not pass through: every fight ends the turn."""
        return set(view.field.monsters())

    # ==================== Actions ====================

    def _call(self, ctx: TurnContext, entry_type: str, fn: Callable[..., ActionResult],
              *args: Any, details: Optional[dict[str, Any]] = None, **kwargs: Any) -> ActionResult:
        """Issue one server call and log it."""
        result = fn(*args, **kwargs)
        ctx.calls += 1
        entry = dict(details or {})
        entry.update(result.summary())
        ctx.log.record(entry_type, **entry)
        self.action_logger.log_action(entry_type, result.success, result.status_code, details)
        return result

    def _move(self, ctx: TurnContext, view: GameView, memory: TurnMemory, origin: Position,
              destination: Position, tile_placement: bool = False) -> Outcome:
        if ctx.moves >= self.config.max_moves_per_turn or not ctx.can_act():
            return Outcome.END

        result = self._call(
            ctx, "move", self.actions.move_player,
            ctx.game_id, ctx.player_id, ctx.turn_id, origin, destination,
            is_tile_placement_move=tile_placement,
            details={"from": str(origin), "to": str(destination), "tilePlacement": tile_placement},
        )
        if not result.success:
            return Outcome.END

        ctx.moves += 1
        ctx.visited.add(destination)
        memory.note_explored(destination)
        return self._after_move(ctx, view, memory, destination, result)

    def _after_move(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                    destination: Position, result: ActionResult) -> Outcome:
        """6. Outcome handling for a successful move."""
        battle = result.battle_info
        if battle is not None:
            self._handle_battle(ctx, view, memory, destination, battle)
            return Outcome.END

        info = result.item_info
        if info is not None:
            if self._handle_found_item(ctx, view, memory, destination, info) is Outcome.END:
                return Outcome.END
        else:
            # A chest the server did not report on arrival
            item = view.field.item_at(destination)
            if (
                item is not None
                and item.is_chest
                and view.player.inventory.has_key
                and destination not in memory.collected_chests
            ):
                decision = PickupDecision(True, "Chest on arrival")
                if self._pickup(ctx, memory, destination, item, decision) is Outcome.END:
                    return Outcome.END

        if self._should_rest(view, destination):
            ctx.log.record("healing_stop", position=str(destination), hp=view.player.hp)
            return Outcome.END
        return Outcome.CONTINUE

    def _place_tile_chain(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                          start: Position, placement: Position,
                          target: Optional[Position]) -> Outcome:
        """
        Place a tile, step onto it, and keep extending while corridors are placed.

        A room tile ends the chain. At most `max_tiles_per_sequence` tiles
        are placed per chain.
        """
        current = start
        next_place: Optional[Position] = placement
        ctx.chain_length = 0

        while next_place is not None:
            if ctx.chain_length >= self.config.max_tiles_per_sequence:
                ctx.log.record("tile_sequence_limit", length=ctx.chain_length)
                return Outcome.END
            # pick + place + move
            if ctx.moves >= self.config.max_moves_per_turn or not ctx.can_act(3):
                return Outcome.END

            side = required_open_side(current, next_place)
            tile_id = str(uuid.uuid4())
            pick = self._call(
                ctx, "pick_tile", self.actions.pick_tile,
                ctx.game_id, tile_id, ctx.player_id, ctx.turn_id, side, next_place,
                details={"position": str(next_place), "requiredOpenSide": side.name},
            )
            if not pick.success:
                return Outcome.END

            placed = self._call(
                ctx, "place_tile", self.actions.place_tile,
                ctx.game_id, tile_id, ctx.player_id, ctx.turn_id, next_place,
                details={"position": str(next_place)},
            )
            if not placed.success:
                return Outcome.END

            ctx.chain_length += 1
            ctx.longest_chain = max(ctx.longest_chain, ctx.chain_length)

            if next_place == current:
                # Placed under the player, nothing to step onto
                return Outcome.CONTINUE

            outcome = self._move(ctx, view, memory, current, next_place, tile_placement=True)
            if outcome is Outcome.END:
                return Outcome.END
            if placed.is_room:
                return Outcome.CONTINUE

            # Corridor: keep extending from the new cell
            view = self.snapshot.load(ctx.game_id, ctx.player_id)
            current = next_place
            options = [] if view.deck.is_empty else [
                pos for pos in view.available.place_tile if pos.manhattan(current) == 1
            ]
            next_place = self.arbiter.choose_placement(current, options, target)
            if next_place is None:
                ctx.log.record("corridor_dead_end", position=str(current))

        return Outcome.CONTINUE

    # ==================== Items ====================

    def _handle_found_item(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                           position: Position, info: ItemInfo) -> Outcome:
        item = info.item
        ctx.log.record("item_found", position=str(position), item=item.name,
                       type=item.type.value if item.type else None)

        if position in memory.unpickable:
            return Outcome.CONTINUE
        inventory = view.player.inventory
        if info.requires_key and not (info.has_key or inventory.has_key):
            ctx.log.record("item_skipped", position=str(position), reason="Chest needs a key")
            return Outcome.CONTINUE

        decision = should_pickup(item, inventory)
        if not decision:
            if item.category is not None and inventory.is_full(item.category):
                memory.mark_unpickable(position)
            ctx.log.record("item_skipped", position=str(position), reason=decision.reason)
            return Outcome.CONTINUE
        return self._pickup(ctx, memory, position, item, decision)

    def _pickup(self, ctx: TurnContext, memory: TurnMemory, position: Position,
                item: ItemEntity, decision: PickupDecision) -> Outcome:
        """
        Claim an item. A successful claim ends the turn.

        An inventory-full answer is resolved by an explicit replace call
        when the policy named an item to evict, otherwise the cell is
        remembered as unpickable.
        """
        if not ctx.can_act():
            return Outcome.END
        result = self._call(
            ctx, "pick_item", self.actions.pick_item,
            ctx.game_id, ctx.player_id, ctx.turn_id, position,
            details={"position": str(position), "item": item.name, "reason": decision.reason},
        )

        if result.inventory_full:
            if decision.replace is not None and ctx.can_act():
                replaced = self._call(
                    ctx, "inventory_replace", self.actions.inventory_action,
                    ctx.game_id, ctx.player_id, ctx.turn_id, "replace",
                    item=_entity_payload(item, result), replace_item_id=decision.replace.item_id,
                    details={"evict": decision.replace.item_id, "evictType": _type_name(decision.replace)},
                )
                if replaced.success:
                    memory.clear_pursuit(position)
                    return Outcome.END
            memory.mark_unpickable(position)
            ctx.log.record("item_unpickable", position=str(position), reason="inventory_full")
            return Outcome.CONTINUE

        if result.flag("missingKey"):
            ctx.log.record("chest_pickup_failed", position=str(position), reason="missing_key")
            return Outcome.CONTINUE

        if not result.success:
            return Outcome.END

        if item.is_chest or (item.type is not None and item.type.is_treasure):
            memory.mark_chest_collected(position)
            ctx.log.record("treasure_collected", position=str(position),
                           chestType=result.response.get("chestType"))
        memory.clear_pursuit(position)
        return Outcome.END

    # ==================== Battles ====================

    def _handle_battle(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                       destination: Position, battle: BattleInfo) -> None:
        """Every battle ends the turn; only the follow-up calls differ."""
        position = battle.position or destination
        monster = view.field.item_at(position)
        is_boss = (monster is not None and monster.is_boss) or battle.monster_type == BOSS_NAME

        ctx.log.record(
            "battle",
            result=battle.result.value,
            monster=battle.monster_type,
            monsterHP=battle.monster_hp,
            dice=battle.dice_total,
            damage=battle.total_damage,
            position=str(position),
        )
        self.decision_logger.log_decision(
            f"battle {battle.result.value}",
            f"{battle.monster_type} HP {battle.monster_hp} vs damage {battle.total_damage}",
        )

        if battle.result is BattleResult.WIN:
            memory.clear_pursuit(position)
            if is_boss:
                memory.boss_pursuit = False
            self._collect_reward(ctx, view, memory, position, battle)
            return

        if battle.result in (BattleResult.DRAW, BattleResult.LOSE):
            self._finalize_battle(ctx, view, memory, position, battle, is_boss)

    def _collect_reward(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                        position: Position, battle: BattleInfo) -> None:
        inventory = view.player.inventory
        reward = battle.reward
        reward_type = reward.type if reward else None

        if reward_type == ItemType.KEY and inventory.has_key:
            ctx.log.record("reward_skipped", position=str(position), reason="Already holding a key")
            return
        if not ctx.can_act():
            return

        result = self._call(
            ctx, "pick_item", self.actions.pick_item,
            ctx.game_id, ctx.player_id, ctx.turn_id, position,
            details={"position": str(position), "reward": reward_type.value if reward_type else None},
        )
        if not result.inventory_full:
            if result.success and reward_type is not None and reward_type.is_treasure:
                memory.mark_chest_collected(position)
            return

        replace = find_replacement(inventory, reward_type)
        if replace is None:
            memory.mark_unpickable(position)
            ctx.log.record("reward_skipped", position=str(position), reason="No weaker item to replace")
            return
        if not ctx.can_act():
            return

        if result.success:
            # Picked up into a pending slot: the server asks which item to drop
            self._call(
                ctx, "inventory_replace", self.actions.inventory_action,
                ctx.game_id, ctx.player_id, ctx.turn_id, "replace",
                item=item_payload(reward) if reward else None, replace_item_id=replace.item_id,
                details={"evict": replace.item_id, "evictType": _type_name(replace)},
            )
        else:
            self._call(
                ctx, "pick_item", self.actions.pick_item,
                ctx.game_id, ctx.player_id, ctx.turn_id, position,
                replace_item_id=replace.item_id,
                details={"position": str(position), "evict": replace.item_id, "evictType": _type_name(replace)},
            )

    def _finalize_battle(self, ctx: TurnContext, view: GameView, memory: TurnMemory,
                         position: Position, battle: BattleInfo, is_boss: bool) -> None:
        if is_boss and battle.result is BattleResult.LOSE:
            memory.boss_pursuit = False

        if not battle.needs_consumable_confirmation or not battle.battle_id:
            return
        if not ctx.can_act():
            return

        fireballs = [item for item in battle.available_consumables if item.type == ItemType.FIREBALL]
        selected = select_consumables(battle.damage_gap, fireballs)
        if selected:
            ctx.log.record("use_consumable", count=len(selected), gap=battle.damage_gap)

        pickup = bool(selected)
        result = self._call(
            ctx, "finalize_battle", self.actions.finalize_battle,
            ctx.game_id, ctx.player_id, ctx.turn_id, battle.battle_id,
            [item.item_id for item in selected], pickup,
            details={"consumables": len(selected), "pickupItem": pickup},
        )

        revised = result.battle_info
        if revised is not None and revised.result is not battle.result:
            ctx.log.record("battle_revised", result=revised.result.value)
            if revised.result is BattleResult.WIN:
                memory.clear_pursuit(position)
                if is_boss:
                    memory.boss_pursuit = False

        if pickup and result.inventory_full and ctx.can_act():
            reward_type = battle.reward.type if battle.reward else None
            replace = find_replacement(view.player.inventory, reward_type)
            if replace is None:
                memory.mark_unpickable(position)
                return
            self._call(
                ctx, "inventory_replace", self.actions.inventory_action,
                ctx.game_id, ctx.player_id, ctx.turn_id, "replace",
                item=item_payload(battle.reward), replace_item_id=replace.item_id,
                details={"evict": replace.item_id, "evictType": _type_name(replace)},
            )

    # ==================== Termination ====================

    def _end_turn(self, ctx: TurnContext) -> Optional[str]:
        """7. Issue the single end-turn call. Returns a fault description on failure."""
        if ctx.ended:
            return None
        if ctx.turn_id is None:
            ctx.log.record_final("end_turn_skipped", reason="no_turn_id")
            return None

        try:
            result = self.actions.end_turn(ctx.game_id, ctx.player_id, ctx.turn_id)
        except Exception as e:
            logger.exception(f"end-turn failed for player {ctx.player_id}: {e}")
            ctx.log.record_final("end_turn", success=False, statusCode=0, error=str(e))
            ctx.ended = True
            return f"{type(e).__name__}: {e}"

        ctx.calls += 1
        ctx.ended = True
        ctx.log.record_final("end_turn", **result.summary())
        self.action_logger.log_action("end_turn", result.success, result.status_code)
        return None


def _type_name(item: InventoryItem) -> Optional[str]:
    return item.type.value if item.type else None


def _entity_payload(item: ItemEntity, result: ActionResult) -> dict[str, Any]:
    """Item body for an inventory replace, preferring what the server echoed back."""
    echoed = result.response.get("item")
    if isinstance(echoed, dict):
        return echoed
    return item.to_dict()
