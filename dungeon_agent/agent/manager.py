"""
Agent player registry and game loop.

Keeps track of which players in which games are driven by the agent,
with which strategy, and owns the TurnMemory store those players share
for the lifetime of the process.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..api.client import ActionExecutor
from ..api.snapshot import GameApiError, WorldSnapshot
from ..config import AgentConfig, get_strategy
from ..memory.turn_memory import TurnMemoryStore
from .executor import TurnExecutor, TurnResult

logger = logging.getLogger(__name__)


@dataclass
class AgentPlayer:
    """A registered agent player."""

    game_id: str
    player_id: str
    strategy: str
    active: bool = True
    turn_count: int = 0
    faults: int = 0
    last_action: Optional[datetime] = None
    last_result: Optional[TurnResult] = None

    def stats(self) -> dict:
        return {
            "gameId": self.game_id,
            "playerId": self.player_id,
            "strategy": self.strategy,
            "active": self.active,
            "turnCount": self.turn_count,
            "faults": self.faults,
            "lastAction": self.last_action.isoformat() if self.last_action else None,
            "lastMoves": self.last_result.moves if self.last_result else None,
        }


@dataclass
class GameRunSummary:
    """Result of running a game loop."""

    turns_executed: int = 0
    agent_turns: int = 0
    game_ended: bool = False
    errors: list[str] = field(default_factory=list)
    results: list[TurnResult] = field(default_factory=list)


class AgentPlayerManager:
    """
    Registers agent players and runs their turns.

    Example usage:
        manager = AgentPlayerManager(snapshot, client, config.agent)
        manager.register(game_id, player_id, strategy="aggressive")

        result = manager.execute_turn(game_id, player_id)
        summary = manager.run_game(game_id, max_turns=50)
    """

    def __init__(
        self,
        snapshot: WorldSnapshot,
        actions: ActionExecutor,
        config: Optional[AgentConfig] = None,
        memory_store: Optional[TurnMemoryStore] = None,
        log_actions: bool = True,
    ):
        self.snapshot = snapshot
        self.actions = actions
        self.config = config or AgentConfig()
        self.memory_store = memory_store or TurnMemoryStore(self.config)
        self.log_actions = log_actions
        self.default_strategy = get_strategy(self.config.strategy).name

        self._players: dict[tuple[str, str], AgentPlayer] = {}
        self._executors: dict[str, TurnExecutor] = {}

    # ==================== Registry ====================

    def register(self, game_id: str, player_id: str, strategy: Optional[str] = None) -> AgentPlayer:
        """Register (or re-register) a player as agent-controlled."""
        profile = get_strategy(strategy or self.default_strategy)
        player = AgentPlayer(game_id, player_id, profile.name)
        self._players[(game_id, player_id)] = player
        logger.info(f"Agent player registered: game={game_id} player={player_id} strategy={profile.name}")
        return player

    def get(self, game_id: str, player_id: str) -> Optional[AgentPlayer]:
        return self._players.get((game_id, player_id))

    def is_agent(self, game_id: str, player_id: Optional[str]) -> bool:
        player = self._players.get((game_id, player_id)) if player_id else None
        return player is not None and player.active

    def update_strategy(self, game_id: str, player_id: str, strategy: str) -> bool:
        player = self.get(game_id, player_id)
        if player is None:
            return False
        player.strategy = get_strategy(strategy).name
        logger.info(f"Agent strategy updated: player={player_id} strategy={player.strategy}")
        return True

    def deactivate(self, game_id: str, player_id: str) -> bool:
        player = self.get(game_id, player_id)
        if player is None:
            return False
        player.active = False
        logger.info(f"Agent player deactivated: game={game_id} player={player_id}")
        return True

    def stats(self, game_id: str, player_id: str) -> dict:
        player = self.get(game_id, player_id)
        if player is None:
            return {}
        data = player.stats()
        data["memory"] = self.memory_store.get(game_id, player_id).summary()
        return data

    def active_players(self, game_id: str) -> list[AgentPlayer]:
        return [player for (gid, _), player in self._players.items() if gid == game_id and player.active]

    def clear_game(self, game_id: str) -> None:
        """Forget all agent players of a game along with their turn memory."""
        for key in [key for key in self._players if key[0] == game_id]:
            del self._players[key]
        self.memory_store.clear_game(game_id)
        logger.info(f"All agent players cleared for game {game_id}")

    # ==================== Turns ====================

    def executor_for(self, strategy: str) -> TurnExecutor:
        if strategy not in self._executors:
            self._executors[strategy] = TurnExecutor(
                snapshot=self.snapshot,
                actions=self.actions,
                memory_store=self.memory_store,
                config=self.config,
                strategy=get_strategy(strategy),
                log_actions=self.log_actions,
            )
        return self._executors[strategy]

    def execute_turn(self, game_id: str, player_id: str) -> TurnResult:
        """Run one turn for a registered player (registering it on the fly)."""
        player = self.get(game_id, player_id) or self.register(game_id, player_id)
        result = self.executor_for(player.strategy).execute_turn(game_id, player_id)

        player.last_result = result
        player.last_action = datetime.now()
        if result.ended:
            player.turn_count += 1
        if not result.ok:
            player.faults += 1
        return result

    def run_game(self, game_id: str, max_turns: Optional[int] = None,
                 poll_interval: float = 0.1) -> GameRunSummary:
        """
        Play the agent players' turns until the game ends.

        Non-agent turns and unreadable game state are waited out by
        polling. The loop stops after `max_turns` iterations either way.
        """
        max_turns = max_turns if max_turns is not None else self.config.max_game_turns
        summary = GameRunSummary()

        for _ in range(max_turns):
            players = self.active_players(game_id)
            if not players:
                summary.errors.append("No active agent players")
                break

            try:
                view = self.snapshot.load(game_id, players[0].player_id)
            except GameApiError as e:
                logger.warning(f"Game {game_id}: state unavailable: {e}")
                summary.errors.append(str(e))
                time.sleep(poll_interval)
                continue

            if view.game.is_finished:
                summary.game_ended = True
                break

            current = view.game.current_player_id
            if not self.is_agent(game_id, current):
                time.sleep(poll_interval)
                continue

            result = self.execute_turn(game_id, current)
            summary.results.append(result)
            summary.turns_executed += 1
            summary.agent_turns += 1
            if result.fault:
                summary.errors.append(result.fault)

        logger.info(
            f"Game {game_id}: {summary.agent_turns} agent turns, ended={summary.game_ended}, "
            f"{len(summary.errors)} errors"
        )
        return summary
