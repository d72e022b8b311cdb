"""Tests for the agent player manager."""

from unittest.mock import MagicMock

import pytest

from dungeon_agent.agent.manager import AgentPlayerManager
from dungeon_agent.api.snapshot import SnapshotError
from dungeon_agent.config import AgentConfig

from conftest import FakeSnapshot, build_player, build_view


@pytest.fixture
def stunned_view():
    """A turn that is skipped straight to end-turn."""
    return build_view(player=build_player(hp=0))


@pytest.fixture
def manager(stunned_view, actions):
    return AgentPlayerManager(FakeSnapshot(stunned_view), actions, AgentConfig(), log_actions=False)


class TestRegistry:
    """Tests for registering and managing agent players."""

    def test_register_uses_default_strategy(self, manager):
        player = manager.register("g1", "p1")
        assert player.strategy == "balanced"
        assert player.active
        assert manager.is_agent("g1", "p1")
        assert not manager.is_agent("g1", "p2")
        assert not manager.is_agent("g1", None)

    def test_unknown_strategy_falls_back(self, manager):
        assert manager.register("g1", "p1", "berserker").strategy == "balanced"

    def test_update_strategy(self, manager):
        manager.register("g1", "p1")
        assert manager.update_strategy("g1", "p1", "aggressive")
        assert manager.get("g1", "p1").strategy == "aggressive"
        assert not manager.update_strategy("g1", "p9", "aggressive")

    def test_deactivate(self, manager):
        manager.register("g1", "p1")
        manager.register("g1", "p2")
        assert manager.deactivate("g1", "p1")
        assert [p.player_id for p in manager.active_players("g1")] == ["p2"]
        assert not manager.deactivate("g1", "p9")

    def test_clear_game_drops_memory(self, manager):
        manager.register("g1", "p1")
        manager.register("g2", "p1")
        manager.execute_turn("g1", "p1")
        assert ("g1", "p1") in manager.memory_store

        manager.clear_game("g1")
        assert manager.get("g1", "p1") is None
        assert manager.get("g2", "p1") is not None
        assert ("g1", "p1") not in manager.memory_store

    def test_stats(self, manager):
        manager.register("g1", "p1", "defensive")
        manager.execute_turn("g1", "p1")
        stats = manager.stats("g1", "p1")
        assert stats["strategy"] == "defensive"
        assert stats["turnCount"] == 1
        assert stats["lastAction"] is not None
        assert "memory" in stats
        assert manager.stats("g1", "p9") == {}


class TestTurns:
    def test_execute_turn_registers_on_the_fly(self, manager, actions):
        result = manager.execute_turn("g1", "p1")
        assert result.ended
        assert manager.get("g1", "p1").turn_count == 1
        actions.end_turn.assert_called_once()

    def test_executor_cached_per_strategy(self, manager):
        assert manager.executor_for("balanced") is manager.executor_for("balanced")
        assert manager.executor_for("balanced") is not manager.executor_for("aggressive")


class TestRunGame:
    """Tests for the game loop."""

    def test_runs_until_turn_limit(self, manager, actions):
        manager.register("g1", "p1")
        summary = manager.run_game("g1", max_turns=3, poll_interval=0)
        assert summary.agent_turns == 3
        assert actions.end_turn.call_count == 3
        assert not summary.game_ended

    def test_stops_when_game_finished(self, actions):
        manager = AgentPlayerManager(FakeSnapshot(build_view(status="finished")), actions, log_actions=False)
        manager.register("g1", "p1")
        summary = manager.run_game("g1", max_turns=5, poll_interval=0)
        assert summary.game_ended
        assert summary.agent_turns == 0

    def test_waits_for_other_players(self, stunned_view, actions):
        stunned_view.game.current_player_id = "human"
        manager = AgentPlayerManager(FakeSnapshot(stunned_view), actions, log_actions=False)
        manager.register("g1", "p1")
        summary = manager.run_game("g1", max_turns=2, poll_interval=0)
        assert summary.agent_turns == 0
        actions.end_turn.assert_not_called()

    def test_no_agents(self, manager):
        summary = manager.run_game("g1", max_turns=2, poll_interval=0)
        assert summary.errors == ["No active agent players"]

    def test_unreadable_state_is_reported(self, actions):
        """Test a failing state read is recorded and the loop keeps polling."""
        snapshot = MagicMock()
        snapshot.load.side_effect = SnapshotError("game g1: 502")
        manager = AgentPlayerManager(snapshot, actions, log_actions=False)
        manager.register("g1", "p1")

        summary = manager.run_game("g1", max_turns=3, poll_interval=0)

        assert summary.errors == ["game g1: 502"] * 3
        assert summary.agent_turns == 0
        assert snapshot.load.call_count == 3
        actions.end_turn.assert_not_called()
