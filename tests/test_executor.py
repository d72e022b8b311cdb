"""Tests for the turn execution state machine."""

from unittest.mock import MagicMock

import pytest

from dungeon_agent.agent.executor import ActionLog, TurnExecutor
from dungeon_agent.api.client import GameApiClient
from dungeon_agent.api.models import ItemEntity, ItemType, Position, TileSide
from dungeon_agent.api.pathfinding import PathPlanner
from dungeon_agent.config import AgentConfig, get_strategy

from conftest import FakeSnapshot, build_field, build_player, build_view, ok, rejected

ROW = [f"{x},0" for x in range(-1, 10)]


def executor_for(snapshot, actions, memory_store, config=None, strategy="balanced") -> TurnExecutor:
    config = config or AgentConfig()
    return TurnExecutor(
        snapshot=snapshot,
        actions=actions,
        memory_store=memory_store,
        config=config,
        strategy=get_strategy(strategy),
        log_actions=False,
    )


def http_reply(status: int, body: dict):
    reply = MagicMock()
    reply.status_code = status
    reply.json.return_value = body
    return reply


class TestActionLog:
    """Tests for the bounded action log."""

    def test_reserved_slots(self):
        log = ActionLog(capacity=4)
        assert log.record("a")
        assert log.record("b")
        assert not log.record("c")
        assert log.record_fault("ai_error")
        assert not log.record_fault("ai_error")
        assert log.record_final("end_turn")
        assert len(log) == 4
        assert log.dropped == 2
        assert log.types() == ["a", "b", "ai_error", "end_turn"]

    def test_final_slot_kept_without_fault(self):
        log = ActionLog(capacity=3)
        log.record("a")
        assert log.full
        assert log.record_final("end_turn")
        assert log.types() == ["a", "end_turn"]


class TestPreflight:
    """Tests for turns that are skipped outright."""

    @pytest.mark.parametrize("view,reason", [
        (build_view(player=build_player(hp=0)), "player_stunned"),
        (build_view(player=build_player(hp=0, defeated=True)), "player_defeated"),
        (build_view(status="finished"), "game_finished"),
    ])
    def test_skip_and_end_turn(self, actions, memory_store, view, reason):
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["turn_skipped", "end_turn"]
        assert result.actions[0].details["reason"] == reason
        assert result.ended
        actions.move_player.assert_not_called()
        actions.end_turn.assert_called_once_with("g1", "p1", "t1")

    def test_healing_stop_on_healing_cell(self, actions, memory_store):
        view = build_view(player=build_player(hp=3), move_to=["1,0"])
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["healing_stop", "end_turn"]
        actions.move_player.assert_not_called()


class TestTermination:
    """Tests for budgets and the single end-turn call."""

    def test_move_budget(self, actions, memory_store):
        view = build_view(field_state=build_field(ROW), move_to=[f"{x},0" for x in range(1, 9)])
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert actions.move_player.call_count == 4
        assert result.moves == 4
        assert result.action_types() == ["goal", "move", "move", "move", "move", "end_turn"]
        actions.end_turn.assert_called_once()

    def test_action_log_bound(self, actions, memory_store):
        config = AgentConfig(max_actions_per_turn=6, max_moves_per_turn=10)
        view = build_view(field_state=build_field(ROW), move_to=[f"{x},0" for x in range(1, 9)])
        result = executor_for(FakeSnapshot(view), actions, memory_store, config).execute_turn("g1", "p1")

        assert len(result.actions) <= 6
        assert result.action_types()[-1] == "end_turn"
        actions.end_turn.assert_called_once()

    def test_no_action_possible(self, actions, memory_store):
        view = build_view(deck_empty=True)
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["goal", "no_action", "end_turn"]

    def test_rejected_move_ends_turn(self, actions, memory_store):
        actions.move_player.return_value = rejected("move_player")
        view = build_view(field_state=build_field(ROW), move_to=["1,0", "2,0"])
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert actions.move_player.call_count == 1
        assert result.moves == 0
        assert result.action_types()[-1] == "end_turn"


class TestFaults:
    """Tests for fault capture."""

    def test_internal_error_still_ends_turn(self, actions, memory_store):
        executor = executor_for(FakeSnapshot(build_view()), actions, memory_store)
        executor.arbiter.choose_goal = MagicMock(side_effect=RuntimeError("boom"))

        result = executor.execute_turn("g1", "p1")

        assert result.fault == "RuntimeError: boom"
        assert not result.ok
        assert result.action_types() == ["ai_error", "end_turn"]
        actions.end_turn.assert_called_once()

    def test_end_turn_failure_is_reported(self, actions, memory_store):
        actions.end_turn.side_effect = ConnectionError("server gone")
        view = build_view(player=build_player(hp=0))
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.ended
        assert "server gone" in result.fault
        assert result.action_types() == ["turn_skipped", "end_turn"]

    def test_no_turn_id(self, actions, memory_store):
        view = build_view(player=build_player(hp=0), turn_id=None)
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        actions.end_turn.assert_not_called()
        assert result.action_types() == ["turn_skipped", "end_turn_skipped"]


class TestStalledTargets:
    """Tests for targets that stop getting closer across turns."""

    def test_stalled_key_falls_back_to_next_goal(self, actions, memory_store):
        """Test two turns without progress mark the key unreachable and the cascade moves on."""
        field_state = build_field(ROW, {"4,0": "skeleton_turnkey"})
        player = build_player(weapons=(ItemType.SWORD,))
        views = [build_view(player=player, field_state=field_state, turn_number=n) for n in (1, 2, 3)]
        executor = executor_for(FakeSnapshot(*views), actions, memory_store)

        first = executor.execute_turn("g1", "p1")
        second = executor.execute_turn("g1", "p1")
        third = executor.execute_turn("g1", "p1")

        assert first.goal.type.name == "GET_KEY"
        assert first.action_types() == ["goal", "no_action", "end_turn"]
        assert second.action_types() == ["goal", "no_action", "end_turn"]
        assert third.action_types() == ["goal", "target_unreachable", "goal", "no_action", "end_turn"]
        assert third.goal.type.name == "EXPLORE"
        assert memory_store.get("g1", "p1").is_unreachable(Position(4, 0))
        assert actions.end_turn.call_count == 3

    def test_stored_path_used_when_search_gives_up(self, actions, memory_store):
        """Test the remembered route is followed when a fresh search finds nothing."""
        path = [Position.parse(p) for p in ("0,0", "0,1", "1,1", "2,1", "3,1", "4,1", "4,0")]
        memory_store.get("g1", "p1").set_pursuit(Position(4, 0), "Key guarded by skeleton_turnkey", path)
        field_state = build_field(ROW, {"4,0": "skeleton_turnkey"})
        view = build_view(player=build_player(weapons=(ItemType.SWORD,)), field_state=field_state,
                          move_to=["0,1", "0,-1"])
        executor = TurnExecutor(
            snapshot=FakeSnapshot(view),
            actions=actions,
            memory_store=memory_store,
            config=AgentConfig(),
            planner=PathPlanner(iteration_cap=0),
            log_actions=False,
        )

        executor.execute_turn("g1", "p1")

        assert actions.move_player.call_args_list[0].args[4] == Position(0, 1)


class TestSelfRescue:
    def test_place_tile_under_player(self, actions, memory_store):
        field_state = build_field(["0,0"], position=Position(3, 3))
        view = build_view(field_state=field_state, place_tile=["3,3", "1,0"])
        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["self_rescue", "pick_tile", "place_tile", "end_turn"]
        assert actions.place_tile.call_args.args[4] == Position(3, 3)
        actions.move_player.assert_not_called()


class TestTilePlacement:
    """Tests for corridor chains."""

    def test_chain_stops_at_sequence_limit(self, actions, memory_store):
        actions.place_tile.return_value = ok("place_tile", tile={"room": False})
        config = AgentConfig(max_tiles_per_sequence=2, max_moves_per_turn=10)
        view = build_view(place_tile=["1,0", "2,0", "3,0", "4,0"])
        result = executor_for(FakeSnapshot(view), actions, memory_store, config).execute_turn("g1", "p1")

        assert actions.place_tile.call_count == 2
        assert result.longest_chain == 2
        assert "tile_sequence_limit" in result.action_types()
        assert actions.pick_tile.call_args_list[0].args[4] == TileSide.LEFT
        first_move = actions.move_player.call_args_list[0]
        assert first_move.kwargs["is_tile_placement_move"] is True

    def test_room_tile_ends_chain(self, actions, memory_store):
        config = AgentConfig(max_moves_per_turn=1)
        view = build_view(place_tile=["1,0", "2,0"])
        result = executor_for(FakeSnapshot(view), actions, memory_store, config).execute_turn("g1", "p1")

        assert actions.place_tile.call_count == 1
        assert result.longest_chain == 1


class TestItems:
    """Tests for item and treasure handling."""

    def test_treasure_collected_with_key(self, actions, memory_store):
        actions.move_player.return_value = ok("move_player", itemInfo={
            "position": "1,0",
            "item": {"name": "treasure_chest", "type": "chest", "treasureValue": 2},
            "requiresKey": True,
            "hasKey": True,
        })
        actions.pick_item.return_value = ok("pick_item", chestType="chest")
        field_state = build_field(ROW, {"1,0": "treasure_chest", "3,0": "giant_rat"})
        view = build_view(player=build_player(key=True), field_state=field_state, move_to=["1,0", "2,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.goal.type.name == "COLLECT_TREASURE"
        assert result.action_types() == [
            "goal", "move", "item_found", "pick_item", "treasure_collected", "end_turn",
        ]
        assert actions.pick_item.call_args.args[3] == Position(1, 0)
        assert Position(1, 0) in memory_store.get("g1", "p1").collected_chests

    def test_standing_item_claimed_first(self, actions, memory_store):
        field_state = build_field(ROW)
        field_state.items[Position(0, 0)] = ItemEntity.from_dict({"name": "giant_rat", "guardDefeated": True})
        view = build_view(field_state=field_state, move_to=["1,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["pick_item", "end_turn"]
        actions.move_player.assert_not_called()

    def test_inventory_full_marks_unpickable(self, actions, memory_store):
        actions.move_player.return_value = ok("move_player", itemInfo={
            "position": "1,0",
            "item": {"name": "giant_rat", "type": "dagger", "guardDefeated": True},
        })
        actions.pick_item.return_value = rejected("pick_item", inventoryFull=True)
        view = build_view(field_state=build_field(ROW), move_to=["1,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert "item_unpickable" in result.action_types()
        assert Position(1, 0) in memory_store.get("g1", "p1").unpickable


class TestBattles:
    """Tests for battle follow-ups."""

    def test_win_with_full_inventory_replaces_dagger(self, actions, memory_store):
        """Test a won sword replaces the held dagger when both weapon slots are taken."""
        actions.move_player.return_value = ok("move_player", battleInfo={
            "battleId": "b1",
            "result": "win",
            "monster": 9,
            "monsterType": "skeleton_warrior",
            "totalDamage": 12,
            "position": "1,0",
            "reward": {"itemId": "r1", "name": "sword", "type": "sword"},
        })
        actions.pick_item.side_effect = [
            rejected("pick_item", inventoryFull=True),
            ok("pick_item"),
        ]
        player = build_player(weapons=(ItemType.SWORD, ItemType.DAGGER))
        field_state = build_field(ROW, {"1,0": "skeleton_warrior"})
        view = build_view(player=player, field_state=field_state, move_to=["1,0", "2,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["goal", "move", "battle", "pick_item", "pick_item", "end_turn"]
        retry = actions.pick_item.call_args_list[1]
        assert retry.kwargs["replace_item_id"] == "w2"
        actions.end_turn.assert_called_once()

    def test_draw_spends_fireball(self, actions, memory_store):
        actions.move_player.return_value = ok("move_player", battleInfo={
            "battleId": "b2",
            "result": "draw",
            "monster": 6,
            "monsterType": "giant_spider",
            "totalDamage": 6,
            "needsConsumableConfirmation": True,
            "availableConsumables": [{"itemId": "s1", "name": "fireball", "type": "fireball"}],
            "reward": {"itemId": "r2", "name": "teleport", "type": "teleport"},
        })
        actions.finalize_battle.return_value = ok("finalize_battle", battleInfo={"result": "win", "monster": 6})
        player = build_player(spells=(ItemType.FIREBALL,))
        field_state = build_field(ROW, {"1,0": "giant_spider"})
        view = build_view(player=player, field_state=field_state, move_to=["1,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        actions.finalize_battle.assert_called_once_with("g1", "p1", "t1", "b2", ["s1"], True)
        types = result.action_types()
        assert types[-4:] == ["use_consumable", "finalize_battle", "battle_revised", "end_turn"]

    def test_lose_without_confirmation_just_ends(self, actions, memory_store):
        actions.move_player.return_value = ok("move_player", battleInfo={
            "battleId": "b3", "result": "lose", "monster": 6, "totalDamage": 4,
        })
        field_state = build_field(ROW, {"1,0": "giant_spider"})
        view = build_view(field_state=field_state, move_to=["1,0", "2,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.action_types() == ["goal", "move", "battle", "end_turn"]
        actions.finalize_battle.assert_not_called()
        assert actions.move_player.call_count == 1


class TestHealing:
    def test_critical_hp_heads_for_origin(self, actions, memory_store):
        field_state = build_field(ROW, position=Position(2, 0))
        view = build_view(player=build_player(hp=1), field_state=field_state, move_to=["1,0", "0,0", "3,0"])

        result = executor_for(FakeSnapshot(view), actions, memory_store).execute_turn("g1", "p1")

        assert result.goal.type.name == "HEAL"
        assert actions.move_player.call_args.args[4] == Position(0, 0)
        assert result.action_types() == ["goal", "move", "healing_stop", "end_turn"]


class TestOverHttp:
    """Turns driven through GameApiClient with a fake HTTP session."""

    def test_axe_reward_evicts_dagger(self, memory_store):
        """Test a won axe with dagger and sword held retries the pickup naming the dagger."""
        pick_replies = [
            http_reply(400, {"inventoryFull": True, "error": "Inventory is full"}),
            http_reply(201, {"success": True}),
        ]

        def post(url, json=None, timeout=None):
            if url.endswith("/game/move-player"):
                return http_reply(201, {"battleInfo": {
                    "battleId": "b4",
                    "result": "win",
                    "monster": 10,
                    "monsterType": "skeleton_king",
                    "diceResults": [3, 4],
                    "totalDamage": 10,
                    "position": "1,0",
                    "reward": {"itemId": "r4", "name": "axe", "type": "axe"},
                }})
            if url.endswith("/game/pick-item"):
                return pick_replies.pop(0)
            return http_reply(200, {})

        session = MagicMock()
        session.post.side_effect = post
        client = GameApiClient("http://game.test/api", session=session)
        player = build_player(weapons=(ItemType.SWORD, ItemType.DAGGER))
        field_state = build_field(ROW, {"1,0": "skeleton_king"})
        view = build_view(player=player, field_state=field_state, move_to=["1,0", "2,0"])

        result = executor_for(FakeSnapshot(view), client, memory_store, strategy="aggressive").execute_turn("g1", "p1")

        assert result.action_types() == ["goal", "move", "battle", "pick_item", "pick_item", "end_turn"]
        assert result.actions[2].details["dice"] == 7
        picks = [c.kwargs["json"] for c in session.post.call_args_list if c.args[0].endswith("/game/pick-item")]
        assert len(picks) == 2
        assert "itemIdToReplace" not in picks[0]
        assert picks[1]["itemIdToReplace"] == "w2"
        assert session.post.call_args_list[-1].args[0].endswith("/game/end-turn")
        assert result.ok
