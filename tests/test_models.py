"""Tests for API data models."""

import pytest

from dungeon_agent.api.models import (
    ActionResult,
    BattleInfo,
    BattleResult,
    FieldState,
    Inventory,
    ItemCategory,
    ItemEntity,
    ItemType,
    PlayerState,
    Position,
    TileOrientation,
    TileSide,
    required_open_side,
)


class TestPosition:
    """Tests for Position parsing and geometry."""

    @pytest.mark.parametrize("value", ["3,-2", " 3 , -2 ", {"x": 3, "y": -2}, [3, -2], (3, -2)])
    def test_parse_formats(self, value):
        """Test every accepted position format."""
        assert Position.parse(value) == Position(3, -2)

    def test_parse_invalid(self):
        """Test that garbage raises ValueError."""
        with pytest.raises(ValueError):
            Position.parse("1,2,3")
        with pytest.raises(ValueError):
            Position.parse(42)

    def test_str_matches_wire_format(self):
        assert str(Position(-1, 4)) == "-1,4"

    def test_manhattan(self):
        assert Position(0, 0).manhattan(Position(2, -3)) == 5

    def test_adjacent_order(self):
        """Test neighbours come in TOP, RIGHT, BOTTOM, LEFT order."""
        assert Position(0, 0).adjacent() == [
            Position(0, -1), Position(1, 0), Position(0, 1), Position(-1, 0),
        ]

    def test_side_towards(self):
        assert Position(0, 0).side_towards(Position(1, 0)) == TileSide.RIGHT
        assert Position(0, 0).side_towards(Position(2, 0)) is None


class TestRequiredOpenSide:
    """Tests for the open side a newly placed tile needs."""

    @pytest.mark.parametrize("target,side", [
        (Position(1, 0), TileSide.LEFT),
        (Position(-1, 0), TileSide.RIGHT),
        (Position(0, 1), TileSide.TOP),
        (Position(0, -1), TileSide.BOTTOM),
        (Position(0, 0), TileSide.TOP),
    ])
    def test_side_faces_current_cell(self, target, side):
        assert required_open_side(Position(0, 0), target) == side

    def test_opposite(self):
        assert TileSide.TOP.opposite == TileSide.BOTTOM
        assert TileSide.LEFT.opposite == TileSide.RIGHT


class TestItemEntity:
    """Tests for items on the field."""

    def test_monster_defaults_from_name(self):
        """Test guard HP and reward fall back to the monster tables."""
        entity = ItemEntity.from_dict({"name": "skeleton_turnkey"})
        assert entity.guard_hp == 8
        assert entity.type == ItemType.KEY
        assert entity.is_monster
        assert entity.locked

    def test_defeated_guard_is_not_a_monster(self):
        entity = ItemEntity.from_dict({"name": "mummy", "guardDefeated": True})
        assert not entity.is_monster
        assert not entity.locked

    def test_treasure_chest_is_locked_chest(self):
        entity = ItemEntity.from_dict({"name": "treasure_chest", "type": "chest"})
        assert entity.is_chest
        assert entity.treasure_value == 2
        assert not entity.is_monster

    def test_dragon_is_boss(self):
        entity = ItemEntity.from_dict({"name": "dragon"})
        assert entity.is_boss
        assert entity.guard_hp == 15
        assert entity.type == ItemType.RUBY_CHEST
        assert entity.ends_game

    def test_explicit_values_win(self):
        entity = ItemEntity.from_dict({"name": "giant_rat", "guardHP": 3, "type": "sword"})
        assert entity.guard_hp == 3
        assert entity.type == ItemType.SWORD


class TestInventory:
    """Tests for inventory parsing and limits."""

    def test_from_dict_accepts_singular_keys(self):
        inventory = Inventory.from_dict({
            "weapon": [{"itemId": "w1", "name": "sword", "type": "sword"}],
            "spell": [{"itemId": "s1", "name": "fireball", "type": "fireball"}],
            "key": [{"itemId": "k1", "name": "key", "type": "key"}],
        })
        assert inventory.weapon_damage == 2
        assert len(inventory.fireballs) == 1
        assert inventory.has_key

    def test_limits(self):
        inventory = Inventory.from_dict({
            "weapons": [
                {"itemId": "w1", "type": "dagger"},
                {"itemId": "w2", "type": "axe"},
            ],
        })
        assert inventory.is_full(ItemCategory.WEAPON)
        assert not inventory.is_full(ItemCategory.SPELL)
        assert not inventory.is_full(ItemCategory.TREASURE)

    def test_empty_payload(self):
        inventory = Inventory.from_dict(None)
        assert inventory.weapons == []
        assert not inventory.has_key


class TestPlayerState:
    def test_stunned_vs_defeated(self):
        assert PlayerState(id="p", hp=0).is_stunned
        assert not PlayerState(id="p", hp=0, defeated=True).is_stunned

    def test_needs_healing(self):
        assert PlayerState(id="p", hp=3).needs_healing
        assert not PlayerState(id="p", hp=5).needs_healing


class TestFieldState:
    """Tests for the revealed field."""

    @pytest.fixture
    def payload(self):
        return {
            "tiles": [
                {"position": "0,0", "tileId": "a"},
                {"position": "1,0", "tileId": "b", "features": ["healing_fountain"]},
                {"position": "0,1", "tileId": "c"},
            ],
            "tileOrientations": {
                "0,0": "true,true,false,true",
                "1,0": "true,true,true,true",
                "0,1": "true,true,true,true",
            },
            "items": {"0,1": {"name": "giant_rat"}},
            "playerPositions": {"p1": "0,0"},
        }

    def test_from_dict(self, payload):
        field_state = FieldState.from_dict(payload)
        assert field_state.has_tile(Position(1, 0))
        assert field_state.player_positions["p1"] == Position(0, 0)
        assert field_state.item_at(Position(0, 1)).name == "giant_rat"

    def test_neighbors_respect_closed_sides(self, payload):
        """Test the closed bottom side of 0,0 cuts the edge to 0,1."""
        field_state = FieldState.from_dict(payload)
        assert field_state.neighbors(Position(0, 0)) == {Position(1, 0)}

    def test_neighbors_without_orientation_use_grid(self, payload):
        payload["tileOrientations"] = {}
        field_state = FieldState.from_dict(payload)
        assert field_state.neighbors(Position(0, 0)) == {Position(1, 0), Position(0, 1)}

    def test_healing_cells(self, payload):
        field_state = FieldState.from_dict(payload)
        assert field_state.is_healing(Position(0, 0))
        assert field_state.is_healing(Position(1, 0))
        assert not field_state.is_healing(Position(0, 1))
        assert field_state.healing_cells() == [Position(0, 0), Position(1, 0)]

    def test_revision_tracks_tiles(self, payload):
        field_state = FieldState.from_dict(payload)
        before = field_state.revision()
        assert FieldState.from_dict(payload).revision() == before

        field_state.tiles[Position(2, 0)] = "d"
        assert field_state.revision() != before

    def test_monsters_and_boss(self):
        field_state = FieldState(items={
            Position(1, 0): ItemEntity.from_dict({"name": "mummy"}),
            Position(3, 0): ItemEntity.from_dict({"name": "dragon"}),
            Position(2, 0): ItemEntity.from_dict({"name": "treasure_chest"}),
        })
        assert set(field_state.monsters()) == {Position(1, 0), Position(3, 0)}
        assert set(field_state.chests()) == {Position(2, 0)}
        assert field_state.boss()[0] == Position(3, 0)


class TestTileOrientation:
    def test_parse_string_and_list(self):
        assert TileOrientation.parse("true,false,true,false") == TileOrientation.parse([1, 0, 1, 0])

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            TileOrientation.parse("true,false")


class TestBattleInfo:
    """Tests for battle outcomes."""

    def test_from_dict(self):
        info = BattleInfo.from_dict({
            "battleId": "b1",
            "result": "draw",
            "monster": 9,
            "monsterType": "skeleton_warrior",
            "diceResults": [3, 4],
            "totalDamage": 9,
            "needsConsumableConfirmation": True,
            "availableConsumables": [{"itemId": "f1", "name": "fireball", "type": "fireball"}],
            "position": "2,0",
        })
        assert info.result is BattleResult.DRAW
        assert info.dice_total == 7
        assert info.position == Position(2, 0)
        assert info.available_consumables[0].type == ItemType.FIREBALL

    def test_damage_gap(self):
        info = BattleInfo(battle_id="b", result=BattleResult.DRAW, monster_hp=9, total_damage=9)
        assert info.damage_gap == 1
        info.total_damage = 12
        assert info.damage_gap == 0

    def test_unknown_result(self):
        assert BattleResult.parse("surrender") is BattleResult.UNKNOWN


class TestActionResult:
    def test_nested_infos(self):
        result = ActionResult("move", True, 201, {
            "battleInfo": {"result": "win", "monster": 5},
            "inventoryFull": True,
        })
        assert result.battle_info.result is BattleResult.WIN
        assert result.item_info is None
        assert result.inventory_full

    def test_is_room_defaults_true(self):
        assert ActionResult("place_tile", True, 201, {}).is_room
        assert not ActionResult("place_tile", True, 201, {"tile": {"room": False}}).is_room

    def test_summary(self):
        assert ActionResult("x", False, 0, error="down").summary() == {
            "success": False, "statusCode": 0, "error": "down",
        }
