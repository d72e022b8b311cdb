"""Shared fixtures: game state builders and fake server seams."""

from typing import Optional
from unittest.mock import MagicMock

import pytest

from dungeon_agent.api.models import (
    ActionResult,
    AvailablePlaces,
    DeckState,
    FieldState,
    GameState,
    Inventory,
    InventoryItem,
    ItemEntity,
    ItemType,
    PlayerState,
    Position,
)
from dungeon_agent.api.snapshot import GameView
from dungeon_agent.config import AgentConfig
from dungeon_agent.memory.turn_memory import TurnMemory, TurnMemoryStore


def item(item_type: ItemType, item_id: Optional[str] = None) -> InventoryItem:
    return InventoryItem(item_id or f"{item_type.value}-1", item_type.value, item_type)


def build_player(
    hp: int = 5,
    weapons: tuple = (),
    spells: tuple = (),
    key: bool = False,
    defeated: bool = False,
    player_id: str = "p1",
) -> PlayerState:
    inventory = Inventory(
        keys=[item(ItemType.KEY, "k1")] if key else [],
        weapons=[item(t, f"w{i}") for i, t in enumerate(weapons, 1)],
        spells=[item(t, f"s{i}") for i, t in enumerate(spells, 1)],
    )
    return PlayerState(id=player_id, hp=hp, defeated=defeated, inventory=inventory)


def build_field(
    tiles,
    items: Optional[dict] = None,
    position: Optional[Position] = Position(0, 0),
    player_id: str = "p1",
) -> FieldState:
    field_state = FieldState(tiles={Position.parse(t): f"tile-{t}" for t in tiles})
    for pos, name in (items or {}).items():
        field_state.items[Position.parse(pos)] = ItemEntity.from_dict({"name": name})
    if position is not None:
        field_state.player_positions[player_id] = position
    return field_state


def build_view(
    player: Optional[PlayerState] = None,
    field_state: Optional[FieldState] = None,
    move_to=(),
    place_tile=(),
    status: str = "started",
    turn_number: int = 1,
    turn_id: Optional[str] = "t1",
    deck_empty: bool = False,
) -> GameView:
    player = player or build_player()
    field_state = field_state or build_field(["0,0"])
    game = GameState(
        game_id="g1",
        status=status,
        turn_number=turn_number,
        current_player_id=player.id,
        current_turn_id=turn_id,
        available=AvailablePlaces(
            move_to=[Position.parse(p) for p in move_to],
            place_tile=[Position.parse(p) for p in place_tile],
        ),
        deck=DeckState(remaining_tiles=0 if deck_empty else 10, is_empty=deck_empty),
    )
    return GameView(
        game=game,
        player=player,
        field=field_state,
        position=field_state.player_positions.get(player.id),
        players={player.id: player},
    )


def ok(action: str, **response) -> ActionResult:
    return ActionResult(action, True, 200, response)


def rejected(action: str, status: int = 400, **response) -> ActionResult:
    return ActionResult(action, False, status, response)


class FakeSnapshot:
    """Returns queued views in order, repeating the last one."""

    def __init__(self, *views: GameView):
        self.views = list(views)
        self.loads = 0

    def load(self, game_id: str, player_id: str) -> GameView:
        self.loads += 1
        if len(self.views) > 1:
            return self.views.pop(0)
        return self.views[0]


@pytest.fixture
def actions():
    """ActionExecutor mock that accepts every call."""
    mock = MagicMock()
    for name in (
        "pick_tile", "place_tile", "move_player", "pick_item", "use_spell",
        "inventory_action", "finalize_battle", "end_turn",
    ):
        getattr(mock, name).return_value = ok(name)
    return mock


@pytest.fixture
def agent_config():
    return AgentConfig()


@pytest.fixture
def memory_store(agent_config):
    return TurnMemoryStore(agent_config)


@pytest.fixture
def memory():
    return TurnMemory()
