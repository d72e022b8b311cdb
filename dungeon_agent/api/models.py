"""
Data models for the dungeon game API.

These dataclasses represent the field, players, items and action outcomes
in a structured, type-safe way. Every model knows how to build itself from
the JSON payloads the game server returns, so the rest of the agent never
touches raw dictionaries.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TileSide(Enum):
    """Tile edges, clockwise from the top. +y points to BOTTOM."""

    TOP = 0
    RIGHT = 1
    BOTTOM = 2
    LEFT = 3

    @property
    def delta(self) -> tuple[int, int]:
        """Get (dx, dy) of the neighbouring cell behind this side."""
        deltas = {
            TileSide.TOP: (0, -1),
            TileSide.RIGHT: (1, 0),
            TileSide.BOTTOM: (0, 1),
            TileSide.LEFT: (-1, 0),
        }
        return deltas[self]

    @property
    def opposite(self) -> "TileSide":
        """The side facing this one on the adjacent tile."""
        return TileSide((self.value + 2) % 4)


@dataclass(frozen=True, order=True)
class Position:
    """A cell on the field, rendered as "x,y"."""

    x: int
    y: int

    @classmethod
    def parse(cls, value: Any) -> "Position":
        """
        Build a Position from "x,y", {"x": .., "y": ..}, a pair, or a Position.

        Raises:
            ValueError: If the value cannot be interpreted as a position
        """
        if isinstance(value, Position):
            return value
        if isinstance(value, str):
            parts = value.split(",")
            if len(parts) != 2:
                raise ValueError(f"Invalid position string: {value!r}")
            return cls(int(parts[0].strip()), int(parts[1].strip()))
        if isinstance(value, dict) and "x" in value and "y" in value:
            return cls(int(value["x"]), int(value["y"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(int(value[0]), int(value[1]))
        raise ValueError(f"Invalid position: {value!r}")

    def manhattan(self, other: "Position") -> int:
        """Manhattan distance - number of cardinal steps."""
        return abs(self.x - other.x) + abs(self.y - other.y)

    def adjacent(self) -> list["Position"]:
        """Get the 4 cardinal neighbours in TOP, RIGHT, BOTTOM, LEFT order."""
        return [self.neighbor(side) for side in TileSide]

    def neighbor(self, side: TileSide) -> "Position":
        """Get the cell behind the given side."""
        dx, dy = side.delta
        return Position(self.x + dx, self.y + dy)

    def side_towards(self, other: "Position") -> Optional[TileSide]:
        """Side of this cell that faces an adjacent cell, or None if not adjacent."""
        for side in TileSide:
            if self.neighbor(side) == other:
                return side
        return None

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y}

    def __str__(self) -> str:
        return f"{self.x},{self.y}"


ORIGIN = Position(0, 0)


def required_open_side(current: Position, target: Position) -> TileSide:
    """
    Side of a new tile at `target` that must be open towards `current`.

    Placing to the right (+x) needs the new tile's LEFT side open, placing
    below (+y) needs its TOP side open, and so on.
    """
    dx = target.x - current.x
    dy = target.y - current.y
    if dx > 0:
        return TileSide.LEFT
    if dx < 0:
        return TileSide.RIGHT
    if dy > 0:
        return TileSide.TOP
    if dy < 0:
        return TileSide.BOTTOM
    return TileSide.TOP


@dataclass(frozen=True)
class TileOrientation:
    """Open sides of a placed tile."""

    top: bool
    right: bool
    bottom: bool
    left: bool

    @classmethod
    def parse(cls, value: Any) -> "TileOrientation":
        """Parse "true,false,true,false" (top,right,bottom,left) or a list of flags."""
        if isinstance(value, str):
            flags = [part.strip().lower() == "true" for part in value.split(",")]
        else:
            flags = [bool(part) for part in value]
        if len(flags) != 4:
            raise ValueError(f"Invalid tile orientation: {value!r}")
        return cls(*flags)

    def is_open(self, side: TileSide) -> bool:
        return (self.top, self.right, self.bottom, self.left)[side.value]

    def __str__(self) -> str:
        return ",".join("true" if flag else "false" for flag in (self.top, self.right, self.bottom, self.left))


class ItemCategory(Enum):
    """Inventory partitions."""

    WEAPON = "weapon"
    SPELL = "spell"
    KEY = "key"
    TREASURE = "treasure"


class ItemType(Enum):
    """Reward types an item can carry."""

    KEY = "key"
    CHEST = "chest"
    RUBY_CHEST = "ruby_chest"
    DAGGER = "dagger"
    SWORD = "sword"
    AXE = "axe"
    FIREBALL = "fireball"
    TELEPORT = "teleport"

    @classmethod
    def parse(cls, value: Any) -> Optional["ItemType"]:
        """Convert a raw type string, returning None for unknown types."""
        if isinstance(value, ItemType):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return None

    @property
    def category(self) -> ItemCategory:
        if self in (ItemType.DAGGER, ItemType.SWORD, ItemType.AXE):
            return ItemCategory.WEAPON
        if self in (ItemType.FIREBALL, ItemType.TELEPORT):
            return ItemCategory.SPELL
        if self == ItemType.KEY:
            return ItemCategory.KEY
        return ItemCategory.TREASURE

    @property
    def damage(self) -> int:
        """Damage bonus this item adds in battle."""
        return ITEM_DAMAGE.get(self, 0)

    @property
    def rank(self) -> int:
        """Preference rank inside the item's category (higher is better)."""
        return ITEM_RANK.get(self, 0)

    @property
    def is_weapon(self) -> bool:
        return self.category == ItemCategory.WEAPON

    @property
    def is_spell(self) -> bool:
        return self.category == ItemCategory.SPELL

    @property
    def is_treasure(self) -> bool:
        return self.category == ItemCategory.TREASURE


ITEM_DAMAGE = {
    ItemType.DAGGER: 1,
    ItemType.SWORD: 2,
    ItemType.AXE: 3,
    ItemType.FIREBALL: 1,
}

# dagger < sword < axe, teleport < fireball
ITEM_RANK = {
    ItemType.DAGGER: 1,
    ItemType.SWORD: 2,
    ItemType.AXE: 3,
    ItemType.TELEPORT: 1,
    ItemType.FIREBALL: 2,
}

TREASURE_VALUES = {
    ItemType.CHEST: 2,
    ItemType.RUBY_CHEST: 3,
}

MONSTER_HP = {
    "giant_rat": 5,
    "giant_spider": 6,
    "mummy": 7,
    "skeleton_turnkey": 8,
    "skeleton_warrior": 9,
    "skeleton_king": 10,
    "fallen": 12,
    "dragon": 15,
    "treasure_chest": 0,
}

MONSTER_REWARDS = {
    "giant_rat": ItemType.DAGGER,
    "giant_spider": ItemType.TELEPORT,
    "mummy": ItemType.FIREBALL,
    "skeleton_turnkey": ItemType.KEY,
    "skeleton_warrior": ItemType.SWORD,
    "skeleton_king": ItemType.AXE,
    "fallen": ItemType.CHEST,
    "dragon": ItemType.RUBY_CHEST,
    "treasure_chest": ItemType.CHEST,
}

BOSS_NAME = "dragon"


@dataclass(frozen=True)
class ItemEntity:
    """
    An item lying on a field cell, possibly guarded by a monster.

    `name` identifies the guard (or "treasure_chest"), `type` is the reward
    the item turns into once claimed.
    """

    name: str
    type: Optional[ItemType]
    guard_hp: int = 0
    guard_defeated: bool = False
    locked: bool = False
    treasure_value: int = 0
    item_id: Optional[str] = None
    ends_game: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemEntity":
        name = str(data.get("name") or "")
        item_type = ItemType.parse(data.get("type")) or MONSTER_REWARDS.get(name)
        if "guardHP" in data:
            guard_hp = int(data.get("guardHP") or 0)
        else:
            guard_hp = MONSTER_HP.get(name, 0)
        guard_defeated = bool(data.get("guardDefeated", False))
        if "locked" in data:
            locked = bool(data["locked"])
        else:
            locked = True if guard_hp == 0 else not guard_defeated
        if data.get("treasureValue") is not None:
            treasure_value = int(data["treasureValue"])
        else:
            treasure_value = TREASURE_VALUES.get(item_type, 0) if item_type else 0
        return cls(
            name=name,
            type=item_type,
            guard_hp=guard_hp,
            guard_defeated=guard_defeated,
            locked=locked,
            treasure_value=treasure_value,
            item_id=data.get("itemId"),
            ends_game=bool(data.get("endsGame", item_type == ItemType.RUBY_CHEST)),
        )

    @property
    def is_monster(self) -> bool:
        """Guarded by a living monster."""
        return self.guard_hp > 0 and not self.guard_defeated

    @property
    def is_chest(self) -> bool:
        """Unguarded locked treasure that needs a key."""
        return self.guard_hp == 0 and self.treasure_value > 0 and self.locked

    @property
    def is_boss(self) -> bool:
        """The win-condition boss."""
        return self.name == BOSS_NAME or (self.type == ItemType.RUBY_CHEST and self.guard_hp > 0)

    @property
    def category(self) -> Optional[ItemCategory]:
        return self.type.category if self.type else None

    @property
    def reward_rank(self) -> int:
        return self.type.rank if self.type else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value if self.type else None,
            "guardHP": self.guard_hp,
            "guardDefeated": self.guard_defeated,
            "treasureValue": self.treasure_value,
            "itemId": self.item_id,
            "endsGame": self.ends_game,
        }


@dataclass(frozen=True)
class InventoryItem:
    """An item held by a player."""

    item_id: str
    name: str
    type: Optional[ItemType]
    treasure_value: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InventoryItem":
        name = str(data.get("name") or "")
        item_type = ItemType.parse(data.get("type")) or MONSTER_REWARDS.get(name)
        return cls(
            item_id=str(data.get("itemId") or data.get("id") or ""),
            name=name,
            type=item_type,
            treasure_value=int(data.get("treasureValue") or 0),
        )

    @property
    def rank(self) -> int:
        return self.type.rank if self.type else 0

    @property
    def damage(self) -> int:
        return self.type.damage if self.type else 0


INVENTORY_LIMITS = {
    ItemCategory.WEAPON: 2,
    ItemCategory.SPELL: 3,
    ItemCategory.KEY: 1,
}


@dataclass
class Inventory:
    """A player's items, partitioned by category."""

    keys: list[InventoryItem] = field(default_factory=list)
    weapons: list[InventoryItem] = field(default_factory=list)
    spells: list[InventoryItem] = field(default_factory=list)
    treasures: list[InventoryItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Inventory":
        data = data or {}

        def items(*keys: str) -> list[InventoryItem]:
            for key in keys:
                raw = data.get(key)
                if raw:
                    return [InventoryItem.from_dict(item) for item in raw if isinstance(item, dict)]
            return []

        return cls(
            keys=items("keys", "key"),
            weapons=items("weapons", "weapon"),
            spells=items("spells", "spell"),
            treasures=items("treasures", "treasure"),
        )

    def items(self, category: ItemCategory) -> list[InventoryItem]:
        return {
            ItemCategory.WEAPON: self.weapons,
            ItemCategory.SPELL: self.spells,
            ItemCategory.KEY: self.keys,
            ItemCategory.TREASURE: self.treasures,
        }[category]

    def is_full(self, category: ItemCategory) -> bool:
        limit = INVENTORY_LIMITS.get(category)
        return limit is not None and len(self.items(category)) >= limit

    @property
    def has_key(self) -> bool:
        return len(self.keys) > 0

    @property
    def weapon_damage(self) -> int:
        return sum(weapon.damage for weapon in self.weapons)

    @property
    def fireballs(self) -> list[InventoryItem]:
        return [spell for spell in self.spells if spell.type == ItemType.FIREBALL]

    @property
    def treasure_value(self) -> int:
        return sum(item.treasure_value for item in self.treasures)


MAX_HP = 5


@dataclass
class PlayerState:
    """A player as seen by the agent."""

    id: str
    hp: int
    max_hp: int = MAX_HP
    defeated: bool = False
    inventory: Inventory = field(default_factory=Inventory)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerState":
        return cls(
            id=str(data.get("id", "")),
            hp=int(data.get("hp", MAX_HP)),
            max_hp=int(data.get("maxHp", MAX_HP)),
            defeated=bool(data.get("defeated", False)),
            inventory=Inventory.from_dict(data.get("inventory")),
        )

    @property
    def is_stunned(self) -> bool:
        """Knocked out for this turn but still in the game."""
        return self.hp <= 0 and not self.defeated

    @property
    def needs_healing(self) -> bool:
        return self.hp < self.max_hp


@dataclass
class AvailablePlaces:
    """Cells the acting player may move to or place a tile on."""

    move_to: list[Position] = field(default_factory=list)
    place_tile: list[Position] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "AvailablePlaces":
        data = data or {}
        return cls(
            move_to=_parse_positions(data.get("moveTo")),
            place_tile=_parse_positions(data.get("placeTile")),
        )


@dataclass
class DeckState:
    """Remaining tile deck."""

    remaining_tiles: int = 0
    is_empty: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "DeckState":
        data = data or {}
        return cls(
            remaining_tiles=int(data.get("remainingTiles", 0)),
            is_empty=bool(data.get("isEmpty", False)),
        )


class GameStatus(Enum):
    LOBBY = "lobby"
    STARTED = "started"
    TURN_IN_PROGRESS = "turn_in_progress"
    FINISHED = "finished"


@dataclass
class GameState:
    """Session-level state of a game."""

    game_id: str
    status: str = GameStatus.STARTED.value
    turn_number: int = 0
    current_player_id: Optional[str] = None
    current_turn_id: Optional[str] = None
    available: AvailablePlaces = field(default_factory=AvailablePlaces)
    deck: DeckState = field(default_factory=DeckState)

    @classmethod
    def from_dict(cls, game_id: str, data: dict[str, Any]) -> "GameState":
        return cls(
            game_id=game_id,
            status=str(data.get("status", GameStatus.STARTED.value)),
            turn_number=int(data.get("turn") or 0),
            current_player_id=data.get("currentPlayerId") or None,
            current_turn_id=data.get("currentTurnId") or None,
            available=AvailablePlaces.from_dict(data.get("availablePlaces")),
            deck=DeckState.from_dict(data.get("deck")),
        )

    @property
    def is_finished(self) -> bool:
        return self.status == GameStatus.FINISHED.value


HEALING_FEATURE = "healing_fountain"


@dataclass
class FieldState:
    """
    The revealed map: placed tiles, their open sides, and items on them.

    Acts as the traversal graph for pathfinding. Cells that are not in
    `tiles` are unrevealed and cannot be entered.
    """

    tiles: dict[Position, str] = field(default_factory=dict)
    orientations: dict[Position, TileOrientation] = field(default_factory=dict)
    features: dict[Position, list[str]] = field(default_factory=dict)
    items: dict[Position, ItemEntity] = field(default_factory=dict)
    player_positions: dict[str, Position] = field(default_factory=dict)
    healing_positions: set[Position] = field(default_factory=set)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "FieldState":
        data = data or {}
        tiles: dict[Position, str] = {}
        features: dict[Position, list[str]] = {}
        for tile in data.get("tiles") or []:
            pos = Position.parse(tile.get("position") or tile)
            tiles[pos] = str(tile.get("tileId", ""))
            if tile.get("features"):
                features[pos] = [str(feature) for feature in tile["features"]]

        orientations = {
            Position.parse(key): TileOrientation.parse(value)
            for key, value in (data.get("tileOrientations") or {}).items()
        }
        items = {
            Position.parse(key): ItemEntity.from_dict(value)
            for key, value in (data.get("items") or {}).items()
            if isinstance(value, dict)
        }
        player_positions = {
            str(player_id): Position.parse(value)
            for player_id, value in (data.get("playerPositions") or {}).items()
        }
        return cls(
            tiles=tiles,
            orientations=orientations,
            features=features,
            items=items,
            player_positions=player_positions,
            healing_positions=set(_parse_positions(data.get("healingFountainPositions"))),
        )

    def has_tile(self, pos: Position) -> bool:
        return pos in self.tiles

    def neighbors(self, pos: Position) -> set[Position]:
        """
        Cells reachable in one step from `pos`.

        With a known orientation an edge exists only when both facing sides
        are open (an unknown neighbour orientation counts as open). Without
        orientation data, falls back to grid-adjacent placed cells.
        """
        orientation = self.orientations.get(pos)
        result = set()
        for side in TileSide:
            other = pos.neighbor(side)
            if other not in self.tiles:
                continue
            if orientation is not None:
                if not orientation.is_open(side):
                    continue
                other_orientation = self.orientations.get(other)
                if other_orientation is not None and not other_orientation.is_open(side.opposite):
                    continue
            result.add(other)
        return result

    def is_frontier(self, pos: Position) -> bool:
        """A placed cell with at least one cardinal neighbour still unrevealed."""
        return any(other not in self.tiles for other in pos.adjacent())

    def is_healing(self, pos: Position) -> bool:
        """The origin always heals; other cells heal via a fountain feature."""
        if pos == ORIGIN or pos in self.healing_positions:
            return True
        return HEALING_FEATURE in self.features.get(pos, [])

    def healing_cells(self) -> list[Position]:
        cells = {ORIGIN} | set(self.healing_positions)
        cells |= {pos for pos, feats in self.features.items() if HEALING_FEATURE in feats}
        return sorted(cells)

    def item_at(self, pos: Position) -> Optional[ItemEntity]:
        return self.items.get(pos)

    def monsters(self) -> dict[Position, ItemEntity]:
        return {pos: item for pos, item in self.items.items() if item.is_monster}

    def chests(self) -> dict[Position, ItemEntity]:
        return {pos: item for pos, item in self.items.items() if item.is_chest}

    def boss(self) -> Optional[tuple[Position, ItemEntity]]:
        for pos, item in sorted(self.items.items()):
            if item.is_boss and item.is_monster:
                return pos, item
        return None

    def revision(self) -> str:
        """Fingerprint of the placed-tile set; changes whenever a tile is added."""
        payload = json.dumps(sorted((str(pos), tile_id) for pos, tile_id in self.tiles.items()))
        return hashlib.md5(payload.encode("utf-8")).hexdigest()


class BattleResult(Enum):
    WIN = "win"
    LOSE = "lose"
    DRAW = "draw"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "BattleResult":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class BattleInfo:
    """Outcome of a battle triggered by moving onto a guarded item."""

    battle_id: Optional[str]
    result: BattleResult
    position: Optional[Position] = None
    monster_hp: int = 0
    monster_type: str = ""
    dice_total: int = 0
    total_damage: int = 0
    needs_consumable_confirmation: bool = False
    available_consumables: list[InventoryItem] = field(default_factory=list)
    reward: Optional[InventoryItem] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BattleInfo":
        position = data.get("position")
        reward = data.get("reward")
        dice = data.get("diceResults") or []
        return cls(
            battle_id=data.get("battleId"),
            result=BattleResult.parse(data.get("result")),
            position=Position.parse(position) if position else None,
            monster_hp=int(data.get("monster") or 0),
            monster_type=str(data.get("monsterType") or ""),
            dice_total=int(data.get("diceRollDamage") or sum(int(d) for d in dice)),
            total_damage=int(data.get("totalDamage") or 0),
            needs_consumable_confirmation=bool(data.get("needsConsumableConfirmation", False)),
            available_consumables=[
                InventoryItem.from_dict(item)
                for item in data.get("availableConsumables") or []
                if isinstance(item, dict)
            ],
            reward=InventoryItem.from_dict(reward) if isinstance(reward, dict) else None,
        )

    @property
    def damage_gap(self) -> int:
        """Extra damage needed to strictly exceed the monster's HP."""
        return max(0, self.monster_hp - self.total_damage + 1)


@dataclass
class ItemInfo:
    """An item found on a cell after moving there without a battle."""

    position: Optional[Position]
    item: ItemEntity
    requires_key: bool = False
    has_key: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemInfo":
        position = data.get("position")
        return cls(
            position=Position.parse(position) if position else None,
            item=ItemEntity.from_dict(data.get("item") or {}),
            requires_key=bool(data.get("requiresKey", False)),
            has_key=bool(data.get("hasKey", False)),
        )


@dataclass
class ActionResult:
    """Outcome of a mutating call against the game server."""

    action: str
    success: bool
    status_code: int
    response: dict[str, Any] = field(default_factory=dict)
    error: str = ""

    def flag(self, name: str) -> bool:
        return bool(self.response.get(name, False))

    @property
    def battle_info(self) -> Optional[BattleInfo]:
        data = self.response.get("battleInfo")
        return BattleInfo.from_dict(data) if isinstance(data, dict) else None

    @property
    def item_info(self) -> Optional[ItemInfo]:
        data = self.response.get("itemInfo")
        return ItemInfo.from_dict(data) if isinstance(data, dict) else None

    @property
    def inventory_full(self) -> bool:
        return self.flag("inventoryFull")

    @property
    def is_room(self) -> bool:
        """For place-tile: whether the placed tile is a room (ends a corridor chain)."""
        tile = self.response.get("tile")
        if isinstance(tile, dict) and "room" in tile:
            return bool(tile["room"])
        return True

    def summary(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "statusCode": self.status_code}
        if self.error:
            data["error"] = self.error
        return data


def _parse_positions(values: Any) -> list[Position]:
    if not values:
        return []
    result = []
    for value in values:
        try:
            result.append(Position.parse(value))
        except ValueError:
            continue
    return result
