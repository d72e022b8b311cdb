"""Game server access - wire models, world snapshots, actions and pathfinding."""

from .client import ActionExecutor, GameApiClient, item_payload
from .models import (
    ORIGIN,
    ActionResult,
    BattleInfo,
    BattleResult,
    FieldState,
    GameState,
    Inventory,
    InventoryItem,
    ItemEntity,
    ItemInfo,
    ItemType,
    PlayerState,
    Position,
    TileSide,
    required_open_side,
)
from .pathfinding import PathPlanner, PathResult, PathStopReason
from .snapshot import GameApiError, GameView, HttpWorldSnapshot, SnapshotError, WorldSnapshot

__all__ = [
    # Models
    "ORIGIN",
    "ActionResult",
    "BattleInfo",
    "BattleResult",
    "FieldState",
    "GameState",
    "Inventory",
    "InventoryItem",
    "ItemEntity",
    "ItemInfo",
    "ItemType",
    "PlayerState",
    "Position",
    "TileSide",
    "required_open_side",
    # Pathfinding
    "PathPlanner",
    "PathResult",
    "PathStopReason",
    # Snapshot
    "GameApiError",
    "GameView",
    "HttpWorldSnapshot",
    "SnapshotError",
    "WorldSnapshot",
    # Actions
    "ActionExecutor",
    "GameApiClient",
    "item_payload",
]
