"""
Action client for the dungeon game server.

Issues the same POST calls the game's web frontend makes for a human
player. Every call returns an ActionResult; transport failures are
turned into unsuccessful results instead of exceptions so the turn
executor can treat them as action rejections.
"""

import logging
from typing import Any, Optional, Protocol

import requests

from .models import ActionResult, InventoryItem, Position, TileSide

logger = logging.getLogger(__name__)

CREATED = (200, 201)
OK = (200,)


class ActionExecutor(Protocol):
    """Mutating game actions available to a player."""

    def pick_tile(self, game_id: str, tile_id: str, player_id: str, turn_id: str,
                  required_open_side: TileSide, position: Position) -> ActionResult:
        ...

    def place_tile(self, game_id: str, tile_id: str, player_id: str, turn_id: str,
                   position: Position) -> ActionResult:
        ...

    def move_player(self, game_id: str, player_id: str, turn_id: str, from_position: Position,
                    to_position: Position, is_tile_placement_move: bool = False) -> ActionResult:
        ...

    def pick_item(self, game_id: str, player_id: str, turn_id: str, position: Position,
                  replace_item_id: Optional[str] = None) -> ActionResult:
        ...

    def use_spell(self, game_id: str, player_id: str, turn_id: str, spell_id: str,
                  target: Optional[Position] = None) -> ActionResult:
        ...

    def inventory_action(self, game_id: str, player_id: str, turn_id: str, action: str,
                         item: Optional[dict[str, Any]] = None,
                         replace_item_id: Optional[str] = None) -> ActionResult:
        ...

    def finalize_battle(self, game_id: str, player_id: str, turn_id: str, battle_id: str,
                        selected_consumable_ids: list[str], pickup_item: bool,
                        replace_item_id: Optional[str] = None) -> ActionResult:
        ...

    def end_turn(self, game_id: str, player_id: str, turn_id: str) -> ActionResult:
        ...


class GameApiClient:
    """
    HTTP implementation of ActionExecutor.

    Example usage:
        client = GameApiClient("http://localhost:8080/api")

        result = client.move_player(game_id, player_id, turn_id, Position(0, 0), Position(1, 0))
        if result.success and result.battle_info:
            ...

        client.end_turn(game_id, player_id, turn_id)
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. http://localhost:8080/api
            timeout: Request timeout in seconds (None waits indefinitely)
            session: Optional shared requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.session.close()

    def _post(self, action: str, path: str, payload: dict[str, Any],
              success_codes: tuple[int, ...] = OK) -> ActionResult:
        """POST a JSON payload and wrap the outcome."""
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"{action} failed: {e}")
            return ActionResult(action, False, 0, {}, error=str(e))

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        success = response.status_code in success_codes
        if not success:
            logger.warning(f"{action} rejected with HTTP {response.status_code}: {body.get('error', '')}")
        return ActionResult(action, success, response.status_code, body, error=str(body.get("error", "")))

    def pick_tile(self, game_id: str, tile_id: str, player_id: str, turn_id: str,
                  required_open_side: TileSide, position: Position) -> ActionResult:
        return self._post("pick_tile", "game/pick-tile", {
            "gameId": game_id,
            "tileId": tile_id,
            "playerId": player_id,
            "turnId": turn_id,
            "requiredOpenSide": required_open_side.value,
            "fieldPlace": position.to_dict(),
        }, CREATED)

    def place_tile(self, game_id: str, tile_id: str, player_id: str, turn_id: str,
                   position: Position) -> ActionResult:
        return self._post("place_tile", "game/place-tile", {
            "gameId": game_id,
            "tileId": tile_id,
            "playerId": player_id,
            "turnId": turn_id,
            "fieldPlace": str(position),
        }, CREATED)

    def move_player(self, game_id: str, player_id: str, turn_id: str, from_position: Position,
                    to_position: Position, is_tile_placement_move: bool = False) -> ActionResult:
        return self._post("move_player", "game/move-player", {
            "gameId": game_id,
            "playerId": player_id,
            "turnId": turn_id,
            "fromPosition": str(from_position),
            "toPosition": str(to_position),
            "ignoreMonster": False,
            "isTilePlacementMove": is_tile_placement_move,
        }, CREATED)

    def pick_item(self, game_id: str, player_id: str, turn_id: str, position: Position,
                  replace_item_id: Optional[str] = None) -> ActionResult:
        payload: dict[str, Any] = {
            "gameId": game_id,
            "playerId": player_id,
            "turnId": turn_id,
            "position": str(position),
        }
        if replace_item_id:
            payload["itemIdToReplace"] = replace_item_id
        return self._post("pick_item", "game/pick-item", payload, CREATED)

    def use_spell(self, game_id: str, player_id: str, turn_id: str, spell_id: str,
                  target: Optional[Position] = None) -> ActionResult:
        payload: dict[str, Any] = {
            "gameId": game_id,
            "playerId": player_id,
            "turnId": turn_id,
            "spellId": spell_id,
        }
        if target is not None:
            payload["targetPosition"] = target.to_dict()
        return self._post("use_spell", "game/use-spell", payload)

    def inventory_action(self, game_id: str, player_id: str, turn_id: str, action: str,
                         item: Optional[dict[str, Any]] = None,
                         replace_item_id: Optional[str] = None) -> ActionResult:
        payload: dict[str, Any] = {
            "gameId": game_id,
            "playerId": player_id,
            "turnId": turn_id,
            "action": action,
        }
        if item is not None:
            payload["item"] = item
        if action == "replace" and replace_item_id:
            payload["itemIdToReplace"] = replace_item_id
        return self._post("inventory_action", "game/inventory-action", payload)

    def finalize_battle(self, game_id: str, player_id: str, turn_id: str, battle_id: str,
                        selected_consumable_ids: list[str], pickup_item: bool,
                        replace_item_id: Optional[str] = None) -> ActionResult:
        payload: dict[str, Any] = {
            "gameId": game_id,
            "playerId": player_id,
            "turnId": turn_id,
            "battleId": battle_id,
            "selectedConsumableIds": list(selected_consumable_ids),
            "pickupItem": pickup_item,
        }
        if replace_item_id:
            payload["replaceItemId"] = replace_item_id
        return self._post("finalize_battle", "game/finalize-battle", payload)

    def end_turn(self, game_id: str, player_id: str, turn_id: str) -> ActionResult:
        return self._post("end_turn", "game/end-turn", {
            "gameId": game_id,
            "playerId": player_id,
            "turnId": turn_id,
        })


def item_payload(item: InventoryItem) -> dict[str, Any]:
    """Inventory item in the shape inventory-action expects."""
    return {
        "itemId": item.item_id,
        "name": item.name,
        "type": item.type.value if item.type else None,
        "treasureValue": item.treasure_value,
    }
