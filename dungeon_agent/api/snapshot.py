"""
Read-only view of a game as seen by one player.

The agent never queries the server piecemeal: it loads a GameView
(session state, the acting player, the field and the player's position)
through a WorldSnapshot provider and plans against that.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import requests

from .models import (
    AvailablePlaces,
    DeckState,
    FieldState,
    GameState,
    PlayerState,
    Position,
)

logger = logging.getLogger(__name__)


class GameApiError(Exception):
    """Base error for talking to the game server."""


class SnapshotError(GameApiError):
    """A game state could not be fetched or understood."""


@dataclass
class GameView:
    """Everything the planner needs about a game, for one player."""

    game: GameState
    player: PlayerState
    field: FieldState
    position: Optional[Position]
    players: dict[str, PlayerState] = field(default_factory=dict)

    @property
    def available(self) -> AvailablePlaces:
        return self.game.available

    @property
    def deck(self) -> DeckState:
        return self.game.deck


class WorldSnapshot(Protocol):
    """Provider of read-only game views."""

    def load(self, game_id: str, player_id: str) -> GameView:
        ...


def parse_game_view(game_id: str, player_id: str, payload: dict[str, Any]) -> GameView:
    """
    Build a GameView from a GET /game/{id} payload.

    Raises:
        SnapshotError: If the payload does not describe the requested player
    """
    if not isinstance(payload, dict):
        raise SnapshotError(f"Game {game_id}: expected an object, got {type(payload).__name__}")

    state = payload.get("state") or {}
    game = GameState.from_dict(game_id, state)
    field_state = FieldState.from_dict(payload.get("field"))

    players = {}
    for raw in payload.get("players") or []:
        if isinstance(raw, dict):
            player = PlayerState.from_dict(raw)
            players[player.id] = player

    if player_id not in players:
        raise SnapshotError(f"Game {game_id}: player {player_id} not found")

    return GameView(
        game=game,
        player=players[player_id],
        field=field_state,
        position=field_state.player_positions.get(player_id),
        players=players,
    )


class HttpWorldSnapshot:
    """
    WorldSnapshot backed by the game server's REST API.

    Example usage:
        snapshot = HttpWorldSnapshot("http://localhost:8080/api")
        view = snapshot.load(game_id, player_id)
        print(view.player.hp, view.position)
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the snapshot provider.

        Args:
            base_url: API root, e.g. http://localhost:8080/api
            timeout: Request timeout in seconds (None waits indefinitely)
            session: Optional shared requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, game_id: str) -> dict[str, Any]:
        """Fetch the raw game payload."""
        try:
            response = self.session.get(f"{self.base_url}/game/{game_id}", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch game {game_id}: {e}")
            raise SnapshotError(f"Failed to fetch game {game_id}: {e}") from e
        except ValueError as e:
            raise SnapshotError(f"Game {game_id}: invalid JSON: {e}") from e

    def load(self, game_id: str, player_id: str) -> GameView:
        return parse_game_view(game_id, player_id, self.fetch(game_id))

    def close(self) -> None:
        self.session.close()
