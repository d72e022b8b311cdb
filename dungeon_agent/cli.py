"""
Command-line interface for the dungeon agent.

Usage:
    python -m dungeon_agent.cli strategies                      List strategy profiles
    python -m dungeon_agent.cli turn GAME PLAYER                Play one turn
    python -m dungeon_agent.cli play GAME PLAYER [PLAYER ...]   Play until the game ends
"""

import argparse
import json
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from dungeon_agent.agent.executor import TurnResult
from dungeon_agent.agent.logging import setup_run_logging, teardown_run_logging
from dungeon_agent.agent.manager import AgentPlayerManager
from dungeon_agent.api.client import GameApiClient
from dungeon_agent.api.snapshot import HttpWorldSnapshot
from dungeon_agent.config import STRATEGIES, Config, load_config, setup_logging

logger = logging.getLogger(__name__)

console = Console()


def build_manager(config: Config) -> AgentPlayerManager:
    """Wire the HTTP snapshot and action client into a player manager."""
    snapshot = HttpWorldSnapshot(config.server.base_url, timeout=config.server.timeout)
    client = GameApiClient(config.server.base_url, timeout=config.server.timeout)
    return AgentPlayerManager(snapshot, client, config.agent, log_actions=config.logging.log_actions)


def render_turn(result: TurnResult) -> Table:
    table = Table(title=f"Turn {result.turn_id or '-'} for {result.player_id}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Details")

    for i, entry in enumerate(result.actions, 1):
        details = ", ".join(f"{k}={v}" for k, v in entry.details.items())
        table.add_row(str(i), entry.type, details)
    return table


def cmd_strategies(args: argparse.Namespace) -> int:
    """List the strategy profiles."""
    table = Table(title="Strategies")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Risk", justify="right")
    table.add_column("Heal at HP", justify="right")
    table.add_column("Battles")
    table.add_column("Description")

    for profile in STRATEGIES.values():
        table.add_row(
            profile.name,
            f"{profile.risk_tolerance:.2f}",
            str(profile.healing_threshold),
            "yes" if profile.prefer_battles else "no",
            profile.description,
        )
    console.print(table)
    return 0


def cmd_turn(args: argparse.Namespace) -> int:
    """Play a single turn for one player."""
    manager = build_manager(args.config_obj)
    manager.register(args.game_id, args.player_id, args.strategy)

    result = manager.execute_turn(args.game_id, args.player_id)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        console.print(render_turn(result))
        if result.fault:
            console.print(f"[red]Fault:[/red] {result.fault}")
    return 0 if result.ok else 1


def cmd_play(args: argparse.Namespace) -> int:
    """Play agent turns until the game ends or the turn limit is hit."""
    log_file = setup_run_logging()
    console.print(f"Logging to {log_file}")

    try:
        manager = build_manager(args.config_obj)
        for player_id in args.player_ids:
            manager.register(args.game_id, player_id, args.strategy)

        summary = manager.run_game(args.game_id, max_turns=args.max_turns)
    finally:
        teardown_run_logging()

    table = Table(title=f"Game {args.game_id}")
    table.add_column("Player", style="cyan")
    table.add_column("Turn", justify="right")
    table.add_column("Moves", justify="right")
    table.add_column("Goal")
    table.add_column("Fault", style="red")
    for result in summary.results:
        table.add_row(
            result.player_id,
            str(result.turn_id or "-"),
            str(result.moves),
            result.goal.type.name if result.goal else "-",
            result.fault or "",
        )
    console.print(table)
    console.print(
        f"Agent turns: {summary.agent_turns}  Game ended: {summary.game_ended}  Errors: {len(summary.errors)}"
    )
    return 0 if not summary.errors else 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Dungeon Agent - An autonomous player for the dungeon tile game",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        "-l",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level override",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # strategies command
    strategies_parser = subparsers.add_parser("strategies", help="List strategy profiles")
    strategies_parser.set_defaults(func=cmd_strategies)

    # turn command
    turn_parser = subparsers.add_parser("turn", help="Play one turn for a player")
    turn_parser.add_argument("game_id", help="Game id")
    turn_parser.add_argument("player_id", help="Player id")
    turn_parser.add_argument(
        "--strategy",
        "-s",
        type=str,
        default=None,
        choices=sorted(STRATEGIES),
        help="Strategy profile (defaults to the configured one)",
    )
    turn_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the turn result as JSON",
    )
    turn_parser.set_defaults(func=cmd_turn)

    # play command
    play_parser = subparsers.add_parser("play", help="Play agent turns until the game ends")
    play_parser.add_argument("game_id", help="Game id")
    play_parser.add_argument("player_ids", nargs="+", help="Agent-controlled player ids")
    play_parser.add_argument(
        "--strategy",
        "-s",
        type=str,
        default=None,
        choices=sorted(STRATEGIES),
        help="Strategy profile for every agent player",
    )
    play_parser.add_argument(
        "--max-turns",
        "-n",
        type=int,
        default=None,
        help="Stop after this many loop iterations",
    )
    play_parser.set_defaults(func=cmd_play)

    args = parser.parse_args(argv)

    # Load config and set up logging
    config = load_config(args.config)
    if args.log_level:
        config.logging.level = args.log_level
    setup_logging(config.logging)

    if args.command is None:
        parser.print_help()
        return 1

    args.config_obj = config
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
