"""Configuration management for the dungeon agent."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyProfile:
    """
    Named play style.

    Controls how much risk the agent accepts in battle, when it goes
    looking for a healing cell, and how it expands the map.
    """

    name: str
    risk_tolerance: float
    healing_threshold: int
    prefer_battles: bool = False
    prefer_treasures: bool = False
    inventory_priority: tuple[str, ...] = ("weapon", "key", "spell")
    description: str = ""


STRATEGIES: dict[str, StrategyProfile] = {
    "aggressive": StrategyProfile(
        name="aggressive",
        risk_tolerance=0.9,
        healing_threshold=1,
        prefer_battles=True,
        prefer_treasures=False,
        inventory_priority=("weapon", "spell", "key"),
        description="Seeks battles and takes high risks for rewards",
    ),
    "defensive": StrategyProfile(
        name="defensive",
        risk_tolerance=0.3,
        healing_threshold=3,
        prefer_battles=False,
        prefer_treasures=True,
        inventory_priority=("spell", "weapon", "key"),
        description="Avoids risky battles and prioritizes survival",
    ),
    "treasure_hunter": StrategyProfile(
        name="treasure_hunter",
        risk_tolerance=0.8,
        healing_threshold=2,
        prefer_battles=False,
        prefer_treasures=True,
        inventory_priority=("key", "weapon", "spell"),
        description="Focuses on collecting treasures and keys",
    ),
    "balanced": StrategyProfile(
        name="balanced",
        risk_tolerance=0.7,
        healing_threshold=2,
        prefer_battles=False,
        prefer_treasures=True,
        inventory_priority=("weapon", "key", "spell"),
        description="Balanced approach between combat and exploration",
    ),
    "speedrun": StrategyProfile(
        name="speedrun",
        risk_tolerance=0.95,
        healing_threshold=1,
        prefer_battles=True,
        prefer_treasures=True,
        inventory_priority=("key", "weapon", "spell"),
        description="Rushes for the win with maximum aggression",
    ),
}

DEFAULT_STRATEGY = "balanced"


def get_strategy(name: Optional[str]) -> StrategyProfile:
    """Look up a strategy profile, falling back to balanced for unknown names."""
    if name and name in STRATEGIES:
        return STRATEGIES[name]
    if name:
        logger.warning(f"Unknown strategy '{name}', defaulting to {DEFAULT_STRATEGY}")
    return STRATEGIES[DEFAULT_STRATEGY]


def available_strategies() -> list[str]:
    return list(STRATEGIES)


@dataclass
class AgentConfig:
    """Turn planning settings."""

    strategy: str = DEFAULT_STRATEGY

    # Per-turn budgets
    max_moves_per_turn: int = 4
    max_actions_per_turn: int = 30
    max_tiles_per_sequence: int = 5

    # Cross-turn memory
    stall_turns_threshold: int = 2
    reset_interval_turns: int = 5
    recent_positions: int = 5
    exploration_history_limit: int = 10

    # Planning
    path_iteration_cap: int = 1000
    critical_hp: int = 1

    # Game loop (play command)
    max_game_turns: int = 100


@dataclass
class ServerConfig:
    """Game server connection."""

    base_url: str = "http://localhost:8080/api"
    # None = no per-call timeout
    timeout: Optional[float] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = "./data/agent.log"
    log_actions: bool = True


@dataclass
class Config:
    """Main configuration container."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file. Defaults to config/default.yaml

    Returns:
        Populated Config dataclass
    """
    if config_path is None:
        # Look for config in standard locations
        candidates = [
            Path("config/default.yaml"),
            Path(__file__).parent.parent / "config" / "default.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                config_path = str(candidate)
                break

    config = Config()

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            data = yaml.safe_load(f)

        if data:
            if "agent" in data:
                config.agent = AgentConfig(**data["agent"])
            if "server" in data:
                config.server = ServerConfig(**data["server"])
            if "logging" in data:
                config.logging = LoggingConfig(**data["logging"])

    # Environment variable overrides
    if os.environ.get("DUNGEON_AGENT_STRATEGY"):
        config.agent.strategy = os.environ["DUNGEON_AGENT_STRATEGY"]
    if os.environ.get("DUNGEON_AGENT_BASE_URL"):
        config.server.base_url = os.environ["DUNGEON_AGENT_BASE_URL"]
    if os.environ.get("DUNGEON_AGENT_LOG_LEVEL"):
        config.logging.level = os.environ["DUNGEON_AGENT_LOG_LEVEL"]

    return config


def setup_logging(config: LoggingConfig) -> None:
    """
    Configure logging based on configuration.

    Args:
        config: Logging configuration
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.file:
        # Ensure log directory exists
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger.info(f"Logging configured at level {config.level}")
