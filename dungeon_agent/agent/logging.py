"""
Logging for agent runs.

Creates timestamped log files for a run of the agent and provides
structured loggers for goal decisions, game actions and game state.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


class RunLogger:
    """
    Manages logging for a single agent run.

    Creates a timestamped log file and routes every logger to it for the
    duration of the run.
    """

    LOG_DIR = Path("./data/logs")

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize the run logger.

        Args:
            log_dir: Directory for log files (defaults to ./data/logs)
        """
        self.log_dir = log_dir or self.LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.run_id = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        self.log_file = self.log_dir / f"run_{self.run_id}.log"

        self._file_handler: Optional[logging.FileHandler] = None
        self._original_handlers: list[logging.Handler] = []
        self._original_level: int = logging.WARNING

    def setup(self) -> Path:
        """
        Set up logging for this run.

        Returns:
            Path to the log file
        """
        self._file_handler = logging.FileHandler(self.log_file, encoding="utf-8")
        self._file_handler.setLevel(logging.DEBUG)
        self._file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

        root_logger = logging.getLogger()
        self._original_handlers = root_logger.handlers.copy()
        self._original_level = root_logger.level

        # Keep console handlers, add the run file
        root_logger.addHandler(self._file_handler)
        root_logger.setLevel(logging.DEBUG)

        logging.getLogger("urllib3").setLevel(logging.WARNING)

        logger = logging.getLogger("agent.session")
        logger.info("=" * 80)
        logger.info(f"RUN STARTED: {self.run_id}")
        logger.info(f"Log file: {self.log_file}")
        logger.info("=" * 80)

        return self.log_file

    def teardown(self) -> None:
        """Clean up logging handlers."""
        logger = logging.getLogger("agent.session")
        logger.info("=" * 80)
        logger.info(f"RUN ENDED: {self.run_id}")
        logger.info("=" * 80)

        if self._file_handler:
            self._file_handler.close()

        root_logger = logging.getLogger()
        root_logger.handlers = self._original_handlers
        root_logger.setLevel(self._original_level)


class DecisionLogger:
    """Logger for goal decisions."""

    def __init__(self):
        self.logger = logging.getLogger("agent.decision")

    def log_goal(
        self,
        goal_type: str,
        target: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Log the goal chosen for a turn."""
        parts = [f"GOAL: {goal_type}"]
        if target:
            parts.append(f"target={target}")
        self.logger.info(" | ".join(parts))

        if reason:
            self.logger.info(f"  Reason: {reason}")

    def log_decision(self, decision: str, reason: str) -> None:
        self.logger.info(f"DECISION: {decision} | {reason}")


class ActionLogger:
    """Logger for calls against the game server."""

    def __init__(self, enabled: bool = True):
        self.logger = logging.getLogger("agent.action")
        self.enabled = enabled

    def log_action(self, action: str, success: bool, status_code: int,
                   details: Optional[dict[str, Any]] = None) -> None:
        if not self.enabled:
            return
        status = "OK" if success else "FAIL"
        suffix = f" {json.dumps(details, default=str)}" if details else ""
        self.logger.info(f"ACTION: {action} -> {status} [{status_code}]{suffix}")


class GameStateLogger:
    """Logger for game state at the start of a turn."""

    def __init__(self):
        self.logger = logging.getLogger("game.state")

    def log_state(
        self,
        turn: int,
        hp: int,
        max_hp: int,
        position: Optional[str],
        revision: Optional[str] = None,
    ) -> None:
        """Log current game state."""
        self.logger.debug(f"Turn {turn}: HP {hp}/{max_hp}, Pos {position}")
        if revision:
            self.logger.debug(f"  Map revision: {revision}")


# Global instance for the current run
_current_run: Optional[RunLogger] = None


def setup_run_logging(log_dir: Optional[Path] = None) -> Path:
    """
    Set up logging for a new run.

    Args:
        log_dir: Optional custom log directory

    Returns:
        Path to the log file
    """
    global _current_run

    if _current_run:
        _current_run.teardown()

    _current_run = RunLogger(log_dir)
    return _current_run.setup()


def teardown_run_logging() -> None:
    """Clean up logging for the current run."""
    global _current_run

    if _current_run:
        _current_run.teardown()
        _current_run = None


def get_log_file() -> Optional[Path]:
    """Get the path to the current log file."""
    if _current_run:
        return _current_run.log_file
    return None
