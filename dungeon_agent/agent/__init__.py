"""Agent decision making - goals, combat risk, inventory policy and turn execution."""

from .combat import CombatRiskEstimator, StrengthBreakdown, select_consumables
from .executor import ActionEntry, ActionLog, TurnExecutor, TurnResult
from .goals import ExplorationChoice, Goal, GoalArbiter, GoalType
from .inventory import PickupDecision, find_replacement, is_weapon_upgrade, should_pickup
from .manager import AgentPlayer, AgentPlayerManager, GameRunSummary

__all__ = [
    # Combat
    "CombatRiskEstimator",
    "StrengthBreakdown",
    "select_consumables",
    # Inventory
    "PickupDecision",
    "find_replacement",
    "is_weapon_upgrade",
    "should_pickup",
    # Goals
    "ExplorationChoice",
    "Goal",
    "GoalArbiter",
    "GoalType",
    # Turn execution
    "ActionEntry",
    "ActionLog",
    "TurnExecutor",
    "TurnResult",
    # Manager
    "AgentPlayer",
    "AgentPlayerManager",
    "GameRunSummary",
]
