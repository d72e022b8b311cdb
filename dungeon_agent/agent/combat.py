"""
Combat risk estimation.

Battles are resolved by the game server: the player rolls two six-sided
dice, adds weapon damage (and any fireballs spent), and wins when the
total strictly exceeds the monster's HP. This module predicts that
outcome before the agent commits to walking onto a guarded cell.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from ..api.models import InventoryItem, ItemEntity, PlayerState
from ..config import StrategyProfile

logger = logging.getLogger(__name__)

# Expected value of two six-sided dice
BASE_DAMAGE = 7

DICE_SUMS = np.arange(2, 13)
# Exact 2d6 distribution: counts 1,2,3,4,5,6,5,4,3,2,1 over 36
DICE_COUNTS = np.convolve(np.ones(6, dtype=np.int64), np.ones(6, dtype=np.int64))
DICE_OUTCOMES = int(DICE_COUNTS.sum())

AGGRESSIVE_TOLERANCE = 0.7
BALANCED_TOLERANCE = 0.4


@dataclass(frozen=True)
class StrengthBreakdown:
    """Player damage split into its sources."""

    base: int = BASE_DAMAGE
    weapons: int = 0
    consumables: int = 0

    @classmethod
    def from_player(cls, player: PlayerState) -> "StrengthBreakdown":
        inventory = player.inventory
        return cls(
            base=BASE_DAMAGE,
            weapons=inventory.weapon_damage,
            consumables=sum(spell.damage for spell in inventory.fireballs),
        )

    @property
    def total(self) -> int:
        """Expected damage without spending consumables."""
        return self.base + self.weapons

    @property
    def total_with_consumables(self) -> int:
        return self.base + self.weapons + self.consumables


def consumable_weight(risk_tolerance: float) -> float:
    """How much a win that depends on spending fireballs counts."""
    if risk_tolerance >= AGGRESSIVE_TOLERANCE:
        return 1.0
    if risk_tolerance >= BALANCED_TOLERANCE:
        return 0.5
    return 0.0


def minimum_win_probability(risk_tolerance: float) -> float:
    """Lowest win probability a strategy accepts before engaging."""
    if risk_tolerance >= AGGRESSIVE_TOLERANCE:
        return 0.3
    if risk_tolerance >= BALANCED_TOLERANCE:
        return 0.5
    return 0.7


class CombatRiskEstimator:
    """
    Predicts battle outcomes from the exact two-dice distribution.

    Example usage:
        estimator = CombatRiskEstimator()

        strength = StrengthBreakdown.from_player(player)
        p = estimator.win_probability(monster_hp=9, strength=strength, risk_tolerance=0.7)

        if estimator.can_attempt(monster, player, strategy):
            ...
    """

    def win_probability(
        self,
        monster_hp: int,
        strength: StrengthBreakdown,
        risk_tolerance: float,
    ) -> float:
        """
        Probability of strictly exceeding the monster's HP.

        Wins that only happen when fireballs are spent are weighted by the
        risk tolerance: fully at >= 0.7, half at >= 0.4, ignored below.

        Args:
            monster_hp: Guard hit points
            strength: Player damage breakdown
            risk_tolerance: Strategy risk tolerance in [0, 1]

        Returns:
            Probability in [0, 1]
        """
        if monster_hp <= 0:
            return 1.0

        plain = DICE_SUMS + strength.weapons
        boosted = plain + strength.consumables

        plain_wins = DICE_COUNTS[plain > monster_hp].sum()
        consumable_wins = DICE_COUNTS[(plain <= monster_hp) & (boosted > monster_hp)].sum()

        weighted = plain_wins + consumable_weight(risk_tolerance) * consumable_wins
        return float(min(1.0, weighted / DICE_OUTCOMES))

    def can_attempt(
        self,
        monster: Union[ItemEntity, int],
        player: PlayerState,
        strategy: StrategyProfile,
    ) -> bool:
        """
        Whether the strategy accepts the risk of fighting this monster.

        Args:
            monster: Guarded item or a bare HP value
            player: Current player state
            strategy: Active strategy profile

        Returns:
            True if the win probability meets the strategy's minimum
        """
        if isinstance(monster, ItemEntity):
            if not monster.is_monster:
                return True
            monster_hp = monster.guard_hp
        else:
            monster_hp = monster

        if monster_hp <= 0:
            return True

        strength = StrengthBreakdown.from_player(player)
        probability = self.win_probability(monster_hp, strength, strategy.risk_tolerance)
        threshold = minimum_win_probability(strategy.risk_tolerance)
        logger.debug(
            f"Risk check: HP {monster_hp} vs strength {strength.total} "
            f"(+{strength.consumables} consumable) -> p={probability:.2f}, need {threshold}"
        )
        return probability >= threshold

    def effective_strength(self, player: PlayerState, strategy: StrategyProfile) -> int:
        """
        Expected damage used to compare against monster HP when choosing goals.

        Fireballs count only for strategies that are willing to spend them.
        """
        strength = StrengthBreakdown.from_player(player)
        if strategy.risk_tolerance >= AGGRESSIVE_TOLERANCE:
            return strength.total_with_consumables
        return strength.total


def select_consumables(damage_gap: int, available: list[InventoryItem]) -> list[InventoryItem]:
    """
    Fireballs to spend to close a battle's damage gap.

    Returns exactly `damage_gap` fireballs when that many are available,
    otherwise an empty list (spending some without winning wastes them).
    """
    if damage_gap <= 0:
        return []
    fireballs = [item for item in available if item.damage > 0 and item.type and item.type.is_spell]
    selected: list[InventoryItem] = []
    total = 0
    for fireball in fireballs:
        if total >= damage_gap:
            break
        selected.append(fireball)
        total += fireball.damage
    return selected if total >= damage_gap else []


def boss_within_reach(boss: Optional[ItemEntity], strength: int) -> bool:
    """Whether expected damage already meets the boss's HP."""
    return boss is not None and strength >= boss.guard_hp
