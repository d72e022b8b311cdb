"""
Inventory priority helpers.

Decides whether a found or won item is worth claiming and, when the
matching inventory slot is full, which held item to give up for it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..api.models import Inventory, InventoryItem, ItemCategory, ItemEntity, ItemType

logger = logging.getLogger(__name__)

MAX_AXES = 2


@dataclass
class PickupDecision:
    """Whether to claim an item, and what to evict for it."""

    take: bool
    reason: str
    replace: Optional[InventoryItem] = None

    def __bool__(self) -> bool:
        return self.take


def weakest(items: list[InventoryItem]) -> Optional[InventoryItem]:
    """Lowest-ranked item; the first one held wins ties."""
    if not items:
        return None
    return min(items, key=lambda item: item.rank)


def find_replacement(inventory: Inventory, new_type: Optional[ItemType]) -> Optional[InventoryItem]:
    """
    Held item that a new item of `new_type` strictly outranks.

    Only weapons and spells are replaceable. Returns the weakest candidate.
    """
    if new_type is None or not (new_type.is_weapon or new_type.is_spell):
        return None
    candidate = weakest(inventory.items(new_type.category))
    if candidate is not None and new_type.rank > candidate.rank:
        return candidate
    return None


def is_weapon_upgrade(inventory: Inventory, reward: Optional[ItemType]) -> bool:
    """Whether a weapon reward would improve the current loadout."""
    if reward is None or not reward.is_weapon:
        return False
    axes = sum(1 for weapon in inventory.weapons if weapon.type == ItemType.AXE)
    if axes >= MAX_AXES:
        return False
    if not inventory.is_full(ItemCategory.WEAPON):
        return True
    return find_replacement(inventory, reward) is not None


def should_pickup(item: ItemEntity, inventory: Inventory) -> PickupDecision:
    """
    Pickup policy for an item the player is standing on.

    Treasure is always claimed. Weapons when there is room or they
    outrank the worst held weapon. Keys only when none is held. Spells
    when there is room or they outrank the weakest held spell.
    """
    item_type = item.type
    if item_type is None:
        return PickupDecision(False, f"Unknown item '{item.name}'")

    if item_type.is_treasure:
        return PickupDecision(True, f"Treasure ({item_type.value}) is the win condition")

    if item_type == ItemType.KEY:
        if inventory.has_key:
            return PickupDecision(False, "Already holding a key")
        return PickupDecision(True, "Key needed to open chests")

    category = item_type.category
    if not inventory.is_full(category):
        return PickupDecision(True, f"Free {category.value} slot for {item_type.value}")

    if item_type.is_weapon and not is_weapon_upgrade(inventory, item_type):
        return PickupDecision(False, f"Held weapons already beat {item_type.value}")

    replace = find_replacement(inventory, item_type)
    if replace is None:
        return PickupDecision(False, f"{category.value} inventory full, {item_type.value} is no upgrade")
    return PickupDecision(True, f"{item_type.value} replaces {replace.name or replace.item_id}", replace=replace)
