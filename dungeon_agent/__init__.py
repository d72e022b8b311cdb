"""Dungeon Agent - an autonomous player for the dungeon tile-laying game."""

__version__ = "0.1.0"
