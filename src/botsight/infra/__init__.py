"""
BotSight Infrastructure - Storage and concurrency.

This module contains:
- database: SQLite-backed baseline store (games, player-games, flags)
- writer: Single-writer thread owning all store mutations
- parallel: Concurrent batch analysis of many replays
"""

__all__: list[str] = []
