"""
History Service

Bounded, most-recent-first log of generated items, persisted as JSON.
"""

from .store import HISTORY_LIMIT, HistoryStore

__all__ = ["HISTORY_LIMIT", "HistoryStore"]
