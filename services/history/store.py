"""
History Store - bounded, persisted log of generated items.

Items are kept most-recent-first in a single JSON file. Persistence is best
effort: inline images make the file large, so write failures are logged and
the in-memory history carries on.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError

from services.orchestrator.state import GeneratedItem

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20

_items_adapter = TypeAdapter(list[GeneratedItem])


class HistoryStore:
    """
    Persists generated items to a JSON file.

    Usage:
        history = HistoryStore(config.storage.history_path)
        history.load()

        evicted = history.prepend(item)   # also saves
        history.clear()
    """

    def __init__(self, path: Union[str, Path], limit: int = HISTORY_LIMIT):
        self.path = Path(path)
        self.limit = limit
        self._items: list[GeneratedItem] = []

    @property
    def items(self) -> tuple[GeneratedItem, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: GeneratedItem) -> bool:
        return any(existing.id == item.id for existing in self._items)

    def get(self, item_id: str) -> Optional[GeneratedItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def load(self) -> tuple[GeneratedItem, ...]:
        """
        Read the history file.

        A missing file is an empty history. An unreadable or malformed file
        is logged and also treated as empty.
        """
        self._items = []
        if not self.path.exists():
            return self.items

        try:
            items = _items_adapter.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to load history from {self.path}: {e}")
            return self.items

        self._items = items[: self.limit]
        logger.info(f"Loaded {len(self._items)} history items")
        return self.items

    def save(self) -> bool:
        """Write the newest `limit` items. Returns False if the write failed."""
        records = [item.model_dump(mode="json") for item in self._items[: self.limit]]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(records), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save history (likely out of space): {e}")
            return False
        return True

    def prepend(self, item: GeneratedItem) -> list[GeneratedItem]:
        """
        Add an item at the front, trim to the limit and persist.

        Returns:
            Items pushed out of the history by the trim
        """
        self._items.insert(0, item)
        evicted = self._items[self.limit:]
        del self._items[self.limit:]

        self.save()
        return evicted

    def clear(self) -> list[GeneratedItem]:
        """Empty memory and remove the file. Returns the removed items."""
        removed, self._items = self._items, []
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove history file {self.path}: {e}")
        return removed
