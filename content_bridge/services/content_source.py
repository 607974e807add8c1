"""Access to the source documents a job translates."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

from content_bridge.services.models import SourceItem


class ContentSource(ABC):
    """Loads source items by id from the content store."""

    @abstractmethod
    async def load_items(self, item_ids: Sequence[str]) -> List[SourceItem]:
        """Return the items that exist; unknown ids are skipped."""

    async def get_item(self, item_id: str) -> Optional[SourceItem]:
        items = await self.load_items([item_id])
        return items[0] if items else None


class InMemoryContentSource(ContentSource):
    """Content source over a fixed set of items."""

    def __init__(self, items: Iterable[SourceItem] = ()) -> None:
        self._items: Dict[str, SourceItem] = {item.id: item for item in items}

    def add(self, item: SourceItem) -> None:
        self._items[item.id] = item

    async def load_items(self, item_ids: Sequence[str]) -> List[SourceItem]:
        return [self._items[item_id] for item_id in item_ids if item_id in self._items]
