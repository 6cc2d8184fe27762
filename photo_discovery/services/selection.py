"""
Selection set
Ordered, duplicate-free set of photo ids that bulk operations act on
"""
from typing import Iterable, Iterator, List, Optional

from photo_discovery.errors import SelectionLimitExceededError
import logging

logger = logging.getLogger(__name__)


class SelectionSet:
    """Selected photo ids in selection order; adding an id twice is a no-op"""

    def __init__(self, photo_ids: Optional[Iterable[str]] = None, max_size: Optional[int] = None):
        self.max_size = max_size
        self._ids: dict = {}
        if photo_ids:
            self.add(photo_ids)

    def add(self, photo_ids: Iterable[str]) -> int:
        """
        Add ids, keeping first-seen order

        Returns:
            Number of ids that were not already selected

        Raises:
            SelectionLimitExceededError: the result would exceed max_size
        """
        new_ids = [photo_id for photo_id in dict.fromkeys(photo_ids) if photo_id not in self._ids]
        if self.max_size is not None and len(self._ids) + len(new_ids) > self.max_size:
            raise SelectionLimitExceededError(len(self._ids) + len(new_ids), self.max_size)
        for photo_id in new_ids:
            self._ids[photo_id] = None
        return len(new_ids)

    def remove(self, photo_ids: Iterable[str]) -> int:
        removed = 0
        for photo_id in photo_ids:
            if photo_id in self._ids:
                del self._ids[photo_id]
                removed += 1
        return removed

    def replace(self, photo_ids: Iterable[str]) -> int:
        """Replace the whole selection; the previous one survives if the new one is too large"""
        candidate = SelectionSet(photo_ids, max_size=self.max_size)
        self._ids = candidate._ids
        return len(self._ids)

    def clear(self):
        self._ids = {}

    def prune(self, exists) -> List[str]:
        """Drop ids for which ``exists(id)`` is false; returns the dropped ids"""
        stale = [photo_id for photo_id in self._ids if not exists(photo_id)]
        for photo_id in stale:
            del self._ids[photo_id]
        if stale:
            logger.info(f"Pruned {len(stale)} stale ids from selection")
        return stale

    @property
    def ids(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, photo_id: object) -> bool:
        return photo_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))
