"""Book-wide citation numbering."""

import logging
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class CitationIndex:
    """
    Assigns each cited key a stable ordinal, dense from 1.

    The first key cited anywhere in the book gets 1, the next new key 2, and
    so on. Once assigned, an index never changes. Assignment is serialized by
    a lock so callers must drive it in table-of-contents order.
    """

    def __init__(self):
        self._indices: Dict[str, int] = {}
        self._lock = threading.Lock()

    def assign_or_get(self, key: str) -> int:
        """
        Return the index of a key, assigning the next free one if unseen.

        Args:
            key: Citation key

        Returns:
            The key's index (1-based)
        """
        with self._lock:
            index = self._indices.get(key)
            if index is None:
                index = len(self._indices) + 1
                self._indices[key] = index
                logger.debug(f"Assigned index {index} to '{key}'")
            return index

    def get(self, key: str) -> Optional[int]:
        return self._indices.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._indices

    def __len__(self) -> int:
        return len(self._indices)

    def keys(self) -> List[str]:
        """Keys in assignment order."""
        with self._lock:
            return list(self._indices)

    def as_dict(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._indices)
