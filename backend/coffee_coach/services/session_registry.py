"""In-memory bookkeeping of the vendor sessions this relay has opened."""

from __future__ import annotations

import logging
from typing import Iterator, List, Set

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Set of active session ids.

    Nothing is persisted; the registry is lost when the process restarts.
    There is no locking, concurrent writers race and the last one wins.
    """

    def __init__(self) -> None:
        self._active: Set[str] = set()

    def add(self, session_id: str) -> None:
        self._active.add(session_id)
        logger.info("Tracking session %s (%d active)", session_id, len(self._active))

    def discard(self, session_id: str) -> bool:
        """Stop tracking ``session_id``; return whether it was tracked."""
        if session_id in self._active:
            self._active.remove(session_id)
            return True
        return False

    def clear(self) -> int:
        count = len(self._active)
        self._active.clear()
        return count

    def snapshot(self) -> List[str]:
        return sorted(self._active)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._active

    def __len__(self) -> int:
        return len(self._active)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
