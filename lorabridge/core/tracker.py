"""
DedupTracker: bounded in-memory set of processed message ids.

When the set grows past its high-water mark it is cleared wholesale before the
next id is added, so ids seen before a reset may read as unseen afterwards.
The store's primary key stays the final authority on duplicates.
"""

import threading
from typing import Any, Dict, Set

from cotkit.logging import getLogger

from .contract import DEFAULT_TRACKER_HIGH_WATER_MARK


class DedupTracker:
    """Thread-safe bound-and-clear id set"""

    def __init__(self, name: str = 'tracker', highWaterMark: int = DEFAULT_TRACKER_HIGH_WATER_MARK):
        if highWaterMark < 1:
            raise ValueError(f"highWaterMark must be positive, got {highWaterMark}")
        self.name = name
        self.highWaterMark = highWaterMark
        self.resetCount = 0
        self._ids: Set[str] = set()
        self._lock = threading.Lock()
        self.log = getLogger()

    def seen(self, messageId: str) -> bool:
        with self._lock:
            return messageId in self._ids

    def mark(self, messageId: str) -> None:
        with self._lock:
            self._markLocked(messageId)

    def markIfUnseen(self, messageId: str) -> bool:
        """Returns True if the id was new (and is now marked)"""
        with self._lock:
            if messageId in self._ids:
                return False
            self._markLocked(messageId)
            return True

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()

    def _markLocked(self, messageId: str) -> None:
        if len(self._ids) > self.highWaterMark:
            self.log.info("Tracker reset", tracker=self.name, size=len(self._ids))
            self._ids.clear()
            self.resetCount += 1
        self._ids.add(messageId)

    def __len__(self):
        with self._lock:
            return len(self._ids)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {'size': len(self._ids), 'highWaterMark': self.highWaterMark, 'resets': self.resetCount}
