"""
Recent message cache for webhook re-delivery suppression.

Single-process and in-memory only; it does not survive restarts and is not
shared between instances.
"""
from collections import OrderedDict
from typing import Optional

from healthtrack.config import settings


class RecentMessageCache:
    """Capacity-bounded set of message ids, evicting the oldest first"""

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity or settings.WEBHOOK_DEDUP_CAPACITY
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def seen(self, message_id: str) -> bool:
        """
        Record ``message_id`` and report whether it was already present.

        A repeated id is refreshed to most-recent.
        """
        if message_id in self._seen:
            self._seen.move_to_end(message_id)
            return True

        self._seen[message_id] = None
        if len(self._seen) > self.capacity:
            self._evict_oldest()
        return False

    def _evict_oldest(self):
        self._seen.popitem(last=False)

    def clear(self):
        self._seen.clear()

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)


# Singleton instance
message_cache = RecentMessageCache()
