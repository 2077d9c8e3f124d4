import logging

from clipstash.history import HistoryCache
from clipstash.models import UNASSIGNED_GROUP, Record
from clipstash.monitor import ClipboardMonitor
from clipstash.storage import StorageManager

logger = logging.getLogger(__name__)


class ClipboardActions:
    """What the user can do with a history entry."""

    def __init__(self, storage: StorageManager, monitor: ClipboardMonitor, cache: HistoryCache):
        self._storage = storage
        self._monitor = monitor
        self._cache = cache

    def copy(self, record: Record, plain_text_only: bool = False) -> Record | None:
        """Put ``record`` back on the clipboard and move it to the front."""
        if record.id is None:
            return None
        if not self._monitor.write(record, plain_text_only=plain_text_only):
            return None
        timestamp = self._storage.touch(record.id)
        promoted = record.with_updates(timestamp=timestamp)
        self._cache.move_to_front(promoted)
        return promoted

    def delete(self, record: Record) -> None:
        """Delete an entry; an entry filed under a category is only unfiled."""
        if record.id is None:
            return
        if record.group != UNASSIGNED_GROUP:
            self._cache.update_group(record.id, UNASSIGNED_GROUP)
            return
        self._cache.delete_by_ids([record.id])
