"""Background backfill of the ``tag`` column for rows stored before it existed."""

import logging
import threading

from clipstash.classify import calculate_tag
from clipstash.config import MIGRATION_BATCH_DELAY, MIGRATION_BATCH_SIZE
from clipstash.models import PasteboardFormat
from clipstash.preferences import Preferences
from clipstash.query import Filter
from clipstash.storage import StorageManager

logger = logging.getLogger(__name__)


class TagMigration:
    """Computes missing tags in small batches off the main thread.

    Each batch is one transaction, so stopping between batches (cancel, crash,
    quit) leaves the table consistent and the next run picks up the remaining
    NULL rows. The ``tag_field_migrated`` preference is only set once a run
    finds nothing left to do.
    """

    def __init__(
        self,
        storage: StorageManager,
        preferences: Preferences,
        batch_size: int = MIGRATION_BATCH_SIZE,
        batch_delay: float = MIGRATION_BATCH_DELAY,
    ):
        self._storage = storage
        self._preferences = preferences
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def needed(self) -> bool:
        return not self._preferences.tag_field_migrated

    def start(self) -> bool:
        if not self.needed:
            logger.debug("Tag migration already done, skipping")
            return False
        if self._thread is not None and self._thread.is_alive():
            return False
        self._cancel.clear()
        self._thread = threading.Thread(target=self.run, name="clipstash-tag-migration", daemon=True)
        self._thread.start()
        return True

    def cancel(self) -> None:
        self._cancel.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> int:
        """Migrate until no untagged rows remain. Returns the number of rows tagged."""
        if not self.needed:
            return 0
        logger.info("Starting tag migration")
        total = 0
        while True:
            if self._cancel.is_set():
                logger.warning("Tag migration cancelled after %d records", total)
                return total

            rows = self._storage.rows_missing_tag(self._batch_size)
            if rows is None:
                logger.error("Could not read untagged records, will resume on next launch")
                return total
            if not rows:
                break

            pairs = [(row_id, calculate_tag(PasteboardFormat.parse(type_name), data)) for row_id, type_name, data in rows]
            written = self._storage.set_tags(pairs)
            if written != len(pairs):
                logger.error("Tag migration batch failed, will resume on next launch")
                return total

            total += written
            logger.debug("Migrated %d records", total)

            if self._cancel.wait(self._batch_delay):
                logger.warning("Tag migration cancelled after %d records", total)
                return total

        if self._storage.total_count(Filter.tag_missing()) > 0:
            logger.error("Untagged records remain, will resume on next launch")
            return total

        self._preferences.tag_field_migrated = True
        logger.info("Tag migration complete, %d records migrated", total)
        return total
