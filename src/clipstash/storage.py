import logging
import sqlite3
import threading
import time
from collections.abc import Iterable
from pathlib import Path

from clipstash.config import BUSY_TIMEOUT, DB_PATH, PREVIEW_LENGTH, WRITE_RETRIES, WRITE_RETRY_DELAY
from clipstash.classify import calculate_tag, content_type_for_tag
from clipstash.models import UNASSIGNED_GROUP, PasteboardFormat, Record
from clipstash.query import DEFAULT_ORDER, ORDERS, Filter
from clipstash.utils import compute_hash, now_timestamp

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS clip (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    unique_id    TEXT NOT NULL,
    type         TEXT NOT NULL,
    data         BLOB NOT NULL,
    show_data    BLOB,
    timestamp    INTEGER NOT NULL,
    app_path     TEXT NOT NULL DEFAULT '',
    app_name     TEXT NOT NULL DEFAULT '',
    search_text  TEXT NOT NULL DEFAULT '',
    length       INTEGER NOT NULL DEFAULT 0,
    "group"      INTEGER NOT NULL DEFAULT -1,
    tag          TEXT
);

CREATE INDEX IF NOT EXISTS idx_clip_timestamp ON clip(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_clip_unique_id ON clip(unique_id);
CREATE INDEX IF NOT EXISTS idx_clip_group ON clip("group");
"""

# Columns a caller may change through update()
UPDATABLE_COLUMNS = {
    "format": "type",
    "raw_data": "data",
    "preview_data": "show_data",
    "timestamp": "timestamp",
    "app_path": "app_path",
    "app_name": "app_name",
    "search_text": "search_text",
    "length": "length",
    "group": '"group"',
    "tag": "tag",
    "content_hash": "unique_id",
}


class StoreUnavailable(Exception):
    """The database file could not be opened or initialized."""


class StorageManager:
    """Durable table of clipboard records.

    One connection serves every caller; a re-entrant lock serializes access
    so each public method runs as its own transaction. Failures are logged
    and reported as an empty or unchanged result.
    """

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(
                self._db_path,
                timeout=BUSY_TIMEOUT,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self.init_db()
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailable(f"cannot open {self._db_path}: {exc}") from exc

    @property
    def db_path(self) -> str:
        return self._db_path

    def init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._migrate_schema()
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_clip_tag ON clip(tag)")
            self._conn.commit()

    def _migrate_schema(self) -> None:
        """Add new columns to existing databases."""
        cursor = self._conn.execute("PRAGMA table_info(clip)")
        columns = {row[1] for row in cursor.fetchall()}
        if "tag" not in columns:
            self._conn.execute("ALTER TABLE clip ADD COLUMN tag TEXT")

    def _write(self, operation, default):
        """Run ``operation(conn)`` in a transaction, retrying while the file is busy."""
        delay = WRITE_RETRY_DELAY
        for attempt in range(1, WRITE_RETRIES + 1):
            with self._lock:
                try:
                    with self._conn:
                        return operation(self._conn)
                except sqlite3.OperationalError as exc:
                    message = str(exc).lower()
                    if ("locked" not in message and "busy" not in message) or attempt == WRITE_RETRIES:
                        logger.error("Write failed: %s", exc)
                        return default
                except sqlite3.Error:
                    logger.exception("Write failed")
                    return default
            logger.warning("Database busy, retrying write (attempt %d)", attempt)
            time.sleep(delay)
            delay *= 2
        return default

    def _read(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error:
                logger.exception("Query failed")
                return []

    # -- writes -----------------------------------------------------------

    def insert(self, record: Record) -> int:
        """Insert ``record``, replacing any row with the same content hash.

        Returns the new row id, or -1 if the write failed.
        """

        def op(conn: sqlite3.Connection) -> int:
            conn.execute("DELETE FROM clip WHERE unique_id = ?", (record.content_hash,))
            cursor = conn.execute(
                """INSERT INTO clip
                   (unique_id, type, data, show_data, timestamp, app_path, app_name, search_text, length, "group", tag)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.content_hash,
                    record.format.value,
                    record.raw_data,
                    record.preview_data,
                    record.timestamp,
                    record.app_path,
                    record.app_name,
                    record.search_text,
                    record.length,
                    record.group,
                    record.tag,
                ),
            )
            return cursor.lastrowid

        row_id = self._write(op, -1)
        if row_id != -1:
            logger.debug("Inserted record %d (%s)", row_id, record.tag or "untagged")
        return row_id

    def delete(self, where: Filter) -> int:
        count = self._write(lambda conn: conn.execute(f"DELETE FROM clip WHERE {where.sql}", where.params).rowcount, 0)
        logger.debug("Deleted %d records", count)
        return count

    def delete_by_ids(self, ids: Iterable[int]) -> int:
        return self.delete(Filter.ids_in(ids))

    def delete_by_group(self, group_id: int) -> int:
        return self.delete(Filter.group_is(group_id))

    def delete_all(self) -> int:
        return self._write(lambda conn: conn.execute("DELETE FROM clip").rowcount, 0)

    def drop_all(self) -> int:
        """Irreversibly remove every record and reclaim the file space."""
        with self._lock:
            count = self.delete_all()
            try:
                self._conn.execute("VACUUM")
            except sqlite3.Error:
                logger.exception("VACUUM failed after clearing history")
        logger.info("Cleared all history (%d records)", count)
        return count

    def update(self, record_id: int, **fields) -> bool:
        """Partial update of one row. Unknown field names raise ValueError."""
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        if not fields:
            return False
        assignments = []
        params = []
        for name, value in fields.items():
            if isinstance(value, PasteboardFormat):
                value = value.value
            assignments.append(f"{UPDATABLE_COLUMNS[name]} = ?")
            params.append(value)
        params.append(record_id)
        sql = f"UPDATE clip SET {', '.join(assignments)} WHERE id = ?"
        return self._write(lambda conn: conn.execute(sql, tuple(params)).rowcount > 0, False)

    def update_group(self, record_id: int, group_id: int) -> bool:
        return self.update(record_id, group=group_id)

    def touch(self, record_id: int, timestamp: int | None = None) -> int:
        """Move a record to the front by bumping its timestamp."""
        ts = timestamp if timestamp is not None else now_timestamp()
        self.update(record_id, timestamp=ts)
        return ts

    def update_content(
        self,
        record_id: int,
        data: bytes,
        search_text: str,
        tag: str,
        preview_data: bytes | None = None,
        timestamp: int | None = None,
    ) -> bool:
        """Replace the content of an edited record, keeping its id and group."""
        if preview_data is None:
            preview_data = search_text[:PREVIEW_LENGTH].encode("utf-8")
        return self.update(
            record_id,
            raw_data=data,
            preview_data=preview_data,
            search_text=search_text,
            length=len(search_text),
            tag=tag,
            content_hash=compute_hash(data),
            timestamp=timestamp if timestamp is not None else now_timestamp(),
        )

    def set_tags(self, pairs: Iterable[tuple[int, str]]) -> int:
        """Write computed tags for many rows in a single transaction."""
        pairs = [(tag, row_id) for row_id, tag in pairs]

        def op(conn: sqlite3.Connection) -> int:
            conn.executemany("UPDATE clip SET tag = ? WHERE id = ?", pairs)
            return len(pairs)

        return self._write(op, 0)

    # -- reads ------------------------------------------------------------

    def query(
        self,
        where: Filter | None = None,
        order: str = DEFAULT_ORDER,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        if order not in ORDERS:
            raise ValueError(f"unsupported order: {order}")
        sql = "SELECT * FROM clip"
        params: tuple = ()
        if where is not None:
            sql += f" WHERE {where.sql}"
            params = where.params
        sql += f" ORDER BY {ORDERS[order]}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = params + (limit, offset or 0)
        elif offset:
            sql += " LIMIT -1 OFFSET ?"
            params = params + (offset,)
        return [self._row_to_record(r) for r in self._read(sql, params)]

    def get_recent(self, limit: int = 25) -> list[Record]:
        return self.query(limit=limit)

    def get(self, record_id: int) -> Record | None:
        rows = self._read("SELECT * FROM clip WHERE id = ?", (record_id,))
        return self._row_to_record(rows[0]) if rows else None

    def find_by_hash(self, content_hash: str) -> Record | None:
        rows = self.query(Filter.hash_is(content_hash), limit=1)
        return rows[0] if rows else None

    def total_count(self, where: Filter | None = None) -> int:
        sql = "SELECT COUNT(*) AS cnt FROM clip"
        params: tuple = ()
        if where is not None:
            sql += f" WHERE {where.sql}"
            params = where.params
        rows = self._read(sql, params)
        return rows[0]["cnt"] if rows else 0

    def distinct_app_names(self) -> list[str]:
        rows = self._read("SELECT DISTINCT app_name FROM clip WHERE app_name != '' ORDER BY app_name ASC")
        return [r["app_name"] for r in rows]

    def distinct_app_info(self) -> list[tuple[str, str]]:
        """(name, path) per application, taking the path of its latest record."""
        rows = self._read(
            "SELECT app_name, app_path FROM clip WHERE app_name != '' ORDER BY app_name ASC, timestamp DESC"
        )
        seen: set[str] = set()
        info = []
        for row in rows:
            if row["app_name"] in seen:
                continue
            seen.add(row["app_name"])
            info.append((row["app_name"], row["app_path"]))
        return info

    def distinct_tags(self) -> list[str]:
        rows = self._read("SELECT DISTINCT tag FROM clip WHERE tag IS NOT NULL AND tag != '' ORDER BY tag ASC")
        return [r["tag"] for r in rows]

    def rows_missing_tag(self, limit: int) -> list[tuple[int, str, bytes]] | None:
        """(id, type, data) for rows whose tag has not been computed yet.

        Returns None if the read failed, so callers can tell that apart from
        an empty result.
        """
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT id, type, data FROM clip WHERE tag IS NULL ORDER BY id ASC LIMIT ?", (limit,)
                ).fetchall()
            except sqlite3.Error:
                logger.exception("Could not read untagged records")
                return None
        return [(r["id"], r["type"], bytes(r["data"])) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        fmt = PasteboardFormat.parse(row["type"])
        if fmt is None:
            fmt = PasteboardFormat.STRING
        data = bytes(row["data"]) if row["data"] is not None else b""
        preview = bytes(row["show_data"]) if row["show_data"] is not None else None
        search_text = row["search_text"] or ""
        # Text rows saved without a preview get one from their search text
        if preview is None and fmt.is_text():
            preview = search_text[:PREVIEW_LENGTH].encode("utf-8")
        tag = row["tag"]
        if tag is None:
            tag = calculate_tag(fmt, data)
        return Record(
            id=row["id"],
            content_hash=row["unique_id"],
            format=fmt,
            content_type=content_type_for_tag(tag),
            raw_data=data,
            preview_data=preview,
            timestamp=row["timestamp"],
            app_path=row["app_path"] or "",
            app_name=row["app_name"] or "",
            search_text=search_text,
            length=row["length"] or 0,
            group=row["group"] if row["group"] is not None else UNASSIGNED_GROUP,
            tag=tag,
        )


def open_storage(db_path: str | Path | None = None) -> StorageManager:
    """Open the history database, falling back to an in-memory one if it is unusable."""
    try:
        return StorageManager(db_path)
    except StoreUnavailable:
        logger.exception("History database unavailable, running without saved history")
        return StorageManager(":memory:")
