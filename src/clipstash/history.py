"""In-memory, paginated view over the clip table.

``HistoryCache`` holds the rows the presentation layer is currently showing
and translates search and paging requests into store queries. The store is
the source of truth; the window here may lag behind it and is never used for
counts.

Searches are debounced and superseded: every new request bumps a generation
number, and a query whose generation is no longer current when it finishes
is dropped without touching the window.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from datetime import time as dt_time
from enum import Enum

from clipstash.config import PAGE_SIZE, SEARCH_DEBOUNCE
from clipstash.models import UNASSIGNED_GROUP, Record, Tag
from clipstash.query import Filter
from clipstash.storage import StorageManager

logger = logging.getLogger(__name__)

# Facet display order; rich text is offered under "string"
FACET_ORDER = (Tag.COLOR, Tag.FILE, Tag.IMAGE, Tag.LINK, Tag.STRING)


class DateFilter(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this_week"

    def timestamp_range(self, now: datetime | None = None) -> tuple[int, int | None]:
        """Start (inclusive) and end (exclusive, None for open) in epoch seconds."""
        now = now or datetime.now()
        start_of_today = datetime.combine(now.date(), dt_time.min)
        if self is DateFilter.TODAY:
            return int(start_of_today.timestamp()), None
        if self is DateFilter.YESTERDAY:
            start = start_of_today - timedelta(days=1)
            return int(start.timestamp()), int(start_of_today.timestamp())
        start_of_week = start_of_today - timedelta(days=now.weekday())
        return int(start_of_week.timestamp()), None


def _frozen(values) -> frozenset:
    if values is None:
        return frozenset()
    return frozenset(values)


@dataclass(frozen=True)
class SearchCriteria:
    keyword: str = ""
    group: int = UNASSIGNED_GROUP
    groups: frozenset = field(default_factory=frozenset)
    tags: frozenset = field(default_factory=frozenset)
    app_names: frozenset = field(default_factory=frozenset)
    date_filter: DateFilter | None = None

    def __post_init__(self):
        object.__setattr__(self, "keyword", (self.keyword or "").strip())
        object.__setattr__(self, "groups", _frozen(self.groups))
        object.__setattr__(self, "tags", _frozen(self.tags))
        object.__setattr__(self, "app_names", _frozen(self.app_names))

    @property
    def is_empty(self) -> bool:
        return (
            not self.keyword
            and self.group == UNASSIGNED_GROUP
            and not self.groups
            and not self.tags
            and not self.app_names
            and self.date_filter is None
        )

    def to_filter(self, now: datetime | None = None) -> Filter | None:
        clauses: list[Filter] = []
        if self.keyword:
            clauses.append(Filter.keyword(self.keyword))
        # Explicit category facets take over from the selected category
        if self.groups:
            clauses.append(Filter.group_in(sorted(self.groups)))
        elif self.group != UNASSIGNED_GROUP:
            clauses.append(Filter.group_is(self.group))
        if self.tags:
            tags = set(self.tags)
            if Tag.STRING in tags:
                tags.add(Tag.RICH)
            clauses.append(Filter.tag_in(sorted(tags)))
        if self.app_names:
            clauses.append(Filter.app_in(sorted(self.app_names)))
        if self.date_filter is not None:
            start, end = self.date_filter.timestamp_range(now)
            clauses.append(Filter.timestamp_range(start, end))
        return Filter.all_of(clauses)


def facet_types(tags: Iterable[str]) -> list[str]:
    present = set(tags)
    if Tag.RICH in present:
        present.add(Tag.STRING)
    return [t for t in FACET_ORDER if t in present]


class HistoryState(str, Enum):
    IDLE = "idle"
    FILTERED = "filtered"
    LOADING_MORE = "loading_more"


class ChangeKind(str, Enum):
    RESET = "reset"
    SEARCH = "search_filter"
    LOAD_MORE = "load_more"
    INSERT = "insert"
    MOVE = "move"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class HistoryEvent:
    kind: ChangeKind
    rows: tuple[Record, ...]
    total_count: int
    has_more: bool


Listener = Callable[[HistoryEvent], None]


class HistoryCache:
    def __init__(
        self,
        storage: StorageManager,
        page_size: int = PAGE_SIZE,
        debounce: float = SEARCH_DEBOUNCE,
    ):
        self._storage = storage
        self._page_size = page_size
        self._debounce = debounce
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []

        self._rows: list[Record] = []
        self._total_count = 0
        self._has_more = False
        self._is_loading = False
        self._filter: Filter | None = None
        self._last_criteria: SearchCriteria | None = None
        self._generation = 0
        self._last_requested_offset = -1
        # Bumped whenever rows are added to or removed from the window outside paging
        self._window_version = 0
        self._pending: threading.Timer | None = None

        self._app_info: list[tuple[str, str]] | None = None
        self._tag_types: list[str] | None = None

    # -- observation ------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: ChangeKind) -> None:
        with self._lock:
            event = HistoryEvent(kind, tuple(self._rows), self._total_count, self._has_more)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("History listener failed")

    @property
    def rows(self) -> tuple[Record, ...]:
        with self._lock:
            return tuple(self._rows)

    @property
    def total_count(self) -> int:
        return self._total_count

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_filtered(self) -> bool:
        return self._filter is not None

    @property
    def criteria(self) -> SearchCriteria | None:
        return self._last_criteria

    @property
    def state(self) -> HistoryState:
        if self._is_loading:
            return HistoryState.LOADING_MORE
        if self._filter is not None:
            return HistoryState.FILTERED
        return HistoryState.IDLE

    @property
    def page_size(self) -> int:
        return self._page_size

    # -- loading ----------------------------------------------------------

    def refresh_total(self) -> int:
        count = self._storage.total_count()
        with self._lock:
            self._total_count = count
        return count

    def reset_default(self) -> None:
        """Drop any filter and show the most recent page."""
        with self._lock:
            self._cancel_pending()
            self._generation += 1
            generation = self._generation
        self._run_query(SearchCriteria(), None, generation, ChangeKind.RESET)

    def search(self, criteria: SearchCriteria) -> None:
        """Apply ``criteria`` after the debounce delay, superseding earlier requests."""
        with self._lock:
            if self._pending is None and criteria == self._last_criteria:
                return
            self._cancel_pending()
            self._generation += 1
            generation = self._generation
            timer = threading.Timer(self._debounce, self._run_search, args=(criteria, generation))
            timer.daemon = True
            self._pending = timer
        timer.start()

    def apply_search(self, criteria: SearchCriteria) -> bool:
        """Apply ``criteria`` now. Returns False if nothing changed."""
        with self._lock:
            if self._pending is None and criteria == self._last_criteria:
                logger.debug("Search criteria unchanged, skipping query")
                return False
            self._cancel_pending()
            self._generation += 1
            generation = self._generation
        return self._run_search(criteria, generation)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _run_search(self, criteria: SearchCriteria, generation: int) -> bool:
        with self._lock:
            if generation != self._generation:
                return False
            self._pending = None
            if criteria == self._last_criteria:
                logger.debug("Search criteria unchanged, skipping query")
                return False
        if criteria.is_empty:
            return self._run_query(criteria, None, generation, ChangeKind.RESET)
        return self._run_query(criteria, criteria.to_filter(), generation, ChangeKind.SEARCH)

    def _run_query(self, criteria: SearchCriteria, where: Filter | None, generation: int, kind: ChangeKind) -> bool:
        rows = self._storage.query(where, limit=self._page_size)
        total = self._storage.total_count()
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding superseded query result")
                return False
            self._rows = rows
            self._filter = where
            self._last_criteria = criteria
            self._total_count = total
            self._has_more = len(rows) == self._page_size
            self._last_requested_offset = -1
            self._is_loading = False
        self._notify(kind)
        return True

    def load_next_page(self) -> bool:
        """Append the next page. Returns False if nothing was loaded."""
        with self._lock:
            if len(self._rows) >= self._total_count:
                return False
            if self._is_loading:
                return False
            offset = len(self._rows)
            # Each offset is requested at most once until the window changes shape
            if offset == self._last_requested_offset:
                return False
            self._last_requested_offset = offset
            self._is_loading = True
            where = self._filter
            generation = self._generation
            version = self._window_version

        logger.debug("Loading page at offset %d (filtered: %s)", offset, where is not None)
        page = self._storage.query(where, limit=self._page_size, offset=offset)

        with self._lock:
            self._is_loading = False
            if generation != self._generation:
                logger.debug("Discarding page loaded for a superseded view")
                self._last_requested_offset = -1
                return False
            if version != self._window_version or len(self._rows) != offset:
                # The window moved while the query ran; the page no longer lines up
                self._last_requested_offset = -1
                return False
            if not page:
                self._has_more = False
                return False
            self._rows = self._rows + page
            self._has_more = len(page) == self._page_size
        self._notify(ChangeKind.LOAD_MORE)
        return True

    # -- window maintenance -------------------------------------------------

    def insert_captured(self, record: Record) -> None:
        """Show a freshly stored record at the top of an unfiltered view."""
        self.refresh_total()
        with self._lock:
            self._note_facets(record)
            if self._filter is not None:
                return
            rows = [r for r in self._rows if r.content_hash != record.content_hash]
            rows.insert(0, record)
            self._has_more = len(rows) >= self._page_size
            self._rows = rows[: self._page_size]
            self._window_version += 1
            self._last_requested_offset = -1
        self._notify(ChangeKind.INSERT)

    def move_to_front(self, record: Record) -> None:
        with self._lock:
            rows = [r for r in self._rows if r.id != record.id]
            rows.insert(0, record)
            self._rows = rows[: self._page_size]
            self._window_version += 1
            self._last_requested_offset = -1
        self._notify(ChangeKind.MOVE)

    # -- mutations ----------------------------------------------------------

    def update_group(self, record_id: int, group_id: int) -> bool:
        if not self._storage.update_group(record_id, group_id):
            return False
        with self._lock:
            self._rows = [r.with_updates(group=group_id) if r.id == record_id else r for r in self._rows]
        self._notify(ChangeKind.UPDATE)
        return True

    def update_content(self, record_id: int, data: bytes, search_text: str, tag: str) -> Record | None:
        """Store edited content; the edited record moves to the front."""
        if not self._storage.update_content(record_id, data, search_text, tag):
            return None
        updated = self._storage.get(record_id)
        if updated is None:
            return None
        with self._lock:
            self._tag_types = None
        self.move_to_front(updated)
        return updated

    def delete_by_ids(self, ids: Iterable[int]) -> int:
        ids = set(ids)
        count = self._storage.delete_by_ids(ids)
        self._drop_from_window(lambda r: r.id in ids)
        return count

    def delete_by_group(self, group_id: int) -> int:
        count = self._storage.delete_by_group(group_id)
        self._drop_from_window(lambda r: r.group == group_id)
        return count

    def remove_expired(self, cutoff: int) -> None:
        """Drop rows a retention sweep has deleted from the window."""
        self._drop_from_window(lambda r: r.group == UNASSIGNED_GROUP and r.timestamp < cutoff)

    def drop_all(self) -> int:
        count = self._storage.drop_all()
        with self._lock:
            self._generation += 1
            self._rows = []
            self._total_count = 0
            self._has_more = False
            self._last_requested_offset = -1
            self._app_info = None
            self._tag_types = None
        self._notify(ChangeKind.RESET)
        return count

    def _drop_from_window(self, predicate: Callable[[Record], bool]) -> None:
        self.refresh_total()
        with self._lock:
            self._rows = [r for r in self._rows if not predicate(r)]
            self._window_version += 1
            self._last_requested_offset = -1
            self._tag_types = None
        self._notify(ChangeKind.DELETE)

    # -- facets -------------------------------------------------------------

    def app_info(self) -> list[tuple[str, str]]:
        with self._lock:
            if self._app_info is not None:
                return list(self._app_info)
        info = self._storage.distinct_app_info()
        with self._lock:
            self._app_info = info
        return list(info)

    def tag_types(self) -> list[str]:
        with self._lock:
            if self._tag_types is not None:
                return list(self._tag_types)
        types = facet_types(self._storage.distinct_tags())
        with self._lock:
            self._tag_types = types
        return list(types)

    def _note_facets(self, record: Record) -> None:
        if self._app_info is not None and record.app_name:
            names = [name for name, _ in self._app_info]
            if record.app_name in names:
                index = names.index(record.app_name)
                self._app_info[index] = (record.app_name, record.app_path)
            else:
                self._app_info.append((record.app_name, record.app_path))
                self._app_info.sort()
        if self._tag_types is not None and record.tag:
            self._tag_types = facet_types(self._tag_types + [record.tag])

    def close(self) -> None:
        with self._lock:
            self._cancel_pending()
            self._generation += 1
            self._listeners.clear()
