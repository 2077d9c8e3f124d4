"""Composable row filters for the clip table.

A ``Filter`` is an immutable SQL boolean fragment plus its bound parameters.
Filters combine with ``&`` and ``|`` and are rendered into the WHERE clause
by :class:`clipstash.storage.StorageManager`; values are always bound, never
interpolated.
"""

from collections.abc import Iterable
from dataclasses import dataclass

_LIKE_ESCAPE = "\\"


def _escape_like(text: str) -> str:
    return (
        text.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


@dataclass(frozen=True)
class Filter:
    sql: str
    params: tuple = ()

    def __and__(self, other: "Filter") -> "Filter":
        return Filter(f"({self.sql}) AND ({other.sql})", self.params + other.params)

    def __or__(self, other: "Filter") -> "Filter":
        return Filter(f"({self.sql}) OR ({other.sql})", self.params + other.params)

    def __invert__(self) -> "Filter":
        return Filter(f"NOT ({self.sql})", self.params)

    @staticmethod
    def all_of(filters: Iterable["Filter | None"]) -> "Filter | None":
        result = None
        for f in filters:
            if f is None:
                continue
            result = f if result is None else result & f
        return result

    @staticmethod
    def none() -> "Filter":
        return Filter("0")

    @staticmethod
    def keyword(text: str) -> "Filter":
        return Filter(
            f"search_text LIKE ? ESCAPE '{_LIKE_ESCAPE}'",
            (f"%{_escape_like(text)}%",),
        )

    @staticmethod
    def group_is(group_id: int) -> "Filter":
        return Filter('"group" = ?', (group_id,))

    @staticmethod
    def group_in(group_ids: Iterable[int]) -> "Filter":
        return _membership('"group"', group_ids)

    @staticmethod
    def tag_in(tags: Iterable[str]) -> "Filter":
        # Rows not yet migrated have a NULL tag and compare as ""
        return _membership("COALESCE(tag, '')", [t for t in tags if t])

    @staticmethod
    def app_in(app_names: Iterable[str]) -> "Filter":
        return _membership("app_name", app_names)

    @staticmethod
    def ids_in(ids: Iterable[int]) -> "Filter":
        return _membership("id", ids)

    @staticmethod
    def hash_is(content_hash: str) -> "Filter":
        return Filter("unique_id = ?", (content_hash,))

    @staticmethod
    def timestamp_range(start: int, end: int | None = None) -> "Filter":
        if end is None:
            return Filter("timestamp >= ?", (start,))
        return Filter("timestamp >= ? AND timestamp < ?", (start, end))

    @staticmethod
    def older_than(timestamp: int) -> "Filter":
        return Filter("timestamp < ?", (timestamp,))

    @staticmethod
    def tag_missing() -> "Filter":
        return Filter("tag IS NULL")


def _membership(column: str, values: Iterable) -> Filter:
    values = tuple(dict.fromkeys(values))
    if not values:
        return Filter.none()
    placeholders = ", ".join("?" for _ in values)
    return Filter(f"{column} IN ({placeholders})", values)


ORDERS = {
    "timestamp DESC": "timestamp DESC, id DESC",
    "timestamp ASC": "timestamp ASC, id ASC",
    "id DESC": "id DESC",
    "id ASC": "id ASC",
}
DEFAULT_ORDER = "timestamp DESC"
