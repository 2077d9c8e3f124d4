from dataclasses import dataclass, replace
from enum import Enum
from pathlib import PurePath

from clipstash.config import MENU_PREVIEW_LENGTH, PREVIEW_LENGTH
from clipstash.utils import get_image_dimensions, truncate_text

UNASSIGNED_GROUP = -1


class PasteboardFormat(str, Enum):
    STRING = "public.utf8-plain-text"
    RTF = "public.rtf"
    RTFD = "com.apple.flat-rtfd"
    PNG = "public.png"
    TIFF = "public.tiff"
    FILE_URL = "public.file-url"

    def is_text(self) -> bool:
        return self in (PasteboardFormat.STRING, PasteboardFormat.RTF, PasteboardFormat.RTFD)

    def is_rich(self) -> bool:
        return self in (PasteboardFormat.RTF, PasteboardFormat.RTFD)

    def is_image(self) -> bool:
        return self in (PasteboardFormat.PNG, PasteboardFormat.TIFF)

    def is_file(self) -> bool:
        return self == PasteboardFormat.FILE_URL

    @classmethod
    def parse(cls, value: str) -> "PasteboardFormat | None":
        try:
            return cls(value)
        except ValueError:
            return None


# Order in which the watcher tries the formats a snapshot advertises
SUPPORTED_FORMATS: tuple[PasteboardFormat, ...] = (
    PasteboardFormat.RTF,
    PasteboardFormat.RTFD,
    PasteboardFormat.STRING,
    PasteboardFormat.PNG,
    PasteboardFormat.TIFF,
    PasteboardFormat.FILE_URL,
)


class ContentType(str, Enum):
    TEXT = "text"
    RICH_TEXT = "rich_text"
    IMAGE = "image"
    FILE_LIST = "file_list"
    LINK = "link"
    COLOR = "color"
    UNKNOWN = "unknown"


class Tag:
    STRING = "string"
    RICH = "rich"
    IMAGE = "image"
    FILE = "file"
    LINK = "link"
    COLOR = "color"
    NONE = ""

    ALL = (STRING, RICH, IMAGE, FILE, LINK, COLOR)


@dataclass
class Record:
    """One captured clipboard entry.

    ``id`` is None until the store assigns one. ``content_hash`` is the dedup
    key: inserting a record with an existing hash replaces the older row.
    """

    id: int | None
    content_hash: str
    format: PasteboardFormat
    content_type: ContentType
    raw_data: bytes
    preview_data: bytes | None
    timestamp: int
    app_path: str = ""
    app_name: str = ""
    search_text: str = ""
    length: int = 0
    group: int = UNASSIGNED_GROUP
    tag: str = Tag.NONE

    @property
    def is_text(self) -> bool:
        return self.format.is_text()

    @property
    def unique_id(self) -> str:
        return self.content_hash

    def file_paths(self) -> list[str]:
        if not self.format.is_file():
            return []
        text = self.raw_data.decode("utf-8", errors="replace")
        return [p.strip() for p in text.split("\n") if p.strip()]

    def preview_text(self) -> str:
        if self.preview_data is not None:
            return self.preview_data.decode("utf-8", errors="replace")
        return self.search_text[:PREVIEW_LENGTH]

    def summary(self, max_len: int = MENU_PREVIEW_LENGTH) -> str:
        """One-line description for menus and listings."""
        if self.format.is_image():
            width, height = get_image_dimensions(self.raw_data)
            return f"[Image: {width}x{height}]" if width > 0 else "[Image]"
        if self.format.is_file():
            paths = self.file_paths()
            if not paths:
                return "[Files]"
            if len(paths) == 1:
                return truncate_text(PurePath(paths[0]).name, max_len)
            return truncate_text(f"{len(paths)} files: {PurePath(paths[0]).name}, ...", max_len)
        return truncate_text(self.preview_text(), max_len)

    def with_updates(self, **fields) -> "Record":
        return replace(self, **fields)


@dataclass(frozen=True)
class SourceApp:
    name: str = ""
    bundle_path: str = ""
    bundle_id: str | None = None


@dataclass(frozen=True)
class IgnoredApp:
    name: str = ""
    bundle_id: str | None = None
    path: str | None = None

    def matches(self, app: SourceApp) -> bool:
        if self.bundle_id and app.bundle_id and self.bundle_id == app.bundle_id:
            return True
        return bool(self.path) and self.path == app.bundle_path

    def to_dict(self) -> dict:
        return {"name": self.name, "bundle_id": self.bundle_id, "path": self.path}

    @classmethod
    def from_dict(cls, data: dict) -> "IgnoredApp":
        return cls(
            name=data.get("name", ""),
            bundle_id=data.get("bundle_id"),
            path=data.get("path"),
        )


@dataclass(frozen=True)
class HistoryTimeUnit:
    """How long unassigned history is kept.

    Stored as a single integer: 1-6 days, 7-9 weeks, 10-20 months, 21 one
    year, anything else forever.
    """

    kind: str
    count: int = 1

    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEAR = "year"
    FOREVER = "forever"

    @classmethod
    def days(cls, n: int) -> "HistoryTimeUnit":
        return cls(cls.DAYS, n)

    @classmethod
    def weeks(cls, n: int) -> "HistoryTimeUnit":
        return cls(cls.WEEKS, n)

    @classmethod
    def months(cls, n: int) -> "HistoryTimeUnit":
        return cls(cls.MONTHS, n)

    @classmethod
    def year(cls) -> "HistoryTimeUnit":
        return cls(cls.YEAR, 1)

    @classmethod
    def forever(cls) -> "HistoryTimeUnit":
        return cls(cls.FOREVER, 0)

    @classmethod
    def from_raw(cls, raw: int) -> "HistoryTimeUnit":
        if 1 <= raw <= 6:
            return cls.days(raw)
        if 7 <= raw <= 9:
            return cls.weeks(raw - 6)
        if 10 <= raw <= 20:
            return cls.months(raw - 9)
        if raw == 21:
            return cls.year()
        return cls.forever()

    @property
    def raw_value(self) -> int:
        if self.kind == self.DAYS:
            return self.count
        if self.kind == self.WEEKS:
            return 6 + self.count
        if self.kind == self.MONTHS:
            return 9 + self.count
        if self.kind == self.YEAR:
            return 21
        return 22

    @property
    def is_forever(self) -> bool:
        return self.kind == self.FOREVER

    @property
    def display_text(self) -> str:
        if self.kind == self.FOREVER:
            return "Forever"
        if self.kind == self.YEAR:
            return "1 year"
        unit = self.kind if self.count != 1 else self.kind[:-1]
        return f"{self.count} {unit}"

