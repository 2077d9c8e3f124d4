import struct
from concurrent.futures import Future

import pytest

from clipstash.classify import classify, plain_text
from clipstash.models import PasteboardFormat, Record, SourceApp
from clipstash.preferences import Preferences
from clipstash.storage import StorageManager
from clipstash.utils import compute_hash

PNG_1x1 = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + struct.pack(">II", 1, 1) + b"\x08\x06\x00\x00\x00"


@pytest.fixture
def storage():
    mgr = StorageManager(db_path=":memory:")
    yield mgr
    mgr.close()


@pytest.fixture
def prefs(tmp_path):
    return Preferences(tmp_path / "preferences.json")


@pytest.fixture
def make_record():
    """Factory fixture to create unsaved Record instances for testing."""

    def _make_record(
        text: str = "hello world",
        fmt: PasteboardFormat = PasteboardFormat.STRING,
        data: bytes | None = None,
        timestamp: int = 1_700_000_000,
        app_name: str = "",
        app_path: str = "",
        group: int = -1,
    ) -> Record:
        if data is None:
            data = PNG_1x1 if fmt.is_image() else text.encode("utf-8")
        search_text = plain_text(fmt, data)
        content_type, tag = classify(fmt, data)
        return Record(
            id=None,
            content_hash=compute_hash(data),
            format=fmt,
            content_type=content_type,
            raw_data=data,
            preview_data=search_text[:250].encode("utf-8") if fmt.is_text() else None,
            timestamp=timestamp,
            app_path=app_path,
            app_name=app_name,
            search_text=search_text,
            length=len(search_text),
            group=group,
            tag=tag,
        )

    return _make_record


class FakePasteboard:
    """In-memory stand-in for the OS clipboard."""

    def __init__(self):
        self.count = 0
        self.items: dict[str, bytes] = {}
        self.source: SourceApp | None = None
        self.written: list[tuple[bytes, str]] = []

    def set(self, items: dict[str, bytes], source: SourceApp | None = None) -> None:
        self.count += 1
        self.items = dict(items)
        self.source = source

    def change_count(self) -> int:
        return self.count

    def available_formats(self) -> list[str]:
        return list(self.items)

    def read(self, fmt: str) -> bytes | None:
        return self.items.get(fmt)

    def source_application(self) -> SourceApp | None:
        return self.source

    def write(self, data: bytes, fmt: str) -> None:
        self.written.append((data, fmt))
        self.set({fmt: data})


class ImmediateExecutor:
    """Runs submitted work on the calling thread."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        future.set_result(fn(*args, **kwargs))
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


@pytest.fixture
def pasteboard():
    return FakePasteboard()


@pytest.fixture
def executor():
    return ImmediateExecutor()
