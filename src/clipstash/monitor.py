import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor

from clipstash.classify import classify, plain_text
from clipstash.config import MAX_IMAGE_SIZE, MAX_TEXT_SIZE, PREVIEW_LENGTH, SENSITIVE_FORMATS
from clipstash.interfaces import (
    ClipboardSnapshotProvider,
    ClipboardWriter,
    IgnoreListProvider,
    SensitiveFormatProvider,
)
from clipstash.models import SUPPORTED_FORMATS, PasteboardFormat, Record, SourceApp
from clipstash.storage import StorageManager
from clipstash.utils import compute_hash, now_timestamp

logger = logging.getLogger(__name__)

CaptureListener = Callable[[Record], None]


def build_record(
    fmt: PasteboardFormat,
    data: bytes,
    source: SourceApp | None = None,
    timestamp: int | None = None,
) -> Record | None:
    """Turn one clipboard payload into an unsaved Record.

    Returns None for payloads that must not be captured: oversize content
    and text that is empty or whitespace only.
    """
    if fmt.is_image():
        if len(data) > MAX_IMAGE_SIZE:
            logger.warning("Image too large (%d bytes), skipping", len(data))
            return None
    elif len(data) > MAX_TEXT_SIZE:
        logger.warning("Content too large (%d bytes), skipping", len(data))
        return None

    search_text = plain_text(fmt, data)
    preview_data = None
    if fmt.is_text():
        if not search_text.strip():
            return None
        preview_data = search_text[:PREVIEW_LENGTH].encode("utf-8")

    content_type, tag = classify(fmt, data)
    source = source or SourceApp()
    return Record(
        id=None,
        content_hash=compute_hash(data),
        format=fmt,
        content_type=content_type,
        raw_data=data,
        preview_data=preview_data,
        timestamp=timestamp if timestamp is not None else now_timestamp(),
        app_path=source.bundle_path,
        app_name=source.name,
        search_text=search_text,
        length=len(search_text),
        tag=tag,
    )


class _StaticSensitiveFormats:
    def __init__(self, formats: frozenset[str]):
        self._formats = formats

    def sensitive_formats(self) -> frozenset[str]:
        return self._formats


class ClipboardMonitor:
    """Polls the clipboard and records each external change exactly once.

    ``check_clipboard`` is meant to be called from a single timer. Reading the
    pasteboard happens on the caller's thread; the database write and the
    capture listeners run on ``executor`` (one worker by default, so records
    are stored in the order the clipboard changed).
    """

    def __init__(
        self,
        storage: StorageManager,
        pasteboard: ClipboardSnapshotProvider,
        ignore_list: IgnoreListProvider | None = None,
        sensitive_formats: SensitiveFormatProvider | None = None,
        writer: ClipboardWriter | None = None,
        ignore_sensitive: Callable[[], bool] | None = None,
        on_capture: CaptureListener | None = None,
        executor: Executor | None = None,
    ):
        self._storage = storage
        self._pasteboard = pasteboard
        self._ignore_list = ignore_list
        self._sensitive = sensitive_formats or _StaticSensitiveFormats(SENSITIVE_FORMATS)
        self._writer = writer
        self._ignore_sensitive = ignore_sensitive or (lambda: True)
        self._listeners: list[CaptureListener] = [on_capture] if on_capture else []
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="clipstash-capture")
        self._self_write = threading.Event()
        self._last_change_count = self._pasteboard.change_count()

    def add_capture_listener(self, listener: CaptureListener) -> None:
        self._listeners.append(listener)

    def check_clipboard(self) -> bool:
        """Run one poll. Returns True if a new record was handed to the store."""
        try:
            current_count = self._pasteboard.change_count()
        except Exception:
            logger.exception("Error reading clipboard change count")
            return False
        if current_count == self._last_change_count:
            return False

        self._last_change_count = current_count

        if self._self_write.is_set():
            self._self_write.clear()
            logger.debug("Skipping our own clipboard write")
            return False

        try:
            formats = list(self._pasteboard.available_formats() or [])
            if self._ignore_sensitive() and self._contains_sensitive(formats):
                logger.debug("Sensitive content on clipboard, skipping")
                return False

            source = self._pasteboard.source_application()
            if source is not None and self._is_ignored(source):
                logger.debug("Content from ignored app %s, skipping", source.name or "unknown")
                return False

            record = self._read_clipboard(formats, source)
            if record is None:
                return False
        except Exception:
            logger.exception("Error reading clipboard")
            return False

        self._executor.submit(self._persist, record)
        return True

    def sync_change_count(self) -> None:
        self._last_change_count = self._pasteboard.change_count()

    def mark_self_write(self) -> None:
        self._self_write.set()

    def write(self, record: Record, plain_text_only: bool = False) -> bool:
        """Put ``record`` back on the clipboard without capturing it again."""
        if self._writer is None:
            logger.error("No clipboard writer configured")
            return False
        if record.is_text and (plain_text_only or record.format == PasteboardFormat.STRING):
            data, fmt = record.search_text.encode("utf-8"), PasteboardFormat.STRING
        else:
            data, fmt = record.raw_data, record.format
        self.mark_self_write()
        try:
            self._writer.write(data, fmt.value)
        except Exception:
            self._self_write.clear()
            logger.exception("Error writing to clipboard")
            return False
        return True

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _contains_sensitive(self, formats: list[str]) -> bool:
        markers = self._sensitive.sensitive_formats()
        return any(fmt in markers for fmt in formats)

    def _is_ignored(self, source: SourceApp) -> bool:
        if self._ignore_list is None:
            return False
        return any(app.matches(source) for app in self._ignore_list.ignored_apps())

    def _read_clipboard(self, formats: list[str], source: SourceApp | None) -> Record | None:
        for fmt in SUPPORTED_FORMATS:
            if fmt.value not in formats:
                continue
            data = self._pasteboard.read(fmt.value)
            if not data:
                continue
            return build_record(fmt, bytes(data), source)
        return None

    def _persist(self, record: Record) -> None:
        try:
            record_id = self._storage.insert(record)
        except Exception:
            logger.exception("Error storing clipboard record")
            return
        if record_id < 0:
            logger.error("Clipboard record was not stored")
            return
        stored = record.with_updates(id=record_id)
        for listener in list(self._listeners):
            try:
                listener(stored)
            except Exception:
                logger.exception("Capture listener failed")
