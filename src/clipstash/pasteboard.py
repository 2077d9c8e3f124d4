"""NSPasteboard-backed clipboard access for macOS."""

import logging
from pathlib import Path

from AppKit import NSPasteboard, NSPasteboardTypeString, NSURL, NSWorkspace
from Foundation import NSData

from clipstash.models import PasteboardFormat, SourceApp

logger = logging.getLogger(__name__)


class MacPasteboard:
    """Snapshot provider and writer over the general pasteboard."""

    def __init__(self, pasteboard=None, workspace=None):
        self._pasteboard = pasteboard or NSPasteboard.generalPasteboard()
        self._workspace = workspace or NSWorkspace.sharedWorkspace()

    def change_count(self) -> int:
        return int(self._pasteboard.changeCount())

    def available_formats(self) -> list[str]:
        types = self._pasteboard.types()
        if types is None:
            return []
        return [str(t) for t in types]

    def read(self, fmt: str) -> bytes | None:
        if fmt == PasteboardFormat.FILE_URL.value:
            return self._read_file_paths()
        if fmt == PasteboardFormat.STRING.value:
            text = self._pasteboard.stringForType_(NSPasteboardTypeString)
            return text.encode("utf-8") if text else None
        data = self._pasteboard.dataForType_(fmt)
        if data is None:
            return None
        return bytes(data)

    def _read_file_paths(self) -> bytes | None:
        urls = self._pasteboard.readObjectsForClasses_options_([NSURL], None)
        if not urls:
            return None
        paths = [str(url.path()) for url in urls if url.isFileURL()]
        if not paths:
            return None
        return "\n".join(paths).encode("utf-8")

    def source_application(self) -> SourceApp | None:
        app = self._workspace.frontmostApplication()
        if app is None:
            return None
        bundle_url = app.bundleURL()
        return SourceApp(
            name=str(app.localizedName() or ""),
            bundle_path=str(bundle_url.path()) if bundle_url else "",
            bundle_id=str(app.bundleIdentifier()) if app.bundleIdentifier() else None,
        )

    def write(self, data: bytes, fmt: str) -> None:
        self._pasteboard.clearContents()
        if fmt == PasteboardFormat.STRING.value:
            self._pasteboard.setString_forType_(data.decode("utf-8"), NSPasteboardTypeString)
            return
        if fmt == PasteboardFormat.FILE_URL.value:
            paths = [p.strip() for p in data.decode("utf-8").split("\n") if p.strip()]
            paths = [p for p in paths if Path(p).exists()]
            urls = [NSURL.fileURLWithPath_(p) for p in paths]
            if not urls:
                logger.warning("None of the copied files exist anymore, nothing written")
                return
            self._pasteboard.writeObjects_(urls)
            return
        ns_data = NSData.dataWithBytes_length_(data, len(data))
        self._pasteboard.setData_forType_(ns_data, fmt)
