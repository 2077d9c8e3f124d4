from unittest.mock import MagicMock

import pytest

pytest.importorskip("AppKit")

from clipstash.models import PasteboardFormat  # noqa: E402
from clipstash.pasteboard import MacPasteboard  # noqa: E402


@pytest.fixture
def ns_pasteboard():
    pb = MagicMock()
    pb.changeCount.return_value = 3
    pb.types.return_value = ["public.utf8-plain-text", "public.rtf"]
    return pb


@pytest.fixture
def workspace():
    ws = MagicMock()
    app = ws.frontmostApplication.return_value
    app.localizedName.return_value = "Notes"
    app.bundleURL.return_value.path.return_value = "/System/Applications/Notes.app"
    app.bundleIdentifier.return_value = "com.apple.Notes"
    return ws


@pytest.fixture
def mac(ns_pasteboard, workspace):
    return MacPasteboard(ns_pasteboard, workspace)


class TestRead:
    def test_change_count(self, mac):
        assert mac.change_count() == 3

    def test_available_formats(self, mac):
        assert mac.available_formats() == ["public.utf8-plain-text", "public.rtf"]

    def test_no_types(self, mac, ns_pasteboard):
        ns_pasteboard.types.return_value = None
        assert mac.available_formats() == []

    def test_read_string(self, mac, ns_pasteboard):
        ns_pasteboard.stringForType_.return_value = "héllo"
        assert mac.read(PasteboardFormat.STRING.value) == "héllo".encode("utf-8")

    def test_read_data(self, mac, ns_pasteboard):
        ns_pasteboard.dataForType_.return_value = b"{\\rtf1}"
        assert mac.read(PasteboardFormat.RTF.value) == b"{\\rtf1}"

    def test_read_missing(self, mac, ns_pasteboard):
        ns_pasteboard.dataForType_.return_value = None
        assert mac.read(PasteboardFormat.PNG.value) is None

    def test_read_file_urls(self, mac, ns_pasteboard):
        first, second = MagicMock(), MagicMock()
        first.isFileURL.return_value = second.isFileURL.return_value = True
        first.path.return_value = "/tmp/a.txt"
        second.path.return_value = "/tmp/b.txt"
        ns_pasteboard.readObjectsForClasses_options_.return_value = [first, second]
        assert mac.read(PasteboardFormat.FILE_URL.value) == b"/tmp/a.txt\n/tmp/b.txt"

    def test_source_application(self, mac):
        source = mac.source_application()
        assert source.name == "Notes"
        assert source.bundle_path == "/System/Applications/Notes.app"
        assert source.bundle_id == "com.apple.Notes"

    def test_no_frontmost_application(self, mac, workspace):
        workspace.frontmostApplication.return_value = None
        assert mac.source_application() is None


class TestWrite:
    def test_write_string(self, mac, ns_pasteboard):
        mac.write(b"hello", PasteboardFormat.STRING.value)
        ns_pasteboard.clearContents.assert_called_once()
        assert ns_pasteboard.setString_forType_.call_args[0][0] == "hello"

    def test_write_data(self, mac, ns_pasteboard):
        mac.write(b"\x89PNG", PasteboardFormat.PNG.value)
        assert ns_pasteboard.setData_forType_.call_args[0][1] == PasteboardFormat.PNG.value

    def test_write_files_skips_missing(self, mac, ns_pasteboard, tmp_path):
        existing = tmp_path / "here.txt"
        existing.write_text("x")
        mac.write(f"{existing}\n{tmp_path / 'gone.txt'}".encode(), PasteboardFormat.FILE_URL.value)
        urls = ns_pasteboard.writeObjects_.call_args[0][0]
        assert len(urls) == 1

    def test_write_files_all_missing(self, mac, ns_pasteboard, tmp_path):
        mac.write(str(tmp_path / "gone.txt").encode(), PasteboardFormat.FILE_URL.value)
        ns_pasteboard.writeObjects_.assert_not_called()
