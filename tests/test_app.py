"""Tests for app.py functionality.

ClipStashApp inherits from rumps.App, which needs macOS GUI components, so
these tests build the app without running ``__init__`` and exercise the menu
logic against an in-memory store.
"""

from unittest.mock import MagicMock, patch

import pytest

pytest.importorskip("rumps")
pytest.importorskip("AppKit")

from clipstash.actions import ClipboardActions  # noqa: E402
from clipstash.app import ENTRY_KEY_PREFIX, ClipStashApp  # noqa: E402
from clipstash.history import HistoryCache, SearchCriteria  # noqa: E402
from clipstash.monitor import ClipboardMonitor  # noqa: E402


@pytest.fixture
def app(storage, pasteboard, executor):
    instance = ClipStashApp.__new__(ClipStashApp)
    instance._storage = storage
    instance._cache = HistoryCache(storage, page_size=50)
    instance._monitor = ClipboardMonitor(storage, pasteboard, writer=pasteboard, executor=executor)
    instance._actions = ClipboardActions(storage, instance._monitor, instance._cache)
    instance._entries = {}
    yield instance
    instance._cache.close()


def titles(specs):
    return [spec.title if spec is not None else None for spec in specs]


class TestMenuSpecs:
    def test_empty_history(self, app):
        app._cache.reset_default()
        specs = app._compute_menu_specs()
        assert "(No clipboard history)" in titles(specs)
        assert "Show All" not in titles(specs)
        assert titles(specs)[-1] == "Quit ClipStash"

    def test_entries_listed_newest_first(self, app, storage, make_record):
        storage.insert(make_record("older", timestamp=1))
        storage.insert(make_record("newer", timestamp=2))
        app._cache.reset_default()
        entry_specs = [s for s in app._compute_menu_specs() if s is not None and s.entry_id is not None]
        assert [s.title for s in entry_specs] == ["newer", "older"]
        assert set(app._entries) == {f"{ENTRY_KEY_PREFIX}{s.entry_id}" for s in entry_specs}

    def test_menu_capped(self, app, storage, make_record):
        for i in range(30):
            storage.insert(make_record(f"item {i}", timestamp=i))
        app._cache.reset_default()
        with patch("clipstash.app.MENU_DISPLAY_COUNT", 10):
            specs = app._compute_menu_specs()
        assert len([s for s in specs if s is not None and s.entry_id is not None]) == 10

    def test_filtered_view_offers_show_all(self, app, storage, make_record):
        storage.insert(make_record("apple"))
        app._cache.apply_search(SearchCriteria(keyword="apple"))
        assert "Show All" in titles(app._compute_menu_specs())

    def test_type_filter_submenu(self, app, storage, make_record):
        storage.insert(make_record("https://example.com"))
        storage.insert(make_record("#fff"))
        app._cache.reset_default()
        submenu = next(s for s in app._compute_menu_specs() if s is not None and s.is_submenu)
        assert [c.title for c in submenu.children] == ["Colors", "Links"]

    def test_filed_entry_marked(self, app, storage, make_record):
        storage.insert(make_record("filed", group=1))
        app._cache.reset_default()
        entry = next(s for s in app._compute_menu_specs() if s is not None and s.entry_id is not None)
        assert entry.title.endswith("filed")
        assert entry.title != "filed"


class TestEntryClick:
    def test_click_copies_and_promotes(self, app, storage, pasteboard, make_record):
        old_id = storage.insert(make_record("old", timestamp=1))
        storage.insert(make_record("new", timestamp=2))
        app._cache.reset_default()
        app._compute_menu_specs()

        sender = MagicMock()
        sender._id = f"{ENTRY_KEY_PREFIX}{old_id}"
        with patch.object(app, "_option_key_down", return_value=False), patch.object(app, "_build_menu") as rebuild:
            app._on_entry_click(sender)

        assert pasteboard.written == [(b"old", "public.utf8-plain-text")]
        assert app._cache.rows[0].id == old_id
        rebuild.assert_called_once()

    def test_option_click_deletes(self, app, storage, make_record):
        record_id = storage.insert(make_record("remove me"))
        app._cache.reset_default()
        app._compute_menu_specs()

        sender = MagicMock()
        sender._id = f"{ENTRY_KEY_PREFIX}{record_id}"
        with patch.object(app, "_option_key_down", return_value=True), patch.object(app, "_build_menu"):
            app._on_entry_click(sender)

        assert storage.get(record_id) is None

    def test_unknown_sender_ignored(self, app, pasteboard):
        sender = MagicMock(spec=[])
        app._on_entry_click(sender)
        assert pasteboard.written == []
