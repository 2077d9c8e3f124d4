import logging
import threading
from dataclasses import dataclass
from typing import Callable

import rumps

from clipstash import __version__
from clipstash.actions import ClipboardActions
from clipstash.config import (
    DB_PATH,
    MENU_DISPLAY_COUNT,
    MENU_PREVIEW_LENGTH,
    POLL_INTERVAL,
    PREFS_PATH,
    RETENTION_CHECK_INTERVAL,
)
from clipstash.history import HistoryCache, HistoryEvent, SearchCriteria
from clipstash.migration import TagMigration
from clipstash.models import UNASSIGNED_GROUP, Record
from clipstash.monitor import ClipboardMonitor
from clipstash.pasteboard import MacPasteboard
from clipstash.preferences import Preferences
from clipstash.retention import RetentionPolicy
from clipstash.storage import open_storage
from clipstash.utils import ensure_dirs

logger = logging.getLogger(__name__)

ENTRY_KEY_PREFIX = "clipstash_entry_"
IDLE_TITLE = "📋"
CAPTURE_TITLE = "✅"

FACET_TITLES = {
    "color": "Colors",
    "file": "Files",
    "image": "Images",
    "link": "Links",
    "string": "Text",
}


@dataclass
class MenuItemSpec:
    """Specification for a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    entry_id: int | None = None
    is_submenu: bool = False
    children: list["MenuItemSpec | None"] | None = None


class ClipStashApp(rumps.App):
    def __init__(self):
        super().__init__("ClipStash", title=IDLE_TITLE, quit_button=None)
        self._init_app()

    def _init_app(self) -> None:
        """Wire up storage, capture and the history view. Separated for testability."""
        ensure_dirs()
        self._prefs = Preferences(PREFS_PATH)
        self._storage = open_storage(DB_PATH)

        self._migration = TagMigration(self._storage, self._prefs)
        self._migration.start()

        pasteboard = MacPasteboard()
        self._cache = HistoryCache(self._storage)
        self._monitor = ClipboardMonitor(
            self._storage,
            pasteboard,
            ignore_list=self._prefs,
            writer=pasteboard,
            ignore_sensitive=lambda: self._prefs.ignore_sensitive_content,
        )
        self._captured = threading.Event()
        self._monitor.add_capture_listener(self._cache.insert_captured)
        self._monitor.add_capture_listener(self._on_captured)

        self._actions = ClipboardActions(self._storage, self._monitor, self._cache)
        self._retention = RetentionPolicy(self._storage, self._prefs, on_cleared=self._cache.remove_expired)

        # History events arrive on worker threads; the menu is rebuilt on the next timer tick
        self._menu_dirty = threading.Event()
        self._cache.subscribe(self._on_history_changed)

        self._entries: dict[str, Record] = {}
        self._cache.reset_default()
        self._retention.clear_expired()
        self._build_menu()

    def _on_history_changed(self, _event: HistoryEvent) -> None:
        self._menu_dirty.set()

    def _on_captured(self, _record: Record) -> None:
        self._captured.set()

    def _build_menu(self) -> None:
        """Build the menu from computed specifications."""
        self._menu_dirty.clear()
        self.menu.clear()
        self._entries.clear()
        specs = self._compute_menu_specs()
        self._render_menu_specs(specs)

    def _compute_menu_specs(self) -> list[MenuItemSpec | None]:
        """Compute menu item specifications. Pure logic, no rumps dependency."""
        if self._cache.is_filtered:
            header = f"Search results ({len(self._cache.rows)} shown)"
        else:
            header = f"ClipStash v{__version__} - {self._cache.total_count} items"

        specs: list[MenuItemSpec | None] = [
            MenuItemSpec(header),
            None,  # separator
            MenuItemSpec("Search...", callback=self._on_search),
        ]
        if self._cache.is_filtered:
            specs.append(MenuItemSpec("Show All", callback=self._on_show_all))

        facets = self._compute_facet_specs()
        if facets:
            specs.append(MenuItemSpec("Filter by Type", is_submenu=True, children=facets))
        specs.append(None)

        rows = self._cache.rows[:MENU_DISPLAY_COUNT]
        if not rows:
            specs.append(MenuItemSpec("(No clipboard history)"))
        for record in rows:
            specs.append(self._compute_entry_spec(record))

        specs.extend([
            None,
            MenuItemSpec("Clear History", callback=self._on_clear),
            None,
            MenuItemSpec("Quit ClipStash", callback=self._on_quit),
        ])
        return specs

    def _compute_facet_specs(self) -> list[MenuItemSpec | None]:
        return [
            MenuItemSpec(FACET_TITLES.get(tag, tag.title()), callback=self._make_facet_callback(tag))
            for tag in self._cache.tag_types()
        ]

    def _make_facet_callback(self, tag: str) -> Callable:
        def callback(_sender) -> None:
            self._cache.apply_search(SearchCriteria(tags={tag}))
            self._build_menu()

        return callback

    def _compute_entry_spec(self, record: Record) -> MenuItemSpec:
        key = f"{ENTRY_KEY_PREFIX}{record.id}"
        self._entries[key] = record
        title = record.summary(MENU_PREVIEW_LENGTH)
        if record.group != UNASSIGNED_GROUP:
            title = f"📁 {title}"
        return MenuItemSpec(title=title, callback=self._on_entry_click, entry_id=record.id)

    def _render_menu_specs(self, specs: list[MenuItemSpec | None]) -> None:
        self.menu = [self._render_single_spec(spec) for spec in specs]

    def _render_single_spec(self, spec: MenuItemSpec | None) -> rumps.MenuItem | None:
        if spec is None:
            return None

        if spec.is_submenu and spec.children:
            submenu = rumps.MenuItem(spec.title)
            for child in spec.children:
                submenu.add(self._render_single_spec(child))
            return submenu

        item = rumps.MenuItem(spec.title, callback=spec.callback)
        if spec.entry_id is not None:
            item._id = f"{ENTRY_KEY_PREFIX}{spec.entry_id}"
        return item

    @rumps.timer(POLL_INTERVAL)
    def _poll_clipboard(self, _sender) -> None:
        self._monitor.check_clipboard()
        if self._captured.is_set():
            self._captured.clear()
            self._pulse()
        elif self.title != IDLE_TITLE:
            self.title = IDLE_TITLE
        if self._menu_dirty.is_set():
            self._build_menu()

    @rumps.timer(RETENTION_CHECK_INTERVAL)
    def _check_retention(self, _sender) -> None:
        self._retention.clear_expired()

    def _pulse(self) -> None:
        """Flash the status item after a capture, with a sound if enabled."""
        self.title = CAPTURE_TITLE
        if not self._prefs.sound_enabled:
            return
        from AppKit import NSSound

        sound = NSSound.soundNamed_("Tink")
        if sound is not None:
            sound.play()

    def _option_key_down(self) -> bool:
        from AppKit import NSAlternateKeyMask, NSEvent

        return bool(NSEvent.modifierFlags() & NSAlternateKeyMask)

    def _on_entry_click(self, sender) -> None:
        record = self._entries.get(getattr(sender, "_id", ""))
        if record is None:
            return

        # Option-click deletes instead of copying
        if self._option_key_down():
            self._actions.delete(record)
            self._build_menu()
            return

        if self._actions.copy(record) is None:
            rumps.notification("ClipStash", "", "Could not copy to clipboard", sound=False)
            return
        self._build_menu()

    def _on_search(self, _sender) -> None:
        response = rumps.Window(
            message="Search clipboard history:",
            title="ClipStash Search",
            default_text="",
            ok="Search",
            cancel="Cancel",
            dimensions=(300, 24),
        ).run()

        if not response.clicked:
            return
        keyword = response.text.strip()
        if not keyword:
            self._on_show_all(None)
            return
        self._cache.apply_search(SearchCriteria(keyword=keyword))
        if not self._cache.rows:
            rumps.alert("ClipStash Search", f'No results for "{keyword}"')
        self._build_menu()

    def _on_show_all(self, _sender) -> None:
        self._cache.reset_default()
        self._build_menu()

    def _on_clear(self, _sender) -> None:
        if rumps.alert("ClipStash", "Clear all clipboard history? This cannot be undone.", ok="Clear", cancel="Cancel"):
            self._cache.drop_all()
            self._build_menu()

    def _on_quit(self, _sender) -> None:
        self._migration.cancel()
        self._migration.join(timeout=1.0)
        self._monitor.shutdown()
        self._cache.close()
        self._storage.close()
        rumps.quit_application()
