import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("CLIPSTASH_DATA_DIR", Path.home() / ".local" / "share" / "clipstash"))
DB_PATH = DATA_DIR / "clipstash.db"
LOG_PATH = DATA_DIR / "clipstash.log"
PREFS_PATH = DATA_DIR / "preferences.json"
LOG_LEVEL = os.environ.get("CLIPSTASH_LOG_LEVEL", "INFO").upper()

POLL_INTERVAL = 1.0  # seconds between clipboard checks
RETENTION_CHECK_INTERVAL = 3600  # seconds between expiry checks
PAGE_SIZE = 50  # rows per history page
PREVIEW_LENGTH = 250  # characters kept in preview_data
SEARCH_DEBOUNCE = 0.2  # seconds
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit
MENU_PREVIEW_LENGTH = 60  # characters shown in menu item

BUSY_TIMEOUT = 5.0  # sqlite busy timeout, seconds
WRITE_RETRIES = 3
WRITE_RETRY_DELAY = 0.05  # doubled on each retry

MIGRATION_BATCH_SIZE = 500
MIGRATION_BATCH_DELAY = 0.1  # seconds between batches

# Pasteboard types written by password managers
SENSITIVE_FORMATS = frozenset({
    "org.nspasteboard.ConcealedType",
    "com.apple.password",
    "com.apple.securetext",
})


def _parse_menu_display_count() -> int:
    raw = os.environ.get("CLIPSTASH_MENU_DISPLAY_COUNT")
    if raw is None:
        return 15
    try:
        value = int(raw)
    except ValueError:
        return 15
    return max(5, min(PAGE_SIZE, value))


MENU_DISPLAY_COUNT = _parse_menu_display_count()
