import argparse
import logging
import sys
from datetime import datetime

from clipstash import __version__
from clipstash.config import DB_PATH, LOG_LEVEL, LOG_PATH, PREFS_PATH
from clipstash.history import SearchCriteria
from clipstash.preferences import Preferences
from clipstash.retention import RetentionPolicy
from clipstash.storage import StorageManager, open_storage
from clipstash.utils import ensure_dirs


def configure_logging(to_file: bool = True) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if to_file:
        handlers.insert(0, logging.FileHandler(LOG_PATH))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def run_app() -> int:
    """Run the ClipStash menu bar application."""
    ensure_dirs()
    configure_logging()

    from clipstash.app import ClipStashApp

    app = ClipStashApp()
    app.run()
    return 0


def list_history(storage: StorageManager, search: str = "", tags=None, apps=None, limit: int = 20) -> int:
    criteria = SearchCriteria(keyword=search, tags=tags, app_names=apps)
    records = storage.query(criteria.to_filter(), limit=limit)
    if not records:
        print("No clipboard history.")
        return 0
    for record in records:
        when = datetime.fromtimestamp(record.timestamp).strftime("%Y-%m-%d %H:%M")
        source = f" ({record.app_name})" if record.app_name else ""
        print(f"{record.id:>6}  {when}  [{record.tag or '?'}] {record.summary()}{source}")
    return 0


def expire_history(storage: StorageManager, prefs: Preferences) -> int:
    deleted = RetentionPolicy(storage, prefs).clear_data(prefs.history_time)
    print(f"Removed {deleted} expired items (keeping {prefs.history_time.display_text}).")
    return 0


def clear_history(storage: StorageManager, assume_yes: bool = False) -> int:
    if not assume_yes:
        answer = input("Clear all clipboard history? This cannot be undone. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    deleted = storage.drop_all()
    print(f"Cleared {deleted} items.")
    return 0


def show_stats(storage: StorageManager, prefs: Preferences) -> int:
    print(f"Database:  {storage.db_path}")
    print(f"Items:     {storage.total_count()}")
    tags = storage.distinct_tags()
    print(f"Types:     {', '.join(tags) if tags else '-'}")
    print(f"Apps:      {len(storage.distinct_app_names())}")
    print(f"Retention: {prefs.history_time.display_text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipstash",
        description="ClipStash - Clipboard history manager for macOS",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the menu bar app (default)")

    list_parser = sub.add_parser("list", help="Print recent history")
    list_parser.add_argument("--search", default="", help="Keyword to match in the item text")
    list_parser.add_argument("--tag", action="append", dest="tags", help="Only items of this type (repeatable)")
    list_parser.add_argument("--app", action="append", dest="apps", help="Only items copied from this app (repeatable)")
    list_parser.add_argument("--limit", type=int, default=20, help="Maximum number of items to print")

    sub.add_parser("expire", help="Delete items older than the retention setting")

    clear_parser = sub.add_parser("clear", help="Delete all history")
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    sub.add_parser("stats", help="Show database statistics")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.command in (None, "run"):
        sys.exit(run_app())

    ensure_dirs()
    configure_logging(to_file=False)
    prefs = Preferences(PREFS_PATH)
    with open_storage(DB_PATH) as storage:
        if args.command == "list":
            code = list_history(storage, args.search, args.tags, args.apps, args.limit)
        elif args.command == "expire":
            code = expire_history(storage, prefs)
        elif args.command == "clear":
            code = clear_history(storage, args.yes)
        else:
            code = show_stats(storage, prefs)
    sys.exit(code)


if __name__ == "__main__":
    main()
