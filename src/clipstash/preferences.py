import json
import logging
import threading
from pathlib import Path

from clipstash.config import PREFS_PATH
from clipstash.models import HistoryTimeUnit, IgnoredApp

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_APPS = [
    IgnoredApp(
        name="Passwords",
        bundle_id="com.apple.Passwords",
        path="/System/Applications/Passwords.app",
    ),
    IgnoredApp(
        name="Keychain Access",
        bundle_id="com.apple.keychainaccess",
        path="/System/Applications/Utilities/Keychain Access.app",
    ),
]

DEFAULTS = {
    "ignore_sensitive_content": True,
    "ignored_apps": [app.to_dict() for app in DEFAULT_IGNORED_APPS],
    "history_time": 7,  # one week
    "last_clear_date": "",
    "tag_field_migrated": False,
    "sound_enabled": True,
}


class Preferences:
    """Small JSON-backed key-value settings file.

    Every ``set`` writes the whole file; reads come from memory. A missing
    or unreadable file means defaults.
    """

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path else PREFS_PATH
        self._lock = threading.Lock()
        self._values: dict = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
        except (OSError, ValueError):
            logger.exception("Could not read preferences from %s, using defaults", self._path)
            return
        if isinstance(data, dict):
            self._values = data

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            tmp.write_text(json.dumps(self._values, indent=2, sort_keys=True))
            tmp.replace(self._path)
        except OSError:
            logger.exception("Could not write preferences to %s", self._path)

    def get(self, key: str, default=None):
        with self._lock:
            if key in self._values:
                return self._values[key]
        return DEFAULTS.get(key, default)

    def set(self, key: str, value) -> None:
        with self._lock:
            self._values[key] = value
            self._save()

    @property
    def ignore_sensitive_content(self) -> bool:
        return bool(self.get("ignore_sensitive_content"))

    @property
    def sound_enabled(self) -> bool:
        return bool(self.get("sound_enabled"))

    @property
    def history_time(self) -> HistoryTimeUnit:
        return HistoryTimeUnit.from_raw(int(self.get("history_time")))

    @history_time.setter
    def history_time(self, unit: HistoryTimeUnit) -> None:
        self.set("history_time", unit.raw_value)

    @property
    def last_clear_date(self) -> str:
        return self.get("last_clear_date") or ""

    @last_clear_date.setter
    def last_clear_date(self, value: str) -> None:
        self.set("last_clear_date", value)

    @property
    def tag_field_migrated(self) -> bool:
        return bool(self.get("tag_field_migrated"))

    @tag_field_migrated.setter
    def tag_field_migrated(self, value: bool) -> None:
        self.set("tag_field_migrated", bool(value))

    def ignored_apps(self) -> list[IgnoredApp]:
        return [IgnoredApp.from_dict(d) for d in self.get("ignored_apps") or []]

    def set_ignored_apps(self, apps: list[IgnoredApp]) -> None:
        self.set("ignored_apps", [app.to_dict() for app in apps])
