from clipstash.models import HistoryTimeUnit, IgnoredApp
from clipstash.preferences import Preferences


class TestDefaults:
    def test_defaults(self, prefs):
        assert prefs.ignore_sensitive_content is True
        assert prefs.sound_enabled is True
        assert prefs.history_time == HistoryTimeUnit.weeks(1)
        assert prefs.last_clear_date == ""
        assert prefs.tag_field_migrated is False

    def test_default_ignored_apps(self, prefs):
        names = [app.name for app in prefs.ignored_apps()]
        assert names == ["Passwords", "Keychain Access"]


class TestPersistence:
    def test_values_survive_reload(self, tmp_path):
        path = tmp_path / "preferences.json"
        prefs = Preferences(path)
        prefs.history_time = HistoryTimeUnit.months(2)
        prefs.last_clear_date = "2024-05-01"
        prefs.tag_field_migrated = True
        prefs.set_ignored_apps([IgnoredApp(name="Tool", bundle_id="com.example.tool")])

        reloaded = Preferences(path)
        assert reloaded.history_time == HistoryTimeUnit.months(2)
        assert reloaded.last_clear_date == "2024-05-01"
        assert reloaded.tag_field_migrated is True
        assert reloaded.ignored_apps() == [IgnoredApp(name="Tool", bundle_id="com.example.tool")]

    def test_unreadable_file_uses_defaults(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text("{not json")
        prefs = Preferences(path)
        assert prefs.history_time == HistoryTimeUnit.weeks(1)

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "preferences.json"
        Preferences(path).set("sound_enabled", False)
        assert Preferences(path).sound_enabled is False
