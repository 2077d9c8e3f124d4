import os
from unittest.mock import patch

from clipstash.config import SENSITIVE_FORMATS, _parse_menu_display_count


class TestParseMenuDisplayCount:
    def test_default_when_not_set(self):
        env = os.environ.copy()
        env.pop("CLIPSTASH_MENU_DISPLAY_COUNT", None)
        with patch.dict("os.environ", env, clear=True):
            assert _parse_menu_display_count() == 15

    def test_valid_value(self):
        with patch.dict("os.environ", {"CLIPSTASH_MENU_DISPLAY_COUNT": "20"}):
            assert _parse_menu_display_count() == 20

    def test_clamped_below_minimum(self):
        with patch.dict("os.environ", {"CLIPSTASH_MENU_DISPLAY_COUNT": "2"}):
            assert _parse_menu_display_count() == 5

    def test_clamped_to_page_size(self):
        with patch.dict("os.environ", {"CLIPSTASH_MENU_DISPLAY_COUNT": "100"}):
            assert _parse_menu_display_count() == 50

    def test_invalid_non_integer(self):
        with patch.dict("os.environ", {"CLIPSTASH_MENU_DISPLAY_COUNT": "abc"}):
            assert _parse_menu_display_count() == 15


class TestSensitiveFormats:
    def test_password_manager_markers(self):
        assert "org.nspasteboard.ConcealedType" in SENSITIVE_FORMATS
        assert "com.apple.password" in SENSITIVE_FORMATS
        assert "com.apple.securetext" in SENSITIVE_FORMATS
