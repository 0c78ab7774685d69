"""
Tests for store-backed settings (chef/settings.py).
"""

from unittest.mock import patch

import pytest

from chef.settings import SettingsManager


@pytest.fixture
def settings(store):
    return SettingsManager(store)


class TestEditor:
    def test_saved_value(self, settings):
        settings.set_editor_command("code -w")
        assert settings.get_editor_command() == "code -w"

    @pytest.mark.parametrize("platform,expected", [
        ("linux", "xdg-open"),
        ("darwin", "open"),
        ("win32", "start"),
    ])
    def test_platform_default(self, settings, platform, expected):
        with patch("chef.settings.sys.platform", platform):
            assert settings.get_editor_command() == expected


class TestTerminal:
    def test_saved_value(self, settings):
        settings.set_terminal_command("foot -e")
        assert settings.get_terminal_command() == "foot -e"

    def test_terminal_environment(self, settings, monkeypatch):
        monkeypatch.setenv("TERMINAL", "wezterm")
        with patch("chef.settings.sys.platform", "linux"):
            assert settings.get_terminal_command() == "wezterm -e"

    def test_first_known_terminal(self, settings, monkeypatch):
        """Test the first known emulator found on PATH is used."""
        monkeypatch.delenv("TERMINAL", raising=False)
        with patch("chef.settings.sys.platform", "linux"), \
                patch("chef.settings.command_exists", side_effect=lambda b: b in ("konsole", "xterm")):
            assert settings.get_terminal_command() == "konsole -e"

    def test_kitty_has_no_flag(self, settings, monkeypatch):
        monkeypatch.delenv("TERMINAL", raising=False)
        with patch("chef.settings.sys.platform", "linux"), \
                patch("chef.settings.command_exists", side_effect=lambda b: b == "kitty"):
            assert settings.get_terminal_command() == "kitty"

    def test_fallback(self, settings, monkeypatch):
        monkeypatch.delenv("TERMINAL", raising=False)
        with patch("chef.settings.sys.platform", "linux"), \
                patch("chef.settings.command_exists", return_value=False):
            assert settings.get_terminal_command() == "xterm -e"


class TestFlags:
    def test_defaults(self, settings):
        assert settings.get_stay_in_background() is False
        assert settings.get_auto_update_check() is True
        assert settings.get_background_update_notification() is True

    def test_round_trip(self, settings, store):
        settings.set_stay_in_background(True)
        settings.set_auto_update_check(False)
        settings.set_background_update_notification(False)

        assert settings.get_stay_in_background() is True
        assert settings.get_auto_update_check() is False
        assert settings.get_background_update_notification() is False
        assert store.get_settings() == {
            "stayInBackground": "true",
            "autoUpdateCheck": "false",
            "backgroundUpdateNotification": "false",
        }
