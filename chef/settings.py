"""
Typed access to the free-form settings kept in the store.
"""

from __future__ import annotations

import os
import sys

from .common import command_exists
from .store import ChefStore

# (binary, argument introducing the command to run)
KNOWN_TERMINALS = [
    ("kgx", "--"),
    ("gnome-terminal", "--"),
    ("xfce4-terminal", "-e"),
    ("konsole", "-e"),
    ("x-terminal-emulator", "-e"),
    ("alacritty", "-e"),
    ("kitty", ""),
    ("xterm", "-e"),
]


def _flag(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value == "true"


class SettingsManager:
    """Editor, terminal and UI preferences stored under ``_settings``."""

    def __init__(self, store: ChefStore):
        self.store = store

    def get_editor_command(self) -> str:
        saved = self.store.get_setting("editorCommand")
        if saved:
            return saved
        if sys.platform == "win32":
            return "start"
        if sys.platform == "darwin":
            return "open"
        return "xdg-open"

    def set_editor_command(self, command: str) -> None:
        self.store.set_setting("editorCommand", command)

    def get_terminal_command(self) -> str:
        """
        Command prefix that opens a terminal running the rest of the line.

        Resolution order: saved setting, platform default, $TERMINAL, the first
        known terminal emulator on PATH, then xterm.
        """
        saved = self.store.get_setting("terminalCommand")
        if saved:
            return saved
        if sys.platform == "win32":
            return "cmd /c start"
        if sys.platform == "darwin":
            return "open -a Terminal"

        env_terminal = os.environ.get("TERMINAL")
        if env_terminal:
            return f"{env_terminal} -e"

        for binary, args in KNOWN_TERMINALS:
            if command_exists(binary):
                return f"{binary} {args}".strip()
        return "xterm -e"

    def set_terminal_command(self, command: str) -> None:
        self.store.set_setting("terminalCommand", command)

    def get_stay_in_background(self) -> bool:
        return _flag(self.store.get_setting("stayInBackground"), False)

    def set_stay_in_background(self, stay: bool) -> None:
        self.store.set_setting("stayInBackground", "true" if stay else "false")

    def get_auto_update_check(self) -> bool:
        return _flag(self.store.get_setting("autoUpdateCheck"), True)

    def set_auto_update_check(self, enabled: bool) -> None:
        self.store.set_setting("autoUpdateCheck", "true" if enabled else "false")

    def get_background_update_notification(self) -> bool:
        return _flag(self.store.get_setting("backgroundUpdateNotification"), True)

    def set_background_update_notification(self, enabled: bool) -> None:
        self.store.set_setting("backgroundUpdateNotification", "true" if enabled else "false")
