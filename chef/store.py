"""
Persistent installation store.

One JSON document per script namespace, mapping binary names to their
installation record, plus two reserved keys: ``_settings`` (free-form string
settings) and ``_providers`` (ordered provider registrations).

Every point operation re-reads and rewrites the whole file. Serializing
writes per artifact is the update engine's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from .errors import StoreCorrupt, StoreWriteFailed

logger = logging.getLogger(__name__)

SETTINGS_KEY = "_settings"
PROVIDERS_KEY = "_providers"
RESERVED_KEYS = (SETTINGS_KEY, PROVIDERS_KEY)


@dataclass(frozen=True)
class StoreEntry:
    """
    Installation record for one binary.

    Attributes:
        version: Installed version
        dir: Directory name under the bin path, for directory installs
        extern: External command name, for PATH-resolved installs
    """
    version: str
    dir: str | None = None
    extern: str | None = None

    def __post_init__(self):
        """Validate entry after initialization."""
        if self.dir and self.extern:
            raise ValueError("A store entry cannot be both a directory and an external install")

    @property
    def kind(self) -> str:
        """Install kind: 'dir', 'extern' or 'exe' (flat single file)."""
        if self.dir:
            return "dir"
        if self.extern:
            return "extern"
        return "exe"

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        data = {"version": self.version}
        if self.dir:
            data["dir"] = self.dir
        if self.extern:
            data["extern"] = self.extern
        return data

    @classmethod
    def from_value(cls, value: Any) -> "StoreEntry":
        """
        Create from a stored value.

        A bare string is the legacy format and means a flat install at that version.

        Raises:
            ValueError: If the value is not a valid record
        """
        if isinstance(value, str):
            return cls(version=value)
        if not isinstance(value, dict) or not isinstance(value.get("version"), str):
            raise ValueError(f"invalid record: {value!r}")
        return cls(
            version=value["version"],
            dir=value.get("dir") or None,
            extern=value.get("extern") or None,
        )


@dataclass(frozen=True)
class ProviderRegistration:
    """A registered provider and the shell command that launches it."""
    name: str
    command: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "command": self.command}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderRegistration":
        return cls(name=str(data.get("name", "")), command=str(data.get("command", "")))


class ChefStore:
    """
    Read/normalize/write access to the store file.

    Args:
        path: Store file location
        known_names: Returns the names of currently registered recipes; entries
            for other names are hidden from reads and dropped on the next write.
            None disables filtering.
    """

    def __init__(self, path: Path, known_names: Callable[[], Iterable[str]] | None = None):
        self.path = Path(path)
        self._known_names = known_names

    def _read_raw(self) -> dict[str, Any]:
        """
        Parse the store file.

        Raises:
            StoreCorrupt: If the file exists but is not a JSON object
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StoreCorrupt(str(self.path), f"unreadable: {e}") from e

        if not text.strip():
            return {}

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StoreCorrupt(str(self.path), str(e)) from e

        if not isinstance(data, dict):
            raise StoreCorrupt(str(self.path), f"expected an object, got {type(data).__name__}")
        return data

    def _write_raw(self, data: dict[str, Any]) -> None:
        """Atomic write: write to temp file then rename."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
                f.write("\n")
            temp_path.replace(self.path)
        except OSError as e:
            raise StoreWriteFailed(str(self.path), str(e)) from e

    def read_all(self) -> dict[str, StoreEntry]:
        """
        Installed entries for the currently registered recipes.

        Raises:
            StoreCorrupt: If the file is not valid JSON or holds an invalid record
        """
        raw = self._read_raw()
        known = set(self._known_names()) if self._known_names is not None else None

        entries: dict[str, StoreEntry] = {}
        for name, value in raw.items():
            if name in RESERVED_KEYS:
                continue
            if known is not None and name not in known:
                logger.debug(f"Ignoring store entry for unknown recipe: {name}")
                continue
            try:
                entries[name] = StoreEntry.from_value(value)
            except ValueError as e:
                raise StoreCorrupt(str(self.path), f"entry '{name}': {e}") from e
        return entries

    def write_all(self, entries: dict[str, StoreEntry]) -> None:
        """
        Replace all entries, keeping settings and providers.

        Raises:
            StoreCorrupt: If the existing file cannot be parsed
            StoreWriteFailed: If the write fails
        """
        raw = self._read_raw()
        data: dict[str, Any] = {name: entry.to_dict() for name, entry in entries.items()}
        for key in RESERVED_KEYS:
            if key in raw:
                data[key] = raw[key]
        self._write_raw(data)

    def get_entry(self, name: str) -> StoreEntry | None:
        return self.read_all().get(name)

    def set_entry(self, name: str, entry: StoreEntry) -> None:
        entries = self.read_all()
        entries[name] = entry
        self.write_all(entries)

    def remove_entry(self, name: str) -> None:
        entries = self.read_all()
        if entries.pop(name, None) is not None:
            self.write_all(entries)

    def is_installed(self, name: str) -> bool:
        return name in self.read_all()

    def get_settings(self) -> dict[str, str]:
        settings = self._read_raw().get(SETTINGS_KEY, {})
        return dict(settings) if isinstance(settings, dict) else {}

    def get_setting(self, key: str) -> str | None:
        return self.get_settings().get(key)

    def set_setting(self, key: str, value: str) -> None:
        raw = self._read_raw()
        settings = raw.get(SETTINGS_KEY)
        if not isinstance(settings, dict):
            settings = {}
        settings[key] = value
        raw[SETTINGS_KEY] = settings
        self._write_raw(raw)

    def get_providers(self) -> list[ProviderRegistration]:
        providers = self._read_raw().get(PROVIDERS_KEY, [])
        if not isinstance(providers, list):
            return []
        return [ProviderRegistration.from_dict(p) for p in providers if isinstance(p, dict)]

    def add_provider(self, provider: ProviderRegistration) -> None:
        """Register a provider; an existing registration with the same name is replaced in place."""
        providers = self.get_providers()
        for index, existing in enumerate(providers):
            if existing.name == provider.name:
                providers[index] = provider
                break
        else:
            providers.append(provider)
        self._write_providers(providers)

    def remove_provider(self, name: str) -> bool:
        """
        Unregister a provider.

        Returns:
            True if a provider was removed
        """
        providers = self.get_providers()
        remaining = [p for p in providers if p.name != name]
        if len(remaining) == len(providers):
            return False
        self._write_providers(remaining)
        return True

    def _write_providers(self, providers: list[ProviderRegistration]) -> None:
        raw = self._read_raw()
        raw[PROVIDERS_KEY] = [p.to_dict() for p in providers]
        self._write_raw(raw)
