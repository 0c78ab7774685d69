"""
Per-script namespaced paths.

Every embedding script gets its own directory under the base path, named
after the script file, so independent chef scripts never share a store.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .common import exe_extension


def script_name_from_path(script_path: str | None) -> str:
    """Namespace for a script path: its file name without extension."""
    if not script_path:
        return "default"
    if script_path.startswith("file://"):
        script_path = script_path[len("file://"):]
    stem = Path(script_path).stem
    return stem or "default"


@dataclass(frozen=True)
class ChefPaths:
    """
    Filesystem layout for one script namespace.

    Attributes:
        script_name: Namespace name
        base_path: Root for all chef data
    """
    script_name: str
    base_path: Path

    @property
    def script_dir(self) -> Path:
        return self.base_path / self.script_name

    @property
    def bin_path(self) -> Path:
        return self.script_dir / "bin"

    @property
    def icons_path(self) -> Path:
        return self.script_dir / "icons"

    @property
    def db_path(self) -> Path:
        return self.script_dir / "db.json"

    @property
    def exports_path(self) -> Path:
        # Shared between scripts so one PATH entry covers all of them
        return self.base_path / "exports"

    def binary_path(self, name: str) -> Path:
        """Managed path of a binary, with the platform executable suffix."""
        return self.bin_path / (name + exe_extension())

    def export_path(self, name: str) -> Path:
        return self.exports_path / (name + exe_extension())
