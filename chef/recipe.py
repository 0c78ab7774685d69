"""
Recipe and install-result types.

A recipe is one named, independently installable unit: an async download
routine, an async latest-version lookup, and optional invocation defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from .cancellation import CancellationToken


@dataclass(frozen=True)
class ExeInstall:
    """A single file, copied into the managed binary directory."""
    exe: str


@dataclass(frozen=True)
class DirInstall:
    """
    A whole directory, copied and symlinked to its entry point.

    Attributes:
        path: Directory produced by the download (relative to the work dir)
        exe: Entry point, relative to path
    """
    path: str
    exe: str


@dataclass(frozen=True)
class ExternInstall:
    """An artifact resolved through PATH; no local file is managed."""
    command: str


InstallResult = Union[ExeInstall, DirInstall, ExternInstall]


def parse_install_result(value: Any) -> InstallResult:
    """
    Normalize what a download routine returned.

    Accepts the dataclass variants directly, or the mapping shapes
    ``{"exe": path}``, ``{"dir": {"path": ..., "exe": ...}}`` and
    ``{"extern": command}``.

    Raises:
        ValueError: If the value is not exactly one install variant
    """
    if isinstance(value, (ExeInstall, DirInstall, ExternInstall)):
        return value

    if not isinstance(value, dict):
        raise ValueError(f"Download returned {type(value).__name__}, expected an install result")

    keys = {"exe", "dir", "extern"} & set(value)
    if len(keys) != 1:
        raise ValueError(
            "Download result must set exactly one of 'exe', 'dir' or 'extern', "
            f"got: {sorted(value)}"
        )

    kind = keys.pop()
    if kind == "exe":
        return ExeInstall(exe=str(value["exe"]))
    if kind == "extern":
        return ExternInstall(command=str(value["extern"]))

    dir_spec = value["dir"]
    if not isinstance(dir_spec, dict) or "path" not in dir_spec or "exe" not in dir_spec:
        raise ValueError("'dir' result needs both 'path' and 'exe'")
    return DirInstall(path=str(dir_spec["path"]), exe=str(dir_spec["exe"]))


@dataclass(frozen=True)
class DesktopFile:
    """
    Launcher entry declared by a recipe.

    Attributes:
        name: Name field of the desktop entry (defaults to the recipe name)
        comment: Comment field
        categories: Categories field
        icon: Icon path or URL, copied into the icons directory
        icon_path: Fallback for icon
        terminal: Terminal field
    """
    name: str | None = None
    comment: str | None = None
    categories: str | None = None
    icon: str | None = None
    icon_path: str | None = None
    terminal: bool = False


# (bytes_loaded, bytes_total); total is None when the size is unknown
ProgressCallback = Callable[[int, Union[int, None]], None]


@dataclass(frozen=True)
class DownloadRequest:
    """
    Arguments handed to a recipe's download routine.

    Attributes:
        latest_version: Version resolved by the version check
        token: Cancellation token for the whole update call
        force: Whether a reinstall of the same version was requested
        on_progress: Progress callback for the download transport
    """
    latest_version: str
    token: CancellationToken
    force: bool = False
    on_progress: ProgressCallback | None = None


DownloadFn = Callable[[DownloadRequest], Awaitable[Any]]
VersionFn = Callable[[], Awaitable[Union[str, None]]]


@dataclass(frozen=True)
class Recipe:
    """
    Definition of one manageable binary.

    Attributes:
        name: Unique identifier across store, registry and runner
        download: Async routine producing an install result in the work dir
        version: Async routine returning the latest version, or None
        post_install: Hook called with the installed binary path
        cmd_args: Arguments prepended to user arguments when running
        cmd_env: Extra environment variables when running
        change_log: Builds a change log URL from the latest version
        desktop_file: Launcher entry to create after install
        description: Short description for listings
        provider: Provider name, set only for provider-backed recipes
        group: Provider-supplied grouping label
        current_version: Installed version as reported by the provider
        versions: Async routine listing available versions for a page
    """
    name: str
    download: DownloadFn
    version: VersionFn
    post_install: Callable[[str], Any] | None = None
    cmd_args: tuple[str, ...] = ()
    cmd_env: dict[str, str] = field(default_factory=dict)
    change_log: Callable[[str], str] | None = None
    desktop_file: DesktopFile | None = None
    description: str | None = None
    provider: str | None = None
    group: str | None = None
    current_version: str | None = None
    versions: Callable[[int], Awaitable[list[str]]] | None = None

    def __post_init__(self):
        """Validate recipe after initialization."""
        if not self.name:
            raise ValueError("Recipe name must not be empty")
        if self.name.startswith("_"):
            raise ValueError(f"Invalid recipe name: {self.name}. Names starting with '_' are reserved")
        if "/" in self.name or "\\" in self.name:
            raise ValueError(f"Invalid recipe name: {self.name}. Names must not contain path separators")

    @property
    def is_provider_backed(self) -> bool:
        return self.provider is not None
