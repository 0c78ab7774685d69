"""
Common utilities shared across chef modules.
"""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def exe_extension() -> str:
    """Platform executable suffix for managed binaries."""
    return ".exe" if sys.platform == "win32" else ""


def get_chef_base_path() -> Path:
    """
    Root directory for all chef data.

    Resolution order: CHEF_BASE_PATH, then $XDG_DATA_HOME/chef, then
    ~/.local/share/chef.

    Returns:
        Base path (not created)
    """
    override = os.environ.get("CHEF_BASE_PATH")
    if override:
        return Path(override).expanduser()

    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data) / "chef"

    return Path.home() / ".local" / "share" / "chef"


def command_exists(command: str) -> bool:
    """Check whether a command is reachable through PATH."""
    return shutil.which(command) is not None


@contextmanager
def temporary_workdir(prefix: str = "chef-") -> Iterator[Path]:
    """
    Run the enclosed block inside a fresh, empty temporary directory.

    The previous working directory is restored and the temporary directory
    removed on every exit path.
    """
    previous = os.getcwd()
    workdir = Path(tempfile.mkdtemp(prefix=prefix))
    os.chdir(workdir)
    try:
        yield workdir
    finally:
        os.chdir(previous)
        shutil.rmtree(workdir, ignore_errors=True)


def remove_path(path: Path) -> bool:
    """
    Remove a file, symlink or directory tree if it exists.

    Returns:
        True if something was removed
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log verbose message using structured logging.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("CHEF_DEBUG", "0") == "1":
        from .logging_config import get_logger
        get_logger().debug(msg)
