"""
Resolve artifact names to executables and track the processes started.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .errors import NotInstalled, UnknownRecipe
from .events import ChefEvents
from .paths import ChefPaths
from .registry import RecipeRegistry
from .store import ChefStore

logger = logging.getLogger(__name__)

# Lookup statuses
FOUND = "found"
UNKNOWN_RECIPE = "unknown_recipe"
NOT_INSTALLED = "not_installed"


@dataclass(frozen=True)
class LaunchTarget:
    """
    Outcome of resolving a name to something runnable.

    Attributes:
        name: Artifact name
        status: FOUND, UNKNOWN_RECIPE or NOT_INSTALLED
        executable: Path or command to launch (FOUND only)
        args: Default arguments declared by the recipe
        env: Extra environment declared by the recipe
    """
    name: str
    status: str
    executable: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.status == FOUND

    def raise_for_status(self) -> None:
        if self.status == UNKNOWN_RECIPE:
            raise UnknownRecipe(self.name)
        if self.status == NOT_INSTALLED:
            raise NotInstalled(self.name)


class BinaryRunner:
    """
    Launches installed artifacts and tracks live processes per name.

    Completion of a tracked process, whatever its exit code, removes it and
    emits a status change.
    """

    def __init__(
        self,
        registry: RecipeRegistry,
        store: ChefStore,
        paths: ChefPaths,
        events: ChefEvents | None = None,
    ):
        self.registry = registry
        self.store = store
        self.paths = paths
        self.events = events or ChefEvents()
        self._active: dict[str, set[asyncio.subprocess.Process]] = {}
        self._watchers: set[asyncio.Task] = set()

    def lookup(self, name: str) -> LaunchTarget:
        """Resolve a name without raising for the expected failure cases."""
        recipe = self.registry.get(name)
        if recipe is None:
            return LaunchTarget(name, UNKNOWN_RECIPE)

        if recipe.is_provider_backed:
            # Provider-installed tools are expected on PATH
            executable = name
        else:
            entry = self.store.get_entry(name)
            if entry is None:
                return LaunchTarget(name, NOT_INSTALLED)
            executable = entry.extern if entry.extern else str(self.paths.binary_path(name))

        return LaunchTarget(
            name,
            FOUND,
            executable=executable,
            args=tuple(recipe.cmd_args),
            env=dict(recipe.cmd_env),
        )

    async def run(self, name: str, args: Sequence[str] = (), **kwargs) -> asyncio.subprocess.Process:
        """
        Launch an artifact with the recipe's default arguments prepended.

        Extra keyword arguments go to asyncio.create_subprocess_exec (stdio
        redirection, cwd).

        Raises:
            UnknownRecipe: If no recipe has that name
            NotInstalled: If a native recipe has no store entry
            OSError: If the executable cannot be started
        """
        target = self.lookup(name)
        target.raise_for_status()

        env = None
        if target.env:
            env = {**os.environ, **target.env}

        process = await asyncio.create_subprocess_exec(
            target.executable,
            *target.args,
            *args,
            env=env,
            **kwargs,
        )
        self.track(name, process)
        return process

    def track(self, name: str, process: asyncio.subprocess.Process) -> None:
        self._active.setdefault(name, set()).add(process)
        self.events.emit_status(name, True)

        task = asyncio.create_task(self._wait(name, process))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

    async def _wait(self, name: str, process: asyncio.subprocess.Process) -> None:
        try:
            await process.wait()
        finally:
            processes = self._active.get(name)
            if processes is not None:
                processes.discard(process)
                if not processes:
                    del self._active[name]
            self.events.emit_status(name, False)

    def is_running(self, name: str) -> bool:
        return bool(self._active.get(name))

    def running_count(self, name: str) -> int:
        return len(self._active.get(name, ()))

    def kill_all(self, name: str) -> int:
        """
        Terminate every tracked process for a name.

        Returns:
            Number of processes signalled
        """
        killed = 0
        for process in list(self._active.get(name, ())):
            try:
                process.kill()
                killed += 1
            except ProcessLookupError:
                # Exited on its own before the kill landed
                continue
            except OSError as e:
                logger.error(f"Failed to kill process for {name}: {e}")
        return killed

    def is_installed(self, name: str) -> bool:
        """Whether the store has an entry and the managed file (if any) exists."""
        entry = self.store.get_entry(name)
        if entry is None:
            return False
        if entry.extern:
            return True
        return self.paths.binary_path(name).exists()

    def get_binary_path(self, name: str) -> Path | None:
        if not self.is_installed(name):
            return None
        entry = self.store.get_entry(name)
        if entry is not None and entry.extern:
            return None
        return self.paths.binary_path(name)

    def installed_binaries(self) -> list[tuple[str, str, bool]]:
        """
        (name, version, ready) for every installed artifact.

        Store entries win. Provider recipes that report an
        installed version without a store entry are listed as ready.
        """
        entries = self.store.read_all()
        rows = {}
        for name, entry in entries.items():
            ready = bool(entry.extern) or self.paths.binary_path(name).exists()
            rows[name] = (name, entry.version, ready)
        for recipe in self.registry.provider_recipes:
            if recipe.name not in rows and recipe.current_version is not None:
                rows[recipe.name] = (recipe.name, recipe.current_version, True)
        return [rows[name] for name in sorted(rows)]
