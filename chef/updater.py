"""
Update engine: reconcile stored versions against latest versions.

An update call runs in two phases. The version-check phase looks up the
latest version of every target concurrently, bounded by a semaphore, and
classifies each one. The install phase then installs the artifacts that
need it one at a time, inside a fresh temporary working directory, and
writes each artifact's store entry as soon as it is installed.

Per-artifact failures become report rows. Unknown explicit targets and store
errors propagate before anything is changed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import shutil
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .cancellation import CancellationToken
from .common import remove_path, temporary_workdir, vlog
from .desktop import DesktopFileManager
from .errors import Cancelled, DownloadFailed, UnknownRecipe, VersionLookupFailed
from .events import ChefEvents
from .paths import ChefPaths
from .progress import (
    CANCELLED,
    CHECKING,
    ERROR,
    FAILED,
    INSTALLED,
    INSTALLING,
    NEEDS_UPDATE,
    SKIPPED,
    UP_TO_DATE,
    ProgressTracker,
)
from .recipe import DirInstall, DownloadRequest, ExeInstall, ExternInstall, InstallResult, Recipe, parse_install_result
from .registry import RecipeRegistry
from .store import ChefStore, StoreEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_CHECKS = 5


@dataclass(frozen=True)
class VersionCheck:
    """
    Classification of one artifact after the version-check phase.

    Attributes:
        name: Artifact name
        status: UP_TO_DATE, NEEDS_UPDATE, SKIPPED or ERROR
        current_version: Stored version (or provider-reported version)
        latest_version: Version returned by the lookup
        reason: Why the artifact was skipped or errored
    """
    name: str
    status: str
    current_version: str | None = None
    latest_version: str | None = None
    reason: str | None = None

    @property
    def needs_update(self) -> bool:
        return self.status == NEEDS_UPDATE

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "status": self.status,
            "current_version": self.current_version,
            "latest_version": self.latest_version,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class InstallOutcome:
    """
    Result of installing one artifact.

    Attributes:
        name: Artifact name
        success: Whether the install and store write succeeded
        previous_version: Version before the install
        new_version: Installed version (if successful)
        kind: Install kind of the new entry (exe, dir or extern)
        duration_seconds: Time spent on this artifact
        error_message: Human-readable error message if failed
    """
    name: str
    success: bool
    previous_version: str | None
    new_version: str | None
    kind: str | None = None
    duration_seconds: float = 0.0
    error_message: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "success": self.success,
            "previous_version": self.previous_version,
            "new_version": self.new_version,
            "kind": self.kind,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class UpdateReport:
    """
    Result of an update call.

    Attributes:
        checks: Version-check classification of every target
        outcomes: Install outcomes, in install order
        dry_run: Whether installs were skipped
        cancelled: Whether cancellation stopped the install phase early
        duration_seconds: Total execution time
    """
    checks: tuple[VersionCheck, ...]
    outcomes: tuple[InstallOutcome, ...] = ()
    dry_run: bool = False
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def needs_update(self) -> tuple[VersionCheck, ...]:
        return tuple(c for c in self.checks if c.needs_update)

    @property
    def updated(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def get_check(self, name: str) -> VersionCheck | None:
        return next((c for c in self.checks if c.name == name), None)

    def get_outcome(self, name: str) -> InstallOutcome | None:
        return next((o for o in self.outcomes if o.name == name), None)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "checks": [c.to_dict() for c in self.checks],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "updated": self.updated,
            "failed": self.failed,
            "duration_seconds": self.duration_seconds,
        }

    def summary(self) -> str:
        """Human-readable summary."""
        if self.dry_run:
            return f"{len(self.needs_update)} update(s) available"
        text = f"{self.updated} updated, {self.failed} failed"
        if self.cancelled:
            text += " (cancelled)"
        return text


def _skip_set(skip: str | Iterable[str] | None) -> set[str]:
    if skip is None:
        return set()
    if isinstance(skip, str):
        return {skip}
    return set(skip)


class UpdateEngine:
    """
    Decides and applies updates for registered recipes.

    Args:
        registry: Recipe registry
        store: Persistent store
        paths: Filesystem layout of the script namespace
        desktop: Desktop-file manager used for recipes declaring a launcher
        events: Receives download progress
        max_concurrent_checks: Simultaneous version lookups
        verbose: Enable verbose diagnostics
    """

    def __init__(
        self,
        registry: RecipeRegistry,
        store: ChefStore,
        paths: ChefPaths,
        desktop: DesktopFileManager | None = None,
        events: ChefEvents | None = None,
        max_concurrent_checks: int = DEFAULT_MAX_CONCURRENT_CHECKS,
        verbose: bool = False,
    ):
        if max_concurrent_checks < 1:
            raise ValueError("max_concurrent_checks must be at least 1")
        self.registry = registry
        self.store = store
        self.paths = paths
        self.desktop = desktop
        self.events = events
        self.max_concurrent_checks = max_concurrent_checks
        self.verbose = verbose

    def resolve_targets(self, targets: Sequence[str] | None) -> list[Recipe]:
        """
        Recipes for an explicit name list, or every registered recipe.

        Raises:
            UnknownRecipe: If any explicit name is not registered
        """
        if not targets:
            return list(self.registry.all())

        unknown = [name for name in targets if name not in self.registry]
        if unknown:
            raise UnknownRecipe(unknown)

        recipes: list[Recipe] = []
        seen: set[str] = set()
        for name in targets:
            if name in seen:
                continue
            seen.add(name)
            recipes.append(self.registry.get(name))
        return recipes

    async def check(
        self,
        recipe: Recipe,
        entry: StoreEntry | None,
        force: bool = False,
        skip: str | Iterable[str] | None = None,
    ) -> VersionCheck:
        """Classify one recipe against its stored entry."""
        current = entry.version if entry is not None else recipe.current_version

        if recipe.name in _skip_set(skip):
            return VersionCheck(recipe.name, SKIPPED, current_version=current, reason="skipped by request")

        try:
            latest = await self._lookup_latest(recipe)
        except Cancelled as e:
            vlog(f"{recipe.name}: version check cancelled ({e.message})", self.verbose)
            return VersionCheck(recipe.name, SKIPPED, current_version=current, reason="cancelled")
        except VersionLookupFailed as e:
            logger.error(f"{recipe.name}: {e.message}")
            return VersionCheck(recipe.name, ERROR, current_version=current, reason=e.message)

        if not latest:
            if current is None:
                logger.warning(f"Chef was not able to get the latest version of {recipe.name}")
                return VersionCheck(recipe.name, ERROR, reason="unable to get latest version")
            # Unreachable upstream: trust the stored version
            vlog(f"{recipe.name}: no latest version, keeping {current}", self.verbose)
            return VersionCheck(recipe.name, UP_TO_DATE, current_version=current)

        if not force and current == latest:
            return VersionCheck(recipe.name, UP_TO_DATE, current_version=current, latest_version=latest)

        return VersionCheck(recipe.name, NEEDS_UPDATE, current_version=current, latest_version=latest)

    @staticmethod
    async def _lookup_latest(recipe: Recipe) -> str | None:
        try:
            return await recipe.version()
        except Cancelled:
            raise
        except Exception as e:
            raise VersionLookupFailed(f"version lookup failed: {e}") from e

    async def check_all(
        self,
        recipes: Sequence[Recipe],
        entries: dict[str, StoreEntry],
        force: bool = False,
        skip: str | Iterable[str] | None = None,
        token: CancellationToken | None = None,
        tracker: ProgressTracker | None = None,
    ) -> list[VersionCheck]:
        """Run version checks with at most max_concurrent_checks in flight."""
        semaphore = asyncio.Semaphore(self.max_concurrent_checks)

        async def bounded(recipe: Recipe) -> VersionCheck:
            async with semaphore:
                if token is not None and token.cancelled:
                    return VersionCheck(recipe.name, SKIPPED, reason="cancelled")
                if tracker is not None:
                    tracker.update(recipe.name, CHECKING)
                result = await self.check(recipe, entries.get(recipe.name), force, skip)
                if tracker is not None:
                    tracker.update(recipe.name, result.status, result.reason or "")
                return result

        return list(await asyncio.gather(*(bounded(r) for r in recipes)))

    async def update(
        self,
        targets: Sequence[str] | None = None,
        *,
        force: bool = False,
        skip: str | Iterable[str] | None = None,
        dry_run: bool = False,
        token: CancellationToken | None = None,
        tracker: ProgressTracker | None = None,
    ) -> UpdateReport:
        """
        Check and install updates.

        Args:
            targets: Names to update (default: all registered recipes)
            force: Reinstall even when the stored version is the latest
            skip: Name or names to leave alone
            dry_run: Report what would be updated without touching anything
            token: Cooperative cancellation, checked between artifacts
            tracker: Receives per-artifact phase changes

        Returns:
            UpdateReport with the classification and install outcomes

        Raises:
            UnknownRecipe: If an explicit target is not registered
            StoreCorrupt: If the store file cannot be parsed
            StoreWriteFailed: If recording an installed artifact fails
        """
        start_time = time.time()
        token = token or CancellationToken()

        recipes = self.resolve_targets(targets)
        entries = self.store.read_all()

        logger.info("Looking for updates..")
        checks = await self.check_all(recipes, entries, force, skip, token, tracker)
        for check in checks:
            if check.status == UP_TO_DATE:
                vlog(f"{check.name} is up to date", self.verbose)
            elif check.status == SKIPPED:
                vlog(f"skipping {check.name}: {check.reason}", self.verbose)

        pending = [c for c in checks if c.needs_update]
        for check in pending:
            logger.info(f"{check.name} is out of date, updating to {check.latest_version}")

        if dry_run:
            if pending:
                logger.info("skipping installs because of --dry-run")
            return UpdateReport(
                checks=tuple(checks),
                dry_run=True,
                duration_seconds=time.time() - start_time,
            )

        outcomes: list[InstallOutcome] = []
        cancelled = False
        by_name = {r.name: r for r in recipes}

        for index, check in enumerate(pending):
            if token.cancelled:
                cancelled = True
                self._mark_not_started(pending[index:], tracker)
                break

            recipe = by_name[check.name]
            if recipe.change_log is not None:
                try:
                    logger.info(f"Change log: {recipe.change_log(check.latest_version)}")
                except Exception as e:
                    vlog(f"Could not build change log URL for {recipe.name}: {e}", self.verbose)

            if tracker is not None:
                tracker.update(recipe.name, INSTALLING)

            artifact_start = time.time()
            previous = entries.get(recipe.name)
            try:
                entry = await self.install(recipe, check.latest_version, previous, force, token)
            except Cancelled:
                logger.info(f"{recipe.name}: update cancelled")
                cancelled = True
                self._mark_not_started(pending[index:], tracker)
                break
            except Exception as e:
                logger.error(f"{recipe.name} failed to update: {e}")
                if tracker is not None:
                    tracker.update(recipe.name, FAILED, str(e))
                outcomes.append(InstallOutcome(
                    name=recipe.name,
                    success=False,
                    previous_version=check.current_version,
                    new_version=None,
                    duration_seconds=time.time() - artifact_start,
                    error_message=str(e),
                ))
                continue

            await self._create_desktop_file(recipe)

            # Durable before the next artifact starts
            self.store.set_entry(recipe.name, entry)
            entries[recipe.name] = entry

            logger.info(f"{recipe.name} {check.latest_version} was successfully updated")
            if tracker is not None:
                tracker.update(recipe.name, INSTALLED, check.latest_version)
            outcomes.append(InstallOutcome(
                name=recipe.name,
                success=True,
                previous_version=check.current_version,
                new_version=check.latest_version,
                kind=entry.kind,
                duration_seconds=time.time() - artifact_start,
            ))

        report = UpdateReport(
            checks=tuple(checks),
            outcomes=tuple(outcomes),
            cancelled=cancelled,
            duration_seconds=time.time() - start_time,
        )
        logger.info(f"Update finished: {report.summary()}")
        return report

    async def check_update(self, name: str) -> VersionCheck:
        """
        Version check for a single recipe, without installing.

        Raises:
            UnknownRecipe: If the recipe is not registered
        """
        recipe = self.registry.get(name)
        if recipe is None:
            raise UnknownRecipe(name)
        return await self.check(recipe, self.store.get_entry(name))

    async def install(
        self,
        recipe: Recipe,
        latest_version: str,
        previous: StoreEntry | None,
        force: bool = False,
        token: CancellationToken | None = None,
    ) -> StoreEntry:
        """
        Download and materialize one artifact; the store is not written.

        Returns:
            The entry to record for the new install
        """
        token = token or CancellationToken()
        on_progress = self.events.progress_callback(recipe.name) if self.events is not None else None
        request = DownloadRequest(
            latest_version=latest_version,
            token=token,
            force=force,
            on_progress=on_progress,
        )

        with temporary_workdir() as workdir:
            try:
                raw = await recipe.download(request)
            except (Cancelled, DownloadFailed):
                raise
            except Exception as e:
                raise DownloadFailed(f"Download failed: {e}") from e
            result = parse_install_result(raw)
            entry = self._materialize(recipe.name, latest_version, result, previous, workdir)

        if recipe.post_install is not None and not isinstance(result, ExternInstall):
            value = recipe.post_install(str(self.paths.binary_path(recipe.name)))
            if inspect.isawaitable(value):
                await value

        return entry

    def _materialize(
        self,
        name: str,
        version: str,
        result: InstallResult,
        previous: StoreEntry | None,
        workdir: Path,
    ) -> StoreEntry:
        """Move a downloaded artifact into the managed binary directory."""
        bin_path = self.paths.bin_path
        bin_path.mkdir(parents=True, exist_ok=True)
        binary = self.paths.binary_path(name)

        if previous is not None and previous.dir:
            stale = self._managed_dir(previous.dir)
            if stale is not None and remove_path(stale):
                vlog(f"Removed previous directory {stale}", self.verbose)

        if isinstance(result, ExternInstall):
            remove_path(binary)
            return StoreEntry(version=version, extern=result.command)

        if isinstance(result, ExeInstall):
            source = workdir / result.exe
            if not source.is_file():
                raise DownloadFailed(f"Download did not produce a file at {result.exe}")
            if binary.is_symlink() or binary.is_dir():
                remove_path(binary)
            shutil.copyfile(source, binary)
            binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            return StoreEntry(version=version)

        if isinstance(result, DirInstall):
            relative = Path(result.path)
            if relative.is_absolute() or ".." in relative.parts:
                raise DownloadFailed(f"Directory {result.path!r} is outside the download directory")
            source_dir = workdir / relative
            if not source_dir.is_dir():
                raise DownloadFailed(f"Download did not produce a directory at {result.path}")
            dir_name = relative.name
            if result.path in ("", ".") or not dir_name or dir_name == binary.name:
                dir_name = f"{name}-dir"
            dest = bin_path / dir_name
            remove_path(dest)
            shutil.copytree(source_dir, dest, symlinks=True)
            remove_path(binary)
            os.symlink(dest / result.exe, binary)
            return StoreEntry(version=version, dir=dir_name)

        raise DownloadFailed(f"Unsupported install result: {result!r}")

    async def _create_desktop_file(self, recipe: Recipe) -> None:
        if recipe.desktop_file is None or self.desktop is None:
            return
        try:
            await self.desktop.create(recipe.name)
        except Exception as e:
            logger.warning(f"Failed to create desktop file for {recipe.name}: {e}")

    def remove_installed_files(self, name: str, entry: StoreEntry) -> None:
        """Remove the managed binary and, for directory installs, its directory."""
        binary = self.paths.binary_path(name)
        if remove_path(binary):
            vlog(f"Removed {binary}", self.verbose)
        if entry.dir:
            directory = self._managed_dir(entry.dir)
            if directory is not None:
                remove_path(directory)

    def _managed_dir(self, dir_name: str) -> Path | None:
        """Path of a stored install directory, or None when it is not directly inside bin."""
        bin_path = self.paths.bin_path
        candidate = bin_path / dir_name
        if candidate.resolve().parent != bin_path.resolve():
            logger.warning(f"Refusing to remove {candidate}: not inside {bin_path}")
            return None
        return candidate

    @staticmethod
    def _mark_not_started(checks: Sequence[VersionCheck], tracker: ProgressTracker | None) -> None:
        if tracker is None:
            return
        for check in checks:
            tracker.update(check.name, CANCELLED, "not started")
