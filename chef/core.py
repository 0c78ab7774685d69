"""
Chef: the object an embedding script builds and drives.

Example::

    from chef import Chef, Recipe

    chef = Chef(__file__)
    chef.add(Recipe(name="hello", download=download_hello, version=hello_version))

    if __name__ == "__main__":
        sys.exit(chef.main())
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .cancellation import CancellationToken
from .config import ChefConfig, load_config
from .desktop import DesktopFileManager
from .errors import ChefError, NotInstalled, UnknownRecipe
from .events import ChefEvents
from .paths import ChefPaths, script_name_from_path
from .progress import ProgressTracker
from .providers import ProviderManager
from .recipe import Recipe
from .registry import RecipeRegistry
from .runner import BinaryRunner
from .settings import SettingsManager
from .store import ChefStore, ProviderRegistration
from .updater import UpdateEngine, UpdateReport, VersionCheck

logger = logging.getLogger(__name__)


class Chef:
    """
    Composition root wiring the store, registry, providers, engine and runner.

    Args:
        script_path: Path of the embedding script; namespaces all chef data
        config: Configuration (loaded from the default locations if None)
        base_path: Overrides the configured base path
        applications_dir: Where desktop files go (default ~/.local/share/applications)
        verbose: Enable verbose diagnostics
    """

    def __init__(
        self,
        script_path: str | None = None,
        config: ChefConfig | None = None,
        base_path: str | Path | None = None,
        applications_dir: str | Path | None = None,
        verbose: bool = False,
    ):
        if script_path is None and sys.argv and sys.argv[0]:
            script_path = sys.argv[0]
        self.script_path = script_path
        self.config = config if config is not None else load_config(verbose=verbose)
        self.verbose = verbose or self.config.preferences.verbose

        root = Path(base_path).expanduser() if base_path else self.config.resolve_base_path()
        self.paths = ChefPaths(script_name=script_name_from_path(script_path), base_path=root)

        self.registry = RecipeRegistry()
        self.store = ChefStore(self.paths.db_path, known_names=self.registry.names)
        self.events = ChefEvents()
        self.settings = SettingsManager(self.store)
        self.providers = ProviderManager(
            self.store,
            shutdown_timeout=self.config.preferences.provider_shutdown_timeout,
            verbose=self.verbose,
        )
        self.desktop = DesktopFileManager(
            self.paths.icons_path,
            self._run_command(),
            self.registry.get,
            Path(applications_dir) if applications_dir else None,
        )
        self.runner = BinaryRunner(self.registry, self.store, self.paths, self.events)
        self.updater = UpdateEngine(
            self.registry,
            self.store,
            self.paths,
            desktop=self.desktop,
            events=self.events,
            max_concurrent_checks=self.config.preferences.max_concurrent_checks,
            verbose=self.verbose,
        )

    def _run_command(self) -> list[str]:
        """Command line prefix that runs a managed binary through this script."""
        script = self.edit()
        if script and script.endswith(".py"):
            return [sys.executable, os.path.abspath(script), "run"]
        if script:
            return [os.path.abspath(script), "run"]
        return ["chef", "run"]

    # Recipes

    def add(self, recipe: Recipe) -> None:
        self.registry.add(recipe)

    def add_many(self, recipes: Iterable[Recipe]) -> None:
        for recipe in recipes:
            self.registry.add(recipe)

    @property
    def recipes(self) -> tuple[Recipe, ...]:
        return self.registry.all()

    async def refresh_recipes(self, token: CancellationToken | None = None) -> int:
        """
        Rebuild the provider recipe list from every registered provider.

        Returns:
            Number of provider recipes now registered
        """
        recipes = await self.providers.get_provider_recipes(token)
        self.registry.replace_provider_recipes(recipes)
        if recipes:
            logger.info(f"Refreshed recipes: found {len(self.registry.provider_recipes)} from providers")
        return len(self.registry.provider_recipes)

    # Providers

    def add_provider(self, name: str, command: str) -> None:
        if not name or not command:
            raise ValueError("Provider name and command are required")
        self.store.add_provider(ProviderRegistration(name=name, command=command))

    def remove_provider(self, name: str) -> bool:
        return self.store.remove_provider(name)

    def get_providers(self) -> list[ProviderRegistration]:
        return self.store.get_providers()

    async def get_versions(self, name: str, page: int = 1) -> list[str]:
        """
        Versions a provider offers for one of its recipes.

        Raises:
            UnknownRecipe: If the recipe is unknown
            ChefError: If the recipe cannot list versions
        """
        recipe = self.registry.get(name)
        if recipe is None:
            raise UnknownRecipe(name)
        if recipe.versions is None:
            raise ChefError(f"{name} does not provide a version list")
        return await recipe.versions(page)

    # Updates

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
        """Run the update engine; provider recipes are refreshed after provider installs."""
        report = await self.updater.update(
            targets,
            force=force,
            skip=skip,
            dry_run=dry_run,
            token=token,
            tracker=tracker,
        )
        installed_via_provider = any(
            outcome.success and outcome.kind == "extern" and self._is_provider_recipe(outcome.name)
            for outcome in report.outcomes
        )
        if installed_via_provider and not (token is not None and token.cancelled):
            await self.refresh_recipes(token)
        return report

    async def install_or_update(
        self,
        name: str,
        force: bool = False,
        token: CancellationToken | None = None,
    ) -> UpdateReport:
        return await self.update([name], force=force, token=token)

    async def check_update(self, name: str) -> VersionCheck:
        return await self.updater.check_update(name)

    def _is_provider_recipe(self, name: str) -> bool:
        recipe = self.registry.get(name)
        return recipe is not None and recipe.is_provider_backed

    # Installed state

    def is_installed(self, name: str) -> bool:
        if self.store.is_installed(name):
            return True
        recipe = self.registry.get(name)
        return recipe is not None and recipe.is_provider_backed and recipe.current_version is not None

    def get_version(self, name: str) -> str | None:
        entry = self.store.get_entry(name)
        if entry is not None:
            return entry.version
        recipe = self.registry.get(name)
        return recipe.current_version if recipe is not None else None

    async def uninstall(self, name: str, token: CancellationToken | None = None) -> None:
        """
        Remove an installed artifact.

        Provider recipes are removed by their provider. Native recipes lose
        their desktop file, export link, managed files and store entry.

        Raises:
            UnknownRecipe: If no recipe has that name
            NotInstalled: If a native recipe has no store entry
            ProviderError: If the provider refuses
        """
        recipe = self.registry.get(name)
        if recipe is None:
            raise UnknownRecipe(name)

        if recipe.is_provider_backed:
            logger.info(f'Uninstalling "{name}" (via {recipe.provider})...')
            await self.providers.remove_app(recipe.provider, name, token)
            self.store.remove_entry(name)
            logger.info(f'Successfully uninstalled "{name}"')
            await self.refresh_recipes(token)
            return

        entry = self.store.get_entry(name)
        if entry is None:
            raise NotInstalled(name)

        logger.info(f'Uninstalling "{name}"...')
        self.desktop.remove(name, silent=True)
        self.unlink(name, silent=True)
        self.updater.remove_installed_files(name, entry)
        self.store.remove_entry(name)
        logger.info(f'Successfully uninstalled "{name}"')

    # PATH exports

    def link(self, name: str) -> Path:
        """
        Symlink a managed binary into the shared exports directory.

        Returns:
            Path of the created link

        Raises:
            UnknownRecipe: If no recipe has that name
            NotInstalled: If the binary is not installed
        """
        if name not in self.registry:
            raise UnknownRecipe(name)
        entry = self.store.get_entry(name)
        if entry is None:
            raise NotInstalled(name)
        if entry.extern:
            raise ChefError(f'"{name}" is resolved through PATH; there is nothing to link')

        exports = self.paths.exports_path
        exports.mkdir(parents=True, exist_ok=True)
        binary = self.paths.binary_path(name)
        link_path = self.paths.export_path(name)
        if link_path.is_symlink() or link_path.exists():
            link_path.unlink()
        link_path.symlink_to(binary)

        logger.info(f'Created symlink for "{name}": {link_path} -> {binary}')
        logger.info(f'To use "{name}" from anywhere, add exports to your PATH:')
        logger.info(f'   export PATH="{exports}:$PATH"')
        return link_path

    def unlink(self, name: str, silent: bool = False) -> bool:
        """
        Remove an export symlink; regular files are never removed.

        Returns:
            True if a symlink was removed
        """
        if name not in self.registry:
            if not silent:
                logger.error(f'Recipe "{name}" not found')
            return False

        link_path = self.paths.export_path(name)
        if not link_path.is_symlink():
            if not silent:
                if link_path.exists():
                    logger.error(f'"{name}" exists but is not a symlink')
                else:
                    logger.error(f'Symlink for "{name}" does not exist')
            return False

        link_path.unlink()
        if not silent:
            logger.info(f'Removed symlink for "{name}" from {self.paths.exports_path}')
        return True

    # Running

    async def run(self, name: str, args: Sequence[str] = (), **kwargs) -> asyncio.subprocess.Process:
        return await self.runner.run(name, args, **kwargs)

    async def run_in_terminal(self, name: str, args: Sequence[str] = ()) -> asyncio.subprocess.Process:
        """Launch an artifact inside the configured terminal emulator."""
        target = self.runner.lookup(name)
        target.raise_for_status()
        terminal = shlex.split(self.settings.get_terminal_command())
        process = await asyncio.create_subprocess_exec(*terminal, target.executable, *target.args, *args)
        self.runner.track(name, process)
        return process

    def kill_all(self, name: str) -> int:
        return self.runner.kill_all(name)

    def add_status_listener(self, listener: Callable[[str, bool], None]) -> Callable[[], None]:
        return self.events.on_status_change(listener)

    def add_progress_listener(self, listener: Callable[[str, int, "int | None"], None]) -> Callable[[], None]:
        return self.events.on_progress(listener)

    # Misc

    def edit(self) -> str | None:
        """Path of the embedding script."""
        if self.script_path and self.script_path.startswith("file://"):
            return self.script_path[len("file://"):]
        return self.script_path

    async def cleanup(self) -> None:
        """Close provider sessions."""
        await self.providers.cleanup()

    def main(self, argv: Sequence[str] | None = None) -> int:
        """Run the command line interface against this instance."""
        from .cli import main
        return main(argv, chef=self)
