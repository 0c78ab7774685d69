"""
Desktop launcher entries for installed binaries.

Entries are written to ~/.local/share/applications/<name>.desktop. Icons are
copied (or downloaded) into the script's icons directory so the entry keeps
working when the original file moves.
"""

from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path
from typing import Callable

import httpx

from .errors import UnknownRecipe
from .recipe import Recipe
from .transport import USER_AGENT
from .utils import is_url

logger = logging.getLogger(__name__)

ICON_EXTENSIONS = (".png", ".jpg", ".jpeg", ".svg", ".ico")


def default_applications_dir() -> Path:
    return Path.home() / ".local" / "share" / "applications"


def icon_extension(icon: str) -> str:
    """File extension of an icon path or URL, ".png" if there is none."""
    path = httpx.URL(icon).path if is_url(icon) else icon
    suffix = Path(path).suffix.lower()
    return suffix if suffix else ".png"


class DesktopFileManager:
    """
    Creates and removes launcher entries.

    Args:
        icons_path: Directory receiving icon copies
        run_command: Command line prefix that runs a managed binary by name
        get_recipe: Recipe lookup by name
        applications_dir: Where .desktop files go (default ~/.local/share/applications)
    """

    def __init__(
        self,
        icons_path: Path,
        run_command: list[str],
        get_recipe: Callable[[str], Recipe | None],
        applications_dir: Path | None = None,
    ):
        self.icons_path = Path(icons_path)
        self.run_command = list(run_command)
        self.get_recipe = get_recipe
        self.applications_dir = Path(applications_dir) if applications_dir else default_applications_dir()

    def desktop_path(self, name: str) -> Path:
        return self.applications_dir / f"{name}.desktop"

    def exists(self, name: str) -> bool:
        return self.desktop_path(name).exists()

    async def create(self, name: str, terminal: bool = False, icon: str | None = None) -> Path:
        """
        Write the launcher entry for a recipe.

        Args:
            name: Recipe name
            terminal: Terminal= value when the recipe does not declare one
            icon: Icon path or URL overriding the recipe's

        Returns:
            Path of the written .desktop file

        Raises:
            UnknownRecipe: If no recipe has that name
            OSError: If the entry cannot be written
        """
        recipe = self.get_recipe(name)
        if recipe is None:
            raise UnknownRecipe(name)

        descriptor = recipe.desktop_file
        self.applications_dir.mkdir(parents=True, exist_ok=True)
        self.icons_path.mkdir(parents=True, exist_ok=True)

        declared_icon = descriptor.icon or descriptor.icon_path if descriptor else None
        final_icon = declared_icon
        source = icon or declared_icon
        if source:
            target = self.icons_path / f"{name}-icon{icon_extension(source)}"
            try:
                await self._copy_icon(source, target)
                final_icon = str(target)
            except (OSError, httpx.HTTPError) as e:
                logger.error(f"Failed to copy icon file: {e}")

        if descriptor is not None and descriptor.terminal:
            terminal = True

        content = self.render(name, recipe, terminal, final_icon)
        path = self.desktop_path(name)
        path.write_text(content, encoding="utf-8")
        path.chmod(0o755)
        logger.info(f"Created desktop file for {name}")
        return path

    async def _copy_icon(self, source: str, target: Path) -> None:
        if is_url(source) and not source.startswith("file://"):
            async with httpx.AsyncClient(follow_redirects=True, headers={"User-Agent": USER_AGENT}) as client:
                response = await client.get(source)
                response.raise_for_status()
                target.write_bytes(response.content)
            return
        if source.startswith("file://"):
            source = source[len("file://"):]
        shutil.copyfile(source, target)

    def render(self, name: str, recipe: Recipe, terminal: bool, icon: str | None) -> str:
        """Contents of the .desktop file."""
        descriptor = recipe.desktop_file
        if recipe.is_provider_backed:
            exec_line = recipe.name
        else:
            exec_line = shlex.join(self.run_command + [recipe.name])

        lines = [
            "[Desktop Entry]",
            f"Name={descriptor.name if descriptor and descriptor.name else name}",
            f"Exec={exec_line}",
            "Type=Application",
            f"Terminal={'true' if terminal else 'false'}",
        ]
        if descriptor and descriptor.comment:
            lines.append(f"Comment={descriptor.comment}")
        if descriptor and descriptor.categories:
            lines.append(f"Categories={descriptor.categories}")
        if icon:
            lines.append(f"Icon={icon}")
        return "\n".join(lines) + "\n"

    def remove(self, name: str, silent: bool = False) -> bool:
        """
        Remove the launcher entry and its icon copy.

        Returns:
            True if a .desktop file was removed
        """
        for ext in ICON_EXTENSIONS:
            icon = self.icons_path / f"{name}-icon{ext}"
            if icon.exists():
                icon.unlink()
                break

        path = self.desktop_path(name)
        if not path.exists():
            if not silent:
                logger.error(f"No desktop file found for {name}")
            return False

        path.unlink()
        if not silent:
            logger.info(f"Removed desktop file for {name}")
        return True
