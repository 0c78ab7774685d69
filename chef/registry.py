"""
Recipe registry.

Two parts: native recipes supplied by the embedding script at startup, and a
provider-derived list that is rebuilt and swapped wholesale on every refresh.
Recipes are never mutated in place.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .recipe import Recipe

logger = logging.getLogger(__name__)


class RecipeRegistry:
    """Ordered collection of recipes, native first."""

    def __init__(self, native: Iterable[Recipe] = ()):
        self._native: tuple[Recipe, ...] = ()
        self._provider: tuple[Recipe, ...] = ()
        for recipe in native:
            self.add(recipe)

    def add(self, recipe: Recipe) -> None:
        """
        Register a native recipe.

        Raises:
            ValueError: If a native recipe with that name exists already
        """
        if recipe.is_provider_backed:
            raise ValueError(f"Recipe '{recipe.name}' is provider-backed; use replace_provider_recipes")
        if any(r.name == recipe.name for r in self._native):
            raise ValueError(f"Duplicate recipe name: {recipe.name}")
        self._native = self._native + (recipe,)

    def replace_provider_recipes(self, recipes: Sequence[Recipe]) -> None:
        """Swap in a freshly built provider recipe list."""
        native_names = {r.name for r in self._native}
        accepted: list[Recipe] = []
        seen: set[str] = set()
        for recipe in recipes:
            if recipe.name in native_names or recipe.name in seen:
                logger.warning(
                    f"Ignoring provider recipe '{recipe.name}' from '{recipe.provider}': name already registered"
                )
                continue
            seen.add(recipe.name)
            accepted.append(recipe)
        self._provider = tuple(accepted)

    @property
    def native(self) -> tuple[Recipe, ...]:
        return self._native

    @property
    def provider_recipes(self) -> tuple[Recipe, ...]:
        return self._provider

    def all(self) -> tuple[Recipe, ...]:
        return self._native + self._provider

    def names(self) -> list[str]:
        return [r.name for r in self.all()]

    def get(self, name: str) -> Recipe | None:
        for recipe in self.all():
            if recipe.name == name:
                return recipe
        return None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._native) + len(self._provider)
