"""
Shared fixtures for chef tests.
"""

import logging
from pathlib import Path

import pytest

from chef.config import ChefConfig
from chef.paths import ChefPaths
from chef.recipe import ExeInstall, Recipe
from chef.registry import RecipeRegistry
from chef.store import ChefStore


@pytest.fixture(autouse=True)
def reset_chef_logger():
    """Let caplog see chef records even after a test configured logging."""
    logger = logging.getLogger("chef")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def chef_paths(tmp_path):
    return ChefPaths(script_name="test", base_path=tmp_path / "chef")


@pytest.fixture
def registry():
    return RecipeRegistry()


@pytest.fixture
def store(chef_paths, registry):
    return ChefStore(chef_paths.db_path, known_names=registry.names)


@pytest.fixture
def config(tmp_path):
    return ChefConfig(base_path=str(tmp_path / "chef"))


@pytest.fixture
def make_recipe():
    """
    Factory for native recipes whose download writes a small script.

    Pass a list as ``calls`` to record (name, version) for every download.
    """
    def factory(name, latest="1.0.0", content=None, calls=None, fail=False, **kwargs):
        async def version():
            return latest

        async def download(request):
            if calls is not None:
                calls.append((name, request.latest_version))
            if fail:
                raise RuntimeError(f"network down for {name}")
            Path("exe").write_text(content if content is not None else f"#!/bin/sh\necho {name}\n")
            return ExeInstall(exe="exe")

        return Recipe(name=name, download=download, version=version, **kwargs)

    return factory
