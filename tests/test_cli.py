"""
Tests for the command line interface (chef/cli.py).
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from chef.cli import build_parser, main
from chef.config import ChefConfig
from chef.core import Chef
from chef.errors import Cancelled
from chef.recipe import ExeInstall, Recipe


@pytest.fixture
def chef(tmp_path):
    return Chef(
        str(tmp_path / "tools.py"),
        config=ChefConfig(),
        base_path=tmp_path / "chef",
        applications_dir=tmp_path / "applications",
    )


def script_recipe(name, body, latest="1.0"):
    async def download(request):
        Path("exe").write_text("#!/bin/sh\n" + body + "\n")
        return ExeInstall(exe="exe")

    async def version():
        return latest

    return Recipe(name=name, download=download, version=version)


class TestParser:
    """Tests for argument parsing."""

    def test_update_options(self):
        args = build_parser().parse_args(["update", "a", "b", "--force", "--skip", "c", "--skip", "d", "--dry-run"])
        assert args.names == ["a", "b"]
        assert args.force is True
        assert args.skip == ["c", "d"]
        assert args.dry_run is True
        assert args.only is None

    def test_run_remainder(self):
        args = build_parser().parse_args(["run", "tool", "--flag", "value"])
        assert args.name == "tool"
        assert args.args == ["--flag", "value"]

    def test_global_flags(self):
        args = build_parser().parse_args(["-v", "--config", "/tmp/c.yml", "list"])
        assert args.verbose is True
        assert args.config == "/tmp/c.yml"
        assert args.command == "list"

    def test_provider_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["provider"])


class TestListCommand:
    """Tests for the list command."""

    def test_empty(self, chef, capsys):
        assert main(["list"], chef=chef) == 0
        assert "No binaries installed or available" in capsys.readouterr().out

    def test_default_command_is_list(self, chef, make_recipe, capsys):
        chef.add(make_recipe("hello"))
        assert main([], chef=chef) == 0
        out = capsys.readouterr().out
        assert "Available to Install" in out
        assert "hello" in out

    def test_installed_section(self, chef, make_recipe, capsys):
        chef.add(make_recipe("hello"))
        main(["update"], chef=chef)
        capsys.readouterr()

        main(["list"], chef=chef)

        out = capsys.readouterr().out
        assert "Installed Binaries" in out
        assert "Available to Install" not in out

    def test_provider_installed_app_listed(self, chef, capsys):
        """Test an app the provider reports as installed shows under installed rows."""
        brewed = Recipe(
            name="jq",
            download=AsyncMock(),
            version=AsyncMock(return_value="1.7"),
            provider="brew",
            current_version="1.6",
        )
        with patch.object(chef.providers, "get_provider_recipes", AsyncMock(return_value=[brewed])):
            assert main(["list"], chef=chef) == 0

        out = capsys.readouterr().out
        assert "Installed Binaries" in out
        assert "jq" in out
        assert "1.6" in out
        assert "Available to Install" not in out


class TestUpdateCommand:
    """Tests for the update command."""

    def test_update_all(self, chef, make_recipe):
        chef.add(make_recipe("hello", latest="1.0.0"))
        assert main(["update"], chef=chef) == 0
        assert json.loads(chef.paths.db_path.read_text()) == {"hello": {"version": "1.0.0"}}

    def test_update_failure_exit_code(self, chef, make_recipe):
        chef.add(make_recipe("good"))
        chef.add(make_recipe("bad", fail=True))
        assert main(["update"], chef=chef) == 1
        assert chef.store.get_entry("good") is not None

    def test_dry_run(self, chef, make_recipe, capsys):
        calls = []
        chef.add(make_recipe("hello", calls=calls))
        assert main(["update", "--dry-run"], chef=chef) == 0
        assert calls == []
        assert not chef.paths.db_path.exists()
        assert "would update" in capsys.readouterr().err

    def test_only_and_skip(self, chef, make_recipe):
        calls = []
        for name in ("a", "b", "c"):
            chef.add(make_recipe(name, calls=calls))

        main(["update", "--only", "b"], chef=chef)
        main(["update", "--skip", "a"], chef=chef)

        assert [name for name, _ in calls] == ["b", "c"]

    def test_unknown_target(self, chef, make_recipe, capsys):
        """Test an unknown name aborts with the remediation hint."""
        calls = []
        chef.add(make_recipe("hello", calls=calls))

        assert main(["update", "hello", "typo"], chef=chef) == 1

        err = capsys.readouterr().err
        assert "Unknown binary: typo" in err
        assert "Run 'list'" in err
        assert calls == []


class TestRunCommand:
    def test_exit_code_passed_through(self, chef):
        chef.add(script_recipe("seven", "exit 7"))
        main(["update"], chef=chef)
        assert main(["run", "seven"], chef=chef) == 7

    def test_arguments_forwarded(self, chef, tmp_path):
        out = tmp_path / "args.txt"
        chef.add(script_recipe("echoer", f'echo "$@" > {out}'))
        main(["update"], chef=chef)

        assert main(["run", "echoer", "--", "-x", "y"], chef=chef) == 0
        assert out.read_text().strip() == "-x y"

    def test_not_installed(self, chef, make_recipe, capsys):
        chef.add(make_recipe("hello"))
        assert main(["run", "hello"], chef=chef) == 1
        assert 'Binary "hello" is not installed' in capsys.readouterr().err


class TestUninstallCommand:
    def test_continues_past_errors(self, chef, make_recipe):
        chef.add(make_recipe("hello"))
        main(["update"], chef=chef)

        assert main(["uninstall", "ghost", "hello"], chef=chef) == 1
        assert chef.store.read_all() == {}


class TestLinkCommands:
    def test_link_unlink(self, chef, make_recipe):
        chef.add(make_recipe("hello"))
        main(["update"], chef=chef)

        assert main(["link", "hello"], chef=chef) == 0
        assert chef.paths.export_path("hello").is_symlink()
        assert main(["unlink", "hello"], chef=chef) == 0
        assert main(["unlink", "hello"], chef=chef) == 1


class TestDesktopFileCommand:
    def test_create_and_remove(self, chef, make_recipe, tmp_path):
        chef.add(make_recipe("hello"))

        assert main(["desktop-file", "create", "hello", "--terminal"], chef=chef) == 0
        content = (tmp_path / "applications" / "hello.desktop").read_text()
        assert "Terminal=true" in content

        assert main(["desktop-file", "remove", "hello"], chef=chef) == 0
        assert main(["desktop-file", "remove", "hello"], chef=chef) == 1

    def test_create_unknown(self, chef):
        assert main(["desktop-file", "create", "ghost"], chef=chef) == 1


class TestProviderCommand:
    def test_add_list_remove(self, chef, capsys):
        assert main(["provider", "add", "brew", "brew-provider --fast"], chef=chef) == 0
        assert main(["provider", "list"], chef=chef) == 0
        assert "brew-provider --fast" in capsys.readouterr().out

        assert main(["provider", "remove", "brew"], chef=chef) == 0
        assert main(["provider", "remove", "brew"], chef=chef) == 1
        main(["provider", "list"], chef=chef)
        assert "No providers registered" in capsys.readouterr().out


class TestMainErrors:
    """Tests for top-level error handling."""

    def test_cleanup_always_runs(self, chef):
        with patch.object(chef, "cleanup", AsyncMock()) as cleanup:
            main(["run", "ghost"], chef=chef)
        cleanup.assert_awaited_once()

    def test_cancelled_exit_code(self, chef):
        with patch.object(chef, "refresh_recipes", AsyncMock(side_effect=Cancelled())):
            assert main(["list"], chef=chef) == 130

    def test_bad_config_path(self, tmp_path, capsys):
        assert main(["--config", str(tmp_path / "missing.yml"), "list"]) == 1
        assert "Could not load config" in capsys.readouterr().err
