"""
Tests for terminal rendering (chef/render.py).
"""

from unittest.mock import AsyncMock, patch

import pytest

from chef import render
from chef.progress import ERROR, NEEDS_UPDATE, UP_TO_DATE
from chef.recipe import Recipe
from chef.store import ProviderRegistration
from chef.updater import InstallOutcome, UpdateReport, VersionCheck


@pytest.fixture(autouse=True)
def plain_output():
    with patch.object(render, "USE_COLOR", False), patch.object(render, "USE_EMOJI", False):
        yield


class TestFormatTable:
    def test_columns_aligned(self):
        table = render.format_table(["Name", "Version"], [["ripgrep", "14.1.0"], ["fd", "9"]])
        lines = table.splitlines()
        assert lines[0] == "Name     Version"
        assert lines[2] == "ripgrep  14.1.0"
        assert lines[3] == "fd       9"

    def test_visible_width_ignores_escapes(self):
        assert render.visible_width("\033[32mok\033[0m") == 2


class TestRenderList:
    def test_sections(self, capsys):
        available = [
            Recipe(name="typst", download=AsyncMock(), version=AsyncMock(), description="Typesetting"),
            Recipe(name="node", download=AsyncMock(), version=AsyncMock(), provider="npm"),
        ]

        render.render_list([("imhex", "1.35", True), ("gone", "0.1", False)], available)

        out = capsys.readouterr().out
        assert "Installed Binaries" in out
        assert "Not Found" in out
        assert "Typesetting" in out
        assert "Available for installation [npm]" in out

    def test_empty(self, capsys):
        render.render_list([], [])
        assert "No binaries installed or available" in capsys.readouterr().out


class TestRenderUpdateReport:
    def test_rows_and_summary(self, capsys):
        report = UpdateReport(
            checks=(
                VersionCheck("a", NEEDS_UPDATE, "1.0", "2.0"),
                VersionCheck("b", UP_TO_DATE, "1.0", "1.0"),
                VersionCheck("c", ERROR, reason="unable to get latest version"),
                VersionCheck("d", NEEDS_UPDATE, None, "3.0"),
            ),
            outcomes=(
                InstallOutcome("a", True, "1.0", "2.0"),
                InstallOutcome("d", False, None, None, error_message="network down"),
            ),
        )

        render.render_update_report(report)

        captured = capsys.readouterr()
        assert "unable to get latest version" in captured.out
        assert "network down" in captured.out
        assert "Update: 1 updated, 1 failed" in captured.err

    def test_dry_run_summary(self, capsys):
        report = UpdateReport(checks=(VersionCheck("a", NEEDS_UPDATE, "1", "2"),), dry_run=True)
        render.print_summary(report)
        assert "Dry run: 1 checked, 1 would update" in capsys.readouterr().err


class TestRenderProviders:
    def test_providers(self, capsys):
        render.render_providers([ProviderRegistration("brew", "brew-provider")])
        out = capsys.readouterr().out
        assert "brew" in out
        assert "brew-provider" in out
