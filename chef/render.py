"""
Terminal rendering for the CLI: binary listings and update summaries.
"""

import os
import re
import sys
from typing import Any, Sequence

from .progress import ERROR, NEEDS_UPDATE, SKIPPED, UP_TO_DATE
from .recipe import Recipe
from .updater import UpdateReport


# Environment options
USE_EMOJI = os.environ.get("CHEF_EMOJI", "1") == "1"
USE_COLOR = os.environ.get("CHEF_COLOR", "1") == "1" and os.environ.get("NO_COLOR") is None

# ANSI color codes
GREEN = "\033[32m"
BOLD_GREEN = "\033[1;32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
RED = "\033[31m"
BOLD = "\033[1m"
RESET = "\033[0m"

CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")


def colorize(text: str, color: str) -> str:
    """Apply color to text.

    Args:
        text: Text to colorize
        color: ANSI color code

    Returns:
        Colored text or plain text if colors disabled
    """
    if not USE_COLOR or not text:
        return text
    return f"{color}{text}{RESET}"


def visible_width(text: str) -> int:
    """Display width ignoring ANSI escapes."""
    return len(CSI_RE.sub("", text))


def status_icon(status: str) -> str:
    """Icon for a version-check or install status."""
    if not USE_EMOJI:
        return {
            UP_TO_DATE: "✓",
            NEEDS_UPDATE: "↑",
            SKIPPED: "-",
            ERROR: "x",
            "installed": "✓",
            "failed": "x",
        }.get(status, "?")

    return {
        UP_TO_DATE: "✅",
        NEEDS_UPDATE: "⬆",
        SKIPPED: "⏭",
        ERROR: "❌",
        "installed": "✅",
        "failed": "❌",
    }.get(status, "❓")


def format_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Left-aligned columns separated by two spaces, header underlined."""
    widths = [visible_width(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], visible_width(cell))

    def line(cells: Sequence[str]) -> str:
        padded = [cell + " " * (widths[i] - visible_width(cell)) for i, cell in enumerate(cells)]
        return "  ".join(padded).rstrip()

    out = [colorize(line(headers), BOLD), line(["─" * w for w in widths])]
    out.extend(line(row) for row in rows)
    return "\n".join(out)


def section_header(title: str) -> None:
    print(colorize(f"\n{title}", MAGENTA))


def render_list(installed: Sequence[tuple[str, str, bool]], available: Sequence[Recipe]) -> None:
    """Print installed binaries and recipes not yet installed.

    Args:
        installed: (name, version, ready) rows
        available: Recipes without a store entry
    """
    if not installed and not available:
        print("No binaries installed or available")
        return

    if installed:
        section_header("Installed Binaries")
        rows = []
        for name, version, ready in installed:
            state = colorize("Ready", GREEN) if ready else colorize("Not Found", YELLOW)
            rows.append([name, version, state])
        print(format_table(["Binary", "Version", "Status"], rows))

    if available:
        section_header("Available to Install")
        rows = []
        for recipe in available:
            description = recipe.description or "Available for installation"
            if recipe.provider:
                description = f"{description} [{recipe.provider}]"
            rows.append([recipe.name, description])
        print(format_table(["Name", "Description"], rows))
        print(colorize("\nRun 'update' to install available binaries", BLUE))


def render_update_report(report: UpdateReport) -> None:
    """Print one row per target and the summary line."""
    rows = []
    for check in sorted(report.checks, key=lambda c: c.name):
        outcome = report.get_outcome(check.name)
        if outcome is not None:
            status = "installed" if outcome.success else "failed"
            detail = outcome.new_version if outcome.success else (outcome.error_message or "")
        else:
            status = check.status
            detail = check.reason or ""

        current = check.current_version or "-"
        latest = check.latest_version or "-"
        if check.status == NEEDS_UPDATE:
            latest = colorize(latest, BOLD_GREEN)
        elif check.status == UP_TO_DATE:
            current = colorize(current, GREEN)

        rows.append([status_icon(status), check.name, current, latest, detail or ""])

    if rows:
        print(format_table(["", "Binary", "Installed", "Latest", "Note"], rows))
    print_summary(report)


def print_summary(report: UpdateReport) -> None:
    """Print summary line to stderr."""
    if report.dry_run:
        parts = [f"{len(report.checks)} checked", f"{len(report.needs_update)} would update"]
        print(f"\nDry run: {', '.join(parts)}", file=sys.stderr)
        return

    parts = [f"{report.updated} updated", f"{report.failed} failed"]
    if report.cancelled:
        parts.append("cancelled")
    color = RED if report.failed else GREEN
    print(colorize(f"\nUpdate: {', '.join(parts)}", color), file=sys.stderr)


def render_providers(providers: Sequence[Any]) -> None:
    if not providers:
        print("No providers registered")
        return
    print(format_table(["Provider", "Command"], [[p.name, p.command] for p in providers]))
