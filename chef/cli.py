"""
Command line interface.

Usage:
    chef list                       # Installed and available binaries
    chef update [NAMES...]          # Install or update binaries
    chef run NAME [ARGS...]         # Run an installed binary
    chef uninstall NAMES...         # Remove binaries
    chef link NAME / unlink NAME    # Manage PATH exports
    chef provider add NAME COMMAND  # Register an external provider
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import signal
import sys
from typing import Sequence

from .cancellation import CancellationToken
from .errors import Cancelled, ChefError
from .logging_config import setup_logging
from .render import render_list, render_providers, render_update_report

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chef",
        description="Personal package manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only show warnings and errors")
    parser.add_argument("--config", help="Path to a configuration file")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run an installed binary")
    run.add_argument("name")
    run.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the binary")

    sub.add_parser("list", help="List installed and available binaries")

    update = sub.add_parser("update", help="Install or update binaries")
    update.add_argument("names", nargs="*", help="Binaries to update (default: all)")
    update.add_argument("--force", action="store_true", help="Reinstall even if up to date")
    update.add_argument("--skip", action="append", default=[], metavar="NAME", help="Skip a binary")
    update.add_argument("--only", metavar="NAME", help="Update only this binary")
    update.add_argument("--dry-run", action="store_true", help="Show what would be updated")

    uninstall = sub.add_parser("uninstall", help="Uninstall binaries")
    uninstall.add_argument("names", nargs="+")

    sub.add_parser("edit", help="Open this chef script in the editor")

    link = sub.add_parser("link", help="Export a binary to the shared exports directory")
    link.add_argument("name")

    unlink = sub.add_parser("unlink", help="Remove an exported binary link")
    unlink.add_argument("name")

    desktop = sub.add_parser("desktop-file", help="Manage desktop launcher entries")
    desktop_sub = desktop.add_subparsers(dest="desktop_command", required=True)
    create = desktop_sub.add_parser("create", help="Create a desktop file")
    create.add_argument("name")
    create.add_argument("--terminal", action="store_true", help="Run in a terminal")
    create.add_argument("--icon", help="Icon path or URL")
    remove = desktop_sub.add_parser("remove", help="Remove a desktop file")
    remove.add_argument("name")

    provider = sub.add_parser("provider", help="Manage external providers")
    provider_sub = provider.add_subparsers(dest="provider_command", required=True)
    provider_add = provider_sub.add_parser("add", help="Register a provider")
    provider_add.add_argument("name")
    provider_add.add_argument("provider_cmd", metavar="COMMAND", help="Command line that starts the provider")
    provider_remove = provider_sub.add_parser("remove", help="Unregister a provider")
    provider_remove.add_argument("name")
    provider_sub.add_parser("list", help="List registered providers")

    return parser


async def cmd_run(chef, args: argparse.Namespace) -> int:
    await chef.refresh_recipes()
    extra = list(args.args)
    if extra and extra[0] == "--":
        extra = extra[1:]
    process = await chef.run(args.name, extra)
    return await process.wait()


async def cmd_list(chef, args: argparse.Namespace) -> int:
    await chef.refresh_recipes()
    available = [r for r in chef.recipes if not chef.is_installed(r.name)]
    render_list(chef.runner.installed_binaries(), available)
    return 0


async def cmd_update(chef, args: argparse.Namespace) -> int:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "Interrupted")
    except (NotImplementedError, RuntimeError):
        pass

    try:
        await chef.refresh_recipes(token)
        targets = [args.only] if args.only else (args.names or None)
        report = await chef.update(
            targets,
            force=args.force,
            skip=args.skip,
            dry_run=args.dry_run,
            token=token,
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    render_update_report(report)
    if report.cancelled:
        return 130
    return 1 if report.failed else 0


async def cmd_uninstall(chef, args: argparse.Namespace) -> int:
    await chef.refresh_recipes()
    exit_code = 0
    for name in args.names:
        try:
            await chef.uninstall(name)
        except Cancelled:
            raise
        except ChefError as e:
            logger.error(f"Failed to uninstall {name}: {e}")
            exit_code = 1
    return exit_code


async def cmd_edit(chef, args: argparse.Namespace) -> int:
    script = chef.edit()
    if not script:
        logger.error("No chef script to edit")
        return 1
    editor = shlex.split(chef.settings.get_editor_command())
    try:
        process = await asyncio.create_subprocess_exec(*editor, script)
    except OSError as e:
        logger.error(f"Failed to start editor {editor[0]}: {e}")
        print(script)
        return 1
    return await process.wait()


async def cmd_link(chef, args: argparse.Namespace) -> int:
    chef.link(args.name)
    return 0


async def cmd_unlink(chef, args: argparse.Namespace) -> int:
    return 0 if chef.unlink(args.name) else 1


async def cmd_desktop_file(chef, args: argparse.Namespace) -> int:
    await chef.refresh_recipes()
    if args.desktop_command == "create":
        await chef.desktop.create(args.name, terminal=args.terminal, icon=args.icon)
        return 0
    return 0 if chef.desktop.remove(args.name) else 1


async def cmd_provider(chef, args: argparse.Namespace) -> int:
    if args.provider_command == "add":
        chef.add_provider(args.name, args.provider_cmd)
        logger.info(f'Added provider "{args.name}"')
        return 0
    if args.provider_command == "remove":
        if chef.remove_provider(args.name):
            logger.info(f'Removed provider "{args.name}"')
            return 0
        logger.error(f'Provider "{args.name}" is not registered')
        return 1
    render_providers(chef.get_providers())
    return 0


COMMANDS = {
    "run": cmd_run,
    "list": cmd_list,
    "update": cmd_update,
    "uninstall": cmd_uninstall,
    "edit": cmd_edit,
    "link": cmd_link,
    "unlink": cmd_unlink,
    "desktop-file": cmd_desktop_file,
    "provider": cmd_provider,
}


async def _dispatch(chef, args: argparse.Namespace) -> int:
    handler = COMMANDS[args.command or "list"]
    try:
        return await handler(chef, args)
    finally:
        await chef.cleanup()


def main(argv: Sequence[str] | None = None, chef=None) -> int:
    """Main entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if chef is None:
        from .config import load_config
        from .core import Chef

        try:
            config = load_config(args.config, verbose=args.verbose)
        except ValueError as e:
            print(f"✗ {e}", file=sys.stderr)
            return 1
        chef = Chef(config=config, verbose=args.verbose)

    setup_logging(
        log_file=chef.config.preferences.log_file,
        verbose=args.verbose or chef.verbose,
        quiet=args.quiet,
    )

    try:
        return asyncio.run(_dispatch(chef, args))
    except Cancelled as e:
        print(f"\n✗ {e.message}", file=sys.stderr)
        return 130
    except ChefError as e:
        print(f"✗ {e.message}", file=sys.stderr)
        if e.remediation:
            print(f"  {e.remediation}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
