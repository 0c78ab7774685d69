"""
SDK for building chef providers.

A provider is a normal program that switches into server mode when started
with ``--chef``. It then reads one JSON request per line on stdin and writes
one JSON response per line on stdout. Requests are served concurrently so a
later ``cancel`` message can stop one in flight.

Example::

    import asyncio
    import sys

    from chef.logging_config import setup_logging
    from chef.sdk import ChefProvider, ProviderApp, is_provider_mode, run_chef_provider

    class MyProvider(ChefProvider):
        async def list(self):
            return [ProviderApp(name="my-app", version="1.0.0", latest_version="1.1.0")]

        async def update(self, name, version, force=False):
            print(f"Updating {name} to {version}", file=sys.stderr)
            return True

        async def remove(self, name):
            return True

    if is_provider_mode():
        setup_logging(stream=sys.stderr)
        asyncio.run(run_chef_provider(MyProvider()))

Anything the provider wants to report must go to stderr; stdout carries the
protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Sequence

logger = logging.getLogger(__name__)

DISCOVERY_FLAG = "--chef"


@dataclass(frozen=True)
class ProviderApp:
    """
    An application offered by a provider.

    Attributes:
        name: Application name
        version: Installed version, or "-" if not installed
        latest_version: Latest available version
        group: Optional grouping label
        description: Short description
        has_versions: Whether the provider can list older versions
    """
    name: str
    version: str = "-"
    latest_version: str | None = None
    group: str | None = None
    description: str | None = None
    has_versions: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        data: dict[str, Any] = {"name": self.name, "version": self.version}
        if self.latest_version is not None:
            data["latestVersion"] = self.latest_version
        if self.group is not None:
            data["group"] = self.group
        if self.description is not None:
            data["description"] = self.description
        if self.has_versions:
            data["hasVersions"] = True
        return data


class ChefProvider:
    """
    Base class for provider implementations.

    Subclasses implement list, update and remove. versions is optional; the
    default tells chef the command is not supported. Each call runs in its
    own task and is cancelled with asyncio cancellation when chef sends a
    cancel message for it.
    """

    async def list(self) -> Sequence[ProviderApp | dict[str, Any]]:
        raise NotImplementedError

    async def update(self, name: str, version: str, force: bool = False) -> bool:
        raise NotImplementedError

    async def remove(self, name: str) -> bool:
        raise NotImplementedError

    async def versions(self, name: str, page: int = 1) -> list[str]:
        raise NotImplementedError("versions command not supported")


def is_provider_mode(argv: Sequence[str] | None = None) -> bool:
    """Whether the program was started by chef as a provider."""
    if argv is None:
        argv = sys.argv[1:]
    return DISCOVERY_FLAG in argv


async def _stdio_streams() -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=16 * 1024 * 1024)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


class _ProviderServer:
    """Serves requests from one reader/writer pair."""

    def __init__(self, provider: ChefProvider, writer):
        self.provider = provider
        self.writer = writer
        self.active: dict[str, asyncio.Task] = {}
        self._write_lock = asyncio.Lock()

    async def send(self, message: dict[str, Any]) -> None:
        async with self._write_lock:
            self.writer.write((json.dumps(message) + "\n").encode("utf-8"))
            await self.writer.drain()

    def dispatch(self, message: dict[str, Any]) -> None:
        command = message.get("command")
        if command == "cancel":
            task = self.active.get(message.get("targetId"))
            if task is not None:
                task.cancel()
            return

        request_id = message.get("id")
        task = asyncio.create_task(self.handle(request_id, command, message))
        if isinstance(request_id, str):
            self.active[request_id] = task
            task.add_done_callback(lambda _t: self.active.pop(request_id, None))

    async def handle(self, request_id: Any, command: Any, message: dict[str, Any]) -> None:
        try:
            response = await self.execute(request_id, command, message)
        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.error(f"Chef SDK: Error processing {command}: {e}")
            response = {"id": request_id, "success": False, "error": str(e)}
        if response is not None:
            await self.send(response)

    async def execute(self, request_id: Any, command: Any, message: dict[str, Any]) -> dict[str, Any] | None:
        if command == "list":
            apps = await self.provider.list()
            data = [app.to_dict() if isinstance(app, ProviderApp) else app for app in apps]
            return {"id": request_id, "type": "list", "success": True, "data": data}

        if command == "update":
            success = await self.provider.update(
                message.get("name"), message.get("version"), bool(message.get("force", False))
            )
            return {"id": request_id, "success": bool(success)}

        if command == "remove":
            success = await self.provider.remove(message.get("name"))
            return {"id": request_id, "success": bool(success)}

        if command == "versions":
            try:
                data = await self.provider.versions(message.get("name"), message.get("page") or 1)
            except NotImplementedError:
                return {"id": request_id, "success": False, "error": "versions command not supported"}
            return {"id": request_id, "success": True, "data": list(data)}

        logger.warning(f"Chef SDK: Unknown command {command!r}")
        return None


async def run_chef_provider(provider: ChefProvider, reader=None, writer=None) -> None:
    """
    Serve the chef provider protocol until the input stream ends.

    Args:
        provider: The provider implementation
        reader: asyncio.StreamReader for requests (default: stdin)
        writer: Stream writer for responses (default: stdout); needs write() and async drain()
    """
    if reader is None or writer is None:
        stdin_reader, stdout_writer = await _stdio_streams()
        reader = reader or stdin_reader
        writer = writer or stdout_writer

    server = _ProviderServer(provider, writer)
    while True:
        line = await reader.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            continue
        try:
            message = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Chef SDK: Protocol error: {e}")
            continue
        if not isinstance(message, dict):
            logger.error("Chef SDK: Protocol error: request is not an object")
            continue
        server.dispatch(message)

    # Input closed; let in-flight requests finish and answer
    if server.active:
        await asyncio.gather(*server.active.values(), return_exceptions=True)
