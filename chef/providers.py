"""
Provider session manager.

A provider is an external executable that contributes recipes over a
line-delimited JSON protocol on its stdin/stdout. One long-lived subprocess
is kept per provider name; concurrent requests on a session are correlated
by request id.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import uuid
from dataclasses import dataclass, field
from typing import Any

from .cancellation import CancellationToken
from .common import vlog
from .errors import Cancelled, ChefError, ProviderError, ProviderUnreachable
from .recipe import DownloadRequest, ExternInstall, Recipe
from .store import ChefStore, ProviderRegistration

logger = logging.getLogger(__name__)

DISCOVERY_FLAG = "--chef"
SESSION_CLOSED = "Provider session closed"
NOT_INSTALLED_MARKER = "-"

# Provider lists can be large; one response is one line
STREAM_LIMIT = 16 * 1024 * 1024


@dataclass
class ProviderSession:
    """
    A live provider subprocess.

    Attributes:
        name: Provider name
        process: The subprocess, with piped stdin/stdout/stderr
        pending: Outstanding request id -> future resolved with the response
        tasks: Background reader, stderr logger and exit watcher
        closed: Set once the session has been torn down
    """
    name: str
    process: asyncio.subprocess.Process
    pending: dict[str, asyncio.Future] = field(default_factory=dict)
    tasks: list[asyncio.Task] = field(default_factory=list)
    closed: bool = False


def build_provider_argv(command: str) -> list[str]:
    """Split a provider command line and append the discovery flag if missing."""
    argv = shlex.split(command)
    if not argv:
        raise ValueError("Provider command is empty")
    if DISCOVERY_FLAG not in argv[1:]:
        argv.append(DISCOVERY_FLAG)
    return argv


class ProviderManager:
    """
    Manages provider sessions and turns provider listings into recipes.

    Args:
        store: Store holding the provider registrations
        shutdown_timeout: Seconds to wait for a provider to exit on cleanup
        verbose: Enable verbose diagnostics
    """

    def __init__(self, store: ChefStore, shutdown_timeout: float = 5.0, verbose: bool = False):
        self.store = store
        self.shutdown_timeout = shutdown_timeout
        self.verbose = verbose
        self._sessions: dict[str, ProviderSession] = {}
        self._start_locks: dict[str, asyncio.Lock] = {}
        self._closing = False

    def get_providers(self) -> list[ProviderRegistration]:
        return self.store.get_providers()

    def has_session(self, name: str) -> bool:
        session = self._sessions.get(name)
        return session is not None and not session.closed

    async def _get_session(self, provider: ProviderRegistration) -> ProviderSession:
        """Return the live session for a provider, launching it if needed."""
        if self._closing:
            raise ProviderUnreachable(f'Provider "{provider.name}" is shutting down')

        lock = self._start_locks.setdefault(provider.name, asyncio.Lock())
        async with lock:
            session = self._sessions.get(provider.name)
            if session is not None and not session.closed:
                return session

            try:
                argv = build_provider_argv(provider.command)
            except ValueError as e:
                raise ProviderUnreachable(f'Invalid command for provider "{provider.name}": {e}') from e

            vlog(f"Starting provider {provider.name}: {shlex.join(argv)}", self.verbose)
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    limit=STREAM_LIMIT,
                )
            except OSError as e:
                raise ProviderUnreachable(f'Could not start provider "{provider.name}": {e}') from e

            session = ProviderSession(name=provider.name, process=process)
            session.tasks = [
                asyncio.create_task(self._read_responses(session)),
                asyncio.create_task(self._log_stderr(session)),
                asyncio.create_task(self._watch_exit(session)),
            ]
            self._sessions[provider.name] = session
            return session

    async def _read_responses(self, session: ProviderSession) -> None:
        """Dispatch each inbound line to the pending request with the same id."""
        stdout = session.process.stdout
        try:
            while True:
                line = await stdout.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    message = json.loads(text)
                except json.JSONDecodeError:
                    vlog(f'Provider "{session.name}" sent a non-JSON line, ignoring', self.verbose)
                    continue
                if not isinstance(message, dict) or not isinstance(message.get("id"), str):
                    continue
                future = session.pending.pop(message["id"], None)
                if future is not None and not future.done():
                    future.set_result(message)
        except Exception as e:
            logger.error(f'Provider session "{session.name}" reader error: {e}')
        finally:
            self._close_session(session)

    async def _log_stderr(self, session: ProviderSession) -> None:
        stderr = session.process.stderr
        try:
            while True:
                line = await stderr.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").rstrip()
                if text.strip():
                    logger.warning(f'Provider "{session.name}" stderr: {text}')
        except Exception as e:
            vlog(f'Provider "{session.name}" stderr reader stopped: {e}', self.verbose)

    async def _watch_exit(self, session: ProviderSession) -> None:
        returncode = await session.process.wait()
        if returncode != 0:
            logger.warning(f'Provider "{session.name}" exited with status {returncode}')
            self._close_session(session)

    def _close_session(self, session: ProviderSession) -> None:
        """Tear down a session and fail every request still waiting on it."""
        if session.closed:
            return
        session.closed = True
        if self._sessions.get(session.name) is session:
            del self._sessions[session.name]

        pending, session.pending = session.pending, {}
        for future in pending.values():
            if not future.done():
                future.set_result({"success": False, "error": SESSION_CLOSED})
        vlog(f'Provider session "{session.name}" closed ({len(pending)} pending)', self.verbose)

    def _send_cancel(self, session: ProviderSession, target_id: str) -> None:
        """Best-effort cancel notification; no response is expected."""
        message = {"id": str(uuid.uuid4()), "command": "cancel", "targetId": target_id}
        try:
            session.process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
        except (OSError, RuntimeError) as e:
            vlog(f'Could not send cancel to provider "{session.name}": {e}', self.verbose)

    async def call_provider(
        self,
        name: str,
        command: str,
        payload: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """
        Send one command to a provider and wait for its response.

        A session that dies while the request is outstanding resolves it with
        ``{"success": False, "error": "Provider session closed"}``.

        Args:
            name: Registered provider name
            command: Protocol command (list, update, remove, versions)
            payload: Extra request fields
            token: Cancels the request; a cancel message is sent to the provider

        Returns:
            The response object

        Raises:
            ProviderUnreachable: If the provider is unknown or cannot be reached
            Cancelled: If the token fired before the response arrived
        """
        provider = next((p for p in self.get_providers() if p.name == name), None)
        if provider is None:
            raise ProviderUnreachable(f'Provider "{name}" not found')

        if token is not None:
            token.raise_if_cancelled()

        session = await self._get_session(provider)
        if token is not None:
            token.raise_if_cancelled()

        request_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        session.pending[request_id] = future

        def on_cancel() -> None:
            session.pending.pop(request_id, None)
            if not session.closed:
                self._send_cancel(session, request_id)
            if not future.done():
                future.set_exception(Cancelled())

        unregister = token.add_callback(on_cancel) if token is not None else None

        try:
            if session.closed:
                raise ProviderUnreachable(SESSION_CLOSED)
            message = {"id": request_id, "command": command, **(payload or {})}
            try:
                session.process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
                await session.process.stdin.drain()
            except (BrokenPipeError, ConnectionError) as e:
                self._close_session(session)
                raise ProviderUnreachable(f'Provider "{name}" is not accepting requests: {e}') from e
            return await future
        finally:
            if unregister is not None:
                unregister()
            session.pending.pop(request_id, None)

    async def get_provider_recipes(self, token: CancellationToken | None = None) -> list[Recipe]:
        """
        List every registered provider and build recipes from the results.

        A failing provider is logged and skipped. Cancellation propagates.
        """
        recipes: list[Recipe] = []
        for provider in self.get_providers():
            try:
                response = await self.call_provider(provider.name, "list", {}, token)
            except Cancelled:
                raise
            except ChefError as e:
                logger.error(f'Failed to fetch recipes from provider "{provider.name}": {e}')
                continue

            if response.get("success") is False:
                logger.error(
                    f'Failed to fetch recipes from provider "{provider.name}": '
                    f'{response.get("error") or "Unknown error"}'
                )
                continue
            if response.get("type") != "list" or not isinstance(response.get("data"), list):
                logger.error(f'Unexpected response type from provider "{provider.name}": {response.get("type")}')
                continue

            for app in response["data"]:
                if not isinstance(app, dict) or not isinstance(app.get("name"), str):
                    logger.warning(f'Provider "{provider.name}" listed an invalid application: {app!r}')
                    continue
                try:
                    recipes.append(self._make_recipe(provider.name, app))
                except ValueError as e:
                    logger.warning(f'Provider "{provider.name}": {e}')

        return recipes

    def _make_recipe(self, provider_name: str, app: dict[str, Any]) -> Recipe:
        """Wrap one listed application as a recipe delegating to the provider."""
        name = app["name"]
        current = app.get("version") or NOT_INSTALLED_MARKER
        latest = app.get("latestVersion") or NOT_INSTALLED_MARKER
        latest_version = None if latest == NOT_INSTALLED_MARKER else str(latest)

        async def version() -> str | None:
            return latest_version

        async def download(request: DownloadRequest) -> ExternInstall:
            response = await self.call_provider(
                provider_name,
                "update",
                {"name": name, "version": request.latest_version, "force": request.force},
                request.token,
            )
            if not response.get("success"):
                raise ProviderError(f"Update failed for {name}: {response.get('error') or 'Unknown error'}")
            return ExternInstall(command=name)

        versions = None
        if app.get("hasVersions"):
            async def versions(page: int = 1) -> list[str]:
                return await self.get_versions(provider_name, name, page)

        return Recipe(
            name=name,
            download=download,
            version=version,
            description=app.get("description"),
            provider=provider_name,
            group=app.get("group"),
            current_version=None if current == NOT_INSTALLED_MARKER else str(current),
            versions=versions,
        )

    async def get_versions(
        self,
        provider: str,
        name: str,
        page: int = 1,
        token: CancellationToken | None = None,
    ) -> list[str]:
        """
        Available versions of a provider application.

        Raises:
            ProviderError: If the provider reports a failure
        """
        response = await self.call_provider(provider, "versions", {"name": name, "page": page}, token)
        if not response.get("success"):
            raise ProviderError(f"Failed to get versions for {name}: {response.get('error') or 'Unknown error'}")
        data = response.get("data")
        if not isinstance(data, list):
            raise ProviderError(f'Provider "{provider}" returned no version list for {name}')
        return [str(v) for v in data]

    async def remove_app(self, provider: str, name: str, token: CancellationToken | None = None) -> None:
        """
        Ask a provider to remove one of its applications.

        Raises:
            ProviderError: If the provider reports a failure
        """
        response = await self.call_provider(provider, "remove", {"name": name}, token)
        if not response.get("success"):
            raise ProviderError(f"Failed to remove {name}: {response.get('error') or 'Unknown error'}")

    async def cleanup(self) -> None:
        """Close every session: end stdin, wait for exit, kill on timeout."""
        self._closing = True
        try:
            for session in list(self._sessions.values()):
                process = session.process
                try:
                    process.stdin.close()
                    try:
                        await asyncio.wait_for(process.wait(), timeout=self.shutdown_timeout)
                    except asyncio.TimeoutError:
                        logger.warning(f'Provider "{session.name}" did not exit, killing it')
                        process.kill()
                        await process.wait()
                except (OSError, ProcessLookupError) as e:
                    logger.error(f'Error closing provider session "{session.name}": {e}')

                self._close_session(session)
                for task in session.tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*session.tasks, return_exceptions=True)
            self._sessions.clear()
        finally:
            self._closing = False
