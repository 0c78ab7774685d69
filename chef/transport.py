"""
Download transport helpers for recipe authors.

Recipes fetch their artifacts however they like; these helpers cover the
common case of streaming a URL to disk and unpacking it with a shell command.
Both take the update call's cancellation token and stop at the next chunk or
as soon as the token fires.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from .cancellation import CancellationToken
from .errors import Cancelled, DownloadFailed
from .recipe import ProgressCallback

logger = logging.getLogger(__name__)

USER_AGENT = "chef/1.0"
DEFAULT_TIMEOUT = 30.0
CHUNK_SIZE = 64 * 1024


async def download_file(
    url: str,
    dest: str | Path,
    token: CancellationToken | None = None,
    on_progress: ProgressCallback | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Path:
    """
    Stream a URL into a file.

    Args:
        url: URL to fetch (redirects are followed)
        dest: Destination file
        token: Stops the transfer between chunks
        on_progress: Called with (bytes_loaded, bytes_total); total is None if unknown
        timeout: Network timeout in seconds

    Returns:
        The destination path

    Raises:
        DownloadFailed: On HTTP or network errors
        Cancelled: If the token fired during the transfer
    """
    dest = Path(dest)
    if token is not None:
        token.raise_if_cancelled()

    logger.debug(f"Downloading {url} -> {dest}")
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(timeout),
        ) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                length = response.headers.get("content-length")
                total = int(length) if length and length.isdigit() else None
                loaded = 0
                if on_progress is not None:
                    on_progress(loaded, total)

                with open(dest, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        if token is not None and token.cancelled:
                            raise Cancelled(token.reason)
                        f.write(chunk)
                        loaded += len(chunk)
                        if on_progress is not None:
                            on_progress(loaded, total)
    except httpx.HTTPError as e:
        raise DownloadFailed(f"Failed to download {url}: {e}") from e

    return dest


async def run_shell(command: str, token: CancellationToken | None = None, cwd: str | Path | None = None) -> str:
    """
    Run a shell command, typically to unpack an archive.

    The process is killed if the token fires while it runs.

    Returns:
        Captured stdout

    Raises:
        DownloadFailed: If the command exits non-zero
        Cancelled: If the token fired
    """
    if token is not None:
        token.raise_if_cancelled()

    logger.debug(f"Running: {command}")
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
    )

    def kill() -> None:
        if process.returncode is None:
            process.kill()

    unregister = token.add_callback(kill) if token is not None else None
    try:
        stdout, stderr = await process.communicate()
    finally:
        if unregister is not None:
            unregister()

    if token is not None:
        token.raise_if_cancelled()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise DownloadFailed(f"Command failed with exit code {process.returncode}: {command}\n{detail}".rstrip())
    return stdout.decode("utf-8", errors="replace")
