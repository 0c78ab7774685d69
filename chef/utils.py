"""
Latest-version lookups for recipe authors.

Each helper returns None when the upstream cannot be reached, which the
update engine treats as "no version information".
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx

from .transport import USER_AGENT

logger = logging.getLogger(__name__)

LOOKUP_TIMEOUT = 10.0


async def get_latest_github_release(repo: str) -> str | None:
    """
    Latest release tag of a GitHub repository, read from the releases/latest redirect.

    Args:
        repo: Repository as "owner/name"

    Returns:
        The tag as published (e.g. "v1.2.3"), or None
    """
    url = f"https://github.com/{repo}/releases/latest"
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(LOOKUP_TIMEOUT),
        ) as client:
            response = await client.head(url)
    except httpx.HTTPError as e:
        logger.debug(f"GitHub redirect failed for {repo}: {e}")
        return None

    last_segment = response.url.path.rstrip("/").rsplit("/", 1)[-1]
    if not last_segment or last_segment.lower() in ("releases", "latest"):
        logger.debug(f"GitHub {repo}: no release found")
        return None
    return last_segment


async def get_latest_npm_version(package: str) -> str | None:
    """Latest published version of an npm package, or None."""
    url = f"https://registry.npmjs.org/{package}/latest"
    try:
        async with httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(LOOKUP_TIMEOUT),
        ) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.debug(f"npm lookup failed for {package}: {e}")
        return None

    if response.status_code != 200:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    version = data.get("version") if isinstance(data, dict) else None
    return version if isinstance(version, str) else None


def is_url(value: str) -> bool:
    """Whether a string is an absolute URL with a scheme."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path) and len(parsed.scheme) > 1
