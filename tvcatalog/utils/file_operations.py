"""
Source fetching utilities

This module reads playlist and guide payloads from HTTP(S) URLs or local files.
Each call is a single attempt; retry policy belongs to the schedulers.
"""
import asyncio
import gzip
import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import aiofiles
import httpx

from tvcatalog.errors import FetchError
from tvcatalog.utils.logging_helpers import sanitize_url


logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
USER_AGENT = "tvcatalog/0.1"


def is_remote(location: str) -> bool:
    return location.lower().startswith(("http://", "https://"))


def _local_path(location: str) -> Path:
    if location.lower().startswith("file://"):
        return Path(unquote(urlparse(location).path))
    return Path(location)


async def fetch_bytes(
    location: str,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None
) -> bytes:
    """
    Fetch raw bytes from an HTTP(S) URL or a local file

    The whole attempt, including connect and body read, is bounded by
    `timeout` so a hung upstream cannot stall the caller.

    Args:
        location: http(s) URL, file:// URL or filesystem path
        timeout: Upper bound in seconds for the attempt
        client: Optional shared httpx client (a short-lived one is created otherwise)

    Returns:
        Payload bytes, gunzipped when the payload is gzip-compressed

    Raises:
        FetchError: On timeout, connection error, HTTP error status or unreadable file
    """
    safe_location = sanitize_url(location)
    logger.debug(f"Fetching {safe_location} (timeout {timeout:.1f}s)")

    try:
        if is_remote(location):
            content = await asyncio.wait_for(_http_get(location, timeout, client), timeout=timeout)
        else:
            content = await asyncio.wait_for(_read_file(_local_path(location)), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise FetchError(safe_location, f"Timed out after {timeout:.1f}s") from e
    except httpx.HTTPStatusError as e:
        raise FetchError(
            safe_location,
            f"HTTP {e.response.status_code}",
            status_code=e.response.status_code,
        ) from e
    except httpx.HTTPError as e:
        raise FetchError(safe_location, f"{type(e).__name__}: {e}") from e
    except OSError as e:
        raise FetchError(safe_location, f"Cannot read file: {e}") from e

    if content.startswith(GZIP_MAGIC):
        logger.debug(f"Decompressing gzip payload from {safe_location}")
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError) as e:
            raise FetchError(safe_location, f"Corrupt gzip payload: {e}") from e

    logger.info(f"Fetched {len(content) / 1024:.1f} KB from {safe_location}")
    return content


async def fetch_text(
    location: str,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None
) -> str:
    """Fetch a payload and decode it as UTF-8 (invalid bytes replaced)."""
    content = await fetch_bytes(location, timeout=timeout, client=client)
    return content.decode("utf-8", errors="replace")


async def _http_get(url: str, timeout: float, client: httpx.AsyncClient | None) -> bytes:
    if client is not None:
        response = await client.get(url, timeout=timeout)
        response.raise_for_status()
        return response.content

    async with httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    ) as session:
        response = await session.get(url)
        response.raise_for_status()
        return response.content


async def _read_file(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()
