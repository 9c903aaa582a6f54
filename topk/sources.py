from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Union

import httpx
from loguru import logger

from .config import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_MAX_REDIRECTS,
    HTTP_MAX_BYTES,
    HTTP_USER_AGENT,
)
from .errors import InputSourceError


def is_url(source: Union[str, Path]) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def fetch_lines(url: str) -> List[str]:
    """
    Download a remote dump and split it into lines.

    Hardening:
      - httpx with connect/read timeouts and a redirect cap
      - byte cap on the body
    """
    headers = {"User-Agent": HTTP_USER_AGENT}
    try:
        with httpx.Client(
            follow_redirects=True,
            timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
            max_redirects=HTTP_MAX_REDIRECTS,
        ) as client:
            r = client.get(url, headers=headers)
    except httpx.HTTPError as e:
        logger.warning("Input fetch failed for {}: {}", url, e)
        raise InputSourceError(f"Could not fetch {url}: {e}") from e

    if r.status_code >= 400:
        logger.warning("Input fetch: HTTP {} for {}", r.status_code, url)
        raise InputSourceError(f"HTTP {r.status_code} for {url}")
    if len(r.content) > HTTP_MAX_BYTES:
        logger.warning("Input fetch aborted: {} bytes > {} limit", len(r.content), HTTP_MAX_BYTES)
        raise InputSourceError(f"Input too large ({len(r.content)} bytes) for {url}")

    return r.text.splitlines()


def read_lines(source: Union[str, Path]) -> Iterator[str]:
    """Yield the lines of a local file or an http(s) URL, without line endings."""
    if is_url(source):
        yield from fetch_lines(str(source))
        return

    path = Path(source)
    if not path.exists():
        raise InputSourceError(f"File not found: {path}")
    try:
        with path.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                yield line.rstrip("\r\n")
    except OSError as e:
        raise InputSourceError(f"Could not read {path}: {e}") from e
