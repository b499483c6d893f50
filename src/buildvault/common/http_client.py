"""Shared HTTP helpers used by repository sources and downloads.

Metadata fetches are async (aiohttp) so the sync manager can run them
concurrently; archive downloads are blocking streams (requests). Neither
helper retries: failures are raised as typed errors and the caller decides
whether to try again.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiohttp
import requests

from buildvault.constants import Constants
from buildvault.errors import DownloadError, FetchError
from .logging_utils import Timer, extra_context, is_debug_enabled, safe_url

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"User-Agent": Constants.USER_AGENT, "Accept": "application/json"}


def new_session(timeout: int = Constants.REQUEST_TIMEOUT) -> aiohttp.ClientSession:
    """Create an aiohttp session with the project's defaults."""
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers=DEFAULT_HEADERS,
    )


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    auth: Optional[aiohttp.BasicAuth] = None,
) -> Any:
    """GET ``url`` and decode its JSON body.

    Raises:
        FetchError: transport failure, timeout, non-200 status or bad JSON.
    """
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            async with session.get(url, headers=headers, auth=auth) as response:
                status = response.status
                text = await response.text()
        except asyncio.TimeoutError as exc:
            raise FetchError(context, f"request to {safe_target} timed out") from exc
        except aiohttp.ClientError as exc:
            raise FetchError(context, f"connection error: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise FetchError(context, f"response body could not be decoded: {exc}") from exc

    if is_debug_enabled(logger):
        logger.debug(
            "HTTP response",
            extra=extra_context(
                event="http_response",
                component="http_client",
                action="GET",
                status_code=status,
                duration_ms=t.duration_ms(),
                target=safe_target,
                context=context,
            ),
        )
    if status != 200:
        raise FetchError(context, f"request returned status {status}", status_code=status)
    try:
        return json.loads(text)
    except ValueError as exc:
        raise FetchError(context, f"response is not valid JSON: {exc}", status_code=status) from exc


def download_file(
    url: str,
    dest: Path,
    *,
    context: str,
    timeout: int = Constants.REQUEST_TIMEOUT,
    auth: Optional[tuple] = None,
    progress: Optional[Callable[[int, Optional[int]], None]] = None,
) -> int:
    """Stream ``url`` into ``dest`` and return the number of bytes written.

    ``dest`` is truncated first; on failure it is left for the caller to
    clean up.

    Raises:
        DownloadError: transport failure or non-200 status.
    """
    safe_target = safe_url(url)
    written = 0
    with Timer() as t:
        try:
            with requests.get(
                url,
                stream=True,
                timeout=timeout,
                auth=auth,
                headers={"User-Agent": Constants.USER_AGENT},
            ) as res:
                if res.status_code != 200:
                    raise DownloadError(
                        f"{context}: download of {safe_target} returned status {res.status_code}"
                    )
                total = res.headers.get("Content-Length")
                total_bytes = int(total) if total and total.isdigit() else None
                dest.parent.mkdir(parents=True, exist_ok=True)
                with open(dest, "wb") as fh:
                    for chunk in res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        written += len(chunk)
                        if progress is not None:
                            progress(written, total_bytes)
        except requests.Timeout as exc:
            raise DownloadError(f"{context}: download of {safe_target} timed out") from exc
        except requests.RequestException as exc:
            raise DownloadError(f"{context}: connection error: {exc}") from exc

    if is_debug_enabled(logger):
        logger.debug(
            "Download finished",
            extra=extra_context(
                event="download",
                component="http_client",
                outcome="success",
                bytes=written,
                duration_ms=t.duration_ms(),
                target=safe_target,
            ),
        )
    return written


def get_text(url: str, *, context: str, timeout: int = Constants.REQUEST_TIMEOUT) -> str:
    """Blocking GET returning the body as text.

    Raises:
        DownloadError: transport failure or non-200 status.
    """
    try:
        res = requests.get(url, timeout=timeout, headers={"User-Agent": Constants.USER_AGENT})
    except requests.RequestException as exc:
        raise DownloadError(f"{context}: connection error: {exc}") from exc
    if res.status_code != 200:
        raise DownloadError(f"{context}: {safe_url(url)} returned status {res.status_code}")
    return res.text
