"""
File and download utilities

Streams HTTP bodies with retry on connect-phase failures, translates httpx
errors into the ingestion error taxonomy, and replaces files atomically.
"""
import asyncio
import errno
import logging
import os
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx

from iptv_ingest.errors import (
    HostUnreachableError,
    NetworkError,
    NetworkTimeoutError,
    ServerError,
    StreamReadError,
)
from iptv_ingest.utils.logging_helpers import sanitize_url


logger = logging.getLogger(__name__)


def build_timeout(connect: float, read: float) -> httpx.Timeout:
    """Explicit per-subsystem timeout (write/pool follow the connect value)."""
    return httpx.Timeout(connect=connect, read=read, write=connect, pool=connect)


@asynccontextmanager
async def open_stream(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: httpx.Timeout,
    headers: dict[str, str] | None = None,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
) -> AsyncIterator[httpx.Response]:
    """
    Open a streaming GET with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx
    responses while connecting. Does NOT retry on 4xx, and never retries once
    the body is being consumed.

    Args:
        client: HTTP client to issue the request with
        url: URL to download from
        timeout: Connect/read timeouts for this request
        headers: Extra request headers
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)

    Yields:
        Response with an unread body

    Raises:
        NetworkTimeoutError: If every attempt timed out
        HostUnreachableError: If the host could not be reached
        ServerError: On a non-2xx status
    """
    safe_url = sanitize_url(url)
    last_error: NetworkError | None = None
    response: httpx.Response | None = None

    for attempt in range(max_retries):
        try:
            request = client.build_request("GET", url, headers=headers, timeout=timeout)
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            last_error = NetworkTimeoutError(f"Timed out connecting to {safe_url}: {type(e).__name__}")
        except httpx.TransportError as e:
            last_error = HostUnreachableError(f"Cannot reach {safe_url}: {e}")
        else:
            if response.is_success:
                break

            status_code = response.status_code
            await response.aclose()
            response = None
            if status_code < 500:
                logger.error(f"HTTP {status_code} (client error) for {safe_url}")
                raise ServerError(status_code, safe_url)
            last_error = ServerError(status_code, safe_url)

        if attempt < max_retries - 1:
            wait_time = backoff_factor ** attempt
            logger.warning(
                f"Request attempt {attempt + 1}/{max_retries} failed ({last_error}). "
                f"Retrying in {wait_time:.1f}s..."
            )
            await asyncio.sleep(wait_time)
        else:
            logger.error(f"Request failed after {max_retries} attempts: {last_error}")

    if response is None:
        raise last_error or HostUnreachableError(f"Failed to open {safe_url}")

    try:
        yield response
    finally:
        await response.aclose()


async def iter_body(response: httpx.Response, chunk_size: int) -> AsyncIterator[bytes]:
    """
    Iterate a response body in chunks (content-encoding already decoded)

    Raises:
        NetworkTimeoutError: If a read times out
        StreamReadError: If the connection drops mid-body
    """
    try:
        async for chunk in response.aiter_bytes(chunk_size):
            yield chunk
    except httpx.TimeoutException as e:
        raise NetworkTimeoutError(f"Read timed out: {type(e).__name__}") from e
    except httpx.HTTPError as e:
        raise StreamReadError(f"Response body read failed: {e}") from e


def content_length(response: httpx.Response) -> int:
    """Content-Length as an int, 0 when absent or invalid."""
    try:
        return max(0, int(response.headers.get("content-length", "0")))
    except ValueError:
        return 0


def atomic_replace(src: Path, dest: Path) -> None:
    """
    Move src over dest so readers of dest see the old or new file, never a mix

    Falls back to copy-then-delete when src and dest are on different
    devices; the copy goes to a sibling of dest first so only the final
    rename touches dest.
    """
    try:
        os.replace(src, dest)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    logger.warning(f"Cross-device rename {src} -> {dest}, copying instead")
    staging = dest.with_name(dest.name + ".copy")
    try:
        shutil.copyfile(src, staging)
        os.replace(staging, dest)
    finally:
        cleanup_temp_file(staging)
    cleanup_temp_file(src)


def cleanup_temp_file(file_path: Path | None) -> bool:
    """
    Safely delete a temporary file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False


@asynccontextmanager
async def client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    """Use the given client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(follow_redirects=True) as own_client:
        yield own_client
