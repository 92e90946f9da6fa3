"""
Playlist cache

One durable file holding the raw text of the last successfully fetched
playlist. New content is written to a sibling temp file while it streams in
and only replaces the durable file, atomically, once the whole download has
been parsed. A reader of the cache path never sees a partial file.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles

from iptv_ingest.utils.file_operations import atomic_replace, cleanup_temp_file


logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class TeeWriter:
    """Forwards each chunk of a stream to the temp file, then to the consumer."""

    def __init__(self, file) -> None:
        self._file = file
        self.bytes_written = 0

    async def write(self, chunk: bytes) -> None:
        await self._file.write(chunk)
        self.bytes_written += len(chunk)

    async def tee(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        async for chunk in chunks:
            await self.write(chunk)
            yield chunk


class PlaylistCache:
    """Cache file at a fixed path plus its transient temp sibling."""

    def __init__(self, cache_path: Path | str) -> None:
        self.path = Path(cache_path)
        self.temp_path = self.path.with_name(self.path.name + TEMP_SUFFIX)

    def exists(self) -> bool:
        """True when a non-empty cache file is present."""
        return self.size() > 0

    def size(self) -> int:
        try:
            return self.path.stat().st_size if self.path.is_file() else 0
        except OSError:
            return 0

    def delete(self) -> bool:
        deleted = cleanup_temp_file(self.path)
        if deleted:
            logger.info(f"Deleted playlist cache {self.path}")
        return deleted

    async def iter_chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        """Read the cache file in chunks without loading it whole."""
        async with aiofiles.open(self.path, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    @asynccontextmanager
    async def tee_writer(self) -> AsyncIterator[TeeWriter]:
        """
        Open the temp file for a tee download.

        Leaving the block normally commits: the temp file is flushed, synced
        and renamed over the cache path. Leaving it with an exception, including
        cancellation, deletes the temp file and leaves the cache untouched.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if cleanup_temp_file(self.temp_path):
            logger.warning(f"Removed stale temp file {self.temp_path}")

        committed = False
        try:
            async with aiofiles.open(self.temp_path, "wb") as f:
                writer = TeeWriter(f)
                yield writer
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())

            atomic_replace(self.temp_path, self.path)
            committed = True
            logger.info(f"Playlist cache updated: {self.path} ({writer.bytes_written} bytes)")
        finally:
            if not committed:
                logger.debug(f"Discarding partial download {self.temp_path}")
                cleanup_temp_file(self.temp_path)
