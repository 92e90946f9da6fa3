"""
EPG Service

Downloads an XMLTV guide, decompresses it when gzipped, indexes programmes
by channel id and answers "what's on next" lookups. EPG data is
supplementary: every failure is logged and swallowed by refresh(), leaving
the previous guide in place.
"""
from __future__ import annotations

import logging
import zlib
from collections.abc import AsyncIterable
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlsplit

import httpx

from iptv_ingest.config import IngestSettings
from iptv_ingest.errors import EpgFetchError, IngestError
from iptv_ingest.models import EpgIndex, EpgProgram
from iptv_ingest.services.xmltv_parser_service import XmltvProgramParser
from iptv_ingest.utils.file_operations import build_timeout, client_scope, iter_body, open_stream
from iptv_ingest.utils.logging_helpers import log_section_end, log_section_start, sanitize_url


logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def is_gzip_source(url: str, headers: httpx.Headers | dict | None = None) -> bool:
    """Gzip hinted by a .gz path, a gz/gzip query parameter, or Content-Encoding."""
    parts = urlsplit(url)
    if parts.path.lower().endswith(".gz"):
        return True
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key.lower() in ("gz", "gzip") and value.lower() in ("1", "true", ""):
            return True
    encoding = (headers or {}).get("content-encoding", "") or ""
    return "gzip" in encoding.lower()


class GzipStreamDecoder:
    """
    Streaming gzip decompression that passes plain data through.

    httpx already decodes Content-Encoding, so the payload is only
    decompressed here when it still starts with the gzip magic bytes.
    """

    def __init__(self) -> None:
        self._head = b""
        self._decided = False
        self._decompressor: zlib._Decompress | None = None

    @property
    def compressed(self) -> bool:
        return self._decompressor is not None

    def decode(self, chunk: bytes) -> bytes:
        if not self._decided:
            self._head += chunk
            if len(self._head) < len(GZIP_MAGIC):
                return b""
            chunk, self._head = self._head, b""
            self._decided = True
            if chunk.startswith(GZIP_MAGIC):
                self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)

        if self._decompressor is None:
            return chunk
        return self._inflate(chunk)

    def flush(self) -> bytes:
        if not self._decided:
            self._decided = True
            data, self._head = self._head, b""
            return data
        if self._decompressor is None:
            return b""
        return self._decompressor.flush()

    def _inflate(self, chunk: bytes) -> bytes:
        try:
            out = self._decompressor.decompress(chunk)
            # Concatenated gzip members
            while self._decompressor.eof and self._decompressor.unused_data:
                rest = self._decompressor.unused_data
                self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
                out += self._decompressor.decompress(rest)
            return out
        except zlib.error as e:
            raise EpgFetchError(f"Corrupt gzip EPG stream: {e}") from e


async def index_xmltv_stream(chunks: AsyncIterable[bytes]) -> EpgIndex:
    """Decompress (if needed) and index an XMLTV byte stream."""
    decoder = GzipStreamDecoder()
    parser = XmltvProgramParser()

    async for chunk in chunks:
        data = decoder.decode(chunk)
        if data:
            parser.feed(data)

    tail = decoder.flush()
    if tail:
        parser.feed(tail)
    if decoder.compressed:
        logger.debug("EPG payload was gzip-compressed")
    return parser.close()


class EpgService:
    """
    Holds the current program guide.

    The index is rebuilt from scratch on each fetch and swapped in with a
    single assignment once complete, so lookups see either the old guide or
    the new one.
    """

    def __init__(self, settings: IngestSettings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client
        self._index: EpgIndex = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def channel_count(self) -> int:
        return len(self._index)

    async def fetch_and_index(self, url: str) -> EpgIndex:
        """
        Download and index an XMLTV guide, replacing the current index

        Args:
            url: XMLTV document URL (optionally gzip-compressed)

        Returns:
            The new index

        Raises:
            EpgFetchError: On any network, decompression or parse failure,
                or when the document holds no usable programmes
        """
        safe_url = sanitize_url(url)
        log_section_start(logger, f"EPG fetch from {safe_url}")

        timeout = build_timeout(
            self.settings.epg_connect_timeout_sec,
            self.settings.epg_read_timeout_sec,
        )
        headers = {"User-Agent": self.settings.user_agent}

        try:
            async with client_scope(self._client) as client:
                async with open_stream(
                    client,
                    url,
                    timeout=timeout,
                    headers=headers,
                    max_retries=self.settings.fetch_max_retries,
                    backoff_factor=self.settings.fetch_backoff_factor,
                ) as response:
                    if is_gzip_source(url, response.headers):
                        logger.info("Decompressing GZIP EPG...")
                    index = await index_xmltv_stream(
                        iter_body(response, self.settings.download_chunk_size)
                    )
        except EpgFetchError:
            raise
        except (IngestError, OSError) as e:
            raise EpgFetchError(f"EPG fetch failed for {safe_url}: {e}") from e

        if not index:
            raise EpgFetchError(f"No programmes found in EPG from {safe_url}")

        self._index = index
        self._loaded = True
        log_section_end(logger, f"EPG fetch ({len(index)} channels)")
        return index

    async def refresh(self, url: str) -> bool:
        """Non-fatal fetch: on failure the previous guide stays in place."""
        try:
            await self.fetch_and_index(url)
            return True
        except EpgFetchError as e:
            logger.warning(f"EPG unavailable, keeping previous guide: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected EPG failure, keeping previous guide: {e}", exc_info=True)
            return False

    def programs_for(
        self,
        tvg_id: str | None,
        tvg_name: str | None,
        now: datetime | None = None,
    ) -> list[EpgProgram]:
        """
        Upcoming and current programmes for a channel

        Looks up tvg_id first and falls back to tvg_name, since many
        providers key programmes by display name. Only programmes whose stop
        is after now are returned, sorted by start.
        """
        index = self._index
        programs = index.get(tvg_id) if tvg_id else None
        if not programs and tvg_name:
            programs = index.get(tvg_name)
        if not programs:
            return []

        now = now or datetime.now(timezone.utc)
        return sorted((p for p in programs if p.stop > now), key=lambda p: p.start)
