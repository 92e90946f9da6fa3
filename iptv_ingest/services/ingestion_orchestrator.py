"""
Ingestion Orchestrator

One coordinated "load channels" operation: serve the playlist from the local
cache when possible, otherwise download it, teeing every chunk to a temp file
while parsing it in the same pass, and atomically promote the temp file to
the cache once the parse has succeeded.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone

import httpx

from iptv_ingest.config import IngestSettings, get_settings
from iptv_ingest.errors import (
    CacheCorruptionError,
    IngestError,
    LoadCancelledError,
    PlaylistUrlError,
    StreamReadError,
)
from iptv_ingest.models import Channel, EpgProgram
from iptv_ingest.services.device_backend_service import DeviceBackendClient, derive_epg_url
from iptv_ingest.services.epg_service import EpgService
from iptv_ingest.services.fetch_coordinator import FetchCoordinator
from iptv_ingest.services.ingest_types import (
    Complete,
    EventCallback,
    Failed,
    IngestionEvent,
    LoadResult,
    LoadSource,
    LoadState,
    Partial,
    Progress,
)
from iptv_ingest.services.playlist_cache_service import PlaylistCache
from iptv_ingest.services.playlist_parser_service import PlaylistParser
from iptv_ingest.utils.file_operations import (
    build_timeout,
    client_scope,
    content_length,
    iter_body,
    open_stream,
)
from iptv_ingest.utils.logging_helpers import log_load_summary, log_state_change, sanitize_url


logger = logging.getLogger(__name__)

UrlResolver = Callable[[], Awaitable[str]]

_STREAM_DONE = object()


class _EventRelay:
    """
    Forwards parser events to the single subscriber of one load.

    Keeps progress non-decreasing and partial snapshots growing across a
    cache attempt followed by a network fetch, and reserves the final
    Progress(1.0) and Complete for the orchestrator itself.
    """

    def __init__(self, callback: EventCallback | None) -> None:
        self._callback = callback
        self._fraction = 0.0
        self._partial_size = 0

    def forward(self, event: IngestionEvent) -> None:
        if isinstance(event, Progress):
            if event.fraction >= 1.0 or event.fraction <= self._fraction:
                return
            self._fraction = event.fraction
            self._emit(event)
        elif isinstance(event, Partial):
            if len(event.channels) <= self._partial_size:
                return
            self._partial_size = len(event.channels)
            self._emit(event)

    def complete(self, channels: list[Channel]) -> None:
        self._emit(Progress(1.0))
        self._emit(Complete(tuple(channels)))

    def fail(self, error: IngestError) -> None:
        self._emit(Failed(error))

    def _emit(self, event: IngestionEvent) -> None:
        if self._callback is not None:
            self._callback(event)


class IngestionOrchestrator:
    """
    Loads the channel list from cache or network, one load at a time.

    A new load cancels the one in flight. The last successfully loaded list
    is kept and handed back with failures so callers can keep showing it.
    """

    def __init__(
        self,
        settings: IngestSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        playlist_url: str | None = None,
        resolve_playlist_url: UrlResolver | None = None,
        epg_service: EpgService | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = PlaylistCache(self.settings.cache_path)
        self.epg = epg_service or EpgService(self.settings, client)

        self._client = client
        self._playlist_url = playlist_url or self.settings.playlist_url
        self._resolve_playlist_url = resolve_playlist_url
        self._coordinator = FetchCoordinator()
        self._state = LoadState.IDLE
        self._last_good: list[Channel] = []
        self._resolved_url: str | None = None

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def channels(self) -> list[Channel]:
        """Last successfully loaded channel list (empty before the first load)."""
        return self._last_good

    @property
    def is_loading(self) -> bool:
        return self._coordinator.is_fetching()

    async def load_channels(
        self,
        force_refresh: bool = False,
        on_event: EventCallback | None = None,
    ) -> LoadResult:
        """
        Load the channel list

        Args:
            force_refresh: Delete the cache and download the playlist again
            on_event: Receives Progress/Partial events, then Complete or Failed

        Returns:
            LoadResult with the channels, or the error plus the last-known-good list
        """
        relay = _EventRelay(on_event)
        try:
            channels, source = await self._coordinator.execute(
                lambda: self._load(force_refresh, relay)
            )
        except LoadCancelledError as e:
            relay.fail(e)
            return LoadResult.failed(e, self._last_good)
        except IngestError as e:
            logger.error(f"Playlist load failed: {e}")
            relay.fail(e)
            return LoadResult.failed(e, self._last_good)
        except OSError as e:
            logger.error(f"Playlist storage failed: {e}", exc_info=True)
            error = IngestError(f"Playlist storage error: {e}")
            relay.fail(error)
            return LoadResult.failed(error, self._last_good)

        self._last_good = channels
        relay.complete(channels)
        return LoadResult.ok(channels, source)

    async def stream_channels(self, force_refresh: bool = False) -> AsyncIterator[IngestionEvent]:
        """
        The same load as one ordered event stream.

        The stream ends after Complete or Failed. Closing the iterator early
        cancels the load.
        """
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self.load_channels(force_refresh, on_event=queue.put_nowait))
        task.add_done_callback(lambda _: queue.put_nowait(_STREAM_DONE))
        try:
            while True:
                event = await queue.get()
                if event is _STREAM_DONE:
                    break
                yield event
            task.result()
        finally:
            if not task.done():
                task.cancel()
                await asyncio.wait([task])

    async def _load(self, force_refresh: bool, relay: _EventRelay) -> tuple[list[Channel], LoadSource]:
        started_at = datetime.now(timezone.utc)
        self._set_state(LoadState.IDLE)
        try:
            if force_refresh:
                self.cache.delete()
            elif self.cache.exists():
                self._set_state(LoadState.LOADING_FROM_CACHE)
                try:
                    channels = await self._load_from_cache(relay)
                except CacheCorruptionError as e:
                    logger.warning(f"Discarding corrupt playlist cache: {e}")
                    self.cache.delete()
                else:
                    self._set_state(LoadState.READY)
                    log_load_summary(logger, "cache", len(channels), started_at)
                    return channels, LoadSource.CACHE

            self._set_state(LoadState.FETCHING_NETWORK)
            channels = await self._load_from_network(relay)
        except asyncio.CancelledError:
            self._set_state(LoadState.IDLE)
            raise
        except Exception:
            self._set_state(LoadState.FAILED)
            raise

        self._set_state(LoadState.READY)
        log_load_summary(logger, "network", len(channels), started_at)
        return channels, LoadSource.NETWORK

    async def _load_from_cache(self, relay: _EventRelay) -> list[Channel]:
        parser = self._new_parser(self.cache.size())
        try:
            async for event in parser.parse_stream(
                self.cache.iter_chunks(self.settings.download_chunk_size)
            ):
                relay.forward(event)
        except (StreamReadError, OSError) as e:
            raise CacheCorruptionError(f"Cannot read {self.cache.path}: {e}") from e

        if not parser.channels:
            raise CacheCorruptionError(f"No channels in {self.cache.path}")
        return list(parser.channels)

    async def _load_from_network(self, relay: _EventRelay) -> list[Channel]:
        timeout = build_timeout(
            self.settings.playlist_connect_timeout_sec,
            self.settings.playlist_read_timeout_sec,
        )
        headers = {"User-Agent": self.settings.user_agent}

        async with client_scope(self._client) as client:
            url = await self._playlist_source(client)
            logger.info(f"Fetching playlist from {sanitize_url(url)}")

            async with open_stream(
                client,
                url,
                timeout=timeout,
                headers=headers,
                max_retries=self.settings.fetch_max_retries,
                backoff_factor=self.settings.fetch_backoff_factor,
            ) as response:
                self._set_state(LoadState.TEE_WRITING)
                parser = self._new_parser(content_length(response))
                async with self.cache.tee_writer() as writer:
                    body = writer.tee(iter_body(response, self.settings.download_chunk_size))
                    async for event in parser.parse_stream(body):
                        relay.forward(event)

        return list(parser.channels)

    async def _playlist_source(self, client: httpx.AsyncClient) -> str:
        if self._resolve_playlist_url is not None:
            url = await self._resolve_playlist_url()
        elif self._playlist_url:
            url = self._playlist_url
        elif self.settings.backend_base_url and self.settings.device_id:
            url = await DeviceBackendClient(client, self.settings).get_playlist_url()
        else:
            raise PlaylistUrlError("No playlist URL configured")

        if not url:
            raise PlaylistUrlError("Playlist URL is empty")
        self._resolved_url = url
        return url

    def _new_parser(self, total_length_hint: int) -> PlaylistParser:
        return PlaylistParser(
            total_length_hint,
            snapshot_every=self.settings.partial_snapshot_every,
            progress_step_bytes=self.settings.progress_step_bytes,
        )

    def _set_state(self, state: LoadState) -> None:
        if state is not self._state:
            log_state_change(logger, self._state.value, state.value)
            self._state = state

    async def refresh_epg(self, playlist_url: str | None = None) -> bool:
        """
        Fetch the guide that belongs to the playlist

        Runs independently of load_channels. Failures are logged and reported
        as False; the previous guide stays in place.
        """
        url = playlist_url or self._resolved_url
        if not url:
            try:
                async with client_scope(self._client) as client:
                    url = await self._playlist_source(client)
            except IngestError as e:
                logger.warning(f"No playlist URL for EPG lookup: {e}")
                return False

        return await self.epg.refresh(derive_epg_url(url))

    def programs_for(self, tvg_id: str | None, tvg_name: str | None) -> list[EpgProgram]:
        return self.epg.programs_for(tvg_id, tvg_name)

    def clear_cache(self) -> bool:
        return self.cache.delete()
