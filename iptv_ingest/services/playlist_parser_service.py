"""
Streaming extended-M3U parser

Turns a byte stream into Channel records incrementally. The parser is a
two-state machine: AwaitingMetadata, or AwaitingUrl carrying the metadata
captured from the last #EXTINF: line. Malformed entries are skipped; only a
failure of the underlying stream aborts a parse.
"""
from __future__ import annotations

import codecs
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Union

from iptv_ingest.errors import IngestError, StreamReadError
from iptv_ingest.models import Channel
from iptv_ingest.services.ingest_types import Complete, IngestionEvent, Partial, Progress


logger = logging.getLogger(__name__)

EXTINF_PREFIX = "#EXTINF:"
DEFAULT_GROUP = "OTHER"
DEFAULT_SNAPSHOT_EVERY = 500
DEFAULT_PROGRESS_STEP_BYTES = 100 * 1024

# Intermediate progress stays below 1.0 so the final event is the only 1.0
MAX_INTERMEDIATE_PROGRESS = 0.99

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")
_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9_-]+)="([^"]*)"')
_TRUE_VALUES = frozenset({"true", "1", "yes"})


@dataclass(frozen=True, slots=True)
class PendingMetadata:
    """Fields captured from one #EXTINF: line"""
    name: str
    tvg_id: str | None = None
    tvg_name: str | None = None
    logo: str | None = None
    group: str | None = None
    tvg_shift: str | None = None
    radio: bool = False
    catchup: str | None = None


@dataclass(frozen=True, slots=True)
class AwaitingMetadata:
    pass


@dataclass(frozen=True, slots=True)
class AwaitingUrl:
    pending: PendingMetadata


ParserState = Union[AwaitingMetadata, AwaitingUrl]


def extract_attributes(line: str) -> dict[str, str]:
    """Scan key="value" pairs; anything that does not match is ignored."""
    return {key.lower(): value for key, value in _ATTRIBUTE_RE.findall(line)}


class PlaylistParser:
    """
    Incremental parser for one playlist.

    Create one instance per parse run: the group-title intern table and the
    channel list belong to the run and are released by finish().
    """

    def __init__(
        self,
        total_length_hint: int = 0,
        *,
        snapshot_every: int = DEFAULT_SNAPSHOT_EVERY,
        progress_step_bytes: int = DEFAULT_PROGRESS_STEP_BYTES,
    ) -> None:
        self.total_length_hint = max(0, total_length_hint or 0)
        self.snapshot_every = snapshot_every
        self.progress_step_bytes = progress_step_bytes

        self.state: ParserState = AwaitingMetadata()
        self.channels: list[Channel] = []
        self.dropped_urls = 0
        self.bytes_consumed = 0

        self._groups: dict[str, str] = {}
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._tail: list[str] = []
        self._skip_lf = False
        self._last_reported = 0
        self._last_fraction = 0.0
        self._first_line = True
        self._finished = False

    def feed(self, chunk: bytes) -> list[IngestionEvent]:
        """Consume a chunk of raw bytes and return the events it produced."""
        if self._finished:
            raise RuntimeError("Parser already finished")

        events: list[IngestionEvent] = []
        self.bytes_consumed += len(chunk)

        for line in self._split_lines(self._decoder.decode(chunk)):
            self._handle_line(line, events)

        if self.total_length_hint > 0 and self.bytes_consumed - self._last_reported >= self.progress_step_bytes:
            fraction = min(self.bytes_consumed / self.total_length_hint, MAX_INTERMEDIATE_PROGRESS)
            if fraction > self._last_fraction:
                events.append(Progress(fraction))
                self._last_fraction = fraction
            self._last_reported = self.bytes_consumed

        return events

    def finish(self) -> list[IngestionEvent]:
        """Flush the trailing line and emit the final progress and result."""
        if self._finished:
            raise RuntimeError("Parser already finished")

        events: list[IngestionEvent] = []
        for line in self._split_lines(self._decoder.decode(b"", final=True)):
            self._handle_line(line, events)
        if self._tail:
            self._handle_line("".join(self._tail), events)
            self._tail = []

        self._finished = True
        self._groups.clear()

        if isinstance(self.state, AwaitingUrl):
            logger.debug("Playlist ended with metadata but no URL: %s", self.state.pending.name)
        self.state = AwaitingMetadata()

        logger.info(
            "Parse complete: %s channels from %s bytes (%s URLs without metadata dropped)",
            len(self.channels),
            self.bytes_consumed,
            self.dropped_urls,
        )

        events.append(Progress(1.0))
        events.append(Complete(tuple(self.channels)))
        return events

    def _split_lines(self, text: str) -> list[str]:
        """
        Complete lines in newly decoded text; \\r\\n, \\r and \\n all end a line.

        The unterminated remainder is kept in pieces until its terminator
        arrives, and a \\r ending one chunk swallows a \\n starting the next.
        """
        if self._skip_lf and text:
            self._skip_lf = False
            if text.startswith("\n"):
                text = text[1:]
        if not text:
            return []
        if text.endswith("\r"):
            self._skip_lf = True

        lines = _LINE_BREAK_RE.split(text)
        tail = lines.pop()
        if lines and self._tail:
            self._tail.append(lines[0])
            lines[0] = "".join(self._tail)
            self._tail = []
        if tail:
            self._tail.append(tail)
        return lines

    def process_line(self, line: str) -> Channel | None:
        """Advance the state machine by one line; return a completed channel."""
        text = line.strip()
        if not text:
            return None

        if text.startswith(EXTINF_PREFIX):
            self.state = AwaitingUrl(self._parse_extinf(text))
            return None

        if text.startswith("#"):
            return None

        state = self.state
        if isinstance(state, AwaitingUrl):
            self.state = AwaitingMetadata()
            return self._build_channel(state.pending, text)

        # URL without a preceding #EXTINF: line is not emitted
        self.dropped_urls += 1
        logger.debug("Dropping URL without metadata: %s", text[:120])
        return None

    def _handle_line(self, line: str, events: list[IngestionEvent]) -> None:
        if self._first_line:
            line = line.lstrip("\ufeff")
            self._first_line = False

        channel = self.process_line(line)
        if channel is None:
            return

        self.channels.append(channel)
        if len(self.channels) <= 5:
            logger.debug("Parsed channel: %s, logo: %s", channel.name, channel.logo)

        if len(self.channels) % self.snapshot_every == 0:
            events.append(Partial(tuple(self.channels)))

    def _parse_extinf(self, line: str) -> PendingMetadata:
        attrs = extract_attributes(line)

        comma_index = line.rfind(",")
        name = line[comma_index + 1:].strip() if comma_index != -1 else ""

        raw_group = attrs.get("group-title")
        if raw_group is None:
            raw_group = DEFAULT_GROUP
        group = self._groups.setdefault(raw_group, raw_group)

        tvg_id = attrs.get("tvg-id")
        tvg_name = attrs.get("tvg-name")
        logo = attrs.get("tvg-logo")
        if logo is None:
            logo = attrs.get("logo")

        return PendingMetadata(
            name=name,
            tvg_id=tvg_id if tvg_id and tvg_id.strip() else None,
            tvg_name=tvg_name if tvg_name is not None else name,
            logo=logo,
            group=group,
            tvg_shift=attrs.get("tvg-shift"),
            radio=attrs.get("radio", "").strip().lower() in _TRUE_VALUES,
            catchup=attrs.get("catchup"),
        )

    @staticmethod
    def _build_channel(pending: PendingMetadata, url: str) -> Channel:
        return Channel(
            name=pending.name,
            url=url,
            logo=pending.logo,
            group=pending.group,
            tvg_id=pending.tvg_id,
            tvg_name=pending.tvg_name,
            tvg_logo=pending.logo,
            tvg_shift=pending.tvg_shift,
            radio=pending.radio,
            catchup=pending.catchup,
        )

    async def parse_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[IngestionEvent]:
        """
        Parse an async byte stream, yielding events as they are produced.

        The last event is always Complete. A read failure of the stream is
        raised as StreamReadError (typed ingestion errors pass through).
        """
        try:
            async for chunk in chunks:
                for event in self.feed(chunk):
                    yield event
        except IngestError:
            raise
        except OSError as exc:
            raise StreamReadError(f"Playlist stream read failed: {exc}") from exc

        for event in self.finish():
            yield event


def parse_playlist(
    data: bytes | str,
    *,
    snapshot_every: int = DEFAULT_SNAPSHOT_EVERY,
) -> list[Channel]:
    """Parse a complete playlist held in memory."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    parser = PlaylistParser(len(raw), snapshot_every=snapshot_every)
    parser.feed(raw)
    parser.finish()
    return parser.channels
