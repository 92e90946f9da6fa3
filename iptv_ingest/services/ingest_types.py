"""
Shared types used across the ingestion pipeline.

A load reports through one ordered stream of events:
Progress(f)* interleaved with Partial(list)*, then Complete(list) or Failed(err).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Union

from iptv_ingest.errors import IngestError
from iptv_ingest.models import Channel


@dataclass(frozen=True, slots=True)
class Progress:
    """Fraction of the payload consumed, 0.0 - 1.0."""
    fraction: float


@dataclass(frozen=True, slots=True)
class Partial:
    """Snapshot of the channels parsed so far."""
    channels: tuple[Channel, ...]


@dataclass(frozen=True, slots=True)
class Complete:
    channels: tuple[Channel, ...]


@dataclass(frozen=True, slots=True)
class Failed:
    error: IngestError


IngestionEvent = Union[Progress, Partial, Complete, Failed]
EventCallback = Callable[[IngestionEvent], None]


class LoadState(enum.Enum):
    IDLE = "idle"
    LOADING_FROM_CACHE = "loading_from_cache"
    FETCHING_NETWORK = "fetching_network"
    TEE_WRITING = "tee_writing"
    READY = "ready"
    FAILED = "failed"


class LoadSource(enum.Enum):
    CACHE = "cache"
    NETWORK = "network"


@dataclass(slots=True)
class LoadResult:
    """Outcome of load_channels: a channel list or a typed failure.

    On failure, stale_channels holds the last-known-good list (possibly empty).
    """
    channels: list[Channel] = field(default_factory=list)
    source: LoadSource | None = None
    error: IngestError | None = None
    stale_channels: list[Channel] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def available_channels(self) -> list[Channel]:
        """Channels a caller can show right now, fresh or stale."""
        return self.channels if self.is_success else self.stale_channels

    @classmethod
    def ok(cls, channels: list[Channel], source: LoadSource) -> LoadResult:
        return cls(channels=channels, source=source)

    @classmethod
    def failed(cls, error: IngestError, stale_channels: list[Channel] | None = None) -> LoadResult:
        return cls(error=error, stale_channels=list(stale_channels or []))


__all__ = [
    "Complete",
    "EventCallback",
    "Failed",
    "IngestionEvent",
    "LoadResult",
    "LoadSource",
    "LoadState",
    "Partial",
    "Progress",
]
