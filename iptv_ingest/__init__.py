"""
IPTV playlist ingestion engine

Streaming extended-M3U parsing, channel classification, XMLTV guide
ingestion and a crash-safe playlist cache behind one load operation.
"""
from iptv_ingest.config import IngestSettings, get_settings, setup_logging
from iptv_ingest.errors import (
    CacheCorruptionError,
    EpgFetchError,
    HostUnreachableError,
    IngestError,
    LoadCancelledError,
    NetworkError,
    NetworkTimeoutError,
    ParseError,
    PlaylistUrlError,
    ServerError,
    StreamReadError,
)
from iptv_ingest.models import Category, Channel, EpgIndex, EpgProgram
from iptv_ingest.services.category_service import classify
from iptv_ingest.services.epg_service import EpgService
from iptv_ingest.services.ingest_types import (
    Complete,
    Failed,
    IngestionEvent,
    LoadResult,
    LoadSource,
    LoadState,
    Partial,
    Progress,
)
from iptv_ingest.services.ingestion_orchestrator import IngestionOrchestrator
from iptv_ingest.services.playlist_parser_service import PlaylistParser, parse_playlist

__version__ = "0.1.0"

__all__ = [
    "CacheCorruptionError",
    "Category",
    "Channel",
    "Complete",
    "EpgFetchError",
    "EpgIndex",
    "EpgProgram",
    "EpgService",
    "Failed",
    "HostUnreachableError",
    "IngestError",
    "IngestSettings",
    "IngestionEvent",
    "IngestionOrchestrator",
    "LoadCancelledError",
    "LoadResult",
    "LoadSource",
    "LoadState",
    "NetworkError",
    "NetworkTimeoutError",
    "ParseError",
    "Partial",
    "PlaylistParser",
    "PlaylistUrlError",
    "Progress",
    "ServerError",
    "StreamReadError",
    "classify",
    "get_settings",
    "parse_playlist",
    "setup_logging",
]
