"""
Device Backend Service

Looks up the playlist URL assigned to a device and derives the matching
XMLTV guide URL. The device identity is an opaque string produced elsewhere.
"""
import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from iptv_ingest.config import IngestSettings
from iptv_ingest.errors import PlaylistUrlError
from iptv_ingest.schemas import DeviceInfoResponse
from iptv_ingest.utils.file_operations import build_timeout, iter_body, open_stream
from iptv_ingest.utils.logging_helpers import sanitize_url

logger = logging.getLogger(__name__)


class DeviceBackendClient:
    """Reads device info from the backend API."""

    def __init__(self, client: httpx.AsyncClient, settings: IngestSettings):
        if not settings.backend_base_url or not settings.device_id:
            raise ValueError("backend_base_url and device_id are required")
        self.client = client
        self.settings = settings

    @property
    def info_url(self) -> str:
        base = self.settings.backend_base_url.rstrip("/")
        return f"{base}/api/devices/{quote(self.settings.device_id, safe='')}/info/"

    async def get_device_info(self) -> DeviceInfoResponse:
        """
        Fetch and validate the device info document

        Raises:
            NetworkError: If the backend cannot be reached or answers non-2xx
            PlaylistUrlError: If the response is not a valid device document
        """
        timeout = build_timeout(
            self.settings.epg_connect_timeout_sec,
            self.settings.epg_read_timeout_sec,
        )
        async with open_stream(
            self.client,
            self.info_url,
            timeout=timeout,
            max_retries=self.settings.fetch_max_retries,
            backoff_factor=self.settings.fetch_backoff_factor,
        ) as response:
            body = b"".join([chunk async for chunk in iter_body(response, self.settings.download_chunk_size)])

        try:
            return DeviceInfoResponse.model_validate_json(body)
        except ValidationError as e:
            logger.error(f"Invalid device info response: {e}")
            raise PlaylistUrlError("Device backend returned an invalid response") from e

    async def get_playlist_url(self) -> str:
        """Return the playlist URL assigned to this device."""
        info = await self.get_device_info()
        if not info.m3u_url:
            raise PlaylistUrlError("M3U URL not set for this device")
        logger.info(f"Playlist URL from backend: {sanitize_url(info.m3u_url)}")
        return info.m3u_url


def derive_epg_url(m3u_url: str) -> str:
    """
    Guess the XMLTV guide URL that accompanies a playlist URL

    Xtream-style 'get.php' links map to 'xmltv.php' with the playlist-only
    'type'/'output' parameters dropped; plain .m3u/.m3u8 files map to .xml.
    """
    if "get.php" in m3u_url:
        epg_url = m3u_url.replace("get.php", "xmltv.php")
        return epg_url.split("&type=")[0].split("&output=")[0]
    if ".m3u8" in m3u_url:
        return m3u_url.replace(".m3u8", ".xml")
    return m3u_url.replace(".m3u", ".xml")
