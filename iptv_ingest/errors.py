"""
Error taxonomy

Every I/O-origin failure is raised as one of these types and converted to a
result value at the orchestrator or EPG service boundary.
"""


class IngestError(Exception):
    """Base class for ingestion failures"""

    user_message = "Error loading playlist."


class ParseError(IngestError):
    """Malformed line, attribute or timestamp (always recovered locally)"""
    pass


class StreamReadError(IngestError):
    """The underlying byte stream failed mid-parse"""

    user_message = "The playlist download was interrupted. Please try again."


class NetworkError(IngestError):
    """Playlist or EPG request failed before or while streaming"""

    kind = "network"
    user_message = "Network error. Please check your internet connection."


class NetworkTimeoutError(NetworkError):
    kind = "timeout"
    user_message = "Connection timeout. The server is taking too long to respond. Please try again."


class HostUnreachableError(NetworkError):
    kind = "unreachable"
    user_message = "Cannot reach the IPTV server. Please check your internet connection."


class ServerError(NetworkError):
    """Non-2xx HTTP status"""

    kind = "server"

    def __init__(self, status_code: int, url: str = ""):
        super().__init__(f"HTTP {status_code} from {url}" if url else f"HTTP {status_code}")
        self.status_code = status_code
        self.url = url

    @property
    def user_message(self) -> str:
        return f"Download error: the server answered with HTTP {self.status_code}."


class CacheCorruptionError(IngestError):
    """An existing cache file could not be parsed"""
    pass


class EpgFetchError(IngestError):
    """EPG download or parse failed; never fatal"""
    pass


class PlaylistUrlError(IngestError):
    """No playlist URL could be obtained"""

    user_message = "No playlist is configured for this device."


class LoadCancelledError(IngestError):
    """A load was superseded by a newer one before it finished"""

    user_message = "Loading was cancelled."
