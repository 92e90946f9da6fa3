import httpx
import pytest

from iptv_ingest.config import IngestSettings


PLAYLIST_URL = "http://provider.test/get.php?username=u&password=p&type=m3u_plus&output=ts"

SAMPLE_PLAYLIST = (
    "#EXTM3U\n"
    '#EXTINF:-1 tvg-id="bbc1" tvg-name="BBC One" tvg-logo="http://logo/bbc1.png" group-title="UK",BBC One\n'
    "http://x/bbc1.m3u8\n"
    '#EXTINF:-1 tvg-id="" group-title="Movies",The Matrix (1999)\n'
    "http://x/movie/42.mp4\n"
    '#EXTINF:-1 group-title="Series",Show S01E02\n'
    "http://x/series/1/2/3.mkv\n"
)


def make_playlist(count: int, group_count: int = 5) -> str:
    lines = ["#EXTM3U"]
    for i in range(count):
        lines.append(
            f'#EXTINF:-1 tvg-id="ch{i}" tvg-name="Channel {i}" '
            f'group-title="Group {i % group_count}",Channel {i}'
        )
        lines.append(f"http://stream.test/live/{i}.m3u8")
    return "\n".join(lines) + "\n"


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings(tmp_path) -> IngestSettings:
    return IngestSettings(
        _env_file=None,
        cache_dir=str(tmp_path / "cache"),
        playlist_url=PLAYLIST_URL,
        fetch_max_retries=1,
        fetch_backoff_factor=0,
        download_chunk_size=64,
        partial_snapshot_every=2,
        progress_step_bytes=64,
    )
