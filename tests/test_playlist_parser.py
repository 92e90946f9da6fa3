import pytest

from iptv_ingest.errors import StreamReadError
from iptv_ingest.models import Category, Channel
from iptv_ingest.services.ingest_types import Complete, Partial, Progress
from iptv_ingest.services.playlist_parser_service import (
    AwaitingMetadata,
    AwaitingUrl,
    PlaylistParser,
    extract_attributes,
    parse_playlist,
)

from tests.conftest import SAMPLE_PLAYLIST, make_playlist


def test_single_entry_scenario():
    channels = parse_playlist(
        '#EXTINF:-1 tvg-id="bbc1" tvg-name="BBC One" group-title="UK",BBC One\n'
        "http://x/bbc1.m3u8\n"
    )

    assert len(channels) == 1
    channel = channels[0]
    assert channel.name == "BBC One"
    assert channel.tvg_id == "bbc1"
    assert channel.tvg_name == "BBC One"
    assert channel.group == "UK"
    assert channel.url == "http://x/bbc1.m3u8"
    assert channel.category is Category.LIVE_TV


def test_sample_playlist_fields():
    bbc, matrix, show = parse_playlist(SAMPLE_PLAYLIST)

    assert bbc.logo == "http://logo/bbc1.png"
    assert bbc.tvg_logo == "http://logo/bbc1.png"
    assert matrix.tvg_id is None
    assert matrix.tvg_name == "The Matrix (1999)"
    assert matrix.category is Category.MOVIES
    assert show.category is Category.SERIES


def test_name_is_text_after_last_comma():
    channels = parse_playlist('#EXTINF:-1 group-title="News, Weather",Sky News, UK\nhttp://x/1\n')
    assert channels[0].name == "UK"
    assert channels[0].group == "News, Weather"


def test_empty_name_allowed():
    channels = parse_playlist('#EXTINF:-1 tvg-id="a",\nhttp://x/1\n#EXTINF:-1\nhttp://x/2\n')
    assert [c.name for c in channels] == ["", ""]


def test_missing_group_defaults_to_other():
    channels = parse_playlist("#EXTINF:-1,Plain\nhttp://x/plain\n")
    assert channels[0].group == "OTHER"


def test_logo_key_fallback():
    channels = parse_playlist('#EXTINF:-1 logo="http://l/a.png",A\nhttp://x/a\n')
    assert channels[0].logo == "http://l/a.png"
    assert channels[0].tvg_logo == "http://l/a.png"


def test_optional_attributes():
    channels = parse_playlist(
        '#EXTINF:-1 tvg-shift="+2" radio="true" catchup="default",Radio 1\nhttp://x/r1\n'
        '#EXTINF:-1 radio="false",Radio 2\nhttp://x/r2\n'
    )
    assert channels[0].tvg_shift == "+2"
    assert channels[0].radio is True
    assert channels[0].catchup == "default"
    assert channels[1].radio is False
    assert channels[1].catchup is None


def test_malformed_attributes_are_ignored():
    channels = parse_playlist('#EXTINF:-1 tvg-id="broken group-title=UK,Name\nhttp://x/1\n')
    assert len(channels) == 1
    assert channels[0].name == "Name"
    assert channels[0].group == "OTHER"


def test_url_without_metadata_is_dropped():
    parser = PlaylistParser()
    parser.feed(b"#EXTM3U\nhttp://x/orphan\n#EXTINF:-1,A\nhttp://x/a\nhttp://x/second\n")
    parser.finish()

    assert [c.url for c in parser.channels] == ["http://x/a"]
    assert parser.dropped_urls == 2


def test_blank_and_comment_lines_do_not_change_state():
    channels = parse_playlist(
        "#EXTM3U\n"
        "#EXTINF:-1,A\n"
        "\n"
        "#EXTVLCOPT:http-user-agent=Foo\n"
        "#EXTGRP:Other\n"
        "   \n"
        "http://x/a\n"
    )
    assert [c.url for c in channels] == ["http://x/a"]


def test_second_extinf_replaces_pending_metadata():
    channels = parse_playlist("#EXTINF:-1,First\n#EXTINF:-1,Second\nhttp://x/1\n")
    assert [c.name for c in channels] == ["Second"]


def test_state_machine_transitions():
    parser = PlaylistParser()
    assert isinstance(parser.state, AwaitingMetadata)

    assert parser.process_line('#EXTINF:-1 group-title="UK",BBC') is None
    assert isinstance(parser.state, AwaitingUrl)
    assert parser.state.pending.name == "BBC"

    assert parser.process_line("# comment") is None
    assert isinstance(parser.state, AwaitingUrl)

    channel = parser.process_line("  http://x/bbc  ")
    assert channel.url == "http://x/bbc"
    assert isinstance(parser.state, AwaitingMetadata)


def test_channel_count_matches_url_lines_after_extinf():
    text = make_playlist(37) + "http://x/orphan\n"
    assert len(parse_playlist(text)) == 37


def test_crlf_and_bom_handled():
    raw = "\ufeff#EXTM3U\r\n#EXTINF:-1,A\r\nhttp://x/a\r\n".encode("utf-8")
    channels = parse_playlist(raw)
    assert [(c.name, c.url) for c in channels] == [("A", "http://x/a")]


def test_cr_only_line_endings():
    channels = parse_playlist('#EXTM3U\r#EXTINF:-1 group-title="UK",A\rhttp://x/a\r#EXTINF:-1,B\rhttp://x/b\r')
    assert [(c.name, c.group, c.url) for c in channels] == [
        ("A", "UK", "http://x/a"),
        ("B", "OTHER", "http://x/b"),
    ]


@pytest.mark.parametrize("ending", ["\n", "\r\n", "\r"])
def test_line_endings_split_across_chunks(ending):
    raw = ending.join(["#EXTM3U", "#EXTINF:-1,A", "http://x/a", "", "#EXTINF:-1,B", "http://x/b"]).encode("utf-8")

    parser = PlaylistParser(len(raw))
    for i in range(len(raw)):
        parser.feed(raw[i:i + 1])
    parser.finish()

    assert [(c.name, c.url) for c in parser.channels] == [("A", "http://x/a"), ("B", "http://x/b")]
    assert parser.dropped_urls == 0


def test_long_unterminated_line_is_kept_whole():
    url = "http://x/" + "a" * 10_000
    raw = f"#EXTINF:-1,Long\n{url}".encode("utf-8")

    parser = PlaylistParser(len(raw))
    for i in range(0, len(raw), 7):
        parser.feed(raw[i:i + 7])
    parser.finish()

    assert [c.url for c in parser.channels] == [url]


def test_trailing_line_without_newline():
    channels = parse_playlist("#EXTINF:-1,A\nhttp://x/a")
    assert [c.url for c in channels] == ["http://x/a"]


def test_chunk_boundaries_do_not_matter():
    raw = (SAMPLE_PLAYLIST + '#EXTINF:-1,Café Été\nhttp://x/cafe\n').encode("utf-8")

    parser = PlaylistParser(len(raw))
    for i in range(len(raw)):
        parser.feed(raw[i:i + 1])
    parser.finish()

    assert parser.channels == parse_playlist(raw)
    assert parser.channels[-1].name == "Café Été"


def test_parsing_is_idempotent():
    raw = make_playlist(120).encode("utf-8")
    assert parse_playlist(raw) == parse_playlist(raw)


def test_group_titles_are_interned():
    channels = parse_playlist(make_playlist(20, group_count=2))
    groups = {}
    for channel in channels:
        assert groups.setdefault(channel.group, channel.group) is channel.group
    assert len(groups) == 2


def test_intern_table_is_per_parser():
    first = PlaylistParser()
    first.feed(b'#EXTINF:-1 group-title="UK",A\nhttp://x/a\n')
    first.finish()
    second = PlaylistParser()
    second.feed(b'#EXTINF:-1 group-title="UK",B\nhttp://x/b\n')

    assert second._groups == {"UK": "UK"}
    assert first._groups == {}


def test_progress_is_monotonic_and_ends_with_single_one():
    raw = make_playlist(300).encode("utf-8")
    parser = PlaylistParser(len(raw), progress_step_bytes=1024)

    events = []
    for offset in range(0, len(raw), 512):
        events.extend(parser.feed(raw[offset:offset + 512]))
    events.extend(parser.finish())

    fractions = [e.fraction for e in events if isinstance(e, Progress)]
    assert len(fractions) > 2
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0
    assert fractions.count(1.0) == 1
    assert isinstance(events[-1], Complete)


def test_underestimated_hint_still_emits_single_final_progress():
    raw = make_playlist(100).encode("utf-8")
    parser = PlaylistParser(10, progress_step_bytes=100)

    events = []
    for offset in range(0, len(raw), 200):
        events.extend(parser.feed(raw[offset:offset + 200]))
    events.extend(parser.finish())

    fractions = [e.fraction for e in events if isinstance(e, Progress)]
    assert fractions.count(1.0) == 1
    assert fractions[-1] == 1.0


def test_unknown_length_only_emits_final_progress():
    raw = make_playlist(50).encode("utf-8")
    parser = PlaylistParser(0, progress_step_bytes=10)
    events = parser.feed(raw) + parser.finish()

    assert [e for e in events if isinstance(e, Progress)] == [Progress(1.0)]


def test_partial_snapshots_every_k_channels():
    parser = PlaylistParser(snapshot_every=10)
    events = parser.feed(make_playlist(35).encode("utf-8")) + parser.finish()

    partial_sizes = [len(e.channels) for e in events if isinstance(e, Partial)]
    assert partial_sizes == [10, 20, 30]
    assert len(events[-1].channels) == 35


def test_feed_after_finish_rejected():
    parser = PlaylistParser()
    parser.finish()
    with pytest.raises(RuntimeError):
        parser.feed(b"x")


async def _chunks(data: bytes, size: int):
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]


async def test_parse_stream_yields_complete_last():
    raw = SAMPLE_PLAYLIST.encode("utf-8")
    parser = PlaylistParser(len(raw), snapshot_every=1)

    events = [event async for event in parser.parse_stream(_chunks(raw, 7))]

    assert isinstance(events[-1], Complete)
    assert len(events[-1].channels) == 3
    assert [len(e.channels) for e in events if isinstance(e, Partial)] == [1, 2, 3]


async def test_parse_stream_read_error_is_fatal():
    async def failing():
        yield b"#EXTINF:-1,A\nhttp://x/a\n"
        raise OSError("disk gone")

    parser = PlaylistParser()
    with pytest.raises(StreamReadError):
        async for _ in parser.parse_stream(failing()):
            pass


def test_large_playlist_parses():
    raw = make_playlist(50_000, group_count=20).encode("utf-8")
    parser = PlaylistParser(len(raw))

    events = []
    for offset in range(0, len(raw), 32768):
        events.extend(e for e in parser.feed(raw[offset:offset + 32768]) if isinstance(e, Progress))
    events.extend(e for e in parser.finish() if isinstance(e, Progress))

    assert len(parser.channels) == 50_000
    fractions = [e.fraction for e in events]
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0
    assert len({c.group for c in parser.channels}) == 20


def test_extract_attributes():
    attrs = extract_attributes('#EXTINF:-1 TVG-ID="a" tvg-name="" junk group-title="G",N')
    assert attrs == {"tvg-id": "a", "tvg-name": "", "group-title": "G"}


def test_channel_requires_url():
    with pytest.raises(ValueError):
        Channel(name="x", url="")
