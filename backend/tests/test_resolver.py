import json
import os

import pytest

from services.errors import AllSourcesExhausted, ExtractionToolError, NetworkError, ValidationError
from services.transcript.resolver import (
    SYNTHETIC_CAPTIONS,
    CaptionSourceResolver,
    extract_video_id,
    parse_duration,
    validate_video_id,
)

SOURCES = ["https://a.example", "https://b.example", "https://c.example"]
VIDEO_ID = "dQw4w9WgXcQ"

VTT = """WEBVTT

00:00:00.000 --> 00:00:02.000
Hello world.

00:00:02.000 --> 00:00:05.000
This is a test
"""


def _install_fetch(resolver, monkeypatch, handler):
    """Route every HTTP call of the resolver through ``handler(url, params)``."""
    calls = []

    async def fake_fetch_text(url, params=None, timeout=None):
        calls.append(url)
        result = handler(url, params)
        if isinstance(result, Exception):
            raise result
        return result if isinstance(result, str) else json.dumps(result)

    monkeypatch.setattr(resolver, "_fetch_text", fake_fetch_text)
    return calls


def _fail_all(url, params):
    return NetworkError(f"unreachable: {url}", url=url)


@pytest.mark.asyncio
async def test_failover_reaches_third_source(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)

    def handler(url, params):
        if url.startswith("https://c.example"):
            return {"source": "c"}
        return NetworkError("down", status=503, url=url)

    calls = _install_fetch(resolver, monkeypatch, handler)

    result = await resolver.request_with_failover("/streams/x")

    assert result == {"source": "c"}
    assert resolver.current_index == 2
    assert resolver.current_instance.endpoint == "https://c.example"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_undecodable_body_counts_as_failure(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES[:2], production=True)
    _install_fetch(
        resolver, monkeypatch,
        lambda url, params: "<html>" if url.startswith("https://a.example") else {"ok": True},
    )

    assert await resolver.request_with_failover("/trending") == {"ok": True}
    assert resolver.current_index == 1


@pytest.mark.asyncio
async def test_exhaustion_raises_in_production(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)
    calls = _install_fetch(resolver, monkeypatch, _fail_all)

    with pytest.raises(AllSourcesExhausted) as exc_info:
        await resolver.get_video_details(VIDEO_ID)

    assert len(exc_info.value.errors) == 3
    assert len(calls) == 3
    # Rotation wrapped around to the starting source
    assert resolver.current_index == 0


@pytest.mark.asyncio
async def test_exhaustion_serves_synthetic_details_outside_production(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=False)
    _install_fetch(resolver, monkeypatch, _fail_all)

    details = await resolver.get_video_details(VIDEO_ID)

    assert details.synthetic
    assert details.title
    assert details.duration >= 0
    assert details.video_id == VIDEO_ID


@pytest.mark.asyncio
async def test_video_details_are_normalized(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)
    _install_fetch(resolver, monkeypatch, lambda url, params: {
        "title": "Learning English",
        "description": "A lesson",
        "duration": 212,
        "thumbnailUrl": "https://img.example/t.jpg",
        "uploader": "English Coach",
        "uploaderUrl": "/channel/UC123",
        "views": 1000,
        "likes": "42",
        "uploadDate": "2023-01-01",
    })

    details = await resolver.get_video_details(VIDEO_ID)

    assert details.title == "Learning English"
    assert details.duration == 212
    assert details.channel.name == "English Coach"
    assert details.channel.id == "UC123"
    assert details.statistics.view_count == 1000
    assert details.statistics.like_count == 42
    assert not details.synthetic


@pytest.mark.asyncio
async def test_captions_select_requested_language(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)

    def handler(url, params):
        if url.endswith(f"/captions/{VIDEO_ID}"):
            return {"subtitles": [
                {"code": "de", "url": "https://cdn.example/de.vtt", "mimeType": "text/vtt"},
                {"code": "en", "url": "https://cdn.example/en.vtt", "mimeType": "text/vtt"},
                {"code": "es", "url": "https://cdn.example/es.vtt", "mimeType": "text/vtt"},
            ]}
        if url == "https://cdn.example/es.vtt":
            return VTT
        return NetworkError("unexpected url", url=url)

    _install_fetch(resolver, monkeypatch, handler)

    entries = await resolver.extract_captions(VIDEO_ID, language="es")

    assert [entry.text for entry in entries] == ["Hello world.", "This is a test"]
    assert entries[1].start == pytest.approx(2.0)


def test_track_selection_falls_back_to_english_then_first():
    resolver = CaptionSourceResolver(instances=SOURCES)
    tracks = [{"code": "de"}, {"code": "en"}]

    assert resolver._select_track(tracks, "fr")["code"] == "en"
    assert resolver._select_track([{"code": "de"}, {"code": "it"}], "fr")["code"] == "de"


@pytest.mark.asyncio
async def test_subtitle_tool_fallback_cleans_up(monkeypatch, tmp_path):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True, temp_dir=str(tmp_path))
    _install_fetch(resolver, monkeypatch, _fail_all)
    seen = {}

    async def fake_tool(video_url, language, base_path):
        seen["url"] = video_url
        seen["dir"] = os.path.dirname(base_path)
        with open(f"{base_path}.{language}.vtt", "w", encoding="utf-8") as f:
            f.write(VTT)

    monkeypatch.setattr(resolver, "_run_subtitle_tool", fake_tool)

    entries = await resolver.extract_captions(VIDEO_ID, language="en")

    assert len(entries) == 2
    assert seen["url"] == f"https://www.youtube.com/watch?v={VIDEO_ID}"
    assert not os.path.exists(seen["dir"])
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_subtitle_tool_failure_in_production_raises(monkeypatch, tmp_path):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True, temp_dir=str(tmp_path))
    _install_fetch(resolver, monkeypatch, _fail_all)

    async def failing_tool(video_url, language, base_path):
        raise ExtractionToolError("yt-dlp exited with status 1")

    monkeypatch.setattr(resolver, "_run_subtitle_tool", failing_tool)

    with pytest.raises(AllSourcesExhausted):
        await resolver.extract_captions(VIDEO_ID)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_missing_subtitle_tool_serves_synthetic_captions(monkeypatch, tmp_path):
    resolver = CaptionSourceResolver(
        instances=SOURCES,
        production=False,
        temp_dir=str(tmp_path),
        ytdlp_path=str(tmp_path / "no-such-tool"),
    )
    _install_fetch(resolver, monkeypatch, _fail_all)

    entries = await resolver.extract_captions(VIDEO_ID)

    assert len(entries) == len(SYNTHETIC_CAPTIONS)
    assert entries[0].text == SYNTHETIC_CAPTIONS[0][0]


@pytest.mark.asyncio
async def test_availability_never_raises_for_source_failures(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)
    _install_fetch(resolver, monkeypatch, _fail_all)

    availability = await resolver.check_transcript_availability(VIDEO_ID)

    assert availability.available is False
    assert availability.error


@pytest.mark.asyncio
async def test_search_filters_and_passes_page_token(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)
    requests = []

    def handler(url, params):
        requests.append((url, params))
        return {
            "items": [
                {"type": "stream", "url": "/watch?v=aaaaaaaaaaa", "title": "Video A", "uploaderName": "Chan"},
                {"type": "channel", "url": "/channel/UC1", "name": "A channel"},
                {"type": "stream", "url": "/watch?v=bbbbbbbbbbb", "title": "Video B"},
            ],
            "nextpage": "opaque-token",
        }

    _install_fetch(resolver, monkeypatch, handler)

    results = await resolver.search_videos("english lessons", max_results=5)

    assert [result.id for result in results.results] == ["aaaaaaaaaaa", "bbbbbbbbbbb"]
    assert all(result.type == "video" for result in results.results)
    assert results.next_page_token == "opaque-token"

    await resolver.search_videos("english lessons", page_token="opaque-token")
    url, params = requests[-1]
    assert url.endswith("/nextpage/search")
    assert params["nextpage"] == "opaque-token"


@pytest.mark.asyncio
async def test_playlist_items_have_positions(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)
    _install_fetch(resolver, monkeypatch, lambda url, params: {
        "relatedStreams": [
            {"url": "/watch?v=aaaaaaaaaaa", "title": "One", "duration": 60},
            {"url": "/watch?v=bbbbbbbbbbb", "title": "Two", "duration": 90},
        ],
        "nextpage": None,
    })

    playlist = await resolver.get_playlist_items("PL123")

    assert [(item.video_id, item.position) for item in playlist.items] == [("aaaaaaaaaaa", 0), ("bbbbbbbbbbb", 1)]
    assert playlist.next_page_token is None


@pytest.mark.asyncio
async def test_instance_status_does_not_move_cursor(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=True)
    _install_fetch(
        resolver, monkeypatch,
        lambda url, params: _fail_all(url, params) if url.startswith("https://b.example") else "[]",
    )

    statuses = await resolver.get_instance_status()

    assert [status.status for status in statuses] == ["online", "offline", "online"]
    assert [status.is_current for status in statuses] == [True, False, False]
    assert resolver.current_index == 0


@pytest.mark.asyncio
async def test_invalid_video_id_is_rejected_before_any_request(monkeypatch):
    resolver = CaptionSourceResolver(instances=SOURCES, production=False)
    calls = _install_fetch(resolver, monkeypatch, _fail_all)

    with pytest.raises(ValidationError):
        await resolver.extract_captions("too-short")
    assert calls == []


@pytest.mark.parametrize(
    "value,expected",
    [
        ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/embed/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtube.com/shorts/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("not a url", None),
        ("", None),
    ],
)
def test_extract_video_id(value, expected):
    assert extract_video_id(value) == expected


def test_validate_video_id():
    assert validate_video_id(VIDEO_ID) == VIDEO_ID
    with pytest.raises(ValidationError):
        validate_video_id("dQw4w9WgXc")
    with pytest.raises(ValueError):
        validate_video_id(None)


def test_parse_duration():
    assert parse_duration(95) == 95.0
    assert parse_duration("PT1H2M3S") == 3723.0
    assert parse_duration("PT4M") == 240.0
    assert parse_duration("soon") == 0.0
