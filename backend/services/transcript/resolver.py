"""
YouTube caption and metadata resolution service.
Uses a rotating list of Piped API instances as primary, the yt-dlp CLI as fallback.
"""

import asyncio
import json
import logging
import os
import re
import tempfile
import threading
import time
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import aiohttp

from config.settings import settings
from models.transcript import TimedEntry
from models.video import (
    ChannelInfo,
    ChannelVideos,
    InstanceStatus,
    PlaylistItems,
    SearchResult,
    SearchResults,
    SourceInstance,
    TranscriptAvailability,
    VideoDetails,
    VideoStatistics,
    VideoSummary,
)
from services.errors import (
    AllSourcesExhausted,
    ExtractionToolError,
    NetworkError,
    ParseError,
    ValidationError,
)
from services.transcript.parser import SubtitleParser, format_hint_for


logger = logging.getLogger(__name__)

# Subtitle files the extraction tool may produce, in lookup order
SUBTITLE_EXTENSIONS = (".vtt", ".srt", ".json", ".txt")

_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_VIDEO_URL_PATTERNS = [
    re.compile(r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?|shorts|live)/|.*[?&]v=)|youtu\.be/)([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/watch\?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
]
_ISO_DURATION = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")

_SEARCH_TYPES = {"video": "stream", "channel": "channel", "playlist": "playlist"}
_CANONICAL_TYPES = {"stream": "video", "channel": "channel", "playlist": "playlist"}

SYNTHETIC_CAPTIONS = [
    ("Hello everyone and welcome to this English learning video", 0, 4),
    ("Today we will learn how to improve your English with YouTube videos", 4, 5),
    ("This method is very effective and used by millions of learners worldwide", 9, 6),
    ("Let me show you how to use this amazing tool to boost your learning", 15, 5),
    ("First, find a YouTube video that interests you and has good subtitles", 20, 6),
    ("Then use the transcript feature to see the text while listening", 26, 5),
    ("You can save new vocabulary words and practice them later", 31, 5),
    ("This way you learn in context which is much more effective", 36, 5),
    ("Remember to practice regularly and be consistent with your studies", 41, 6),
    ("Thank you for watching and happy learning!", 47, 4),
]


def extract_video_id(url_or_id: Optional[str]) -> Optional[str]:
    """
    Extract the 11-character video ID from a YouTube URL.

    Handles watch, youtu.be, embed and shorts URLs. A bare ID is returned as is.
    """
    if not url_or_id:
        return None

    value = url_or_id.strip()
    if _VIDEO_ID.match(value):
        return value

    for pattern in _VIDEO_URL_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1)

    return None


def validate_video_id(video_id: Any) -> str:
    """Return the ID unchanged or raise ValidationError."""
    if not isinstance(video_id, str) or not _VIDEO_ID.match(video_id):
        raise ValidationError(f"Invalid video ID format: {video_id!r}")
    return video_id


def parse_duration(value: Any) -> float:
    """Duration in seconds from a number or an ISO 8601 ``PT#H#M#S`` string."""
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    if isinstance(value, str):
        match = _ISO_DURATION.match(value.strip())
        if match:
            hours, minutes, seconds = (int(group or 0) for group in match.groups())
            return float(hours * 3600 + minutes * 60 + seconds)
    return 0.0


def _id_from_url(url: str) -> str:
    """Pull a video/playlist/channel ID out of a provider-relative URL."""
    parsed = urlparse(url or "")
    query = parse_qs(parsed.query)
    for key in ("v", "list"):
        if query.get(key):
            return query[key][0]
    return parsed.path.rstrip("/").rsplit("/", 1)[-1]


def _count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class CaptionSourceResolver:
    """
    Resolves video metadata and captions from interchangeable sources.

    Strategy:
    1. Try the current Piped instance, rotating through the list on failure
    2. For captions, fall back to the yt-dlp CLI when every instance failed
    3. Outside production, serve deterministic placeholder data instead of failing

    The source cursor is only moved by ``rotate()``. It is shared by every call
    made through one resolver instance; rotation itself is lock-guarded.
    """

    def __init__(
        self,
        instances: Optional[List[str]] = None,
        production: Optional[bool] = None,
        parser: Optional[SubtitleParser] = None,
        ytdlp_path: str = None,
        ytdlp_timeout: float = None,
        temp_dir: str = None,
        request_timeout: float = None,
        caption_timeout: float = None,
        status_timeout: float = None,
    ):
        endpoints = instances if instances is not None else settings.PIPED_INSTANCES
        if not endpoints:
            raise ValueError("At least one caption source endpoint is required")

        self.instances = [SourceInstance(endpoint=endpoint.rstrip("/")) for endpoint in endpoints]
        self.current_index = 0
        self._cursor_lock = threading.Lock()

        self.production = settings.is_production if production is None else production
        self.parser = parser or SubtitleParser()
        self.ytdlp_path = ytdlp_path or settings.YT_DLP_PATH
        self.ytdlp_timeout = ytdlp_timeout or settings.YT_DLP_TIMEOUT
        self.temp_dir = temp_dir if temp_dir is not None else settings.TEMP_DIR
        self.request_timeout = request_timeout or settings.SOURCE_TIMEOUT
        self.caption_timeout = caption_timeout or settings.CAPTION_CONTENT_TIMEOUT
        self.status_timeout = status_timeout or settings.INSTANCE_STATUS_TIMEOUT

    # ------------------------------------------------------------------
    # Failover
    # ------------------------------------------------------------------

    @property
    def current_instance(self) -> SourceInstance:
        return self.instances[self.current_index]

    def rotate(self) -> SourceInstance:
        """Advance the cursor to the next source, wrapping around."""
        with self._cursor_lock:
            self.current_index = (self.current_index + 1) % len(self.instances)
            instance = self.instances[self.current_index]
        logger.info("🔄 Switching to caption source: %s", instance.endpoint)
        return instance

    async def request_with_failover(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        """
        GET ``path`` from the current source, rotating on failure.

        Makes at most one attempt per configured source.

        Raises:
            AllSourcesExhausted: every source failed
        """
        errors: List[Exception] = []
        total = len(self.instances)

        for attempt in range(1, total + 1):
            url = f"{self.current_instance.endpoint}{path}"
            logger.debug("🔍 Attempting request to: %s", url)
            try:
                return await self._fetch_json(url, params=params)
            except (NetworkError, ParseError) as e:
                logger.warning("⚠️ Caption source failed (attempt %d/%d): %s", attempt, total, e)
                errors.append(e)
                self.rotate()

        logger.error("❌ All %d caption sources failed for %s", total, path)
        raise AllSourcesExhausted(f"All {total} caption sources failed: {errors[-1]}", errors=errors)

    async def _fetch_json(self, url: str, params: Optional[Dict[str, str]] = None, timeout: float = None) -> Any:
        text = await self._fetch_text(url, params=params, timeout=timeout)
        try:
            return json.loads(text)
        except ValueError as e:
            raise ParseError(f"Invalid JSON from {url}: {e}") from e

    async def _fetch_text(self, url: str, params: Optional[Dict[str, str]] = None, timeout: float = None) -> str:
        """Single HTTP GET. Every failure surfaces as NetworkError."""
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.get(url, params=params) as resp:
                    if not 200 <= resp.status < 300:
                        raise NetworkError(f"HTTP {resp.status} from {url}", status=resp.status, url=url)
                    return await resp.text()
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request to {url} timed out", url=url) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}", url=url) from e

    # ------------------------------------------------------------------
    # Video metadata
    # ------------------------------------------------------------------

    async def get_video_details(self, video_id: str) -> VideoDetails:
        """Get video metadata (title, channel, duration, statistics)."""
        video_id = validate_video_id(video_id)
        logger.info("🎬 Fetching video details: %s", video_id)

        try:
            data = await self.request_with_failover(f"/streams/{video_id}")
        except AllSourcesExhausted:
            if self.production:
                raise
            logger.warning("Serving placeholder details for %s", video_id)
            return self._synthetic_video_details(video_id)

        if not isinstance(data, dict) or not (data.get("title") or data.get("duration")):
            message = data.get("error") if isinstance(data, dict) else None
            raise ParseError(f"Video not found: {video_id}" + (f" ({message})" if message else ""))

        uploader_url = data.get("uploaderUrl") or ""
        channel_match = re.search(r"/channel/([^/?]+)", uploader_url)

        return VideoDetails(
            video_id=video_id,
            title=data.get("title") or "Unknown Title",
            description=data.get("description") or "",
            duration=parse_duration(data.get("duration")),
            thumbnail=data.get("thumbnailUrl") or f"https://img.youtube.com/vi/{video_id}/default.jpg",
            channel=ChannelInfo(
                name=data.get("uploader") or "Unknown Channel",
                id=channel_match.group(1) if channel_match else "unknown",
            ),
            statistics=VideoStatistics(
                view_count=_count(data.get("views")),
                like_count=_count(data.get("likes")),
                comment_count=0,  # Not provided by Piped
            ),
            published_at=data.get("uploadDate"),
        )

    # ------------------------------------------------------------------
    # Captions
    # ------------------------------------------------------------------

    async def extract_captions(self, video_id: str, language: str = "en") -> List[TimedEntry]:
        """
        Extract timed captions for a video.

        Args:
            video_id: 11-character YouTube video ID
            language: Preferred caption language; 'en' then the first track are used otherwise

        Returns:
            Caption entries ordered by start time
        """
        video_id = validate_video_id(video_id)

        try:
            return await self._extract_from_sources(video_id, language)
        except (AllSourcesExhausted, NetworkError, ParseError) as e:
            logger.warning("Caption sources failed for %s (%s), falling back to %s", video_id, e, self.ytdlp_path)

        try:
            return await self._extract_with_subtitle_tool(video_id, language)
        except (NetworkError, ParseError) as e:
            if self.production:
                raise AllSourcesExhausted(f"Captions extract failed for {video_id}: {e}", errors=[e]) from e
            logger.warning("❌ Subtitle tool failed for %s (%s), serving placeholder captions", video_id, e)
            return self._synthetic_captions()

    async def _extract_from_sources(self, video_id: str, language: str) -> List[TimedEntry]:
        data = await self.request_with_failover(f"/captions/{video_id}")
        tracks = data.get("subtitles") if isinstance(data, dict) else None
        if not tracks:
            raise ParseError(f"No captions available for {video_id}")

        track = self._select_track(tracks, language)
        track_url = track.get("url")
        if not track_url:
            raise ParseError(f"Caption track '{track.get('code')}' has no URL")

        content = await self._fetch_text(track_url, timeout=self.caption_timeout)
        entries = self.parser.parse(content, format_hint_for(track.get("mimeType")))
        if not entries:
            raise ParseError(f"Caption track '{track.get('code')}' is empty")

        logger.info("📝 Extracted %d caption entries for %s [%s]", len(entries), video_id, track.get("code"))
        return entries

    def _select_track(self, tracks: List[dict], language: str) -> dict:
        """Requested language, else English, else the first track."""
        for code in (language, "en"):
            for track in tracks:
                if track.get("code") == code:
                    return track
        return tracks[0]

    async def _extract_with_subtitle_tool(self, video_id: str, language: str) -> List[TimedEntry]:
        """Fallback extraction through the yt-dlp CLI into a scratch directory."""
        video_url = f"https://www.youtube.com/watch?v={video_id}"

        if self.temp_dir:
            os.makedirs(self.temp_dir, exist_ok=True)

        # The scratch directory and every file in it is removed on exit, success or not
        with tempfile.TemporaryDirectory(prefix="captions_", dir=self.temp_dir or None) as scratch:
            base_path = os.path.join(scratch, f"captions_{video_id}_{language}")
            await self._run_subtitle_tool(video_url, language, base_path)

            subtitle_file = self._find_subtitle_file(base_path, language)
            if not subtitle_file:
                raise ParseError("Subtitle tool did not produce a subtitle file")

            with open(subtitle_file, encoding="utf-8", errors="replace") as f:
                content = f.read()
            entries = self.parser.parse(content, format_hint_for(subtitle_file))

        if not entries:
            raise ParseError(f"Subtitle file for {video_id} is empty")

        logger.info("📝 Extracted %d caption entries for %s via %s", len(entries), video_id, self.ytdlp_path)
        return entries

    async def _run_subtitle_tool(self, video_url: str, language: str, base_path: str) -> None:
        command = [
            self.ytdlp_path,
            "--write-auto-sub",
            "--write-sub",
            "--sub-lang", language,
            "--skip-download",
            "--output", f"{base_path}.%(ext)s",
            video_url,
        ]
        logger.info("🔍 Extracting captions with: %s", " ".join(command))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExtractionToolError(f"Could not start {self.ytdlp_path}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.ytdlp_timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ExtractionToolError(f"{self.ytdlp_path} timed out after {self.ytdlp_timeout}s") from e

        if stderr:
            logger.warning("⚠️ %s stderr: %s", self.ytdlp_path, stderr.decode(errors="replace").strip()[:500])

        if process.returncode != 0:
            raise ExtractionToolError(f"{self.ytdlp_path} exited with status {process.returncode}")

    def _find_subtitle_file(self, base_path: str, language: str) -> Optional[str]:
        """Look for ``base.ext`` first, then the language-qualified ``base.lang.ext``."""
        candidates = [f"{base_path}{ext}" for ext in SUBTITLE_EXTENSIONS]
        candidates += [f"{base_path}.{language}{ext}" for ext in SUBTITLE_EXTENSIONS]
        for path in candidates:
            if os.path.exists(path):
                return path
        return None

    async def check_transcript_availability(self, video_id: str) -> TranscriptAvailability:
        """Report which caption tracks exist without downloading them."""
        video_id = validate_video_id(video_id)

        try:
            data = await self.request_with_failover(f"/captions/{video_id}")
        except AllSourcesExhausted as e:
            return TranscriptAvailability(available=False, error=str(e))

        tracks = (data.get("subtitles") if isinstance(data, dict) else None) or []
        if not tracks:
            return TranscriptAvailability(available=False)

        return TranscriptAvailability(
            available=True,
            language=tracks[0].get("code"),
            languages=[track.get("code") for track in tracks if track.get("code")],
            auto_generated=any(track.get("autoGenerated", True) for track in tracks),
            manual=any(track.get("autoGenerated") is False for track in tracks),
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def search_videos(
        self,
        query: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
        type: str = "video",
    ) -> SearchResults:
        """Full-text search. ``type`` is 'video', 'channel', 'playlist' or 'all'."""
        if not query or not query.strip():
            raise ValidationError("Search query is required")
        self._check_max_results(max_results)

        params = {"q": query.strip(), "filter": "all"}
        path = "/search"
        if page_token:
            path = "/nextpage/search"
            params["nextpage"] = page_token

        data = await self.request_with_failover(path, params=params)
        items = (data.get("items") if isinstance(data, dict) else None) or []

        wanted = _SEARCH_TYPES.get(type)
        results = [
            SearchResult(
                id=_id_from_url(item.get("url", "")) or item.get("name", ""),
                type=_CANONICAL_TYPES.get(item.get("type"), item.get("type") or "unknown"),
                title=item.get("title") or item.get("name") or "",
                description=item.get("shortDescription") or item.get("description") or "",
                thumbnail=item.get("thumbnail") or "",
                channel_title=item.get("uploaderName") or "",
                published_at=item.get("uploadedDate"),
            )
            for item in items
            if wanted is None or item.get("type") == wanted
        ][:max_results]

        return SearchResults(
            results=results,
            next_page_token=data.get("nextpage") if isinstance(data, dict) else None,
            total_results=len(results),
        )

    async def get_channel_videos(
        self,
        channel_id: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
    ) -> ChannelVideos:
        """Latest uploads of a channel."""
        if not channel_id or not channel_id.strip():
            raise ValidationError("Channel ID is required")
        self._check_max_results(max_results)

        data = await self._request_listing(f"/channel/{channel_id.strip()}", page_token)
        videos = self._normalize_streams(data, max_results)

        return ChannelVideos(
            videos=videos,
            next_page_token=data.get("nextpage") if isinstance(data, dict) else None,
            total_results=len(videos),
        )

    async def get_playlist_items(
        self,
        playlist_id: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
    ) -> PlaylistItems:
        """Videos of a playlist, in playlist order."""
        if not playlist_id or not playlist_id.strip():
            raise ValidationError("Playlist ID is required")
        self._check_max_results(max_results)

        data = await self._request_listing(f"/playlists/{playlist_id.strip()}", page_token)
        items = self._normalize_streams(data, max_results)
        for position, item in enumerate(items):
            item.position = position

        return PlaylistItems(
            items=items,
            next_page_token=data.get("nextpage") if isinstance(data, dict) else None,
            total_results=len(items),
        )

    async def _request_listing(self, path: str, page_token: Optional[str]) -> Any:
        if page_token:
            return await self.request_with_failover(f"/nextpage{path}", params={"nextpage": page_token})
        return await self.request_with_failover(path)

    def _normalize_streams(self, data: Any, max_results: int) -> List[VideoSummary]:
        streams = (data.get("relatedStreams") if isinstance(data, dict) else None) or []
        return [
            VideoSummary(
                video_id=_id_from_url(item.get("url", "")),
                title=item.get("title") or "",
                description=item.get("shortDescription") or item.get("description") or "",
                thumbnail=item.get("thumbnail") or "",
                duration=parse_duration(item.get("duration")),
                published_at=item.get("uploadedDate"),
            )
            for item in streams
            if item.get("url")
        ][:max_results]

    def _check_max_results(self, max_results: int) -> None:
        if not isinstance(max_results, int) or max_results < 1:
            raise ValidationError(f"max_results must be a positive integer, got {max_results!r}")

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def get_instance_status(self) -> List[InstanceStatus]:
        """Health-check every source concurrently. Does not move the cursor."""
        return list(await asyncio.gather(*(
            self._check_instance(index, instance) for index, instance in enumerate(self.instances)
        )))

    async def _check_instance(self, index: int, instance: SourceInstance) -> InstanceStatus:
        started = time.perf_counter()
        try:
            await self._fetch_text(
                f"{instance.endpoint}/trending",
                params={"region": "US"},
                timeout=self.status_timeout,
            )
        except NetworkError as e:
            return InstanceStatus(
                instance=instance.endpoint,
                status="offline",
                is_current=index == self.current_index,
                error=str(e),
            )

        return InstanceStatus(
            instance=instance.endpoint,
            status="online",
            response_time_ms=int((time.perf_counter() - started) * 1000),
            is_current=index == self.current_index,
        )

    # ------------------------------------------------------------------
    # Placeholder data (non-production only)
    # ------------------------------------------------------------------

    def _synthetic_video_details(self, video_id: str) -> VideoDetails:
        return VideoDetails(
            video_id=video_id,
            title=f"Demo Video - Learning English with AI ({video_id})",
            description="Demo video for testing transcripts and vocabulary tools.",
            duration=360,
            thumbnail=f"https://img.youtube.com/vi/{video_id}/default.jpg",
            channel=ChannelInfo(name="Demo Education Channel", id="UC_demo_channel_123"),
            statistics=VideoStatistics(view_count=15420, like_count=542, comment_count=89),
            synthetic=True,
        )

    def _synthetic_captions(self) -> List[TimedEntry]:
        return [TimedEntry(text=text, start=start, duration=duration) for text, start, duration in SYNTHETIC_CAPTIONS]
