"""
Pydantic models for video metadata and listings returned by the caption source resolver.
Provider-specific field names never leave the resolver; these are the canonical shapes.
"""

from typing import List, Optional

from pydantic import Field

from models.transcript import LearningModel


class SourceInstance(LearningModel):
    """One endpoint of the failover list."""
    endpoint: str


class ChannelInfo(LearningModel):
    name: str = "Unknown Channel"
    id: str = "unknown"


class VideoStatistics(LearningModel):
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0


class VideoDetails(LearningModel):
    """Video metadata."""

    video_id: str = Field(..., min_length=11, max_length=11)
    title: str
    description: str = ""
    duration: float = Field(0, ge=0, description="Seconds")
    thumbnail: str = ""
    channel: ChannelInfo = Field(default_factory=ChannelInfo)
    statistics: VideoStatistics = Field(default_factory=VideoStatistics)
    published_at: Optional[str] = None
    synthetic: bool = Field(False, description="Placeholder record served outside production")


class VideoSummary(LearningModel):
    """Video entry inside a channel or playlist listing."""

    video_id: str
    title: str = ""
    description: str = ""
    thumbnail: str = ""
    duration: float = 0
    position: Optional[int] = None
    published_at: Optional[str] = None


class SearchResult(LearningModel):
    id: str
    type: str  # "video", "channel", "playlist"
    title: str = ""
    description: str = ""
    thumbnail: str = ""
    channel_title: str = ""
    published_at: Optional[str] = None


class SearchResults(LearningModel):
    results: List[SearchResult] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    total_results: int = 0


class ChannelVideos(LearningModel):
    videos: List[VideoSummary] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    total_results: int = 0


class PlaylistItems(LearningModel):
    items: List[VideoSummary] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    total_results: int = 0


class TranscriptAvailability(LearningModel):
    available: bool
    language: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    auto_generated: bool = False
    manual: bool = False
    error: Optional[str] = None


class InstanceStatus(LearningModel):
    """Health of one caption source endpoint."""

    instance: str
    status: str  # "online" or "offline"
    response_time_ms: Optional[int] = None
    is_current: bool = False
    error: Optional[str] = None
