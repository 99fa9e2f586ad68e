# Models module
from models.transcript import (
    CEFRLevel,
    Complexity,
    Difficulty,
    Insights,
    LearningArtifact,
    Phrase,
    PhraseBreakdown,
    PhraseType,
    Sentence,
    SentenceSpan,
    TimedEntry,
    VocabularyLevel,
)
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

__all__ = [
    "CEFRLevel",
    "Complexity",
    "Difficulty",
    "Insights",
    "LearningArtifact",
    "Phrase",
    "PhraseBreakdown",
    "PhraseType",
    "Sentence",
    "SentenceSpan",
    "TimedEntry",
    "VocabularyLevel",
    "ChannelInfo",
    "ChannelVideos",
    "InstanceStatus",
    "PlaylistItems",
    "SearchResult",
    "SearchResults",
    "SourceInstance",
    "TranscriptAvailability",
    "VideoDetails",
    "VideoStatistics",
    "VideoSummary",
]
