"""
Transcript learning backend - command-line entry point.
Resolves videos, extracts their captions and prints the enriched learning artifacts.
Several videos are processed together through the batch queue.

Usage:
    python main.py <url-or-id> [<url-or-id> ...] [--language hi] [--details] [--json]

With several videos, --json prints a JSON array of artifacts.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from config.log import setup_logging
from config.settings import settings
from models.transcript import LearningArtifact, TimedEntry
from services.batch.queue import BatchRequest
from services.enrichment.processor import get_batch_queue, get_transcript_processor
from services.errors import AllSourcesExhausted
from services.transcript.resolver import CaptionSourceResolver, extract_video_id


logger = logging.getLogger(__name__)

EXIT_INVALID_INPUT = 2
EXIT_SOURCES_EXHAUSTED = 3
EXIT_BATCH_FAILED = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build a language-learning artifact from a video's captions")
    parser.add_argument("videos", nargs="+", metavar="video", help="Video URL or 11-character video id")
    parser.add_argument("--language", default="en", help="Target language for translations (default: en)")
    parser.add_argument("--details", action="store_true", help="Print video details before each artifact")
    parser.add_argument("--json", action="store_true", help="Print the artifact as JSON")
    parser.add_argument("--log-level", default=None, help=f"Log level (default: {settings.LOG_LEVEL})")
    return parser


def print_summary(artifact: LearningArtifact) -> None:
    insights = artifact.insights
    print(f"\n📚 Learning artifact for {artifact.video_id} ({artifact.language})")
    if artifact.degraded:
        print("   ⚠️ Enrichment failed, showing the unprocessed transcript")
    print(f"   📝 Sentences: {insights.total_sentences}  Words: {insights.total_words}  Phrases: {insights.total_phrases}")
    print(f"   📊 Most common level: {insights.most_common_difficulty or '-'}")
    print(f"   🎯 Focus: {', '.join(insights.recommended_focus)}")
    print(f"   ⏱️ Estimated learning time: {insights.estimated_learning_time_hours}h\n")

    for sentence in artifact.sentences:
        print(f"[{sentence.start_time:7.2f}s] ({sentence.complexity.level}) {sentence.original_text}")
        if sentence.translated_text != sentence.original_text:
            print(f"           {sentence.translated_text}")
        for phrase in sentence.phrases:
            print(f"           • {phrase.phrase} ({phrase.type}): {phrase.meaning}")


def print_artifact(artifact: LearningArtifact, as_json: bool) -> None:
    if as_json:
        print(artifact.model_dump_json(by_alias=True, indent=2))
    else:
        print_summary(artifact)


async def load_captions(resolver: CaptionSourceResolver, video_id: str, show_details: bool) -> List[TimedEntry]:
    if show_details:
        details = await resolver.get_video_details(video_id)
        print(f"🎬 {details.title} - {details.channel.name} ({details.duration:.0f}s)")
    return await resolver.extract_captions(video_id, language="en")


async def run(video_ids: List[str], language: str, show_details: bool, as_json: bool) -> int:
    resolver = CaptionSourceResolver()

    captions = {}
    for video_id in video_ids:
        try:
            captions[video_id] = await load_captions(resolver, video_id, show_details)
        except AllSourcesExhausted as e:
            logger.error("❌ Could not load captions for %s: %s", video_id, e)
            return EXIT_SOURCES_EXHAUSTED

    if len(video_ids) == 1:
        video_id = video_ids[0]
        artifact = await get_transcript_processor().process_transcript(captions[video_id], video_id, language)
        print_artifact(artifact, as_json)
        return 0

    requests = [
        BatchRequest("process_transcript", {"entries": captions[video_id], "video_id": video_id, "language": language})
        for video_id in video_ids
    ]
    outcomes = await get_batch_queue().submit(requests)

    artifacts = []
    for video_id, outcome in zip(video_ids, outcomes):
        if outcome.ok:
            artifacts.append(outcome.value)
        else:
            logger.error("❌ Processing failed for %s: %s", video_id, outcome.error)

    if as_json:
        print(json.dumps([artifact.model_dump(mode="json", by_alias=True) for artifact in artifacts], indent=2))
    else:
        for artifact in artifacts:
            print_summary(artifact)
    return 0 if len(artifacts) == len(outcomes) else EXIT_BATCH_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    video_ids = []
    for value in args.videos:
        video_id = extract_video_id(value)
        if video_id is None:
            print(f"❌ Not a video URL or id: {value}", file=sys.stderr)
            return EXIT_INVALID_INPUT
        video_ids.append(video_id)

    return asyncio.run(run(video_ids, args.language, args.details, args.json))


if __name__ == "__main__":
    sys.exit(main())
