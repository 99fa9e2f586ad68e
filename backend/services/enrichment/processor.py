"""
Transcript enrichment pipeline.

Turns timed caption entries into a LearningArtifact in four stages:
correction, segmentation, per-sentence analysis and insight aggregation.
Partial AI failures degrade individual fields; only a systemic failure
produces the passthrough artifact.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
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
)
from services.batch.queue import BatchQueue, BatchRequest
from services.cache import TTLCache
from services.enrichment.fallbacks import FALLBACK_LEARNING_TIPS, passthrough_complexity
from services.enrichment.insights import generate_learning_insights
from services.errors import AIProcessingFailure, ParseError, ValidationError
from services.llm.language_ai import LanguageAIService


logger = logging.getLogger(__name__)

MAX_LEARNING_TIPS = 3
LONG_SENTENCE_TIP_WORDS = 20

EntryInput = Union[TimedEntry, Dict[str, Any]]


def coerce_entries(entries: Iterable[EntryInput]) -> List[TimedEntry]:
    """Accept TimedEntry objects or dicts; anything else is a ValidationError."""
    if entries is None or isinstance(entries, (str, bytes, dict)):
        raise ValidationError("entries must be a list of timed entries")

    coerced = []
    for index, entry in enumerate(entries):
        if isinstance(entry, TimedEntry):
            coerced.append(entry)
            continue
        try:
            coerced.append(TimedEntry.model_validate(entry))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid transcript entry at index {index}: {e}") from e
    return coerced


def _has_idioms(phrases: Sequence[Phrase]) -> bool:
    return any(phrase.type == PhraseType.IDIOM for phrase in phrases)


def _build_sentence(
    index: int,
    text: str,
    start: float,
    duration: float,
    complexity: Complexity,
    phrases: Optional[List[Phrase]] = None,
    translated_text: Optional[str] = None,
) -> Sentence:
    phrases = phrases or []
    return Sentence(
        id=f"sentence_{index}",
        original_text=text,
        translated_text=translated_text or text,
        start_time=start,
        duration=duration,
        phrases=phrases,
        complexity=complexity,
        word_count=len(text.split()),
        character_count=len(text),
        has_idioms=_has_idioms(phrases),
    )


# Global processor instance
_transcript_processor = None


def get_transcript_processor() -> "TranscriptProcessor":
    """Get or create the global transcript processor."""
    global _transcript_processor
    if _transcript_processor is None:
        _transcript_processor = TranscriptProcessor()
    return _transcript_processor


# Global batch queue instance
_batch_queue = None


def get_batch_queue() -> BatchQueue:
    """Get or create the global batch queue, executing requests on the global processor."""
    global _batch_queue
    if _batch_queue is None:
        _batch_queue = BatchQueue(get_transcript_processor().execute_request)
    return _batch_queue


class TranscriptProcessor:
    """
    Enrichment orchestrator.

    Artifacts are cached per ``(video_id, language)``; a cache hit returns the
    stored artifact without any inference call. Degraded artifacts are never
    cached, so a later call can still produce the enriched version.
    """

    def __init__(
        self,
        ai: Optional[LanguageAIService] = None,
        cache: Optional[TTLCache] = None,
        sentence_delay: float = None,
    ):
        self.ai = ai or LanguageAIService()
        self.cache: TTLCache[LearningArtifact] = cache if cache is not None else TTLCache()
        self.sentence_delay = sentence_delay if sentence_delay is not None else settings.SENTENCE_DELAY

    async def process_transcript(
        self,
        entries: Iterable[EntryInput],
        video_id: str,
        language: str = "en",
    ) -> LearningArtifact:
        """
        Build the learning artifact for one video.

        Args:
            entries: Timed caption entries, as TimedEntry or dicts
            video_id: Video the entries belong to
            language: Target language; anything but 'en' adds translations

        Returns:
            The enriched artifact, or the degraded passthrough artifact on systemic failure

        Raises:
            ValidationError: malformed entries or an empty video id
        """
        if not video_id:
            raise ValidationError("video_id is required")
        timed = coerce_entries(entries)

        key = (video_id, language)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("📦 Artifact cache hit for %s/%s", video_id, language)
            return cached

        logger.info("🔄 Processing transcript for video %s (%d entries, %s)", video_id, len(timed), language)

        try:
            artifact = await self._enrich(timed, video_id, language)
        except Exception:
            logger.exception("❌ Transcript processing failed for %s, using passthrough", video_id)
            return self._passthrough_artifact(timed, video_id, language)

        self.cache.set(key, artifact)
        logger.info("✅ Processed %s: %d sentences", video_id, len(artifact.sentences))
        return artifact

    async def _enrich(self, entries: List[TimedEntry], video_id: str, language: str) -> LearningArtifact:
        if not entries:
            raise ParseError("Transcript has no entries")

        # Stage 1: correction, only an aid for segmentation
        raw_text = " ".join(entry.text for entry in entries)
        try:
            corrected = await self.ai.fix_transcript(raw_text, language)
        except AIProcessingFailure as e:
            logger.warning("⚠️ Transcript correction unavailable, using raw text: %s", e)
            corrected = raw_text

        # Stage 2: segmentation
        spans = await self.ai.split_into_sentences(
            entries,
            reference_text=corrected if corrected != raw_text else None,
        )
        if not spans:
            raise ParseError("Segmentation produced no sentences")

        # Stage 3: per-sentence analysis, one sentence at a time
        sentences = []
        for index, span in enumerate(spans):
            logger.debug("📝 Processing sentence %d/%d", index + 1, len(spans))
            sentences.append(await self._analyze_sentence(index, span, language))
            if self.sentence_delay and index < len(spans) - 1:
                await asyncio.sleep(self.sentence_delay)

        # Stage 4: insights
        return LearningArtifact(
            video_id=video_id,
            language=language,
            original_entry_count=len(entries),
            sentences=sentences,
            insights=generate_learning_insights(sentences),
        )

    async def _analyze_sentence(self, index: int, span: SentenceSpan, language: str) -> Sentence:
        calls = [
            self.ai.extract_phrases(span.text),
            self.ai.analyze_complexity(span.text),
        ]
        if language != "en":
            calls.append(self.ai.translate_text(span.text, language))

        results = await asyncio.gather(*calls)
        phrases, complexity = results[0], results[1]
        translated = results[2] if len(results) > 2 else span.text

        return _build_sentence(
            index,
            span.text,
            span.start,
            span.duration,
            complexity,
            phrases=phrases,
            translated_text=translated,
        )

    def _passthrough_artifact(self, entries: List[TimedEntry], video_id: str, language: str) -> LearningArtifact:
        """One sentence per entry, untranslated, with a generic assessment."""
        sentences = [
            _build_sentence(index, entry.text, entry.start, entry.duration, passthrough_complexity())
            for index, entry in enumerate(entries)
        ]
        return LearningArtifact(
            video_id=video_id,
            language=language,
            original_entry_count=len(entries),
            sentences=sentences,
            insights=generate_learning_insights(sentences),
            degraded=True,
        )

    async def get_phrase_breakdown(
        self,
        sentence_id: str,
        sentences: Sequence[Sentence],
    ) -> Optional[PhraseBreakdown]:
        """
        Detailed phrase view of one sentence with at most three learning tips.

        Rule-based tips come first; AI tips fill the remaining slots, or generic
        tips when the AI call fails. Returns None for an unknown sentence id.
        """
        sentence = next((s for s in sentences if s.id == sentence_id), None)
        if sentence is None:
            return None

        phrases = await self.ai.extract_phrases(sentence.original_text)

        return PhraseBreakdown(
            sentence_id=sentence.id,
            original_text=sentence.original_text,
            translated_text=sentence.translated_text,
            phrases=phrases,
            complexity=sentence.complexity,
            learning_tips=await self._learning_tips(sentence, phrases),
        )

    async def _learning_tips(self, sentence: Sentence, phrases: Sequence[Phrase]) -> List[str]:
        tips = []

        if sentence.complexity.level in (CEFRLevel.C1, CEFRLevel.C2):
            tips.append("This is an advanced sentence. Focus on nuanced meanings and advanced vocabulary.")
        if _has_idioms(phrases):
            tips.append("Practice the idioms in different contexts to master their usage.")
        if sentence.word_count > LONG_SENTENCE_TIP_WORDS:
            tips.append("Break down this long sentence into smaller parts for better understanding.")
        if any(phrase.difficulty == Difficulty.HARD for phrase in phrases):
            tips.append("The difficult phrases in this sentence are worth memorizing for advanced fluency.")

        if len(tips) < MAX_LEARNING_TIPS:
            try:
                tips.extend(await self.ai.generate_learning_tips(sentence, phrases))
            except AIProcessingFailure as e:
                logger.warning("⚠️ Learning tips fell back to generic tips: %s", e)
                tips.extend(FALLBACK_LEARNING_TIPS)

        return tips[:MAX_LEARNING_TIPS]

    async def fix_transcript(self, text: str, language: str = "en") -> str:
        return await self.ai.fix_transcript(text, language)

    async def translate_text(self, text: str, target_language: str = "hi", context: str = "") -> str:
        return await self.ai.translate_text(text, target_language, context)

    async def analyze_complexity(self, text: str) -> Complexity:
        return await self.ai.analyze_complexity(text)

    async def extract_phrases(self, text: str, context: str = "") -> List[Phrase]:
        return await self.ai.extract_phrases(text, context)

    def generate_learning_insights(self, sentences: Sequence[Sentence]) -> Insights:
        return generate_learning_insights(sentences)

    async def execute_request(self, request: BatchRequest) -> Any:
        """Run one batch request; unknown request types raise ValidationError."""
        data = request.data
        if request.type == "process_transcript":
            return await self.process_transcript(
                data["entries"], data["video_id"], data.get("language", "en")
            )
        if request.type == "analyze_phrases":
            return await self.extract_phrases(data["text"], data.get("context", ""))
        if request.type == "translate":
            return await self.translate_text(
                data["text"], data.get("language", "hi"), data.get("context", "")
            )
        if request.type == "analyze_complexity":
            return await self.analyze_complexity(data["text"])
        if request.type == "fix_transcript":
            return await self.fix_transcript(data["text"], data.get("language", "en"))

        raise ValidationError(f"Unknown request type: {request.type}")

    def clear_cache(self, video_id: str, language: str = "en") -> bool:
        return self.cache.delete((video_id, language))

    def clear_all_caches(self) -> None:
        self.cache.clear()
        self.ai.cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        stats["keys"] = [f"{video_id}:{language}" for video_id, language in stats["keys"]]
        stats["content_entries"] = len(self.ai.cache)
        return stats
