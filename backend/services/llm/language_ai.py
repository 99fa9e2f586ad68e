"""
Language AI operations used by the enrichment pipeline.

Each operation sends one task to the inference client and validates the reply
strictly. Structured tasks that fail, or answer with the wrong shape, fall back
to the deterministic heuristics in ``services.enrichment.fallbacks``.
"""

import json
import logging
import re
from functools import lru_cache
from typing import Any, List, Optional, Sequence

import tiktoken
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
from models.transcript import Complexity, Phrase, Sentence, SentenceSpan, TimedEntry
from services.cache import TTLCache, content_key
from services.enrichment.fallbacks import (
    fallback_complexity,
    fallback_phrases,
    fallback_sentence_split,
)
from services.errors import AIProcessingFailure, ParseError
from services.llm.client import InferenceClient, TaskType, get_inference_client
from services.llm.prompts import EnrichmentPrompts


logger = logging.getLogger(__name__)

# Tolerance for model-reported sentence ends past the last caption
TIMELINE_TOLERANCE = 1.0

TOKEN_ENCODING = "cl100k_base"
TIPS_MAX_TOKENS = 500

_SPANS = TypeAdapter(List[SentenceSpan])
_PHRASES = TypeAdapter(List[Phrase])

_CODE_FENCE = re.compile(r"^```[a-zA-Z0-9]*\s*|\s*```$")
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


@lru_cache(maxsize=1)
def _encoding():
    """Load the tokenizer once; None when its BPE file cannot be loaded."""
    try:
        return tiktoken.get_encoding(TOKEN_ENCODING)
    except Exception as e:
        logger.warning("⚠️ Could not load the %s tokenizer, bounding by bytes: %s", TOKEN_ENCODING, e)
        return None


def bound_tokens(text: str, max_tokens: int) -> str:
    """
    Truncate text to at most ``max_tokens`` tokens.

    A token never encodes fewer than one byte, so text whose UTF-8 length fits
    the limit is returned without tokenizing. Without a tokenizer the text is
    cut to ``max_tokens`` bytes.
    """
    data = text.encode("utf-8")
    if len(data) <= max_tokens:
        return text

    encoding = _encoding()
    if encoding is None:
        logger.warning("✂️ Truncating correction input from %d to %d bytes", len(data), max_tokens)
        return data[:max_tokens].decode("utf-8", errors="ignore")

    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text

    logger.warning("✂️ Truncating correction input from %d to %d tokens", len(tokens), max_tokens)
    return encoding.decode(tokens[:max_tokens])


def parse_model_json(raw: str) -> Any:
    """
    Decode JSON from a model reply.

    Markdown code fences are stripped; when the reply wraps the JSON in prose,
    the outermost array or object is used.
    """
    text = _CODE_FENCE.sub("", raw.strip())
    try:
        return json.loads(text)
    except ValueError:
        pass

    for opener, closer in (("[", "]"), ("{", "}")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except ValueError:
                continue

    raise ParseError(f"Model output is not JSON: {raw[:80]!r}")


def validate_spans(spans: List[SentenceSpan], entries: Sequence[TimedEntry]) -> None:
    """Raise ParseError unless spans are ordered and stay inside the entries' timeline."""
    if not spans:
        raise ParseError("Sentence split returned no sentences")

    timeline_end = max(entry.end for entry in entries)
    previous_start = 0.0
    for span in spans:
        if span.start < previous_start:
            raise ParseError(f"Sentence starts out of order at {span.start}")
        if span.end > timeline_end + TIMELINE_TOLERANCE:
            raise ParseError(f"Sentence ends at {span.end}, past the timeline end {timeline_end}")
        previous_start = span.start


def _complexity_from_model(data: Any) -> Complexity:
    if not isinstance(data, dict):
        raise ParseError("Complexity output is not an object")

    level = data.get("level")
    return Complexity.model_validate({
        "level": level.upper() if isinstance(level, str) else level,
        "score": data.get("complexity_score", data.get("score")),
        "grammar_points": data.get("grammar_points", []),
        "vocabulary_level": data.get("vocabulary_level", "basic"),
        "tips": data.get("learning_tips", data.get("tips", [])),
    })


class LanguageAIService:
    """Task-level AI operations with per-task fallbacks and a content-keyed cache."""

    def __init__(
        self,
        client: Optional[InferenceClient] = None,
        cache: Optional[TTLCache] = None,
        max_input_tokens: int = None,
    ):
        self.client = client or get_inference_client()
        self.cache = cache if cache is not None else TTLCache()
        self.max_input_tokens = max_input_tokens or settings.CORRECTION_MAX_INPUT_TOKENS

    async def fix_transcript(self, text: str, language: str = "en") -> str:
        """
        Correct punctuation, casing and spelling of a transcript.

        Raises:
            AIProcessingFailure: inference failed or answered with empty text
        """
        if not text.strip():
            return text

        bounded = bound_tokens(text, self.max_input_tokens)
        fixed = await self.client.invoke(
            TaskType.TRANSCRIPT_FIX,
            EnrichmentPrompts.fix_transcript(bounded, language),
        )

        fixed = fixed.strip()
        if not fixed:
            raise AIProcessingFailure("Transcript correction returned empty text", task_type=TaskType.TRANSCRIPT_FIX.value)
        return fixed

    async def split_into_sentences(
        self,
        entries: Sequence[TimedEntry],
        reference_text: Optional[str] = None,
    ) -> List[SentenceSpan]:
        """Segment entries into timed sentences, falling back to punctuation grouping."""
        if not entries:
            return []

        try:
            raw = await self.client.invoke(
                TaskType.SENTENCE_SPLIT,
                EnrichmentPrompts.split_into_sentences(entries, reference_text),
            )
            spans = _SPANS.validate_python(parse_model_json(raw))
            validate_spans(spans, entries)
            return spans
        except (AIProcessingFailure, ParseError, PydanticValidationError) as e:
            logger.warning("⚠️ Sentence split fell back to punctuation grouping: %s", e)
            return fallback_sentence_split(entries)

    async def extract_phrases(self, text: str, context: str = "") -> List[Phrase]:
        key = content_key(TaskType.PHRASE_EXTRACT.value, text, context)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("📦 Phrase cache hit")
            return list(cached)

        try:
            raw = await self.client.invoke(
                TaskType.PHRASE_EXTRACT,
                EnrichmentPrompts.extract_phrases(text, context),
            )
            phrases = _PHRASES.validate_python(parse_model_json(raw))
        except (AIProcessingFailure, ParseError, PydanticValidationError) as e:
            logger.warning("⚠️ Phrase extraction fell back to the phrase table: %s", e)
            return fallback_phrases(text)

        self.cache.set(key, phrases)
        return list(phrases)

    async def analyze_complexity(self, text: str) -> Complexity:
        key = content_key(TaskType.ANALYSIS.value, text)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("📦 Complexity cache hit")
            return cached

        try:
            raw = await self.client.invoke(
                TaskType.ANALYSIS,
                EnrichmentPrompts.analyze_complexity(text),
            )
            complexity = _complexity_from_model(parse_model_json(raw))
        except (AIProcessingFailure, ParseError, PydanticValidationError) as e:
            logger.warning("⚠️ Complexity analysis fell back to word heuristics: %s", e)
            return fallback_complexity(text)

        self.cache.set(key, complexity)
        return complexity

    async def translate_text(self, text: str, target_language: str = "hi", context: str = "") -> str:
        """
        Translate text; English targets and empty text are returned unchanged.

        On failure the original text is returned.
        """
        if target_language == "en" or not text.strip():
            return text

        key = content_key(TaskType.TRANSLATION.value, text, target_language, context)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("📦 Translation cache hit")
            return cached

        try:
            translated = await self.client.invoke(
                TaskType.TRANSLATION,
                EnrichmentPrompts.translate(text, target_language, context),
            )
        except AIProcessingFailure as e:
            logger.warning("⚠️ Translation to %s fell back to the original text: %s", target_language, e)
            return text

        translated = translated.strip()
        if not translated:
            return text

        self.cache.set(key, translated)
        return translated

    async def generate_learning_tips(self, sentence: Sentence, phrases: Sequence[Phrase]) -> List[str]:
        """
        Ask for 2-3 tips about a sentence, one per line.

        Raises:
            AIProcessingFailure: inference failed or no tip could be read from the reply
        """
        raw = await self.client.invoke(
            TaskType.ANALYSIS,
            EnrichmentPrompts.learning_tips(sentence, phrases),
            max_tokens=TIPS_MAX_TOKENS,
        )

        tips = [_BULLET.sub("", line).strip() for line in raw.splitlines()]
        tips = [tip for tip in tips if tip]
        if not tips:
            raise AIProcessingFailure("No learning tips in model output", task_type=TaskType.ANALYSIS.value)
        return tips
