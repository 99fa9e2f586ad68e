"""
Prompt templates for transcript enrichment.

Every structured task asks for bare JSON; the caller validates the shape and
falls back to a heuristic when the model does not comply.
"""

import json
from typing import Dict, List, Optional, Sequence

from models.transcript import Phrase, Sentence, TimedEntry


LANGUAGE_NAMES: Dict[str, str] = {
    "hi": "Hindi",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "en": "English",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "ko": "Korean",
    "ar": "Arabic",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


class EnrichmentPrompts:
    """Prompt builders, one per task type."""

    TRANSCRIPT_FIX_SYSTEM = """You are a professional transcript editor. Fix the following transcript by:
1. Adding proper punctuation
2. Separating run-on sentences
3. Correcting spelling errors
4. Formatting with proper capitalization
5. Maintaining the original meaning

Return ONLY the corrected transcript without any explanations."""

    SENTENCE_SPLIT_SYSTEM = """You are a language processing expert. Split the timed transcript into proper sentences.
Return ONLY a JSON array where each object has:
- "text": the sentence text
- "start": start time in seconds, taken from the timed lines
- "duration": duration in seconds

Sentences must be in chronological order and stay inside the transcript's timeline."""

    PHRASE_EXTRACT_SYSTEM = """You are an English language teaching expert. Extract important phrases, idioms, and expressions from the given sentence.
Return ONLY a JSON array where each object has:
- "phrase": the phrase text
- "type": "idiom", "expression", "phrasal_verb", "collocation", or "common_phrase"
- "meaning": brief meaning explanation
- "difficulty": "easy", "medium", or "hard"
- "example": usage example

Return [] if the sentence has no notable phrases."""

    COMPLEXITY_SYSTEM = """Analyze the English sentence for language learning difficulty.
Return ONLY a JSON object with:
- "level": "A1", "A2", "B1", "B2", "C1", or "C2"
- "complexity_score": integer 1-10
- "grammar_points": array of grammar concepts used
- "vocabulary_level": "basic", "intermediate", or "advanced"
- "learning_tips": array of 2-3 learning tips"""

    LEARNING_TIPS_SYSTEM = (
        "Provide 2-3 specific learning tips for this English sentence for language learners. "
        "Write one tip per line, without numbering."
    )

    @staticmethod
    def fix_transcript(text: str, language: str = "en") -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": EnrichmentPrompts.TRANSCRIPT_FIX_SYSTEM},
            {
                "role": "user",
                "content": f"The transcript is in {language_name(language)}. Please fix this transcript:\n\n{text}",
            },
        ]

    @staticmethod
    def split_into_sentences(
        entries: Sequence[TimedEntry],
        reference_text: Optional[str] = None,
    ) -> List[Dict[str, str]]:
        """
        Timed lines are given as ``[start-end] text`` so the model can keep timing.
        The corrected transcript, when available, helps it place punctuation.
        """
        timed_lines = "\n".join(
            f"[{entry.start:.2f}-{entry.end:.2f}] {entry.text}" for entry in entries
        )
        content = f"Split this transcript into sentences:\n\n{timed_lines}"
        if reference_text:
            content += f"\n\nPunctuated reference text (same words, no timing):\n{reference_text}"

        return [
            {"role": "system", "content": EnrichmentPrompts.SENTENCE_SPLIT_SYSTEM},
            {"role": "user", "content": content},
        ]

    @staticmethod
    def extract_phrases(sentence: str, context: str = "") -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": EnrichmentPrompts.PHRASE_EXTRACT_SYSTEM},
            {
                "role": "user",
                "content": f'Sentence: "{sentence}"\nContext: "{context}"\n\nExtract important phrases:',
            },
        ]

    @staticmethod
    def translate(text: str, target_language: str, context: str = "") -> List[Dict[str, str]]:
        name = language_name(target_language)
        return [
            {
                "role": "system",
                "content": f"""You are a professional translator. Translate the following text to {name} while:
1. Preserving the original meaning
2. Maintaining natural flow
3. Considering context: {context or "none"}
4. Using appropriate cultural references

Return ONLY the translated text without explanations.""",
            },
            {"role": "user", "content": f"Translate this to {name}:\n\n{text}"},
        ]

    @staticmethod
    def analyze_complexity(sentence: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": EnrichmentPrompts.COMPLEXITY_SYSTEM},
            {"role": "user", "content": f'Analyze this sentence: "{sentence}"'},
        ]

    @staticmethod
    def learning_tips(sentence: Sentence, phrases: Sequence[Phrase]) -> List[Dict[str, str]]:
        phrase_json = json.dumps([phrase.model_dump(mode="json") for phrase in phrases], ensure_ascii=False)
        return [
            {"role": "system", "content": EnrichmentPrompts.LEARNING_TIPS_SYSTEM},
            {
                "role": "user",
                "content": (
                    f'Sentence: "{sentence.original_text}"\n'
                    f"Complexity: {sentence.complexity.level}\n"
                    f"Phrases: {phrase_json}"
                ),
            },
        ]
