"""
Aggregate learning statistics over the sentences of an artifact.
"""

import math
from collections import Counter
from typing import List, Optional, Sequence

from models.transcript import CEFRLevel, Insights, PhraseType, Sentence


IDIOM_FOCUS_THRESHOLD = 5
PHRASAL_VERB_FOCUS_THRESHOLD = 3

_STAGE_FOCUS = {
    CEFRLevel.A1.value: "Basic sentence structures",
    CEFRLevel.A2.value: "Basic sentence structures",
    CEFRLevel.B1.value: "Complex grammar patterns",
    CEFRLevel.B2.value: "Complex grammar patterns",
    CEFRLevel.C1.value: "Advanced vocabulary and nuance",
    CEFRLevel.C2.value: "Advanced vocabulary and nuance",
}
GENERAL_FOCUS = "General vocabulary and grammar"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def most_common_level(levels: Sequence[str]) -> Optional[str]:
    """Mode of the levels; ties go to the level seen first."""
    counts = Counter(levels)
    best = None
    for level, count in counts.items():
        if best is None or count > counts[best]:
            best = level
    return best


def recommend_focus(phrase_types: Counter, most_common: Optional[str]) -> List[str]:
    focus = []
    if phrase_types[PhraseType.IDIOM.value] > IDIOM_FOCUS_THRESHOLD:
        focus.append("Idioms and expressions")
    if phrase_types[PhraseType.PHRASAL_VERB.value] > PHRASAL_VERB_FOCUS_THRESHOLD:
        focus.append("Phrasal verbs")
    if most_common in _STAGE_FOCUS:
        focus.append(_STAGE_FOCUS[most_common])
    return focus or [GENERAL_FOCUS]


def generate_learning_insights(sentences: Sequence[Sentence]) -> Insights:
    """
    Reduce sentences to artifact-level insights.

    The result does not depend on sentence order except for the tie-break of
    ``most_common_difficulty``.
    """
    total_sentences = len(sentences)
    total_words = sum(sentence.word_count for sentence in sentences)
    total_phrases = sum(len(sentence.phrases) for sentence in sentences)

    levels = [sentence.complexity.level for sentence in sentences]
    distribution = {level.value: 0 for level in CEFRLevel}
    for level in levels:
        distribution[level] += 1

    phrase_types = Counter(
        phrase.type for sentence in sentences for phrase in sentence.phrases
    )
    most_common = most_common_level(levels)

    return Insights(
        total_sentences=total_sentences,
        total_words=total_words,
        total_phrases=total_phrases,
        average_sentence_length=round_half_up(total_words / total_sentences) if total_sentences else 0,
        difficulty_distribution=distribution,
        most_common_difficulty=most_common,
        phrase_type_breakdown=dict(phrase_types),
        recommended_focus=recommend_focus(phrase_types, most_common),
        estimated_learning_time_hours=round_half_up((2 * total_sentences + total_phrases) / 60),
    )
