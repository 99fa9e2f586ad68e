"""
Deterministic substitutes for the AI stages.
Used when inference is disabled, fails, or returns output of the wrong shape.
"""

import re
from typing import List, Sequence

from models.transcript import (
    CEFRLevel,
    Complexity,
    Difficulty,
    Phrase,
    PhraseType,
    SentenceSpan,
    TimedEntry,
    VocabularyLevel,
)


SENTENCE_TERMINATORS = (".", "!", "?")

# Closing quotes and brackets may follow the terminator: 'He said "stop."'
_TRAILING_CLOSERS = "\"')]}”’"

COMMON_PHRASES = [
    (re.compile(r"\bhow are you\b", re.IGNORECASE), PhraseType.COMMON_PHRASE, "Greeting asking about well-being"),
    (re.compile(r"\bthank you\b", re.IGNORECASE), PhraseType.COMMON_PHRASE, "Expression of gratitude"),
    (re.compile(r"\blook forward to\b", re.IGNORECASE), PhraseType.PHRASAL_VERB, "Anticipate with pleasure"),
    (re.compile(r"\bmakes? sense\b", re.IGNORECASE), PhraseType.EXPRESSION, "Be understandable or logical"),
    (re.compile(r"\bfigure out\b", re.IGNORECASE), PhraseType.PHRASAL_VERB, "Understand or solve something"),
    (re.compile(r"\bby the way\b", re.IGNORECASE), PhraseType.COMMON_PHRASE, "Introduces an additional remark"),
    (re.compile(r"\bpiece of cake\b", re.IGNORECASE), PhraseType.IDIOM, "Something very easy"),
    (re.compile(r"\bbreak the ice\b", re.IGNORECASE), PhraseType.IDIOM, "Ease the tension when people first meet"),
]

LONG_WORD_LENGTH = 8
LONG_SENTENCE_WORDS = 15
_LONG_WORD = re.compile(r"\w{%d,}" % LONG_WORD_LENGTH)

DEFAULT_GRAMMAR_POINTS = ["basic_sentence_structure"]
DEFAULT_TIPS = ["Practice pronunciation", "Learn vocabulary in context"]

FALLBACK_LEARNING_TIPS = [
    "Listen to the sentence multiple times for better pronunciation.",
    "Try to use the new vocabulary in your own sentences.",
]


def ends_sentence(text: str) -> bool:
    return text.rstrip().rstrip(_TRAILING_CLOSERS).endswith(SENTENCE_TERMINATORS)


def fallback_sentence_split(entries: Sequence[TimedEntry]) -> List[SentenceSpan]:
    """
    Group entries into sentences on terminal punctuation.

    Entries accumulate until one ends with ``.``, ``!`` or ``?`` (or the list
    ends); the sentence spans from the first accumulated entry's start to the
    terminating entry's end.
    """
    sentences: List[SentenceSpan] = []
    buffer: List[str] = []
    start = None

    for index, entry in enumerate(entries):
        if start is None:
            start = entry.start
        if entry.text.strip():
            buffer.append(entry.text.strip())

        if ends_sentence(entry.text) or index == len(entries) - 1:
            text = " ".join(buffer)
            if text:
                sentences.append(SentenceSpan(
                    text=text,
                    start=start,
                    duration=max(0.0, entry.end - start),
                ))
            buffer = []
            start = None

    return sentences


def fallback_phrases(text: str) -> List[Phrase]:
    """Match the fixed phrase table against a sentence, in table order."""
    phrases = []
    for pattern, phrase_type, meaning in COMMON_PHRASES:
        match = pattern.search(text)
        if match:
            phrases.append(Phrase(
                phrase=match.group(0),
                type=phrase_type,
                meaning=meaning,
                difficulty=Difficulty.EASY,
                example=f'Example: "{text}"',
            ))
    return phrases


def fallback_complexity(text: str) -> Complexity:
    harder = len(text.split()) > LONG_SENTENCE_WORDS or bool(_LONG_WORD.search(text))

    return Complexity(
        level=CEFRLevel.B1 if harder else CEFRLevel.A2,
        score=6 if harder else 3,
        grammar_points=list(DEFAULT_GRAMMAR_POINTS),
        vocabulary_level=VocabularyLevel.INTERMEDIATE if harder else VocabularyLevel.BASIC,
        tips=list(DEFAULT_TIPS),
    )


def passthrough_complexity() -> Complexity:
    """Generic assessment given to passthrough sentences."""
    return Complexity(
        level=CEFRLevel.A2,
        score=3,
        grammar_points=list(DEFAULT_GRAMMAR_POINTS),
        vocabulary_level=VocabularyLevel.BASIC,
        tips=list(DEFAULT_TIPS),
    )
