"""
Pydantic models for transcript data and the enriched learning artifact.

Fields are snake_case in Python and serialize with camelCase aliases
(``model_dump(by_alias=True)``) for the presentation layer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CEFRLevel(str, Enum):
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"


class PhraseType(str, Enum):
    IDIOM = "idiom"
    EXPRESSION = "expression"
    PHRASAL_VERB = "phrasal_verb"
    COLLOCATION = "collocation"
    COMMON_PHRASE = "common_phrase"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class VocabularyLevel(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class LearningModel(BaseModel):
    """Base for all models exchanged with the presentation layer."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class TimedEntry(LearningModel):
    """Raw caption unit: text with a start time and duration in seconds."""

    text: str
    start: float = Field(..., ge=0)
    duration: float = Field(..., ge=0)

    @property
    def end(self) -> float:
        return self.start + self.duration


class SentenceSpan(LearningModel):
    """A sentence boundary over the timeline, before enrichment."""

    text: str = Field(..., min_length=1)
    start: float = Field(..., ge=0)
    duration: float = Field(..., ge=0)

    @property
    def end(self) -> float:
        return self.start + self.duration


class Phrase(LearningModel):
    """Phrase, idiom or expression found in a sentence."""

    phrase: str = Field(..., min_length=1)
    type: PhraseType
    meaning: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    example: str = ""


class Complexity(LearningModel):
    """CEFR-style difficulty assessment of one sentence."""

    level: CEFRLevel
    score: int = Field(..., ge=1, le=10)
    grammar_points: List[str] = Field(default_factory=list)
    vocabulary_level: VocabularyLevel = VocabularyLevel.BASIC
    tips: List[str] = Field(default_factory=list)


class Sentence(LearningModel):
    """Enriched sentence of the learning artifact."""

    id: str
    original_text: str
    translated_text: str
    start_time: float
    duration: float
    phrases: List[Phrase] = Field(default_factory=list)
    complexity: Complexity
    word_count: int
    character_count: int
    has_idioms: bool = False


class Insights(LearningModel):
    """Aggregate statistics over all sentences of an artifact."""

    total_sentences: int
    total_words: int
    total_phrases: int
    average_sentence_length: int
    difficulty_distribution: Dict[str, int]
    most_common_difficulty: Optional[CEFRLevel] = None
    phrase_type_breakdown: Dict[str, int] = Field(default_factory=dict)
    recommended_focus: List[str] = Field(default_factory=list)
    estimated_learning_time_hours: int = 0


class LearningArtifact(LearningModel):
    """Final pipeline output for one (video, language) pair. Never mutated once built."""

    model_config = ConfigDict(frozen=True)

    video_id: str
    language: str
    original_entry_count: int = 0
    sentences: List[Sentence] = Field(default_factory=list)
    insights: Insights
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    degraded: bool = Field(False, description="True for the passthrough fallback artifact")


class PhraseBreakdown(LearningModel):
    """Detailed phrase view of one sentence with learning tips."""

    sentence_id: str
    original_text: str
    translated_text: str
    phrases: List[Phrase] = Field(default_factory=list)
    complexity: Complexity
    learning_tips: List[str] = Field(default_factory=list)
