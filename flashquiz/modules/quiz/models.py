"""Pydantic models for cards, audio references, transcriptions and quizzes.

Field names are snake_case in Python and camelCase on the wire, so provider
output (``correctAnswer``) and the transcription cache file
(``transcribedAt``, ``fileModifiedTime``) validate directly.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from flashquiz.core.config import AIProvider


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CardSource(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    file: str = ""
    line: int = 0


class Card(_CamelModel):
    """A flashcard as produced by the note parser. Never mutated here."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    front: str
    back: str
    deck: str = ""
    source: CardSource = Field(default_factory=CardSource)


AudioSide = Literal["front", "back"]


class AudioReference(_CamelModel):
    """One ``![[...]]`` audio embed found on a card."""

    raw_token: str
    target: str
    resolved_path: Optional[str] = None
    side: AudioSide


CardAudioIndex = dict[str, list[AudioReference]]


class TranscriptionResult(_CamelModel):
    text: str
    language: Optional[str] = None
    confidence: Optional[float] = None
    duration: Optional[float] = None


class TranscriptionRecord(_CamelModel):
    text: str
    language: Optional[str] = None
    transcribed_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    file_modified_time: Optional[float] = None


class CardTranscription(BaseModel):
    front: list[str] = Field(default_factory=list)
    back: list[str] = Field(default_factory=list)

    @property
    def has_any(self) -> bool:
        return bool(self.front or self.back)


class QuizQuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    FILL_BLANK = "fill-blank"
    TRUE_FALSE = "true-false"
    AUDIO_PROMPT = "audio-prompt"


# Spellings models commonly use instead of the canonical type names
_TYPE_ALIASES = {
    "multiple_choice": "multiple-choice",
    "multiplechoice": "multiple-choice",
    "mcq": "multiple-choice",
    "fill-in-the-blank": "fill-blank",
    "fill_in_the_blank": "fill-blank",
    "fill_blank": "fill-blank",
    "true_false": "true-false",
    "truefalse": "true-false",
    "true/false": "true-false",
    "audio_prompt": "audio-prompt",
}


class RawGeneratedQuestion(_CamelModel):
    """A question exactly as the provider returned it (after JSON repair)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    type: QuizQuestionType
    prompt: str
    options: Optional[list[str]] = None
    correct_answer: Union[int, str]
    explanation: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            key = v.strip().lower()
            return _TYPE_ALIASES.get(key, key)
        return v

    @field_validator("options", mode="before")
    @classmethod
    def _stringify_options(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(o) for o in v]
        return v

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _coerce_answer(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, float):
            return str(v)
        return v


class FinalizedQuestion(RawGeneratedQuestion):
    """A restored, attributed question ready to be stored in a quiz."""

    id: str
    source_card_id: Optional[str] = None
    user_answer: Optional[Union[int, str]] = None
    correct: Optional[bool] = None
    attempt_count: Optional[int] = None
    checked: Optional[bool] = None


class QuizConfig(_CamelModel):
    question_count: int = 20
    include_multiple_choice: bool = True
    include_fill_blank: bool = True
    include_true_false: bool = True
    deck_filter: Optional[list[str]] = None
    use_ai: bool = False
    ai_provider: Optional[AIProvider] = None
    learn_mode: bool = False
    selected_card_ids: Optional[list[str]] = None


class LearnModeStats(_CamelModel):
    total_attempts: int = 0
    questions_requeued: int = 0
    first_pass_correct: int = 0


class Quiz(_CamelModel):
    id: str
    title: str
    created: datetime
    completed: Optional[datetime] = None
    generation_method: Literal["traditional", "ai-generated"]
    source_cards: list[str] = Field(default_factory=list)
    questions: list[FinalizedQuestion] = Field(default_factory=list)
    score: Optional[int] = None
    correct_count: Optional[int] = None
    total_questions: int = 0
    config: QuizConfig
    learn_mode_stats: Optional[LearnModeStats] = None
    state: Literal["in-progress", "completed"] = "in-progress"
    last_accessed: Optional[datetime] = None
    current_question_index: int = 0


def new_id(prefix: str) -> str:
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{prefix}-{millis}-{uuid.uuid4().hex[:9]}"


def create_quiz(
    title: str,
    questions: list[FinalizedQuestion],
    source_cards: list[str],
    config: QuizConfig,
    generation_method: Literal["traditional", "ai-generated"],
) -> Quiz:
    now = datetime.now(timezone.utc)
    return Quiz(
        id=new_id("quiz"),
        title=title,
        created=now,
        generation_method=generation_method,
        source_cards=source_cards,
        questions=questions,
        total_questions=len(questions),
        config=config,
        learn_mode_stats=LearnModeStats() if config.learn_mode else None,
        last_accessed=now,
    )


def check_answer(question: FinalizedQuestion, user_answer: Union[int, str]) -> bool:
    """Index comparison for multiple choice, case-insensitive text otherwise."""
    if question.type == QuizQuestionType.MULTIPLE_CHOICE and isinstance(
        question.correct_answer, int
    ):
        return user_answer == question.correct_answer
    expected = str(question.correct_answer).strip().lower()
    return str(user_answer).strip().lower() == expected


def calculate_quiz_score(quiz: Quiz) -> tuple[int, int]:
    """Return ``(score_percent, correct_count)``."""
    correct_count = sum(1 for q in quiz.questions if q.correct is True)
    if not quiz.total_questions:
        return 0, correct_count
    return round(correct_count / quiz.total_questions * 100), correct_count
