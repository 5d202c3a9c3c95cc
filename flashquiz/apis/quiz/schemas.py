from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from flashquiz.modules.quiz.models import Card, QuizConfig


class GenerateQuizRequest(BaseModel):
    cards: list[Card] = Field(..., description="Flashcards to build the quiz from")
    config: QuizConfig = Field(default_factory=QuizConfig)
    title: Optional[str] = None


class TranscriptionCacheResponse(BaseModel):
    size: int
    entries: list[str] = Field(default_factory=list)


class ClearCacheResponse(BaseModel):
    ok: bool
