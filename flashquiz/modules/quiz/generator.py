"""AI quiz generation pipeline.

Provides:
- AIQuizGenerator.generate(cards, config) -> list[FinalizedQuestion]
- AIQuizGenerator.generate_quiz(cards, config, title) -> Quiz
- assemble(cards, config, ...) for one-off calls with the global settings

Audio embeds never reach the model as file names: they go out as
``[AUDIO:<card>:<n>]`` tokens and come back as the original embeds.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import httpx

from flashquiz.core.config import AIQuizSettings, settings
from flashquiz.core.errors import ConfigurationError, EmptyCardSetError
from flashquiz.core.logging import bind, get_logger
from flashquiz.modules.quiz.attribution import attribute, dedupe
from flashquiz.modules.quiz.audio import build_audio_index
from flashquiz.modules.quiz.models import (
    Card,
    CardAudioIndex,
    CardTranscription,
    FinalizedQuestion,
    Quiz,
    QuizConfig,
    RawGeneratedQuestion,
    create_quiz,
    new_id,
)
from flashquiz.modules.quiz.placeholders import decode, encode_card
from flashquiz.modules.quiz.prompts import PromptCard, build_prompt, compose_side
from flashquiz.modules.quiz.providers import get_provider
from flashquiz.modules.quiz.sanitizer import parse_questions
from flashquiz.modules.quiz.transcription import AudioTranscriptionService

logger = get_logger(__name__)


def select_cards(cards: Sequence[Card], config: QuizConfig) -> list[Card]:
    """Apply the deck filter (case-insensitive substring) and explicit card ids."""
    selected = list(cards)
    if config.deck_filter:
        wanted = [d.lower() for d in config.deck_filter if d]
        selected = [c for c in selected if any(w in c.deck.lower() for w in wanted)]
    if config.selected_card_ids is not None:
        ids = set(config.selected_card_ids)
        selected = [c for c in selected if c.id in ids]
    return selected


def restore_question(
    raw: RawGeneratedQuestion, index: CardAudioIndex, source_card_id: Optional[str]
) -> FinalizedQuestion:
    answer = raw.correct_answer
    if isinstance(answer, str):
        answer = decode(answer, index)
    return FinalizedQuestion(
        id=new_id("q"),
        type=raw.type,
        prompt=decode(raw.prompt, index),
        options=[decode(o, index) for o in raw.options] if raw.options is not None else None,
        correct_answer=answer,
        explanation=decode(raw.explanation, index) if raw.explanation else raw.explanation,
        source_card_id=source_card_id,
    )


def is_complete(question: FinalizedQuestion) -> bool:
    if not question.prompt.strip():
        return False
    answer = question.correct_answer
    return not (isinstance(answer, str) and not answer.strip())


class AIQuizGenerator:
    """Turns flashcards into AI-written quiz questions."""

    def __init__(
        self,
        quiz_settings: Optional[AIQuizSettings] = None,
        *,
        transcription_service: Optional[AudioTranscriptionService] = None,
        client: Optional[httpx.AsyncClient] = None,
        vault_root: Path | str | None = None,
        cache_path: Optional[str] = None,
    ) -> None:
        self.settings = quiz_settings or settings.quiz
        self.vault_root = Path(vault_root if vault_root is not None else settings.vault.root)
        if transcription_service is None and self.settings.voice_ai.enabled:
            transcription_service = AudioTranscriptionService(
                self.settings.voice_ai,
                self.vault_root,
                client=client,
                cache_path=cache_path or settings.vault.transcription_cache_path,
            )
        self.transcription_service = transcription_service
        self._client = client

    async def _transcribe(self, cards: list[Card]) -> dict[str, CardTranscription]:
        service = self.transcription_service
        if service is None or not service.enabled:
            return {}
        out: dict[str, CardTranscription] = {}
        # One card and one file at a time
        for card in cards:
            result = await service.transcribe(card)
            if result.has_any:
                out[card.id] = result
        logger.info("Transcribed audio for %d of %d cards", len(out), len(cards))
        return out

    def _prompt_cards(
        self,
        cards: list[Card],
        index: CardAudioIndex,
        transcriptions: dict[str, CardTranscription],
    ) -> list[PromptCard]:
        prompt_cards = []
        for card in cards:
            refs = index.get(card.id, [])
            front, back = encode_card(card, refs)
            spoken = transcriptions.get(card.id)
            if spoken is not None:
                front = compose_side(front, spoken.front)
                back = compose_side(back, spoken.back)
            prompt_cards.append(
                PromptCard(
                    id=card.id,
                    front=front,
                    back=back,
                    has_audio=bool(refs),
                    has_audio_transcription=spoken is not None,
                )
            )
        return prompt_cards

    async def generate(
        self, cards: Sequence[Card], config: QuizConfig
    ) -> list[FinalizedQuestion]:
        if not self.settings.enabled:
            raise ConfigurationError("AI quiz generation is not enabled in settings")

        selected = select_cards(cards, config)
        if not selected:
            raise EmptyCardSetError("No cards available to generate quiz")

        index = build_audio_index(selected)
        transcriptions = await self._transcribe(selected)
        prompt = build_prompt(self._prompt_cards(selected, index, transcriptions), config)

        provider = get_provider(config.ai_provider, self.settings)
        log = bind(logger, provider=provider.kind.value)
        log.info("Generating %d questions from %d cards", config.question_count, len(selected))
        response = await provider.complete(prompt, client=self._client)
        parsed = parse_questions(response.text, provider=provider.label)

        finalized: list[FinalizedQuestion] = []
        for raw in parsed:
            question = restore_question(raw, index, attribute(raw, selected, index))
            if not is_complete(question):
                log.warning("Dropping incomplete question %s", question.id)
                continue
            finalized.append(question)

        unique = dedupe(finalized)
        if len(unique) < len(finalized):
            log.info("Removed %d duplicate questions", len(finalized) - len(unique))
        return unique

    async def generate_quiz(
        self, cards: Sequence[Card], config: QuizConfig, title: Optional[str] = None
    ) -> Quiz:
        questions = await self.generate(cards, config)
        source_ids = [c.id for c in select_cards(cards, config)]
        return create_quiz(
            title or f"AI Quiz - {datetime.now():%Y-%m-%d %H:%M}",
            questions,
            source_ids,
            config,
            "ai-generated",
        )

    def generate_quiz_sync(
        self, cards: Sequence[Card], config: QuizConfig, title: Optional[str] = None
    ) -> Quiz:
        return asyncio.run(self.generate_quiz(cards, config, title))


async def assemble(
    cards: Sequence[Card],
    config: QuizConfig,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> list[FinalizedQuestion]:
    """Generate questions with the process-wide settings."""
    return await AIQuizGenerator(client=client).generate(cards, config)
