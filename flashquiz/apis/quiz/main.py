from __future__ import annotations

from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from flashquiz.apis.quiz.schemas import (
    ClearCacheResponse,
    GenerateQuizRequest,
    TranscriptionCacheResponse,
)
from flashquiz.core.config import settings
from flashquiz.core.errors import (
    ConfigurationError,
    EmptyCardSetError,
    QuizGenerationError,
    UnsupportedProviderError,
)
from flashquiz.core.logging import get_logger
from flashquiz.modules.quiz.generator import AIQuizGenerator
from flashquiz.modules.quiz.models import Quiz
from flashquiz.modules.quiz.transcription import (
    JsonFileTranscriptionStore,
    TranscriptionCache,
    vault_mtime_lookup,
)

logger = get_logger(__name__)

router = APIRouter()

_CLIENT_ERRORS = (ConfigurationError, EmptyCardSetError, UnsupportedProviderError)


def get_generator() -> AIQuizGenerator:
    return AIQuizGenerator()


def get_transcription_cache() -> TranscriptionCache:
    root = Path(settings.vault.root)
    store = JsonFileTranscriptionStore(root / settings.vault.transcription_cache_path)
    return TranscriptionCache(store, vault_mtime_lookup(root))


@router.post(
    f"/{settings.app.version}/quiz/generate",
    response_model=Quiz,
    response_model_by_alias=True,
    tags=["quiz"],
)
async def generate_quiz(
    req: GenerateQuizRequest,
    generator: Annotated[AIQuizGenerator, Depends(get_generator)],
) -> Quiz:
    try:
        return await generator.generate_quiz(req.cards, req.config, req.title)
    except _CLIENT_ERRORS as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuizGenerationError as e:
        logger.error("Quiz generation failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))


@router.get(
    f"/{settings.app.version}/quiz/transcriptions",
    response_model=TranscriptionCacheResponse,
    tags=["quiz"],
)
async def transcription_stats(
    cache: Annotated[TranscriptionCache, Depends(get_transcription_cache)],
) -> TranscriptionCacheResponse:
    stats = await cache.stats()
    return TranscriptionCacheResponse(size=stats.size, entries=stats.entries)


@router.delete(
    f"/{settings.app.version}/quiz/transcriptions",
    response_model=ClearCacheResponse,
    tags=["quiz"],
)
async def clear_transcriptions(
    cache: Annotated[TranscriptionCache, Depends(get_transcription_cache)],
) -> ClearCacheResponse:
    await cache.clear()
    return ClearCacheResponse(ok=True)
