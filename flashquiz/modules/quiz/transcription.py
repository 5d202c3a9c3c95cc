"""Transcription cache and the service that fills it.

The cache is keyed by vault-relative audio path. A record is trusted only
while the audio file has not been modified after the record's
``file_modified_time``; stale records are evicted on lookup.

Storage goes through a small ``TranscriptionStore`` port so the cache can be
exercised without a disk. ``JsonFileTranscriptionStore`` writes the same JSON
object layout the note-taking plugin uses (path -> record).

All mutation happens from the single task running a quiz generation, one
audio file at a time, so there is no locking here. Keep it that way or add
a lock if transcription is ever parallelised.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from flashquiz.core.config import VoiceAISettings
from flashquiz.core.errors import TranscriptionError
from flashquiz.core.logging import bind, get_logger
from flashquiz.modules.quiz.audio import index_card, resolve_audio_path
from flashquiz.modules.quiz.models import (
    AudioReference,
    Card,
    CardTranscription,
    TranscriptionRecord,
    TranscriptionResult,
)
from flashquiz.modules.quiz.transcribers import Transcriber, get_transcriber

logger = get_logger(__name__)

MtimeLookup = Callable[[str], Optional[float]]


class TranscriptionStore(Protocol):
    async def load(self) -> dict[str, TranscriptionRecord]: ...

    async def save(self, records: dict[str, TranscriptionRecord]) -> None: ...

    async def delete(self) -> None: ...


class InMemoryTranscriptionStore:
    def __init__(self, records: Optional[dict[str, TranscriptionRecord]] = None) -> None:
        self.records: dict[str, TranscriptionRecord] = dict(records or {})
        self.saves = 0

    async def load(self) -> dict[str, TranscriptionRecord]:
        return dict(self.records)

    async def save(self, records: dict[str, TranscriptionRecord]) -> None:
        self.saves += 1
        self.records = dict(records)

    async def delete(self) -> None:
        self.records = {}


class JsonFileTranscriptionStore:
    """JSON file holding ``{audio_path: record}``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def load(self) -> dict[str, TranscriptionRecord]:
        if not self.path.is_file():
            return {}
        raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("transcription cache is not a JSON object")
        records: dict[str, TranscriptionRecord] = {}
        for key, value in data.items():
            try:
                records[key] = TranscriptionRecord.model_validate(value)
            except ValidationError:
                logger.debug("Dropping unreadable cache entry for %s", key)
        return records

    async def save(self, records: dict[str, TranscriptionRecord]) -> None:
        payload = {
            key: rec.model_dump(by_alias=True, exclude_none=True)
            for key, rec in records.items()
        }
        text = json.dumps(payload, indent=2, ensure_ascii=False)

        def _write() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")

        await asyncio.to_thread(_write)

    async def delete(self) -> None:
        await asyncio.to_thread(self.path.unlink, missing_ok=True)


def vault_mtime_lookup(vault_root: Path | str) -> MtimeLookup:
    root = Path(vault_root)

    def _mtime(path: str) -> Optional[float]:
        try:
            return (root / path).stat().st_mtime
        except OSError:
            return None

    return _mtime


class CacheStats(BaseModel):
    size: int = 0
    entries: list[str] = Field(default_factory=list)


class TranscriptionCache:
    """In-memory view over a ``TranscriptionStore``, loaded on first use."""

    def __init__(self, store: TranscriptionStore, mtime_of: MtimeLookup) -> None:
        self._store = store
        self._mtime_of = mtime_of
        self._records: dict[str, TranscriptionRecord] = {}
        self._loaded = False

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        try:
            disk = await self._store.load()
        except (OSError, ValueError) as e:
            logger.debug("Could not load transcription cache: %s", e)
            return
        # Anything stored during this process wins over what was on disk
        self._records = {**disk, **self._records}

    def _is_fresh(self, path: str, record: TranscriptionRecord) -> bool:
        if record.file_modified_time is None:
            return True
        live = self._mtime_of(path)
        return live is None or live <= record.file_modified_time

    async def lookup(self, path: str) -> Optional[TranscriptionRecord]:
        record = self._records.get(path)
        if record is None and not self._loaded:
            await self._ensure_loaded()
            record = self._records.get(path)
        if record is None:
            return None
        if not self._is_fresh(path, record):
            logger.debug("Transcription for %s is stale; evicting", path)
            del self._records[path]
            return None
        return record

    async def store(self, path: str, record: TranscriptionRecord) -> None:
        await self._ensure_loaded()
        self._records[path] = record
        try:
            await self._store.save(dict(self._records))
        except Exception as e:  # noqa: BLE001
            # A cache write must never abort quiz generation
            logger.warning("Failed to save transcription cache: %s", e)

    async def clear(self) -> None:
        self._records = {}
        self._loaded = True
        try:
            await self._store.delete()
        except OSError as e:
            logger.warning("Failed to delete transcription cache: %s", e)

    async def stats(self) -> CacheStats:
        await self._ensure_loaded()
        return CacheStats(size=len(self._records), entries=list(self._records))


class AudioTranscriptionService:
    """Transcribes card audio one file at a time, consulting the cache first."""

    def __init__(
        self,
        settings: VoiceAISettings,
        vault_root: Path | str,
        *,
        cache: Optional[TranscriptionCache] = None,
        transcriber: Optional[Transcriber] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache_path: Optional[Path | str] = None,
    ) -> None:
        self.settings = settings
        self.vault_root = Path(vault_root)
        if cache is None and settings.cache_transcriptions:
            store = JsonFileTranscriptionStore(
                self.vault_root
                / (cache_path or ".obsidian/plugins/flashly/transcriptions.json")
            )
            cache = TranscriptionCache(store, vault_mtime_lookup(self.vault_root))
        self.cache = cache
        self.transcriber = transcriber or get_transcriber(settings)
        self._client = client

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    async def transcribe(self, card: Card) -> CardTranscription:
        """Transcribe every audio embed on ``card``; failures are skipped."""
        result = CardTranscription()
        if not self.enabled:
            return result
        refs = index_card(card, self.vault_root)
        for ref in refs:
            transcription = await self._transcribe_reference(ref, card)
            if transcription is None:
                continue
            getattr(result, ref.side).append(transcription.text)
        return result

    async def _transcribe_reference(
        self, ref: AudioReference, card: Card
    ) -> Optional[TranscriptionResult]:
        resolved = ref.resolved_path or resolve_audio_path(
            ref.target, card.source.file, self.vault_root
        )
        if not resolved:
            bind(logger, card_id=card.id).warning("Could not resolve audio path: %s", ref.target)
            return None
        return await self.transcribe_path(resolved)

    async def transcribe_path(self, audio_path: str) -> Optional[TranscriptionResult]:
        """Transcribe one vault-relative audio file, or ``None`` if skipped."""
        if audio_path.startswith(("http://", "https://")):
            logger.warning("Remote audio is not transcribed: %s", audio_path)
            return None

        if self.cache is not None:
            cached = await self.cache.lookup(audio_path)
            if cached is not None:
                logger.debug("Using cached transcription for: %s", audio_path)
                return TranscriptionResult(text=cached.text, language=cached.language)

        file = self.vault_root / audio_path
        try:
            stat = file.stat()
        except OSError:
            logger.warning("Audio file not found: %s", audio_path)
            return None
        if stat.st_size > self.settings.max_file_size:
            logger.warning(
                "Audio file too large: %s (%d bytes, max %d)",
                audio_path,
                stat.st_size,
                self.settings.max_file_size,
            )
            return None

        try:
            result = await self._run_transcriber(file)
        except TranscriptionError as e:
            logger.error("%s", e)
            return None
        except (OSError, ValueError, httpx.HTTPError) as e:
            logger.error("%s", TranscriptionError(audio_path, str(e)))
            return None

        if self.cache is not None:
            await self.cache.store(
                audio_path,
                TranscriptionRecord(
                    text=result.text,
                    language=result.language,
                    file_modified_time=stat.st_mtime,
                ),
            )
        return result

    async def _run_transcriber(self, file: Path) -> TranscriptionResult:
        if self._client is not None:
            return await self.transcriber.transcribe(file, self._client)
        async with httpx.AsyncClient(timeout=60.0) as client:
            return await self.transcriber.transcribe(file, client)
