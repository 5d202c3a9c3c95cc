"""Speech-to-text providers used to turn card audio into prompt text.

Every failure is reported as ``TranscriptionError``; callers treat that as
"skip this clip", never as a reason to stop generating a quiz.
"""

from __future__ import annotations

import asyncio
import base64
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from flashquiz.core.config import TranscriptionProviderKind, VoiceAISettings
from flashquiz.core.errors import TranscriptionError
from flashquiz.core.logging import get_logger
from flashquiz.modules.quiz.models import TranscriptionResult

logger = get_logger(__name__)

MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    "flac": "audio/flac",
    "aac": "audio/aac",
}

GOOGLE_ENCODINGS = {
    "mp3": "MP3",
    "wav": "LINEAR16",
    "ogg": "OGG_OPUS",
    "m4a": "MP3",
    "flac": "FLAC",
    "aac": "MP3",
}

GOOGLE_SPEECH_URL = "https://speech.googleapis.com/v1/speech:recognize"

Strategy = Callable[[], Awaitable[TranscriptionResult]]


async def first_successful(
    audio_path: str, strategies: Sequence[tuple[str, Strategy]]
) -> TranscriptionResult:
    """Run strategies in order and return the first result.

    Each failure is recorded; only when every strategy fails is the last
    error raised, with the earlier ones listed for diagnosis.
    """
    failures: list[str] = []
    for name, strategy in strategies:
        try:
            return await strategy()
        except (TranscriptionError, httpx.HTTPError, ValueError) as e:
            logger.debug("Transcription strategy %s failed for %s: %s", name, audio_path, e)
            failures.append(f"{name}: {e}")
    raise TranscriptionError(audio_path, "; ".join(failures) or "no strategies")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if data.get("message"):
            return str(data["message"])
    return f"HTTP {response.status_code}"


def _json_object(response: httpx.Response, audio_path: Path) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise TranscriptionError(str(audio_path), f"response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise TranscriptionError(
            str(audio_path), f"expected a JSON object, got {type(data).__name__}"
        )
    return data


class Transcriber(ABC):
    name: str = "transcriber"

    @abstractmethod
    async def transcribe(
        self, audio_path: Path, client: httpx.AsyncClient
    ) -> TranscriptionResult:
        """Transcribe one local audio file."""


class WhisperTranscriber(Transcriber):
    """OpenAI Whisper, or any server exposing ``/v1/audio/transcriptions``."""

    name = "openai-whisper"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "whisper-1",
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = self._normalize_base_url(base_url)

    @staticmethod
    def _normalize_base_url(base_url: str) -> str:
        url = (base_url or "https://api.openai.com/v1").rstrip("/")
        # Local servers (whisper.cpp and friends) are often configured without /v1
        if "api.openai.com" not in url and not url.endswith("/v1"):
            url = f"{url}/v1"
        return url

    @property
    def url(self) -> str:
        return f"{self.base_url}/audio/transcriptions"

    async def transcribe(
        self, audio_path: Path, client: httpx.AsyncClient
    ) -> TranscriptionResult:
        if not self.api_key:
            raise TranscriptionError(
                str(audio_path), "OpenAI API key not configured for transcription"
            )
        audio = await asyncio.to_thread(audio_path.read_bytes)
        ext = audio_path.suffix.lstrip(".").lower()
        mime = MIME_TYPES.get(ext, "audio/mpeg")

        async def _form_upload() -> TranscriptionResult:
            response = await client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                files={"file": (audio_path.name, audio, mime)},
                data={"model": self.model},
            )
            return self._parse(response, audio_path)

        async def _manual_multipart() -> TranscriptionResult:
            boundary = f"----FlashquizBoundary{uuid.uuid4().hex}"
            body = self._multipart_body(boundary, audio_path.name, mime, audio)
            response = await client.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": f"multipart/form-data; boundary={boundary}",
                },
                content=body,
            )
            return self._parse(response, audio_path)

        return await first_successful(
            str(audio_path),
            [("form-upload", _form_upload), ("manual-multipart", _manual_multipart)],
        )

    def _multipart_body(
        self, boundary: str, filename: str, mime: str, audio: bytes
    ) -> bytes:
        head = (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            f"Content-Type: {mime}\r\n\r\n"
        ).encode("utf-8")
        tail = (
            f"\r\n--{boundary}\r\n"
            'Content-Disposition: form-data; name="model"\r\n\r\n'
            f"{self.model}\r\n"
            f"--{boundary}--\r\n"
        ).encode("utf-8")
        return head + audio + tail

    @staticmethod
    def _parse(response: httpx.Response, audio_path: Path) -> TranscriptionResult:
        if response.status_code >= 400:
            raise TranscriptionError(
                str(audio_path), f"OpenAI transcription failed: {_error_detail(response)}"
            )
        data = _json_object(response, audio_path)
        text = str(data.get("text") or "").strip()
        if not text:
            raise TranscriptionError(str(audio_path), "empty transcription")
        return TranscriptionResult(
            text=text, language=data.get("language"), duration=data.get("duration")
        )


class GoogleSpeechTranscriber(Transcriber):
    name = "google-speech"

    def __init__(self, api_key: Optional[str], language: str = "en-US") -> None:
        self.api_key = api_key
        self.language = language or "en-US"

    async def transcribe(
        self, audio_path: Path, client: httpx.AsyncClient
    ) -> TranscriptionResult:
        if not self.api_key:
            raise TranscriptionError(
                str(audio_path), "Google Speech-to-Text API key not configured"
            )
        audio = await asyncio.to_thread(audio_path.read_bytes)
        ext = audio_path.suffix.lstrip(".").lower()
        payload = {
            "config": {
                "encoding": GOOGLE_ENCODINGS.get(ext, "MP3"),
                # Not detected from the file; most voice memos are 16 kHz
                "sampleRateHertz": 16000,
                "languageCode": self.language,
                "enableAutomaticPunctuation": True,
            },
            "audio": {"content": base64.b64encode(audio).decode("ascii")},
        }
        try:
            response = await client.post(
                GOOGLE_SPEECH_URL, params={"key": self.api_key}, json=payload
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(str(audio_path), f"request failed: {e}") from e
        if response.status_code >= 400:
            raise TranscriptionError(
                str(audio_path), f"Google Speech-to-Text failed: {_error_detail(response)}"
            )

        results = [
            r
            for r in _json_object(response, audio_path).get("results") or []
            if isinstance(r, dict)
        ]
        transcripts = []
        for r in results:
            alternatives = r.get("alternatives") or [{}]
            t = (alternatives[0].get("transcript") or "").strip()
            if t:
                transcripts.append(t)
        if not transcripts:
            raise TranscriptionError(
                str(audio_path), "No transcription results from Google Speech-to-Text"
            )
        first_alt = (results[0].get("alternatives") or [{}])[0]
        return TranscriptionResult(
            text=" ".join(transcripts),
            language=results[0].get("languageCode") or self.language,
            confidence=first_alt.get("confidence"),
        )


def get_transcriber(settings: VoiceAISettings) -> Transcriber:
    if settings.provider == TranscriptionProviderKind.OPENAI_WHISPER:
        return WhisperTranscriber(
            api_key=settings.whisper_api_key,
            model=settings.whisper_model,
            base_url=settings.whisper_base_url,
        )
    if settings.provider == TranscriptionProviderKind.GOOGLE_SPEECH:
        return GoogleSpeechTranscriber(
            api_key=settings.google_speech_api_key,
            language=settings.google_speech_language,
        )
    raise TranscriptionError("-", f"Unknown transcription provider: {settings.provider}")
