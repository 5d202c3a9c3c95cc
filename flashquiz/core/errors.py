"""Exception hierarchy for quiz generation.

    QuizGenerationError (base)
    ├── ConfigurationError        # missing key/endpoint, AI disabled
    ├── EmptyCardSetError         # nothing left to quiz on after filtering
    ├── UnsupportedProviderError  # provider value outside the known set
    ├── NetworkError              # request never got an HTTP status
    ├── ProviderRejection         # non-2xx or safety block
    ├── TruncatedResponseError    # provider stopped on its token limit
    ├── MalformedResponseError    # sanitized text still not usable JSON
    └── TranscriptionError        # one audio file failed; recovered locally

Everything except ``TranscriptionError`` aborts a generation run.
"""

from __future__ import annotations

from typing import Optional


class QuizGenerationError(Exception):
    """Base exception for quiz generation failures."""

    pass


class ConfigurationError(QuizGenerationError):
    """Raised before any network call when settings are incomplete."""

    pass


class EmptyCardSetError(QuizGenerationError):
    """No cards left after the deck and id filters."""

    pass


class UnsupportedProviderError(QuizGenerationError):
    """The configured AI provider name is not one we can call."""

    pass


class NetworkError(QuizGenerationError):
    """The provider could not be reached at all."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(
            f"Could not reach {provider}: {message}. Check your internet "
            "connection, proxy/firewall settings and the configured base URL."
        )


class ProviderRejection(QuizGenerationError):
    """The provider answered, but refused the request."""

    def __init__(
        self, provider: str, message: str, status: Optional[int] = None
    ) -> None:
        self.provider = provider
        self.status = status
        super().__init__(message)


class TruncatedResponseError(QuizGenerationError):
    def __init__(self, provider: str, finish_reason: str) -> None:
        self.provider = provider
        self.finish_reason = finish_reason
        super().__init__(
            f"Quiz generation incomplete: {provider} stopped early "
            f"(finish reason: {finish_reason}). Try generating fewer questions "
            "or increase max tokens in settings."
        )


class MalformedResponseError(QuizGenerationError):
    def __init__(self, message: str, excerpt: str = "") -> None:
        self.excerpt = excerpt
        if excerpt:
            message = f"{message}\nNear: {excerpt!r}"
        super().__init__(message)


class TranscriptionError(QuizGenerationError):
    def __init__(self, audio_path: str, message: str) -> None:
        self.audio_path = audio_path
        super().__init__(f"Transcription failed for {audio_path}: {message}")
