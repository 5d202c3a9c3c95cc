"""
Shared pytest fixtures for flashquiz tests.

Fixture Organization
--------------------
- **quiz_settings** / **make_settings**: AIQuizSettings with fake credentials
  for every provider, and a builder accepting overrides
- **vault**: temporary vault directory holding a few audio files
- **bell_card** / **cards**: sample flashcards, with and without audio
- **make_card**: builder for ad-hoc cards

Settings are always built explicitly so nothing in the developer's
environment or ``.env`` leaks into a test.
"""

from pathlib import Path
from typing import Callable

import pytest

from flashquiz.core.config import (
    AIProvider,
    AIQuizSettings,
    AnthropicSettings,
    CustomLLMSettings,
    GeminiSettings,
    OpenAISettings,
    OpenRouterSettings,
    VoiceAISettings,
)
from flashquiz.modules.quiz.models import Card, CardSource

OPENAI_URL = "https://api.openai.com/v1"
ANTHROPIC_URL = "https://api.anthropic.com/v1"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENROUTER_URL = "https://openrouter.ai/api/v1"
CUSTOM_URL = "https://llm.example.test"


def build_settings(**overrides) -> AIQuizSettings:
    values = dict(
        enabled=True,
        provider=AIProvider.OPENAI,
        temperature=0.2,
        max_tokens=1000,
        system_prompt=None,
        http_timeout=5.0,
        openai=OpenAISettings(api_key="sk-openai", model="gpt-4", base_url=OPENAI_URL),
        anthropic=AnthropicSettings(
            api_key="sk-anthropic", model="claude-test", base_url=ANTHROPIC_URL
        ),
        gemini=GeminiSettings(api_key="g-key", model="gemini-test", base_url=GEMINI_URL),
        openrouter=OpenRouterSettings(
            api_key="or-key", model="openai/gpt-4o-mini", base_url=OPENROUTER_URL
        ),
        custom=CustomLLMSettings(
            api_key="custom-key",
            model="local-model",
            base_url=CUSTOM_URL + "/",
            endpoint="/v1/chat/completions",
            headers={"X-Team": "quiz"},
        ),
        voice_ai=VoiceAISettings(
            enabled=False,
            whisper_api_key="sk-whisper",
            whisper_base_url=OPENAI_URL,
            google_speech_api_key=None,
        ),
    )
    values.update(overrides)
    return AIQuizSettings(**values)


@pytest.fixture
def quiz_settings() -> AIQuizSettings:
    return build_settings()


@pytest.fixture
def make_settings() -> Callable[..., AIQuizSettings]:
    return build_settings


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Vault with ``sounds/bell.mp3``, ``notes/local.wav`` and a big file."""
    (tmp_path / "sounds").mkdir()
    (tmp_path / "notes").mkdir()
    (tmp_path / "sounds" / "bell.mp3").write_bytes(b"ID3fake-bell")
    (tmp_path / "notes" / "local.wav").write_bytes(b"RIFFfake-wav")
    return tmp_path


@pytest.fixture
def make_card() -> Callable[..., Card]:
    def _make(
        card_id: str,
        front: str,
        back: str = "",
        deck: str = "Default",
        file: str = "notes/cards.md",
    ) -> Card:
        return Card(
            id=card_id, front=front, back=back, deck=deck, source=CardSource(file=file, line=1)
        )

    return _make


@pytest.fixture
def bell_card(make_card) -> Card:
    return make_card("notes/cards.md:3", "Listen: ![[bell.mp3]]", "A bell", deck="Sounds")


@pytest.fixture
def cards(make_card, bell_card) -> list[Card]:
    return [
        bell_card,
        make_card(
            "js-1",
            "What is JavaScript?",
            "A programming language for the browser",
            deck="Programming",
        ),
        make_card("py-1", "What is Python?", "A general purpose language", deck="Programming"),
    ]
