"""Tests for the quiz HTTP API."""

import pytest
from fastapi.testclient import TestClient

from flashquiz.apis.quiz.main import get_generator, get_transcription_cache
from flashquiz.core.config import settings
from flashquiz.core.errors import EmptyCardSetError, ProviderRejection
from flashquiz.modules.quiz.models import (
    FinalizedQuestion,
    QuizConfig,
    TranscriptionRecord,
    create_quiz,
)
from flashquiz.modules.quiz.transcription import InMemoryTranscriptionStore, TranscriptionCache
from main import create_app

PREFIX = f"/{settings.app.version}/quiz"


class StubGenerator:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.seen = []

    async def generate_quiz(self, cards, config: QuizConfig, title=None):
        self.seen.append((cards, config, title))
        if self.error is not None:
            raise self.error
        question = FinalizedQuestion(
            id="q-1",
            type="fill-blank",
            prompt="![[bell.mp3]] What do you hear?",
            correct_answer="bell",
            source_card_id=cards[0].id,
        )
        return create_quiz(title or "Quiz", [question], [c.id for c in cards], config, "ai-generated")


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def store():
    return InMemoryTranscriptionStore(
        {"sounds/bell.mp3": TranscriptionRecord(text="ding"), "b.wav": TranscriptionRecord(text="x")}
    )


@pytest.fixture
def client(app, store):
    app.dependency_overrides[get_transcription_cache] = lambda: TranscriptionCache(
        store, lambda _: None
    )
    with TestClient(app) as c:
        yield c


def _payload():
    return {
        "cards": [{"id": "notes/a.md:3", "front": "Listen: ![[bell.mp3]]", "back": "A bell"}],
        "config": {"questionCount": 5, "includeTrueFalse": False},
        "title": "Sounds",
    }


def test_health(client):
    res = client.get("/")

    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_generate_returns_camel_case_quiz(app, client):
    stub = StubGenerator()
    app.dependency_overrides[get_generator] = lambda: stub

    res = client.post(f"{PREFIX}/generate", json=_payload())

    assert res.status_code == 200
    body = res.json()
    assert body["title"] == "Sounds"
    assert body["generationMethod"] == "ai-generated"
    assert body["totalQuestions"] == 1
    assert body["questions"][0]["sourceCardId"] == "notes/a.md:3"
    _, config, _ = stub.seen[0]
    assert config.question_count == 5
    assert config.include_true_false is False


@pytest.mark.parametrize(
    "error,status",
    [
        (EmptyCardSetError("No cards available to generate quiz"), 400),
        (ProviderRejection("openai", "OpenAI API authentication failed (401)", status=401), 502),
    ],
)
def test_generation_errors_map_to_http_status(app, client, error, status):
    app.dependency_overrides[get_generator] = lambda: StubGenerator(error=error)

    res = client.post(f"{PREFIX}/generate", json=_payload())

    assert res.status_code == status
    assert res.json()["detail"] == str(error)


def test_transcription_cache_stats_and_clear(client, store):
    stats = client.get(f"{PREFIX}/transcriptions").json()

    assert stats == {"size": 2, "entries": ["sounds/bell.mp3", "b.wav"]}

    res = client.delete(f"{PREFIX}/transcriptions")

    assert res.json() == {"ok": True}
    assert store.records == {}
