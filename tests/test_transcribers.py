"""Tests for speech-to-text providers, with HTTP mocked by respx."""

import base64
import json

import httpx
import pytest
import respx
from httpx import Response

from flashquiz.core.config import TranscriptionProviderKind, VoiceAISettings
from flashquiz.core.errors import TranscriptionError
from flashquiz.modules.quiz.models import TranscriptionResult
from flashquiz.modules.quiz.transcribers import (
    GOOGLE_SPEECH_URL,
    GoogleSpeechTranscriber,
    WhisperTranscriber,
    first_successful,
    get_transcriber,
)
from flashquiz.modules.quiz.transcription import (
    AudioTranscriptionService,
    InMemoryTranscriptionStore,
    TranscriptionCache,
    vault_mtime_lookup,
)

WHISPER_URL = "https://api.openai.com/v1/audio/transcriptions"


@pytest.fixture
def clip(vault):
    return vault / "sounds" / "bell.mp3"


@pytest.mark.asyncio
async def test_whisper_form_upload_success(clip):
    transcriber = WhisperTranscriber(api_key="sk-whisper")

    with respx.mock(assert_all_called=True) as respx_mock:
        route = respx_mock.post(WHISPER_URL).mock(
            return_value=Response(200, json={"text": " A bell rings ", "language": "english"})
        )
        async with httpx.AsyncClient() as client:
            result = await transcriber.transcribe(clip, client)
        request = route.calls[0].request
        assert request.headers["Authorization"] == "Bearer sk-whisper"
        assert b'filename="bell.mp3"' in request.content
        assert b"whisper-1" in request.content

    assert result.text == "A bell rings"
    assert result.language == "english"


@pytest.mark.asyncio
async def test_given_form_upload_fails_when_transcribing_then_manual_multipart_is_tried(clip):
    """
    GIVEN the first upload strategy is rejected
    WHEN transcribing
    THEN the hand-built multipart body is sent next and its result is used
    """
    transcriber = WhisperTranscriber(api_key="sk-whisper")

    with respx.mock() as respx_mock:
        route = respx_mock.post(WHISPER_URL).mock(
            side_effect=[
                Response(500, json={"error": {"message": "upstream hiccup"}}),
                Response(200, json={"text": "ding"}),
            ]
        )
        async with httpx.AsyncClient() as client:
            result = await transcriber.transcribe(clip, client)
        assert route.call_count == 2
        second = route.calls[1].request
        assert second.headers["Content-Type"].startswith(
            "multipart/form-data; boundary=----FlashquizBoundary"
        )
        assert b"ID3fake-bell" in second.content

    assert result.text == "ding"


@pytest.mark.asyncio
async def test_all_strategies_failing_reports_each_failure(clip):
    transcriber = WhisperTranscriber(api_key="sk-whisper")

    with respx.mock() as respx_mock:
        respx_mock.post(WHISPER_URL).mock(
            return_value=Response(401, json={"error": {"message": "bad key"}})
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(TranscriptionError) as exc:
                await transcriber.transcribe(clip, client)

    message = str(exc.value)
    assert "form-upload" in message
    assert "manual-multipart" in message
    assert "bad key" in message


@pytest.mark.asyncio
async def test_first_successful_runs_strategies_in_order():
    calls = []

    async def broken():
        calls.append("broken")
        raise ValueError("nope")

    async def working():
        calls.append("working")
        return TranscriptionResult(text="ok")

    async def never():
        calls.append("never")
        raise AssertionError("should not run")

    result = await first_successful("a.mp3", [("b", broken), ("w", working), ("n", never)])

    assert result.text == "ok"
    assert calls == ["broken", "working"]


@pytest.mark.asyncio
async def test_whisper_without_key_fails_before_any_request(clip):
    with respx.mock() as respx_mock:
        async with httpx.AsyncClient() as client:
            with pytest.raises(TranscriptionError, match="not configured"):
                await WhisperTranscriber(api_key=None).transcribe(clip, client)
        assert not respx_mock.calls


def test_local_whisper_servers_get_v1_suffix():
    assert WhisperTranscriber("k", base_url="http://localhost:8080/").url == (
        "http://localhost:8080/v1/audio/transcriptions"
    )
    assert WhisperTranscriber("k").url == WHISPER_URL


@pytest.mark.asyncio
async def test_google_speech_joins_results(clip):
    transcriber = GoogleSpeechTranscriber(api_key="g-key", language="de-DE")
    body = {
        "results": [
            {"alternatives": [{"transcript": "Guten", "confidence": 0.9}], "languageCode": "de-de"},
            {"alternatives": [{"transcript": "Tag"}]},
        ]
    }

    with respx.mock() as respx_mock:
        route = respx_mock.post(GOOGLE_SPEECH_URL).mock(return_value=Response(200, json=body))
        async with httpx.AsyncClient() as client:
            result = await transcriber.transcribe(clip, client)
        request = route.calls[0].request

    assert result.text == "Guten Tag"
    assert result.confidence == 0.9
    assert request.url.params["key"] == "g-key"
    payload = json.loads(request.content)
    assert payload["config"]["encoding"] == "MP3"
    assert payload["config"]["languageCode"] == "de-DE"
    assert base64.b64decode(payload["audio"]["content"]) == b"ID3fake-bell"


@pytest.mark.asyncio
async def test_google_speech_without_results_is_an_error(clip):
    with respx.mock() as respx_mock:
        respx_mock.post(GOOGLE_SPEECH_URL).mock(return_value=Response(200, json={}))
        async with httpx.AsyncClient() as client:
            with pytest.raises(TranscriptionError, match="No transcription results"):
                await GoogleSpeechTranscriber(api_key="g-key").transcribe(clip, client)


def test_get_transcriber_follows_settings():
    whisper = get_transcriber(VoiceAISettings(whisper_api_key="k"))
    google = get_transcriber(
        VoiceAISettings(provider=TranscriptionProviderKind.GOOGLE_SPEECH, google_speech_api_key="g")
    )

    assert isinstance(whisper, WhisperTranscriber)
    assert isinstance(google, GoogleSpeechTranscriber)


@pytest.mark.parametrize("body", [[], "ding", 3])
@pytest.mark.asyncio
async def test_whisper_non_object_body_is_a_transcription_error(clip, body):
    """
    GIVEN a Whisper server answering 200 with JSON that is not an object
    WHEN a clip is transcribed
    THEN both strategies fail with TranscriptionError instead of crashing
    """
    with respx.mock() as respx_mock:
        respx_mock.post(WHISPER_URL).mock(return_value=Response(200, json=body))
        async with httpx.AsyncClient() as client:
            with pytest.raises(TranscriptionError, match="expected a JSON object"):
                await WhisperTranscriber(api_key="sk-whisper").transcribe(clip, client)


@pytest.mark.asyncio
async def test_google_speech_non_object_body_is_a_transcription_error(clip):
    with respx.mock() as respx_mock:
        respx_mock.post(GOOGLE_SPEECH_URL).mock(return_value=Response(200, json=[]))
        async with httpx.AsyncClient() as client:
            with pytest.raises(TranscriptionError, match="expected a JSON object"):
                await GoogleSpeechTranscriber(api_key="g-key").transcribe(clip, client)


@pytest.mark.asyncio
async def test_service_recovers_when_provider_returns_a_list(vault, bell_card):
    """
    GIVEN the real Whisper transcriber and a server that returns a JSON list
    WHEN the service transcribes a card
    THEN the clip is skipped and nothing is raised
    """
    voice = VoiceAISettings(enabled=True, whisper_api_key="sk-whisper")

    with respx.mock() as respx_mock:
        respx_mock.post(WHISPER_URL).mock(return_value=Response(200, json=[]))
        async with httpx.AsyncClient() as client:
            service = AudioTranscriptionService(
                voice,
                vault,
                cache=TranscriptionCache(InMemoryTranscriptionStore(), vault_mtime_lookup(vault)),
                client=client,
            )
            result = await service.transcribe(bell_card)

    assert not result.has_any
