"""Tests for prompt assembly."""

from flashquiz.modules.quiz.models import QuizConfig
from flashquiz.modules.quiz.prompts import (
    AUDIO_PRIMARY_MARK,
    PromptCard,
    build_prompt,
    compose_side,
    enabled_question_types,
)


def _cards(with_audio: bool = False) -> list[PromptCard]:
    return [
        PromptCard(
            id="c1",
            front="Listen: [AUDIO:c1:0]" if with_audio else "What is 2+2?",
            back="A bell" if with_audio else "4",
            has_audio=with_audio,
        ),
        PromptCard(id="c2", front="Capital of France?", back="Paris"),
    ]


def test_prompt_is_deterministic():
    config = QuizConfig(question_count=5)

    assert build_prompt(_cards(True), config) == build_prompt(_cards(True), config)


def test_given_text_only_cards_when_building_then_no_audio_sections():
    prompt = build_prompt(_cards(), QuizConfig(question_count=7))

    assert "Generate 7 quiz questions" in prompt
    assert "1. Q: What is 2+2?\n   A: 4" in prompt
    assert "audio-prompt" not in prompt
    assert "Audio Placeholders" not in prompt
    assert "Respond ONLY with valid JSON" in prompt


def test_given_audio_cards_when_building_then_audio_prompt_type_and_rules_are_added():
    """
    GIVEN a card whose text carries a placeholder
    WHEN the prompt is built
    THEN the audio-prompt type, placeholder rules and example are included
    """
    prompt = build_prompt(_cards(True), QuizConfig(question_count=3))

    assert "- audio-prompt" in prompt
    assert "Copy placeholders verbatim" in prompt
    assert '"prompt": "[AUDIO:card-id:0] What do you hear?"' in prompt
    assert "Listen: [AUDIO:c1:0]" in prompt


def test_disabled_types_are_left_out_and_empty_selection_falls_back_to_all():
    only_tf = QuizConfig(include_multiple_choice=False, include_fill_blank=False)
    nothing = QuizConfig(
        include_multiple_choice=False, include_fill_blank=False, include_true_false=False
    )

    assert enabled_question_types(only_tf, has_audio=False) == ["true-false"]
    assert enabled_question_types(nothing, has_audio=True) == [
        "multiple-choice",
        "fill-blank",
        "true-false",
        "audio-prompt",
    ]


def test_transcribed_cards_are_marked_audio_primary():
    front = compose_side("Listen: [AUDIO:c1:0]", ["ding dong"])
    card = PromptCard(
        id="c1", front=front, back="A bell", has_audio=True, has_audio_transcription=True
    )

    prompt = build_prompt([card], QuizConfig(question_count=1))

    assert (
        f"1. {AUDIO_PRIMARY_MARK} Q: Audio transcription: ding dong\n"
        "   Additional context: Listen: [AUDIO:c1:0]"
    ) in prompt


def test_compose_side_without_remaining_text():
    assert compose_side("  ", ["one", " two "]) == "Audio transcription: one two"
    assert compose_side("plain", []) == "plain"
