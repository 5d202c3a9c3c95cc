"""Prompt assembly for AI quiz generation.

``build_prompt`` is a pure function of its inputs: the same cards and config
always produce the same text, which keeps provider calls reproducible and
easy to assert on in tests.
"""

from __future__ import annotations

from pydantic import BaseModel

from flashquiz.modules.quiz.models import QuizConfig, QuizQuestionType

AUDIO_PRIMARY_MARK = "[Audio Primary]"


class PromptCard(BaseModel):
    """Card text as the model sees it: placeholders in, transcriptions blended."""

    id: str
    front: str
    back: str
    has_audio: bool = False
    has_audio_transcription: bool = False


def compose_side(text: str, transcripts: list[str]) -> str:
    """Blend transcriptions (primary) with the remaining card markdown."""
    if not transcripts:
        return text
    spoken = " ".join(t.strip() for t in transcripts if t.strip())
    remaining = text.strip()
    if not remaining:
        return f"Audio transcription: {spoken}"
    return f"Audio transcription: {spoken}\n   Additional context: {remaining}"


def enabled_question_types(config: QuizConfig, has_audio: bool) -> list[str]:
    types: list[str] = []
    if config.include_multiple_choice:
        types.append(QuizQuestionType.MULTIPLE_CHOICE.value)
    if config.include_fill_blank:
        types.append(QuizQuestionType.FILL_BLANK.value)
    if config.include_true_false:
        types.append(QuizQuestionType.TRUE_FALSE.value)
    if not types:
        types = [
            QuizQuestionType.MULTIPLE_CHOICE.value,
            QuizQuestionType.FILL_BLANK.value,
            QuizQuestionType.TRUE_FALSE.value,
        ]
    if has_audio:
        types.append(QuizQuestionType.AUDIO_PROMPT.value)
    return types


def _card_listing(cards: list[PromptCard]) -> str:
    blocks = []
    for i, card in enumerate(cards, start=1):
        mark = f"{AUDIO_PRIMARY_MARK} " if card.has_audio_transcription else ""
        blocks.append(f"{i}. {mark}Q: {card.front}\n   A: {card.back}")
    return "\n\n".join(blocks)


_AUDIO_RULES = """**Audio Placeholders:**
Some flashcards contain audio placeholders such as [AUDIO:card-id:0]. Each one stands for an audio clip attached to that flashcard.
- Copy placeholders verbatim (same card id, same number) wherever a question or option refers to that audio
- Never invent, renumber, translate or merge placeholders
- For "audio-prompt" questions, start the prompt with the placeholder of the clip the learner must listen to
- Cards marked {mark} have their audio transcribed: treat the transcription as the main content and the rest as supporting context
"""

_RESPONSE_FORMAT = """**Response Format (JSON):**
{
  "questions": [
    {
      "type": "multiple-choice",
      "prompt": "Question text here",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correctAnswer": 0,
      "explanation": "Optional explanation"
    },
    {
      "type": "fill-blank",
      "prompt": "Question with _____ to fill",
      "correctAnswer": "answer text",
      "explanation": "Optional explanation"
    },
    {
      "type": "true-false",
      "prompt": "Statement to evaluate",
      "options": ["True", "False"],
      "correctAnswer": "true",
      "explanation": "Optional explanation"
    }%s
  ]
}

Respond ONLY with valid JSON in the format above. Do not wrap it in code fences and do not include any other text before or after it."""

_AUDIO_EXAMPLE = """,
    {
      "type": "audio-prompt",
      "prompt": "[AUDIO:card-id:0] What do you hear?",
      "correctAnswer": "answer text",
      "explanation": "Optional explanation"
    }"""


def build_prompt(cards: list[PromptCard], config: QuizConfig) -> str:
    has_audio = any(c.has_audio for c in cards)
    types = enabled_question_types(config, has_audio)
    count = config.question_count

    sections = [
        f"You are an educational quiz generator. Generate {count} quiz questions "
        "from the following flashcards.",
        "**Question Types to Generate:**\n" + "\n".join(f"- {t}" for t in types),
        "**Flashcards:**\n" + _card_listing(cards),
    ]
    if has_audio:
        sections.append(_AUDIO_RULES.format(mark=AUDIO_PRIMARY_MARK).rstrip())
    sections.append(
        "**Instructions:**\n"
        f"1. Generate exactly {count} questions\n"
        "2. Distribute questions evenly across the requested types\n"
        "3. For multiple-choice questions, provide 4 options and give the 0-based index of the correct option as correctAnswer\n"
        "4. For fill-blank, create a clear prompt with a blank (_____) to fill\n"
        "5. For true-false, create statements that test understanding\n"
        "6. Make questions clear, unambiguous, and test real understanding\n"
        "7. Use varied difficulty levels\n"
        "8. Escape backslashes in LaTeX as \\\\ so the output stays valid JSON"
    )
    sections.append(_RESPONSE_FORMAT % (_AUDIO_EXAMPLE if has_audio else ""))
    return "\n\n".join(sections)
