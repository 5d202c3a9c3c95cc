"""Map generated questions back to the card they came from, and drop repeats.

Attribution prefers hard evidence: a question that quotes placeholder tokens
belongs to the card whose tokens it quotes most. Without tokens it falls back
to a word-overlap score, which is a heuristic and is kept deliberately simple.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Optional, Sequence, TypeVar

from flashquiz.modules.quiz.audio import extract_audio_embeds
from flashquiz.modules.quiz.models import Card, CardAudioIndex, RawGeneratedQuestion
from flashquiz.modules.quiz.placeholders import OPEN, iter_placeholders

AUDIO_MATCH_BONUS = 5
MIN_WORD_LENGTH = 4

_WORD_RE = re.compile(r"\w+")
_WHITESPACE_RE = re.compile(r"\s+")

Q = TypeVar("Q", bound=RawGeneratedQuestion)


def _placeholder_owner(
    texts: Iterable[str], cards: Sequence[Card], audio_index: CardAudioIndex
) -> Optional[str]:
    known = {c.id for c in cards}
    counts: Counter[str] = Counter()
    for text in texts:
        for m in iter_placeholders(text):
            # Only tokens that decode to a real embed count
            if m.card_id in known and m.index < len(audio_index.get(m.card_id, [])):
                counts[m.card_id] += 1
    if not counts:
        return None
    # Counter keeps insertion order, and max() returns the first maximum
    return max(counts, key=counts.__getitem__)


def _has_audio_marker(prompt: str) -> bool:
    return OPEN in prompt or bool(extract_audio_embeds(prompt))


def _overlap_score(words: list[str], card: Card) -> int:
    haystack = f"{card.front} {card.back}".lower()
    return sum(1 for w in words if w in haystack)


def attribute(
    question: RawGeneratedQuestion,
    cards: Sequence[Card],
    audio_index: CardAudioIndex,
) -> Optional[str]:
    """Return the id of the card ``question`` most likely came from."""
    if not cards:
        return None

    owner = _placeholder_owner(
        [question.prompt, *(question.options or [])], cards, audio_index
    )
    if owner is not None:
        return owner

    prompt = question.prompt
    words = [w for w in _WORD_RE.findall(prompt.lower()) if len(w) >= MIN_WORD_LENGTH]
    audio_marked = _has_audio_marker(prompt)

    best_id, best_score = cards[0].id, 0
    for card in cards:
        score = _overlap_score(words, card)
        if audio_marked and audio_index.get(card.id):
            score += AUDIO_MATCH_BONUS
        if score > best_score:
            best_id, best_score = card.id, score
    return best_id


def normalize_prompt(prompt: str) -> str:
    return _WHITESPACE_RE.sub(" ", prompt.strip().lower())


def dedupe(questions: Iterable[Q]) -> list[Q]:
    """Keep the first question per normalized prompt, in order."""
    seen: set[str] = set()
    unique: list[Q] = []
    for q in questions:
        key = normalize_prompt(q.prompt)
        if key in seen:
            continue
        seen.add(key)
        unique.append(q)
    return unique
