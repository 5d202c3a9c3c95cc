"""Audio placeholder protocol: ``[AUDIO:<card_id>:<index>]``.

Before a card is shown to a model, every audio embed is swapped for a token
that names the owning card and the embed's position in that card's ordered
reference list. After generation the tokens are swapped back.

Card ids are opaque and may contain colons (``notes/a.md:12``) or ``]``, but
never ``[``. A token therefore runs to the last ``:<digits>]`` before the next
``[``, and its index is whatever follows the last colon. Tokens are found
with a plain scanner instead of a regex so there is no backtracking over long
ids.
"""

from __future__ import annotations

from typing import Iterator, NamedTuple

from flashquiz.modules.quiz.models import AudioReference, Card, CardAudioIndex

OPEN = "[AUDIO:"
CLOSE = "]"


class PlaceholderMatch(NamedTuple):
    start: int
    end: int
    card_id: str
    index: int


def placeholder_token(card_id: str, index: int) -> str:
    return f"{OPEN}{card_id}:{index}{CLOSE}"


def _parse_inner(inner: str) -> tuple[str, int] | None:
    card_id, sep, digits = inner.rpartition(":")
    if not sep or not card_id or "[" in card_id:
        return None
    if not (digits.isascii() and digits.isdigit()):
        return None
    return card_id, int(digits)


def _closing(text: str, inner: int) -> tuple[int, tuple[str, int]] | None:
    """Find the last ``]`` before the next ``[`` that closes a valid token."""
    bound = text.find("[", inner)
    if bound < 0:
        bound = len(text)
    close = text.rfind(CLOSE, inner, bound)
    while close >= 0:
        parsed = _parse_inner(text[inner:close])
        if parsed is not None:
            return close, parsed
        close = text.rfind(CLOSE, inner, close)
    return None


def iter_placeholders(text: str) -> Iterator[PlaceholderMatch]:
    """Yield every well-formed token in ``text``, left to right."""
    pos = 0
    while True:
        start = text.find(OPEN, pos)
        if start < 0:
            return
        found = _closing(text, start + len(OPEN))
        if found is None:
            pos = start + 1
            continue
        close, (card_id, index) = found
        yield PlaceholderMatch(start, close + 1, card_id, index)
        pos = close + 1


def encode(
    text: str, refs: list[AudioReference], card_id: str, offset: int = 0
) -> str:
    """Replace each reference's occurrence with its token.

    ``refs`` are matched in order, each against the first occurrence at or
    after the previous replacement, so repeated identical embeds get distinct
    indices. ``offset`` is the index of ``refs[0]`` in the card's combined
    list (the number of front references when encoding the back).
    """
    out: list[str] = []
    cursor = 0
    for i, ref in enumerate(refs):
        found = text.find(ref.raw_token, cursor)
        if found < 0:
            continue
        out.append(text[cursor:found])
        out.append(placeholder_token(card_id, offset + i))
        cursor = found + len(ref.raw_token)
    out.append(text[cursor:])
    return "".join(out)


def encode_card(card: Card, refs: list[AudioReference]) -> tuple[str, str]:
    """Return ``(front, back)`` with audio embeds replaced by tokens."""
    front_refs = [r for r in refs if r.side == "front"]
    back_refs = [r for r in refs if r.side == "back"]
    return (
        encode(card.front, front_refs, card.id),
        encode(card.back, back_refs, card.id, offset=len(front_refs)),
    )


def decode(text: str, index: CardAudioIndex) -> str:
    """Swap tokens back to their original embeds.

    Tokens for unknown cards or out-of-range indices are kept verbatim.
    """
    out: list[str] = []
    cursor = 0
    for m in iter_placeholders(text):
        refs = index.get(m.card_id)
        if refs is None or m.index >= len(refs):
            continue
        out.append(text[cursor : m.start])
        out.append(refs[m.index].raw_token)
        cursor = m.end
    out.append(text[cursor:])
    return "".join(out)


def has_placeholder(text: str) -> bool:
    return next(iter_placeholders(text), None) is not None
