"""Repair and parse the JSON text models return.

Models asked for "pure JSON" still wrap it in code fences, add chatter around
it, or write LaTeX with single backslashes. ``sanitize`` fixes what can be
fixed without understanding the content and never raises;
``parse_questions`` decides whether the result is usable.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from flashquiz.core.errors import MalformedResponseError
from flashquiz.core.logging import get_logger
from flashquiz.modules.quiz.models import RawGeneratedQuestion

logger = get_logger(__name__)

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n```\s*$")

# An escaped backslash pair is consumed first so it is never mistaken for
# the start of another escape.
_BAD_UNICODE_RE = re.compile(r"\\\\|\\u(?![0-9a-fA-F]{4})")
_STRAY_BACKSLASH_RE = re.compile(r"\\\\|\\[\"/bfnrtu]|\\")

# JSON decoding turns "\t", "\n", "\r", "\f", "\b" into control characters, so
# "\theta" arrives as TAB + "heta". Each entry lists the command remainders
# that identify a LaTeX command starting with that letter.
_LATEX_REMAINDERS = {
    "\t": ("t", ("extbf", "extit", "extrm", "ext", "imes", "heta", "ilde", "riangle", "au", "an", "op", "o")),
    "\n": ("n", ("abla", "eq", "eg", "ewline", "otin", "ot", "u", "i", "e")),
    "\r": ("r", ("ightarrow", "ight", "ho", "angle", "floor", "ceil")),
    "\f": ("f", ("rac", "orall", "lat")),
    "\b": ("b", ("egin", "eta", "inom", "oldsymbol", "ar", "ullet", "mod", "f")),
}

_CONTROL_RE = re.compile(
    "|".join(
        f"{re.escape(ctrl)}(?=(?:{'|'.join(rest)})(?![A-Za-z]))"
        for ctrl, (_, rest) in _LATEX_REMAINDERS.items()
    )
)


def strip_code_fence(text: str) -> str:
    content = text.strip()
    if content.startswith("```"):
        content = _FENCE_OPEN_RE.sub("", content, count=1)
        content = _FENCE_CLOSE_RE.sub("", content, count=1)
        content = content.strip()
    return content


def extract_braced(text: str) -> str:
    first = text.find("{")
    last = text.rfind("}")
    if first < 0 or last < first:
        return text
    return text[first : last + 1]


def escape_bad_unicode(text: str) -> str:
    return _BAD_UNICODE_RE.sub(
        lambda m: m.group(0) if m.group(0) == "\\\\" else "\\\\u", text
    )


def repair_control_characters(text: str) -> str:
    """TAB + "ext" -> ``\\\\text`` (an escaped backslash, then the command)."""
    return _CONTROL_RE.sub(
        lambda m: "\\\\" + _LATEX_REMAINDERS[m.group(0)][0], text
    )


def escape_stray_backslashes(text: str) -> str:
    def _fix(m: re.Match[str]) -> str:
        return m.group(0) if len(m.group(0)) == 2 else "\\\\"

    return _STRAY_BACKSLASH_RE.sub(_fix, text)


def sanitize(raw: str) -> str:
    """Best-effort conversion of raw model output into JSON text."""
    content = strip_code_fence(raw or "")
    content = extract_braced(content)
    content = escape_bad_unicode(content)
    content = repair_control_characters(content)
    return escape_stray_backslashes(content)


def _excerpt(text: str, pos: int, radius: int = 80) -> str:
    start = max(0, pos - radius)
    return text[start : pos + radius]


def parse_questions(raw: str, provider: str = "provider") -> list[RawGeneratedQuestion]:
    """Sanitize, parse and validate a model response.

    Raises ``MalformedResponseError`` when the payload is not a JSON object
    with a ``questions`` list. Individual questions that fail validation are
    dropped with a warning.
    """
    content = sanitize(raw)
    if not (content.startswith("{") and content.endswith("}")):
        raise MalformedResponseError(
            f"Response from {provider} appears incomplete (doesn't start/end with "
            "braces). This usually means the response was truncated. Try "
            "generating fewer questions or increase max tokens.",
            excerpt=(
                content if len(content) <= 160 else f"{content[:80]}...{content[-80:]}"
            ),
        )
    try:
        data: Any = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Invalid JSON response from {provider} ({e.msg} at line {e.lineno} "
            f"column {e.colno}). The response was likely truncated. Try generating "
            "fewer questions or increase max tokens in settings.",
            excerpt=_excerpt(content, e.pos),
        ) from e

    questions = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(questions, list):
        raise MalformedResponseError(
            f'{provider} response missing "questions" array', excerpt=content[:160]
        )

    parsed: list[RawGeneratedQuestion] = []
    for i, item in enumerate(questions):
        try:
            parsed.append(RawGeneratedQuestion.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "Dropping question %d from %s: %s", i, provider, e.errors()[0]["msg"]
            )
    return parsed
