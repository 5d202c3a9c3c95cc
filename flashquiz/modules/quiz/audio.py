"""Audio embed discovery and vault path resolution.

Cards embed audio the Obsidian way: ``![[clip.mp3]]`` or
``![[folder/clip.mp3|caption]]``. Only a fixed set of audio extensions counts;
image and video embeds are left alone.

The per-card ordering produced here (front references in document order, then
back references in document order) is the addressing scheme used by
placeholder tokens, so it must stay stable.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from flashquiz.modules.quiz.models import AudioReference, Card, CardAudioIndex

AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "m4a", "flac", "aac"})

_EMBED_RE = re.compile(r"!\[\[([^\]]+)\]\]")
_BLANK_RUN_RE = re.compile(r"\n\s*\n\s*\n")


def _embed_target(inner: str) -> str:
    """``folder/a.mp3|caption`` -> ``folder/a.mp3``."""
    return inner.split("|", 1)[0].strip()


def is_audio_target(target: str) -> bool:
    clean = target.split("#", 1)[0].split("?", 1)[0]
    if "." not in clean:
        return False
    return clean.rsplit(".", 1)[1].lower() in AUDIO_EXTENSIONS


def _iter_audio_embeds(text: str) -> Iterable[tuple[str, str]]:
    for m in _EMBED_RE.finditer(text or ""):
        target = _embed_target(m.group(1))
        if is_audio_target(target):
            yield m.group(0), target


def extract_audio_embeds(text: str) -> list[str]:
    """Return raw ``![[...]]`` audio tokens in document order."""
    return [raw for raw, _ in _iter_audio_embeds(text)]


def remove_audio_embeds(text: str) -> str:
    """Drop audio embeds, keep every other embed, squeeze leftover blank lines."""

    def _strip(m: re.Match[str]) -> str:
        return "" if is_audio_target(_embed_target(m.group(1))) else m.group(0)

    return _BLANK_RUN_RE.sub("\n\n", _EMBED_RE.sub(_strip, text or ""))


def _normalize(path: str) -> str:
    parts: list[str] = []
    for part in path.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return "/".join(parts)


def resolve_audio_path(
    target: str, source_file: str, vault_root: Path | str
) -> Optional[str]:
    """Resolve an embed target to a vault-relative POSIX path.

    Tried in order: absolute URL (returned as-is), vault-relative path, path
    relative to the note that holds the card, then the first file in the vault
    with the same name. Returns ``None`` when nothing matches.
    """
    path = target.split("#", 1)[0].split("?", 1)[0].strip()
    if not path:
        return None
    if path.startswith(("http://", "https://")):
        return path

    root = Path(vault_root)

    direct = _normalize(path)
    if direct and (root / direct).is_file():
        return direct

    source_dir = str(PurePosixPath(source_file.replace("\\", "/")).parent)
    relative = _normalize(f"{source_dir}/{path}")
    if relative and (root / relative).is_file():
        return relative

    name = PurePosixPath(direct).name
    if name:
        matches = sorted(p for p in root.rglob(name) if p.is_file())
        if matches:
            return matches[0].relative_to(root).as_posix()
    return None


def index_card(card: Card, vault_root: Path | str | None = None) -> list[AudioReference]:
    """Ordered audio references for one card: front first, then back."""
    refs: list[AudioReference] = []
    for side, text in (("front", card.front), ("back", card.back)):
        for raw, target in _iter_audio_embeds(text):
            resolved = None
            if vault_root is not None:
                resolved = resolve_audio_path(target, card.source.file, vault_root)
            refs.append(
                AudioReference(
                    raw_token=raw, target=target, resolved_path=resolved, side=side
                )
            )
    return refs


def build_audio_index(
    cards: Iterable[Card], vault_root: Path | str | None = None
) -> CardAudioIndex:
    return {card.id: index_card(card, vault_root) for card in cards}


def side_references(refs: list[AudioReference], side: str) -> list[AudioReference]:
    return [r for r in refs if r.side == side]
