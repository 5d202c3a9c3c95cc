from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from flashquiz.core.config import AIProvider, settings
from flashquiz.core.errors import QuizGenerationError
from flashquiz.core.logging import setup_logging
from flashquiz.modules.quiz.generator import AIQuizGenerator
from flashquiz.modules.quiz.models import Card, QuizConfig
from flashquiz.modules.quiz.transcription import (
    JsonFileTranscriptionStore,
    TranscriptionCache,
    vault_mtime_lookup,
)


def load_cards(path: str) -> list[Card]:
    """Cards file: a JSON list of cards, or ``{"cards": [...]}``."""
    data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("cards", [])
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a list of cards")
    try:
        return [Card.model_validate(item) for item in data]
    except ValidationError as e:
        raise SystemExit(f"{path}: invalid card data: {e}") from e


def _build_config(args: argparse.Namespace) -> QuizConfig:
    return QuizConfig(
        question_count=args.count,
        include_multiple_choice=not args.no_mc,
        include_fill_blank=not args.no_fill,
        include_true_false=not args.no_tf,
        deck_filter=args.deck or None,
        use_ai=True,
        ai_provider=AIProvider(args.provider) if args.provider else None,
    )


def _cache(vault: str) -> TranscriptionCache:
    root = Path(vault)
    store = JsonFileTranscriptionStore(root / settings.vault.transcription_cache_path)
    return TranscriptionCache(store, vault_mtime_lookup(root))


def _generate(args: argparse.Namespace) -> int:
    cards = load_cards(args.cards)
    generator = AIQuizGenerator(vault_root=args.vault)
    try:
        quiz = generator.generate_quiz_sync(cards, _build_config(args), args.title)
    except QuizGenerationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(quiz.model_dump(mode="json", by_alias=True), indent=2))
    return 0


def _transcriptions(args: argparse.Namespace) -> int:
    cache = _cache(args.vault)
    if args.action == "clear":
        asyncio.run(cache.clear())
        print("Transcription cache cleared")
        return 0
    stats = asyncio.run(cache.stats())
    print(json.dumps(stats.model_dump(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flashquiz", description="AI quiz generator for flashcards"
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument(
        "--vault", default=settings.vault.root, help="Vault root used to resolve audio"
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    g = sub.add_parser("generate", help="Generate a quiz from a cards JSON file")
    g.add_argument("--cards", "-c", required=True, help="Path to a JSON file of cards")
    g.add_argument("--count", "-n", type=int, default=20, help="Number of questions")
    g.add_argument(
        "--provider",
        choices=[p.value for p in AIProvider],
        help="AI provider (default: AI_PROVIDER setting)",
    )
    g.add_argument("--no-mc", action="store_true", help="Skip multiple-choice questions")
    g.add_argument("--no-fill", action="store_true", help="Skip fill-in-the-blank questions")
    g.add_argument("--no-tf", action="store_true", help="Skip true/false questions")
    g.add_argument(
        "--deck", action="append", help="Only use cards whose deck contains this (repeatable)"
    )
    g.add_argument("--title", "-t", help="Quiz title")

    t = sub.add_parser("transcriptions", help="Inspect or clear the transcription cache")
    t.add_argument("action", choices=["stats", "clear"])

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    if args.cmd == "generate":
        return _generate(args)
    if args.cmd == "transcriptions":
        return _transcriptions(args)

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
