"""Tests for audio embed discovery and vault path resolution."""

from flashquiz.modules.quiz.audio import (
    build_audio_index,
    extract_audio_embeds,
    index_card,
    is_audio_target,
    remove_audio_embeds,
    resolve_audio_path,
)


def test_given_mixed_embeds_when_extracting_then_only_audio_in_document_order():
    """
    GIVEN text with audio, image and plain-link embeds
    WHEN extract_audio_embeds runs
    THEN only the audio tokens are returned, in order
    """
    text = "![[a.MP3]] see ![[diagram.png]] and [[note]] then ![[dir/b.ogg|Clip B]]"

    assert extract_audio_embeds(text) == ["![[a.MP3]]", "![[dir/b.ogg|Clip B]]"]


def test_audio_extension_allow_list():
    assert is_audio_target("x.flac")
    assert is_audio_target("x.m4a#t=3")
    assert not is_audio_target("x.mp4")
    assert not is_audio_target("no-extension")


def test_given_card_with_audio_on_both_sides_when_indexed_then_front_refs_come_first(
    make_card,
):
    """
    GIVEN a card with two front clips and one back clip
    WHEN index_card runs
    THEN references are front (document order) followed by back
    """
    card = make_card("c1", "![[one.mp3]] and ![[two.wav]]", "![[three.aac]]")

    refs = index_card(card)

    assert [r.raw_token for r in refs] == ["![[one.mp3]]", "![[two.wav]]", "![[three.aac]]"]
    assert [r.side for r in refs] == ["front", "front", "back"]
    assert all(r.resolved_path is None for r in refs)


def test_card_without_audio_has_empty_index(make_card):
    card = make_card("c1", "![[image.png]] plain", "nothing")

    assert build_audio_index([card]) == {"c1": []}


def test_remove_audio_embeds_collapses_blank_lines():
    text = "Intro\n\n![[clip.mp3]]\n\n\nOutro ![[pic.png]]"

    assert remove_audio_embeds(text) == "Intro\n\nOutro ![[pic.png]]"


def test_resolve_prefers_vault_relative_path(vault):
    assert resolve_audio_path("sounds/bell.mp3", "notes/cards.md", vault) == "sounds/bell.mp3"


def test_resolve_relative_to_source_note(vault):
    assert resolve_audio_path("local.wav", "notes/cards.md", vault) == "notes/local.wav"
    assert resolve_audio_path("../sounds/bell.mp3", "notes/cards.md", vault) == "sounds/bell.mp3"


def test_resolve_falls_back_to_basename_search(vault):
    assert resolve_audio_path("bell.mp3#t=1", "elsewhere/x.md", vault) == "sounds/bell.mp3"


def test_resolve_passes_urls_through_and_misses_return_none(vault):
    url = "https://cdn.example.test/clip.mp3"

    assert resolve_audio_path(url, "notes/cards.md", vault) == url
    assert resolve_audio_path("missing.mp3", "notes/cards.md", vault) is None


def test_index_with_vault_resolves_paths(vault, bell_card):
    refs = index_card(bell_card, vault)

    assert refs[0].resolved_path == "sounds/bell.mp3"
    assert refs[0].target == "bell.mp3"
