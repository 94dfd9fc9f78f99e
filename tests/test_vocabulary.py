import json
from pathlib import Path

import pytest

from gloss_annotator.vocabulary import VocabularyStore, load_wordlist


def test_add_and_lookup_is_case_insensitive():
    store = VocabularyStore()
    assert store.add_word("  Run ")
    assert not store.add_word("run")

    assert store.is_known("RUN")
    assert "run" in store
    assert not store.is_known("walk")


def test_remove_word():
    store = VocabularyStore()
    store.add_word("new york", "phrase")

    assert store.remove_word("New York")
    assert not store.remove_word("New York")
    assert len(store) == 0


def test_add_word_rejects_unknown_type():
    with pytest.raises(ValueError):
        VocabularyStore().add_word("run", "sentence")


def test_import_merges_and_replace_resets():
    store = VocabularyStore()
    store.add_word("cat")

    assert store.import_words(["Dog", "cat", "dog", " "]) == 1
    assert {entry.word for entry in store.entries} == {"cat", "dog"}

    assert store.replace_with_wordlist(["bird", "Bird"]) == 1
    assert not store.is_known("cat")
    assert store.is_known("bird")


def test_listeners_fire_on_changes():
    store = VocabularyStore()
    calls: list[int] = []
    store.add_listener(lambda changed: calls.append(len(changed)))

    store.add_word("cat")
    store.add_word("cat")
    store.import_words(["dog"])

    assert calls == [1, 2]


def test_load_wordlist_formats(tmp_path: Path):
    txt = tmp_path / "list.txt"
    txt.write_text("# header\nApple\n\nbanana\n", encoding="utf-8")
    data = tmp_path / "list.json"
    data.write_text(json.dumps(["cherry", "date"]), encoding="utf-8")
    other = tmp_path / "list.csv"
    other.write_text("x", encoding="utf-8")

    assert load_wordlist(txt) == ["Apple", "banana"]
    assert load_wordlist(data) == ["cherry", "date"]
    with pytest.raises(ValueError):
        load_wordlist(other)


def test_save_and_load_round_trip(tmp_path: Path):
    path = tmp_path / "vocab.json"
    store = VocabularyStore(path)
    store.import_words(["alpha", "beta"])
    store.add_word("look up", "phrase")
    store.save()

    restored = VocabularyStore(path)
    assert restored.load() == 3
    assert restored.is_known("look up")
    assert {entry.type for entry in restored.entries} == {"word", "phrase"}
