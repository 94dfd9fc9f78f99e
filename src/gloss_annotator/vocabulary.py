from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)

VocabularyListener = Callable[["VocabularyStore"], None]

ENTRY_TYPES = ("word", "phrase")


@dataclass(slots=True)
class VocabularyEntry:
    word: str
    type: str = "word"
    added_at: float = 0.0


def _clean(word: str) -> str:
    return " ".join(word.split()).lower()


def load_wordlist(path: str | Path) -> List[str]:
    """
    Read a word list file.

    ``.txt`` files hold one entry per line; blank lines and ``#`` comments are
    skipped. ``.json`` files hold a list of strings.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    contents = path.read_text(encoding="utf-8")
    if suffix == ".json":
        data = json.loads(contents)
        if not isinstance(data, list):
            raise ValueError(f"Word list {path} must contain a JSON list.")
        return [str(item) for item in data]
    if suffix == ".txt":
        return [
            line.strip()
            for line in contents.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]
    raise ValueError(f"Unsupported word list format: {path.name}")


class VocabularyStore:
    """Lemmas the reader already knows; drives the known/unknown markers."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._entries: Dict[str, VocabularyEntry] = {}
        self._listeners: List[VocabularyListener] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and self.is_known(word)

    @property
    def entries(self) -> List[VocabularyEntry]:
        return list(self._entries.values())

    def is_known(self, lemma: str) -> bool:
        return _clean(lemma) in self._entries

    def add_word(self, word: str, entry_type: str = "word") -> bool:
        if entry_type not in ENTRY_TYPES:
            raise ValueError(f"Unknown vocabulary entry type '{entry_type}'.")
        key = _clean(word)
        if not key or key in self._entries:
            return False
        self._entries[key] = VocabularyEntry(word=key, type=entry_type, added_at=time.time())
        self._notify()
        return True

    def remove_word(self, word: str) -> bool:
        if self._entries.pop(_clean(word), None) is None:
            return False
        self._notify()
        return True

    def import_words(self, words: Iterable[str]) -> int:
        """Merge words into the vocabulary; return how many were new."""
        added = 0
        now = time.time()
        for word in words:
            key = _clean(word)
            if key and key not in self._entries:
                self._entries[key] = VocabularyEntry(word=key, added_at=now)
                added += 1
        if added:
            self._notify()
        return added

    def replace_with_wordlist(self, words: Iterable[str]) -> int:
        """Replace the whole vocabulary with a word list."""
        self._entries.clear()
        now = time.time()
        for word in words:
            key = _clean(word)
            if key:
                self._entries.setdefault(key, VocabularyEntry(word=key, added_at=now))
        self._notify()
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._notify()

    def add_listener(self, listener: VocabularyListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: VocabularyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def load(self) -> int:
        if self._path is None or not self._path.exists():
            return 0
        data = json.loads(self._path.read_text(encoding="utf-8"))
        raw_entries = data.get("words", []) if isinstance(data, dict) else data
        self._entries.clear()
        for item in raw_entries:
            if isinstance(item, str):
                item = {"word": item}
            key = _clean(str(item.get("word") or ""))
            if not key:
                continue
            entry_type = item.get("type", "word")
            self._entries[key] = VocabularyEntry(
                word=key,
                type=entry_type if entry_type in ENTRY_TYPES else "word",
                added_at=float(item.get("added_at") or 0.0),
            )
        logger.info("Loaded %d vocabulary entries from %s", len(self._entries), self._path)
        return len(self._entries)

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"words": [asdict(entry) for entry in self._entries.values()]}
        self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
