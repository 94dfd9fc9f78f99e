from __future__ import annotations

import re
import unicodedata
from typing import List

ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200d\u2060\ufeff\u00ad]")
WHITESPACE_RE = re.compile(r"\s+")
NON_WORD_RE = re.compile(r"[^\w\s]", re.UNICODE)

_QUOTE_TABLE = str.maketrans(
    {
        "‘": "'",
        "’": "'",
        "‚": "'",
        "‛": "'",
        "′": "'",
        "´": "'",
        "`": "'",
        "“": '"',
        "”": '"',
        "„": '"',
        "‟": '"',
        "″": '"',
        "«": '"',
        "»": '"',
        "‐": "-",
        "‑": "-",
        "‒": "-",
        "–": "-",
        "—": "-",
        "―": "-",
        "−": "-",
        "﹘": "-",
        "﹣": "-",
        "－": "-",
    }
)

EDGE_QUOTES = "\"'()[]{}<>"


def normalize(value: str) -> str:
    """Canonical comparison form: folded case, ASCII quotes/dashes, no zero-width chars.

    Never used for emitted text.
    """
    cleaned = ZERO_WIDTH_RE.sub("", value).translate(_QUOTE_TABLE)
    return unicodedata.normalize("NFKC", cleaned).lower()


def compact(value: str) -> str:
    """Normalized form with every non-word character removed."""
    return NON_WORD_RE.sub("", WHITESPACE_RE.sub("", normalize(value)))


def collapse_whitespace(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value).strip()


def strip_edge_quotes(value: str) -> str:
    """Drop quotes and brackets wrapping a provider word, keeping inner punctuation."""
    stripped = value.strip().strip(EDGE_QUOTES).strip()
    return stripped or value.strip()


def phrase_words(phrase: str) -> List[str]:
    """Split a phrase into normalized sub-words comparable with word-unit text."""
    words: List[str] = []
    for part in collapse_whitespace(normalize(phrase)).split(" "):
        part = strip_edge_quotes(part).rstrip(".,;:!?")
        if part:
            words.append(part)
    return words
