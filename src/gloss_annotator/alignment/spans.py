from __future__ import annotations

from typing import Dict, List

from bs4 import BeautifulSoup, NavigableString, Tag

from ..markup import GLOSS_CLASS, GLOSS_TAG, WORD_INDEX_ATTR
from ..models import SearchUnit
from ..textutils import normalize
from ..tokenization import tokenize


def _surface_text(ruby: Tag) -> str:
    """Base text of a word unit, without its gloss."""
    return "".join(str(node) for node in ruby.children if isinstance(node, NavigableString))


def _word_index(tag: Tag) -> int | None:
    if tag.name != "ruby":
        return None
    raw = tag.get(WORD_INDEX_ATTR)
    if raw is None:
        return None
    try:
        return int(str(raw))
    except ValueError:
        return None


def extract_surface_words(markup: str) -> List[str]:
    """Return ``surface_words[word_index]`` read back from rendered word markup.

    A helper for library callers inspecting rendered output; the paragraph flow
    builds its phrase search space with ``extract_search_units``.
    """
    soup = BeautifulSoup(markup, "html.parser")
    found: Dict[int, str] = {}
    for ruby in soup.find_all("ruby"):
        index = _word_index(ruby)
        if index is not None:
            found[index] = normalize(_surface_text(ruby))
    if not found:
        return []
    return [found.get(index, "") for index in range(max(found) + 1)]


def extract_search_units(markup: str) -> List[SearchUnit]:
    """Build the phrase search space from rendered word markup.

    Word units become indexed search units; word tokens left as plain text become
    bare units so phrases over unmatched words can still be located. Token
    positions are recounted from the markup, which renders tokens losslessly.
    """
    soup = BeautifulSoup(markup, "html.parser")
    units: List[SearchUnit] = []
    position = 0

    def walk(node: Tag) -> None:
        nonlocal position
        for child in node.children:
            if isinstance(child, NavigableString):
                for token in tokenize(str(child)):
                    if token.is_word:
                        units.append(
                            SearchUnit(
                                text=normalize(token.text),
                                token_start=position,
                                token_end=position + 1,
                            )
                        )
                    position += 1
                continue
            if not isinstance(child, Tag) or child.name == GLOSS_TAG:
                continue
            if GLOSS_CLASS in (child.get("class") or []):
                continue
            index = _word_index(child)
            if index is None:
                walk(child)
                continue
            surface = _surface_text(child)
            count = len(tokenize(surface))
            units.append(
                SearchUnit(
                    text=normalize(surface),
                    token_start=position,
                    token_end=position + count,
                    word_index=index,
                )
            )
            position += count

    walk(soup)
    return units
