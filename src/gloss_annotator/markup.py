from __future__ import annotations

from html import escape
from typing import Callable, Dict, List, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from .models import PhraseSpan, Token, WordSpan

WORD_CLASS = "word"
PHRASE_CLASS = "phrase"
KNOWN_CLASS = "known"
UNKNOWN_CLASS = "unknown"
GLOSS_TAG = "rt"
GLOSS_CLASS = "annotation-target"
PHRASE_GLOSS_CLASS = "phrase-gloss"
WORD_INDEX_ATTR = "data-word-index"
PHRASE_INDEX_ATTR = "data-phrase-index"
PHRASE_TEXT_ATTR = "data-phrase"

# Selector for markup this engine produced; such elements are never re-annotated.
ANNOTATION_SELECTOR = f"ruby.{WORD_CLASS}, span.{PHRASE_CLASS}"


def _status(known: bool) -> str:
    return KNOWN_CLASS if known else UNKNOWN_CLASS


def _attr(value: str) -> str:
    return escape(value, quote=True)


def render_word(span: WordSpan) -> str:
    attrs = [
        f'class="{WORD_CLASS} {_status(span.known)}"',
        f'lemma="{_attr(span.lemma)}"',
    ]
    if span.pos:
        attrs.append(f'pos="{_attr(span.pos)}"')
    attrs.append(f'{WORD_INDEX_ATTR}="{span.word_index}"')
    return (
        f"<ruby {' '.join(attrs)}>{escape(span.surface, quote=False)}"
        f'<{GLOSS_TAG} class="{GLOSS_CLASS}">{escape(span.gloss, quote=False)}</{GLOSS_TAG}>'
        "</ruby>"
    )


def _open_phrase(span: PhraseSpan, index: int) -> str:
    attrs = [
        f'class="{PHRASE_CLASS} {span.kind.value} {_status(span.known)}"',
        f'lemma="{_attr(span.lemma or span.phrase)}"',
        f'{PHRASE_TEXT_ATTR}="{_attr(span.phrase)}"',
        f'{PHRASE_INDEX_ATTR}="{index}"',
    ]
    return f"<span {' '.join(attrs)}>"


def _close_phrase(span: PhraseSpan) -> str:
    return (
        f'<span class="{PHRASE_GLOSS_CLASS} {GLOSS_CLASS}">'
        f"{escape(span.gloss, quote=False)}</span></span>"
    )


def render_markup(
    tokens: Sequence[Token],
    word_spans: Sequence[WordSpan],
    phrase_spans: Sequence[PhraseSpan] = (),
) -> str:
    """Serialize tokens with word units, wrapped by any phrase units.

    A pure function of its inputs; plain tokens are only HTML-escaped.
    """
    words_by_start: Dict[int, WordSpan] = {span.token_start: span for span in word_spans}
    phrases_by_start: Dict[int, Tuple[int, PhraseSpan]] = {
        span.token_start: (index, span) for index, span in enumerate(phrase_spans)
    }
    parts: List[str] = []
    open_phrase: PhraseSpan | None = None
    position = 0
    while position < len(tokens):
        if open_phrase is None and position in phrases_by_start:
            index, open_phrase = phrases_by_start[position]
            parts.append(_open_phrase(open_phrase, index))
        span = words_by_start.get(position)
        if span is not None:
            parts.append(render_word(span))
            position = span.token_end
        else:
            parts.append(escape(tokens[position].text, quote=False))
            position += 1
        if open_phrase is not None and position >= open_phrase.token_end:
            parts.append(_close_phrase(open_phrase))
            open_phrase = None
    if open_phrase is not None:
        parts.append(_close_phrase(open_phrase))
    return "".join(parts)


def render_words(tokens: Sequence[Token], word_spans: Sequence[WordSpan]) -> str:
    return render_markup(tokens, word_spans)


def _set_status(tag: Tag, known: bool) -> bool:
    classes = [c for c in (tag.get("class") or []) if c not in (KNOWN_CLASS, UNKNOWN_CLASS)]
    classes.append(_status(known))
    changed = list(tag.get("class") or []) != classes
    tag["class"] = classes
    return changed


def reclassify_markup(markup: str, is_known: Callable[[str], bool]) -> Tuple[str, int]:
    """Re-apply known/unknown markers after a vocabulary change.

    Returns the updated markup and the number of units whose status flipped.
    """
    soup = BeautifulSoup(markup, "html.parser")
    changed = 0
    for ruby in soup.select(f"ruby.{WORD_CLASS}"):
        lemma = str(ruby.get("lemma") or "")
        if lemma and _set_status(ruby, is_known(lemma)):
            changed += 1
    for span in soup.select(f"span.{PHRASE_CLASS}"):
        phrase = str(span.get(PHRASE_TEXT_ATTR) or "")
        if phrase and _set_status(span, is_known(phrase)):
            changed += 1
    if not changed:
        return markup, 0
    return str(soup), changed
