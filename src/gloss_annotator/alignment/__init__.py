from __future__ import annotations

from typing import Iterable, Tuple

from ..config import AlignmentSettings
from ..markup import render_markup, render_words
from ..models import AnnotationResponse, AnnotationResult
from ..tokenization import tokenize
from .phrases import align_phrases, filter_redundant_phrases, match_phrase
from .spans import extract_search_units, extract_surface_words
from .words import KnownPredicate, align_words, never_known

__all__ = [
    "KnownPredicate",
    "align_words",
    "align_phrases",
    "annotate_text",
    "extract_search_units",
    "extract_surface_words",
    "filter_redundant_phrases",
    "match_phrase",
    "never_known",
]


def annotate_text(
    text: str,
    response: AnnotationResponse,
    is_known: KnownPredicate = never_known,
    settings: AlignmentSettings | None = None,
    *,
    include_phrases: bool = True,
    reserved: Iterable[Tuple[int, int]] = (),
) -> AnnotationResult:
    """Run both alignment phases for one paragraph and render the final markup.

    Phrases are located in the search space read back from the word-phase
    markup, then both layers are serialized together.
    """
    settings = settings or AlignmentSettings()
    tokens = tokenize(text)
    word_spans = align_words(tokens, response.words, is_known, settings, reserved)
    if not include_phrases or not response.phrases:
        return AnnotationResult(
            text=text,
            markup=render_words(tokens, word_spans),
            word_spans=word_spans,
        )
    units = extract_search_units(render_words(tokens, word_spans))
    phrase_spans = align_phrases(units, response.phrases, is_known, settings)
    return AnnotationResult(
        text=text,
        markup=render_markup(tokens, word_spans, phrase_spans),
        word_spans=word_spans,
        phrase_spans=phrase_spans,
    )
