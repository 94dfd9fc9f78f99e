from gloss_annotator.alignment import (
    align_phrases,
    align_words,
    extract_search_units,
    filter_redundant_phrases,
    match_phrase,
)
from gloss_annotator.markup import render_words
from gloss_annotator.models import PhraseAnnotation, PhraseKind, SearchUnit, WordAnnotation
from gloss_annotator.tokenization import tokenize


def _units(text: str, words: list[str] | None = None) -> list[SearchUnit]:
    tokens = tokenize(text)
    annotations = [WordAnnotation(word=w, lemma=w.lower(), gloss="") for w in words or []]
    return extract_search_units(render_words(tokens, align_words(tokens, annotations)))


def _phrase(text: str, kind: PhraseKind = PhraseKind.MWE) -> PhraseAnnotation:
    return PhraseAnnotation(phrase=text, gloss=f"gloss of {text}", kind=kind)


def test_filter_drops_contained_and_duplicate_phrases():
    phrases = [_phrase("York"), _phrase("New York"), _phrase("new york"), _phrase("Yorkshire pudding")]
    kept = [phrase.phrase for phrase in filter_redundant_phrases(phrases)]

    assert kept == ["New York", "Yorkshire pudding"]


def test_longer_phrase_wins_over_contained_phrase():
    units = _units("We flew to New York yesterday.")
    spans = align_phrases(
        units, [_phrase("York", PhraseKind.PROPER_NOUN), _phrase("New York", PhraseKind.PROPER_NOUN)]
    )

    assert [span.phrase for span in spans] == ["New York"]


def test_overlapping_phrases_keep_the_longest():
    units = _units("They toured New York City today.")
    spans = align_phrases(units, [_phrase("New York"), _phrase("York City")])

    assert [span.phrase for span in spans] == ["York City"]


def test_single_word_phrases_are_ignored():
    units = _units("Hello there.")
    assert align_phrases(units, [_phrase("Hello")]) == ()


def test_phrase_span_records_matched_word_indexes():
    units = _units("I gave up today.", ["I", "gave", "up", "today"])
    spans = align_phrases(units, [_phrase("gave up")])

    assert len(spans) == 1
    assert spans[0].word_indexes == (1, 2)
    assert spans[0].coverage == 1.0


def test_partial_match_accepted_above_coverage_threshold():
    units = _units("They give it all away.")
    match = match_phrase(units, ["give", "it", "all", "up"])

    assert match is not None
    assert match.matched == 3
    assert [unit.text for unit in units[match.start : match.end]] == ["give", "it", "all"]


def test_partial_match_rejected_below_threshold():
    units = _units("take a look")
    assert match_phrase(units, ["take", "a", "long", "look"]) is None


def test_fallback_starts_on_later_subword():
    units = _units("Troops of united nations council arrived.")
    match = match_phrase(units, ["the", "united", "nations", "council"])

    assert match is not None
    assert [unit.text for unit in units[match.start : match.end]] == ["united", "nations", "council"]


def test_phrase_known_status_uses_phrase_text():
    units = _units("I gave up today.")
    spans = align_phrases(units, [_phrase("gave up")], is_known=lambda text: text == "gave up")

    assert spans[0].known is True


def test_unmatched_phrase_is_silently_dropped():
    units = _units("Nothing to see here.")
    assert align_phrases(units, [_phrase("kick the bucket")]) == ()
