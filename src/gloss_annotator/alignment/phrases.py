from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from ..config import AlignmentSettings
from ..models import PhraseAnnotation, PhraseSpan, SearchUnit
from ..textutils import phrase_words
from .words import KnownPredicate, never_known

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PhraseMatch:
    """Unit range ``[start, end)`` claimed by a phrase and how much of it matched."""

    start: int
    end: int
    matched: int
    total: int

    @property
    def coverage(self) -> float:
        return self.matched / self.total if self.total else 0.0


def filter_redundant_phrases(
    phrases: Iterable[PhraseAnnotation],
) -> List[PhraseAnnotation]:
    """Drop duplicates and phrases whose words sit inside another phrase's words."""
    keyed: List[Tuple[str, PhraseAnnotation]] = []
    seen: set[str] = set()
    for phrase in phrases:
        key = " ".join(phrase_words(phrase.phrase))
        if not key or key in seen:
            continue
        seen.add(key)
        keyed.append((key, phrase))

    kept: List[PhraseAnnotation] = []
    for key, phrase in keyed:
        padded = f" {key} "
        if any(other != key and padded in f" {other} " for other, _ in keyed):
            logger.debug("Dropping phrase %r contained in a longer phrase", phrase.phrase)
            continue
        kept.append(phrase)
    return kept


def _consume(
    units: Sequence[SearchUnit],
    start: int,
    sub_words: Sequence[str],
    first: int,
    max_skipped: int,
) -> PhraseMatch:
    matched = 0
    skipped = 0
    position = start
    last = start
    pointer = first
    while position < len(units) and pointer < len(sub_words):
        if units[position].text == sub_words[pointer]:
            matched += 1
            pointer += 1
            skipped = 0
            last = position
        else:
            skipped += 1
            if skipped > max_skipped:
                break
        position += 1
    return PhraseMatch(start=start, end=last + 1, matched=matched, total=len(sub_words))


def match_phrase(
    units: Sequence[SearchUnit],
    sub_words: Sequence[str],
    settings: AlignmentSettings | None = None,
) -> PhraseMatch | None:
    """Locate one phrase in the unit sequence.

    Starts anchored on the first sub-word are tried first and a full match wins
    outright. Starts on later sub-words are a fallback so a phrase whose first
    word went unmatched can still be found partially.
    """
    settings = settings or AlignmentSettings()
    if not sub_words:
        return None
    best: PhraseMatch | None = None
    for first in range(len(sub_words)):
        for start, unit in enumerate(units):
            if unit.text != sub_words[first]:
                continue
            candidate = _consume(
                units, start, sub_words, first, settings.phrase_max_skipped
            )
            if candidate.matched == candidate.total:
                return candidate
            if best is None or candidate.matched > best.matched:
                best = candidate
    if best is None:
        return None
    if (
        best.coverage >= settings.phrase_min_coverage
        and best.matched >= settings.phrase_min_matched_words
    ):
        return best
    return None


def align_phrases(
    units: Sequence[SearchUnit],
    phrases: Iterable[PhraseAnnotation],
    is_known: KnownPredicate = never_known,
    settings: AlignmentSettings | None = None,
) -> Tuple[PhraseSpan, ...]:
    """Match phrases over the search units and resolve contested ranges.

    Longer phrases claim territory first; a later match overlapping a claimed
    token range is discarded.
    """
    settings = settings or AlignmentSettings()
    multi_word = [p for p in phrases if len(phrase_words(p.phrase)) >= 2]
    candidates: List[Tuple[int, int, PhraseAnnotation, PhraseMatch]] = []
    for order, phrase in enumerate(filter_redundant_phrases(multi_word)):
        sub_words = phrase_words(phrase.phrase)
        match = match_phrase(units, sub_words, settings)
        if match is None:
            logger.debug("Phrase %r not found in paragraph", phrase.phrase)
            continue
        candidates.append((len(" ".join(sub_words)), order, phrase, match))

    candidates.sort(key=lambda item: (-item[0], item[3].start, item[1]))
    claimed: List[Tuple[int, int]] = []
    accepted: List[PhraseSpan] = []
    for _, _, phrase, match in candidates:
        covered = units[match.start : match.end]
        token_start = covered[0].token_start
        token_end = covered[-1].token_end
        if any(token_start < end and start < token_end for start, end in claimed):
            logger.debug("Phrase %r overlaps a longer phrase", phrase.phrase)
            continue
        claimed.append((token_start, token_end))
        accepted.append(
            PhraseSpan(
                token_start=token_start,
                token_end=token_end,
                word_indexes=tuple(
                    unit.word_index for unit in covered if unit.word_index is not None
                ),
                phrase=phrase.phrase,
                gloss=phrase.gloss,
                kind=phrase.kind,
                known=bool(is_known(phrase.phrase)),
                lemma=phrase.lemma,
                coverage=match.coverage,
            )
        )
    accepted.sort(key=lambda span: span.token_start)
    return tuple(accepted)
