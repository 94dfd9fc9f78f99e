from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence, Tuple

from ..config import AlignmentSettings
from ..models import Token, WordAnnotation, WordSpan
from ..textutils import collapse_whitespace, compact, normalize, strip_edge_quotes
from ..tokenization import join_tokens, tokenize

logger = logging.getLogger(__name__)

KnownPredicate = Callable[[str], bool]


def never_known(_: str) -> bool:
    return False


@dataclass(frozen=True, slots=True)
class _Target:
    """Comparison forms of a single provider word."""

    text: str
    parts: Tuple[str, ...]
    has_space: bool
    word_parts: int
    compact: str


def _target_for(word: WordAnnotation) -> _Target | None:
    text = collapse_whitespace(normalize(strip_edge_quotes(word.word)))
    if not text:
        return None
    sub_tokens = tokenize(text)
    parts = tuple(" " if token.is_whitespace else token.text for token in sub_tokens)
    return _Target(
        text=text,
        parts=parts,
        has_space=any(token.is_whitespace for token in sub_tokens),
        word_parts=sum(1 for token in sub_tokens if token.is_word),
        compact=compact(text),
    )


class _WordMatcher:
    """Window search over one paragraph's tokens.

    ``blocked`` marks tokens that are already consumed or reserved by an existing
    annotation; nothing is ever matched inside them.
    """

    def __init__(
        self,
        tokens: Sequence[Token],
        blocked: List[bool],
        settings: AlignmentSettings,
    ) -> None:
        self._tokens = tokens
        self._normalized = [normalize(token.text) for token in tokens]
        self._blocked = blocked
        self._settings = settings

    def find(self, cursor: int, target: _Target) -> Tuple[int, int] | None:
        offsets = self._candidate_offsets(cursor)
        for offset in offsets:
            if self._normalized[offset] == target.text:
                return offset, offset + 1
        if 1 < len(target.parts) <= self._settings.max_merge_tokens:
            for offset in offsets:
                end = self._match_parts(offset, target)
                if end is not None:
                    return offset, end
        for offset in offsets:
            end = self._bridge(offset, target)
            if end is not None:
                return offset, end
        return None

    def consume(self, start: int, end: int) -> None:
        for index in range(start, end):
            self._blocked[index] = True

    def _candidate_offsets(self, cursor: int) -> List[int]:
        offsets: List[int] = []
        index = cursor
        while index < len(self._tokens) and len(offsets) < self._settings.window_size:
            if not self._tokens[index].is_whitespace and not self._blocked[index]:
                offsets.append(index)
            index += 1
        return offsets

    def _match_parts(self, offset: int, target: _Target) -> int | None:
        end = offset + len(target.parts)
        if end > len(self._tokens):
            return None
        for index, part in zip(range(offset, end), target.parts):
            if self._blocked[index]:
                return None
            token = self._tokens[index]
            if part == " ":
                if not token.is_whitespace:
                    return None
            elif token.is_whitespace or self._normalized[index] != part:
                return None
        return end

    def _bridge(self, offset: int, target: _Target) -> int | None:
        if not target.compact:
            return None
        word_count = 0
        for size in range(1, self._settings.max_merge_tokens + 1):
            index = offset + size - 1
            if index >= len(self._tokens) or self._blocked[index]:
                return None
            token = self._tokens[index]
            # Runs only grow, so a forbidden boundary ends the search.
            if token.is_whitespace and not target.has_space:
                return None
            if token.is_word:
                word_count += 1
                if word_count > 1 and target.word_parts <= 1:
                    return None
            if size < 2 or token.is_whitespace:
                continue
            joined = "".join(self._normalized[offset : index + 1])
            if joined == target.text or compact(joined) == target.compact:
                return index + 1
        return None


def _advance(tokens: Sequence[Token], cursor: int) -> int:
    """Move past the next non-whitespace token."""
    index = cursor
    while index < len(tokens) and tokens[index].is_whitespace:
        index += 1
    return min(index + 1, len(tokens))


def align_words(
    tokens: Sequence[Token],
    words: Sequence[WordAnnotation],
    is_known: KnownPredicate = never_known,
    settings: AlignmentSettings | None = None,
    reserved: Iterable[Tuple[int, int]] = (),
) -> Tuple[WordSpan, ...]:
    """Match provider words to token ranges, preserving both orders.

    Provider words that cannot be located are dropped. ``reserved`` token ranges
    are treated as already annotated; it is for library callers aligning text
    that carries annotations of their own, and the pipeline never passes it.
    """
    settings = settings or AlignmentSettings()
    blocked = [False] * len(tokens)
    for start, end in reserved:
        for index in range(max(0, start), min(end, len(tokens))):
            blocked[index] = True
    matcher = _WordMatcher(tokens, blocked, settings)

    spans: List[WordSpan] = []
    token_cursor = 0
    word_cursor = 0
    failures = 0
    anchor = 0
    while word_cursor < len(words) and token_cursor < len(tokens):
        word = words[word_cursor]
        target = _target_for(word)
        if target is None:
            word_cursor += 1
            continue

        match = matcher.find(token_cursor, target)
        if match is not None:
            start, end = match
            lemma = (word.lemma or word.word).strip()
            spans.append(
                WordSpan(
                    token_start=start,
                    token_end=end,
                    word_index=len(spans),
                    surface=join_tokens(tokens[start:end]),
                    lemma=lemma,
                    gloss=word.gloss,
                    known=bool(is_known(lemma)),
                    pos=word.pos,
                )
            )
            matcher.consume(start, end)
            token_cursor = end
            word_cursor += 1
            failures = 0
            continue

        if failures == 0:
            anchor = token_cursor
        failures += 1
        next_cursor = _advance(tokens, token_cursor)
        if failures < settings.max_consecutive_failures and next_cursor < len(tokens):
            token_cursor = next_cursor
            continue
        # Give up on this provider word; the tokens walked past stay available.
        logger.debug(
            "Dropping provider word %r: no match near token %d", word.word, anchor
        )
        word_cursor += 1
        failures = 0
        token_cursor = anchor

    return tuple(spans)
