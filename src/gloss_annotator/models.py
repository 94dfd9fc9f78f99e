from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class TokenKind(str, Enum):
    WHITESPACE = "whitespace"
    WORD = "word"
    SYMBOL = "symbol"


class PhraseKind(str, Enum):
    MWE = "mwe"
    PROPER_NOUN = "propn"


class RequestKind(str, Enum):
    """Which half of the annotation a provider call is asked for."""

    WORDS = "words"
    PHRASES = "phrases"


class ParagraphState(str, Enum):
    UNANNOTATED = "unannotated"
    PROCESSING = "processing"
    ANNOTATED = "annotated"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Token:
    """Lossless unit of paragraph text."""

    text: str
    kind: TokenKind

    @property
    def is_whitespace(self) -> bool:
        return self.kind is TokenKind.WHITESPACE

    @property
    def is_word(self) -> bool:
        return self.kind is TokenKind.WORD


@dataclass(frozen=True, slots=True)
class WordAnnotation:
    """One provider-listed word occurrence."""

    word: str
    lemma: str
    gloss: str
    pos: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WordAnnotation":
        word = str(data.get("word") or "")
        lemma = str(data.get("lemma") or word)
        gloss = data.get("annotation", data.get("gloss"))
        pos = data.get("pos")
        return cls(
            word=word,
            lemma=lemma,
            gloss=str(gloss or ""),
            pos=str(pos) if pos else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "word": self.word,
            "lemma": self.lemma,
            "annotation": self.gloss,
        }
        if self.pos:
            payload["pos"] = self.pos
        return payload


@dataclass(frozen=True, slots=True)
class PhraseAnnotation:
    """A multi-word expression or proper noun suggested by the provider."""

    phrase: str
    gloss: str
    kind: PhraseKind = PhraseKind.MWE
    lemma: str | None = None

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], kind: PhraseKind
    ) -> "PhraseAnnotation":
        phrase = str(data.get("phrase") or data.get("word") or "")
        gloss = data.get("annotation", data.get("gloss"))
        lemma = data.get("lemma")
        return cls(
            phrase=phrase,
            gloss=str(gloss or ""),
            kind=kind,
            lemma=str(lemma) if lemma else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"phrase": self.phrase, "annotation": self.gloss}
        if self.lemma:
            payload["lemma"] = self.lemma
        return payload


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "TokenUsage | None":
        if not data:
            return None
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass(frozen=True, slots=True)
class AnnotationResponse:
    """Parsed provider output for one paragraph."""

    words: tuple[WordAnnotation, ...] = ()
    mwes: tuple[PhraseAnnotation, ...] = ()
    proper_nouns: tuple[PhraseAnnotation, ...] = ()
    usage: TokenUsage | None = None

    @property
    def phrases(self) -> tuple[PhraseAnnotation, ...]:
        return self.mwes + self.proper_nouns

    def merge(self, other: "AnnotationResponse") -> "AnnotationResponse":
        """Combine a words-phase response with a phrases-phase response."""
        usage = self.usage
        if other.usage is not None:
            usage = other.usage if usage is None else usage + other.usage
        return AnnotationResponse(
            words=self.words + other.words,
            mwes=self.mwes + other.mwes,
            proper_nouns=self.proper_nouns + other.proper_nouns,
            usage=usage,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnnotationResponse":
        words = tuple(
            WordAnnotation.from_dict(item)
            for item in data.get("words") or []
            if isinstance(item, Mapping)
        )
        mwes = tuple(
            PhraseAnnotation.from_dict(item, PhraseKind.MWE)
            for item in data.get("mwes") or []
            if isinstance(item, Mapping)
        )
        proper_nouns = tuple(
            PhraseAnnotation.from_dict(item, PhraseKind.PROPER_NOUN)
            for item in data.get("proper_nouns") or []
            if isinstance(item, Mapping)
        )
        return cls(
            words=words,
            mwes=mwes,
            proper_nouns=proper_nouns,
            usage=TokenUsage.from_dict(data.get("usage")),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "words": [word.to_dict() for word in self.words],
            "mwes": [mwe.to_dict() for mwe in self.mwes],
            "proper_nouns": [noun.to_dict() for noun in self.proper_nouns],
        }
        if self.usage is not None:
            payload["usage"] = {
                "prompt_tokens": self.usage.prompt_tokens,
                "completion_tokens": self.usage.completion_tokens,
                "total_tokens": self.usage.total_tokens,
            }
        return payload


@dataclass(frozen=True, slots=True)
class WordSpan:
    """A matched word occurrence covering tokens[token_start:token_end]."""

    token_start: int
    token_end: int
    word_index: int
    surface: str
    lemma: str
    gloss: str
    known: bool
    pos: str | None = None


@dataclass(frozen=True, slots=True)
class SearchUnit:
    """One position in the phrase search space.

    Units for matched words carry their ``word_index``; bare word tokens the word
    aligner left alone carry ``None``.
    """

    text: str
    token_start: int
    token_end: int
    word_index: int | None = None


@dataclass(frozen=True, slots=True)
class PhraseSpan:
    """An accepted phrase match covering tokens[token_start:token_end]."""

    token_start: int
    token_end: int
    word_indexes: tuple[int, ...]
    phrase: str
    gloss: str
    kind: PhraseKind
    known: bool
    lemma: str | None = None
    coverage: float = 1.0


@dataclass(slots=True)
class AnnotationResult:
    """Everything produced for one paragraph."""

    text: str
    markup: str
    word_spans: tuple[WordSpan, ...] = ()
    phrase_spans: tuple[PhraseSpan, ...] = ()
    phrases_degraded: bool = False
