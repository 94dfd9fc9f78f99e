from __future__ import annotations

import re
from typing import Iterable, List

from .models import Token, TokenKind

# Whitespace run | word run with internal apostrophes | single symbol.
TOKEN_PATTERN = re.compile(r"(\s+)|(\w+(?:['’]\w+)*)|([^\w\s])", re.UNICODE)


def tokenize(text: str) -> List[Token]:
    """Split text into lossless whitespace, word and symbol tokens."""
    tokens: List[Token] = []
    for match in TOKEN_PATTERN.finditer(text):
        if match.group(1) is not None:
            kind = TokenKind.WHITESPACE
        elif match.group(2) is not None:
            kind = TokenKind.WORD
        else:
            kind = TokenKind.SYMBOL
        tokens.append(Token(text=match.group(), kind=kind))
    return tokens


def join_tokens(tokens: Iterable[Token]) -> str:
    return "".join(token.text for token in tokens)
