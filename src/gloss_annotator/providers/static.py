from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

from ..errors import ProviderMalformedResponseError
from ..models import AnnotationResponse, RequestKind
from .base import AnnotationProvider


class StaticAnnotationProvider(AnnotationProvider):
    """
    Serves canned responses keyed by paragraph text. Unknown paragraphs get an
    empty response, which keeps offline runs and tests deterministic.
    """

    name = "static"

    def __init__(self, responses: Mapping[str, AnnotationResponse] | None = None) -> None:
        self._responses: Dict[str, AnnotationResponse] = dict(responses or {})
        self.calls: list[tuple[str, RequestKind]] = []

    @classmethod
    def from_json(cls, path: str | Path) -> "StaticAnnotationProvider":
        """Load ``{"paragraph text": {"words": [...], "mwes": [...], ...}}``."""
        data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ProviderMalformedResponseError("Static responses file must hold an object.")
        return cls(
            {
                text.strip(): AnnotationResponse.from_dict(payload)
                for text, payload in data.items()
                if isinstance(payload, Mapping)
            }
        )

    async def annotate(
        self, text: str, target_language: str, kind: RequestKind
    ) -> AnnotationResponse:
        self.calls.append((text, kind))
        response = self._responses.get(text.strip())
        if response is None:
            return AnnotationResponse()
        if kind is RequestKind.WORDS:
            return AnnotationResponse(words=response.words, usage=response.usage)
        return AnnotationResponse(mwes=response.mwes, proper_nouns=response.proper_nouns)
