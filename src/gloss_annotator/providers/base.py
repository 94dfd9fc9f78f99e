from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import AnnotationResponse, RequestKind


class AnnotationProvider(ABC):
    """Source of word and phrase glosses for a paragraph of text."""

    name: str = "base"

    @abstractmethod
    async def annotate(
        self, text: str, target_language: str, kind: RequestKind
    ) -> AnnotationResponse:
        """Return glosses for ``text``.

        A ``WORDS`` request fills ``words``; a ``PHRASES`` request fills ``mwes``
        and ``proper_nouns``. Failures raise ``ProviderError`` subclasses.
        """
        raise NotImplementedError
