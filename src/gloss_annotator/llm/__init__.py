from __future__ import annotations

from .openai_client import CompletionResult, OpenAIAnnotationClient

__all__ = ["CompletionResult", "OpenAIAnnotationClient"]
