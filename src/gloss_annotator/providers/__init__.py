from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from ..errors import ProviderNotFoundError
from .base import AnnotationProvider
from .openai_provider import OpenAIAnnotationProvider, parse_annotation_payload
from .static import StaticAnnotationProvider

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from ..config import AnnotatorConfig, OpenAISettings

__all__ = [
    "AnnotationProvider",
    "OpenAIAnnotationProvider",
    "StaticAnnotationProvider",
    "build_provider_from_config",
    "create_provider",
    "parse_annotation_payload",
    "resolve_openai_api_key",
]


def create_provider(name: str, **kwargs: Any) -> AnnotationProvider:
    """Factory for building annotation providers by name."""
    normalized = name.lower().strip()
    if normalized == "static":
        responses_path = kwargs.get("responses_path")
        if responses_path:
            return StaticAnnotationProvider.from_json(responses_path)
        return StaticAnnotationProvider(kwargs.get("responses"))
    if normalized == "openai":
        from ..llm.openai_client import OpenAIAnnotationClient

        client = OpenAIAnnotationClient(kwargs["settings"], api_key=kwargs.get("api_key", ""))
        return OpenAIAnnotationProvider(client)
    raise ProviderNotFoundError(f"Unknown provider '{name}'.")


def resolve_openai_api_key(settings: "OpenAISettings") -> str:
    """Return the configured API key, falling back to the configured environment variable."""
    if settings.api_key:
        return settings.api_key
    env_name = settings.api_key_env or "OPENAI_API_KEY"
    value = os.environ.get(env_name)
    if not value:
        raise ValueError(
            f"OpenAI API key not provided. Set it in the config or via ${env_name}."
        )
    return value


def build_provider_from_config(
    config: "AnnotatorConfig", responses_path: str | None = None
) -> AnnotationProvider:
    """Convenience helper to build a provider from AnnotatorConfig."""
    normalized = config.provider_name.lower().strip()
    if normalized == "openai":
        return create_provider(
            "openai",
            settings=config.openai,
            api_key=resolve_openai_api_key(config.openai),
        )
    return create_provider(config.provider_name, responses_path=responses_path)
