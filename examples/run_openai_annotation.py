"""Minimal example showing how to annotate one paragraph with the OpenAI provider."""

from __future__ import annotations

import asyncio
import os

from gloss_annotator.alignment import annotate_text
from gloss_annotator.config import load_config
from gloss_annotator.llm import OpenAIAnnotationClient
from gloss_annotator.models import RequestKind
from gloss_annotator.providers import OpenAIAnnotationProvider


async def _annotate(provider: OpenAIAnnotationProvider, text: str, language: str):
    words, phrases = await asyncio.gather(
        provider.annotate(text, language, RequestKind.WORDS),
        provider.annotate(text, language, RequestKind.PHRASES),
    )
    return words.merge(phrases)


def main() -> None:
    config = load_config(None)
    config.target_language = "Spanish"
    api_key = (
        config.openai.api_key
        or os.environ.get(config.openai.api_key_env or "OPENAI_API_KEY")
        or ""
    )
    if not api_key:
        raise RuntimeError(
            "Set the OpenAI API key before running this example "
            f"({config.openai.api_key_env})."
        )

    provider = OpenAIAnnotationProvider(OpenAIAnnotationClient(config.openai, api_key=api_key))

    sample_text = (
        "After the storm, the ferry to Staten Island was called off, "
        "so we gave up and walked back along the pier."
    )
    response = asyncio.run(_annotate(provider, sample_text, config.target_language))
    result = annotate_text(sample_text, response, settings=config.alignment)
    print("Original:\n", sample_text)
    print("\nAnnotated markup:\n", result.markup)
    print(f"\n{len(result.word_spans)} words, {len(result.phrase_spans)} phrases")


if __name__ == "__main__":
    main()
