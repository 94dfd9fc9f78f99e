from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from ..errors import ProviderMalformedResponseError
from ..llm.openai_client import OpenAIAnnotationClient
from ..models import AnnotationResponse, RequestKind, TokenUsage
from .base import AnnotationProvider

logger = logging.getLogger(__name__)

WORDS_SYSTEM_PROMPT = (
    "You are an expert English language assistant. Analyze English text and explain "
    "ALL individual words in their original order.\n"
    "Rules:\n"
    "- Return words in the EXACT SAME ORDER as they appear in the text.\n"
    "- Include every word (content and function words) but no punctuation marks.\n"
    "- Treat contractions as single words (e.g. \"I've\", \"don't\").\n"
    "- Treat hyphenated words as single words (e.g. \"well-known\", \"forty-five\").\n"
    "- Copy each word exactly as written, preserving case.\n"
    "- Each annotation is a short explanation in {language} (10 words or fewer).\n"
    "Return JSON only, shaped as:\n"
    '{{"words": [{{"word": "exact word", "lemma": "base form", '
    '"pos": "NOUN|VERB|ADJ|ADV|...", "annotation": "explanation"}}]}}'
)

WORDS_USER_PROMPT_TEMPLATE = (
    "Explain every word of the following text in exact order of appearance.\n"
    "-----\n"
    "{text}\n"
    "-----\n"
    "Return results in the specified JSON format."
)

PHRASES_SYSTEM_PROMPT = (
    "You are an expert English language assistant. Identify meaningful phrases and "
    "multi-word proper nouns in English text.\n"
    "Rules:\n"
    "- Proper nouns must have 2 or more words (people, places, organizations, brands).\n"
    "- Phrases must carry an idiomatic meaning (idioms, phrasal verbs, collocations).\n"
    "- Exclude single words and plain word combinations without special meaning.\n"
    "- Copy each phrase exactly as it appears in the text.\n"
    "- Each annotation is a short explanation in {language} (10 words or fewer).\n"
    "Return JSON only, shaped as:\n"
    '{{"proper_nouns": [{{"phrase": "exact proper noun", "annotation": "explanation"}}], '
    '"mwes": [{{"phrase": "exact phrase", "lemma": "base form", "annotation": "explanation"}}]}}'
)

PHRASES_USER_PROMPT_TEMPLATE = (
    "Find multi-word proper nouns and meaningful phrases in the following text.\n"
    "-----\n"
    "{text}\n"
    "-----\n"
    "Return results in the specified JSON format."
)


def _require_list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if not isinstance(value, list):
        raise ProviderMalformedResponseError(f"Provider response field '{key}' must be a list.")
    return value


def parse_annotation_payload(
    raw: str, kind: RequestKind, usage: TokenUsage | None = None
) -> AnnotationResponse:
    """Validate model JSON output for the given request kind."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ProviderMalformedResponseError("Provider returned invalid JSON.") from exc
    if not isinstance(data, dict):
        raise ProviderMalformedResponseError("Provider JSON must be an object.")
    if kind is RequestKind.WORDS:
        payload: dict[str, Any] = {"words": _require_list(data, "words")}
    else:
        payload = {
            "mwes": _require_list(data, "mwes"),
            "proper_nouns": _require_list(data, "proper_nouns"),
        }
    response = AnnotationResponse.from_dict(payload)
    return AnnotationResponse(
        words=response.words,
        mwes=response.mwes,
        proper_nouns=response.proper_nouns,
        usage=usage,
    )


class OpenAIAnnotationProvider(AnnotationProvider):
    """Provider backed by an OpenAI-compatible Responses endpoint."""

    name = "openai"

    def __init__(self, client: OpenAIAnnotationClient) -> None:
        self._client = client

    async def annotate(
        self, text: str, target_language: str, kind: RequestKind
    ) -> AnnotationResponse:
        if kind is RequestKind.WORDS:
            system_template, user_template = WORDS_SYSTEM_PROMPT, WORDS_USER_PROMPT_TEMPLATE
        else:
            system_template, user_template = (
                PHRASES_SYSTEM_PROMPT,
                PHRASES_USER_PROMPT_TEMPLATE,
            )
        result = await self._client.complete(
            system_prompt=system_template.format(language=target_language),
            user_prompt=user_template.format(text=text.strip()),
            label=kind.value,
        )
        return parse_annotation_payload(result.text, kind, result.usage)
