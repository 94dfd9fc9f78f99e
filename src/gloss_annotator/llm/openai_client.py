from __future__ import annotations

import asyncio
import importlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, cast

from ..config import OpenAISettings
from ..errors import ProviderMalformedResponseError, ProviderUnavailableError
from ..models import TokenUsage

logger = logging.getLogger(__name__)

AsyncOpenAI: Callable[..., Any] | None = None


@dataclass(slots=True)
class CompletionResult:
    """Raw text returned by the model plus its token accounting."""

    text: str
    usage: TokenUsage | None = None


class OpenAIAnnotationClient:
    """Thin async wrapper around the OpenAI Responses API with request slots.

    Each call is a single attempt; retry policy belongs to the caller.
    """

    def __init__(self, settings: OpenAISettings, api_key: str) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is required for the openai provider.")
        self._settings = settings
        self._api_key = api_key
        self._client_factory: Callable[..., Any] = _load_openai_factory()
        self._client: Any | None = None
        self._semaphore: asyncio.Semaphore | None = None

    @property
    def settings(self) -> OpenAISettings:
        return self._settings

    async def complete(
        self, *, system_prompt: str, user_prompt: str, label: str = ""
    ) -> CompletionResult:
        """Send one JSON-mode request and return the model output."""
        try:
            async with self._acquire_slot():
                client = self._ensure_client()
                response: Any = await client.responses.create(
                    model=self._settings.model,
                    input=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    text={"format": {"type": "json_object"}},
                    temperature=self._settings.temperature,
                    max_output_tokens=self._settings.max_output_tokens,
                    timeout=self._settings.request_timeout,
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            status_code = getattr(exc, "status_code", None)
            logger.warning("OpenAI request %s failed (status=%s): %s", label, status_code, exc)
            raise ProviderUnavailableError(
                f"OpenAI request failed: {exc}", status_code=status_code
            ) from exc
        text = self._extract_text(response)
        usage = self._extract_usage(response)
        logger.debug(
            "OpenAI request %s succeeded (%s tokens)",
            label,
            usage.total_tokens if usage else "unknown",
        )
        return CompletionResult(text=text, usage=usage)

    def _ensure_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(
                api_key=self._api_key,
                base_url=self._settings.base_url,
                organization=self._settings.organization,
                max_retries=0,
            )
        return self._client

    @asynccontextmanager
    async def _acquire_slot(self) -> AsyncIterator[None]:
        if self._settings.parallel_requests <= 0:
            yield
            return
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._settings.parallel_requests)
        async with self._semaphore:
            yield

    @staticmethod
    def _extract_text(response: Any) -> str:
        output = getattr(response, "output", None)
        if not output:
            raise ProviderMalformedResponseError("OpenAI response is missing output content.")
        for item in output:
            materialized = OpenAIAnnotationClient._materialize_item(item)
            for segment in materialized.get("content") or []:
                text = OpenAIAnnotationClient._materialize_item(segment).get("text")
                if text:
                    return str(text)
        raise ProviderMalformedResponseError("OpenAI response segment missing text.")

    @staticmethod
    def _extract_usage(response: Any) -> TokenUsage | None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return None
        data = OpenAIAnnotationClient._materialize_item(usage)
        return TokenUsage(
            prompt_tokens=int(data.get("input_tokens") or data.get("prompt_tokens") or 0),
            completion_tokens=int(
                data.get("output_tokens") or data.get("completion_tokens") or 0
            ),
            total_tokens=int(data.get("total_tokens") or 0),
        )

    @staticmethod
    def _materialize_item(item: Any) -> dict[str, Any]:
        if isinstance(item, dict):
            return cast(dict[str, Any], item)
        if hasattr(item, "model_dump"):
            dumpable: Any = item
            raw_dump: dict[str, Any] = dumpable.model_dump()
            return raw_dump
        if hasattr(item, "__dict__"):
            dumpable = item
            raw_dict: dict[str, Any] = dict(dumpable.__dict__)
            return raw_dict
        raise ProviderMalformedResponseError("Unexpected OpenAI response format.")


def _load_openai_factory() -> Callable[..., Any]:
    """Import the async OpenAI client lazily so the package imports without credentials."""
    global AsyncOpenAI
    if AsyncOpenAI is not None:
        return AsyncOpenAI
    try:  # pragma: no cover - import guard
        module = importlib.import_module("openai")
    except Exception as exc:  # pragma: no cover - handled at runtime
        raise RuntimeError(
            "openai package is not installed. Install it via 'pip install openai'."
        ) from exc
    client_cls = getattr(module, "AsyncOpenAI", None)
    if client_cls is None:  # pragma: no cover
        raise RuntimeError("openai.AsyncOpenAI client class is unavailable in this environment.")
    AsyncOpenAI = cast(Callable[..., Any], client_cls)
    return AsyncOpenAI
