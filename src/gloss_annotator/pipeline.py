from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Tuple

from bs4 import BeautifulSoup

from .alignment import KnownPredicate, annotate_text, never_known
from .cache import AnnotationCache, cache_key
from .config import AnnotatorConfig
from .errors import ProviderError, ProviderTimeoutError
from .markup import ANNOTATION_SELECTOR, reclassify_markup
from .models import (
    AnnotationResponse,
    AnnotationResult,
    ParagraphState,
    RequestKind,
    TokenUsage,
)
from .providers.base import AnnotationProvider
from .surface import TextContainer
from .textutils import collapse_whitespace

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retry number ``attempt + 1`` (attempt counts from zero)."""
    return base_delay * (2**attempt)


class CancellationToken:
    """Cooperative flag checked after every suspension point."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def resume(self) -> None:
        self._cancelled = False


@dataclass(slots=True)
class PipelineEvent:
    element_id: str
    previous: ParagraphState
    state: ParagraphState
    detail: str | None = None


PipelineListener = Callable[[PipelineEvent], None]


@dataclass(slots=True)
class _ElementRecord:
    container: TextContainer
    state: ParagraphState = ParagraphState.UNANNOTATED
    snapshot: str | None = None
    token: CancellationToken | None = None
    result: AnnotationResult | None = None


class AnnotationPipeline:
    """Per-paragraph request state machine.

    Paragraph state lives in a table keyed by ``element_id``. ``begin`` performs
    the synchronous transition into ``PROCESSING`` so callers can never start a
    second request for the same element; ``run`` does the asynchronous work.
    """

    def __init__(
        self,
        provider: AnnotationProvider,
        config: AnnotatorConfig | None = None,
        *,
        cache: AnnotationCache | None = None,
        is_known: KnownPredicate = never_known,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._config = config or AnnotatorConfig()
        self._cache = cache
        self._is_known = is_known
        self._sleep = sleep
        self._records: Dict[str, _ElementRecord] = {}
        self._inflight: Dict[str, asyncio.Future[AnnotationResponse]] = {}
        self._listeners: List[PipelineListener] = []
        self._usage = TokenUsage()
        self.provider_calls = 0

    @property
    def config(self) -> AnnotatorConfig:
        return self._config

    @property
    def usage(self) -> TokenUsage:
        return self._usage

    def state(self, element_id: str) -> ParagraphState:
        record = self._records.get(element_id)
        return record.state if record else ParagraphState.UNANNOTATED

    def states(self) -> Dict[str, ParagraphState]:
        return {element_id: record.state for element_id, record in self._records.items()}

    def result(self, element_id: str) -> AnnotationResult | None:
        record = self._records.get(element_id)
        return record.result if record else None

    def add_listener(self, listener: PipelineListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PipelineListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def is_eligible(self, container: TextContainer) -> bool:
        if not self._config.word_annotation_enabled:
            return False
        if self.state(container.element_id) in (
            ParagraphState.PROCESSING,
            ParagraphState.ANNOTATED,
        ):
            return False
        if container.tag.lower() in self._config.pipeline.excluded_tags:
            return False
        text = container.get_text()
        if sum(1 for char in text if not char.isspace()) < self._config.pipeline.min_text_length:
            return False
        markup = container.get_markup()
        if "<" in markup and BeautifulSoup(markup, "html.parser").select_one(ANNOTATION_SELECTOR):
            return False
        return True

    def begin(self, container: TextContainer) -> CancellationToken | None:
        """Move an eligible element into ``PROCESSING`` and snapshot its content."""
        if not self.is_eligible(container):
            return None
        record = self._records.get(container.element_id)
        if record is None:
            record = _ElementRecord(container=container)
            self._records[container.element_id] = record
        elif record.state is ParagraphState.FAILED:
            self._transition(record, ParagraphState.UNANNOTATED, "retry")
        record.container = container
        record.snapshot = container.get_markup()
        record.token = CancellationToken()
        record.result = None
        self._transition(record, ParagraphState.PROCESSING)
        return record.token

    async def annotate(
        self, container: TextContainer, token: CancellationToken | None = None
    ) -> ParagraphState:
        """Annotate one element; returns the state it ends in."""
        if token is None:
            token = self.begin(container)
            if token is None:
                return self.state(container.element_id)
        return await self.run(container, token)

    async def run(self, container: TextContainer, token: CancellationToken) -> ParagraphState:
        """Request, align and render one element that ``begin`` moved into ``PROCESSING``.

        The element always leaves ``PROCESSING``: provider failures and unexpected
        errors end in ``FAILED``, cancellation ends in ``UNANNOTATED``.
        """
        record = self._records[container.element_id]
        try:
            return await self._process(record, container, token)
        except asyncio.CancelledError:
            self._abandon(record, token)
            raise
        except Exception as exc:
            logger.exception("Unexpected error while annotating %s", container.element_id)
            if record.token is token:
                record.token = None
                self._transition(record, ParagraphState.FAILED, str(exc))
            return record.state

    def resume(self, element_id: str) -> bool:
        """Re-arm a cancelled in-flight element so its result is applied after all."""
        record = self._records.get(element_id)
        if (
            record is None
            or record.token is None
            or record.state is not ParagraphState.PROCESSING
            or not record.token.cancelled
        ):
            return False
        record.token.resume()
        return True

    async def _process(
        self, record: _ElementRecord, container: TextContainer, token: CancellationToken
    ) -> ParagraphState:
        text = collapse_whitespace(container.get_text())
        try:
            response, degraded = await self._request(text)
        except ProviderError as exc:
            if token.cancelled or record.token is not token:
                return self._abandon(record, token)
            logger.warning("Annotation failed for %s: %s", container.element_id, exc)
            record.token = None
            self._transition(record, ParagraphState.FAILED, str(exc))
            return record.state
        if token.cancelled or record.token is not token:
            return self._abandon(record, token)

        result = annotate_text(
            text,
            response,
            self._is_known,
            self._config.alignment,
            include_phrases=self._config.phrase_annotation_enabled and not degraded,
        )
        result.phrases_degraded = degraded
        if result.word_spans or result.phrase_spans:
            container.set_markup(result.markup)
        record.result = result
        record.token = None
        logger.info(
            "Annotated %s: %d words, %d phrases%s",
            container.element_id,
            len(result.word_spans),
            len(result.phrase_spans),
            " (phrases unavailable)" if degraded else "",
        )
        self._transition(record, ParagraphState.ANNOTATED, "degraded" if degraded else None)
        return record.state

    def cancel(self, element_id: str) -> bool:
        """Flag an in-flight element so its result is discarded."""
        record = self._records.get(element_id)
        if record is None or record.token is None or record.state is not ParagraphState.PROCESSING:
            return False
        record.token.cancel()
        return True

    def clear_annotations(self) -> int:
        """Restore snapshot content for every annotated element."""
        restored = 0
        for record in self._records.values():
            if record.state is ParagraphState.PROCESSING and record.token is not None:
                record.token.cancel()
                continue
            if record.state is ParagraphState.ANNOTATED:
                if record.snapshot is not None and record.result is not None:
                    if record.result.word_spans or record.result.phrase_spans:
                        record.container.set_markup(record.snapshot)
                record.result = None
                self._transition(record, ParagraphState.UNANNOTATED, "cleared")
                restored += 1
            elif record.state is ParagraphState.FAILED:
                self._transition(record, ParagraphState.UNANNOTATED, "cleared")
        return restored

    def refresh_known_status(self) -> int:
        """Re-apply known/unknown markers to annotated elements after a vocabulary change."""
        flipped = 0
        for record in self._records.values():
            if record.state is not ParagraphState.ANNOTATED:
                continue
            markup, changed = reclassify_markup(record.container.get_markup(), self._is_known)
            if changed:
                record.container.set_markup(markup)
                flipped += changed
        return flipped

    async def _request(self, text: str) -> Tuple[AnnotationResponse, bool]:
        words_call = self._fetch(text, RequestKind.WORDS)
        if not self._config.phrase_annotation_enabled:
            return await words_call, False
        words, phrases = await asyncio.gather(
            words_call,
            self._fetch(text, RequestKind.PHRASES),
            return_exceptions=True,
        )
        if isinstance(words, BaseException):
            raise words
        if isinstance(phrases, BaseException):
            if not isinstance(phrases, ProviderError):
                raise phrases
            logger.warning("Phrase annotation unavailable, using words only: %s", phrases)
            return words, True
        return words.merge(phrases), False

    async def _fetch(self, text: str, kind: RequestKind) -> AnnotationResponse:
        language = self._config.target_language
        if self._cache is not None:
            cached = self._cache.get(text, kind, language)
            if cached is not None:
                return cached
        key = cache_key(text, kind, language)
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._call_with_retries(text, kind))
            self._inflight[key] = future
            future.add_done_callback(lambda done: self._settle(key, done))
        return await asyncio.shield(future)

    def _settle(self, key: str, future: asyncio.Future[AnnotationResponse]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # Mark the outcome as observed even if every waiter went away.
            future.exception()

    async def _call_with_retries(self, text: str, kind: RequestKind) -> AnnotationResponse:
        settings = self._config.pipeline
        attempts = max(0, settings.retry_attempts) + 1
        last_error: ProviderError | None = None
        for attempt in range(attempts):
            self.provider_calls += 1
            try:
                response = await asyncio.wait_for(
                    self._provider.annotate(text, self._config.target_language, kind),
                    timeout=settings.request_timeout,
                )
            except asyncio.TimeoutError:
                last_error = ProviderTimeoutError(
                    f"{kind.value} request exceeded {settings.request_timeout}s"
                )
            except ProviderError as exc:
                last_error = exc
            else:
                if response.usage is not None:
                    self._usage = self._usage + response.usage
                if self._cache is not None:
                    self._cache.put(text, kind, self._config.target_language, response)
                return response
            logger.warning(
                "Provider %s request failed (attempt %d/%d): %s",
                kind.value,
                attempt + 1,
                attempts,
                last_error,
            )
            if attempt + 1 < attempts:
                await self._sleep(backoff_delay(attempt, settings.retry_base_delay))
        if last_error is None:
            raise ProviderError(f"{kind.value} request was never attempted")
        raise last_error

    def _abandon(self, record: _ElementRecord, token: CancellationToken) -> ParagraphState:
        if record.token is token:
            record.token = None
            record.result = None
            self._transition(record, ParagraphState.UNANNOTATED, "cancelled")
        logger.debug("Discarded result for %s after cancellation", record.container.element_id)
        return record.state

    def _transition(
        self, record: _ElementRecord, state: ParagraphState, detail: str | None = None
    ) -> None:
        previous = record.state
        record.state = state
        event = PipelineEvent(record.container.element_id, previous, state, detail)
        for listener in list(self._listeners):
            listener(event)
