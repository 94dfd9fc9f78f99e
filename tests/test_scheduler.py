import asyncio
from collections import Counter

from gloss_annotator.config import AnnotatorConfig, PipelineSettings, SchedulerSettings
from gloss_annotator.errors import ProviderUnavailableError
from gloss_annotator.models import (
    AnnotationResponse,
    ParagraphState,
    WordAnnotation,
)
from gloss_annotator.pipeline import AnnotationPipeline
from gloss_annotator.providers.base import AnnotationProvider
from gloss_annotator.scheduler import Priority, ViewportScheduler
from gloss_annotator.surface import HtmlDocumentSurface


class RecordingProvider(AnnotationProvider):
    """Glosses the first word of each paragraph; can gate or fail chosen texts."""

    def __init__(self, *, gates=None, failures=None) -> None:
        self.gates: dict[str, asyncio.Event] = gates or {}
        self.failures: Counter[str] = Counter(failures or {})
        self.texts: list[str] = []

    async def annotate(self, text, target_language, kind):
        self.texts.append(text)
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        if self.failures[text]:
            self.failures[text] -= 1
            raise ProviderUnavailableError("temporarily down", status_code=503)
        first = text.split()[0]
        return AnnotationResponse(
            words=(WordAnnotation(word=first, lemma=first.lower(), gloss="gloss"),)
        )


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _text(index: int) -> str:
    return f"Paragraph number {index} goes here."


def _surface(count: int = 10, screen_size: int = 2) -> HtmlDocumentSurface:
    body = "\n\n".join(_text(index) for index in range(count))
    return HtmlDocumentSurface.from_text(body, screen_size=screen_size)


def _scheduler(provider, surface, sleeper=None, **scheduler_kwargs):
    config = AnnotatorConfig(
        phrase_annotation_enabled=False,
        pipeline=PipelineSettings(retry_attempts=0),
        scheduler=SchedulerSettings(lookahead_screens=1, **scheduler_kwargs),
    )
    pipeline = AnnotationPipeline(provider, config)
    scheduler = ViewportScheduler(
        pipeline, surface, config.scheduler, sleep=sleeper or SleepRecorder()
    )
    scheduler.start()
    return pipeline, scheduler


async def _wait_for_state(pipeline, element_id, state, rounds=200) -> None:
    for _ in range(rounds):
        if pipeline.state(element_id) is state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"{element_id} never reached {state}")


def test_visible_elements_then_lookahead():
    provider = RecordingProvider()
    surface = _surface()
    sleeper = SleepRecorder()
    pipeline, scheduler = _scheduler(provider, surface, sleeper)

    async def scenario() -> None:
        surface.scroll_to(0)
        await scheduler.drain()
        await scheduler.stop()

    asyncio.run(scenario())

    assert scheduler.visible_ids == ["p0", "p1"]
    annotated = [
        element_id
        for element_id, state in pipeline.states().items()
        if state is ParagraphState.ANNOTATED
    ]
    assert sorted(annotated) == ["p0", "p1", "p2", "p3"]
    assert provider.texts[:2] == [_text(0), _text(1)]
    assert scheduler.priority("p0") is Priority.FOREGROUND
    assert scheduler.priority("p3") is Priority.BACKGROUND
    assert pipeline.state("p4") is ParagraphState.UNANNOTATED
    assert sleeper.delays == [0.2, 0.2]
    assert 'class="word unknown"' in surface.container("p2").get_markup()


def test_scrolling_never_requests_an_element_twice():
    provider = RecordingProvider()
    surface = _surface()
    pipeline, scheduler = _scheduler(provider, surface)

    async def scenario() -> None:
        for screen in range(surface.screen_count):
            surface.scroll_to(screen)
            await scheduler.drain()
        surface.scroll_to(0)
        await scheduler.drain()
        await scheduler.stop()

    asyncio.run(scenario())

    assert Counter(provider.texts) == Counter(_text(index) for index in range(10))
    assert set(pipeline.states().values()) == {ParagraphState.ANNOTATED}


def test_hidden_foreground_request_is_discarded():
    gates = {_text(0): asyncio.Event(), _text(1): asyncio.Event()}
    provider = RecordingProvider(gates=gates)
    surface = _surface()
    pipeline, scheduler = _scheduler(provider, surface)
    original = surface.container("p0").get_markup()

    async def scenario() -> None:
        surface.scroll_to(0)
        await _wait_for_state(pipeline, "p0", ParagraphState.PROCESSING)
        await asyncio.sleep(0)
        surface.scroll_to(2)
        for gate in gates.values():
            gate.set()
        await scheduler.drain()
        await scheduler.stop()

    asyncio.run(scenario())

    assert pipeline.state("p0") is ParagraphState.UNANNOTATED
    assert pipeline.state("p1") is ParagraphState.UNANNOTATED
    assert surface.container("p0").get_markup() == original
    assert pipeline.state("p4") is ParagraphState.ANNOTATED
    assert pipeline.state("p6") is ParagraphState.ANNOTATED


def test_hide_keeps_request_when_cancel_on_hide_disabled():
    gate = asyncio.Event()
    provider = RecordingProvider(gates={_text(0): gate})
    surface = _surface()
    pipeline, scheduler = _scheduler(provider, surface, cancel_on_hide=False)

    async def scenario() -> None:
        surface.scroll_to(0)
        await _wait_for_state(pipeline, "p0", ParagraphState.PROCESSING)
        surface.scroll_to(2)
        gate.set()
        await scheduler.drain()
        await scheduler.stop()

    asyncio.run(scenario())

    assert pipeline.state("p0") is ParagraphState.ANNOTATED


def test_failed_element_is_retried_only_when_visible_again():
    provider = RecordingProvider(failures={_text(2): 1})
    surface = _surface()
    pipeline, scheduler = _scheduler(provider, surface)

    async def scenario() -> None:
        surface.scroll_to(1)
        await scheduler.drain()
        assert pipeline.state("p2") is ParagraphState.FAILED
        surface.scroll_to(0)
        await scheduler.drain()
        assert pipeline.state("p2") is ParagraphState.FAILED
        surface.scroll_to(1)
        await scheduler.drain()
        await scheduler.stop()

    asyncio.run(scenario())

    assert provider.texts.count(_text(2)) == 2
    assert pipeline.state("p2") is ParagraphState.ANNOTATED


def test_background_request_escalates_when_it_becomes_visible():
    gate = asyncio.Event()
    provider = RecordingProvider(gates={_text(2): gate})
    surface = _surface()
    pipeline, scheduler = _scheduler(provider, surface)

    async def scenario() -> Priority | None:
        surface.scroll_to(0)
        await _wait_for_state(pipeline, "p2", ParagraphState.PROCESSING)
        background = scheduler.priority("p2")
        surface.scroll_to(1)
        escalated = scheduler.priority("p2")
        gate.set()
        await scheduler.drain()
        await scheduler.stop()
        assert background is Priority.BACKGROUND
        return escalated

    escalated = asyncio.run(scenario())

    assert escalated is Priority.FOREGROUND
    assert pipeline.state("p2") is ParagraphState.ANNOTATED
    assert provider.texts.count(_text(2)) == 1


def test_element_scrolled_back_before_response_is_annotated():
    gates = {_text(0): asyncio.Event(), _text(1): asyncio.Event()}
    provider = RecordingProvider(gates=gates)
    surface = _surface()
    pipeline, scheduler = _scheduler(provider, surface)

    async def scenario() -> None:
        surface.scroll_to(0)
        await _wait_for_state(pipeline, "p0", ParagraphState.PROCESSING)
        await asyncio.sleep(0)
        surface.scroll_to(2)
        surface.scroll_to(0)
        for gate in gates.values():
            gate.set()
        await scheduler.drain()
        await scheduler.stop()

    asyncio.run(scenario())

    assert scheduler.visible_ids == ["p0", "p1"]
    assert pipeline.state("p0") is ParagraphState.ANNOTATED
    assert pipeline.state("p1") is ParagraphState.ANNOTATED
    assert provider.texts.count(_text(0)) == 1
    assert 'class="word unknown"' in surface.container("p0").get_markup()
