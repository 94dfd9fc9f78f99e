from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Sequence, Set

from .config import SchedulerSettings
from .models import ParagraphState
from .pipeline import AnnotationPipeline, Sleeper
from .surface import ReadingSurface, TextContainer, VisibilityChange

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class ViewportScheduler:
    """Feeds the pipeline from visibility changes.

    Newly visible elements start immediately. Once the visible set has been
    processed, a bounded look-ahead over the following screens runs at background
    priority with a short delay between elements. Visibility callbacks must be
    delivered from inside the running event loop.
    """

    def __init__(
        self,
        pipeline: AnnotationPipeline,
        surface: ReadingSurface,
        settings: SchedulerSettings | None = None,
        *,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._pipeline = pipeline
        self._surface = surface
        self._settings = settings or SchedulerSettings()
        self._sleep = sleep
        self._containers: List[TextContainer] = list(surface.containers())
        self._order: Dict[str, int] = {
            container.element_id: index for index, container in enumerate(self._containers)
        }
        self._visible: Set[str] = set()
        self._priority: Dict[str, Priority] = {}
        self._foreground: Set[asyncio.Task[ParagraphState]] = set()
        self._background: Set[asyncio.Task[ParagraphState]] = set()
        self._lookahead: asyncio.Task[None] | None = None
        self._started = False

    @property
    def visible_ids(self) -> List[str]:
        return sorted(self._visible, key=lambda element_id: self._order.get(element_id, 0))

    def priority(self, element_id: str) -> Priority | None:
        return self._priority.get(element_id)

    def start(self) -> None:
        if self._started:
            return
        self._surface.observe_visibility(self.on_visibility_change)
        self._started = True

    def on_visibility_change(self, changes: Sequence[VisibilityChange]) -> None:
        shown: List[str] = []
        for change in changes:
            if change.element_id not in self._order:
                continue
            if change.visible:
                self._visible.add(change.element_id)
                shown.append(change.element_id)
            else:
                self._visible.discard(change.element_id)
                self._on_hidden(change.element_id)
        for element_id in sorted(shown, key=self._order.__getitem__):
            self._on_visible(element_id)
        self._restart_lookahead()

    async def drain(self) -> None:
        """Wait until every scheduled request, including look-ahead, has finished."""
        while True:
            pending: List[asyncio.Future[object]] = list(self._foreground | self._background)
            if self._lookahead is not None and not self._lookahead.done():
                pending.append(self._lookahead)
            if not pending:
                return
            await asyncio.wait(pending)

    async def stop(self) -> None:
        """Stop look-ahead, discard in-flight results and wait for the tasks to settle."""
        if self._lookahead is not None:
            self._lookahead.cancel()
            await asyncio.gather(self._lookahead, return_exceptions=True)
            self._lookahead = None
        for container in self._containers:
            self._pipeline.cancel(container.element_id)
        await asyncio.gather(*(self._foreground | self._background), return_exceptions=True)

    def _on_visible(self, element_id: str) -> None:
        state = self._pipeline.state(element_id)
        if state is ParagraphState.PROCESSING:
            # A request cancelled on hide is still in flight; keep its result.
            if self._pipeline.resume(element_id):
                logger.debug("Resumed %s after it returned to the viewport", element_id)
            if self._priority.get(element_id) is Priority.BACKGROUND:
                logger.debug("Escalating %s to foreground", element_id)
                self._priority[element_id] = Priority.FOREGROUND
            return
        if state is ParagraphState.ANNOTATED:
            return
        self._submit(self._containers[self._order[element_id]], Priority.FOREGROUND)

    def _on_hidden(self, element_id: str) -> None:
        if not self._settings.cancel_on_hide:
            return
        if self._priority.get(element_id) is Priority.FOREGROUND and self._pipeline.cancel(
            element_id
        ):
            logger.debug("Cancelled %s after it left the viewport", element_id)

    def _submit(self, container: TextContainer, priority: Priority) -> bool:
        token = self._pipeline.begin(container)
        if token is None:
            return False
        self._priority[container.element_id] = priority
        task = asyncio.ensure_future(self._pipeline.run(container, token))
        bucket = self._foreground if priority is Priority.FOREGROUND else self._background
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return True

    def _restart_lookahead(self) -> None:
        if self._lookahead is not None and not self._lookahead.done():
            self._lookahead.cancel()
        self._lookahead = asyncio.ensure_future(self._run_lookahead())

    def _lookahead_candidates(self) -> List[TextContainer]:
        if not self._visible:
            return []
        last = max(self._order[element_id] for element_id in self._visible)
        budget = self._settings.lookahead_screens * len(self._visible)
        return self._containers[last + 1 : last + 1 + budget]

    async def _run_lookahead(self) -> None:
        if self._foreground:
            await asyncio.wait(list(self._foreground))
        for container in self._lookahead_candidates():
            # Failed elements are only retried when they become visible again.
            if self._pipeline.state(container.element_id) is not ParagraphState.UNANNOTATED:
                continue
            if not self._pipeline.is_eligible(container):
                continue
            await self._sleep(self._settings.background_delay)
            if self._pipeline.state(container.element_id) is ParagraphState.UNANNOTATED:
                self._submit(container, Priority.BACKGROUND)
