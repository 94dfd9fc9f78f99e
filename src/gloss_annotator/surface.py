"""Rendering-surface contracts and a BeautifulSoup-backed document surface.

The engine never touches a rendering tree directly: it reads text through a
``TextContainer`` and learns about scrolling through ``VisibilityChange`` events.
``HtmlDocumentSurface`` implements both over a parsed HTML/XHTML document and
simulates a reader paging through it screen by screen.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Protocol, Sequence

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

BLOCK_TAGS = (
    "p",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "blockquote",
    "dd",
    "dt",
    "td",
    "th",
    "figcaption",
    "pre",
    "div",
)


class TextContainer(Protocol):
    element_id: str
    tag: str

    def get_text(self) -> str: ...

    def get_markup(self) -> str: ...

    def set_markup(self, markup: str) -> None: ...


@dataclass(frozen=True, slots=True)
class VisibilityChange:
    element_id: str
    visible: bool


VisibilityCallback = Callable[[List[VisibilityChange]], None]


class ReadingSurface(Protocol):
    def containers(self) -> Sequence[TextContainer]: ...

    def observe_visibility(self, callback: VisibilityCallback) -> None: ...


class HtmlTextContainer:
    """One block element of a parsed document."""

    def __init__(self, element_id: str, element: Tag) -> None:
        self.element_id = element_id
        self.element = element

    @property
    def tag(self) -> str:
        return self.element.name or ""

    def get_text(self) -> str:
        return self.element.get_text()

    def get_markup(self) -> str:
        return self.element.decode_contents()

    def set_markup(self, markup: str) -> None:
        fragment = BeautifulSoup(markup, "html.parser")
        self.element.clear()
        for child in list(fragment.contents):
            self.element.append(child.extract())

    def __repr__(self) -> str:
        return f"HtmlTextContainer({self.element_id!r}, <{self.tag}>)"


class HtmlDocumentSurface:
    """Document surface whose viewport shows ``screen_size`` containers at a time."""

    def __init__(
        self,
        markup: str,
        *,
        screen_size: int = 8,
        block_tags: Iterable[str] = BLOCK_TAGS,
        parser: str = "html.parser",
        id_prefix: str = "",
    ) -> None:
        if screen_size <= 0:
            raise ValueError("screen_size must be positive.")
        self.soup = BeautifulSoup(markup, parser)
        self.screen_size = screen_size
        self._id_prefix = id_prefix
        self._containers = self._collect(set(block_tags))
        self._by_id: Dict[str, HtmlTextContainer] = {
            container.element_id: container for container in self._containers
        }
        self._observers: List[VisibilityCallback] = []
        self._visible: List[str] = []
        self._screen = -1

    @classmethod
    def from_text(cls, text: str, *, screen_size: int = 8) -> "HtmlDocumentSurface":
        """Wrap blank-line separated plain-text paragraphs in ``<p>`` elements."""
        paragraphs = [part.strip() for part in text.replace("\r\n", "\n").split("\n\n")]
        body = "\n".join(
            f"<p>{html.escape(part, quote=False)}</p>" for part in paragraphs if part
        )
        return cls(f"<html><body>\n{body}\n</body></html>", screen_size=screen_size)

    def containers(self) -> Sequence[HtmlTextContainer]:
        return list(self._containers)

    def container(self, element_id: str) -> HtmlTextContainer:
        return self._by_id[element_id]

    def observe_visibility(self, callback: VisibilityCallback) -> None:
        self._observers.append(callback)

    @property
    def screen_count(self) -> int:
        if not self._containers:
            return 0
        return (len(self._containers) + self.screen_size - 1) // self.screen_size

    @property
    def visible_ids(self) -> List[str]:
        return list(self._visible)

    def scroll_to(self, screen: int) -> List[VisibilityChange]:
        """Move the viewport and notify observers of what entered and left it."""
        screen = max(0, min(screen, self.screen_count - 1))
        start = screen * self.screen_size
        now_visible = [
            container.element_id
            for container in self._containers[start : start + self.screen_size]
        ]
        previous = set(self._visible)
        current = set(now_visible)
        changes = [
            VisibilityChange(element_id, False)
            for element_id in self._visible
            if element_id not in current
        ]
        changes.extend(
            VisibilityChange(element_id, True)
            for element_id in now_visible
            if element_id not in previous
        )
        self._visible = now_visible
        self._screen = screen
        if changes:
            logger.debug("Viewport at screen %d: %d visibility changes", screen, len(changes))
            for callback in list(self._observers):
                callback(changes)
        return changes

    def serialize(self) -> str:
        return str(self.soup)

    def _collect(self, block_tags: set[str]) -> List[HtmlTextContainer]:
        containers: List[HtmlTextContainer] = []
        for element in self.soup.find_all(list(block_tags)):
            # Only the innermost blocks hold paragraph text.
            if element.find(list(block_tags)) is not None:
                continue
            if not element.get_text().strip():
                continue
            containers.append(HtmlTextContainer(f"{self._id_prefix}p{len(containers)}", element))
        return containers
