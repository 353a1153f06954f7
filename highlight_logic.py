"""
Phrase Highlight Logic.

This module locates a phrase among the spans of one page:
- Tier 1: exact containment within single spans (every hit is kept)
- Tier 2: search over all spans joined by single spaces, with a
  character-to-span map to recover the covered spans (first hit only)

Matching works on pure geometry (fitz.Rect); HighlightOverlay holds the one
active highlight set that the GUI paints.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import fitz  # PyMuPDF

from text_layer import PageStore, Span

logger = logging.getLogger(__name__)

# Character-map entry for the space inserted between two spans
SEPARATOR = -1


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to one space, strip and lower-case."""
    return " ".join((text or "").split()).lower()


def union_rect(rects: Sequence[fitz.Rect]) -> fitz.Rect:
    return fitz.Rect(
        min(r.x0 for r in rects),
        min(r.y0 for r in rects),
        max(r.x1 for r in rects),
        max(r.y1 for r in rects),
    )


class ExactSpanStrategy:
    """Every span whose normalized text contains the query, one rect each."""

    name = "exact"

    def find(self, spans: Sequence[Span], query: str) -> Optional[list]:
        rects = [
            fitz.Rect(span.bbox) for span in spans if query in normalize_text(span.text)
        ]
        return rects or None


class ConcatenatedSpanStrategy:
    """
    Phrase broken across fragment boundaries.

    Spans are joined with one space each; char_map[i] is the index of the
    span that produced character i, or SEPARATOR for an inserted space.
    """

    name = "concatenated"

    @staticmethod
    def build_index(spans: Sequence[Span]) -> tuple[str, list[int]]:
        parts = []
        char_map: list[int] = []
        for idx, span in enumerate(spans):
            text = normalize_text(span.text)
            if not text:
                continue
            if parts:
                parts.append(" ")
                char_map.append(SEPARATOR)
            parts.append(text)
            char_map.extend([idx] * len(text))
        return "".join(parts), char_map

    @staticmethod
    def _resolve(char_map: list[int], pos: int, step: int) -> int:
        """Walk from pos in direction step until a real span index is found."""
        i = pos
        while 0 <= i < len(char_map) and char_map[i] == SEPARATOR:
            i += step
        if not 0 <= i < len(char_map):
            # Ran off the end; take the nearest span on the other side
            i = pos
            while char_map[i] == SEPARATOR:
                i -= step
        return char_map[i]

    def find(self, spans: Sequence[Span], query: str) -> Optional[list]:
        concat, char_map = self.build_index(spans)
        pos = concat.find(query)
        if pos == -1:
            return None

        start_span = self._resolve(char_map, pos, -1)
        end_span = self._resolve(char_map, pos + len(query) - 1, 1)
        covered = [spans[i].bbox for i in range(start_span, end_span + 1)]
        return [union_rect(covered)]


DEFAULT_STRATEGIES = (ExactSpanStrategy(), ConcatenatedSpanStrategy())


@dataclass
class MatchResult:
    rects: list
    strategy: str


def find_highlight_rects(
    spans: Sequence[Span], phrase: str, strategies=DEFAULT_STRATEGIES
) -> Optional[MatchResult]:
    """
    Run the strategies in order and return the first hit.

    Args:
        spans: Spans of one page, in page order
        phrase: Raw query; normalized here
        strategies: Ordered strategies, each returning rects or None

    Returns:
        MatchResult, or None when the query is empty or nothing matches
    """
    query = normalize_text(phrase)
    if not query:
        return None
    for strategy in strategies:
        rects = strategy.find(spans, query)
        if rects:
            return MatchResult(rects=rects, strategy=strategy.name)
    return None


class HighlightOverlay:
    """
    The single active highlight set.

    show() always clears first, so at most one set is visible at a time.
    Listeners are called with no arguments after every change.
    """

    def __init__(self):
        self.page_index: Optional[int] = None
        self.rects: list = []
        self.source: Optional[str] = None
        self._listeners: list[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener()

    @property
    def active(self) -> bool:
        return bool(self.rects)

    def rects_for(self, page_index: int) -> list:
        if page_index != self.page_index:
            return []
        return list(self.rects)

    def clear(self) -> None:
        had_rects = self.active
        self.page_index = None
        self.rects = []
        self.source = None
        if had_rects:
            self._notify()

    def show(self, page_index: int, rects: Sequence[fitz.Rect], source: str) -> None:
        self.clear()
        self.page_index = page_index
        self.rects = [fitz.Rect(r) for r in rects]
        self.source = source
        self._notify()


class HighlightMatcher:
    """Matches phrases against the text layers in a PageStore."""

    def __init__(
        self, page_store: PageStore, overlay: HighlightOverlay, strategies=None
    ):
        self.page_store = page_store
        self.overlay = overlay
        self.strategies = tuple(strategies or DEFAULT_STRATEGIES)

    def find(self, page_index: int, phrase: str) -> Optional[MatchResult]:
        record = self.page_store.get(page_index)
        if record is None:
            return None
        return find_highlight_rects(record.spans, phrase, self.strategies)

    def match_and_highlight(self, page_index: int, phrase: str) -> bool:
        """
        Highlight phrase on a page.

        Prior highlights are cleared whether or not anything matches.

        Returns:
            True if a highlight is now shown
        """
        self.overlay.clear()
        result = self.find(page_index, phrase)
        if result is None:
            logger.debug("No match for %r on page %d", phrase, page_index)
            return False
        self.overlay.show(page_index, result.rects, source=result.strategy)
        logger.debug(
            "Matched %r on page %d (%s, %d rects)",
            phrase,
            page_index,
            result.strategy,
            len(result.rects),
        )
        return True
