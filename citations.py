"""
Citation Controller.

Maps static citation ids to a page and a canonical phrase, and drives the
activation sequence on a cancellable scheduler:

    IDLE -> SCROLLING -> HIGHLIGHTING -> PINNED | EXPIRING -> IDLE

Every deferred step carries the generation it was scheduled under and does
nothing once a newer activation has started.
"""

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import fitz  # PyMuPDF

from highlight_logic import HighlightMatcher, HighlightOverlay
from scheduling import Scheduler
from text_layer import PageStore

logger = logging.getLogger(__name__)


class CitationTableError(ValueError):
    """Raised for a malformed citation table."""


@dataclass(frozen=True)
class FallbackBox:
    """Approximate highlight in page fractions, with a fixed pixel height."""

    top_pct: float
    left_pct: float
    width_pct: float
    height_px: float

    def to_rect(self, page_width: float, page_height: float) -> fitz.Rect:
        left = round(page_width * self.left_pct)
        top = round(page_height * self.top_pct)
        width = round(page_width * self.width_pct)
        return fitz.Rect(left, top, left + width, top + self.height_px)


@dataclass(frozen=True)
class Citation:
    id: str
    page_index: int
    phrase: str
    fallback: FallbackBox
    label: str = ""
    excerpt: str = ""


@dataclass(frozen=True)
class CitationTimings:
    """Delays in milliseconds, all measured from activation."""

    scroll_delay_ms: int = 120
    highlight_delay_ms: int = 420
    expire_delay_ms: int = 4500


DEFAULT_CITATIONS = {
    c.id: c
    for c in (
        Citation(
            id="p3",
            page_index=2,
            phrase="EBITDA of USD 2.3",
            fallback=FallbackBox(top_pct=0.32, left_pct=0.29, width_pct=0.56, height_px=50),
            label="[1] Page 3",
            excerpt="EBITDA of USD 2.3 bn (USD 2.1 bn) driven by volume & "
            "operational improvements.",
        ),
        Citation(
            id="p5",
            page_index=4,
            phrase="EBITDA increased to USD 2.3",
            fallback=FallbackBox(top_pct=0.39, left_pct=0.29, width_pct=0.56, height_px=50),
            label="[2] Page 5",
            excerpt="EBITDA increased to USD 2.3 bn, revenue growth and cost "
            "control across segments.",
        ),
        Citation(
            id="p15",
            page_index=14,
            phrase="Gain on sale of non-current assets",
            fallback=FallbackBox(top_pct=0.47, left_pct=0.29, width_pct=0.56, height_px=50),
            label="[3] Page 15",
            excerpt="Gain on sale of non-current assets, net: 25 (208), reported "
            "below EBITDA.",
        ),
    )
}


def load_citations(path) -> dict[str, Citation]:
    """
    Load a citation table from JSON.

    Expected layout::

        {"p3": {"page_index": 2, "phrase": "...",
                "fallback": {"top_pct": 0.32, "left_pct": 0.29,
                             "width_pct": 0.56, "height_px": 50},
                "label": "[1] Page 3", "excerpt": "..."}}
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CitationTableError(f"Cannot read citation table {path}: {e}") from e
    if not isinstance(raw, dict):
        raise CitationTableError(f"{path}: top level must be an object")

    table = {}
    for cid, entry in raw.items():
        try:
            fb = entry["fallback"]
            table[cid] = Citation(
                id=cid,
                page_index=int(entry["page_index"]),
                phrase=str(entry["phrase"]),
                fallback=FallbackBox(
                    top_pct=float(fb["top_pct"]),
                    left_pct=float(fb["left_pct"]),
                    width_pct=float(fb["width_pct"]),
                    height_px=float(fb["height_px"]),
                ),
                label=str(entry.get("label", cid)),
                excerpt=str(entry.get("excerpt", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CitationTableError(f"{path}: bad entry {cid!r}: {e}") from e
    return table


class CitationState(enum.Enum):
    IDLE = "idle"
    SCROLLING = "scrolling"
    HIGHLIGHTING = "highlighting"
    PINNED = "pinned"
    EXPIRING = "expiring"


class CitationController:
    """
    Owns the highlight lifecycle for citation activations.

    Only one citation is active at a time; activating another cancels every
    pending step of the previous one and starts over.
    """

    def __init__(
        self,
        page_store: PageStore,
        overlay: HighlightOverlay,
        scheduler: Scheduler,
        citations: Optional[dict] = None,
        scroll_to_page: Optional[Callable[[int], None]] = None,
        timings: Optional[CitationTimings] = None,
        matcher: Optional[HighlightMatcher] = None,
    ):
        self.page_store = page_store
        self.overlay = overlay
        self.scheduler = scheduler
        self.citations = dict(DEFAULT_CITATIONS if citations is None else citations)
        self.scroll_to_page = scroll_to_page
        self.timings = timings or CitationTimings()
        self.matcher = matcher or HighlightMatcher(page_store, overlay)

        self.state = CitationState.IDLE
        self.active_citation: Optional[Citation] = None
        self.pinned = False
        self.generation = 0
        self._pending: list = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def activate(self, citation_id: str, persistent: bool = False) -> None:
        citation = self.citations.get(citation_id)
        if citation is None:
            logger.warning("Unknown citation %r", citation_id)
            return

        self._cancel_pending()
        self.generation += 1
        generation = self.generation

        self.overlay.clear()
        self.active_citation = citation
        self.pinned = bool(persistent)
        self.state = CitationState.SCROLLING
        logger.debug(
            "Activating %s (page %d, generation %d, persistent=%s)",
            citation.id,
            citation.page_index,
            generation,
            self.pinned,
        )

        t = self.timings
        self._defer(t.scroll_delay_ms, generation, self._scroll_step)
        self._defer(t.highlight_delay_ms, generation, self._highlight_step)
        if not self.pinned:
            self._defer(t.expire_delay_ms, generation, self._expire_step)

    def match_and_highlight(self, page_index: int, phrase: str) -> bool:
        return self.matcher.match_and_highlight(page_index, phrase)

    def clear(self) -> None:
        """Drop the active citation and its highlight immediately."""
        self._cancel_pending()
        self.generation += 1
        self.overlay.clear()
        self.active_citation = None
        self.pinned = False
        self.state = CitationState.IDLE

    # ------------------------------------------------------------------
    # Deferred steps
    # ------------------------------------------------------------------

    def _defer(self, delay_ms: int, generation: int, step: Callable[[], None]) -> None:
        def run():
            if generation != self.generation:
                return
            step()

        self._pending.append(self.scheduler.call_later(delay_ms, run))

    def _cancel_pending(self) -> None:
        for call in self._pending:
            call.cancel()
        self._pending = []

    def _scroll_step(self) -> None:
        citation = self.active_citation
        if self.scroll_to_page is not None:
            self.scroll_to_page(citation.page_index)
        self.state = CitationState.HIGHLIGHTING

    def _highlight_step(self) -> None:
        citation = self.active_citation
        if not self.matcher.match_and_highlight(citation.page_index, citation.phrase):
            self._show_fallback(citation)
        self.state = CitationState.PINNED if self.pinned else CitationState.EXPIRING

    def _show_fallback(self, citation: Citation) -> None:
        record = self.page_store.get(citation.page_index)
        if record is None:
            logger.warning(
                "Page %d not rendered; no highlight for %s",
                citation.page_index,
                citation.id,
            )
            return
        logger.warning(
            "Phrase %r not found on page %d; using approximate box",
            citation.phrase,
            citation.page_index,
        )
        rect = citation.fallback.to_rect(record.width, record.height)
        self.overlay.show(citation.page_index, [rect], source="fallback")

    def _expire_step(self) -> None:
        self.overlay.clear()
        self.active_citation = None
        self.state = CitationState.IDLE
