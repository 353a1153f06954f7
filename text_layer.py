"""
Text Layer Engine.

This module turns raw glyph-run data into an invisible, measurable text layer:
- Span geometry: glyph transform + viewport -> pixel bounding box
- Width measurement as a second pass over the placed spans
- Idempotent text-layer synthesis per page, stored in a PageStore
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

# Fixed zoom for one render pass; every page of a pass shares it
RENDER_ZOOM = 1.2

# Helvetica metrics, the built-in stand-in for Arial
MEASURE_FONT = "helv"


class TextLayerError(Exception):
    """Raised when a text layer is synthesized out of order."""


@dataclass(frozen=True)
class Viewport:
    """Pixel frame of one rendered page."""

    width: float
    height: float
    scale: float
    matrix: fitz.Matrix = field(default_factory=lambda: fitz.Matrix(1, 1))

    @classmethod
    def for_page_size(
        cls,
        page_width: float,
        page_height: float,
        scale: float,
        rotation_matrix: Optional[fitz.Matrix] = None,
    ) -> "Viewport":
        """
        Viewport of a page of the given (displayed) size in points.

        rotation_matrix maps unrotated page space onto the displayed page;
        omit it for unrotated pages.
        """
        matrix = fitz.Matrix(scale, scale)
        if rotation_matrix is not None:
            matrix = rotation_matrix * matrix
        return cls(
            width=page_width * scale,
            height=page_height * scale,
            scale=scale,
            matrix=matrix,
        )

    def convert_to_viewport_point(self, x: float, y: float) -> tuple[float, float]:
        p = fitz.Point(x, y) * self.matrix
        return p.x, p.y


@dataclass(frozen=True)
class TextFragment:
    """
    One glyph run as delivered by the page source.

    transform is (a, b, c, d, e, f); (e, f) is the baseline origin in page space.
    """

    text: str
    transform: tuple


@dataclass
class Span:
    text: str
    bbox: fitz.Rect
    font_size: float
    page_index: int


@dataclass
class TextLayer:
    """Invisible overlay sized to the viewport, one fragment per span."""

    width: float
    height: float
    spans: list
    visible: bool = False

    @property
    def fragment_count(self) -> int:
        return len(self.spans)


@dataclass
class PageRecord:
    page_index: int
    width: float = 0.0
    height: float = 0.0
    raster: Any = None
    text_layer: Optional[TextLayer] = None

    @property
    def spans(self) -> list:
        if self.text_layer is None:
            return []
        return self.text_layer.spans


class PageStore:
    """
    Page-index keyed registry of PageRecords.

    Owned by the document view and handed to the renderer, matcher and
    citation controller by reference.
    """

    def __init__(self):
        self._records: dict[int, PageRecord] = {}

    def get(self, page_index: int) -> Optional[PageRecord]:
        return self._records.get(page_index)

    def get_or_create(self, page_index: int) -> PageRecord:
        record = self._records.get(page_index)
        if record is None:
            record = PageRecord(page_index)
            self._records[page_index] = record
        return record

    def clear(self) -> None:
        self._records.clear()

    def page_indices(self) -> list[int]:
        return sorted(self._records)

    def __contains__(self, page_index: int) -> bool:
        return page_index in self._records

    def __len__(self) -> int:
        return len(self._records)


# ----------------------------------------------------------------------
# Span geometry
# ----------------------------------------------------------------------


def build_span(
    fragment: TextFragment, viewport: Viewport, page_index: int
) -> Optional[Span]:
    """
    Place one fragment in viewport pixels.

    The transform origin is a text baseline, so the top edge sits one font
    height above it. Width stays zero until measure_spans() runs.

    Returns:
        The positioned Span, or None for whitespace-only fragments
    """
    text = fragment.text or ""
    if not text.strip():
        return None

    a, b, _c, _d, e, f = fragment.transform
    font_height = math.hypot(a, b) * viewport.scale
    x, y = viewport.convert_to_viewport_point(e, f)

    left = round(x)
    top = round(y - font_height)
    font_size = round(font_height)
    return Span(
        text=text,
        bbox=fitz.Rect(left, top, left, top + font_size),
        font_size=font_size,
        page_index=page_index,
    )


def measure_text_width(text: str, font_size: float) -> float:
    """Rendered width of text in pixels, with an estimate when metrics fail."""
    try:
        return fitz.get_text_length(text, fontname=MEASURE_FONT, fontsize=font_size)
    except (ValueError, RuntimeError) as e:
        logger.debug("Could not measure %r at %spx: %s", text, font_size, e)
        return 0.5 * font_size * len(text)


def measure_spans(spans: Iterable[Span]) -> list[Span]:
    """Second pass: resolve the width of every already-placed span."""
    measured = []
    for span in spans:
        width = math.ceil(measure_text_width(span.text, span.font_size))
        bbox = fitz.Rect(span.bbox.x0, span.bbox.y0, span.bbox.x0 + width, span.bbox.y1)
        measured.append(replace(span, bbox=bbox))
    return measured


# ----------------------------------------------------------------------
# Text layer synthesis
# ----------------------------------------------------------------------


def synthesize_text_layer(
    record: PageRecord, viewport: Viewport, fragments: Iterable[TextFragment]
) -> TextLayer:
    """
    Build the text layer of a page and store it on its record.

    Any previous layer is dropped before the new one is built, so repeated
    calls for the same page never accumulate fragments.

    Args:
        record: Page record that already holds the page raster
        viewport: Viewport the raster was rendered with
        fragments: Page source fragments in reading order

    Returns:
        The new TextLayer
    """
    if record.raster is None:
        raise TextLayerError(
            f"Page {record.page_index} has no raster; render it before its text layer"
        )

    record.text_layer = None

    placed = []
    for fragment in fragments:
        span = build_span(fragment, viewport, record.page_index)
        if span is not None:
            placed.append(span)

    layer = TextLayer(
        width=viewport.width,
        height=viewport.height,
        spans=measure_spans(placed),
    )
    record.width = viewport.width
    record.height = viewport.height
    record.text_layer = layer
    logger.debug(
        "Page %d text layer: %d fragments", record.page_index, layer.fragment_count
    )
    return layer
