"""
Page sources.

A page source hands out, per page index, a pixel viewport and the page's text
fragments in reading order, and rasterizes the page. FitzPageSource provides
them from a PDF file through PyMuPDF.
"""

import logging
from typing import Optional

import fitz  # PyMuPDF

from text_layer import TextFragment, Viewport

logger = logging.getLogger(__name__)


class PageSource:
    """Interface consumed by the render pipeline."""

    @property
    def page_count(self) -> int:
        raise NotImplementedError

    def get_viewport(self, page_index: int, scale: float) -> Viewport:
        raise NotImplementedError

    def get_fragments(self, page_index: int) -> list[TextFragment]:
        raise NotImplementedError

    def rasterize(self, page_index: int, scale: float):
        raise NotImplementedError

    def close(self) -> None:
        pass


class FitzPageSource(PageSource):
    """
    PyMuPDF-backed page source.

    Each span of page.get_text("dict") becomes one TextFragment whose
    transform is built from the line direction and the span font size, with
    the span origin (a baseline point) as translation.

    Origins are in unrotated page space and the viewport matrix rotates
    them; span boxes stay horizontal, so on a rotated page a box starts at
    its text but runs across the page instead of along the rotated text.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path
        self._doc: Optional[fitz.Document] = fitz.open(file_path)
        logger.info("Opened %s (%d pages)", file_path, len(self._doc))

    @property
    def doc(self) -> fitz.Document:
        if self._doc is None:
            raise ValueError(f"{self.file_path} is closed")
        return self._doc

    @property
    def page_count(self) -> int:
        return len(self.doc)

    def get_viewport(self, page_index: int, scale: float) -> Viewport:
        page = self.doc[page_index]
        rect = page.rect
        return Viewport.for_page_size(
            rect.width, rect.height, scale, rotation_matrix=page.rotation_matrix
        )

    def get_fragments(self, page_index: int) -> list[TextFragment]:
        page = self.doc[page_index]
        fragments = []
        for block in page.get_text("dict")["blocks"]:
            if block.get("type", 0) != 0:
                continue
            for line in block["lines"]:
                cos, sin = line.get("dir", (1.0, 0.0))
                for span in line["spans"]:
                    size = span["size"]
                    ox, oy = span["origin"]
                    fragments.append(
                        TextFragment(
                            text=span["text"],
                            transform=(
                                size * cos,
                                size * sin,
                                -size * sin,
                                size * cos,
                                ox,
                                oy,
                            ),
                        )
                    )
        return fragments

    def rasterize(self, page_index: int, scale: float) -> fitz.Pixmap:
        return self.doc[page_index].get_pixmap(matrix=fitz.Matrix(scale, scale))

    def close(self) -> None:
        if self._doc is not None:
            self._doc.close()
            self._doc = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
