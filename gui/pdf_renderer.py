"""
PDF Rendering Engine with LRU Caching.

This module drives page rendering for the viewer:
- LRU-cached pixmap generation for efficient re-renders at a known zoom
- Sequential page-by-page rendering with text layer synthesis
- Cancellation when the document view is torn down
"""

import logging
from collections import OrderedDict
from typing import Callable, Optional

import fitz
from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QImage, QPixmap

from page_source import FitzPageSource
from render_pipeline import SequentialPageRenderer
from scheduling import Scheduler
from text_layer import PageRecord, PageStore

logger = logging.getLogger(__name__)


def pixmap_to_qpixmap(pix: fitz.Pixmap) -> QPixmap:
    """Convert a fitz pixmap to a QPixmap that owns its data."""
    fmt = QImage.Format.Format_RGBA8888 if pix.alpha else QImage.Format.Format_RGB888
    qimg = QImage(pix.samples, pix.width, pix.height, pix.stride, fmt).copy()
    return QPixmap.fromImage(qimg)


class PixmapCache:
    """
    Byte-budgeted LRU of page pixmaps keyed by (file_path, page_idx, zoom).

    Only one zoom level is useful at a time: a pass at a new zoom drops the
    others through retain_zoom().
    """

    DEFAULT_MAX_BYTES: int = 256 * 1024 * 1024  # 256 MB

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes
        self._entries: OrderedDict[tuple, QPixmap] = OrderedDict()
        self._used_bytes: int = 0

    @staticmethod
    def _pixmap_bytes(pixmap: QPixmap) -> int:
        # 4 bytes per pixel
        if pixmap.isNull():
            return 0
        return pixmap.width() * pixmap.height() * 4

    def get(self, key: tuple) -> Optional[QPixmap]:
        pixmap = self._entries.get(key)
        if pixmap is not None:
            self._entries.move_to_end(key)
        return pixmap

    def put(self, key: tuple, pixmap: QPixmap) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
            return
        size = self._pixmap_bytes(pixmap)
        while self._entries and self._used_bytes + size > self.max_bytes:
            self._drop(next(iter(self._entries)))
        self._entries[key] = pixmap
        self._used_bytes += size

    def retain_zoom(self, zoom: float) -> int:
        """Evict every pixmap not rendered at zoom. Returns how many went."""
        stale = [key for key in self._entries if key[2] != zoom]
        for key in stale:
            self._drop(key)
        if stale:
            logger.debug("Evicted %d pixmaps outside zoom %s", len(stale), zoom)
        return len(stale)

    def _drop(self, key: tuple) -> None:
        self._used_bytes -= self._pixmap_bytes(self._entries.pop(key))

    def clear(self) -> None:
        self._entries.clear()
        self._used_bytes = 0

    @property
    def used_bytes(self) -> int:
        return self._used_bytes

    def __len__(self) -> int:
        return len(self._entries)


class PDFRenderer(QObject):
    """
    Renders one document into a PageStore, page after page.

    Pixmaps are cached per (file, page, zoom); text layers are rebuilt on
    every pass since the page records are replaced in place.
    """

    render_complete = pyqtSignal()

    def __init__(self, max_bytes: int = PixmapCache.DEFAULT_MAX_BYTES):
        super().__init__()
        self.pixmap_cache = PixmapCache(max_bytes=max_bytes)
        self.page_source: Optional[FitzPageSource] = None
        self._pipeline: Optional[SequentialPageRenderer] = None

    @property
    def file_path(self) -> Optional[str]:
        return self.page_source.file_path if self.page_source else None

    def open(self, file_path: str) -> int:
        """Open a document, closing the previous one. Returns its page count."""
        self.close_document()
        self.page_source = FitzPageSource(file_path)
        return self.page_source.page_count

    def get_cached_pixmap(self, page_idx: int, zoom: float) -> QPixmap:
        zoom_key = round(zoom, 2)
        cache_key = (self.file_path, page_idx, zoom_key)
        pixmap = self.pixmap_cache.get(cache_key)
        if pixmap is None:
            pixmap = pixmap_to_qpixmap(self.page_source.rasterize(page_idx, zoom_key))
            self.pixmap_cache.put(cache_key, pixmap)
        return pixmap

    def render_document(
        self,
        page_store: PageStore,
        scheduler: Scheduler,
        zoom: float,
        page_ready_callback: Optional[Callable[[int, PageRecord], None]] = None,
    ) -> None:
        """
        Start rendering every page of the open document.

        Any pass still in flight is cancelled first. Pages arrive through
        page_ready_callback in page order.
        """
        self.cancel()
        if self.page_source is None:
            return

        zoom_key = round(zoom, 2)
        self.pixmap_cache.retain_zoom(zoom_key)
        self._pipeline = SequentialPageRenderer(
            self.page_source,
            page_store,
            scheduler,
            zoom=zoom_key,
            rasterize=self.get_cached_pixmap,
            on_page_ready=page_ready_callback,
            on_finished=self.render_complete.emit,
        )
        self._pipeline.start()

    def cancel(self) -> None:
        if self._pipeline is not None:
            self._pipeline.cancel()
            self._pipeline = None

    def close_document(self) -> None:
        self.cancel()
        self.pixmap_cache.clear()
        if self.page_source is not None:
            self.page_source.close()
            self.page_source = None

    def cleanup(self) -> None:
        """Release all resources."""
        self.close_document()

    def get_cache_stats(self) -> dict:
        return {
            "cached_pages": len(self.pixmap_cache),
            "used_bytes": self.pixmap_cache.used_bytes,
        }
