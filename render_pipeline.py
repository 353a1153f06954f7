"""
Sequential page rendering.

Pages are rendered strictly in order on the scheduler: page N+1 is scheduled
only once page N has its raster and text layer. A page that fails is logged
and skipped; cancel() stops the loop before the next page.
"""

import logging
from typing import Callable, Optional

from page_source import PageSource
from scheduling import Scheduler
from text_layer import RENDER_ZOOM, PageRecord, PageStore, synthesize_text_layer

logger = logging.getLogger(__name__)


class SequentialPageRenderer:
    """
    Renders every page of a page source into a PageStore.

    Args:
        page_source: Provides viewports, fragments and (by default) rasters
        page_store: Receives one PageRecord per rendered page
        scheduler: Runs one page per deferred call
        zoom: Scale shared by every page of the pass
        rasterize: Optional callable(page_index, zoom) replacing
            page_source.rasterize, e.g. a cached pixmap lookup
        on_page_ready: Optional callback(page_index, PageRecord)
        on_finished: Optional callback() once the last page is done
    """

    def __init__(
        self,
        page_source: PageSource,
        page_store: PageStore,
        scheduler: Scheduler,
        zoom: float = RENDER_ZOOM,
        rasterize: Optional[Callable] = None,
        on_page_ready: Optional[Callable[[int, PageRecord], None]] = None,
        on_finished: Optional[Callable[[], None]] = None,
    ):
        self.page_source = page_source
        self.page_store = page_store
        self.scheduler = scheduler
        self.zoom = zoom
        self.rasterize = rasterize or page_source.rasterize
        self.on_page_ready = on_page_ready
        self.on_finished = on_finished

        self.failed_pages: list[int] = []
        self._cancelled = False
        self._running = False
        self._next_call = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running or self._cancelled:
            return
        self._running = True
        self.failed_pages = []
        self._schedule(0)

    def cancel(self) -> None:
        self._cancelled = True
        self._running = False
        if self._next_call is not None:
            self._next_call.cancel()
            self._next_call = None

    def _schedule(self, page_index: int) -> None:
        if self._cancelled:
            return
        self._next_call = self.scheduler.call_later(
            0, lambda: self._render_page(page_index)
        )

    def _render_page(self, page_index: int) -> None:
        self._next_call = None
        if self._cancelled:
            return

        try:
            page_count = self.page_source.page_count
        except Exception:
            logger.exception("Page source unavailable; stopping render")
            self._finish()
            return
        if page_index >= page_count:
            self._finish()
            return

        try:
            viewport = self.page_source.get_viewport(page_index, self.zoom)
            raster = self.rasterize(page_index, self.zoom)
            fragments = self.page_source.get_fragments(page_index)
            # Built off-store so a failure leaves the stored record untouched
            scratch = PageRecord(page_index, raster=raster)
            synthesize_text_layer(scratch, viewport, fragments)
        except Exception:
            logger.exception("Failed to render page %d", page_index)
            self.failed_pages.append(page_index)
            self._schedule(page_index + 1)
            return

        # The view may have been torn down while the page was rasterizing
        if self._cancelled:
            return

        record = self.page_store.get_or_create(page_index)
        record.width = scratch.width
        record.height = scratch.height
        record.raster = scratch.raster
        record.text_layer = scratch.text_layer

        if self.on_page_ready is not None:
            self.on_page_ready(page_index, record)
        self._schedule(page_index + 1)

    def _finish(self) -> None:
        self._running = False
        logger.info(
            "Rendered %d pages (%d failed)", len(self.page_store), len(self.failed_pages)
        )
        if self.on_finished is not None:
            self.on_finished()
