"""
Main Application Window for PDFCite.

This module provides the viewer window that integrates:
- Sequential page rendering via the PDFRenderer engine
- The citation panel and the CitationController lifecycle
- Centered smooth scrolling to cited pages
- Dark theme styling
"""

import logging
import os
from typing import Optional

import psutil
from PyQt6.QtWidgets import (
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QLabel,
    QSplitter,
    QScrollArea,
    QMessageBox,
    QFileDialog,
    QApplication,
    QFrame,
)
from PyQt6.QtGui import QAction, QColor, QPalette
from PyQt6.QtCore import Qt, QTimer, QPropertyAnimation, QEasingCurve

from citations import CitationController, DEFAULT_CITATIONS
from highlight_logic import HighlightOverlay
from text_layer import PageStore, RENDER_ZOOM
from gui.pdf_renderer import PDFRenderer
from gui.scheduler import QtScheduler
from gui.widgets import CitationPanel, PDFPageLabel

logger = logging.getLogger(__name__)


class Theme:
    """Dark theme color definitions (Catppuccin-inspired)."""

    BASE = "#1e1e2e"
    MANTLE = "#181825"
    CRUST = "#11111b"
    SURFACE0 = "#313244"
    SURFACE1 = "#45475a"
    TEXT = "#cdd6f4"
    SUBTEXT0 = "#a6adc8"
    BLUE = "#89b4fa"
    LAVENDER = "#b4befe"
    MAUVE = "#cba6f7"


class MainWindow(QMainWindow):
    """
    Viewer window.

    Owns the PageStore, the HighlightOverlay and the CitationController;
    page widgets are added as the renderer finishes each page.
    """

    SCROLL_ANIMATION_MS = 300

    def __init__(
        self,
        file_path: Optional[str] = None,
        citations: Optional[dict] = None,
        zoom: float = RENDER_ZOOM,
    ):
        super().__init__()
        self.setWindowTitle("PDFCite")
        self.resize(1400, 900)
        self.apply_modern_theme()
        self.status_bar = self.statusBar()
        self.status_bar.showMessage("Ready. Open a PDF to start.")

        # Core components
        self.page_store = PageStore()
        self.overlay = HighlightOverlay()
        self.scheduler = QtScheduler(self)
        self.renderer = PDFRenderer()
        self.citations = dict(DEFAULT_CITATIONS if citations is None else citations)
        self.controller = CitationController(
            self.page_store,
            self.overlay,
            self.scheduler,
            citations=self.citations,
            scroll_to_page=self.scroll_to_page,
        )
        self.process = psutil.Process(os.getpid())

        # State
        self.zoom_level = zoom
        self.page_widgets: dict[int, PDFPageLabel] = {}
        self._scroll_animation = None

        self.overlay.subscribe(self._on_highlights_changed)
        self.renderer.render_complete.connect(self._on_render_complete)

        self.init_ui()

        self.stats_timer = QTimer(self)
        self.stats_timer.timeout.connect(self.update_stats)
        self.stats_timer.start(2000)

        if file_path:
            self.open_document(file_path)

    def apply_modern_theme(self):
        palette = QPalette()
        palette.setColor(QPalette.ColorRole.Window, QColor(Theme.BASE))
        palette.setColor(QPalette.ColorRole.WindowText, QColor(Theme.TEXT))
        palette.setColor(QPalette.ColorRole.Base, QColor(Theme.MANTLE))
        palette.setColor(QPalette.ColorRole.Text, QColor(Theme.TEXT))
        palette.setColor(QPalette.ColorRole.Button, QColor(Theme.SURFACE0))
        palette.setColor(QPalette.ColorRole.ButtonText, QColor(Theme.TEXT))
        palette.setColor(QPalette.ColorRole.Highlight, QColor(Theme.MAUVE))
        palette.setColor(QPalette.ColorRole.HighlightedText, QColor(Theme.CRUST))
        QApplication.setPalette(palette)

        QApplication.instance().setStyleSheet(f"""
            QPushButton {{
                background-color: {Theme.BLUE};
                color: {Theme.CRUST};
                border: none;
                border-radius: 10px;
                padding: 8px 14px;
                font-weight: 600;
            }}
            QPushButton:hover {{
                background-color: {Theme.LAVENDER};
            }}
            QScrollArea {{
                background-color: {Theme.MANTLE};
                border: 1px solid {Theme.SURFACE1};
                border-radius: 12px;
            }}
        """)

    def init_ui(self):
        open_action = QAction("Open PDF...", self)
        open_action.setShortcut("Ctrl+O")
        open_action.triggered.connect(self.choose_document)
        toolbar = self.addToolBar("File")
        toolbar.addAction(open_action)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        self.setCentralWidget(splitter)

        # Page column
        self.page_container = QWidget()
        self.page_layout = QVBoxLayout(self.page_container)
        self.page_layout.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        self.page_layout.setSpacing(10)

        self.page_scroll = QScrollArea()
        self.page_scroll.setWidgetResizable(True)
        self.page_scroll.setFrameShape(QFrame.Shape.NoFrame)
        self.page_scroll.setWidget(self.page_container)
        self.page_scroll.setMinimumWidth(640)

        # Citation panel
        self.citation_panel = CitationPanel(self.citations)
        self.citation_panel.citationActivated.connect(self.controller.activate)
        panel_scroll = QScrollArea()
        panel_scroll.setWidgetResizable(True)
        panel_scroll.setWidget(self.citation_panel)
        panel_scroll.setMinimumWidth(360)

        self.lbl_stats = QLabel()
        self.status_bar.addPermanentWidget(self.lbl_stats)

        splitter.addWidget(self.page_scroll)
        splitter.addWidget(panel_scroll)
        splitter.setStretchFactor(0, 2)
        splitter.setStretchFactor(1, 1)

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def choose_document(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Open PDF", "", "PDF files (*.pdf)"
        )
        if file_path:
            self.open_document(file_path)

    def open_document(self, file_path: str):
        self.controller.clear()
        self._clear_pages()
        self.page_store.clear()
        try:
            page_count = self.renderer.open(file_path)
        except (FileNotFoundError, RuntimeError, ValueError) as e:
            logger.error("Cannot open %s: %s", file_path, e)
            QMessageBox.critical(self, "Open failed", f"Cannot open {file_path}:\n{e}")
            return
        self.setWindowTitle(f"PDFCite - {os.path.basename(file_path)}")
        self.status_bar.showMessage(f"Rendering {page_count} pages...")
        self.render_pages()

    def render_pages(self):
        """(Re)render every page at the current zoom; page records are reused."""
        self.controller.clear()
        self._clear_pages()
        self.renderer.render_document(
            self.page_store,
            self.scheduler,
            self.zoom_level,
            page_ready_callback=self._on_page_ready,
        )

    def _clear_pages(self):
        while self.page_layout.count():
            item = self.page_layout.takeAt(0)
            widget = item.widget()
            if widget:
                widget.deleteLater()
        self.page_widgets.clear()

    def _on_page_ready(self, page_idx, record):
        widget = PDFPageLabel(
            record.raster, page_idx, highlights=self.overlay.rects_for(page_idx)
        )
        self.page_widgets[page_idx] = widget
        self.page_layout.addWidget(widget)

    def _on_render_complete(self):
        self.status_bar.showMessage(f"Rendered {len(self.page_widgets)} pages.", 4000)

    # ------------------------------------------------------------------
    # Highlights and scrolling
    # ------------------------------------------------------------------

    def _on_highlights_changed(self):
        for page_idx, widget in self.page_widgets.items():
            widget.set_highlights(self.overlay.rects_for(page_idx))

    def scroll_to_page(self, page_idx: int):
        """Smooth-scroll so the page sits in the middle of the viewport."""
        widget = self.page_widgets.get(page_idx)
        if widget is None:
            logger.debug("Page %d has no widget yet; not scrolling", page_idx)
            return
        bar = self.page_scroll.verticalScrollBar()
        viewport_height = self.page_scroll.viewport().height()
        target = int(widget.y() + widget.height() / 2 - viewport_height / 2)
        target = max(bar.minimum(), min(bar.maximum(), target))

        if self._scroll_animation is not None:
            self._scroll_animation.stop()
        self._scroll_animation = QPropertyAnimation(bar, b"value", self)
        self._scroll_animation.setDuration(self.SCROLL_ANIMATION_MS)
        self._scroll_animation.setStartValue(bar.value())
        self._scroll_animation.setEndValue(target)
        self._scroll_animation.setEasingCurve(QEasingCurve.Type.OutCubic)
        self._scroll_animation.start()

    def change_zoom(self, delta):
        self.zoom_level = max(0.5, min(3.0, self.zoom_level + delta))
        self.status_bar.showMessage(f"Zoom Level: {self.zoom_level:.1f}x", 2000)
        if self.renderer.page_source is not None:
            self.render_pages()

    def update_stats(self):
        cache_stats = self.renderer.get_cache_stats()
        self.lbl_stats.setText(
            f"Memory: {self.process.memory_info().rss / 1024 / 1024:.1f} MB | "
            f"Cache: {cache_stats['cached_pages']} pages / "
            f"{cache_stats['used_bytes'] / 1024 / 1024:.0f} MB"
        )

    def keyPressEvent(self, event):
        """Global keyboard shortcuts."""
        if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
            if event.key() == Qt.Key.Key_Plus or event.key() == Qt.Key.Key_Equal:
                self.change_zoom(0.1)
                event.accept()
                return
            elif event.key() == Qt.Key.Key_Minus:
                self.change_zoom(-0.1)
                event.accept()
                return
        super().keyPressEvent(event)

    def wheelEvent(self, event):
        """Handle Ctrl+Scroll for zooming."""
        if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
            delta = event.angleDelta().y()
            if delta > 0:
                self.change_zoom(0.1)
            elif delta < 0:
                self.change_zoom(-0.1)
            event.accept()
        else:
            super().wheelEvent(event)

    def closeEvent(self, event):
        """Cancel rendering and release resources on window close."""
        self.controller.clear()
        self.renderer.cleanup()
        self.page_store.clear()
        super().closeEvent(event)
