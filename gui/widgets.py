from PyQt6.QtWidgets import (
    QCheckBox,
    QLabel,
    QPushButton,
    QVBoxLayout,
    QWidget,
)
from PyQt6.QtGui import QPainter, QColor
from PyQt6.QtCore import Qt, pyqtSignal, QRectF

# rgba(255, 255, 0, 0.6)
HIGHLIGHT_COLOR = QColor(255, 255, 0, 153)
MIN_HIGHLIGHT_PX = 2


class PDFPageLabel(QLabel):
    """One rendered page; paints the active highlight rects over the raster."""

    def __init__(self, pixmap, page_index, highlights=None, color=HIGHLIGHT_COLOR):
        super().__init__()
        self.original_pixmap = pixmap
        self.page_index = page_index
        self.highlights = list(highlights or [])
        self.color = color
        self.setFixedSize(pixmap.size())
        self.draw_highlights()

    def set_highlights(self, rects):
        if not rects and not self.highlights:
            return
        self.highlights = list(rects)
        self.draw_highlights()

    def draw_highlights(self):
        if not self.highlights:
            self.setPixmap(self.original_pixmap)
            return

        canvas = self.original_pixmap.copy()
        painter = QPainter(canvas)
        painter.setBrush(self.color)
        painter.setPen(Qt.PenStyle.NoPen)
        for rect in self.highlights:
            painter.drawRect(
                QRectF(
                    rect.x0,
                    rect.y0,
                    max(MIN_HIGHLIGHT_PX, rect.width),
                    max(MIN_HIGHLIGHT_PX, rect.height),
                )
            )
        painter.end()
        self.setPixmap(canvas)


class CitationPanel(QWidget):
    """Citation buttons with their excerpts and a pin toggle."""

    citationActivated = pyqtSignal(str, bool)  # citation id, persistent

    def __init__(self, citations, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)

        title = QLabel("Citations")
        title.setStyleSheet("font-weight: 700; font-size: 16px;")
        layout.addWidget(title)

        self.pin_checkbox = QCheckBox("Pin highlight")
        self.pin_checkbox.setToolTip("Keep the highlight until the next citation")
        layout.addWidget(self.pin_checkbox)

        self.buttons = {}
        for citation in citations.values():
            btn = QPushButton(citation.label or citation.id)
            btn.clicked.connect(
                lambda _checked=False, cid=citation.id: self.citationActivated.emit(
                    cid, self.pin_checkbox.isChecked()
                )
            )
            layout.addWidget(btn)
            self.buttons[citation.id] = btn

            if citation.excerpt:
                excerpt = QLabel(citation.excerpt)
                excerpt.setWordWrap(True)
                excerpt.setStyleSheet("color: #a6adc8; margin-bottom: 8px;")
                layout.addWidget(excerpt)

        layout.addStretch()
