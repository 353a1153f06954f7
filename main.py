"""
PDFCite entry point.

    python main.py report.pdf                       # open the viewer
    python main.py report.pdf --find "EBITDA of USD 2.3" --page 3
"""

import argparse
import logging
import sys

from citations import DEFAULT_CITATIONS, CitationTableError, load_citations
from highlight_logic import HighlightMatcher, HighlightOverlay
from page_source import FitzPageSource
from text_layer import RENDER_ZOOM, PageStore, synthesize_text_layer

logger = logging.getLogger("pdfcite")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="PDF viewer with citation highlights")
    parser.add_argument("pdf", nargs="?", help="PDF file to open")
    parser.add_argument("--citations", help="JSON citation table")
    parser.add_argument("--zoom", type=float, default=RENDER_ZOOM)
    parser.add_argument("--find", metavar="PHRASE", help="Search without the GUI")
    parser.add_argument(
        "--page", type=int, default=1, help="1-based page for --find (default: 1)"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def find_phrase(pdf_path: str, page_number: int, phrase: str, zoom: float) -> int:
    """Print the highlight rects for phrase on one page; exit status 0 on a hit."""
    page_index = page_number - 1
    store = PageStore()
    overlay = HighlightOverlay()
    with FitzPageSource(pdf_path) as source:
        if not 0 <= page_index < source.page_count:
            logger.error("%s has no page %d", pdf_path, page_number)
            return 2
        record = store.get_or_create(page_index)
        viewport = source.get_viewport(page_index, zoom)
        record.raster = source.rasterize(page_index, zoom)
        synthesize_text_layer(record, viewport, source.get_fragments(page_index))

    matcher = HighlightMatcher(store, overlay)
    if not matcher.match_and_highlight(page_index, phrase):
        print(f"No match for {phrase!r} on page {page_number}")
        return 1
    print(f"{overlay.source} match on page {page_number}:")
    for rect in overlay.rects:
        print(f"  x={rect.x0:.0f} y={rect.y0:.0f} w={rect.width:.0f} h={rect.height:.0f}")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    citations = DEFAULT_CITATIONS
    if args.citations:
        try:
            citations = load_citations(args.citations)
        except CitationTableError as e:
            logger.error("%s", e)
            return 2

    if args.find:
        if not args.pdf:
            logger.error("--find needs a PDF file")
            return 2
        return find_phrase(args.pdf, args.page, args.find, args.zoom)

    from PyQt6.QtWidgets import QApplication

    from gui.main_window import MainWindow

    app = QApplication(sys.argv[:1])
    window = MainWindow(args.pdf, citations=citations, zoom=args.zoom)
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
