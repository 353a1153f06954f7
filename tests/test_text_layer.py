import unittest
import math
import os
import sys
from unittest import mock

import fitz

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import text_layer
from highlight_logic import find_highlight_rects
from page_source import FitzPageSource
from text_layer import (
    PageStore,
    TextFragment,
    TextLayerError,
    Viewport,
    build_span,
    measure_spans,
    synthesize_text_layer,
)

TESTS_DIR = os.path.dirname(os.path.abspath(__file__))


def fragment(text, x, y, size=10.0):
    return TextFragment(text=text, transform=(size, 0.0, 0.0, size, x, y))


class TestSpanGeometry(unittest.TestCase):
    def setUp(self):
        self.viewport = Viewport.for_page_size(500, 700, scale=1.5)

    def test_baseline_to_top(self):
        span = build_span(fragment("Revenue", 100, 200, size=10), self.viewport, 3)
        # font height 15px; baseline at y=300px
        self.assertEqual(span.font_size, 15)
        self.assertEqual(span.bbox.x0, 150)
        self.assertEqual(span.bbox.y0, 285)
        self.assertEqual(span.bbox.y1, 300)
        self.assertEqual(span.page_index, 3)
        # width is resolved by the measuring pass
        self.assertEqual(span.bbox.width, 0)

    def test_font_height_ignores_rotation(self):
        angle = math.radians(30)
        frag = TextFragment(
            text="rotated",
            transform=(
                10 * math.cos(angle),
                10 * math.sin(angle),
                -10 * math.sin(angle),
                10 * math.cos(angle),
                0,
                100,
            ),
        )
        span = build_span(frag, self.viewport, 0)
        self.assertEqual(span.font_size, 15)

    def test_whitespace_fragments_dropped(self):
        self.assertIsNone(build_span(fragment("   ", 10, 10), self.viewport, 0))
        self.assertIsNone(build_span(fragment("", 10, 10), self.viewport, 0))

    def test_measure_pass_sets_width(self):
        span = build_span(fragment("Revenue", 100, 200), self.viewport, 0)
        (measured,) = measure_spans([span])
        expected = math.ceil(fitz.get_text_length("Revenue", fontname="helv", fontsize=15))
        self.assertEqual(measured.bbox.width, expected)
        self.assertEqual(measured.bbox.x0, span.bbox.x0)
        self.assertEqual(measured.bbox.y0, span.bbox.y0)

    def test_measure_failure_uses_estimate(self):
        span = build_span(fragment("abcd", 0, 100), self.viewport, 0)
        with mock.patch.object(
            text_layer.fitz, "get_text_length", side_effect=ValueError("no metrics")
        ):
            (measured,) = measure_spans([span])
        self.assertEqual(measured.bbox.width, math.ceil(0.5 * 15 * 4))


class TestTextLayerSynthesis(unittest.TestCase):
    def setUp(self):
        self.store = PageStore()
        self.viewport = Viewport.for_page_size(500, 700, scale=1.5)
        self.fragments = [
            fragment("Revenue", 50, 100),
            fragment("  ", 120, 100),
            fragment("growth", 50, 120),
            fragment("", 50, 140),
            fragment("was strong", 50, 160),
        ]

    def _record(self):
        record = self.store.get_or_create(0)
        record.raster = object()
        return record

    def test_one_fragment_per_non_empty_span(self):
        layer = synthesize_text_layer(self._record(), self.viewport, self.fragments)
        self.assertEqual(layer.fragment_count, 3)
        self.assertEqual([s.text for s in layer.spans], ["Revenue", "growth", "was strong"])
        self.assertFalse(layer.visible)
        self.assertEqual((layer.width, layer.height), (750, 1050))

    def test_resynthesis_is_idempotent(self):
        record = self._record()
        first = synthesize_text_layer(record, self.viewport, self.fragments)
        for _ in range(4):
            synthesize_text_layer(record, self.viewport, self.fragments)
        self.assertEqual(record.text_layer.fragment_count, first.fragment_count)
        self.assertEqual(len(self.store), 1)

    def test_resynthesis_replaces_spans_and_dimensions(self):
        record = self._record()
        synthesize_text_layer(record, self.viewport, self.fragments)
        wider = Viewport.for_page_size(500, 700, scale=2.0)
        synthesize_text_layer(record, wider, [fragment("only", 10, 10)])
        self.assertEqual([s.text for s in record.spans], ["only"])
        self.assertEqual((record.width, record.height), (1000, 1400))

    def test_requires_raster_first(self):
        record = self.store.get_or_create(1)
        with self.assertRaises(TextLayerError):
            synthesize_text_layer(record, self.viewport, self.fragments)
        self.assertIsNone(record.text_layer)

    def test_page_store_lazily_creates_records(self):
        self.assertNotIn(2, self.store)
        record = self.store.get_or_create(2)
        self.assertIs(self.store.get_or_create(2), record)
        self.assertEqual(self.store.page_indices(), [2])


class TestFitzPageSource(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.pdf_path = os.path.join(TESTS_DIR, "text_layer_sample.pdf")
        doc = fitz.open()
        page = doc.new_page(width=612, height=792)
        page.insert_text((50, 100), "Gain on sale of", fontsize=11)
        page.insert_text((50, 120), "non-current assets,", fontsize=11)
        page.insert_text((300, 160), "net: 25 (208)", fontsize=11)
        doc.new_page()
        doc.save(cls.pdf_path)
        doc.close()

    @classmethod
    def tearDownClass(cls):
        if os.path.exists(cls.pdf_path):
            os.remove(cls.pdf_path)

    def _render(self, source, page_index, scale=1.2):
        store = PageStore()
        record = store.get_or_create(page_index)
        record.raster = source.rasterize(page_index, scale)
        viewport = source.get_viewport(page_index, scale)
        synthesize_text_layer(record, viewport, source.get_fragments(page_index))
        return record, viewport

    def test_viewport_matches_raster(self):
        with FitzPageSource(self.pdf_path) as source:
            self.assertEqual(source.page_count, 2)
            record, viewport = self._render(source, 0)
            self.assertAlmostEqual(viewport.width, 612 * 1.2, delta=1)
            self.assertAlmostEqual(viewport.height, 792 * 1.2, delta=1)
            self.assertAlmostEqual(record.raster.width, viewport.width, delta=1)
            self.assertAlmostEqual(record.raster.height, viewport.height, delta=1)

    def test_spans_from_page(self):
        with FitzPageSource(self.pdf_path) as source:
            record, _ = self._render(source, 0)
        texts = [s.text.strip() for s in record.spans]
        self.assertEqual(texts, ["Gain on sale of", "non-current assets,", "net: 25 (208)"])

        first = record.spans[0]
        self.assertAlmostEqual(first.bbox.x0, 60, delta=1)
        self.assertAlmostEqual(first.font_size, 13, delta=1)
        # baseline y=100pt -> 120px, top one font height above it
        self.assertAlmostEqual(first.bbox.y1, 120, delta=1)
        self.assertGreater(first.bbox.width, 0)

    def test_phrase_across_fragments(self):
        with FitzPageSource(self.pdf_path) as source:
            record, _ = self._render(source, 0)
        spans = record.spans
        result = find_highlight_rects(spans, "Gain on sale of non-current assets")
        self.assertEqual(result.strategy, "concatenated")
        rect = result.rects[0]
        self.assertEqual(rect.y0, spans[0].bbox.y0)
        self.assertEqual(rect.y1, spans[1].bbox.y1)
        self.assertLess(rect.y1, spans[2].bbox.y0)
        self.assertLess(rect.x1, spans[2].bbox.x0)

    def test_empty_page(self):
        with FitzPageSource(self.pdf_path) as source:
            record, _ = self._render(source, 1)
        self.assertEqual(record.spans, [])

    def test_rotated_page_places_span_at_text_start(self):
        path = os.path.join(TESTS_DIR, "rotated_sample.pdf")
        doc = fitz.open()
        page = doc.new_page(width=612, height=792)
        page.insert_text((50, 100), "Rotated", fontsize=11)
        page.set_rotation(90)
        doc.save(path)
        doc.close()
        self.addCleanup(os.remove, path)

        with FitzPageSource(path) as source:
            record, viewport = self._render(source, 0, scale=1.0)
            page = source.doc[0]
            word = fitz.Rect(page.get_text("words")[0][:4]) * page.rotation_matrix

        self.assertAlmostEqual(viewport.width, 792, delta=1)
        self.assertAlmostEqual(viewport.height, 612, delta=1)
        (span,) = record.spans
        # baseline start of the rotated word: its left edge, at its top
        self.assertGreaterEqual(span.bbox.x0, word.x0 - 1)
        self.assertLessEqual(span.bbox.x0, word.x1 + 1)
        self.assertAlmostEqual(span.bbox.y1, word.y0, delta=1)

    def test_closed_source(self):
        source = FitzPageSource(self.pdf_path)
        source.close()
        with self.assertRaises(ValueError):
            source.get_fragments(0)


if __name__ == "__main__":
    unittest.main()
