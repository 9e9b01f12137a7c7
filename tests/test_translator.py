# Tests for Node Translator

import pytest

from conftest import StubOCREngine, raster_node, text_node
from pos_monitor.config import OcrOptions
from pos_monitor.errors import OCRError
from pos_monitor.escpos_decoder import ProtocolNode
from pos_monitor.translator import (
    NodeTranslator, TranslationContext, TranslationResult, TranslatorState,
)


class TestTranslatorWithoutOCR:
    """Text decoding and image accumulation with OCR disabled"""

    def setup_method(self):
        self.translator = NodeTranslator()

    def test_text_and_raster(self):
        """[Text(现金), Raster(row1), Raster(row2)] -> text plus rendered image"""
        nodes = [text_node('现金'), raster_node(b'\xff'), raster_node(b'\x0f')]

        results = self.translator.translate(nodes)

        assert len(results) == 1
        assert results[0].text == '现金'
        image = results[0].image
        assert image.size == (8, 2)
        # Row 1 fully printed, row 2 printed only on the right half
        assert image.getpixel((0, 0)) == 0
        assert image.getpixel((0, 1)) == 255
        assert image.getpixel((7, 1)) == 0

    def test_rasters_accumulate_across_text(self):
        nodes = [raster_node(b'\xff'), text_node('a'), raster_node(b'\x00'), text_node('b')]

        results = self.translator.translate(nodes)

        assert results[0].text == 'ab'
        assert results[0].image.size == (8, 2)

    def test_text_only(self):
        results = self.translator.translate([text_node('TOTAL 42\n')])

        assert results[0].text == 'TOTAL 42\n'
        assert results[0].image is None

    def test_commands_pass_through(self):
        nodes = [ProtocolNode(ProtocolNode.COMMAND, b'\x1b@'), text_node('x'),
                 ProtocolNode('barcode', b'123')]

        results = self.translator.translate(nodes)

        assert results[0].text == 'x'

    def test_empty_sequence(self):
        assert self.translator.translate([]) == []

    def test_only_commands_gives_no_result(self):
        assert self.translator.translate([ProtocolNode(ProtocolNode.COMMAND, b'\x1b@')]) == []

    def test_encoding_is_configurable(self):
        translator = NodeTranslator(encoding='cp1252')

        results = translator.translate([ProtocolNode(ProtocolNode.TEXT, b'Caf\xe9')])

        assert results[0].text == 'Café'

    def test_deterministic(self):
        """Translating the same nodes again gives the same text and image"""
        nodes = [raster_node(b'\x81'), text_node('单号'), raster_node(b'\x42')]

        first = self.translator.translate(nodes)
        second = NodeTranslator().translate(nodes)

        assert [r.text for r in first] == [r.text for r in second] == ['单号']
        assert first[0].image.tobytes() == second[0].image.tobytes()

    def test_split_multibyte_character_is_not_repaired(self):
        """Decoding is per node; a character split across nodes is replaced"""
        encoded = '现'.encode('gb18030')
        nodes = [ProtocolNode(ProtocolNode.TEXT, encoded[:1]),
                 ProtocolNode(ProtocolNode.TEXT, encoded[1:])]

        results = self.translator.translate(nodes)

        assert results[0].text != '现'


class TestTranslatorWithOCR:
    """OCR flush policy"""

    def setup_method(self):
        self.ocr = StubOCREngine()
        self.translator = NodeTranslator(ocr_engine=self.ocr, ocr_options=OcrOptions())

    def test_flush_at_text_node(self):
        """[Raster(row1), Text(单号)] -> OCR text placed before the text"""
        results = self.translator.translate([raster_node(b'\xff'), text_node('单号')])

        assert len(self.ocr.calls) == 1
        assert self.ocr.calls[0].size == (8, 1)
        assert results == [TranslationResult(text='<ocr 8x1>单号')]

    def test_flush_at_last_node(self):
        results = self.translator.translate([text_node('head\n'), raster_node(b'\xff\xff')])

        assert results[0].text == 'head\n<ocr 8x2>'
        assert results[0].image is None

    def test_raster_after_text(self):
        nodes = [raster_node(b'\xff'), text_node('mid'), raster_node(b'\x01\x02\x03')]

        results = self.translator.translate(nodes)

        assert len(self.ocr.calls) == 2
        assert results[0].text == '<ocr 8x1>mid<ocr 8x3>'

    def test_consecutive_rasters_flush_once(self):
        nodes = [raster_node(b'\xff'), raster_node(b'\xff'), text_node('t')]

        self.translator.translate(nodes)

        assert len(self.ocr.calls) == 1
        assert self.ocr.calls[0].size == (8, 2)

    def test_flush_on_text_disabled(self):
        translator = NodeTranslator(ocr_engine=self.ocr, ocr_options=OcrOptions(),
                                    flush_on_text=False)

        results = translator.translate([raster_node(b'\xff'), text_node('a'), raster_node(b'\xff')])

        assert len(self.ocr.calls) == 1
        assert results[0].text == 'a<ocr 8x2>'

    def test_split_results(self):
        translator = NodeTranslator(ocr_engine=self.ocr, ocr_options=OcrOptions(),
                                    split_results=True)

        results = translator.translate(
            [text_node('a'), raster_node(b'\xff'), text_node('b'), raster_node(b'\xff')]
        )

        assert [r.text for r in results] == ['a<ocr 8x1>', 'b<ocr 8x1>']

    def test_deterministic(self):
        nodes = [raster_node(b'\x81\x42'), text_node('单号')]

        first = self.translator.translate(nodes)
        second = self.translator.translate(nodes)

        assert first[0].text == second[0].text

    def test_ocr_failure_keeps_partial(self):
        translator = NodeTranslator(ocr_engine=StubOCREngine(fail=True), ocr_options=OcrOptions())

        with pytest.raises(OCRError) as info:
            translator.translate([text_node('before'), raster_node(b'\xff'), text_node('after')])

        partial = info.value.partial
        assert len(partial) == 1
        assert partial[0].text == 'before'
        assert partial[0].image.size == (8, 1)

    def test_state_machine(self):
        ctx = TranslationContext()

        self.translator.step(ctx, raster_node(b'\xff'))
        assert ctx.state is TranslatorState.ACCUMULATING_IMAGE

        self.translator.step(ctx, text_node('x'))
        assert ctx.state is TranslatorState.IDLE
        assert ctx.pending_image is None

        ctx.is_last = True
        self.translator.step(ctx, text_node('y'))
        assert ctx.state is TranslatorState.DONE
        assert ctx.results[0].text == '<ocr 8x1>xy'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
