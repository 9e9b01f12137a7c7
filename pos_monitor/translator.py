# Node Translator - Receipt node reduction for POS Monitor
# Accumulates text and raster nodes, flushing images through OCR

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .config import DEFAULT_ENCODING, OcrOptions
from .errors import OCRError
from .escpos_decoder import ProtocolNode
from .raster import RasterImage

logger = logging.getLogger(__name__)


class TranslatorState(Enum):
    IDLE = 'idle'
    ACCUMULATING_IMAGE = 'accumulating_image'
    FLUSHING = 'flushing'
    DONE = 'done'


@dataclass
class TranslationResult:
    """One output unit of a receipt"""
    text: Optional[str] = None
    image: Optional[object] = None  # PIL.Image.Image

    def is_empty(self) -> bool:
        return not self.text and self.image is None


@dataclass
class TranslationContext:
    """Mutable state for one receipt's node sequence"""
    pending_image: Optional[RasterImage] = None
    pending_text: str = ''
    is_last: bool = False
    state: TranslatorState = TranslatorState.IDLE
    results: List[TranslationResult] = field(default_factory=list)
    flushes: int = 0

    def has_pending_image(self) -> bool:
        return self.pending_image is not None and not self.pending_image.is_empty()


class NodeTranslator:
    """Reduces an ordered node sequence into translation results.

    With OCR enabled, the pending image is committed through the OCR engine
    whenever a text node arrives (``flush_on_text``) and at the end of the
    sequence, so recognized text lands before the text that followed the
    image. Without OCR, raster strips accumulate into one image for the whole
    receipt.

    Text is decoded per node. A multi-byte character split across two text
    nodes will not decode correctly.
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING, ocr_engine=None,
                 ocr_options: Optional[OcrOptions] = None,
                 flush_on_text: bool = True, split_results: bool = False):
        self.encoding = encoding
        self.ocr_engine = ocr_engine
        self.ocr_options = ocr_options
        self.flush_on_text = flush_on_text
        self.split_results = split_results

    @property
    def ocr_enabled(self) -> bool:
        return self.ocr_engine is not None and self.ocr_options is not None

    def translate(self, nodes: Sequence[ProtocolNode]) -> List[TranslationResult]:
        """Translate one receipt; raises OCRError carrying partial results"""
        ctx = TranslationContext()
        last = len(nodes) - 1
        for index, node in enumerate(nodes):
            ctx.is_last = index == last
            self.step(ctx, node)
        if ctx.state is not TranslatorState.DONE:
            # Empty sequence
            self._finish(ctx)
        return ctx.results

    def step(self, ctx: TranslationContext, node: ProtocolNode):
        """Apply a single node to the context"""
        if node.kind == ProtocolNode.RASTER and not node.payload:
            logger.debug("Skipping empty raster node")
        elif node.kind == ProtocolNode.RASTER:
            if ctx.pending_image is None:
                ctx.pending_image = RasterImage()
            ctx.pending_image.append(node.payload, node.params.get('width_bytes') or len(node.payload))
            ctx.state = TranslatorState.ACCUMULATING_IMAGE
        elif node.kind == ProtocolNode.TEXT:
            if self.flush_on_text and self._should_flush(ctx):
                self._flush(ctx)
            ctx.pending_text += self.decode_text(node.payload)
        else:
            logger.debug("Skipping %s node (%d bytes)", node.kind, len(node.payload))

        if ctx.is_last:
            if self._should_flush(ctx):
                self._flush(ctx)
            self._finish(ctx)

    def decode_text(self, payload: bytes) -> str:
        return payload.decode(self.encoding, errors='replace')

    def _should_flush(self, ctx: TranslationContext) -> bool:
        return self.ocr_enabled and ctx.has_pending_image()

    def _flush(self, ctx: TranslationContext):
        ctx.state = TranslatorState.FLUSHING
        image = ctx.pending_image.to_image()
        try:
            text = self.ocr_engine.recognize(image, self.ocr_options)
        except OCRError as e:
            raise OCRError(str(e), self._partial(ctx, image)) from e
        except Exception as e:
            raise OCRError(f"OCR failed: {e}", self._partial(ctx, image)) from e

        ctx.flushes += 1
        ctx.pending_image = None
        ctx.pending_text += text
        logger.debug("OCR flush #%d produced %d chars", ctx.flushes, len(text))
        if self.split_results and ctx.pending_text:
            ctx.results.append(TranslationResult(text=ctx.pending_text))
            ctx.pending_text = ''
        ctx.state = TranslatorState.IDLE

    def _partial(self, ctx: TranslationContext, image) -> List[TranslationResult]:
        partial = list(ctx.results)
        partial.append(TranslationResult(text=ctx.pending_text or None, image=image))
        return partial

    def _finish(self, ctx: TranslationContext):
        image = None
        if ctx.has_pending_image():
            image = ctx.pending_image.to_image()
        result = TranslationResult(text=ctx.pending_text or None, image=image)
        if not result.is_empty():
            ctx.results.append(result)
        ctx.pending_image = None
        ctx.pending_text = ''
        ctx.state = TranslatorState.DONE
