# POS Monitor
# Serial receipt printer monitoring, translation and OCR

__version__ = '0.1.0'

from .errors import MonitorError, ConfigurationError, DecodeError, OCRError
from .config import MonitorConfig, OcrOptions
from .segmenter import IdleTimer, GrowableByteBuffer, StreamSegmenter
from .escpos_decoder import ESCPOSDecoder, ProtocolNode
from .raster import RasterImage
from .translator import NodeTranslator, TranslationResult, TranslationContext, TranslatorState
from .pipeline import ReceiptPipeline, ReceiptWriter
from .dispatcher import CommandDispatcher, CommandSpec, OptionSpec

__all__ = [
    'MonitorError',
    'ConfigurationError',
    'DecodeError',
    'OCRError',
    'MonitorConfig',
    'OcrOptions',
    'IdleTimer',
    'GrowableByteBuffer',
    'StreamSegmenter',
    'ESCPOSDecoder',
    'ProtocolNode',
    'RasterImage',
    'NodeTranslator',
    'TranslationResult',
    'TranslationContext',
    'TranslatorState',
    'ReceiptPipeline',
    'ReceiptWriter',
    'CommandDispatcher',
    'CommandSpec',
    'OptionSpec',
]
