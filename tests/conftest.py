# Shared fixtures: stub OCR engine and node builders

import pytest

from pos_monitor.errors import OCRError
from pos_monitor.escpos_decoder import ProtocolNode


class StubOCREngine:
    """Deterministic OCR: reports the image size it was given"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def recognize(self, image, options):
        self.calls.append(image)
        if self.fail:
            raise OCRError('tesseract crashed')
        return f"<ocr {image.width}x{image.height}>"


def text_node(text: str, encoding: str = 'gb18030') -> ProtocolNode:
    return ProtocolNode(ProtocolNode.TEXT, text.encode(encoding))


def raster_node(rows: bytes, width_bytes: int = 1) -> ProtocolNode:
    return ProtocolNode(
        ProtocolNode.RASTER, rows,
        {'width_bytes': width_bytes, 'height': len(rows) // width_bytes, 'mode': 0},
    )


def raster_command(rows: bytes, width_bytes: int = 1) -> bytes:
    """Encode rows as a GS v 0 command"""
    height = len(rows) // width_bytes
    return (b'\x1dv0\x00' + bytes([width_bytes % 256, width_bytes // 256,
                                   height % 256, height // 256]) + rows)


@pytest.fixture
def stub_ocr():
    return StubOCREngine()
