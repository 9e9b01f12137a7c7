# Raster Image - Printer bit image accumulation for POS Monitor
# Renders GS v 0 strips with Pillow and slices text lines for OCR

import logging
from typing import List, Optional, Sequence, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

# White rows inserted between cropped lines so OCR sees separate lines
LINE_SPACING = 4


class RasterImage:
    """Accumulates row-major raster strips in arrival order"""

    def __init__(self):
        self.strips: List[Tuple[bytes, int]] = []

    def append(self, payload: bytes, width_bytes: int):
        """Add a strip; payload is width_bytes per row, 1 bit = printed dot"""
        if width_bytes <= 0:
            raise ValueError(f"Invalid raster width: {width_bytes}")
        if len(payload) % width_bytes:
            raise ValueError(
                f"Raster payload of {len(payload)} bytes is not a multiple of width {width_bytes}"
            )
        self.strips.append((bytes(payload), width_bytes))

    @property
    def width_bytes(self) -> int:
        return max((w for _, w in self.strips), default=0)

    @property
    def height(self) -> int:
        return sum(len(p) // w for p, w in self.strips)

    def is_empty(self) -> bool:
        return self.height == 0

    def to_image(self) -> Image.Image:
        """Render all strips into one mode '1' image; narrower strips are padded right"""
        width_bytes = self.width_bytes
        if not width_bytes or not self.height:
            raise ValueError("Cannot render an empty raster image")
        rows = bytearray()
        for payload, w in self.strips:
            pad = bytes(width_bytes - w)
            for offset in range(0, len(payload), w):
                rows += payload[offset:offset + w] + pad
        # Pillow mode '1' treats a set bit as white, the printer as a dot
        inverted = bytes(b ^ 0xFF for b in rows)
        return Image.frombytes('1', (width_bytes * 8, self.height), inverted)

    def save(self, path):
        self.to_image().save(path)
        return path


def segment_lines(image: Image.Image) -> List[Tuple[int, int]]:
    """Find (top, bottom) row spans of printed text lines separated by blank rows"""
    gray = image.convert('L')
    width, height = gray.size
    pixels = gray.tobytes()
    lines = []
    top = None
    for y in range(height):
        row = pixels[y * width:(y + 1) * width]
        inked = min(row) < 128
        if inked and top is None:
            top = y
        elif not inked and top is not None:
            lines.append((top, y))
            top = None
    if top is not None:
        lines.append((top, height))
    return lines


def resolve_line_range(line_range: Tuple[int, int], total: int) -> range:
    """Map a (from, count) pair onto line indexes.

    ``from`` counts from 1 at the top, or from -1 at the bottom. A positive
    ``count`` takes lines downwards from ``from``; a negative one takes lines
    upwards ending at ``from``.
    """
    start, count = line_range
    index = start - 1 if start > 0 else total + start
    if count >= 0:
        low, high = index, index + count
    else:
        low, high = index + count + 1, index + 1
    return range(max(low, 0), min(high, total))


def crop_line_ranges(image: Image.Image,
                     ranges: Sequence[Tuple[int, int]]) -> Optional[Image.Image]:
    """Keep only the selected text lines, stacked top to bottom.

    Returns None when the ranges select no line at all.
    """
    lines = segment_lines(image)
    selected = []
    for line_range in ranges:
        for index in resolve_line_range(line_range, len(lines)):
            if index not in selected:
                selected.append(index)
    if not selected:
        logger.debug("Line ranges %s matched none of %d lines", list(ranges), len(lines))
        return None
    selected.sort()

    spans = [lines[i] for i in selected]
    height = sum(bottom - top for top, bottom in spans) + LINE_SPACING * (len(spans) + 1)
    result = Image.new('1', (image.width, height), 1)
    y = LINE_SPACING
    for top, bottom in spans:
        result.paste(image.crop((0, top, image.width, bottom)), (0, y))
        y += bottom - top + LINE_SPACING
    return result
