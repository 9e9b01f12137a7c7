# OCR Engine - Tesseract recognition for POS Monitor
# Converts rendered receipt images to text

import logging
import time

import pytesseract

from .config import OcrOptions
from .errors import OCRError
from .raster import crop_line_ranges

logger = logging.getLogger(__name__)


class TesseractEngine:
    """OCR via the tesseract binary (pytesseract)"""

    def __init__(self, timeout: int = 0):
        # 0 disables pytesseract's timeout
        self.timeout = timeout

    @staticmethod
    def build_config(options: OcrOptions) -> str:
        """Command line flags for tesseract"""
        parts = []
        if options.psm is not None:
            parts.append(f'--psm {options.psm}')
        if options.tessdata:
            parts.append(f'--tessdata-dir "{options.tessdata}"')
        return ' '.join(parts)

    def recognize(self, image, options: OcrOptions) -> str:
        """Recognize text in image; raises OCRError on failure"""
        if options.ranges:
            image = crop_line_ranges(image, options.ranges)
            if image is None:
                return ''

        lang = '+'.join(options.languages) if options.languages else None
        started = time.monotonic()
        try:
            text = pytesseract.image_to_string(
                image,
                lang=lang,
                config=self.build_config(options),
                timeout=self.timeout,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise OCRError(f"Tesseract is not installed or not on PATH: {e}")
        except (pytesseract.TesseractError, RuntimeError) as e:
            raise OCRError(f"OCR failed: {e}")

        logger.debug("OCR %dx%d image in %.2fs", image.width, image.height,
                     time.monotonic() - started)
        return text.strip()
