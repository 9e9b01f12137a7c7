# Receipt Pipeline - Decode, translate and persist receipts for POS Monitor
# A failing receipt is logged and skipped; monitoring always continues

import itertools
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import MonitorConfig
from .errors import DecodeError, OCRError
from .escpos_decoder import ESCPOSDecoder
from .translator import NodeTranslator, TranslationResult
from .utils import human_size

logger = logging.getLogger(__name__)


class ReceiptWriter:
    """Writes receipt artifacts into an output directory"""

    def __init__(self, output_dir):
        self.output_dir = Path(output_dir)

    def path_for(self, stem: str, suffix: str) -> Path:
        return self.output_dir / f"{stem}{suffix}"

    def write_bytes(self, stem: str, data: bytes) -> Path:
        path = self.path_for(stem, '.bin')
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def write_text(self, stem: str, text: str) -> Path:
        path = self.path_for(stem, '.txt')
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')
        return path

    def save_image(self, stem: str, image) -> Path:
        path = self.path_for(stem, '.bmp')
        self.output_dir.mkdir(parents=True, exist_ok=True)
        image.save(path)
        return path


class ReceiptPipeline:
    """Runs each receipt buffer through decode -> translate -> persist"""

    def __init__(self, config: MonitorConfig, decoder=None, translator=None,
                 writer=None, ocr_engine=None):
        self.config = config
        self.decoder = decoder or ESCPOSDecoder()
        if translator is None:
            if config.ocr is not None and ocr_engine is None:
                from .ocr import TesseractEngine
                ocr_engine = TesseractEngine()
            translator = NodeTranslator(
                encoding=config.encoding,
                ocr_engine=ocr_engine if config.ocr is not None else None,
                ocr_options=config.ocr,
                flush_on_text=config.flush_on_text,
                split_results=config.split_results,
            )
        self.translator = translator
        self.writer = writer or ReceiptWriter(config.output_dir)
        self.executor: Optional[ThreadPoolExecutor] = None
        self._sequence = itertools.count(1)
        self.lock = threading.Lock()
        self.stats = {'received': 0, 'persisted': 0, 'failed': 0, 'files': 0}

    def submit(self, data: bytes) -> Future:
        """Hand a receipt to the worker pool; returns immediately"""
        if self.executor is None:
            self.executor = ThreadPoolExecutor(
                max_workers=self.config.workers, thread_name_prefix='receipt'
            )
        seq = self._next_sequence()
        future = self.executor.submit(self.process, data, seq)
        future.add_done_callback(lambda f: self._on_done(f, seq))
        return future

    def _on_done(self, future: Future, seq: int):
        # Errors process() does not handle itself would stay inside the future
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Receipt #%d failed: %s", seq, error, exc_info=error)
            self._count('failed')

    def process(self, data: bytes, seq: int = None) -> List[Path]:
        """Process one receipt synchronously; returns the files written"""
        if seq is None:
            seq = self._next_sequence()
        self._count('received')
        stem = f"{datetime.now().strftime('%Y%m%d%H%M%S')}-{seq}"

        if not self.config.parse:
            logger.info("Received %s data, saving raw receipt #%d", human_size(len(data)), seq)
            try:
                path = self.writer.write_bytes(stem, data)
            except OSError as e:
                logger.error("Failed to save receipt #%d: %s", seq, e)
                self._count('failed')
                return []
            logger.info("Saved raw data to %s", path)
            self._count('persisted')
            self._count('files')
            logger.info("Complete, continue")
            return [path]

        logger.info("Received %s data, parsing receipt #%d ...", human_size(len(data)), seq)
        started = time.monotonic()
        try:
            nodes = self.decoder.decode(data)
        except DecodeError as e:
            logger.warning("Receipt #%d could not be decoded: %s", seq, e)
            logger.info("Continue")
            self._count('failed')
            return []
        decoded = time.monotonic()
        logger.debug("Decoded receipt #%d into %d nodes in %.3fs", seq, len(nodes), decoded - started)

        failed = False
        try:
            results = self.translator.translate(nodes)
        except OCRError as e:
            logger.warning("OCR failed for receipt #%d, saving what was decoded: %s", seq, e)
            results = e.partial
            failed = True
        logger.debug("Translated receipt #%d in %.3fs", seq, time.monotonic() - decoded)
        logger.info("Parsed a receipt -> %d result(s)", len(results))

        paths = self.persist(stem, results)
        self._count('failed' if failed else 'persisted')
        logger.info("Complete, continue")
        return paths

    def persist(self, stem: str, results: List[TranslationResult]) -> List[Path]:
        """Write each result's text and image; write errors are logged only"""
        paths = []
        for i, result in enumerate(results):
            if result is None or result.is_empty():
                logger.warning("Some wrong data found in result %d", i)
                continue
            if result.text:
                try:
                    path = self.writer.write_text(f"{stem}-{i}", result.text)
                    logger.info("  - Saved text decoded to %s", path)
                    paths.append(path)
                except OSError as e:
                    logger.error("Failed to save text %s-%d: %s", stem, i, e)
            if result.image is not None:
                try:
                    path = self.writer.save_image(f"{stem}-{i}", result.image)
                    logger.info("  - Saved image decoded to %s", path)
                    paths.append(path)
                except OSError as e:
                    logger.error("Failed to save image %s-%d: %s", stem, i, e)
        self._count('files', len(paths))
        return paths

    def shutdown(self, wait: bool = True):
        if self.executor:
            self.executor.shutdown(wait=wait)
            self.executor = None

    def get_status(self) -> dict:
        with self.lock:
            return dict(self.stats)

    def _next_sequence(self) -> int:
        with self.lock:
            return next(self._sequence)

    def _count(self, key: str, amount: int = 1):
        with self.lock:
            self.stats[key] += amount
