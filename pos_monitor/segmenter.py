# Stream Segmenter - Idle-gap receipt detection for POS Monitor
# Groups a bursty printer byte stream into one buffer per receipt

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class IdleTimer:
    """Restart-on-activity countdown.

    Every restart bumps a generation number which is handed to the callback,
    so the owner can drop firings from timers that were superseded while
    they were waiting on a lock.
    """

    def __init__(self, timeout: float, callback: Callable[[int], None]):
        self.timeout = timeout
        self.callback = callback
        self.generation = 0
        self._timer: Optional[threading.Timer] = None

    @property
    def active(self) -> bool:
        return self._timer is not None

    def restart(self) -> int:
        """Cancel any running countdown and start a new one"""
        self.cancel()
        self.generation += 1
        self._timer = threading.Timer(self.timeout, self.callback, args=(self.generation,))
        self._timer.daemon = True
        self._timer.start()
        return self.generation

    def cancel(self):
        if self._timer:
            self._timer.cancel()
            self._timer = None

    def is_current(self, generation: int) -> bool:
        return self.active and generation == self.generation

    def expire(self):
        """Mark the countdown as finished (called from the firing handler)"""
        self._timer = None


class GrowableByteBuffer:
    """Append-only byte accumulator with atomic flush"""

    def __init__(self):
        self._data = bytearray()

    def write(self, chunk: bytes):
        self._data.extend(chunk)

    def flush(self) -> bytes:
        """Return everything written so far and reset"""
        data = bytes(self._data)
        self._data = bytearray()
        return data

    def __len__(self):
        return len(self._data)


class StreamSegmenter:
    """Turns raw device chunks into receipt buffers using an idle gap"""

    def __init__(self, interval: float = 0.1,
                 on_receipt: Optional[Callable[[bytes], None]] = None):
        self.interval = interval
        self.buffer = GrowableByteBuffer()
        self.timer = IdleTimer(interval, self._on_idle)
        self.subscribers: List[Callable[[bytes], None]] = []
        self.lock = threading.Lock()
        self.receipt_count = 0
        if on_receipt:
            self.subscribe(on_receipt)

    def subscribe(self, callback: Callable[[bytes], None]):
        """Register a callback receiving each receipt buffer"""
        self.subscribers.append(callback)

    def on_bytes(self, chunk: bytes):
        """Feed a chunk from the device"""
        if not chunk:
            return
        with self.lock:
            self.buffer.write(chunk)
            if not self.timer.active:
                logger.info("Receiving data ...")
            self.timer.restart()

    def flush_now(self) -> Optional[bytes]:
        """Emit the open burst without waiting for the idle gap"""
        with self.lock:
            self.timer.cancel()
            return self._emit()

    def close(self):
        with self.lock:
            self.timer.cancel()

    def _on_idle(self, generation: int):
        with self.lock:
            if not self.timer.is_current(generation):
                # Superseded by a chunk that arrived while we waited
                return
            self.timer.expire()
            self._emit()

    def _emit(self) -> Optional[bytes]:
        # Caller holds the lock; subscribers are notified in burst order
        if not len(self.buffer):
            return None
        data = self.buffer.flush()
        self.receipt_count += 1
        for callback in self.subscribers:
            try:
                callback(data)
            except Exception as e:
                logger.error("Receipt subscriber failed: %s", e)
        return data
