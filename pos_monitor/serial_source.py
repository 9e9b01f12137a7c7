# Serial Source - Serial port reader for POS Monitor
# Delivers raw printer bytes as they arrive, reconnecting on errors

import logging
import threading
import time
from typing import Callable, Optional

import serial

logger = logging.getLogger(__name__)


class SerialSource:
    """Reads a serial port on a background thread and forwards every chunk"""

    def __init__(self, port: str, baudrate: int,
                 on_data: Callable[[bytes], None],
                 on_open: Optional[Callable[[str], None]] = None,
                 on_disconnect: Optional[Callable[[str], None]] = None):
        self.port = port
        self.baudrate = baudrate
        self.on_data = on_data
        self.on_open = on_open
        self.on_disconnect = on_disconnect
        self.running = False
        self.thread = None
        self.read_timeout = 0.1
        self._reconnect_delay = 5
        self._reconnect_max_delay = 60

    def start(self):
        """Start reading in a daemon thread"""
        self.running = True
        self.thread = threading.Thread(target=self._listen, daemon=True)
        self.thread.start()
        logger.info("Serial monitoring started on %s", self.port)

    def stop(self):
        self.running = False
        if self.thread:
            self.thread.join(timeout=2)
        logger.info("Serial monitoring stopped")

    def open(self) -> serial.Serial:
        return serial.Serial(self.port, self.baudrate, timeout=self.read_timeout)

    def _listen(self):
        """Serial port listener with disconnect/reconnect"""
        delay = self._reconnect_delay
        while self.running:
            try:
                ser = self.open()
                delay = self._reconnect_delay
                logger.info("Serial port [%s] has been opened at baud rate %d", self.port, self.baudrate)
                if self.on_open:
                    self.on_open(self.port)
                try:
                    self._read_loop(ser)
                finally:
                    ser.close()
            except serial.SerialException as e:
                logger.error("Serial error on %s: %s", self.port, e)
                if self.on_disconnect:
                    self.on_disconnect(self.port)

            if self.running:
                logger.info("Reconnecting to serial %s in %s seconds...", self.port, delay)
                time.sleep(delay)
                delay = min(delay * 2, self._reconnect_max_delay)

    def _read_loop(self, ser):
        while self.running:
            # Blocks up to read_timeout for the first byte
            data = ser.read(ser.in_waiting or 1)
            if data:
                self.on_data(data)
