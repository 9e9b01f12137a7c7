# Tests for Serial Source (pyserial replaced by a fake port)

import threading

import serial

from pos_monitor.serial_source import SerialSource


class FakeSerial:
    """Hands out queued chunks, then raises after the last one"""

    def __init__(self, chunks, error_at_end=False):
        self.chunks = list(chunks)
        self.error_at_end = error_at_end
        self.closed = False
        self.drained = threading.Event()

    @property
    def in_waiting(self):
        return len(self.chunks[0]) if self.chunks else 0

    def read(self, size=1):
        if self.chunks:
            return self.chunks.pop(0)
        self.drained.set()
        if self.error_at_end:
            raise serial.SerialException('device reports readiness to read but returned no data')
        return b''

    def close(self):
        self.closed = True


class TestSerialSource:
    """Test reading and reconnecting"""

    def test_chunks_forwarded_in_order(self):
        received = []
        opened = []
        port = FakeSerial([b'AB', b'CD', b'EF'])
        source = SerialSource('/dev/ttyFAKE', 115200, received.append, on_open=opened.append)
        source.open = lambda: port

        source.start()
        assert port.drained.wait(2)
        source.stop()

        assert received == [b'AB', b'CD', b'EF']
        assert opened == ['/dev/ttyFAKE']
        assert port.closed

    def test_disconnect_reported(self):
        disconnected = []
        port = FakeSerial([b'x'], error_at_end=True)
        source = SerialSource('COM9', 9600, lambda data: None, on_disconnect=disconnected.append)
        source.open = lambda: port
        source._reconnect_delay = 0.01

        source.start()
        assert port.drained.wait(2)
        source.stop()

        assert disconnected and disconnected[0] == 'COM9'
        assert port.closed

    def test_open_failure_retries(self):
        attempts = []
        done = threading.Event()

        def failing_open():
            attempts.append(1)
            if len(attempts) >= 2:
                done.set()
            raise serial.SerialException('could not open port')

        source = SerialSource('COM9', 9600, lambda data: None)
        source.open = failing_open
        source._reconnect_delay = 0.01

        source.start()
        assert done.wait(2)
        source.stop()

        assert len(attempts) >= 2
