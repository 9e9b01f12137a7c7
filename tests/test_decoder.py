# Tests for ESC/POS Decoder

import threading

import pytest

from conftest import raster_command
from pos_monitor.errors import DecodeError
from pos_monitor.escpos_decoder import ESCPOSDecoder, ProtocolNode


class TestESCPOSDecoder:
    """Test ESC/POS decoder"""

    def setup_method(self):
        self.decoder = ESCPOSDecoder()

    def test_plain_text(self):
        """Bytes without commands form one text node"""
        nodes = self.decoder.decode(b'Item 1   500\nTOTAL 500\n')

        assert len(nodes) == 1
        assert nodes[0].kind == ProtocolNode.TEXT
        assert nodes[0].payload == b'Item 1   500\nTOTAL 500\n'

    def test_commands_split_text(self):
        data = b'\x1b@' + b'Store\n' + b'\x1bE\x01' + b'Bold\n' + b'\x1dV\x00'

        nodes = self.decoder.decode(data)

        assert [n.kind for n in nodes] == ['command', 'text', 'command', 'text', 'command']
        assert nodes[1].payload == b'Store\n'
        assert nodes[2].payload == b'\x1bE\x01'
        assert nodes[4].payload == b'\x1dV\x00'

    def test_raster_node(self):
        rows = b'\xff\x00\x81\x7e'
        data = b'head\n' + raster_command(rows, width_bytes=2) + b'tail\n'

        nodes = self.decoder.decode(data)

        assert [n.kind for n in nodes] == ['text', 'raster', 'text']
        assert nodes[1].payload == rows
        assert nodes[1].params == {'width_bytes': 2, 'height': 2, 'mode': 0}

    def test_order_preserved(self):
        data = raster_command(b'\x01') + b'A' + raster_command(b'\x02') + b'B'

        nodes = self.decoder.decode(data)

        assert [(n.kind, n.payload) for n in nodes] == [
            ('raster', b'\x01'), ('text', b'A'), ('raster', b'\x02'), ('text', b'B'),
        ]

    def test_multibyte_text(self):
        data = b'\x1c&' + '现金\n'.encode('gb18030') + b'\x1c.'

        nodes = self.decoder.decode(data)

        assert nodes[1].payload.decode('gb18030') == '现金\n'

    def test_cut_with_feed(self):
        """GS V 66 n carries one extra byte"""
        nodes = self.decoder.decode(b'\x1dVB\x03after')

        assert nodes[0].payload == b'\x1dVB\x03'
        assert nodes[1].payload == b'after'

    def test_barcode_skipped(self):
        data = b'\x1dk\x04123456\x00' + b'\x1dk\x49\x03abc' + b'end'

        nodes = self.decoder.decode(data)

        assert [n.kind for n in nodes] == ['command', 'command', 'text']
        assert nodes[2].payload == b'end'

    def test_unknown_command_recorded(self):
        nodes = self.decoder.decode(b'\x1b\x99text')

        assert nodes[0].params == {'known': False}
        assert nodes[1].payload == b'text'
        assert self.decoder.get_unknown_commands() == ['raw[0]: 1B 99']

    def test_unknown_commands_kept_per_receipt(self):
        """Concurrent decodes on one decoder do not mix their unknown commands"""
        seen = {}
        barrier = threading.Barrier(2)

        def worker(name, data):
            barrier.wait()
            for _ in range(200):
                unknown = []
                self.decoder.decode(data, unknown)
                seen.setdefault(name, set()).update(unknown)

        threads = [
            threading.Thread(target=worker, args=('a', b'\x1b\x99x\x1b\x99y')),
            threading.Thread(target=worker, args=('b', b'\x1d\x98x\x1d\x98y')),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen['a'] == {'raw[0]: 1B 99', 'raw[3]: 1B 99'}
        assert seen['b'] == {'raw[0]: 1D 98', 'raw[3]: 1D 98'}

    def test_truncated_raster_raises(self):
        data = b'\x1dv0\x00\x02\x00\x10\x00' + b'\xff' * 5

        with pytest.raises(DecodeError):
            self.decoder.decode(data)

    def test_incomplete_command_at_end(self):
        with pytest.raises(DecodeError) as info:
            self.decoder.decode(b'abc\x1b')

        assert info.value.offset == 3

    def test_empty(self):
        assert self.decoder.decode(b'') == []


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
