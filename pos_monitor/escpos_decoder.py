# ESC/POS Decoder for POS Monitor
# Splits a receipt byte stream into ordered text, raster and command nodes

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass
class ProtocolNode:
    """A typed unit of decoded receipt structure"""
    kind: str
    payload: bytes = b''
    params: Dict[str, Any] = field(default_factory=dict)

    TEXT = 'text'
    RASTER = 'raster'
    COMMAND = 'command'


class ESCPOSDecoder:
    """Decoder for ESC/POS byte streams"""

    # ESC/POS command constants
    ESC = 0x1B
    GS = 0x1D
    FS = 0x1C
    DLE = 0x10
    LEADS = (ESC, GS, FS, DLE)

    # Fixed argument byte counts of known commands, keyed by (lead, function)
    FIXED_ARGS = {
        (0x1B, 0x40): 0,   # ESC @ Initialize
        (0x1B, 0x21): 1,   # ESC ! Print mode
        (0x1B, 0x2D): 1,   # ESC - Underline
        (0x1B, 0x45): 1,   # ESC E Bold
        (0x1B, 0x47): 1,   # ESC G Double strike
        (0x1B, 0x4D): 1,   # ESC M Font
        (0x1B, 0x61): 1,   # ESC a Alignment
        (0x1B, 0x64): 1,   # ESC d Feed lines
        (0x1B, 0x4A): 1,   # ESC J Feed dots
        (0x1B, 0x32): 0,   # ESC 2 Default line spacing
        (0x1B, 0x33): 1,   # ESC 3 Line spacing
        (0x1B, 0x20): 1,   # ESC SP Right spacing
        (0x1B, 0x24): 2,   # ESC $ Absolute position
        (0x1B, 0x5C): 2,   # ESC \ Relative position
        (0x1B, 0x74): 1,   # ESC t Code table
        (0x1B, 0x52): 1,   # ESC R Charset
        (0x1B, 0x7B): 1,   # ESC { Upside down
        (0x1B, 0x56): 1,   # ESC V Rotate
        (0x1B, 0x70): 3,   # ESC p Cash drawer pulse
        (0x1B, 0x69): 0,   # ESC i Partial cut
        (0x1B, 0x6D): 0,   # ESC m Partial cut
        (0x1D, 0x21): 1,   # GS ! Character size
        (0x1D, 0x42): 1,   # GS B Reverse
        (0x1D, 0x48): 1,   # GS H HRI position
        (0x1D, 0x66): 1,   # GS f HRI font
        (0x1D, 0x68): 1,   # GS h Barcode height
        (0x1D, 0x77): 1,   # GS w Barcode width
        (0x1D, 0x4C): 2,   # GS L Left margin
        (0x1D, 0x57): 2,   # GS W Print area width
        (0x1C, 0x26): 0,   # FS & Kanji mode on
        (0x1C, 0x2E): 0,   # FS . Kanji mode off
        (0x1C, 0x21): 1,   # FS ! Kanji print mode
        (0x1C, 0x2D): 1,   # FS - Kanji underline
        (0x1C, 0x70): 2,   # FS p NV bit image
        (0x10, 0x04): 1,   # DLE EOT Status
        (0x10, 0x05): 1,   # DLE ENQ Recovery
        (0x10, 0x14): 3,   # DLE DC4 Realtime request
    }

    def __init__(self, log_unknown_commands: bool = True):
        self.unknown_commands: List[str] = []
        self.log_unknown_commands = log_unknown_commands

    def decode(self, raw_data: bytes, unknown: List[str] = None) -> List[ProtocolNode]:
        """Decode a receipt buffer into nodes in device emission order.

        Unknown commands are collected into ``unknown`` when given. The
        decoder may be shared between threads, so the list is per call;
        ``unknown_commands`` only keeps the one from the latest call.
        """
        unknown = [] if unknown is None else unknown
        data = bytes(raw_data)
        nodes: List[ProtocolNode] = []
        text_start = None
        i = 0

        while i < len(data):
            if data[i] not in self.LEADS:
                if text_start is None:
                    text_start = i
                i += 1
                continue

            if text_start is not None:
                nodes.append(ProtocolNode(ProtocolNode.TEXT, data[text_start:i]))
                text_start = None

            node, i = self._decode_command(data, i, unknown)
            if node is not None:
                nodes.append(node)

        if text_start is not None:
            nodes.append(ProtocolNode(ProtocolNode.TEXT, data[text_start:]))

        self.unknown_commands = unknown
        if unknown and self.log_unknown_commands:
            logger.info(
                "Decoded receipt with %d unknown command(s): %s",
                len(unknown),
                "; ".join(unknown[:5]),
            )
        return nodes

    def _decode_command(self, data: bytes, i: int, unknown: List[str]):
        """Decode the command starting at i; returns (node, next offset)"""
        lead = data[i]
        if i + 1 >= len(data):
            raise DecodeError(f"Incomplete command {lead:02X} at end of data", i)
        fn = data[i + 1]
        key = (lead, fn)

        if key == (self.GS, 0x76):
            return self._decode_raster(data, i)
        if key == (self.ESC, 0x2A):
            return self._decode_bit_image(data, i)
        if key == (self.GS, 0x56):
            # GS V m [n]: cut, function B carries a feed amount
            self._require(data, i, 3)
            size = 4 if data[i + 2] in (0x41, 0x42, 0x61, 0x62, 0x67, 0x68) else 3
            return self._command(data, i, size)
        if key == (self.GS, 0x6B):
            return self._decode_barcode(data, i)
        if key == (self.GS, 0x28) or key == (self.FS, 0x28):
            # GS ( fn pL pH data
            self._require(data, i, 5)
            length = data[i + 3] + data[i + 4] * 256
            return self._command(data, i, 5 + length)

        if key in self.FIXED_ARGS:
            return self._command(data, i, 2 + self.FIXED_ARGS[key])

        cmd_hex = f"{lead:02X} {fn:02X}"
        entry = f"raw[{i}]: {cmd_hex}"
        if entry not in unknown:
            unknown.append(entry)
        if self.log_unknown_commands:
            logger.debug("Unknown ESC/POS command: %s", cmd_hex)
        return self._command(data, i, 2, known=False)

    def _decode_raster(self, data: bytes, i: int):
        """GS v 0 m xL xH yL yH d1...dk"""
        self._require(data, i, 8)
        if data[i + 2] != 0x30:
            raise DecodeError(f"Unsupported raster function {data[i + 2]:02X}", i)
        mode = data[i + 3]
        width_bytes = data[i + 4] + data[i + 5] * 256
        height = data[i + 6] + data[i + 7] * 256
        size = width_bytes * height
        self._require(data, i, 8 + size)
        node = ProtocolNode(
            ProtocolNode.RASTER,
            data[i + 8:i + 8 + size],
            {'width_bytes': width_bytes, 'height': height, 'mode': mode},
        )
        return node, i + 8 + size

    def _decode_bit_image(self, data: bytes, i: int):
        """ESC * m nL nH d1...dk, column format; passed through as a command"""
        self._require(data, i, 5)
        mode = data[i + 2]
        columns = data[i + 3] + data[i + 4] * 256
        size = columns * (3 if mode in (32, 33) else 1)
        return self._command(data, i, 5 + size)

    def _decode_barcode(self, data: bytes, i: int):
        """GS k m: NUL terminated for m <= 6, length prefixed otherwise"""
        self._require(data, i, 3)
        m = data[i + 2]
        if m <= 6:
            end = data.find(b'\x00', i + 3)
            if end < 0:
                raise DecodeError("Unterminated barcode data", i)
            return self._command(data, i, end + 1 - i)
        self._require(data, i, 4)
        return self._command(data, i, 4 + data[i + 3])

    def _command(self, data: bytes, i: int, size: int, known: bool = True):
        self._require(data, i, size)
        node = ProtocolNode(ProtocolNode.COMMAND, data[i:i + size], {'known': known})
        return node, i + size

    def _require(self, data: bytes, i: int, size: int):
        if i + size > len(data):
            raise DecodeError(
                f"Truncated command {data[i]:02X} {data[i + 1]:02X}: need {size} bytes, "
                f"have {len(data) - i}",
                i,
            )

    def get_unknown_commands(self) -> List[str]:
        """Return list of unknown commands encountered"""
        return self.unknown_commands


if __name__ == '__main__':
    # Text, a 1 byte wide 2 row raster strip, more text and a cut
    sample = (
        b'\x1b@' + '现金\n'.encode('gb18030')
        + b'\x1dv0\x00\x01\x00\x02\x00\xff\x81'
        + b'TOTAL 42\n' + b'\x1dV\x00'
    )

    decoder = ESCPOSDecoder()
    for node in decoder.decode(sample):
        print(f"{node.kind:8} {node.payload!r} {node.params}")
