"""basE91 text encoding for binary payloads.

Binary records are stored inside JSON documents and database text columns,
so the alphabet leaves out both quote characters and the backslash. The
double quote of the classic basE91 table is replaced by ``-``.
"""
from __future__ import annotations
from typing import Dict, List

from ..errors import InvalidEncodingSymbol

ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "!#$%&()*+,./:;<=>?@[]^_`{|}~-"
)

_DECODE_TABLE: Dict[str, int] = {ch: i for i, ch in enumerate(ALPHABET)}


class Base91Encoder:
    """Incremental encoder: feed bytes with update(), collect the tail with finish()."""

    def __init__(self):
        self._queue = 0
        self._nbits = 0

    def update(self, data: bytes) -> str:
        out: List[str] = []
        for byte in data:
            self._queue |= byte << self._nbits
            self._nbits += 8
            if self._nbits > 13:
                value = self._queue & 8191
                if value > 88:
                    self._queue >>= 13
                    self._nbits -= 13
                else:
                    # 13 bits would fit in a single symbol, take 14
                    value = self._queue & 16383
                    self._queue >>= 14
                    self._nbits -= 14
                out.append(ALPHABET[value % 91])
                out.append(ALPHABET[value // 91])
        return "".join(out)

    def finish(self) -> str:
        out = ""
        if self._nbits:
            out += ALPHABET[self._queue % 91]
            if self._nbits > 7 or self._queue > 90:
                out += ALPHABET[self._queue // 91]
        self._queue = 0
        self._nbits = 0
        return out


class Base91Decoder:
    """Incremental decoder mirroring Base91Encoder."""

    def __init__(self):
        self._queue = 0
        self._nbits = 0
        self._value = -1
        self._position = 0

    def update(self, text: str) -> bytes:
        out = bytearray()
        for ch in text:
            digit = _DECODE_TABLE.get(ch)
            if digit is None:
                raise InvalidEncodingSymbol(ch, self._position)
            self._position += 1
            if self._value < 0:
                self._value = digit
                continue
            self._value += digit * 91
            self._queue |= self._value << self._nbits
            self._nbits += 13 if (self._value & 8191) > 88 else 14
            while True:
                out.append(self._queue & 0xFF)
                self._queue >>= 8
                self._nbits -= 8
                if self._nbits <= 7:
                    break
            self._value = -1
        return bytes(out)

    def finish(self) -> bytes:
        out = b""
        if self._value > -1:
            out = bytes([(self._queue | self._value << self._nbits) & 0xFF])
        self._queue = 0
        self._nbits = 0
        self._value = -1
        self._position = 0
        return out


def encode(data: bytes) -> str:
    """Encode ``data`` into basE91 text."""
    encoder = Base91Encoder()
    return encoder.update(data) + encoder.finish()


def decode(text: str) -> bytes:
    """Decode basE91 ``text`` back into bytes.

    Raises:
        InvalidEncodingSymbol: If ``text`` contains a symbol outside the alphabet.
    """
    decoder = Base91Decoder()
    return decoder.update(text) + decoder.finish()
