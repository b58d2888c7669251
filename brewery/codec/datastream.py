"""Big-endian primitive readers and writers for binary records.

Strings are written as a uint16 byte length followed by UTF-8 data.
"""
from __future__ import annotations
import struct

from ..errors import DecodeError, EncodeError


class RecordWriter:
    def __init__(self):
        self._buf = bytearray()

    def _pack(self, fmt: str, value: int):
        try:
            self._buf += struct.pack(fmt, value)
        except struct.error as e:
            raise EncodeError(f"Cannot write {value!r} as '{fmt}': {e}") from e

    def write_byte(self, value: int):
        self._pack(">b", value)

    def write_ubyte(self, value: int):
        self._pack(">B", value)

    def write_bool(self, value: bool):
        self._buf += b"\x01" if value else b"\x00"

    def write_short(self, value: int):
        self._pack(">h", value)

    def write_ushort(self, value: int):
        self._pack(">H", value)

    def write_int(self, value: int):
        self._pack(">i", value)

    def write_utf(self, value: str):
        raw = value.encode("utf-8")
        if len(raw) > 0xFFFF:
            raise EncodeError(f"String too long for record ({len(raw)} bytes)")
        self.write_ushort(len(raw))
        self._buf += raw

    def getvalue(self) -> bytes:
        return bytes(self._buf)


class RecordReader:
    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, size: int) -> bytes:
        if self._pos + size > len(self._data):
            raise DecodeError(f"Unexpected end of record at offset {self._pos} (wanted {size} bytes)")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def read_byte(self) -> int:
        return struct.unpack(">b", self._take(1))[0]

    def read_ubyte(self) -> int:
        return self._take(1)[0]

    def read_bool(self) -> bool:
        return self._take(1) != b"\x00"

    def read_short(self) -> int:
        return struct.unpack(">h", self._take(2))[0]

    def read_ushort(self) -> int:
        return struct.unpack(">H", self._take(2))[0]

    def read_int(self) -> int:
        return struct.unpack(">i", self._take(4))[0]

    def read_utf(self) -> str:
        size = self.read_ushort()
        try:
            return self._take(size).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid UTF-8 string in record: {e}") from e


class ItemLoader:
    """What a kind decoder receives: the declared record version, the reader and the kind tag."""

    def __init__(self, version: int, reader: RecordReader, save_id: str):
        self.version = version
        self.reader = reader
        self.save_id = save_id
