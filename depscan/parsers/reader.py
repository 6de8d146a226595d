"""
Byte / Field Decoder
=====================

Endianness- and width-aware primitive readers over an in-memory byte
window with an explicit cursor.

A :class:`ByteReader` is bound to one ELF image's address width and byte
order for its whole lifetime, so every native-width field read through it
is decoded consistently.  Readers are cheap and never shared: each parse
creates its own.
"""

from __future__ import annotations

import struct

from depscan.core.errors import TruncatedDataError
from depscan.core.models import ElfImage, Endianness


def round_up(value: int, multiple: int) -> int:
    """Round *value* up to the next multiple of *multiple*."""
    if multiple <= 0:
        raise ValueError(f"multiple must be positive, got {multiple}")
    return -(-value // multiple) * multiple


def read_cstring(data: bytes, offset: int) -> str:
    """Read a null-terminated string from *data* starting at *offset*.

    Raises:
        TruncatedDataError: If *offset* lies outside *data* or the string
            has no terminator.
    """
    if offset < 0 or offset >= len(data):
        raise TruncatedDataError(
            f"String offset {offset} outside table of {len(data)} bytes"
        )
    end = data.find(b"\x00", offset)
    if end == -1:
        raise TruncatedDataError(f"Unterminated string at offset {offset}")
    return data[offset:end].decode("utf-8", errors="replace")


class ByteReader:
    """Sequential reader for fixed-width integers and raw byte runs.

    Usage::

        reader = ByteReader(data, bits=64, endianness=Endianness.BIG)
        tag = reader.read_native()
        name_size = reader.read_u32()
        reader.skip(4)
    """

    __slots__ = ("_data", "_offset", "_bits", "_endianness", "_prefix")

    def __init__(
        self,
        data: bytes,
        *,
        bits: int = 32,
        endianness: Endianness = Endianness.LITTLE,
        offset: int = 0,
    ) -> None:
        if bits not in (32, 64):
            raise ValueError(f"bits must be 32 or 64, got {bits}")
        self._data = bytes(data)
        self._bits = bits
        self._endianness = endianness
        self._prefix = "<" if endianness is Endianness.LITTLE else ">"
        self._offset = 0
        self.seek(offset)

    @classmethod
    def for_image(cls, data: bytes, image: ElfImage, offset: int = 0) -> ByteReader:
        """Create a reader using *image*'s address width and byte order."""
        return cls(data, bits=image.bits, endianness=image.endianness, offset=offset)

    # ------------------------------------------------------------------ #
    #  Cursor
    # ------------------------------------------------------------------ #

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    @property
    def at_end(self) -> bool:
        return self._offset >= len(self._data)

    @property
    def bits(self) -> int:
        return self._bits

    @property
    def endianness(self) -> Endianness:
        return self._endianness

    @property
    def native_size(self) -> int:
        """Size in bytes of a native-width field (4 or 8)."""
        return self._bits // 8

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self._data):
            raise TruncatedDataError(
                f"Cannot seek to {offset} in {len(self._data)} bytes"
            )
        self._offset = offset

    def skip(self, count: int) -> None:
        self._require(count)
        self._offset += count

    # ------------------------------------------------------------------ #
    #  Primitive reads
    # ------------------------------------------------------------------ #

    def read_bytes(self, count: int) -> bytes:
        self._require(count)
        start = self._offset
        self._offset += count
        return self._data[start:self._offset]

    def read_u8(self) -> int:
        return self._unpack("B", 1)

    def read_u16(self) -> int:
        return self._unpack("H", 2)

    def read_u32(self) -> int:
        return self._unpack("I", 4)

    def read_u64(self) -> int:
        return self._unpack("Q", 8)

    def read_native(self) -> int:
        """Read an address-sized unsigned field (32-bit on ELF32, 64-bit on ELF64)."""
        if self._bits == 64:
            return self.read_u64()
        return self.read_u32()

    # ------------------------------------------------------------------ #
    #  Internals
    # ------------------------------------------------------------------ #

    def _require(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        if self._offset + count > len(self._data):
            raise TruncatedDataError(
                f"Need {count} bytes at offset {self._offset}, "
                f"only {self.remaining} available"
            )

    def _unpack(self, code: str, size: int) -> int:
        self._require(size)
        (value,) = struct.unpack_from(self._prefix + code, self._data, self._offset)
        self._offset += size
        return value
