"""
Endianness-aware primitive reads and writes over a random-access binary file.
"""

import os
import numpy as np
from typing import BinaryIO

from .errors import TruncatedInputError

INT32 = np.dtype(np.int32)
INT16 = np.dtype(np.int16)
FLOAT32 = np.dtype(np.float32)


def byte_order(big_endian: bool) -> str:
    return '>' if big_endian else '<'


def scalar_dtype(base: np.dtype, big_endian: bool) -> np.dtype:
    """Return base with an explicit byte order."""
    return base.newbyteorder(byte_order(big_endian))


class BinaryCursor:
    """
    Sequential reader/writer over a file opened in binary mode.

    Every read consumes exactly the width of its field and advances the file
    position. Values are assembled one scalar at a time; nothing is cached.
    """

    def __init__(self, fileobj: BinaryIO):
        self.f = fileobj

    # Positioning

    def seek(self, offset: int) -> None:
        self.f.seek(offset, os.SEEK_SET)

    def tell(self) -> int:
        return self.f.tell()

    def length(self) -> int:
        """Total byte length of the underlying file; the position is preserved."""
        here = self.f.tell()
        end = self.f.seek(0, os.SEEK_END)
        self.f.seek(here, os.SEEK_SET)
        return end

    # Reads

    def read_bytes(self, n: int, pad: bool = False) -> bytes:
        """
        Read exactly n bytes.

        Args:
            n: Number of bytes
            pad: Zero-fill a short read instead of failing

        Returns:
            The bytes read
        """
        offset = self.f.tell()
        data = self.f.read(n)
        if len(data) < n:
            if not pad:
                raise TruncatedInputError(n, len(data), offset)
            data = data + bytes(n - len(data))
        return data

    def _read_scalar(self, base: np.dtype, big_endian: bool):
        raw = self.read_bytes(base.itemsize)
        return np.frombuffer(raw, dtype=scalar_dtype(base, big_endian), count=1)[0]

    def read_uint8(self) -> int:
        return self.read_bytes(1)[0]

    def read_int16(self, big_endian: bool) -> int:
        return int(self._read_scalar(INT16, big_endian))

    def read_int32(self, big_endian: bool) -> int:
        return int(self._read_scalar(INT32, big_endian))

    def read_float32(self, big_endian: bool) -> float:
        return float(self._read_scalar(FLOAT32, big_endian))

    def read_string(self, length: int) -> str:
        """Read a fixed byte window as text; the window is not null terminated."""
        return self.read_bytes(length).decode('latin-1')

    # Writes

    def write_bytes(self, data: bytes) -> None:
        self.f.write(data)

    def write_zeros(self, n: int) -> None:
        self.f.write(bytes(n))

    def _write_scalar(self, value, base: np.dtype, big_endian: bool) -> None:
        self.f.write(np.array(value, dtype=scalar_dtype(base, big_endian)).tobytes())

    def write_int16(self, value: int, big_endian: bool) -> None:
        self._write_scalar(value, INT16, big_endian)

    def write_int32(self, value: int, big_endian: bool) -> None:
        self._write_scalar(value, INT32, big_endian)

    def write_float32(self, value: float, big_endian: bool) -> None:
        self._write_scalar(value, FLOAT32, big_endian)
