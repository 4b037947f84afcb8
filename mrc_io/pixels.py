"""
Per-slice conversion between raw MRC pixel bytes and numpy buffers.
"""

import numpy as np
import logging
from enum import IntEnum
from typing import Optional, Tuple, Union

from .cursor import byte_order
from .errors import UnsupportedEncodingError

logger = logging.getLogger(__name__)

ALPHA_OPAQUE = 255


class PixelEncoding(IntEnum):
    """MRC mode word."""
    UBYTE = 0
    SHORT = 1
    FLOAT = 2
    COMPLEX_SHORT = 3
    COMPLEX_FLOAT = 4
    RGB = 16
    COMPRESSED_RGB = 17

    @classmethod
    def from_mode(cls, mode: int) -> "PixelEncoding":
        """Look up a supported encoding, raising UnsupportedEncodingError otherwise."""
        try:
            encoding = cls(mode)
        except ValueError:
            raise UnsupportedEncodingError(mode) from None
        if encoding is cls.COMPRESSED_RGB:
            raise UnsupportedEncodingError(mode)
        return encoding

    @property
    def bytes_per_sample(self) -> int:
        if self is PixelEncoding.COMPRESSED_RGB:
            raise UnsupportedEncodingError(int(self))
        return _BYTES_PER_SAMPLE[self]

    @property
    def is_complex(self) -> bool:
        return self in (PixelEncoding.COMPLEX_SHORT, PixelEncoding.COMPLEX_FLOAT)

    @property
    def volume_dtype(self) -> np.dtype:
        """dtype of the decoded volume buffer."""
        if self is PixelEncoding.COMPRESSED_RGB:
            raise UnsupportedEncodingError(int(self))
        return np.dtype(_VOLUME_DTYPE[self])


_BYTES_PER_SAMPLE = {
    PixelEncoding.UBYTE: 1,
    PixelEncoding.SHORT: 2,
    PixelEncoding.FLOAT: 4,
    PixelEncoding.COMPLEX_SHORT: 4,
    PixelEncoding.COMPLEX_FLOAT: 8,
    PixelEncoding.RGB: 3,
}

_VOLUME_DTYPE = {
    PixelEncoding.UBYTE: np.uint8,
    PixelEncoding.SHORT: np.int16,
    PixelEncoding.FLOAT: np.float32,
    PixelEncoding.COMPLEX_SHORT: np.complex64,
    PixelEncoding.COMPLEX_FLOAT: np.complex64,
    PixelEncoding.RGB: np.uint8,
}

# On-disk component dtype, before byte order is applied
_COMPONENT_DTYPE = {
    PixelEncoding.SHORT: np.int16,
    PixelEncoding.FLOAT: np.float32,
    PixelEncoding.COMPLEX_SHORT: np.int16,
    PixelEncoding.COMPLEX_FLOAT: np.float32,
}

# Integer sample type each integer encoding stores
_INTEGER_SAMPLE = {
    PixelEncoding.UBYTE: np.uint8,
    PixelEncoding.SHORT: np.int16,
    PixelEncoding.COMPLEX_SHORT: np.int16,
    PixelEncoding.RGB: np.uint8,
}

DecodedSlice = Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]


def _disk_dtype(encoding: PixelEncoding, big_endian: bool) -> np.dtype:
    return np.dtype(_COMPONENT_DTYPE[encoding]).newbyteorder(byte_order(big_endian))


def slice_nbytes(encoding: PixelEncoding, nx: int, ny: int) -> int:
    """Size in bytes of one encoded XY plane."""
    return encoding.bytes_per_sample * nx * ny


def decode_slice(raw: bytes, encoding: PixelEncoding, nx: int, ny: int,
                 big_endian: bool) -> DecodedSlice:
    """
    Decode one XY plane.

    Args:
        raw: Encoded slice bytes, exactly slice_nbytes(encoding, nx, ny) long
        encoding: Pixel encoding of the container
        nx, ny: Slice extents
        big_endian: Byte order of the container

    Returns:
        (ny, nx) array; (ny, nx, 4) ARGB uint8 array for RGB; a (real, imag)
        pair of float32 arrays for complex encodings
    """
    if encoding is PixelEncoding.COMPRESSED_RGB:
        raise UnsupportedEncodingError(int(encoding))

    count = nx * ny
    if encoding is PixelEncoding.UBYTE:
        return np.frombuffer(raw, dtype=np.uint8, count=count).reshape(ny, nx)

    if encoding is PixelEncoding.RGB:
        rgb = np.frombuffer(raw, dtype=np.uint8, count=3 * count).reshape(ny, nx, 3)
        argb = np.empty((ny, nx, 4), dtype=np.uint8)
        argb[..., 0] = ALPHA_OPAQUE
        argb[..., 1:] = rgb
        return argb

    dtype = _disk_dtype(encoding, big_endian)
    if encoding.is_complex:
        pairs = np.frombuffer(raw, dtype=dtype, count=2 * count).reshape(ny, nx, 2)
        real = pairs[..., 0].astype(np.float32)
        imag = pairs[..., 1].astype(np.float32)
        return real, imag

    values = np.frombuffer(raw, dtype=dtype, count=count).reshape(ny, nx)
    return values.astype(_VOLUME_DTYPE[encoding])


def encode_slice(data: np.ndarray, encoding: PixelEncoding, big_endian: bool,
                 imag: Optional[np.ndarray] = None) -> bytes:
    """
    Encode one XY plane.

    Args:
        data: (ny, nx) samples; (ny, nx, 4) ARGB for RGB; complex samples, or
            the real part when imag is given, for complex encodings
        encoding: Target pixel encoding
        big_endian: Byte order to write
        imag: Optional imaginary part for complex encodings

    Returns:
        Encoded slice bytes
    """
    if encoding is PixelEncoding.COMPRESSED_RGB:
        raise UnsupportedEncodingError(int(encoding))

    if encoding is PixelEncoding.UBYTE:
        return np.ascontiguousarray(data, dtype=np.uint8).tobytes()

    if encoding is PixelEncoding.RGB:
        # Drop alpha and interleave R, G, B
        return np.ascontiguousarray(data[..., 1:4], dtype=np.uint8).tobytes()

    dtype = _disk_dtype(encoding, big_endian)
    if encoding.is_complex:
        if imag is None:
            real, imag = np.real(data), np.imag(data)
        else:
            real = data
        pairs = np.empty(real.shape + (2,), dtype=dtype)
        pairs[..., 0] = real
        pairs[..., 1] = imag
        return pairs.tobytes()

    return np.ascontiguousarray(data).astype(dtype).tobytes()


def fits_encoding(data: np.ndarray, encoding: PixelEncoding) -> bool:
    """False when samples fall outside the integer range of the encoding."""
    target = _INTEGER_SAMPLE.get(encoding)
    values = np.asarray(data)
    if target is None or values.size == 0 or values.dtype == target:
        return True
    if np.iscomplexobj(values):
        values = np.concatenate([values.real.ravel(), values.imag.ravel()])
    info = np.iinfo(target)
    return bool(info.min <= values.min() and values.max() <= info.max)


def encoding_for_array(volume: np.ndarray) -> PixelEncoding:
    """
    Pick the MRC encoding a volume is written with when the caller names none.

    Color is never inferred from the shape; ARGB volumes need an explicit
    PixelEncoding.RGB.
    """
    dtype = volume.dtype
    if dtype == np.uint8:
        return PixelEncoding.UBYTE
    if dtype in (np.int8, np.int16):
        return PixelEncoding.SHORT
    if np.iscomplexobj(volume):
        return PixelEncoding.COMPLEX_FLOAT
    if dtype.kind in ("u", "i", "f"):
        return PixelEncoding.FLOAT
    raise UnsupportedEncodingError(str(dtype))
