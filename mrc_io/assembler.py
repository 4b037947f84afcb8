"""
Volume assembly: drives the header and pixel codecs over every section of an
MRC container.

Reading produces a numpy array ordered (z, y, x), with a trailing ARGB axis
for color data. Writing accepts (y, x), (z, y, x) or (t, z, y, x) arrays and
streams the selected sections with time outermost.
"""

import dataclasses
import os
import numpy as np
import logging
from enum import Enum
from typing import Optional, Tuple

from .config import CodecConfig, NATIVE_UNIT, WRITE_BIG_ENDIAN
from .cursor import BinaryCursor
from .errors import AllocationError, MRCError, UnsupportedEncodingError
from .header import VolumeMetadata, check_fixed_groups, read_header, write_header
from .pixels import PixelEncoding, decode_slice, encode_slice, encoding_for_array, fits_encoding, slice_nbytes
from .progress import ProgressCallback, ProgressReporter
from utils.image_utils import calc_min_max

logger = logging.getLogger(__name__)

SliceRange = Tuple[int, int]


class CodecState(Enum):
    UNOPENED = "unopened"
    HEADER_PARSED = "header_parsed"
    HEADER_WRITTEN = "header_written"
    STREAMING = "streaming"
    CLOSED = "closed"


class _VolumeStream:
    """Owns the file handle and the state of one read or write."""

    def __init__(self, path: str, config: Optional[CodecConfig] = None,
                 progress: Optional[ProgressCallback] = None):
        self.path = os.fspath(path)
        self.config = config or CodecConfig()
        is_valid, message = self.config.validate()
        if not is_valid:
            raise ValueError(message)
        self.progress = progress
        self.state = CodecState.UNOPENED
        self._file = None

    def _require(self, *states: CodecState) -> None:
        if self.state not in states:
            raise RuntimeError(f"Operation not allowed in state {self.state.value}")

    def _reporter(self, encoding: PixelEncoding, total_bytes: int) -> ProgressReporter:
        if encoding is PixelEncoding.UBYTE:
            step = self.config.fine_progress_step
        else:
            step = self.config.progress_step
        return ProgressReporter(self.progress, total_bytes, step)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        self.state = CodecState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class MRCReader(_VolumeStream):
    """Reads one MRC container into memory."""

    def read_header(self) -> VolumeMetadata:
        """Parse only the header and close the file."""
        self._require(CodecState.UNOPENED)
        try:
            self._file = open(self.path, 'rb')
            meta = read_header(BinaryCursor(self._file), self.config)
            self.state = CodecState.HEADER_PARSED
            return meta
        finally:
            self.close()

    def read(self) -> Tuple[np.ndarray, VolumeMetadata]:
        """
        Read the header and every section.

        Returns:
            Tuple of (volume, metadata); metadata carries min/max of the volume
        """
        self._require(CodecState.UNOPENED)
        try:
            self._file = open(self.path, 'rb')
            cursor = BinaryCursor(self._file)
            meta = read_header(cursor, self.config)
            self.state = CodecState.HEADER_PARSED

            volume = self._allocate(meta)
            self.state = CodecState.STREAMING
            self._read_slices(cursor, meta, volume)

            meta.min_value, meta.max_value = calc_min_max(volume, color=meta.encoding is PixelEncoding.RGB)
            return volume, meta
        finally:
            self.close()

    @staticmethod
    def _allocate(meta: VolumeMetadata) -> np.ndarray:
        if min(meta.extents) < 0:
            raise MRCError(f"Invalid extents {meta.extents}")
        shape = (meta.number_of_slices,) + meta.slice_shape
        if meta.encoding is PixelEncoding.RGB:
            shape += (4,)
        try:
            return np.empty(shape, dtype=meta.encoding.volume_dtype)
        except (MemoryError, ValueError) as e:
            raise AllocationError(f"Cannot allocate volume of shape {shape}: {e}") from e

    def _read_slices(self, cursor: BinaryCursor, meta: VolumeMetadata, volume: np.ndarray) -> None:
        ny, nx = meta.slice_shape
        nbytes = slice_nbytes(meta.encoding, nx, ny)
        # Past a reported size mismatch the missing tail reads as zeros
        pad = meta.payload_truncated
        reporter = self._reporter(meta.encoding, meta.payload_bytes)
        reporter.start()

        for index in range(meta.number_of_slices):
            decoded = decode_slice(cursor.read_bytes(nbytes, pad=pad), meta.encoding, nx, ny, meta.big_endian)
            if meta.encoding.is_complex:
                real, imag = decoded
                volume.real[index] = real
                volume.imag[index] = imag
            else:
                volume[index] = decoded
            reporter.advance(nbytes)

        reporter.finish()


def metadata_for_array(volume: np.ndarray, encoding: Optional[PixelEncoding] = None) -> VolumeMetadata:
    """
    Describe a bare array with unit nanometer spacing.

    Pass encoding=PixelEncoding.RGB for an ARGB volume; without it every
    axis of the array is a spatial axis.
    """
    if encoding is None:
        encoding = encoding_for_array(volume)
    shape = volume.shape[:-1] if encoding is PixelEncoding.RGB else volume.shape
    extents = tuple(int(n) for n in shape[::-1])
    return VolumeMetadata(
        extents=extents,
        encoding=encoding,
        spacing=(1.0,) * len(extents),
        units=(NATIVE_UNIT,) * len(extents),
    )


def _inclusive_range(value: Optional[SliceRange], size: int, name: str) -> SliceRange:
    if value is None:
        return 0, size - 1
    begin, end = value
    if not (0 <= begin <= end < size):
        raise ValueError(f"{name} {value} outside 0..{size - 1}")
    return begin, end


class MRCWriter(_VolumeStream):
    """Writes one volume to an MRC container, replacing any existing file."""

    def write(self, volume: np.ndarray, meta: Optional[VolumeMetadata] = None,
              slice_range: Optional[SliceRange] = None,
              time_range: Optional[SliceRange] = None) -> None:
        """
        Write the header and the selected sections.

        Args:
            volume: (y, x), (z, y, x) or (t, z, y, x) samples, plus a trailing
                ARGB axis for color data
            meta: Description of the volume; built from the array when omitted
            slice_range: Inclusive (begin, end) z indices, default all
            time_range: Inclusive (begin, end) t indices, default all
        """
        self._require(CodecState.UNOPENED)
        volume = np.asarray(volume)
        if meta is None:
            meta = metadata_for_array(volume)
        elif meta.encoding is None:
            meta = dataclasses.replace(meta, encoding=encoding_for_array(volume))
        if meta.encoding is PixelEncoding.COMPRESSED_RGB:
            raise UnsupportedEncodingError(int(meta.encoding))
        check_fixed_groups(meta)

        stack = self._as_stack(volume, meta)
        nt, nz = stack.shape[0], stack.shape[1]
        z_begin, z_end = _inclusive_range(slice_range if meta.ndims >= 3 else None, nz, "slice_range")
        t_begin, t_end = _inclusive_range(time_range if meta.ndims == 4 else None, nt, "time_range")
        selected = stack[t_begin:t_end + 1, z_begin:z_end + 1]
        number_of_slices = selected.shape[0] * selected.shape[1]
        min_value, max_value = calc_min_max(selected, color=meta.encoding is PixelEncoding.RGB)
        if not fits_encoding(selected, meta.encoding):
            logger.warning(f"Samples in [{min_value}, {max_value}] do not fit {meta.encoding.name} "
                           f"and will wrap")

        try:
            # Truncates any previous content
            self._file = open(self.path, 'wb')
            cursor = BinaryCursor(self._file)
            write_header(cursor, meta, number_of_slices, min_value, max_value)
            self.state = CodecState.HEADER_WRITTEN

            self.state = CodecState.STREAMING
            ny, nx = meta.slice_shape
            reporter = self._reporter(meta.encoding, number_of_slices * slice_nbytes(meta.encoding, nx, ny))
            reporter.start()
            for t in range(selected.shape[0]):
                for z in range(selected.shape[1]):
                    raw = encode_slice(selected[t, z], meta.encoding, WRITE_BIG_ENDIAN)
                    cursor.write_bytes(raw)
                    reporter.advance(len(raw))
            reporter.finish()
        finally:
            self.close()

    @staticmethod
    def _as_stack(volume: np.ndarray, meta: VolumeMetadata) -> np.ndarray:
        """View the volume as (t, z, y, x[, 4])."""
        channels = (4,) if meta.encoding is PixelEncoding.RGB else ()
        expected = tuple(meta.extents[::-1]) + channels
        if volume.shape != expected:
            raise ValueError(f"Volume shape {volume.shape} does not match extents {meta.extents}")
        if not 2 <= meta.ndims <= 4:
            raise ValueError(f"Expected 2 to 4 axes, got {meta.ndims}")
        leading = (1,) * (4 - meta.ndims)
        return volume.reshape(leading + volume.shape)


def read_volume(path: str, progress: Optional[ProgressCallback] = None,
                config: Optional[CodecConfig] = None) -> Tuple[np.ndarray, VolumeMetadata]:
    """
    Load an MRC file.

    Args:
        path: Path to the MRC file
        progress: Optional callback receiving percentages 0-100
        config: Codec settings

    Returns:
        Tuple of (volume_array, metadata)
    """
    try:
        with MRCReader(path, config, progress) as reader:
            volume, meta = reader.read()
        logger.info(f"Loaded MRC file. Shape: {volume.shape}, Encoding: {meta.encoding.name}")
        return volume, meta
    except Exception as e:
        logger.error(f"MRC loading error: {e}")
        raise


def read_header_only(path: str, config: Optional[CodecConfig] = None) -> VolumeMetadata:
    """Parse the header of an MRC file without reading pixel data."""
    try:
        with MRCReader(path, config) as reader:
            return reader.read_header()
    except Exception as e:
        logger.error(f"MRC header error: {e}")
        raise


def write_volume(path: str, volume: np.ndarray, metadata: Optional[VolumeMetadata] = None,
                 slice_range: Optional[SliceRange] = None, time_range: Optional[SliceRange] = None,
                 progress: Optional[ProgressCallback] = None,
                 config: Optional[CodecConfig] = None) -> None:
    """
    Save a volume as an MRC file, overwriting the destination.

    Args:
        path: Output filename
        volume: Voxel array, see MRCWriter.write
        metadata: Optional description of the volume
        slice_range: Inclusive z range for 3D and 4D volumes
        time_range: Inclusive t range for 4D volumes
        progress: Optional callback receiving percentages 0-100
        config: Codec settings
    """
    try:
        with MRCWriter(path, config, progress) as writer:
            writer.write(volume, metadata, slice_range, time_range)
        logger.info(f"Saved MRC file {os.path.basename(os.fspath(path))}. Shape: {np.shape(volume)}")
    except Exception as e:
        logger.error(f"MRC writing error: {e}")
        raise
