"""
MRC header codec: the fixed 1024-byte header (plus optional extended header)
to and from VolumeMetadata.

Two historical layouts exist. Files written by IMOD 2.6.20 and above carry
"MAP " at offset 208 followed by a machine stamp; their trailing fields are an
origin triple and an RMS value. Older files carry a wavelength block followed
by the origin in z, x, y order.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .config import (
    CodecConfig,
    DEFAULT_AXIS_MAPPING,
    DEFAULT_BIG_ENDIAN,
    DEFAULT_CELL_ANGLES,
    ENDIAN_PROBE_LIMIT,
    HEADER_SIZE,
    LABEL_LENGTH,
    MAP_TAG,
    MAX_LABELS,
    NATIVE_UNIT,
    STAMP_BIG_ENDIAN,
    STAMP_LITTLE_ENDIAN,
    WRITE_BIG_ENDIAN,
)
from .cursor import BinaryCursor
from .errors import SizeMismatchError, SizeMismatchWarning, UnrecognizedStampError
from .pixels import PixelEncoding
from utils.units import spacing_to_nanometers

logger = logging.getLogger(__name__)


class HeaderOffsets:
    """Byte offsets of the header fields and field groups."""
    NX = 0
    MODE = 12
    SUB_VOLUME_START = 16
    GRID_SIZE = 28
    CELL_LENGTHS = 40
    CELL_ANGLES = 52
    AXIS_MAPPING = 64
    STATISTICS = 76
    SPACE_GROUP = 88
    SYMMETRY_BYTES = 90
    EXTENDED_HEADER_BYTES = 92
    CREATOR_ID = 96
    SECTION_BYTES = 128
    SECTION_FLAGS = 130
    TILT_DESCRIPTORS = 160
    TILT_ANGLES = 172
    TRAILER = 196
    MAP_TAG = 208
    STAMP = 212
    RMS = 216
    LABEL_COUNT = 220
    LABELS = 224


@dataclass
class VolumeMetadata:
    """Geometry and acquisition metadata of one MRC volume."""
    extents: Tuple[int, ...] = (1, 1, 1)
    encoding: Optional[PixelEncoding] = None
    spacing: Tuple[float, ...] = (1.0, 1.0, 1.0)
    units: Tuple[str, ...] = (NATIVE_UNIT, NATIVE_UNIT, NATIVE_UNIT)
    cell_angles: Tuple[float, float, float] = DEFAULT_CELL_ANGLES
    axis_mapping: Tuple[int, int, int] = DEFAULT_AXIS_MAPPING
    space_group: int = 0
    symmetry_bytes: int = 0
    extended_header_bytes: int = 0
    creator_id: int = 0
    section_bytes: int = 0
    section_flags: int = 0
    # idtype, lens, nd1, nd2, vd1, vd2
    tilt_descriptors: Tuple[int, ...] = (0, 0, 0, 0, 0, 0)
    tilt_angles: Tuple[float, ...] = (0.0,) * 6
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rms: float = 0.0
    # nwave followed by five wavelengths
    wavelengths: Tuple[int, ...] = (0,) * 6
    labels: List[str] = field(default_factory=list)
    versioned: bool = True
    big_endian: bool = WRITE_BIG_ENDIAN
    sub_volume_start: Tuple[int, int, int] = (0, 0, 0)
    grid_size: Optional[Tuple[int, int, int]] = None
    cell_lengths: Optional[Tuple[float, float, float]] = None
    file_size: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @property
    def ndims(self) -> int:
        return len(self.extents)

    @property
    def bytes_per_sample(self) -> int:
        return self.encoding.bytes_per_sample

    @property
    def number_of_slices(self) -> int:
        """1 for 2D, nz for 3D, nz * nt for 4D."""
        count = 1
        for extent in self.extents[2:]:
            count *= extent
        return count

    @property
    def slice_shape(self) -> Tuple[int, int]:
        return self.extents[1], self.extents[0]

    @property
    def payload_bytes(self) -> int:
        nx, ny = self.extents[0], self.extents[1]
        return self.bytes_per_sample * nx * ny * self.number_of_slices

    @property
    def data_offset(self) -> int:
        return HEADER_SIZE + self.extended_header_bytes

    @property
    def expected_file_size(self) -> int:
        return self.payload_bytes + self.data_offset

    @property
    def payload_truncated(self) -> bool:
        """True when the container is shorter than the header declares."""
        return self.file_size is not None and self.expected_file_size > self.file_size


def _read_triple(cursor: BinaryCursor, reader, big_endian: bool) -> tuple:
    return tuple(reader(cursor, big_endian) for _ in range(3))


def _int32(cursor, big_endian):
    return cursor.read_int32(big_endian)


def _float32(cursor, big_endian):
    return cursor.read_float32(big_endian)


def probe_byte_order(cursor: BinaryCursor) -> Tuple[bool, bool]:
    """
    Work out the header layout and byte order.

    Returns:
        Tuple of (versioned, big_endian)
    """
    cursor.seek(HeaderOffsets.MAP_TAG)
    versioned = cursor.read_string(len(MAP_TAG)) == MAP_TAG
    big_endian = DEFAULT_BIG_ENDIAN

    if versioned:
        stamp = cursor.read_uint8()
        if stamp == STAMP_BIG_ENDIAN:
            big_endian = True
        elif stamp == STAMP_LITTLE_ENDIAN:
            big_endian = False
        else:
            raise UnrecognizedStampError(stamp)

    # Only nx takes part in the byte order heuristic
    cursor.seek(HeaderOffsets.NX)
    nx = cursor.read_int32(big_endian)
    if nx < 0 or nx >= ENDIAN_PROBE_LIMIT:
        big_endian = not big_endian
        logger.debug(f"nx={nx} is implausible, switching to {'big' if big_endian else 'little'} endian")

    return versioned, big_endian


def check_file_size(meta: VolumeMetadata, config: CodecConfig) -> None:
    """Report a container shorter than the header declares."""
    if not meta.payload_truncated:
        return
    expected, actual = meta.expected_file_size, meta.file_size
    if config.strict_size_check:
        raise SizeMismatchError(expected, actual)
    message = f"Expected file size of {expected} exceeds actual file size of {actual}"
    logger.warning(message)
    warnings.warn(message, SizeMismatchWarning, stacklevel=3)


def read_header(cursor: BinaryCursor, config: Optional[CodecConfig] = None) -> VolumeMetadata:
    """
    Parse the MRC header and leave the cursor at the first pixel byte.

    Args:
        cursor: Cursor over the container
        config: Codec settings; only strict_size_check is consulted here

    Returns:
        Parsed VolumeMetadata
    """
    config = config or CodecConfig()
    versioned, be = probe_byte_order(cursor)

    cursor.seek(HeaderOffsets.NX)
    extents = _read_triple(cursor, _int32, be)

    cursor.seek(HeaderOffsets.MODE)
    encoding = PixelEncoding.from_mode(cursor.read_int32(be))

    cursor.seek(HeaderOffsets.SUB_VOLUME_START)
    sub_volume_start = _read_triple(cursor, _int32, be)
    grid_size = _read_triple(cursor, _int32, be)
    cell_lengths = _read_triple(cursor, _float32, be)

    spacing = []
    for axis in range(3):
        if grid_size[axis] >= 1:
            spacing.append(cell_lengths[axis] / grid_size[axis])
        else:
            logger.warning(f"Grid size {grid_size[axis]} on axis {axis} is invalid, spacing set to 1.0")
            spacing.append(1.0)

    cursor.seek(HeaderOffsets.CELL_ANGLES)
    cell_angles = _read_triple(cursor, _float32, be)
    axis_mapping = _read_triple(cursor, _int32, be)

    # amin, amax, amean are recomputed from the data
    cursor.seek(HeaderOffsets.SPACE_GROUP)
    space_group = cursor.read_int16(be)
    symmetry_bytes = cursor.read_int16(be)
    extended_header_bytes = cursor.read_int32(be)
    creator_id = cursor.read_int16(be)

    meta = VolumeMetadata(
        extents=extents,
        encoding=encoding,
        spacing=tuple(spacing),
        units=(NATIVE_UNIT,) * 3,
        cell_angles=cell_angles,
        axis_mapping=axis_mapping,
        space_group=space_group,
        symmetry_bytes=symmetry_bytes,
        extended_header_bytes=extended_header_bytes,
        creator_id=creator_id,
        versioned=versioned,
        big_endian=be,
        sub_volume_start=sub_volume_start,
        grid_size=grid_size,
        cell_lengths=cell_lengths,
        file_size=cursor.length(),
    )
    check_file_size(meta, config)

    cursor.seek(HeaderOffsets.SECTION_BYTES)
    meta.section_bytes = cursor.read_int16(be)
    meta.section_flags = cursor.read_int16(be)

    cursor.seek(HeaderOffsets.TILT_DESCRIPTORS)
    meta.tilt_descriptors = tuple(cursor.read_int16(be) for _ in range(6))
    meta.tilt_angles = tuple(cursor.read_float32(be) for _ in range(6))

    cursor.seek(HeaderOffsets.TRAILER)
    if versioned:
        meta.origin = _read_triple(cursor, _float32, be)
        cursor.seek(HeaderOffsets.RMS)
        meta.rms = cursor.read_float32(be)
        meta.wavelengths = (0,) * 6
    else:
        meta.wavelengths = tuple(cursor.read_int16(be) for _ in range(6))
        z_org, x_org, y_org = _read_triple(cursor, _float32, be)
        meta.origin = (x_org, y_org, z_org)
        meta.rms = 0.0

    cursor.seek(HeaderOffsets.LABEL_COUNT)
    label_count = cursor.read_int32(be)
    if label_count > MAX_LABELS:
        logger.warning(f"Header declares {label_count} labels, reading the first {MAX_LABELS}")
        label_count = MAX_LABELS
    meta.labels = [cursor.read_string(LABEL_LENGTH).rstrip('\x00 ') for _ in range(max(label_count, 0))]

    logger.debug(f"{'Versioned' if versioned else 'Legacy'} header, "
                 f"{'big' if be else 'little'} endian, extents {extents}, {encoding.name}")

    cursor.seek(meta.data_offset)
    return meta


def _pad_to(cursor: BinaryCursor, offset: int) -> None:
    cursor.write_zeros(offset - cursor.tell())


# Fixed-width header groups and the number of values each holds
_FIXED_GROUPS = {
    "cell_angles": 3,
    "axis_mapping": 3,
    "tilt_descriptors": 6,
    "tilt_angles": 6,
    "origin": 3,
}


def check_fixed_groups(meta: VolumeMetadata) -> None:
    """Raise ValueError when a fixed-width header group has the wrong length."""
    for name, count in _FIXED_GROUPS.items():
        values = getattr(meta, name)
        if len(values) != count:
            raise ValueError(f"{name} needs {count} values, got {len(values)}")


def write_header(cursor: BinaryCursor, meta: VolumeMetadata, number_of_slices: int,
                 min_value: float = 0.0, max_value: float = 0.0) -> None:
    """
    Write a versioned, big-endian header with no extended header and no labels.

    Raises ValueError before writing anything when a fixed-width group
    (cell angles, axis mapping, tilt descriptors, tilt angles, origin) has
    the wrong number of values.

    Args:
        cursor: Cursor positioned at the start of an empty container
        meta: Description of the volume; spacing is in meta.units
        number_of_slices: Sections that follow the header (nz)
        min_value, max_value: Sample statistics stored in amin/amax
    """
    check_fixed_groups(meta)
    be = WRITE_BIG_ENDIAN
    ny, nx = meta.slice_shape
    two_d = meta.ndims == 2
    nz = 1 if two_d else number_of_slices

    cursor.write_int32(nx, be)
    cursor.write_int32(ny, be)
    cursor.write_int32(nz, be)
    cursor.write_int32(int(meta.encoding), be)

    # Sub-volume start, then grid size equal to the extents
    for value in (0, 0, 0, nx, ny, nz):
        cursor.write_int32(value, be)

    res_x, res_y, res_z = spacing_to_nanometers(
        (tuple(meta.spacing) + (1.0, 1.0, 1.0))[:3],
        tuple(meta.units)[:3],
    )
    cursor.write_float32(nx * res_x, be)
    cursor.write_float32(ny * res_y, be)
    cursor.write_float32(1.0 if two_d else nz * res_z, be)

    for angle in meta.cell_angles:
        cursor.write_float32(angle, be)
    for axis in meta.axis_mapping:
        cursor.write_int32(axis, be)

    _pad_to(cursor, HeaderOffsets.STATISTICS)
    cursor.write_float32(min_value, be)
    cursor.write_float32(max_value, be)
    cursor.write_float32(0.0, be)

    cursor.write_int16(meta.space_group, be)
    cursor.write_int16(0, be)
    cursor.write_int32(0, be)
    cursor.write_int16(meta.creator_id, be)

    _pad_to(cursor, HeaderOffsets.SECTION_BYTES)
    cursor.write_int16(0, be)
    cursor.write_int16(0, be)

    _pad_to(cursor, HeaderOffsets.TILT_DESCRIPTORS)
    for value in meta.tilt_descriptors:
        cursor.write_int16(value, be)
    for angle in meta.tilt_angles:
        cursor.write_float32(angle, be)
    for value in meta.origin:
        cursor.write_float32(value, be)

    cursor.write_bytes(MAP_TAG.encode('ascii'))
    cursor.write_bytes(bytes((STAMP_BIG_ENDIAN if be else STAMP_LITTLE_ENDIAN, 0, 0, 0)))
    cursor.write_float32(meta.rms, be)
    cursor.write_int32(0, be)
    _pad_to(cursor, HEADER_SIZE)
