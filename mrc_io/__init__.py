"""
Reader and writer for MRC volumetric image files (electron microscopy and
crystallography maps), with NIfTI import/export.
"""

from .assembler import MRCReader, MRCWriter, metadata_for_array, read_header_only, read_volume, write_volume
from .config import CodecConfig
from .errors import (
    AllocationError,
    MRCError,
    SizeMismatchError,
    SizeMismatchWarning,
    TruncatedInputError,
    UnrecognizedStampError,
    UnsupportedEncodingError,
)
from .header import VolumeMetadata
from .nifti_bridge import export_to_nifti, load_nifti_volume
from .pixels import PixelEncoding

__version__ = "1.0.0"
__all__ = [
    'read_volume', 'write_volume', 'read_header_only', 'metadata_for_array', 'MRCReader', 'MRCWriter',
    'CodecConfig', 'VolumeMetadata', 'PixelEncoding',
    'export_to_nifti', 'load_nifti_volume',
    'MRCError', 'TruncatedInputError', 'UnrecognizedStampError', 'UnsupportedEncodingError',
    'AllocationError', 'SizeMismatchError', 'SizeMismatchWarning',
]
