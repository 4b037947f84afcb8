"""
NIfTI import/export for MRC volumes.
"""

import os
import numpy as np
import nibabel as nib
from typing import List, Optional, Tuple
import logging

from .config import NATIVE_UNIT
from .header import VolumeMetadata
from .pixels import PixelEncoding, encoding_for_array
from utils.image_utils import mrc_to_nifti_axes, nifti_to_mrc_axes
from utils.units import from_nanometers, spacing_to_nanometers

logger = logging.getLogger(__name__)

# NIfTI spatial unit codes as reported by nibabel
NIFTI_UNITS = {
    "meter": "meters",
    "mm": "millimeters",
    "micron": "micrometers",
}

# Time axis units; none of these has a nanometer scale
NIFTI_TIME_UNITS = {
    "sec": "seconds",
    "msec": "milliseconds",
    "usec": "microseconds",
}

# Dtypes kept as-is on import; anything else becomes float32
NATIVE_DTYPES = (np.uint8, np.int16, np.float32, np.complex64)


def _affine_for(metadata: VolumeMetadata) -> np.ndarray:
    spacing_nm = spacing_to_nanometers(metadata.spacing[:3], tuple(metadata.units)[:3])
    affine = np.eye(4)
    for axis, value in enumerate(spacing_nm):
        affine[axis, axis] = from_nanometers(value, "millimeters")
    return affine


def export_to_nifti(volume: np.ndarray, metadata: VolumeMetadata, filename: str,
                    start: int = 0, end: Optional[int] = None) -> List[str]:
    """
    Export a range of MRC sections to a NIfTI file.

    Args:
        volume: (z, y, x) volume as returned by read_volume
        metadata: Metadata of the volume
        start: Start section index
        end: End section index (exclusive), default all
        filename: Output filename (.nii or .nii.gz)

    Returns:
        List of created filenames
    """
    try:
        if metadata.encoding is PixelEncoding.RGB:
            raise ValueError("RGB volumes cannot be exported to NIfTI")

        end = volume.shape[0] if end is None else end
        img_data = mrc_to_nifti_axes(volume[start:end])

        img_nifti = nib.Nifti1Image(img_data, affine=_affine_for(metadata))
        img_nifti.header.set_xyzt_units(xyz="mm")
        nib.save(img_nifti, filename)

        logger.info(f"Exported sections {start}-{end-1} ({end-start} sections)")
        return [os.path.basename(filename)]

    except Exception as e:
        logger.error(f"Export error: {e}")
        raise


def load_nifti_volume(file_path: str) -> Tuple[np.ndarray, VolumeMetadata]:
    """
    Load a NIfTI file in MRC axis order, ready for write_volume.

    Args:
        file_path: Path to NIfTI file

    Returns:
        Tuple of (volume_array, metadata)
    """
    try:
        nifti_img = nib.load(file_path)
        if nifti_img.get_data_dtype() in NATIVE_DTYPES:
            arr = np.asanyarray(nifti_img.dataobj)
        else:
            arr = nifti_img.get_fdata().astype(np.float32)

        if arr.ndim > 4:
            raise ValueError(f"Cannot convert a {arr.ndim}-D NIfTI image")
        arr = nifti_to_mrc_axes(arr)

        xyz_unit, t_unit = nifti_img.header.get_xyzt_units()
        unit = NIFTI_UNITS.get(xyz_unit)
        if unit is None:
            logger.warning(f"NIfTI spatial unit {xyz_unit!r} unknown, assuming nanometers")
            unit = NATIVE_UNIT

        extents = tuple(int(n) for n in arr.shape[::-1])
        zooms = nifti_img.header.get_zooms()
        spacing = tuple(float(z) for z in zooms[:len(extents)])
        units = (unit,) * min(len(extents), 3)
        if len(extents) == 4:
            units += (NIFTI_TIME_UNITS.get(t_unit, "seconds"),)

        metadata = VolumeMetadata(
            extents=extents,
            encoding=encoding_for_array(arr),
            spacing=spacing,
            units=units,
        )

        logger.info(f"Loaded NIfTI file. Shape: {arr.shape}, Spacing: {spacing} {unit}")
        return arr, metadata

    except Exception as e:
        logger.error(f"NIfTI loading error: {e}")
        raise
