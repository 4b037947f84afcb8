"""
Array utilities shared by the MRC codec and the NIfTI bridge.
"""

import numpy as np
import logging
from typing import Tuple

logger = logging.getLogger(__name__)


def calc_min_max(volume: np.ndarray, color: bool = False) -> Tuple[float, float]:
    """
    Compute the minimum and maximum sample value of a volume.

    Complex volumes use the magnitude. Color volumes (trailing ARGB axis) skip the
    constant alpha channel.
    """
    if volume.size == 0:
        return 0.0, 0.0
    if np.iscomplexobj(volume):
        values = np.abs(volume)
    elif color:
        values = volume[..., 1:]
    else:
        values = volume
    return float(values.min()), float(values.max())


def mrc_to_nifti_axes(volume: np.ndarray) -> np.ndarray:
    """
    Reorder an MRC-ordered volume (z, y, x) to NIfTI order (x, y, z).
    Extra trailing or leading axes are left where they are.
    """
    if volume.ndim == 2:
        return np.transpose(volume, (1, 0))
    if volume.ndim == 3:
        return np.transpose(volume, (2, 1, 0))
    if volume.ndim == 4:
        # (t, z, y, x) -> (x, y, z, t)
        return np.transpose(volume, (3, 2, 1, 0))
    logger.warning(f"Cannot reorder volume with {volume.ndim} axes, returning it unchanged")
    return volume


def nifti_to_mrc_axes(volume: np.ndarray) -> np.ndarray:
    """Inverse of mrc_to_nifti_axes."""
    if volume.ndim in (2, 3, 4):
        return np.ascontiguousarray(np.transpose(volume, tuple(range(volume.ndim))[::-1]))
    logger.warning(f"Cannot reorder volume with {volume.ndim} axes, returning it unchanged")
    return volume
