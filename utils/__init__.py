"""
Utility functions for MRC volume handling.
"""

from .image_utils import calc_min_max, mrc_to_nifti_axes, nifti_to_mrc_axes
from .units import spacing_to_nanometers, to_nanometers, from_nanometers

__all__ = ['calc_min_max', 'mrc_to_nifti_axes', 'nifti_to_mrc_axes',
           'spacing_to_nanometers', 'to_nanometers', 'from_nanometers']
