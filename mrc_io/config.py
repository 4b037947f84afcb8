"""
Configuration constants and settings for the MRC codec.
"""

from dataclasses import dataclass
from typing import Tuple

# Fixed header geometry
HEADER_SIZE = 1024
LABEL_LENGTH = 80
MAX_LABELS = 10

# Tag written at offset 208 by IMOD 2.6.20 and above
MAP_TAG = "MAP "

# Machine stamp byte at offset 212
STAMP_BIG_ENDIAN = 17
STAMP_LITTLE_ENDIAN = 68

# nx outside [0, ENDIAN_PROBE_LIMIT) means the byte order guess was wrong
ENDIAN_PROBE_LIMIT = 65536

# Byte order assumed until the header says otherwise
DEFAULT_BIG_ENDIAN = False

# Written files are always big endian
WRITE_BIG_ENDIAN = True

# Units attached to every axis of a volume read from disk
NATIVE_UNIT = "nanometers"

# Default header values for written files
DEFAULT_CELL_ANGLES = (0.0, 0.0, 0.0)
DEFAULT_AXIS_MAPPING = (1, 2, 3)


@dataclass
class CodecConfig:
    """
    Caller-supplied settings for one read or write.

    strict_size_check turns a header/payload size mismatch into a fatal
    SizeMismatchError instead of a SizeMismatchWarning.
    progress_step and fine_progress_step are the reporting cadence in percent
    for multi-byte encodings and for the single-byte encoding.
    """
    strict_size_check: bool = False
    progress_step: int = 10
    fine_progress_step: int = 1

    def validate(self) -> Tuple[bool, str]:
        """Validate the configuration. Returns (is_valid, error_message)."""
        for name in ("progress_step", "fine_progress_step"):
            step = getattr(self, name)
            if step < 1 or step > 100:
                return False, f"{name} must be between 1 and 100, got {step}."
        return True, ""
