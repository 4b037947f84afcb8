"""
Error taxonomy for the MRC codec.
"""


class MRCError(IOError):
    """Base class for every fatal MRC read/write failure."""


class TruncatedInputError(MRCError):
    """Fewer bytes were available than a field declares."""

    def __init__(self, requested: int, available: int, offset: int):
        super().__init__(
            f"Truncated input at offset {offset}: requested {requested} bytes, {available} available"
        )
        self.requested = requested
        self.available = available
        self.offset = offset


class UnrecognizedStampError(MRCError):
    """The machine stamp after the "MAP " tag is neither 17 nor 68."""

    def __init__(self, stamp: int):
        super().__init__(f"Stamp byte at location 212 is an illegal {stamp}")
        self.stamp = stamp


class UnsupportedEncodingError(MRCError):
    """Compressed RGB or a mode outside the enumerated pixel encodings."""

    def __init__(self, mode):
        if mode == 17:
            message = "Compressed RGB mode not implemented"
        else:
            message = f"mode is an illegal {mode}"
        super().__init__(message)
        self.mode = mode


class AllocationError(MRCError):
    """The decoded volume could not be allocated."""


class SizeMismatchError(MRCError):
    """Expected file size exceeds the container length (strict mode only)."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected file size of {expected} exceeds actual file size of {actual}")
        self.expected = expected
        self.actual = actual


class SizeMismatchWarning(UserWarning):
    """Expected file size exceeds the container length; decoding continues."""
