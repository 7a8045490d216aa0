"""Exception types raised by the codec.

Everything derives from :class:`ConcealError`, which is itself a ``ValueError``
so callers that only guard against ``ValueError`` still catch codec failures.
"""

from typing import Any, Dict, Optional


class ConcealError(ValueError):
    """Base class for codec errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CapacityOverflowError(ConcealError):
    """The payload does not fit in the cover image.

    ``unit_index`` is the first channel slot past the end of the image, the
    place where writing would have overflowed.
    """

    def __init__(self, unit_index: int, available_units: int, required_units: int):
        super().__init__(
            f"Cannot fit payload: overflow at unit {unit_index} "
            f"(need {required_units} units, have {available_units})",
            {"unit_index": unit_index, "available_units": available_units,
             "required_units": required_units},
        )
        self.unit_index = unit_index
        self.available_units = available_units
        self.required_units = required_units


class MalformedHeaderError(ConcealError):
    """The image carries no valid embedded header."""


class DimensionMismatchError(ConcealError):
    """Pixel data does not agree with the declared image dimensions."""


class WaveFileError(ConcealError):
    """A WAV container could not be read or written."""


class ConfigError(ConcealError):
    """The configuration file is unreadable or has the wrong shape."""
