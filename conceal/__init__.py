# conceal/__init__.py
"""
Conceal Package
---------------
Hide a PCM audio waveform in the 3 low bits of every channel of an RGB image,
and recover it from the image alone.
"""

from .core import (
    # Embedding
    ConcealPercentage, EmbedJob, EmbedState, begin_embed, embed,
    # Extraction
    extract, read_header,
)

from .bits import Pixel, read_bits, write_bits

from .utils import (
    HEADER_PIXELS, HEADER_SLOTS,
    CapacityOk, CapacityOverflow, Header,
    check_capacity, payload_capacity_bytes,
    encode_header, decode_header,
    to_pixel_sequence, from_pixel_sequence,
    open_image_rgb, save_image_rgb,
)

from .utils_audio import (
    AudioMeta, SampleRange, Waveform,
    sample_range, quantize, dequantize,
    open_wav_as_waveform, save_waveform_as_wav,
)

from .errors import (
    ConcealError, CapacityOverflowError, MalformedHeaderError,
    DimensionMismatchError, WaveFileError, ConfigError,
)

from .visualize import diff_map

__all__ = [
    # engines
    "ConcealPercentage", "EmbedJob", "EmbedState", "begin_embed", "embed",
    "extract", "read_header",
    # bit packer
    "Pixel", "read_bits", "write_bits",
    # header / capacity / pixel store
    "HEADER_PIXELS", "HEADER_SLOTS",
    "CapacityOk", "CapacityOverflow", "Header",
    "check_capacity", "payload_capacity_bytes",
    "encode_header", "decode_header",
    "to_pixel_sequence", "from_pixel_sequence",
    "open_image_rgb", "save_image_rgb",
    # audio
    "AudioMeta", "SampleRange", "Waveform",
    "sample_range", "quantize", "dequantize",
    "open_wav_as_waveform", "save_waveform_as_wav",
    # errors
    "ConcealError", "CapacityOverflowError", "MalformedHeaderError",
    "DimensionMismatchError", "WaveFileError", "ConfigError",
    "diff_map",
]

__version__ = "1.0.0"
