import logging
import struct
from dataclasses import dataclass
from typing import Union

import numpy as np
from PIL import Image

from .bits import (
    BITS_PER_SLOT, SLOTS_PER_PIXEL, bytes_to_groups, groups_to_bytes,
    read_groups, slots_for_bytes, write_groups,
)
from .errors import ConcealError, DimensionMismatchError, MalformedHeaderError
from .utils_audio import MAX_BIT_DEPTH, MIN_BIT_DEPTH, AudioMeta

logger = logging.getLogger(__name__)

# Constants
MAGIC = b"CNCL"
VERSION = 1
HEADER_FMT = ">4sBiIHB"  # MAGIC | VERSION | payload_len | sample_rate | channels | bit_depth
HEADER_LEN = struct.calcsize(HEADER_FMT)
HEADER_PIXELS = -(-slots_for_bytes(HEADER_LEN) // SLOTS_PER_PIXEL)
HEADER_SLOTS = HEADER_PIXELS * SLOTS_PER_PIXEL

ImageLike = Union[Image.Image, np.ndarray]


# ---------------- Pixel store ----------------
def to_pixel_sequence(image: ImageLike) -> np.ndarray:
    """Flatten an RGB image into a fresh (width*height, 3) uint8 array, row-major."""
    if isinstance(image, Image.Image):
        image = np.array(image.convert("RGB"))
    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise DimensionMismatchError(f"Expected an (H, W, 3) image, got shape {arr.shape}")
    h, w, _ = arr.shape
    if h == 0 or w == 0:
        raise DimensionMismatchError("Image has zero width or height")
    if arr.dtype != np.uint8 and (arr.min() < 0 or arr.max() > 255):
        raise ConcealError(f"Channel values must lie in 0..255, got {arr.min()}..{arr.max()}")
    return arr.astype(np.uint8).reshape(-1, 3).copy()


def from_pixel_sequence(sequence: np.ndarray, width: int, height: int) -> Image.Image:
    seq = np.asarray(sequence, dtype=np.uint8)
    if seq.ndim != 2 or seq.shape[1] != 3 or len(seq) != width * height:
        raise DimensionMismatchError(
            f"Pixel sequence of shape {seq.shape} does not match {width}x{height}"
        )
    return Image.fromarray(seq.reshape(height, width, 3))


def flatten_channels(sequence: np.ndarray) -> np.ndarray:
    return sequence.reshape(-1)


def image_size(image: ImageLike):
    """(width, height) of a PIL image or an (H, W, 3) array."""
    if isinstance(image, Image.Image):
        return image.size
    h, w = np.asarray(image).shape[:2]
    return w, h


# ---------------- Capacity ----------------
@dataclass(frozen=True)
class CapacityOk:
    required_units: int
    available_units: int


@dataclass(frozen=True)
class CapacityOverflow:
    unit_index: int
    required_units: int
    available_units: int


def check_capacity(pixel_count: int, header_units: int, payload_bytes: int):
    """Return CapacityOk or CapacityOverflow(first slot past the end)."""
    available = pixel_count * SLOTS_PER_PIXEL
    required = header_units + slots_for_bytes(payload_bytes)
    if required > available:
        return CapacityOverflow(available, required, available)
    return CapacityOk(required, available)


def payload_capacity_bytes(pixel_count: int) -> int:
    free_slots = pixel_count * SLOTS_PER_PIXEL - HEADER_SLOTS
    return max(0, free_slots * BITS_PER_SLOT // 8)


def calc_capacity_bits(arr: np.ndarray) -> int:
    h, w, c = np.asarray(arr).shape
    return h * w * c * BITS_PER_SLOT


# ---------------- Header ----------------
@dataclass(frozen=True)
class Header:
    payload_len: int
    audio: AudioMeta

    def pack(self) -> bytes:
        try:
            return struct.pack(HEADER_FMT, MAGIC, VERSION, self.payload_len,
                               self.audio.sample_rate, self.audio.channels, self.audio.bit_depth)
        except struct.error as e:
            raise ConcealError(
                f"Header fields out of range: {self.payload_len} samples, {self.audio.sample_rate} Hz, "
                f"{self.audio.channels} ch, {self.audio.bit_depth}-bit",
                {"reason": str(e)},
            ) from e


def encode_header(payload_len: int, audio: AudioMeta) -> bytes:
    return Header(payload_len, audio).pack()


def unpack_header(buf: bytes) -> Header:
    magic, ver, payload_len, rate, channels, depth = struct.unpack(HEADER_FMT, buf[:HEADER_LEN])
    if magic != MAGIC:
        raise MalformedHeaderError("No embedded audio found (bad magic)")
    if ver != VERSION:
        raise MalformedHeaderError(f"Unsupported header version {ver}")
    if payload_len < 0:
        raise MalformedHeaderError(f"Negative payload length {payload_len}")
    if rate == 0 or channels == 0 or not (MIN_BIT_DEPTH <= depth <= MAX_BIT_DEPTH):
        raise MalformedHeaderError(
            f"Invalid audio parameters: {rate} Hz, {channels} ch, {depth}-bit"
        )
    return Header(payload_len, AudioMeta(rate, channels, depth))


def write_header(values: np.ndarray, header: Header) -> int:
    """Write the header into the first HEADER_PIXELS pixels; returns the payload start slot."""
    write_groups(values, 0, bytes_to_groups(header.pack()))
    return HEADER_SLOTS


def decode_header(sequence: np.ndarray) -> Header:
    if len(sequence) < HEADER_PIXELS:
        raise MalformedHeaderError(
            f"Image too small to hold a header ({len(sequence)} < {HEADER_PIXELS} pixels)"
        )
    values = flatten_channels(np.asarray(sequence, dtype=np.uint8))
    groups = read_groups(values, 0, slots_for_bytes(HEADER_LEN))
    header = unpack_header(groups_to_bytes(groups, HEADER_LEN))
    limit = payload_capacity_bytes(len(sequence))
    if header.payload_len > limit:
        raise MalformedHeaderError(
            f"Declared payload of {header.payload_len} bytes exceeds image capacity of {limit}"
        )
    logger.debug("Decoded header: %s", header)
    return header


# ---------------- Image I/O ----------------
def open_image_rgb(path: str) -> np.ndarray:
    with Image.open(path) as im:
        return np.array(im.convert("RGB"))


def save_image_rgb(image: ImageLike, out_path: str):
    if not isinstance(image, Image.Image):
        image = Image.fromarray(np.asarray(image, dtype=np.uint8))
    # lossless only; any recompression destroys the low bits
    image.save(out_path, format="PNG")
