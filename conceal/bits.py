"""
Bit packing for 3-bit LSB slots.

A slot is one channel of one pixel. Its low three bits carry payload, the
upper five keep the cover colour:

    channel = (channel & 0xF8) | (bits & 0x07)

Payload bytes are laid out as a single bit stream, most significant bit
first, and cut into 3-bit groups (first bit of a group is its MSB, the last
group is zero padded). Group ``i`` goes to slot ``i`` where slot ``i`` is
pixel ``i // 3``, channel ``i % 3`` (R, G, B). Encode and decode must both use
this order; any deviation corrupts the payload silently.
"""

from typing import NamedTuple

import numpy as np

BITS_PER_SLOT = 3
SLOTS_PER_PIXEL = 3
SLOT_MASK = 0x07
KEEP_MASK = 0xF8


class Pixel(NamedTuple):
    red: int
    green: int
    blue: int


# ---------------- Single slot ----------------
def write_bits(pixel: Pixel, channel_index: int, bits3: int) -> Pixel:
    """Return a copy of ``pixel`` with the low 3 bits of one channel replaced."""
    if not 0 <= channel_index < SLOTS_PER_PIXEL:
        raise IndexError(f"channel_index must be 0..2, got {channel_index}")
    channels = list(pixel)
    channels[channel_index] = (channels[channel_index] & KEEP_MASK) | (bits3 & SLOT_MASK)
    return Pixel(*channels)


def read_bits(pixel: Pixel, channel_index: int) -> int:
    if not 0 <= channel_index < SLOTS_PER_PIXEL:
        raise IndexError(f"channel_index must be 0..2, got {channel_index}")
    return pixel[channel_index] & SLOT_MASK


# ---------------- Byte <-> group conversion ----------------
def slots_for_bytes(n_bytes: int) -> int:
    """Number of slots needed to carry ``n_bytes`` (ceil(n * 8 / 3))."""
    return -(-n_bytes * 8 // BITS_PER_SLOT)


def bytes_to_groups(data: bytes) -> np.ndarray:
    bits = np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8))
    pad = (-len(bits)) % BITS_PER_SLOT
    if pad:
        bits = np.concatenate([bits, np.zeros(pad, dtype=np.uint8)])
    triples = bits.reshape(-1, BITS_PER_SLOT)
    return (triples[:, 0] << 2) | (triples[:, 1] << 1) | triples[:, 2]


def groups_to_bytes(groups: np.ndarray, n_bytes: int) -> bytes:
    groups = np.asarray(groups, dtype=np.uint8) & SLOT_MASK
    bits = np.stack([(groups >> 2) & 1, (groups >> 1) & 1, groups & 1], axis=1).reshape(-1)
    needed = n_bytes * 8
    if len(bits) < needed:
        raise ValueError(f"Need {needed} bits, only {len(bits)} available")
    return np.packbits(bits[:needed]).tobytes()


# ---------------- Channel-level write/read ----------------
def write_groups(values: np.ndarray, start_slot: int, groups: np.ndarray) -> int:
    """Write ``groups`` into the flat channel array from ``start_slot``.

    Returns the slot following the last one written.
    """
    end = start_slot + len(groups)
    if end > len(values):
        raise ValueError("Insufficient capacity while writing slots.")
    values[start_slot:end] = (values[start_slot:end] & KEEP_MASK) | (groups & SLOT_MASK)
    return end


def read_groups(values: np.ndarray, start_slot: int, count: int) -> np.ndarray:
    end = start_slot + count
    if end > len(values):
        raise ValueError("Insufficient data while reading slots.")
    return values[start_slot:end] & SLOT_MASK
