import numpy as np
from PIL import Image

from .bits import SLOT_MASK, KEEP_MASK


def diff_map(cover_arr: np.ndarray, stego_arr: np.ndarray) -> Image.Image:
    """White wherever any channel's payload bits differ between cover and stego."""
    cover = np.asarray(cover_arr, dtype=np.uint8)
    stego = np.asarray(stego_arr, dtype=np.uint8)
    if cover.shape != stego.shape:
        raise ValueError(f"Shape mismatch: {cover.shape} vs {stego.shape}")
    diff = (cover & SLOT_MASK) ^ (stego & SLOT_MASK)
    # scale to 0-255 for visualization
    diff_img = np.any(diff > 0, axis=2).astype(np.uint8) * 255
    return Image.fromarray(diff_img)


def high_bits_intact(cover_arr: np.ndarray, stego_arr: np.ndarray) -> bool:
    """True when only the low 3 bits of any channel were touched."""
    cover = np.asarray(cover_arr, dtype=np.uint8)
    stego = np.asarray(stego_arr, dtype=np.uint8)
    return cover.shape == stego.shape and bool(np.all((cover & KEEP_MASK) == (stego & KEEP_MASK)))
