import logging
import wave
from dataclasses import dataclass
from typing import NamedTuple, Union

import numpy as np

from .errors import WaveFileError

logger = logging.getLogger(__name__)

MIN_BIT_DEPTH = 8
MAX_BIT_DEPTH = 32
CHANNEL_MAX = 255


# ---------------- Waveform ----------------
@dataclass(frozen=True)
class AudioMeta:
    sample_rate: int
    channels: int
    bit_depth: int


@dataclass(eq=False)
class Waveform:
    """Interleaved signed PCM samples plus the format needed to play them."""
    samples: np.ndarray
    sample_rate: int
    bit_depth: int
    channels: int

    def __post_init__(self):
        self.samples = np.asarray(self.samples, dtype=np.int64).reshape(-1)
        if self.channels < 1:
            raise ValueError("channels must be >= 1")
        if self.sample_rate < 1:
            raise ValueError("sample_rate must be >= 1")
        sample_range(self.bit_depth)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def frame_count(self) -> int:
        return self.sample_count // self.channels

    @property
    def meta(self) -> AudioMeta:
        return AudioMeta(self.sample_rate, self.channels, self.bit_depth)

    def frames(self) -> np.ndarray:
        """Samples reshaped to (frames, channels); trailing partial frames are dropped."""
        n = self.frame_count * self.channels
        return self.samples[:n].reshape(-1, self.channels)


# ---------------- Quantizer ----------------
class SampleRange(NamedTuple):
    lo: int
    hi: int

    @property
    def span(self) -> int:
        return self.hi - self.lo


def sample_range(bit_depth: int) -> SampleRange:
    if not (MIN_BIT_DEPTH <= bit_depth <= MAX_BIT_DEPTH):
        raise ValueError(f"bit_depth must be {MIN_BIT_DEPTH}..{MAX_BIT_DEPTH}, got {bit_depth}")
    half = 1 << (bit_depth - 1)
    return SampleRange(-half, half - 1)


def quantize(samples: Union[int, np.ndarray], rng: SampleRange):
    """Map signed samples linearly onto 0..255, rounding half up.

    ``q = floor((x - lo) * 255 / (hi - lo) + 1/2)``, done in integers so the
    result never depends on float rounding. Out of range samples are clipped.
    """
    x = np.clip(np.asarray(samples, dtype=np.int64), rng.lo, rng.hi)
    q = ((x - rng.lo) * (2 * CHANNEL_MAX) + rng.span) // (2 * rng.span)
    q = q.astype(np.uint8)
    return int(q) if q.ndim == 0 else q


def dequantize(values: Union[int, np.ndarray], rng: SampleRange):
    """Inverse of :func:`quantize`: ``x = lo + floor(b * (hi - lo) / 255 + 1/2)``."""
    b = np.asarray(values, dtype=np.int64)
    x = rng.lo + (b * (2 * rng.span) + CHANNEL_MAX) // (2 * CHANNEL_MAX)
    return int(x) if x.ndim == 0 else x


def quantize_waveform(waveform: Waveform) -> bytes:
    return quantize(waveform.samples, sample_range(waveform.bit_depth)).tobytes()


def dequantize_waveform(data: bytes, meta: AudioMeta) -> Waveform:
    shadow = np.frombuffer(bytes(data), dtype=np.uint8)
    samples = dequantize(shadow, sample_range(meta.bit_depth))
    return Waveform(np.asarray(samples, dtype=np.int64), meta.sample_rate, meta.bit_depth, meta.channels)


# ---------------- WAV container I/O ----------------
def _decode_frames(raw: bytes, sampwidth: int) -> np.ndarray:
    if sampwidth == 1:
        # 8-bit PCM is stored unsigned
        return np.frombuffer(raw, dtype=np.uint8).astype(np.int64) - 128
    if sampwidth == 2:
        return np.frombuffer(raw, dtype="<i2").astype(np.int64)
    if sampwidth == 3:
        b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int64)
        v = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        return np.where(v & 0x800000, v - (1 << 24), v)
    if sampwidth == 4:
        return np.frombuffer(raw, dtype="<i4").astype(np.int64)
    raise WaveFileError(f"Unsupported sample width: {sampwidth * 8} bits")


def _encode_frames(samples: np.ndarray, sampwidth: int) -> bytes:
    if sampwidth == 1:
        return (samples + 128).astype(np.uint8).tobytes()
    if sampwidth == 2:
        return samples.astype("<i2").tobytes()
    if sampwidth == 3:
        v = samples.astype(np.int64) & 0xFFFFFF
        b = np.stack([v & 0xFF, (v >> 8) & 0xFF, (v >> 16) & 0xFF], axis=1)
        return b.astype(np.uint8).tobytes()
    if sampwidth == 4:
        return samples.astype("<i4").tobytes()
    raise WaveFileError(f"Unsupported sample width: {sampwidth * 8} bits")


def open_wav_as_waveform(path: str) -> Waveform:
    try:
        with wave.open(str(path), "rb") as wf:
            n_channels, sampwidth, framerate, n_frames, comptype, _ = wf.getparams()
            raw = wf.readframes(n_frames)
    except (wave.Error, EOFError) as e:
        raise WaveFileError(f"Invalid WAV file {path}: {e}") from e
    if comptype != "NONE":
        raise WaveFileError(f"Compression code not supported: {comptype}")
    if n_channels < 1:
        raise WaveFileError("Number of channels specified in header is equal to zero")
    if framerate < 1:
        raise WaveFileError("Sample rate must be positive")
    samples = _decode_frames(raw, sampwidth)
    logger.debug("Read %s: %d frames, %d ch, %d Hz, %d-bit",
                 path, n_frames, n_channels, framerate, sampwidth * 8)
    return Waveform(samples, framerate, sampwidth * 8, n_channels)


def save_waveform_as_wav(waveform: Waveform, out_path: str):
    if waveform.bit_depth % 8:
        raise WaveFileError(f"Cannot write {waveform.bit_depth}-bit samples as WAV")
    sampwidth = waveform.bit_depth // 8
    raw = _encode_frames(waveform.frames().reshape(-1), sampwidth)
    with wave.open(str(out_path), "wb") as wf:
        wf.setnchannels(waveform.channels)
        wf.setsampwidth(sampwidth)
        wf.setframerate(waveform.sample_rate)
        wf.writeframes(raw)
    logger.debug("Wrote %s: %d frames", out_path, waveform.frame_count)
