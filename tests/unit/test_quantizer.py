"""Unit tests for the amplitude <-> channel quantizer."""

import numpy as np
import pytest

from conceal.utils_audio import (
    AudioMeta, Waveform, dequantize, dequantize_waveform, quantize,
    quantize_waveform, sample_range,
)


class TestSampleRange:

    def test_sixteen_bit(self):
        assert sample_range(16) == (-32768, 32767)

    def test_eight_bit(self):
        rng = sample_range(8)
        assert (rng.lo, rng.hi, rng.span) == (-128, 127, 255)

    @pytest.mark.parametrize("depth", [0, 4, 7, 33, 64])
    def test_unsupported_depth(self, depth):
        with pytest.raises(ValueError):
            sample_range(depth)


class TestQuantize:

    def test_endpoints(self):
        rng = sample_range(16)
        assert quantize(-32768, rng) == 0
        assert quantize(32767, rng) == 255

    def test_rounds_to_nearest(self):
        # 32768 * 255 / 65535 = 127.502 -> 128 (truncation would give 127)
        rng = sample_range(16)
        assert quantize(0, rng) == 128
        # 128 * 255 / 65535 = 0.498, 129 * 255 / 65535 = 0.502
        assert quantize(-32640, rng) == 0
        assert quantize(-32639, rng) == 1

    def test_clips_out_of_range(self):
        rng = sample_range(8)
        assert quantize(-1000, rng) == 0
        assert quantize(1000, rng) == 255

    def test_eight_bit_is_identity_shift(self):
        rng = sample_range(8)
        x = np.arange(-128, 128)
        assert quantize(x, rng).tolist() == list(range(256))

    def test_monotonic(self):
        rng = sample_range(16)
        x = np.arange(-32768, 32768, 7)
        q = quantize(x, rng)
        assert q.dtype == np.uint8
        assert np.all(np.diff(q.astype(int)) >= 0)


class TestDequantize:

    def test_sixteen_bit_step_is_257(self):
        rng = sample_range(16)
        b = np.arange(256)
        assert dequantize(b, rng).tolist() == (-32768 + 257 * b).tolist()
        assert dequantize(255, rng) == 32767

    @pytest.mark.parametrize("depth", [8, 9, 12, 16, 20, 24, 32])
    def test_quantize_inverts_dequantize(self, depth):
        rng = sample_range(depth)
        b = np.arange(256)
        assert quantize(dequantize(b, rng), rng).tolist() == b.tolist()

    @pytest.mark.parametrize("depth", [8, 12, 16, 24, 32])
    def test_idempotent(self, depth):
        rng = sample_range(depth)
        x = np.random.default_rng(depth).integers(rng.lo, rng.hi + 1, size=2000)
        once = dequantize(quantize(x, rng), rng)
        twice = dequantize(quantize(once, rng), rng)
        assert np.array_equal(once, twice)

    def test_error_bounded_by_half_step(self):
        rng = sample_range(16)
        x = np.arange(-32768, 32768, 3)
        err = np.abs(dequantize(quantize(x, rng), rng) - x)
        assert err.max() <= 257 // 2 + 1


class TestWaveformShadow:

    def test_one_byte_per_sample(self, waveform_factory):
        wave = waveform_factory(1234, channels=2)
        assert len(quantize_waveform(wave)) == 1234

    def test_shadow_back_to_waveform(self, waveform_factory):
        wave = waveform_factory(500, bit_depth=24, channels=2, sample_rate=48000)
        restored = dequantize_waveform(quantize_waveform(wave), wave.meta)

        assert restored.meta == AudioMeta(48000, 2, 24)
        assert restored.sample_count == 500
        rng = sample_range(24)
        assert np.array_equal(restored.samples, dequantize(quantize(wave.samples, rng), rng))

    def test_waveform_validation(self):
        with pytest.raises(ValueError):
            Waveform([0, 1], 8000, 4, 1)
        with pytest.raises(ValueError):
            Waveform([0, 1], 0, 16, 1)
        with pytest.raises(ValueError):
            Waveform([0, 1], 8000, 16, 0)

    def test_frames(self):
        wave = Waveform([1, 2, 3, 4, 5], 8000, 16, 2)
        assert wave.frame_count == 2
        assert wave.frames().tolist() == [[1, 2], [3, 4]]
