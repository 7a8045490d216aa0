"""
End-to-end tests: WAV on disk -> concealed PNG on disk -> recovered WAV.
"""

import numpy as np
import pytest
from PIL import Image

from conceal import (
    CapacityOverflowError, EmbedJob, EmbedState, embed, extract, open_image_rgb,
    open_wav_as_waveform, save_image_rgb, save_waveform_as_wav,
)
from conceal.utils_audio import dequantize, quantize, sample_range


class TestHundredByHundredScenario:
    """100x100 image: 10,000 pixels, 30,000 slots, 11,233 payload bytes."""

    def test_five_thousand_samples_fit(self, cover_100, waveform_factory):
        job = EmbedJob(cover_100, waveform_factory(5000))
        final = list(job.run())[-1]

        assert final.done
        assert job.state is EmbedState.COMPLETED
        assert extract(final.data).sample_count == 5000

    def test_twenty_thousand_samples_overflow(self, cover_100, waveform_factory):
        job = EmbedJob(cover_100, waveform_factory(20000))
        records = []
        with pytest.raises(CapacityOverflowError) as exc:
            for record in job.run():
                records.append(record)

        assert exc.value.unit_index == 30000
        assert records == []
        assert job.state is EmbedState.FAILED


class TestFileRoundTrip:

    @pytest.mark.parametrize("depth, channels", [(8, 1), (16, 1), (16, 2), (24, 2)])
    def test_wav_png_wav(self, tmp_path, cover_png, waveform_factory, depth, channels):
        wave_in = waveform_factory(4000, bit_depth=depth, channels=channels, sample_rate=16000)
        wav_path = tmp_path / "in.wav"
        png_path = tmp_path / "stego.png"
        out_path = tmp_path / "out.wav"
        save_waveform_as_wav(wave_in, str(wav_path))

        stego = embed(open_image_rgb(str(cover_png)), open_wav_as_waveform(str(wav_path)))
        save_image_rgb(stego, str(png_path))
        save_waveform_as_wav(extract(open_image_rgb(str(png_path))), str(out_path))
        wave_out = open_wav_as_waveform(str(out_path))

        rng = sample_range(depth)
        assert wave_out.meta == wave_in.meta
        assert np.array_equal(wave_out.samples, dequantize(quantize(wave_in.samples, rng), rng))

    def test_png_keeps_dimensions_and_high_bits(self, tmp_path, cover_100, small_waveform):
        png_path = tmp_path / "stego.png"
        save_image_rgb(embed(cover_100, small_waveform), str(png_path))

        with Image.open(png_path) as img:
            assert img.size == (100, 100)
            arr = np.array(img)
        assert np.array_equal(arr & 0xF8, cover_100 & 0xF8)

    def test_re_embedding_replaces_previous_audio(self, cover_100, waveform_factory):
        first = embed(cover_100, waveform_factory(6000, seed=10))
        second = embed(first, waveform_factory(1000, seed=11, sample_rate=11025))
        restored = extract(second)

        assert restored.sample_count == 1000
        assert restored.sample_rate == 11025
