# Conceal test configuration
# Shared fixtures: cover images, waveforms and WAV files on disk.

import logging

import numpy as np
import pytest
from PIL import Image

from conceal.utils_audio import Waveform, save_waveform_as_wav


def make_waveform(n_samples, bit_depth=16, channels=1, sample_rate=8000, seed=0):
    """Random PCM waveform spanning the full range of ``bit_depth``."""
    half = 1 << (bit_depth - 1)
    rng = np.random.default_rng(seed)
    samples = rng.integers(-half, half, size=n_samples, dtype=np.int64)
    return Waveform(samples, sample_rate, bit_depth, channels)


def make_cover(width, height, seed=1):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


@pytest.fixture
def cover_100():
    """100x100 noise image: 10,000 pixels, 30,000 slots."""
    return make_cover(100, 100)


@pytest.fixture
def small_waveform():
    return make_waveform(5000)


@pytest.fixture
def cover_png(tmp_path, cover_100):
    path = tmp_path / "cover.png"
    Image.fromarray(cover_100).save(str(path))
    return path


@pytest.fixture
def wav_file(tmp_path, small_waveform):
    path = tmp_path / "voice.wav"
    save_waveform_as_wav(small_waveform, str(path))
    return path


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep a developer's own config file out of the tests."""
    from conceal import config
    monkeypatch.delenv(config.ENV_VAR, raising=False)
    monkeypatch.setattr(config, "USER_CONFIG", tmp_path / "no-such-config.yaml")


@pytest.fixture(autouse=True)
def reset_cli_logging():
    yield
    logger = logging.getLogger("conceal")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def waveform_factory():
    return make_waveform


@pytest.fixture
def cover_factory():
    return make_cover
