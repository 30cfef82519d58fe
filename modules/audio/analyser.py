"""
FFT analyser turning raw PCM blocks into analyser byte arrays.

Mirrors the behaviour of a browser AnalyserNode so that the feature
extractor sees the same 0-255 data it was tuned on: Blackman window,
temporal smoothing of magnitudes, decibel scaling into a fixed range.
"""

import logging
import numpy as np

logger = logging.getLogger(__name__)


class FrequencyAnalyser:
    """Rolling-window spectrum analyser.

    Example:
        >>> analyser = FrequencyAnalyser({"fft_size": 2048})
        >>> analyser.push(block)              # float32 PCM in [-1, 1]
        >>> freq, wave = analyser.get_byte_data()
    """

    def __init__(self, config: dict = None):
        config = config or {}
        self._fft_size = config.get("fft_size", 2048)
        self._smoothing = config.get("smoothing_time_constant", 0.8)
        self._min_db = config.get("min_decibels", -100.0)
        self._max_db = config.get("max_decibels", -30.0)

        if self._fft_size < 32 or self._fft_size & (self._fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32, got %r" % self._fft_size)

        self._window = np.blackman(self._fft_size).astype(np.float32)
        self._buffer = np.zeros(self._fft_size, dtype=np.float32)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)

    @property
    def fft_size(self) -> int:
        return self._fft_size

    @property
    def frequency_bin_count(self) -> int:
        return self._fft_size // 2

    def push(self, samples):
        """Append mono PCM samples, keeping the newest fft_size."""
        block = np.asarray(samples, dtype=np.float32).ravel()
        if block.size >= self._fft_size:
            self._buffer[:] = block[-self._fft_size:]
        elif block.size:
            self._buffer = np.roll(self._buffer, -block.size)
            self._buffer[-block.size:] = block

    def get_frequency_bytes(self) -> np.ndarray:
        """Smoothed magnitude spectrum as uint8, one value per bin."""
        spectrum = np.fft.rfft(self._buffer * self._window)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self._fft_size
        self._smoothed = self._smoothing * self._smoothed + (1.0 - self._smoothing) * magnitude

        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        scaled = (db - self._min_db) * (255.0 / (self._max_db - self._min_db))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def get_time_domain_bytes(self) -> np.ndarray:
        """Newest frequency_bin_count samples mapped from [-1, 1] to 0-255."""
        wave = self._buffer[-self.frequency_bin_count:]
        return np.clip(128.0 * (1.0 + wave), 0, 255).astype(np.uint8)

    def get_byte_data(self) -> tuple:
        return self.get_frequency_bytes(), self.get_time_domain_bytes()

    def reset(self):
        self._buffer[:] = 0.0
        self._smoothed[:] = 0.0
