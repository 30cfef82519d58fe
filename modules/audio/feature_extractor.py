"""
Audio feature extraction from analyser byte arrays.

Consumes the frequency-magnitude and time-domain arrays of one analysis
tick (0-255 per bin, as produced by FrequencyAnalyser) and derives
volume, five-band spectrum, an edge-triggered beat flag and a coarse
dominant-bin pitch estimate.
"""

import time
import logging
from collections import deque
from typing import Optional

import numpy as np

from core.types import AudioFeatures, SpectrumBand

logger = logging.getLogger(__name__)

# Band name -> [start, end) bin range
FREQUENCY_BANDS = (
    ("bass", 0, 4),
    ("low_mid", 4, 16),
    ("mid", 16, 64),
    ("high_mid", 64, 256),
    ("treble", 256, 512),
)


class AudioFeatureExtractor:
    """Derives AudioFeatures once per analysis tick.

    Beat detection fires when the bass-band mean exceeds a threshold and
    the cooldown since the previous beat has elapsed. The threshold decays
    multiplicatively every tick down to a floor and is never raised again.
    """

    def __init__(self, config: dict = None):
        config = config or {}
        self._sample_rate = config.get("sample_rate", 44100)
        self._sensitivity = config.get("sensitivity", 1.0)
        self._volume_smoothing = config.get("volume_smoothing", True)
        self._beat_detection = config.get("beat_detection", True)
        self._frequency_analysis = config.get("frequency_analysis", True)

        beat_cfg = config.get("beat", {})
        self._initial_threshold = beat_cfg.get("threshold", 0.3)
        self._beat_decay = beat_cfg.get("decay", 0.98)
        self._beat_min = beat_cfg.get("min_threshold", 0.15)
        self._beat_cooldown = beat_cfg.get("cooldown_ms", 300) / 1000.0

        self._volume_history = deque(maxlen=config.get("volume_history", 10))
        self._beat_threshold = self._initial_threshold
        self._last_beat_time = None
        self._latest = AudioFeatures(active=False)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def update_settings(self, sensitivity: float = None, volume_smoothing: bool = None,
                        beat_detection: bool = None, frequency_analysis: bool = None):
        if sensitivity is not None:
            self._sensitivity = sensitivity
        if volume_smoothing is not None:
            self._volume_smoothing = volume_smoothing
            self._volume_history.clear()
        if beat_detection is not None:
            self._beat_detection = beat_detection
        if frequency_analysis is not None:
            self._frequency_analysis = frequency_analysis

    def set_beat_threshold(self, threshold: float):
        """Set the current beat threshold, clamped to [0.1, 1.0]."""
        self._beat_threshold = max(0.1, min(1.0, threshold))

    def set_sample_rate(self, sample_rate: int):
        self._sample_rate = sample_rate

    @property
    def beat_threshold(self) -> float:
        return self._beat_threshold

    @property
    def latest(self) -> AudioFeatures:
        return self._latest

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def ingest(self, frequency_data, time_domain_data=None, now: Optional[float] = None) -> AudioFeatures:
        """Analyse one tick of analyser output.

        Args:
            frequency_data: per-bin magnitudes, 0-255
            time_domain_data: waveform bytes, 0-255 (kept for parity with
                the analyser interface; features use the frequency data)
            now: tick time in seconds, defaults to time.time()
        """
        now = time.time() if now is None else now
        freq = np.asarray(frequency_data, dtype=np.float64).ravel()

        volume = self._volume(freq)
        spectrum = self._spectrum(freq) if self._frequency_analysis else ()
        bass = self._band_mean(freq, 0, 4)
        beat = self._detect_beat(bass, now) if self._beat_detection else False
        pitch = self._pitch(freq)

        self._latest = AudioFeatures(
            volume=volume,
            spectrum=spectrum,
            beat=beat,
            bass_energy=bass,
            pitch=pitch,
            timestamp=now,
            active=True,
        )
        return self._latest

    def _volume(self, freq: np.ndarray) -> float:
        if freq.size == 0:
            rms = 0.0
        else:
            rms = float(np.sqrt(np.mean(freq * freq))) / 255.0
        volume = min(rms * self._sensitivity, 1.0)

        if not self._volume_smoothing:
            return volume
        self._volume_history.append(volume)
        return sum(self._volume_history) / len(self._volume_history)

    @staticmethod
    def _band_mean(freq: np.ndarray, start: int, end: int) -> float:
        segment = freq[start:min(end, freq.size)]
        if segment.size == 0:
            return 0.0
        return float(segment.mean()) / 255.0

    def _spectrum(self, freq: np.ndarray) -> tuple:
        return tuple(
            SpectrumBand(name, self._band_mean(freq, start, end) * self._sensitivity)
            for name, start, end in FREQUENCY_BANDS
        )

    def _detect_beat(self, bass_energy: float, now: float) -> bool:
        cooled_down = (self._last_beat_time is None
                       or now - self._last_beat_time > self._beat_cooldown)
        beat = bass_energy > self._beat_threshold and cooled_down
        if beat:
            self._last_beat_time = now
            logger.debug("Beat: bass=%.3f threshold=%.3f", bass_energy, self._beat_threshold)

        # Decay only; quiet input never raises the threshold back up
        self._beat_threshold = max(self._beat_threshold * self._beat_decay, self._beat_min)
        return beat

    def _pitch(self, freq: np.ndarray) -> float:
        if freq.size == 0:
            return 0.0
        dominant_bin = int(np.argmax(freq))
        nyquist = self._sample_rate / 2.0
        return dominant_bin / freq.size * nyquist

    def reset(self):
        """Clear rolling volume and beat state."""
        self._volume_history.clear()
        self._beat_threshold = self._initial_threshold
        self._last_beat_time = None
        self._latest = AudioFeatures(active=False)
