"""
Microphone capture feeding the frequency analyser.

sounddevice delivers PCM blocks on its own audio thread; the newest
samples are kept in the analyser's rolling window and read back from
the frame loop under a lock.
"""

import logging
import threading

import sounddevice as sd

from modules.audio.analyser import FrequencyAnalyser

logger = logging.getLogger(__name__)


class Microphone:
    """Mono input stream with a shared FrequencyAnalyser."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._sample_rate = config.get("sample_rate", 44100)
        self._block_size = config.get("block_size", 512)
        self._device = config.get("device")

        self._analyser = FrequencyAnalyser(config.get("analyser", {}))
        self._lock = threading.Lock()
        self._stream = None
        self._overflows = 0

    def open(self):
        """Open and start the input stream.

        Raises:
            RuntimeError: no input device or permission denied
        """
        if self._stream is not None:
            return
        try:
            self._stream = sd.InputStream(
                samplerate=self._sample_rate,
                blocksize=self._block_size,
                channels=1,
                dtype="float32",
                device=self._device,
                callback=self._callback,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise RuntimeError("Could not open microphone: %s" % e) from e

        self._sample_rate = int(self._stream.samplerate)
        logger.info("Microphone opened: %d Hz, block %d", self._sample_rate, self._block_size)

    def _callback(self, indata, frames, time_info, status):
        if status:
            self._overflows += 1
            logger.debug("Audio input status: %s", status)
        with self._lock:
            self._analyser.push(indata[:, 0])

    def read(self) -> tuple:
        """Current (frequency_bytes, time_domain_bytes) analyser arrays."""
        with self._lock:
            return self._analyser.get_byte_data()

    def close(self):
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None
            with self._lock:
                self._analyser.reset()
        logger.info("Microphone closed (%d input overflows)", self._overflows)

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frequency_bin_count(self) -> int:
        return self._analyser.frequency_bin_count

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()
