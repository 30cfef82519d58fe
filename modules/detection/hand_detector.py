"""
MediaPipe Hands adapter producing RawFrames for the InputNormalizer.
"""

import time
import logging
from typing import Optional

import numpy as np
import mediapipe as mp

from core.types import RawFrame, RawHand

logger = logging.getLogger(__name__)


class HandDetector:
    """Runs MediaPipe Hands on RGB frames and repackages its results."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._model_complexity = config.get("model_complexity", 1)
        self._max_hands = config.get("max_num_hands", 2)
        self._min_detect_conf = config.get("min_detection_confidence", 0.7)
        self._min_track_conf = config.get("min_tracking_confidence", 0.5)

        self._mp_hands = mp.solutions.hands
        self._hands = None

    def initialize(self):
        """Create the MediaPipe Hands graph.

        Raises:
            RuntimeError: the model could not be loaded
        """
        if self._hands is not None:
            return
        try:
            self._hands = self._mp_hands.Hands(
                static_image_mode=False,
                model_complexity=self._model_complexity,
                max_num_hands=self._max_hands,
                min_detection_confidence=self._min_detect_conf,
                min_tracking_confidence=self._min_track_conf,
            )
        except Exception as e:
            raise RuntimeError("Failed to initialize MediaPipe Hands: %s" % e) from e
        logger.info(
            "MediaPipe Hands initialized (complexity=%d, max_hands=%d, "
            "detect_conf=%.2f, track_conf=%.2f)",
            self._model_complexity, self._max_hands,
            self._min_detect_conf, self._min_track_conf,
        )

    def detect(self, rgb_frame: np.ndarray, timestamp: Optional[float] = None) -> RawFrame:
        """Detect hands in an unmirrored RGB frame.

        Args:
            rgb_frame: frame in RGB colour space, as captured (not flipped)
            timestamp: capture time in seconds, defaults to now

        Returns:
            RawFrame with one RawHand per detection, in detector order
        """
        if self._hands is None:
            self.initialize()
        timestamp = time.time() if timestamp is None else timestamp

        rgb_frame.flags.writeable = False
        results = self._hands.process(rgb_frame)
        rgb_frame.flags.writeable = True

        return self.to_raw_frame(results, timestamp)

    @staticmethod
    def to_raw_frame(results, timestamp: float) -> RawFrame:
        """Convert a MediaPipe results object into a RawFrame."""
        hands = []
        if results is not None and results.multi_hand_landmarks:
            handedness = results.multi_handedness or []
            for i, hand_landmarks in enumerate(results.multi_hand_landmarks):
                if i >= len(handedness):
                    logger.debug("Hand %d has no handedness, skipping", i)
                    continue
                classification = handedness[i].classification[0]
                hands.append(RawHand(
                    landmarks=list(hand_landmarks.landmark),
                    label=classification.label,
                    score=classification.score,
                ))
        return RawFrame(hands=hands, timestamp=timestamp)

    @property
    def is_initialized(self) -> bool:
        return self._hands is not None

    def close(self):
        """Release MediaPipe resources."""
        if self._hands is not None:
            self._hands.close()
            self._hands = None
            logger.info("MediaPipe Hands closed")

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()
