"""
Preview-window overlay: hand skeletons, labels, gestures and a status bar.

Drawn on top of the mirrored camera preview, so raw landmark x values
are flipped here the same way HandRecord centres already are.
"""

import logging
from typing import List

import cv2
import numpy as np

from core.types import HandRecord

logger = logging.getLogger(__name__)

# Landmark index pairs forming the hand skeleton
HAND_CONNECTIONS = (
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (5, 9), (9, 10), (10, 11), (11, 12),
    (9, 13), (13, 14), (14, 15), (15, 16),
    (13, 17), (17, 18), (18, 19), (19, 20),
    (0, 17),
)


class HandOverlay:
    """Debug overlay for the desktop preview."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._show_landmarks = config.get("show_landmarks", True)
        self._show_labels = config.get("show_labels", True)
        self._show_status = config.get("show_status", True)

        colors = config.get("colors", {})
        self._color_text = tuple(colors.get("text", [255, 255, 255]))
        self._color_conf_high = tuple(colors.get("confidence_high", [0, 255, 0]))
        self._color_conf_mid = tuple(colors.get("confidence_mid", [0, 255, 255]))
        self._color_conf_low = tuple(colors.get("confidence_low", [0, 0, 255]))

        status_cfg = config.get("status_bar", {})
        self._bar_opacity = status_cfg.get("opacity", 0.6)
        self._bar_height = status_cfg.get("height", 50)

    def render(self, frame: np.ndarray, hands: List[HandRecord], state: dict = None) -> np.ndarray:
        """Draw hands and the status bar onto ``frame`` in place.

        Args:
            frame: BGR preview frame (already mirrored)
            hands: current HandRecords
            state: optional dict with fps, mode, activity, audio_volume, beat

        Returns:
            The same frame
        """
        h, w = frame.shape[:2]
        for hand in hands:
            color = self._confidence_color(hand.confidence)
            if self._show_landmarks and hand.landmarks is not None:
                self._draw_skeleton(frame, hand.landmarks, w, h, color)
            if self._show_labels:
                self._draw_label(frame, hand, w, h, color)

        if self._show_status and state is not None:
            self._draw_status_bar(frame, w, state, len(hands))
        return frame

    def _confidence_color(self, confidence: float) -> tuple:
        if confidence >= 0.85:
            return self._color_conf_high
        if confidence >= 0.7:
            return self._color_conf_mid
        return self._color_conf_low

    @staticmethod
    def _draw_skeleton(frame, landmarks: np.ndarray, w: int, h: int, color: tuple):
        points = [(int((1.0 - lm[0]) * w), int(lm[1] * h)) for lm in landmarks]
        for a, b in HAND_CONNECTIONS:
            cv2.line(frame, points[a], points[b], color, 2, cv2.LINE_AA)
        for point in points:
            cv2.circle(frame, point, 3, (255, 255, 255), -1, cv2.LINE_AA)

    def _draw_label(self, frame, hand: HandRecord, w: int, h: int, color: tuple):
        cx, cy = int(hand.center.x * w), int(hand.center.y * h)
        cv2.circle(frame, (cx, cy), 6, color, -1, cv2.LINE_AA)
        text = "%s %s %.2f" % (hand.label.value, hand.gestures.name, hand.velocity.magnitude)
        cv2.putText(frame, text, (cx + 10, cy - 10),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, self._color_text, 1, cv2.LINE_AA)

    def _draw_status_bar(self, frame, w: int, state: dict, hand_count: int):
        overlay = frame.copy()
        cv2.rectangle(overlay, (0, 0), (w, self._bar_height), (20, 20, 20), -1)
        cv2.addWeighted(overlay, self._bar_opacity, frame, 1 - self._bar_opacity, 0, frame)

        fps = state.get("fps", 0.0)
        fps_color = self._color_conf_high if fps >= 25 else self._color_conf_mid if fps >= 15 else self._color_conf_low
        cv2.putText(frame, "FPS: %.1f" % fps, (10, 22),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, fps_color, 2)
        cv2.putText(frame, "Hands: %d" % hand_count, (10, 42),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, self._color_text, 1)

        mode = state.get("mode", "drawing")
        activity = state.get("activity") or "free play"
        cv2.putText(frame, "Mode: %s | %s" % (mode.upper(), activity), (140, 22),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, self._color_text, 1)

        volume = state.get("audio_volume")
        if volume is not None:
            bar_w = int(min(volume, 1.0) * 120)
            cv2.rectangle(frame, (w - 140, 15), (w - 20, 30), (60, 60, 60), -1)
            cv2.rectangle(frame, (w - 140, 15), (w - 140 + bar_w, 30), (0, 200, 255), -1)
            if state.get("beat"):
                cv2.circle(frame, (w - 155, 22), 6, (0, 255, 255), -1)
