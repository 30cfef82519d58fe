"""
Per-frame hand normalization with label-based identity continuity.

Turns the raw landmark sets delivered by the detector into HandRecords:
confidence and movement-zone filtering, mirroring, exponential smoothing,
finite-difference velocity and gesture flags.
"""

import math
import time
import logging
from collections import deque
from typing import Dict, List, Optional

from core.settings import MovementZone, Settings
from core.types import (
    HandLabel, HandRecord, Point3, RawFrame, RawHand, Velocity,
)
from modules.detection import gestures

logger = logging.getLogger(__name__)


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


class InputNormalizer:
    """Normalizes raw detector output into identity-stable hand records.

    Identity is by label only: the previous frame's record with the same
    label is the match for smoothing and velocity. There is no spatial
    re-association when hands cross.
    """

    def __init__(self, config: dict = None, settings: Optional[Settings] = None):
        config = config or {}
        self._confidence_threshold = config.get("confidence_threshold", 0.7)
        self._smoothing_factor = config.get("smoothing_factor", 0.7)
        self._max_history = config.get("max_history", 10)

        self._settings = settings or Settings()
        self._zone = self._settings.movement_zone

        self._previous: Dict[HandLabel, HandRecord] = {}
        self._history: Dict[HandLabel, deque] = {}
        self._hands_lost = False
        self._frame_count = 0

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def update_settings(self, settings: Settings):
        """Adopt a new settings value (sensitivity, smoothing, zone, hand mode).

        The movement zone is only ever taken from the settings value, so the
        zone in use is always the one reported by status queries.
        """
        self._settings = settings
        self._zone = settings.movement_zone

    @property
    def movement_zone(self) -> MovementZone:
        return self._zone

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    # -------------------------------------------------------------------------
    # Per-frame processing
    # -------------------------------------------------------------------------

    def ingest(self, raw_frame: RawFrame, settings: Optional[Settings] = None) -> List[HandRecord]:
        """Process one perception frame.

        Args:
            raw_frame: hands reported by the detector for one image
            settings: optional settings override for this call

        Returns:
            At most one HandRecord per label, in detector order
        """
        if settings is not None:
            self.update_settings(settings)

        timestamp = raw_frame.timestamp if raw_frame.timestamp is not None else time.time()
        self._frame_count += 1

        candidates = []
        for index, raw in enumerate(raw_frame.hands or []):
            record = self._build_record(raw, index, timestamp)
            if record is not None:
                candidates.append(record)

        current = self._select(candidates)

        self._track_identity(current)
        for record in current:
            previous = self._previous.get(record.label)
            if previous is None:
                continue
            if self._settings.smoothing:
                self._smooth(record, previous)
            self._update_velocity(record, previous)

        self._hands_lost = bool(self._previous) and not current
        self._previous = {record.label: record for record in current}
        return current

    def _build_record(self, raw: RawHand, index: int, timestamp: float) -> Optional[HandRecord]:
        """Build a record for one candidate, or None if it is filtered out."""
        try:
            score = float(raw.score)
        except (TypeError, ValueError, AttributeError):
            logger.debug("Skipping hand %d: invalid confidence", index)
            return None

        if score < self._confidence_threshold:
            logger.debug("Hand %d filtered: confidence %.3f < %.2f",
                         index, score, self._confidence_threshold)
            return None

        try:
            landmarks = gestures.to_landmark_array(raw.landmarks)
            label = HandLabel.from_detector(raw.label)
        except (ValueError, TypeError, AttributeError) as e:
            logger.debug("Skipping malformed hand %d: %s", index, e)
            return None

        cx, cy = gestures.landmark_centroid(landmarks)
        center = Point3(1.0 - float(cx), float(cy), float(landmarks[gestures.WRIST, 2]))

        if not self._zone.contains(center.x, center.y):
            logger.debug("Hand %d outside movement zone: (%.3f, %.3f)", index, center.x, center.y)
            return None

        return HandRecord(
            id="%s_%d" % (label.value, index),
            label=label,
            confidence=score,
            center=center,
            size=gestures.hand_size(landmarks),
            landmarks=landmarks,
            timestamp=timestamp,
            gestures=gestures.detect_gestures(landmarks),
        )

    def _select(self, candidates: List[HandRecord]) -> List[HandRecord]:
        """Enforce one record per label and the hand-mode cap."""
        best: Dict[HandLabel, HandRecord] = {}
        for record in candidates:
            kept = best.get(record.label)
            if kept is None or record.confidence > kept.confidence:
                best[record.label] = record

        selected = [r for r in candidates if best.get(r.label) is r]
        max_hands = self._settings.hand_mode.max_hands
        if len(selected) > max_hands:
            ranked = sorted(selected, key=lambda r: r.confidence, reverse=True)
            keep = {id(r) for r in ranked[:max_hands]}
            selected = [r for r in selected if id(r) in keep]
        return selected

    def _track_identity(self, current: List[HandRecord]):
        for record in current:
            history = self._history.setdefault(record.label, deque(maxlen=self._max_history))
            history.append((record.center.x, record.center.y, record.timestamp))

    def _smooth(self, record: HandRecord, previous: HandRecord):
        t = 1.0 - self._smoothing_factor
        record.center.x = lerp(previous.center.x, record.center.x, t)
        record.center.y = lerp(previous.center.y, record.center.y, t)

    def _update_velocity(self, record: HandRecord, previous: HandRecord):
        dt = record.timestamp - previous.timestamp
        if dt <= 0:
            record.velocity = Velocity(previous.velocity.x, previous.velocity.y,
                                       previous.velocity.magnitude)
            return

        sensitivity = self._settings.sensitivity
        dx = record.center.x - previous.center.x
        dy = record.center.y - previous.center.y
        record.velocity = Velocity(
            x=dx / dt * sensitivity,
            y=dy / dt * sensitivity,
            magnitude=math.hypot(dx, dy) / dt * sensitivity,
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def hands_lost(self) -> bool:
        """True when the last frame had no hands but the one before did."""
        return self._hands_lost

    @property
    def current_hands(self) -> List[HandRecord]:
        return list(self._previous.values())

    @property
    def hand_count(self) -> int:
        return len(self._previous)

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def history(self, label: HandLabel) -> list:
        """Recent (x, y, timestamp) centres for a label, oldest first."""
        return list(self._history.get(label, ()))

    def reset(self):
        """Clear all tracking state."""
        self._previous.clear()
        self._history.clear()
        self._hands_lost = False
