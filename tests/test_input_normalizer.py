"""
Tests for hand normalization and gesture detection
==================================================
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.settings import MovementZone, Settings
from core.types import HandLabel, HandMode, RawFrame, RawHand
from modules.detection import gestures
from modules.detection.input_normalizer import InputNormalizer, lerp

ALL_FINGERS = ("index", "middle", "ring", "pinky")
FINGER_X = {"index": -0.03, "middle": 0.0, "ring": 0.03, "pinky": 0.06}


def make_landmarks(cx=0.5, cy=0.5, extended=ALL_FINGERS, pinch=False, z=0.0):
    """
    Build 21 (x, y, z) landmarks whose centroid is exactly (cx, cy).

    Args:
        extended: fingers whose tip sits above its PIP joint
        pinch: move the thumb tip next to the index tip
    """
    points = [(0.0, 0.1)]
    points += [(-0.04, 0.08), (-0.06, 0.06), (-0.08, 0.04), (-0.10, 0.02)]
    for finger in ALL_FINGERS:
        x = FINGER_X[finger]
        up = finger in extended
        points += [(x, 0.0), (x, -0.04), (x, -0.06 if up else -0.03), (x, -0.08 if up else -0.02)]
    if pinch:
        ix, iy = points[gestures.INDEX_TIP]
        points[gestures.THUMB_TIP] = (ix + 0.01, iy)

    arr = np.array(points, dtype=np.float64)
    arr -= arr.mean(axis=0)
    arr += (cx, cy)
    return [(float(x), float(y), z) for x, y in arr]


def raw_hand(cx=0.5, cy=0.5, label="Right", score=0.9, **kwargs):
    return RawHand(landmarks=make_landmarks(cx, cy, **kwargs), label=label, score=score)


class TestGestureDetection:
    """Finger extension rules on synthetic landmarks."""

    def test_open_hand(self):
        g = gestures.detect_gestures(gestures.to_landmark_array(make_landmarks()))
        assert g.is_open
        assert not g.is_fist
        assert not g.is_pointing
        assert g.name == "open"

    def test_fist(self):
        g = gestures.detect_gestures(gestures.to_landmark_array(make_landmarks(extended=())))
        assert g.is_fist
        assert not g.is_open
        assert g.name == "fist"

    def test_pointing_is_index_only(self):
        g = gestures.detect_gestures(gestures.to_landmark_array(make_landmarks(extended=("index",))))
        assert g.is_pointing
        assert not g.is_open and not g.is_fist

        g = gestures.detect_gestures(
            gestures.to_landmark_array(make_landmarks(extended=("index", "middle"))))
        assert not g.is_pointing

    def test_pinch(self):
        lm = gestures.to_landmark_array(make_landmarks(pinch=True))
        assert gestures.pinch_distance(lm) < gestures.PINCH_THRESHOLD
        assert gestures.detect_gestures(lm).is_pinching
        assert not gestures.detect_gestures(gestures.to_landmark_array(make_landmarks())).is_pinching

    @pytest.mark.parametrize("extended", [(), ("index",), ("index", "ring"), ALL_FINGERS])
    def test_open_and_fist_never_both(self, extended):
        g = gestures.detect_gestures(gestures.to_landmark_array(make_landmarks(extended=extended)))
        assert not (g.is_open and g.is_fist)

    def test_landmark_array_is_read_only(self):
        lm = gestures.to_landmark_array(make_landmarks())
        assert lm.shape == (21, 3)
        with pytest.raises(ValueError):
            lm[0, 0] = 1.0

    def test_accepts_point_objects(self):
        class P:
            def __init__(self, x, y, z):
                self.x, self.y, self.z = x, y, z

        lm = gestures.to_landmark_array([P(*p) for p in make_landmarks()])
        assert lm.shape == (21, 3)

    @pytest.mark.parametrize("bad", [None, [(0.1, 0.2, 0.0)] * 5, [(0.1,)] * 21,
                                     [(float("nan"), 0.0, 0.0)] * 21])
    def test_malformed_landmarks_rejected(self, bad):
        with pytest.raises(ValueError):
            gestures.to_landmark_array(bad)

    def test_hand_size_is_wrist_to_middle_tip(self):
        lm = gestures.to_landmark_array(make_landmarks())
        expected = np.hypot(*(lm[gestures.MIDDLE_TIP, :2] - lm[gestures.WRIST, :2]))
        assert gestures.hand_size(lm) == pytest.approx(expected)


class TestInputNormalizer:
    """Per-frame normalization, identity continuity and velocity."""

    @pytest.fixture
    def normalizer(self):
        return InputNormalizer(settings=Settings(smoothing=False))

    def test_lerp(self):
        assert lerp(0.0, 10.0, 0.3) == pytest.approx(3.0)

    def test_label_swap_and_mirror(self, normalizer):
        hands = normalizer.ingest(RawFrame([raw_hand(0.3, 0.4, label="Left")], timestamp=1.0))
        assert len(hands) == 1
        hand = hands[0]
        assert hand.label is HandLabel.RIGHT
        assert hand.id == "right_0"
        assert hand.center.x == pytest.approx(0.7, abs=1e-5)
        assert hand.center.y == pytest.approx(0.4, abs=1e-5)
        assert hand.velocity.magnitude == 0.0

    def test_low_confidence_filtered(self, normalizer):
        frame = RawFrame([raw_hand(score=0.5), raw_hand(label="Left", score=0.95)], timestamp=1.0)
        hands = normalizer.ingest(frame)
        assert [h.label for h in hands] == [HandLabel.RIGHT]

    def test_outside_zone_filtered(self, normalizer):
        # raw x 0.05 mirrors to 0.95, outside the default 0.1-0.9 zone
        assert normalizer.ingest(RawFrame([raw_hand(0.05, 0.5)], timestamp=1.0)) == []

    def test_zone_bounds_inclusive(self):
        zone = MovementZone(0.2, 0.8, 0.2, 0.8)
        assert zone.contains(0.2, 0.8)
        assert not zone.contains(0.19, 0.5)

    def test_malformed_candidate_skipped(self, normalizer):
        broken = RawHand(landmarks=[(0.5, 0.5, 0.0)] * 3, label="Left", score=0.99)
        hands = normalizer.ingest(RawFrame([broken, raw_hand(label="Right")], timestamp=1.0))
        assert len(hands) == 1
        assert hands[0].label is HandLabel.LEFT

    def test_unknown_label_skipped(self, normalizer):
        assert normalizer.ingest(RawFrame([raw_hand(label="Middle")], timestamp=1.0)) == []

    def test_velocity_from_consecutive_frames(self):
        normalizer = InputNormalizer(settings=Settings(smoothing=False, sensitivity=1.5))
        normalizer.ingest(RawFrame([raw_hand(0.4, 0.5)], timestamp=10.0))
        hand = normalizer.ingest(RawFrame([raw_hand(0.5, 0.5)], timestamp=10.5))[0]

        # mirrored x moves 0.6 -> 0.5 over 0.5 s
        assert hand.velocity.x == pytest.approx(-0.1 / 0.5 * 1.5, abs=1e-4)
        assert hand.velocity.y == pytest.approx(0.0, abs=1e-4)
        assert hand.velocity.magnitude == pytest.approx(0.1 / 0.5 * 1.5, abs=1e-4)

    def test_velocity_kept_when_dt_not_positive(self, normalizer):
        normalizer.ingest(RawFrame([raw_hand(0.4, 0.5)], timestamp=1.0))
        moving = normalizer.ingest(RawFrame([raw_hand(0.5, 0.5)], timestamp=2.0))[0]
        same_time = normalizer.ingest(RawFrame([raw_hand(0.6, 0.5)], timestamp=2.0))[0]
        assert same_time.velocity.magnitude == pytest.approx(moving.velocity.magnitude)

    def test_velocity_requires_same_label_in_previous_frame(self, normalizer):
        normalizer.ingest(RawFrame([raw_hand(0.4, 0.5, label="Left")], timestamp=1.0))
        hand = normalizer.ingest(RawFrame([raw_hand(0.5, 0.5, label="Right")], timestamp=2.0))[0]
        assert hand.velocity.magnitude == 0.0

        normalizer.ingest(RawFrame([], timestamp=3.0))
        hand = normalizer.ingest(RawFrame([raw_hand(0.6, 0.5, label="Right")], timestamp=4.0))[0]
        assert hand.velocity.magnitude == 0.0

    def test_smoothing_converges_on_constant_input(self):
        normalizer = InputNormalizer(settings=Settings(smoothing=True))
        normalizer.ingest(RawFrame([raw_hand(0.3, 0.3)], timestamp=0.0))
        hand = None
        for i in range(1, 60):
            hand = normalizer.ingest(RawFrame([raw_hand(0.6, 0.6)], timestamp=i * 0.033))[0]
        assert hand.center.x == pytest.approx(0.4, abs=1e-4)
        assert hand.center.y == pytest.approx(0.6, abs=1e-4)

        for i in range(60, 70):
            hand = normalizer.ingest(RawFrame([raw_hand(0.6, 0.6)], timestamp=i * 0.033))[0]
            assert hand.center.x == pytest.approx(0.4, abs=1e-4)

    def test_smoothing_step(self):
        normalizer = InputNormalizer({"smoothing_factor": 0.7}, settings=Settings(smoothing=True))
        normalizer.ingest(RawFrame([raw_hand(0.5, 0.5)], timestamp=0.0))
        hand = normalizer.ingest(RawFrame([raw_hand(0.3, 0.5)], timestamp=0.1))[0]
        # 0.5 + (0.7 - 0.5) * 0.3
        assert hand.center.x == pytest.approx(0.56, abs=1e-4)

    def test_one_record_per_label(self, normalizer):
        frame = RawFrame([
            raw_hand(0.3, 0.5, label="Left", score=0.8),
            raw_hand(0.6, 0.5, label="Left", score=0.95),
        ], timestamp=1.0)
        hands = normalizer.ingest(frame)
        assert len(hands) == 1
        assert hands[0].confidence == pytest.approx(0.95)
        assert hands[0].id == "right_1"

    def test_single_hand_mode_keeps_most_confident(self):
        normalizer = InputNormalizer(settings=Settings(hand_mode=HandMode.SINGLE, smoothing=False))
        frame = RawFrame([
            raw_hand(0.3, 0.5, label="Left", score=0.8),
            raw_hand(0.6, 0.5, label="Right", score=0.9),
        ], timestamp=1.0)
        hands = normalizer.ingest(frame)
        assert [h.label for h in hands] == [HandLabel.LEFT]

    def test_hands_lost(self, normalizer):
        normalizer.ingest(RawFrame([raw_hand()], timestamp=1.0))
        assert not normalizer.hands_lost
        normalizer.ingest(RawFrame([], timestamp=1.1))
        assert normalizer.hands_lost
        normalizer.ingest(RawFrame([], timestamp=1.2))
        assert not normalizer.hands_lost

    def test_history_is_bounded(self):
        normalizer = InputNormalizer({"max_history": 3}, settings=Settings(smoothing=False))
        for i in range(10):
            normalizer.ingest(RawFrame([raw_hand()], timestamp=float(i)))
        history = normalizer.history(HandLabel.LEFT)
        assert len(history) == 3
        assert history[-1][2] == 9.0

    def test_zone_follows_settings(self, normalizer):
        narrow = Settings().merged(movement_zone=MovementZone(0.2, 0.4, 0.2, 0.4))
        normalizer.update_settings(narrow)
        assert normalizer.movement_zone == narrow.movement_zone
        assert normalizer.ingest(RawFrame([raw_hand(0.5, 0.5)], timestamp=1.0)) == []

    def test_reset_clears_previous_state(self, normalizer):
        normalizer.ingest(RawFrame([raw_hand(0.4, 0.5)], timestamp=1.0))
        normalizer.reset()
        assert normalizer.current_hands == []
        hand = normalizer.ingest(RawFrame([raw_hand(0.5, 0.5)], timestamp=2.0))[0]
        assert hand.velocity.magnitude == 0.0
