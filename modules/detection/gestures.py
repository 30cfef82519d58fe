"""
21-point hand landmark geometry and simple gesture detection.

Landmarks follow the MediaPipe Hands indexing. All functions take a
(21, 3) array of normalized coordinates; y grows downwards, so a
fingertip "above" its PIP joint has the smaller y.
"""

import logging
import numpy as np

from core.types import Gestures

logger = logging.getLogger(__name__)

# MediaPipe hand landmark indices
WRIST = 0
THUMB_TIP = 4
INDEX_PIP = 6
INDEX_TIP = 8
MIDDLE_PIP = 10
MIDDLE_TIP = 12
RING_PIP = 14
RING_TIP = 16
PINKY_PIP = 18
PINKY_TIP = 20

NUM_LANDMARKS = 21

# Non-thumb fingers: tip -> PIP joint
FINGER_JOINTS = {
    "index": (INDEX_TIP, INDEX_PIP),
    "middle": (MIDDLE_TIP, MIDDLE_PIP),
    "ring": (RING_TIP, RING_PIP),
    "pinky": (PINKY_TIP, PINKY_PIP),
}

PINCH_THRESHOLD = 0.05


def to_landmark_array(raw_landmarks) -> np.ndarray:
    """Convert detector landmarks to a float32 (21, 3) array.

    Accepts point objects with ``x``/``y``/``z`` attributes or plain
    3-sequences (z optional).

    Raises:
        ValueError: missing, short or non-numeric landmark data
    """
    if raw_landmarks is None:
        raise ValueError("Missing landmarks")

    if isinstance(raw_landmarks, np.ndarray):
        arr = raw_landmarks.astype(np.float32, copy=True)
    else:
        points = list(raw_landmarks)
        if len(points) < NUM_LANDMARKS:
            raise ValueError("Expected %d landmarks, got %d" % (NUM_LANDMARKS, len(points)))
        arr = np.zeros((len(points), 3), dtype=np.float32)
        for i, p in enumerate(points):
            if hasattr(p, "x") and hasattr(p, "y"):
                arr[i] = [p.x, p.y, getattr(p, "z", 0.0)]
            else:
                coords = list(p)
                if len(coords) < 2:
                    raise ValueError("Landmark %d has %d coordinates" % (i, len(coords)))
                arr[i, :min(len(coords), 3)] = coords[:3]

    if arr.ndim != 2 or arr.shape[0] < NUM_LANDMARKS or arr.shape[1] < 2:
        raise ValueError("Expected (21, 3) landmarks, got %s" % str(arr.shape))
    if arr.shape[1] == 2:
        arr = np.hstack([arr, np.zeros((arr.shape[0], 1), dtype=np.float32)])
    arr = arr[:NUM_LANDMARKS, :3]
    if not np.all(np.isfinite(arr)):
        raise ValueError("Landmarks contain non-finite values")

    arr.flags.writeable = False
    return arr


def landmark_centroid(landmarks: np.ndarray) -> np.ndarray:
    """Mean (x, y) over all landmarks."""
    return landmarks[:, :2].mean(axis=0)


def hand_size(landmarks: np.ndarray) -> float:
    """Wrist to middle-fingertip distance in the image plane."""
    return float(np.linalg.norm(landmarks[MIDDLE_TIP, :2] - landmarks[WRIST, :2]))


def is_finger_extended(landmarks: np.ndarray, finger: str) -> bool:
    tip, pip = FINGER_JOINTS[finger]
    return bool(landmarks[tip, 1] < landmarks[pip, 1])


def finger_states(landmarks: np.ndarray) -> dict:
    """{finger: extended} for the four non-thumb fingers."""
    return {finger: is_finger_extended(landmarks, finger) for finger in FINGER_JOINTS}


def pinch_distance(landmarks: np.ndarray) -> float:
    return float(np.linalg.norm(landmarks[THUMB_TIP, :2] - landmarks[INDEX_TIP, :2]))


def detect_gestures(landmarks: np.ndarray) -> Gestures:
    """Derive gesture flags from finger extension.

    open: all four fingers extended; fist: none; pointing: index only;
    pinching: thumb and index tips closer than PINCH_THRESHOLD.
    """
    states = finger_states(landmarks)
    extended = [name for name, up in states.items() if up]
    return Gestures(
        is_pointing=extended == ["index"],
        is_fist=not extended,
        is_open=len(extended) == len(FINGER_JOINTS),
        is_pinching=pinch_distance(landmarks) < PINCH_THRESHOLD,
    )
