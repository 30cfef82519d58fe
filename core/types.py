"""
Shared domain types for the Movement Therapy Visualizer.

Centralizes enums, data classes, and type definitions used across modules
to eliminate circular imports and ensure type consistency.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


# =============================================================================
# Enums
# =============================================================================

class HandLabel(Enum):
    """Anatomical hand label as seen by the user in a mirrored preview."""
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def from_detector(cls, raw_label: str) -> 'HandLabel':
        """Swap the detector's camera-space label to the user's own hand.

        The detector reports handedness for the unmirrored image, so its
        "Left" is the user's right hand once the preview is mirrored.
        """
        normalized = str(raw_label).strip().lower()
        if normalized == "left":
            return cls.RIGHT
        if normalized == "right":
            return cls.LEFT
        raise ValueError("Unknown handedness label: %r" % raw_label)


class VisualMode(Enum):
    DRAWING = "drawing"
    PARTICLES = "particles"
    SHAPES = "shapes"


class ColorMode(Enum):
    RAINBOW = "rainbow"
    SPEED = "speed"
    POSITION = "position"
    AUDIO = "audio"


class HandMode(Enum):
    SINGLE = "single"
    DUAL = "dual"

    @property
    def max_hands(self) -> int:
        return 1 if self is HandMode.SINGLE else 2


class Difficulty(Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def leniency(self) -> float:
        """Multiplier applied to activity tolerances (higher = easier)."""
        return {"easy": 1.5, "medium": 1.0, "hard": 0.7}[self.value]


class CelebrationIntensity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def particle_count(self) -> int:
        return {"low": 15, "medium": 30, "high": 50}[self.value]


# =============================================================================
# Geometry
# =============================================================================

@dataclass
class Point3:
    """Normalized 3D point; x and y in [0, 1] screen space."""
    x: float
    y: float
    z: float = 0.0

    def distance_2d(self, other: 'Point3') -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass
class Velocity:
    """Per-axis velocity in normalized units per second."""
    x: float = 0.0
    y: float = 0.0
    magnitude: float = 0.0


@dataclass
class Gestures:
    """Boolean gesture flags derived from finger extension."""
    is_pointing: bool = False
    is_fist: bool = False
    is_open: bool = False
    is_pinching: bool = False

    @property
    def name(self) -> str:
        """Dominant gesture name, in the precedence the shapes mode uses."""
        if self.is_pointing:
            return "pointing"
        if self.is_fist:
            return "fist"
        if self.is_open:
            return "open"
        if self.is_pinching:
            return "pinch"
        return "none"


# =============================================================================
# Perception input (from the hand-landmark collaborator)
# =============================================================================

@dataclass
class RawHand:
    """One detected hand as delivered by the landmark inference engine.

    ``landmarks`` is a sequence of 21 points, each either an object with
    ``x``/``y``/``z`` attributes or an ``(x, y, z)`` sequence.
    """
    landmarks: Any
    label: str
    score: float


@dataclass
class RawFrame:
    """All hands detected in one captured image."""
    hands: List[RawHand] = field(default_factory=list)
    timestamp: Optional[float] = None


# =============================================================================
# Normalized hand record
# =============================================================================

@dataclass(eq=False)
class HandRecord:
    """One tracked hand in the current frame.

    Produced by InputNormalizer; read by RenderEngine and ActivityEngine.
    """
    id: str
    label: HandLabel
    confidence: float
    center: Point3
    size: float
    landmarks: Optional[np.ndarray]      # (21, 3), read-only
    timestamp: float
    velocity: Velocity = field(default_factory=Velocity)
    gestures: Gestures = field(default_factory=Gestures)

    @classmethod
    def synthetic(cls, x: float, y: float, hand_id: str = "interaction",
                  label: HandLabel = HandLabel.RIGHT,
                  magnitude: float = 0.0) -> 'HandRecord':
        """Build a landmark-less record, e.g. for a pointer/click interaction."""
        return cls(
            id=hand_id,
            label=label,
            confidence=1.0,
            center=Point3(x, y, 0.0),
            size=0.0,
            landmarks=None,
            timestamp=time.time(),
            velocity=Velocity(0.0, 0.0, magnitude),
        )


# =============================================================================
# Audio
# =============================================================================

@dataclass(frozen=True)
class SpectrumBand:
    """Normalized energy of one named frequency band."""
    name: str
    value: float


@dataclass(frozen=True)
class AudioFeatures:
    """Features derived once per audio analysis tick."""
    volume: float = 0.0
    spectrum: Tuple[SpectrumBand, ...] = ()
    beat: bool = False
    bass_energy: float = 0.0
    pitch: float = 0.0
    timestamp: float = 0.0
    active: bool = True

    def band(self, name: str) -> float:
        for band in self.spectrum:
            if band.name == name:
                return band.value
        return 0.0

    def to_dict(self) -> dict:
        return {
            "volume": self.volume,
            "spectrum": [{"name": b.name, "value": b.value} for b in self.spectrum],
            "beat": self.beat,
            "pitch": self.pitch,
            "timestamp": self.timestamp,
            "active": self.active,
        }


# =============================================================================
# Activity events
# =============================================================================

@dataclass
class Achievement:
    """A discrete, named milestone surfaced to the user."""
    name: str
    description: str
    category: str
    timestamp: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "timestamp": self.timestamp,
        }


@dataclass
class ProgressDelta:
    """Partial progress increments reported by an activity."""
    bilateral: float = 0.0
    large_movement: float = 0.0
    fine_movement: float = 0.0

    def __bool__(self) -> bool:
        return bool(self.bilateral or self.large_movement or self.fine_movement)


@dataclass
class ActivityResult:
    """Outcome of one activity frame."""
    achievement: Optional[Achievement] = None
    progress: Optional[ProgressDelta] = None


# Rendering colours are BGR tuples, as OpenCV expects
Color = Tuple[int, int, int]


def as_payload(hands: List[HandRecord]) -> List[Dict[str, Any]]:
    """Compact, log-friendly view of a list of hand records."""
    return [
        {
            "id": h.id,
            "label": h.label.value,
            "center": (round(h.center.x, 3), round(h.center.y, 3)),
            "speed": round(h.velocity.magnitude, 3),
            "gesture": h.gestures.name,
        }
        for h in hands
    ]
