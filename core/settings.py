"""
Runtime settings for the perception-to-feedback pipeline.

Settings are an immutable, versioned value. Every change goes through
``Settings.merged()``, which validates the new values and returns a fresh
instance with ``version + 1``; components receive the value explicitly and
never mutate it in place.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Union

from core.types import (
    CelebrationIntensity, ColorMode, Difficulty, HandMode, VisualMode,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MovementZone:
    """Axis-aligned active detection region in normalized coordinates."""
    x_min: float = 0.1
    x_max: float = 0.9
    y_min: float = 0.1
    y_max: float = 0.9

    def __post_init__(self):
        for name in ("x_min", "x_max", "y_min", "y_max"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError("movement_zone.%s must be in [0, 1], got %r" % (name, value))
        if self.x_min > self.x_max or self.y_min > self.y_max:
            raise ValueError("movement_zone min must not exceed max: %r" % (self,))

    def contains(self, x: float, y: float) -> bool:
        """Inclusive bounds check."""
        return self.x_min <= x <= self.x_max and self.y_min <= y <= self.y_max

    def expanded(self, factor: float) -> 'MovementZone':
        """Grow the zone about its centre, clamped to the unit square."""
        cx = (self.x_min + self.x_max) / 2
        cy = (self.y_min + self.y_max) / 2
        half_w = (self.x_max - self.x_min) * factor / 2
        half_h = (self.y_max - self.y_min) * factor / 2
        return MovementZone(
            x_min=max(0.0, cx - half_w),
            x_max=min(1.0, cx + half_w),
            y_min=max(0.0, cy - half_h),
            y_max=min(1.0, cy + half_h),
        )

    @classmethod
    def clamped(cls, x_min, x_max, y_min, y_max) -> 'MovementZone':
        return cls(max(0.0, x_min), min(1.0, x_max), max(0.0, y_min), min(1.0, y_max))

    @classmethod
    def coerce(cls, value: Union['MovementZone', Mapping, tuple, list]) -> 'MovementZone':
        """Accept a zone, a {"x": {"min", "max"}, "y": {...}} mapping or a 4-tuple."""
        if isinstance(value, MovementZone):
            return value
        if isinstance(value, Mapping):
            if "x" in value and "y" in value:
                return cls(
                    float(value["x"]["min"]), float(value["x"]["max"]),
                    float(value["y"]["min"]), float(value["y"]["max"]),
                )
            return cls(**{k: float(v) for k, v in value.items()})
        if isinstance(value, (tuple, list)) and len(value) == 4:
            return cls(*(float(v) for v in value))
        raise ValueError("Cannot interpret movement_zone: %r" % (value,))

    def to_dict(self) -> dict:
        return {
            "x": {"min": self.x_min, "max": self.x_max},
            "y": {"min": self.y_min, "max": self.y_max},
        }


# option -> (min, max) for numeric options
_RANGES = {
    "sensitivity": (0.1, 2.0),
    "trail_length": (10, 100),
    "brush_size": (5, 50),
}

_ENUMS = {
    "visual_mode": VisualMode,
    "color_mode": ColorMode,
    "hand_mode": HandMode,
    "difficulty": Difficulty,
    "celebration_intensity": CelebrationIntensity,
}

_BOOLS = ("symmetry_mode", "audio_enabled", "smoothing",
          "volume_smoothing", "beat_detection", "frequency_analysis")


@dataclass(frozen=True)
class Settings:
    """Validated runtime configuration surface."""
    sensitivity: float = 1.0
    trail_length: int = 50
    brush_size: int = 15
    color_mode: ColorMode = ColorMode.RAINBOW
    visual_mode: VisualMode = VisualMode.DRAWING
    hand_mode: HandMode = HandMode.DUAL
    symmetry_mode: bool = False
    movement_zone: MovementZone = field(default_factory=MovementZone)
    difficulty: Difficulty = Difficulty.MEDIUM
    celebration_intensity: CelebrationIntensity = CelebrationIntensity.MEDIUM
    audio_enabled: bool = False
    smoothing: bool = True
    volume_smoothing: bool = True
    beat_detection: bool = True
    frequency_analysis: bool = True
    version: int = 0

    @classmethod
    def option_names(cls) -> tuple:
        return tuple(f.name for f in fields(cls) if f.name != "version")

    def merged(self, **changes) -> 'Settings':
        """Return a validated copy with ``changes`` applied and version bumped.

        Raises:
            KeyError: unknown option name
            ValueError: value outside the option's domain
        """
        known = self.option_names()
        coerced = {}
        for name, value in changes.items():
            if name not in known:
                raise KeyError("Unknown setting: %r" % name)
            coerced[name] = _coerce(name, value)
        return replace(self, version=self.version + 1, **coerced)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Settings':
        """Build from a (YAML) mapping, ignoring unknown keys with a warning."""
        known = cls.option_names()
        values = {}
        for name, value in (data or {}).items():
            if name not in known:
                logger.warning("Ignoring unknown setting in config: %s", name)
                continue
            values[name] = _coerce(name, value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation used by status queries."""
        out = {}
        for name in self.option_names():
            value = getattr(self, name)
            if isinstance(value, MovementZone):
                value = value.to_dict()
            elif hasattr(value, "value"):
                value = value.value
            out[name] = value
        return out


def _coerce(name: str, value: Any) -> Any:
    if name in _RANGES:
        low, high = _RANGES[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("%s must be a number, got %r" % (name, value))
        if not low <= value <= high:
            raise ValueError("%s must be within [%s, %s], got %r" % (name, low, high, value))
        return value
    if name in _ENUMS:
        enum_cls = _ENUMS[name]
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ValueError("%s must be one of {%s}, got %r" % (name, allowed, value)) from None
    if name in _BOOLS:
        if not isinstance(value, bool):
            raise ValueError("%s must be a bool, got %r" % (name, value))
        return value
    if name == "movement_zone":
        return MovementZone.coerce(value)
    return value
