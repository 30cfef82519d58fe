"""
Colour functions for trails, particles and shapes.

All colours are BGR tuples, as OpenCV draws them.
"""

import colorsys
from typing import Optional

from core.types import Color, ColorMode


def hex_to_bgr(hex_color: str) -> Color:
    value = hex_color.lstrip("#")
    if len(value) != 6:
        raise ValueError("Expected #rrggbb colour, got %r" % hex_color)
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return (b, g, r)


def hsl_to_bgr(hue: float, saturation: float, lightness: float) -> Color:
    """Hue in degrees, saturation and lightness in percent."""
    r, g, b = colorsys.hls_to_rgb(
        (hue % 360.0) / 360.0,
        max(0.0, min(100.0, lightness)) / 100.0,
        max(0.0, min(100.0, saturation)) / 100.0,
    )
    return (int(round(b * 255)), int(round(g * 255)), int(round(r * 255)))


# =============================================================================
# Palette
# =============================================================================

DEFAULT_COLOR = hex_to_bgr("#4ecdc4")
WHITE = (255, 255, 255)
GOLD = hex_to_bgr("#ffd700")
YELLOW = hex_to_bgr("#ffff00")
GREEN = hex_to_bgr("#00ff00")
RIPPLE_COLOR = (196, 205, 78)

# Slow to fast
SPEED_RAMP = tuple(hex_to_bgr(c) for c in
                   ("#4ecdc4", "#45b7d1", "#feca57", "#ff6b6b", "#ff3838"))

MOOD_COLORS = {
    "calm": hex_to_bgr("#4ecdc4"),
    "energetic": hex_to_bgr("#ff6b6b"),
    "happy": hex_to_bgr("#feca57"),
    "focused": hex_to_bgr("#45b7d1"),
}


# =============================================================================
# Colour modes
# =============================================================================

def rainbow_color(now: float) -> Color:
    """Hue cycles once every 36 seconds."""
    return hsl_to_bgr((now * 1000.0 / 10.0 / 10.0) % 360.0, 65, 55)


def speed_color(speed: float) -> Color:
    normalized = min(abs(speed) * 2.0, 1.0)
    return SPEED_RAMP[int(normalized * (len(SPEED_RAMP) - 1))]


def position_color(x: float, y: float) -> Color:
    return hsl_to_bgr(x * 360.0, 65, 45 + y * 20)


def audio_color(intensity: Optional[float]) -> Color:
    if intensity is None:
        return DEFAULT_COLOR
    return hsl_to_bgr(intensity * 360.0, 70, 50)


def color_for(mode: ColorMode, x: float, y: float, speed: float, now: float,
              audio_level: Optional[float] = None) -> Color:
    """Pick the stroke colour for a point under the given colour mode."""
    if mode is ColorMode.RAINBOW:
        return rainbow_color(now)
    if mode is ColorMode.SPEED:
        return speed_color(speed)
    if mode is ColorMode.POSITION:
        return position_color(x, y)
    if mode is ColorMode.AUDIO:
        return audio_color(audio_level)
    return DEFAULT_COLOR
