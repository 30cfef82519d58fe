"""
Real-time movement visualization onto a BGR raster surface.

Three modes:
    drawing   - per-hand fading trails, width and alpha growing towards
                the newest point
    particles - velocity-driven particle bursts with gravity and friction
    shapes    - one gesture-selected shape per hand, redrawn every frame

All collections are bounded: trails are FIFO-capped and age-pruned, the
particle list has a hard ceiling, and the deferred effect queue is capped.
"""

import time
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from core.settings import Settings
from core.types import (
    AudioFeatures, Color, ColorMode, HandRecord, Velocity, VisualMode,
)
from modules.visualization import colors, shapes
from modules.visualization.effects import DeferredEffectQueue

logger = logging.getLogger(__name__)

SYMMETRY_SUFFIX = "_symmetry"


@dataclass
class TrailPoint:
    x: float
    y: float
    velocity: float
    timestamp: float
    color: Color


@dataclass
class Particle:
    x: float
    y: float
    vx: float
    vy: float
    life: float
    decay: float
    size: float
    color: Color
    kind: str = "dot"  # "dot" or "spark"


class RenderEngine:
    """Owns the drawing surface, trails, particles and deferred effects.

    Example:
        >>> engine = RenderEngine({"width": 640, "height": 480})
        >>> engine.process_hands(hands)
        >>> engine.update()
        >>> frame = engine.render()
    """

    def __init__(self, config: dict = None, settings: Optional[Settings] = None):
        config = config or {}
        self._width = int(config.get("width", 640))
        self._height = int(config.get("height", 480))
        self._max_trail_length = config.get("max_trail_length", 100)
        self._max_particles = config.get("max_particles", 500)
        self._stale_trail_s = config.get("stale_trail_s", 5.0)
        self._rng = np.random.default_rng(config.get("seed"))

        self._mode = VisualMode.DRAWING
        self._color_mode = ColorMode.RAINBOW
        self._brush_size = 15
        self._trail_length = 50
        self._symmetry = False
        self._brush_scale = 1.0
        self._audio_level = None

        self._surface = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        self._shape_layer = np.zeros_like(self._surface)
        self._trails: Dict[str, deque] = {}
        self._particles: List[Particle] = []
        self._effects = DeferredEffectQueue(config.get("max_effects", 256))

        if settings is not None:
            self.update_settings(settings)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def update_settings(self, settings: Settings):
        """Adopt the visual options of a settings value."""
        if settings.visual_mode is not self._mode:
            logger.info("Visual mode: %s -> %s", self._mode.value, settings.visual_mode.value)
        self._mode = settings.visual_mode
        self._color_mode = settings.color_mode
        self._brush_size = settings.brush_size
        self._trail_length = settings.trail_length
        self._symmetry = settings.symmetry_mode

    def set_audio_level(self, features: Optional[AudioFeatures]):
        """Feed audio intensity for the audio colour mode; None disables it."""
        if features is None or not features.active:
            self._audio_level = None
        else:
            self._audio_level = features.volume

    def resize(self, width: int, height: int):
        """Reallocate the surface; trails keep their pixel coordinates."""
        if width <= 0 or height <= 0:
            raise ValueError("Surface size must be positive, got %dx%d" % (width, height))
        self._width, self._height = int(width), int(height)
        self._surface = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        self._shape_layer = np.zeros_like(self._surface)
        logger.debug("Render surface resized to %dx%d", self._width, self._height)

    # -------------------------------------------------------------------------
    # Per-frame input
    # -------------------------------------------------------------------------

    def process_hands(self, hands: List[HandRecord], now: Optional[float] = None):
        """Feed the current frame's hands into the active mode."""
        now = time.time() if now is None else now
        if self._mode is VisualMode.DRAWING:
            self._handle_drawing(hands, now)
        elif self._mode is VisualMode.PARTICLES:
            self._handle_particles(hands, now)
        elif self._mode is VisualMode.SHAPES:
            self._handle_shapes(hands, now)

    def _to_pixels(self, hand: HandRecord) -> tuple:
        return hand.center.x * self._width, hand.center.y * self._height

    def _color(self, x: float, y: float, speed: float, now: float) -> Color:
        return colors.color_for(
            self._color_mode, x / self._width, y / self._height, speed, now, self._audio_level,
        )

    def _handle_drawing(self, hands: List[HandRecord], now: float):
        for hand in hands:
            x, y = self._to_pixels(hand)
            speed = hand.velocity.magnitude
            self._append_point(hand.id, x, y, speed, now)
            if self._symmetry:
                self._append_point(hand.id + SYMMETRY_SUFFIX, self._width - x, y, speed, now)
        self._cleanup(now)

    def _append_point(self, trail_id: str, x: float, y: float, speed: float, now: float):
        trail = self._trails.get(trail_id)
        if trail is None:
            trail = self._trails[trail_id] = deque(maxlen=self._max_trail_length)
        trail.append(TrailPoint(x, y, speed, now, self._color(x, y, speed, now)))

    def _handle_particles(self, hands: List[HandRecord], now: float):
        for hand in hands:
            x, y = self._to_pixels(hand)
            count = max(1, int(hand.velocity.magnitude * 10))
            for _ in range(count):
                if not self.create_particle(x, y, hand.velocity, now):
                    return

    def _handle_shapes(self, hands: List[HandRecord], now: float):
        # shapes live on their own layer; render() copies it under the effects
        self._shape_layer[:] = 0
        for hand in hands:
            x, y = self._to_pixels(hand)
            size = self.brush_size + hand.velocity.magnitude * 50
            speed = hand.velocity.magnitude
            gesture = hand.gestures
            self._draw_gesture_shape(gesture, x, y, size, self._color(x, y, speed, now))
            if self._symmetry:
                sym_x = self._width - x
                self._draw_gesture_shape(gesture, sym_x, y, size, self._color(sym_x, y, speed, now))
        np.copyto(self._surface, self._shape_layer)

    def _draw_gesture_shape(self, gesture, x, y, size, color: Color):
        layer = self._shape_layer
        if gesture.is_pointing:
            shapes.draw_triangle(layer, x, y, size, color, 0.7)
        elif gesture.is_fist:
            shapes.draw_square(layer, x, y, size, color, 0.7)
        elif gesture.is_open:
            shapes.draw_star(layer, x, y, size, color, 0.7)
        else:
            shapes.draw_circle(layer, x, y, size, color, 0.7)

    def create_particle(self, x: float, y: float, velocity: Optional[Velocity] = None,
                        now: Optional[float] = None) -> bool:
        """Spawn one particle near (x, y) pixels. False at the particle ceiling."""
        if len(self._particles) >= self._max_particles:
            return False
        now = time.time() if now is None else now
        velocity = velocity or Velocity()
        rand = self._rng.random
        self._particles.append(Particle(
            x=x + (rand() - 0.5) * 20,
            y=y + (rand() - 0.5) * 20,
            vx=(rand() - 0.5) * 4 + velocity.x * 100,
            vy=(rand() - 0.5) * 4 + velocity.y * 100,
            life=1.0,
            decay=rand() * 0.02 + 0.01,
            size=rand() * 8 + 2,
            color=self._color(x, y, velocity.magnitude, now),
            kind="spark" if rand() > 0.7 else "dot",
        ))
        return True

    # -------------------------------------------------------------------------
    # Simulation
    # -------------------------------------------------------------------------

    def update(self, now: Optional[float] = None):
        """Advance particles and prune trails by age."""
        now = time.time() if now is None else now
        self._update_particles()
        if self._mode is VisualMode.DRAWING:
            self._fade_trails(now)
        self._cleanup(now)

    def _update_particles(self):
        alive = []
        for p in self._particles:
            p.x += p.vx
            p.y += p.vy
            p.vy += 0.1
            p.vx *= 0.99
            p.vy *= 0.99
            p.life -= p.decay
            p.size *= 0.99
            if p.life > 0 and p.size >= 0.5:
                alive.append(p)
        self._particles = alive

    def _fade_trails(self, now: float):
        max_age = self._trail_length * 0.1
        for trail_id in list(self._trails):
            trail = self._trails[trail_id]
            while trail and now - trail[0].timestamp > max_age:
                trail.popleft()
            if not trail:
                del self._trails[trail_id]

    def _cleanup(self, now: float):
        for trail_id in list(self._trails):
            trail = self._trails[trail_id]
            if not trail or now - trail[-1].timestamp > self._stale_trail_s:
                del self._trails[trail_id]
        if len(self._particles) > self._max_particles:
            self._particles = self._particles[-self._max_particles:]

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render(self, now: Optional[float] = None) -> np.ndarray:
        """Redraw the surface for the current mode and run due effects."""
        if self._width <= 0 or self._height <= 0:
            return self._surface
        now = time.time() if now is None else now

        if self._mode is VisualMode.DRAWING:
            self._surface[:] = 0
            self._render_trails()
        elif self._mode is VisualMode.PARTICLES:
            self._surface[:] = 0
            self._render_particles()
        elif self._mode is VisualMode.SHAPES:
            np.copyto(self._surface, self._shape_layer)

        self._effects.drain(self._surface, now)
        return self._surface

    def _render_trails(self):
        brush = self.brush_size
        for trail in self._trails.values():
            n = len(trail)
            if n < 2:
                continue
            points = list(trail)
            for i in range(1, n):
                current, previous = points[i], points[i - 1]
                progress = i / n
                width = max(brush * min(current.velocity * 2, 1.0) * progress, 1.0)
                shapes.draw_line(self._surface, (previous.x, previous.y), (current.x, current.y),
                                 current.color, width, progress * 0.8)

    def _render_particles(self):
        for p in self._particles:
            alpha = max(0.0, min(1.0, p.life))
            if p.kind == "spark":
                shapes.draw_spark(self._surface, p.x, p.y, p.size, p.color, alpha)
            else:
                shapes.draw_circle(self._surface, p.x, p.y, p.size, p.color, alpha)

    # -------------------------------------------------------------------------
    # Deferred effects
    # -------------------------------------------------------------------------

    def schedule_effect(self, delay: float, action: Callable, duration: float = 0.0,
                        now: Optional[float] = None, name: str = "effect") -> bool:
        """Run ``action(surface, progress)`` from the render tick after ``delay`` s."""
        now = time.time() if now is None else now
        return self._effects.schedule(now + max(delay, 0.0), action, duration, name)

    def flash(self, alpha: float = 0.3, color: Color = colors.WHITE, now: Optional[float] = None) -> bool:
        """Additive full-surface flash on the next render."""
        return self.schedule_effect(
            0.0, lambda surface, _: shapes.flash_additive(surface, color, alpha), now=now, name="flash",
        )

    def pulse_brush(self, factor: float, duration: float = 0.016, now: Optional[float] = None) -> bool:
        """Scale the brush for ``duration`` seconds, then restore it.

        The brush is left alone when the effect queue is full, since the
        restore could not be scheduled.
        """
        if not self.schedule_effect(duration, self._restore_brush, now=now, name="brush_restore"):
            logger.debug("Brush pulse skipped: effect queue full")
            return False
        self._brush_scale = factor
        return True

    def _restore_brush(self, surface, progress):
        self._brush_scale = 1.0

    def clear(self):
        """Blank the surface and drop trails, particles and pending effects."""
        self._surface[:] = 0
        self._shape_layer[:] = 0
        self._trails.clear()
        self._particles = []
        cancelled = self._effects.cancel_all()
        self._brush_scale = 1.0
        if cancelled:
            logger.debug("Cancelled %d pending effects", cancelled)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def surface(self) -> np.ndarray:
        return self._surface

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def mode(self) -> VisualMode:
        return self._mode

    @property
    def color_mode(self) -> ColorMode:
        return self._color_mode

    @property
    def brush_size(self) -> float:
        """Base brush size times any active pulse."""
        return self._brush_size * self._brush_scale

    @property
    def max_trail_length(self) -> int:
        return self._max_trail_length

    @property
    def max_particles(self) -> int:
        return self._max_particles

    @property
    def trails(self) -> Dict[str, list]:
        return {trail_id: list(trail) for trail_id, trail in self._trails.items()}

    @property
    def particles(self) -> List[Particle]:
        return list(self._particles)

    @property
    def trail_count(self) -> int:
        return len(self._trails)

    @property
    def particle_count(self) -> int:
        return len(self._particles)

    @property
    def pending_effects(self) -> int:
        return len(self._effects)

    def get_stats(self) -> dict:
        return {
            "mode": self._mode.value,
            "trails": len(self._trails),
            "trail_points": sum(len(t) for t in self._trails.values()),
            "particles": len(self._particles),
            "effects": len(self._effects),
            "effects_dropped": self._effects.dropped_count,
        }
