"""
OpenCV drawing primitives with per-shape alpha.

Every primitive takes pixel coordinates on a BGR uint8 surface. Shapes
drawn with alpha < 1 are rendered onto a copy of their bounding region
and blended back with cv2.addWeighted, so the cost scales with the
shape rather than the whole surface.
"""

import math

import cv2
import numpy as np

from core.types import Color


def _blend(surface: np.ndarray, alpha: float, bounds: tuple, draw):
    """Run ``draw(layer, ox, oy)`` and blend the result into ``surface``.

    ``bounds`` is (x0, y0, x1, y1) in surface pixels; ``ox``/``oy`` is the
    offset to subtract from surface coordinates when drawing on ``layer``.
    """
    if alpha <= 0.0:
        return
    if alpha >= 1.0:
        draw(surface, 0, 0)
        return

    h, w = surface.shape[:2]
    x0 = max(int(math.floor(bounds[0])) - 2, 0)
    y0 = max(int(math.floor(bounds[1])) - 2, 0)
    x1 = min(int(math.ceil(bounds[2])) + 3, w)
    y1 = min(int(math.ceil(bounds[3])) + 3, h)
    if x0 >= x1 or y0 >= y1:
        return

    roi = surface[y0:y1, x0:x1]
    layer = roi.copy()
    draw(layer, x0, y0)
    roi[:] = cv2.addWeighted(layer, alpha, roi, 1.0 - alpha, 0)


def _pt(x: float, y: float, ox: int = 0, oy: int = 0) -> tuple:
    return (int(round(x - ox)), int(round(y - oy)))


# =============================================================================
# Filled shapes
# =============================================================================

def draw_circle(surface, x, y, radius, color: Color, alpha: float = 1.0, thickness: int = -1):
    radius = max(float(radius), 0.0)
    pad = radius + max(thickness, 0)

    def draw(layer, ox, oy):
        cv2.circle(layer, _pt(x, y, ox, oy), int(round(radius)), color, thickness, cv2.LINE_AA)

    _blend(surface, alpha, (x - pad, y - pad, x + pad, y + pad), draw)


def draw_triangle(surface, x, y, size, color: Color, alpha: float = 1.0):
    """Apex up, base below the centre."""
    corners = [(x, y - size), (x - size, y + size), (x + size, y + size)]
    _fill_polygon(surface, corners, color, alpha)


def draw_square(surface, x, y, size, color: Color, alpha: float = 1.0):
    """Axis-aligned square of side ``size`` centred on (x, y)."""
    half = size / 2.0

    def draw(layer, ox, oy):
        cv2.rectangle(layer, _pt(x - half, y - half, ox, oy),
                      _pt(x + half, y + half, ox, oy), color, -1)

    _blend(surface, alpha, (x - half, y - half, x + half, y + half), draw)


def star_points(x, y, size, spikes: int = 5) -> list:
    """Alternating outer/inner vertices; inner radius is half the outer."""
    step = math.pi / spikes
    points = []
    for i in range(spikes * 2):
        radius = size if i % 2 == 0 else size / 2.0
        points.append((x + math.cos(i * step) * radius, y + math.sin(i * step) * radius))
    return points


def draw_star(surface, x, y, size, color: Color, alpha: float = 1.0):
    _fill_polygon(surface, star_points(x, y, size), color, alpha)


def _fill_polygon(surface, corners, color: Color, alpha: float):
    xs = [c[0] for c in corners]
    ys = [c[1] for c in corners]

    def draw(layer, ox, oy):
        pts = np.array([_pt(cx, cy, ox, oy) for cx, cy in corners], dtype=np.int32)
        cv2.fillPoly(layer, [pts], color, cv2.LINE_AA)

    _blend(surface, alpha, (min(xs), min(ys), max(xs), max(ys)), draw)


# =============================================================================
# Strokes
# =============================================================================

def draw_line(surface, p0: tuple, p1: tuple, color: Color, width: float = 1.0, alpha: float = 1.0):
    thickness = max(int(round(width)), 1)
    pad = thickness / 2.0 + 1

    def draw(layer, ox, oy):
        cv2.line(layer, _pt(p0[0], p0[1], ox, oy), _pt(p1[0], p1[1], ox, oy),
                 color, thickness, cv2.LINE_AA)

    bounds = (min(p0[0], p1[0]) - pad, min(p0[1], p1[1]) - pad,
              max(p0[0], p1[0]) + pad, max(p0[1], p1[1]) + pad)
    _blend(surface, alpha, bounds, draw)


def draw_spark(surface, x, y, size, color: Color, alpha: float = 1.0, thickness: int = 1):
    """Plus-shaped cross of half-width ``size``."""

    def draw(layer, ox, oy):
        cv2.line(layer, _pt(x - size, y, ox, oy), _pt(x + size, y, ox, oy), color, thickness, cv2.LINE_AA)
        cv2.line(layer, _pt(x, y - size, ox, oy), _pt(x, y + size, ox, oy), color, thickness, cv2.LINE_AA)

    _blend(surface, alpha, (x - size, y - size, x + size, y + size), draw)


def draw_ring(surface, x, y, radius, color: Color, width: int = 3, alpha: float = 1.0):
    draw_circle(surface, x, y, radius, color, alpha, thickness=max(int(width), 1))


# =============================================================================
# Full-surface effects
# =============================================================================

def flash_additive(surface: np.ndarray, color: Color, alpha: float):
    """Brighten the whole surface additively, saturating at 255."""
    if alpha <= 0.0:
        return
    add = np.array([c * alpha for c in color], dtype=np.float32)
    surface[:] = np.clip(surface.astype(np.float32) + add, 0, 255).astype(np.uint8)
