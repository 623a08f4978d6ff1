"""Planar geometry helpers: axis-aligned and rotated rectangles, convex hulls."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

Point = tuple[float, float]


@dataclass(frozen=True)
class Rect:
    """Axis-aligned integer rectangle with a half-open extent."""

    x: int
    y: int
    width: int
    height: int

    def contains(self, point: Sequence[float]) -> bool:
        """Return True if the point lies inside, right and bottom edges excluded."""
        px, py = point[0], point[1]
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height


@dataclass(frozen=True)
class RotatedRect:
    """Rectangle given by its centre, size (width, height) and angle in degrees."""

    center: Point
    size: tuple[float, float]
    angle: float

    def corners(self) -> list[Point]:
        """Return the four vertices, each adjacent to the next."""
        cx, cy = self.center
        w, h = self.size
        rad = math.radians(self.angle)
        b = math.cos(rad) * 0.5
        a = math.sin(rad) * 0.5
        p0 = (cx - a * h - b * w, cy + b * h - a * w)
        p1 = (cx + a * h - b * w, cy - b * h - a * w)
        p2 = (2 * cx - p0[0], 2 * cy - p0[1])
        p3 = (2 * cx - p1[0], 2 * cy - p1[1])
        return [p0, p1, p2, p3]


def _as_points(points: Iterable[Sequence[float]]) -> list[Point]:
    result = [(float(p[0]), float(p[1])) for p in points]
    if not result:
        raise ValueError("at least one point is required")
    return result


def _cross(o: Point, a: Point, b: Point) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: Iterable[Sequence[float]]) -> list[Point]:
    """Return the convex hull in counter-clockwise order, collinear points dropped."""
    pts = sorted(set(_as_points(points)))
    if len(pts) <= 2:
        return pts

    def half(seq: Iterable[Point]) -> list[Point]:
        chain: list[Point] = []
        for p in seq:
            while len(chain) >= 2 and _cross(chain[-2], chain[-1], p) <= 0:
                chain.pop()
            chain.append(p)
        return chain

    lower = half(pts)
    upper = half(reversed(pts))
    return lower[:-1] + upper[:-1]


def min_area_rect(points: Iterable[Sequence[float]]) -> RotatedRect:
    """Return the rotated rectangle of least area enclosing the points."""
    hull = convex_hull(points)
    if len(hull) == 1:
        return RotatedRect(hull[0], (0.0, 0.0), 0.0)
    if len(hull) == 2:
        (x0, y0), (x1, y1) = hull
        return RotatedRect(
            ((x0 + x1) / 2, (y0 + y1) / 2),
            (math.hypot(x1 - x0, y1 - y0), 0.0),
            math.degrees(math.atan2(y1 - y0, x1 - x0)),
        )

    best: tuple[float, RotatedRect] | None = None
    for start, end in zip(hull, hull[1:] + hull[:1]):
        dx, dy = end[0] - start[0], end[1] - start[1]
        length = math.hypot(dx, dy)
        ux, uy = dx / length, dy / length
        nx, ny = -uy, ux
        along = [p[0] * ux + p[1] * uy for p in hull]
        across = [p[0] * nx + p[1] * ny for p in hull]
        lo_u, hi_u = min(along), max(along)
        lo_n, hi_n = min(across), max(across)
        width, height = hi_u - lo_u, hi_n - lo_n
        area = width * height
        if best is None or area < best[0]:
            mu, mn = (lo_u + hi_u) / 2, (lo_n + hi_n) / 2
            center = (ux * mu + nx * mn, uy * mu + ny * mn)
            rect = RotatedRect(center, (width, height), math.degrees(math.atan2(uy, ux)))
            best = (area, rect)
    assert best is not None
    return best[1]


def bounding_rect(points: Iterable[Sequence[float]]) -> Rect:
    """Return the smallest integer rectangle holding every point's integer cell."""
    pts = _as_points(points)
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    x_min, y_min = math.floor(min(xs)), math.floor(min(ys))
    x_max, y_max = math.floor(max(xs)), math.floor(max(ys))
    return Rect(x_min, y_min, x_max - x_min + 1, y_max - y_min + 1)