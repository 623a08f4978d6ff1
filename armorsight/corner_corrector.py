"""Refinement of light-bar corners using the bar's brightness symmetry axis."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass

import numpy as np

from armorsight.geometry import Point
from armorsight.types import Armor, Light

# Lights narrower than this (in pixels) are left as they are
PASS_OPTIMIZE_WIDTH = 3

_MAX_BRIGHTNESS = 25.0
_BOX_SCALE = 0.07
_SEARCH_START = 0.8 / 2
_SEARCH_END = 1.2 / 2


@dataclass(frozen=True)
class SymmetryAxis:
    """Brightness centroid, unit direction of the main axis and mean brightness."""

    centroid: Point
    direction: Point
    mean_val: float


def _pixel(point: Point) -> tuple[int, int]:
    return round(point[0]), round(point[1])


class LightCornerCorrector:
    """Refines light-bar end points.

    The symmetry axis of each bar is found by principal component analysis of its
    brightness, then the end points are located along that axis where the
    brightness drops the most.
    """

    def correct_corners(self, armor: Armor, gray_img: np.ndarray) -> None:
        """Replace the armor's lights with copies whose corners have been refined."""
        gray = np.asarray(gray_img)
        for side in ("left_light", "right_light"):
            light: Light = getattr(armor, side)
            if light.width <= PASS_OPTIMIZE_WIDTH:
                continue
            axis = self.find_symmetry_axis(gray, light)
            top = self.find_corner(gray, light, axis, "top")
            bottom = self.find_corner(gray, light, axis, "bottom")
            setattr(
                armor,
                side,
                dataclasses.replace(light, top=top, bottom=bottom, center=axis.centroid),
            )

    def find_symmetry_axis(self, gray_img: np.ndarray, light: Light) -> SymmetryAxis:
        """Return the symmetry axis of the light's brightness in the image."""
        gray = np.asarray(gray_img)
        rows, cols = gray.shape[:2]

        box = light.bounding_rect()
        x = int(box.x - box.width * _BOX_SCALE)
        y = int(box.y - box.height * _BOX_SCALE)
        width = int(box.width + box.width * _BOX_SCALE * 2)
        height = int(box.height + box.height * _BOX_SCALE * 2)

        x = min(max(x, 0), cols - 1)
        y = min(max(y, 0), rows - 1)
        width = min(width, cols - x)
        height = min(height, rows - y)
        if width <= 0 or height <= 0:
            raise ValueError("light region lies outside the image")

        roi = gray[y : y + height, x : x + width].astype(np.float64)
        mean_val = float(roi.mean())

        low, high = float(roi.min()), float(roi.max())
        if high - low > np.finfo(np.float64).eps:
            norm = (roi - low) * (_MAX_BRIGHTNESS / (high - low))
        else:
            norm = np.zeros_like(roi)

        m00 = float(norm.sum())
        if m00 == 0.0:
            raise ValueError("light region has no brightness variation")
        ii, jj = np.indices(norm.shape, dtype=np.float64)
        centroid = (
            float((norm * jj).sum()) / m00 + x,
            float((norm * ii).sum()) / m00 + y,
        )

        # Each pixel counts as many points as its rounded normalised brightness
        counts = np.floor(norm + 0.5)
        total = float(counts.sum())
        mean_x = float((counts * jj).sum()) / total
        mean_y = float((counts * ii).sum()) / total
        ddx, ddy = jj - mean_x, ii - mean_y
        sxx = float((counts * ddx * ddx).sum())
        sxy = float((counts * ddx * ddy).sum())
        syy = float((counts * ddy * ddy).sum())
        _, vectors = np.linalg.eigh(np.array([[sxx, sxy], [sxy, syy]]))
        vx, vy = float(vectors[0, -1]), float(vectors[1, -1])

        # Orient the axis towards the top of the image
        if vy > 0 or (vy == 0 and vx < 0):
            vx, vy = -vx, -vy
        norm_len = math.hypot(vx, vy)
        direction = (vx / norm_len, vy / norm_len)

        return SymmetryAxis(centroid=centroid, direction=direction, mean_val=mean_val)

    def find_corner(
        self, gray_img: np.ndarray, light: Light, axis: SymmetryAxis, order: str
    ) -> Point:
        """Return the refined "top" corner, or the bottom one for any other order."""
        gray = np.asarray(gray_img)
        rows, cols = gray.shape[:2]

        def in_image(point: Point) -> bool:
            px, py = _pixel(point)
            return 0 <= px < cols and 0 <= py < rows

        def brightness(point: Point) -> int:
            px, py = _pixel(point)
            return int(gray[py, px])

        oper = 1 if order == "top" else -1
        length = float(light.length)
        dx = axis.direction[0] * oper
        dy = axis.direction[1] * oper
        max_distance = length * (_SEARCH_END - _SEARCH_START)

        n = int(light.width - 2)
        half_n = int(n / 2)
        candidates: list[Point] = []
        for offset in range(-half_n, half_n + 1):
            x0 = axis.centroid[0] + length * _SEARCH_START * dx + offset
            y0 = axis.centroid[1] + length * _SEARCH_START * dy
            prev: Point = (x0, y0)
            corner: Point = (x0, y0)
            max_diff = 0.0
            cx, cy = x0 + dx, y0 + dy
            while math.hypot(cx - x0, cy - y0) < max_distance:
                cur: Point = (cx, cy)
                if not in_image(cur):
                    break
                if in_image(prev):
                    prev_value = brightness(prev)
                    diff = prev_value - brightness(cur)
                    if diff > max_diff and prev_value > axis.mean_val:
                        max_diff = diff
                        corner = prev
                prev = cur
                cx += dx
                cy += dy
            candidates.append(corner)

        count = float(len(candidates))
        return (
            sum(p[0] for p in candidates) / count,
            sum(p[1] for p in candidates) / count,
        )