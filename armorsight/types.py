"""Core value types for lights, armors and camera intrinsics."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from armorsight.geometry import Point, Rect, RotatedRect, min_area_rect

# Armor plate sizes in metres
SMALL_ARMOR_WIDTH = 133.0 / 1000.0
SMALL_ARMOR_HEIGHT = 50.0 / 1000.0
LARGE_ARMOR_WIDTH = 225.0 / 1000.0
LARGE_ARMOR_HEIGHT = 50.0 / 1000.0

FIFTEEN_DEGREE_RAD = 15 * math.pi / 180

N_LANDMARKS = 6
N_LANDMARKS_2 = N_LANDMARKS * 2


class EnemyColor(Enum):
    RED = 0
    BLUE = 1
    WHITE = 2


class ArmorType(Enum):
    SMALL = "small"
    LARGE = "large"
    INVALID = "invalid"


def armor_type_to_string(armor_type: ArmorType) -> str:
    """Return the lower-case name used in messages for an armor type."""
    if armor_type is ArmorType.SMALL:
        return "small"
    if armor_type is ArmorType.LARGE:
        return "large"
    return "invalid"


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole camera focal lengths and principal point."""

    fx: float
    fy: float
    cx: float
    cy: float

    def to_matrix(self) -> np.ndarray:
        """Return the 3x3 camera matrix."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=float,
        )


def _midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) / 2, (a[1] + b[1]) / 2)


@dataclass
class Light:
    """A light bar: its enclosing rotated rectangle plus derived end points."""

    center: Point
    size: tuple[float, float]
    angle: float
    top: Point
    bottom: Point
    length: float
    width: float
    tilt_angle: float
    color: EnemyColor = EnemyColor.WHITE

    @classmethod
    def from_contour(cls, contour: Sequence[Sequence[float]]) -> "Light":
        """Build a light bar from the points of a contour."""
        points = [(float(p[0]), float(p[1])) for p in contour]
        if not points:
            raise ValueError("contour must not be empty")
        rect = min_area_rect(points)
        n = float(len(points))
        center = (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)

        corners = sorted(
            RotatedRect(center, rect.size, rect.angle).corners(), key=lambda p: p[1]
        )
        top = _midpoint(corners[0], corners[1])
        bottom = _midpoint(corners[2], corners[3])
        length = math.dist(top, bottom)
        width = math.dist(corners[0], corners[1])
        tilt = math.degrees(math.atan2(abs(top[0] - bottom[0]), abs(top[1] - bottom[1])))
        return cls(
            center=center,
            size=rect.size,
            angle=rect.angle,
            top=top,
            bottom=bottom,
            length=length,
            width=width,
            tilt_angle=tilt,
        )

    def bounding_rect(self) -> Rect:
        """Return the integer rectangle enclosing the light's rotated rectangle."""
        corners = RotatedRect(self.center, self.size, self.angle).corners()
        xs = [p[0] for p in corners]
        ys = [p[1] for p in corners]
        x, y = math.floor(min(xs)), math.floor(min(ys))
        return Rect(x, y, math.ceil(max(xs)) - x + 1, math.ceil(max(ys)) - y + 1)


@dataclass
class Armor:
    """An armor plate formed by a pair of light bars."""

    left_light: Light
    right_light: Light
    center: Point
    type: ArmorType = ArmorType.INVALID
    rmat: Optional[np.ndarray] = None
    tvec: Optional[np.ndarray] = None
    roll: float = 0.0
    imu2camera: np.ndarray = field(default_factory=lambda: np.eye(3))
    number_img: Optional[np.ndarray] = None
    number: str = ""
    confidence: float = 0.0
    classification_result: str = ""

    @classmethod
    def from_lights(cls, light_1: Light, light_2: Light) -> "Armor":
        """Pair two lights, ordering them left to right by centre x."""
        if light_1.center[0] < light_2.center[0]:
            left, right = light_1, light_2
        else:
            left, right = light_2, light_1
        return cls(left_light=left, right_light=right, center=_midpoint(left.center, right.center))

    def landmarks(self) -> list[Point]:
        """Image landmarks, from the bottom left in clockwise order."""
        left, right = self.left_light, self.right_light
        return [left.bottom, left.center, left.top, right.top, right.center, right.bottom]


def build_object_points(width: float, height: float) -> np.ndarray:
    """Armor landmarks in the object frame, from the bottom left in clockwise order."""
    w, h = width / 2, height / 2
    return np.array(
        [
            [0.0, w, -h],
            [0.0, w, 0.0],
            [0.0, w, h],
            [0.0, -w, h],
            [0.0, -w, 0.0],
            [0.0, -w, -h],
        ],
        dtype=float,
    )