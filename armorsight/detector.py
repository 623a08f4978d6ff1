"""Light-bar detection and pairing of light bars into armor plates."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from armorsight.classifier import NumberClassifier, rgb_to_gray
from armorsight.corner_corrector import LightCornerCorrector
from armorsight.geometry import bounding_rect
from armorsight.types import Armor, ArmorType, EnemyColor, Light, armor_type_to_string

# Neighbour offsets (dy, dx), counter-clockwise as seen on screen, starting east
_NEIGHBOURS = ((0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1), (1, 0), (1, 1))
_WEST = 4

_NUMBER_IMG_WIDTH = 20
_NUMBER_IMG_HEIGHT = 28


@dataclass
class LightParams:
    """Limits for accepting a contour as a light bar."""

    # width / length
    min_ratio: float = 0.08
    max_ratio: float = 0.4
    # tilt from vertical, degrees
    max_angle: float = 40.0
    # mean red/blue difference needed to decide a colour
    color_diff_thresh: int = 25


@dataclass
class ArmorParams:
    """Limits for accepting a pair of light bars as an armor plate."""

    min_light_ratio: float = 0.6
    # centre distance in units of light length
    min_small_center_distance: float = 0.8
    max_small_center_distance: float = 3.2
    min_large_center_distance: float = 3.2
    max_large_center_distance: float = 5.0
    # tilt of the centre line from horizontal, degrees
    max_angle: float = 35.0


@dataclass(frozen=True)
class DebugLight:
    """What the detector measured for one candidate light bar."""

    center_x: float
    ratio: float
    angle: float
    is_light: bool


@dataclass(frozen=True)
class DebugArmor:
    """What the detector measured for one candidate light-bar pair."""

    type: str
    center_x: float
    light_ratio: float
    center_distance: float
    angle: float


def _trace_outer_border(fg: np.ndarray, start: tuple[int, int]) -> list[tuple[int, int]]:
    """Follow the outer border from its raster-first pixel; return (row, col) points."""
    r, c = start

    first = None
    for k in range(8):
        d = (_WEST - k) % 8
        dy, dx = _NEIGHBOURS[d]
        if fg[r + dy, c + dx]:
            first = (r + dy, c + dx)
            break
    if first is None:
        return [start]

    points: list[tuple[int, int]] = []
    prev = first
    cur = start
    while True:
        back = _NEIGHBOURS.index((prev[0] - cur[0], prev[1] - cur[1]))
        nxt = prev
        for k in range(1, 9):
            dy, dx = _NEIGHBOURS[(back + k) % 8]
            if fg[cur[0] + dy, cur[1] + dx]:
                nxt = (cur[0] + dy, cur[1] + dx)
                break
        points.append(cur)
        if nxt == start and cur == first:
            return points
        prev, cur = cur, nxt


def _outer_background(fg: np.ndarray) -> np.ndarray:
    """Background pixels 4-connected to the (padded) image border."""
    background = ~fg
    reach = np.zeros_like(fg)
    reach[0, :] = reach[-1, :] = True
    reach[:, 0] = reach[:, -1] = True
    reach &= background
    while True:
        grown = reach.copy()
        grown[1:, :] |= reach[:-1, :]
        grown[:-1, :] |= reach[1:, :]
        grown[:, 1:] |= reach[:, :-1]
        grown[:, :-1] |= reach[:, 1:]
        grown &= background
        if np.array_equal(grown, reach):
            return reach
        reach = grown


def find_external_contours(binary: np.ndarray) -> list[list[tuple[int, int]]]:
    """Return the outer border of every 8-connected blob not enclosed by another.

    Each contour is the full list of (x, y) border pixels in tracing order.
    """
    img = np.asarray(binary)
    if img.ndim != 2:
        raise ValueError("expected a two-dimensional image")
    fg = np.pad(img != 0, 1, constant_values=False)
    outside = _outer_background(fg)
    visited = np.zeros_like(fg)

    contours: list[list[tuple[int, int]]] = []
    for r, c in np.argwhere(fg):
        start = (int(r), int(c))
        if visited[start]:
            continue
        queue = deque([start])
        visited[start] = True
        while queue:
            y, x = queue.popleft()
            for dy, dx in _NEIGHBOURS:
                ny, nx = y + dy, x + dx
                if fg[ny, nx] and not visited[ny, nx]:
                    visited[ny, nx] = True
                    queue.append((ny, nx))
        if not outside[start[0], start[1] - 1]:
            continue
        border = _trace_outer_border(fg, start)
        contours.append([(col - 1, row - 1) for row, col in border])
    return contours


class Detector:
    """Finds armor plates in an RGB image by pairing coloured light bars."""

    def __init__(
        self,
        binary_thres: int,
        detect_color: EnemyColor,
        light_params: Optional[LightParams] = None,
        armor_params: Optional[ArmorParams] = None,
        classifier: Optional[NumberClassifier] = None,
        corner_corrector: Optional[LightCornerCorrector] = None,
    ) -> None:
        self.binary_thres = binary_thres
        self.detect_color = detect_color
        self.light_params = light_params if light_params is not None else LightParams()
        self.armor_params = armor_params if armor_params is not None else ArmorParams()
        self.classifier = classifier
        self.corner_corrector = corner_corrector

        self.binary_img: Optional[np.ndarray] = None
        self.gray_img: Optional[np.ndarray] = None
        self.debug_lights: list[DebugLight] = []
        self.debug_armors: list[DebugArmor] = []
        self.lights: list[Light] = []
        self.armors: list[Armor] = []

    def detect(self, image: np.ndarray) -> list[Armor]:
        """Run the full pipeline on an RGB image and return the accepted armors."""
        self.binary_img = self.preprocess_image(image)
        self.lights = self.find_lights(image, self.binary_img)
        self.armors = self.match_lights(self.lights)

        if self.armors and self.classifier is not None:
            for armor in self.armors:
                armor.number_img = self.classifier.extract_number(image, armor)
                self.classifier.classify(armor)
                if self.corner_corrector is not None:
                    self.corner_corrector.correct_corners(armor, self.gray_img)
            self.classifier.erase_ignore_classes(self.armors)

        return list(self.armors)

    def preprocess_image(self, image: np.ndarray) -> np.ndarray:
        """Convert to grey and binarise: pixels above the threshold become 255."""
        self.gray_img = rgb_to_gray(image)
        return np.where(self.gray_img > self.binary_thres, 255, 0).astype(np.uint8)

    def find_lights(self, rgb_img: np.ndarray, binary_img: np.ndarray) -> list[Light]:
        """Return the light bars found in the binary image, sorted by centre x."""
        rgb = np.asarray(rgb_img)
        self.debug_lights = []
        lights: list[Light] = []
        for contour in find_external_contours(binary_img):
            if len(contour) < 6:
                continue
            light = Light.from_contour(contour)
            if not self.is_light(light):
                continue
            xs = np.array([p[0] for p in contour])
            ys = np.array([p[1] for p in contour])
            sum_r = int(rgb[ys, xs, 0].astype(np.int64).sum())
            sum_b = int(rgb[ys, xs, 2].astype(np.int64).sum())
            if abs(sum_r - sum_b) // len(contour) > self.light_params.color_diff_thresh:
                light.color = EnemyColor.RED if sum_r > sum_b else EnemyColor.BLUE
            lights.append(light)
        lights.sort(key=lambda item: item.center[0])
        return lights

    def is_light(self, light: Light) -> bool:
        """Check the shape of a candidate light bar and record debug data."""
        ratio = light.width / light.length if light.length else math.inf
        params = self.light_params
        ratio_ok = params.min_ratio < ratio < params.max_ratio
        angle_ok = light.tilt_angle < params.max_angle
        result = ratio_ok and angle_ok
        self.debug_lights.append(
            DebugLight(center_x=light.center[0], ratio=ratio, angle=light.tilt_angle, is_light=result)
        )
        return result

    def match_lights(self, lights: Sequence[Light]) -> list[Armor]:
        """Pair lights of the detected colour into armors."""
        self.debug_armors = []
        armors: list[Armor] = []
        for i, light_1 in enumerate(lights):
            if light_1.color != self.detect_color:
                continue
            max_iter_width = light_1.length * self.armor_params.max_large_center_distance
            for j in range(i + 1, len(lights)):
                light_2 = lights[j]
                if light_2.color != self.detect_color:
                    continue
                if self.contain_light(i, j, lights):
                    continue
                if light_2.center[0] - light_1.center[0] > max_iter_width:
                    break
                armor_type = self.is_armor(light_1, light_2)
                if armor_type is not ArmorType.INVALID:
                    armor = Armor.from_lights(light_1, light_2)
                    armor.type = armor_type
                    armors.append(armor)
        return armors

    def contain_light(self, i: int, j: int, lights: Sequence[Light]) -> bool:
        """Whether a light between indices i and j lies in the pair's bounding box."""
        light_1, light_2 = lights[i], lights[j]
        rect = bounding_rect([light_1.top, light_1.bottom, light_2.top, light_2.bottom])
        avg_length = (light_1.length + light_2.length) / 2.0
        avg_width = (light_1.width + light_2.width) / 2.0
        for test_light in lights[i + 1 : j]:
            # Wide blobs are usually the number sticker
            if test_light.width > 2 * avg_width:
                continue
            # Short blobs are usually a laser dot or a projectile
            if test_light.length < 0.5 * avg_length:
                continue
            if (
                rect.contains(test_light.top)
                or rect.contains(test_light.bottom)
                or rect.contains(test_light.center)
            ):
                return True
        return False

    def is_armor(self, light_1: Light, light_2: Light) -> ArmorType:
        """Classify a light pair as a small, large or invalid armor."""
        params = self.armor_params
        if light_1.length < light_2.length:
            length_ratio = light_1.length / light_2.length
        else:
            length_ratio = light_2.length / light_1.length if light_1.length else math.nan
        light_ratio_ok = length_ratio > params.min_light_ratio

        avg_length = (light_1.length + light_2.length) / 2
        dx = light_1.center[0] - light_2.center[0]
        dy = light_1.center[1] - light_2.center[1]
        center_distance = math.hypot(dx, dy) / avg_length if avg_length else math.inf
        center_distance_ok = (
            params.min_small_center_distance <= center_distance < params.max_small_center_distance
        ) or (
            params.min_large_center_distance <= center_distance < params.max_large_center_distance
        )

        if dx != 0:
            angle = abs(math.atan(dy / dx)) / math.pi * 180
        elif dy != 0:
            angle = 90.0
        else:
            angle = math.nan
        angle_ok = angle < params.max_angle

        if light_ratio_ok and center_distance_ok and angle_ok:
            armor_type = (
                ArmorType.LARGE
                if center_distance > params.min_large_center_distance
                else ArmorType.SMALL
            )
        else:
            armor_type = ArmorType.INVALID

        self.debug_armors.append(
            DebugArmor(
                type=armor_type_to_string(armor_type),
                center_x=(light_1.center[0] + light_2.center[0]) / 2,
                light_ratio=length_ratio,
                center_distance=center_distance,
                angle=angle,
            )
        )
        return armor_type

    def all_numbers_image(self) -> np.ndarray:
        """Stack the number images of the detected armors vertically."""
        if not self.armors:
            return np.zeros((_NUMBER_IMG_HEIGHT, _NUMBER_IMG_WIDTH), dtype=np.uint8)
        return np.vstack([armor.number_img for armor in self.armors])